"""
Client credit follow-up.

A credit is any completed sale attached to a client that still has an amount due.
Days overdue are counted from the due date, or from the sale date when there is none.
"""
from decimal import Decimal

from django.db.models import F
from django.utils import timezone

from backend.core.utils import get_int_setting
from .models import Sale


def unpaid_sales(client=None):
    queryset = Sale.objects.select_related('client', 'user').filter(
        status=Sale.STATUS_COMPLETED,
        client__isnull=False,
        amount_paid__lt=F('total'),
    )
    if client is not None:
        queryset = queryset.filter(client=client)
    return queryset.order_by('created_at', 'id')


def days_overdue(sale, today=None):
    today = today or timezone.localdate()
    reference = sale.due_date or timezone.localtime(sale.created_at).date()
    return max((today - reference).days, 0)


def client_summaries(search=None, client_id=None):
    """Aggregate unpaid sales per client"""
    queryset = unpaid_sales()
    if client_id is not None and str(client_id).isdigit():
        queryset = queryset.filter(client_id=client_id)

    today = timezone.localdate()
    summaries = {}
    for sale in queryset:
        client = sale.client
        if search and search.lower() not in client.display_name.lower() \
                and search not in (client.phone or '') and search.lower() not in (client.email or '').lower():
            continue
        summary = summaries.get(client.pk)
        if summary is None:
            summary = summaries[client.pk] = {
                'client_id': client.pk,
                'client_name': client.display_name,
                'phone': client.phone,
                'email': client.email,
                'total_due': Decimal('0.00'),
                'sales_count': 0,
                'oldest_due_date': None,
                'max_days_overdue': 0,
            }
        reference = sale.due_date or timezone.localtime(sale.created_at).date()
        summary['total_due'] += sale.amount_due
        summary['sales_count'] += 1
        if summary['oldest_due_date'] is None or reference < summary['oldest_due_date']:
            summary['oldest_due_date'] = reference
        summary['max_days_overdue'] = max(summary['max_days_overdue'], days_overdue(sale, today))

    return sorted(summaries.values(), key=lambda s: s['total_due'], reverse=True)


def filter_summaries(summaries, min_total=None, max_total=None, overdue_min_days=None):
    if min_total is not None:
        summaries = [s for s in summaries if s['total_due'] >= min_total]
    if max_total is not None:
        summaries = [s for s in summaries if s['total_due'] <= max_total]
    if overdue_min_days is not None:
        summaries = [s for s in summaries if s['max_days_overdue'] >= overdue_min_days]
    return summaries


def client_credit_detail(client):
    today = timezone.localdate()
    sales = list(unpaid_sales(client))
    for sale in sales:
        sale.days_overdue = days_overdue(sale, today)
    return sales, sum((sale.amount_due for sale in sales), Decimal('0.00'))


def overdue_client_count(days=None):
    """Number of clients with at least one sale overdue by more than `days`"""
    if days is None:
        days = get_int_setting('credit_overdue_days_threshold', 30)
    today = timezone.localdate()
    clients = {sale.client_id for sale in unpaid_sales() if days_overdue(sale, today) > days}
    return len(clients), days
