"""Dashboard aggregates. Amounts are converted into the company's default currency."""
import logging
from decimal import Decimal

from django.db.models import Count, F, Sum
from django.db.models.functions import TruncDay, TruncMonth, TruncWeek

from backend.catalog.models import Product
from backend.catalog.serializers import ProductLookupSerializer
from backend.pos.models import Sale, SaleItem
from backend.pos.serializers import SaleListSerializer
from backend.pricing.services import UnknownRateError, convert, get_default_currency_code, get_latest_rates
from backend.purchasing.models import Purchase

logger = logging.getLogger(__name__)

TRUNC_FUNCTIONS = {
    'day': TruncDay,
    'week': TruncWeek,
    'month': TruncMonth,
}


def _in_range(queryset, start_date, end_date):
    if start_date:
        queryset = queryset.filter(created_at__gte=start_date)
    if end_date:
        queryset = queryset.filter(created_at__lte=end_date)
    return queryset


def _to_default(amount, currency_code, default_code, rates):
    try:
        return convert(amount or Decimal('0'), currency_code, default_code, rates)
    except UnknownRateError as e:
        logger.warning(f"Dashboard amount left unconverted: {str(e)}")
        return Decimal(amount or 0)


def compute_stats(start_date=None, end_date=None):
    sales = _in_range(Sale.objects.filter(status=Sale.STATUS_COMPLETED), start_date, end_date)
    default_code = get_default_currency_code()
    rates = get_latest_rates()

    total_revenue = Decimal('0')
    total_margin = Decimal('0')
    per_currency = sales.values('currency_code').annotate(total=Sum('total'), margin=Sum('margin'))
    for row in per_currency:
        total_revenue += _to_default(row['total'], row['currency_code'], default_code, rates)
        total_margin += _to_default(row['margin'], row['currency_code'], default_code, rates)

    top_rows = (
        SaleItem.objects.filter(sale__in=sales)
        .values('product')
        .annotate(quantity=Sum('quantity'), total=Sum('total'))
        .order_by('-quantity')[:10]
    )
    products = Product.objects.in_bulk([row['product'] for row in top_rows])
    top_products = [
        {
            'product': ProductLookupSerializer(products[row['product']]).data,
            'quantity': row['quantity'],
            'total': row['total'],
        }
        for row in top_rows
    ]

    low_stock = (
        Product.objects.filter(is_active=True, stock_current__lte=F('stock_min'))
        .order_by('stock_current', 'name')[:10]
    )
    recent_sales = sales.select_related('client', 'user').order_by('-created_at')[:10]

    purchases = _in_range(Purchase.objects.all(), start_date, end_date)
    received = purchases.filter(status__in=[Purchase.STATUS_RECEIVED, Purchase.STATUS_PARTIAL]).aggregate(
        count=Count('id'), amount=Sum('total_amount')
    )

    return {
        'default_currency_code': default_code,
        'sales': {
            'total_sales': sales.count(),
            'total_revenue': total_revenue.quantize(Decimal('0.01')),
            'total_margin': total_margin.quantize(Decimal('0.01')),
        },
        'top_products': top_products,
        'low_stock_products': list(ProductLookupSerializer(low_stock, many=True).data),
        'recent_sales': list(SaleListSerializer(recent_sales, many=True).data),
        'purchases': {
            'total_purchases': received['count'],
            'total_amount': received['amount'] or Decimal('0.00'),
        },
        'pending_purchases': purchases.filter(status=Purchase.STATUS_PENDING).count(),
    }


def compute_sales_chart(start_date, end_date, group_by='day'):
    """Revenue and margin per period, oldest first"""
    trunc = TRUNC_FUNCTIONS[group_by]
    default_code = get_default_currency_code()
    rates = get_latest_rates()

    rows = (
        _in_range(Sale.objects.filter(status=Sale.STATUS_COMPLETED), start_date, end_date)
        .annotate(period=trunc('created_at'))
        .values('period', 'currency_code')
        .annotate(value=Sum('total'), margin=Sum('margin'))
        .order_by('period')
    )

    series = {}
    for row in rows:
        period = row['period'].date().isoformat() if hasattr(row['period'], 'date') else str(row['period'])
        point = series.setdefault(period, {'date': period, 'value': Decimal('0'), 'margin': Decimal('0')})
        point['value'] += _to_default(row['value'], row['currency_code'], default_code, rates)
        point['margin'] += _to_default(row['margin'], row['currency_code'], default_code, rates)

    for point in series.values():
        point['value'] = point['value'].quantize(Decimal('0.01'))
        point['margin'] = point['margin'].quantize(Decimal('0.01'))
    return sorted(series.values(), key=lambda p: p['date'])
