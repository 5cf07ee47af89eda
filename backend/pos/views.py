import logging

from django.db.models import Q
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from backend.core.permissions import user_has_role
from backend.core.utils import (
    create_audit_log, paginate_response, paginate_list, parse_date_param, parse_decimal_param,
)
from backend.parties.models import Client
from backend.parties.serializers import ClientSerializer
from . import credits
from .models import CashRegister, Sale, Quote
from .serializers import (
    SaleSerializer, SaleListSerializer, SaleCreateSerializer, PaymentSerializer, SalePaymentSerializer,
    RefundSerializer, SaleRefundSerializer, CashRegisterSerializer, CashRegisterDetailSerializer,
    CashRegisterOpenSerializer, CashRegisterCloseSerializer, QuoteSerializer, QuoteCreateSerializer,
    QuoteStatusSerializer, QuoteConvertSerializer, CreditSaleSerializer,
)
from .services import SaleService, CashRegisterService, QuoteService

logger = logging.getLogger(__name__)


def _sale_queryset():
    return Sale.objects.select_related('client', 'user', 'cash_register').prefetch_related(
        'items__product', 'payments__user', 'refunds__user'
    )


def _filter_by_dates(request, queryset):
    start_date = parse_date_param(request.query_params.get('start_date'))
    end_date = parse_date_param(request.query_params.get('end_date'), end_of_day=True)
    if start_date:
        queryset = queryset.filter(created_at__gte=start_date)
    if end_date:
        queryset = queryset.filter(created_at__lte=end_date)
    return queryset


# Sale views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def sale_list_create(request):
    """List sales or record a new sale"""
    if request.method == 'GET':
        queryset = _filter_by_dates(request, Sale.objects.select_related('client', 'user'))

        for param, lookup in (('client', 'client_id'), ('user', 'user_id')):
            value = request.query_params.get(param, '')
            if value.isdigit():
                queryset = queryset.filter(**{lookup: value})
        for param in ('type', 'status', 'payment_method'):
            value = request.query_params.get(param)
            if value:
                queryset = queryset.filter(**{param: value})

        search = request.query_params.get('search', '').strip()
        if search:
            queryset = queryset.filter(Q(ticket_number__icontains=search) | Q(invoice_number__icontains=search))

        return paginate_response(request, queryset.order_by('-created_at', '-id'), SaleListSerializer)

    serializer = SaleCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        sale = SaleService.create_sale(request.user, **serializer.validated_data)
    except ValueError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

    create_audit_log(request=request, action='sale_create', model_name='Sale',
                     object_id=sale.id, object_reference=sale.number,
                     object_name=sale.client.display_name if sale.client else None,
                     changes={'total': str(sale.total), 'payment_method': sale.payment_method,
                              'items': len(serializer.validated_data['items'])})
    return Response(SaleSerializer(_sale_queryset().get(pk=sale.pk)).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def sale_detail(request, pk):
    """Retrieve a sale with its items, payments and refunds"""
    sale = get_object_or_404(_sale_queryset(), pk=pk)
    return Response(SaleSerializer(sale).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def sale_payment(request, pk):
    """Record a payment on an unpaid or partly paid sale"""
    sale = get_object_or_404(Sale, pk=pk)
    serializer = PaymentSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        sale, payment = SaleService.record_payment(sale, user=request.user, **serializer.validated_data)
    except ValueError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

    create_audit_log(request=request, action='payment_add', model_name='Sale',
                     object_id=sale.id, object_reference=sale.number,
                     changes={'amount': str(payment.amount), 'method': payment.method,
                              'amount_due': str(sale.amount_due)})
    return Response({
        'payment': SalePaymentSerializer(payment).data,
        'sale': SaleSerializer(_sale_queryset().get(pk=sale.pk)).data,
    }, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def sale_cancel(request, pk):
    """Cancel a sale and restore its stock"""
    if not user_has_role(request.user, 'ADMIN', 'MANAGER'):
        return Response({'error': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)
    sale = get_object_or_404(Sale, pk=pk)

    try:
        sale = SaleService.cancel(sale, request.user)
    except ValueError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

    create_audit_log(request=request, action='sale_cancel', model_name='Sale',
                     object_id=sale.id, object_reference=sale.number,
                     changes={'total': str(sale.total)})
    return Response(SaleSerializer(_sale_queryset().get(pk=sale.pk)).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def sale_refund(request, pk):
    """Issue a credit note for some or all of a sale's items"""
    sale = get_object_or_404(Sale, pk=pk)
    serializer = RefundSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        refund = SaleService.refund(sale, serializer.validated_data['items'], request.user,
                                    reason=serializer.validated_data['reason'])
    except ValueError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

    create_audit_log(request=request, action='refund', model_name='Sale',
                     object_id=sale.id, object_reference=refund.avoir_number,
                     changes={'amount': str(refund.amount), 'items': refund.refunded_items})
    return Response({
        'refund': SaleRefundSerializer(refund).data,
        'sale': SaleSerializer(_sale_queryset().get(pk=sale.pk)).data,
    }, status=status.HTTP_201_CREATED)


# Cash register views
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def cash_register_list(request):
    """List cash register sessions"""
    queryset = CashRegister.objects.select_related('user')
    if not user_has_role(request.user, 'ADMIN', 'MANAGER'):
        queryset = queryset.filter(user=request.user)

    user_id = request.query_params.get('user', '')
    if user_id.isdigit():
        queryset = queryset.filter(user_id=user_id)
    status_filter = request.query_params.get('status')
    if status_filter:
        queryset = queryset.filter(status=status_filter)

    return paginate_response(request, queryset.order_by('-open_date'), CashRegisterSerializer)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def cash_register_open(request):
    """Open a cash register for the current user"""
    serializer = CashRegisterOpenSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        register = CashRegisterService.open(request.user, serializer.validated_data['initial_amount'])
    except ValueError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

    create_audit_log(request=request, action='register_open', model_name='CashRegister',
                     object_id=register.id, changes={'initial_amount': str(register.initial_amount)})
    return Response(CashRegisterSerializer(register).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def cash_register_current(request):
    """The current user's open register, or null"""
    register = CashRegister.objects.select_related('user').filter(
        user=request.user, status=CashRegister.STATUS_OPEN
    ).first()
    if register is None:
        return Response(None)
    data = CashRegisterSerializer(register).data
    data['expected_amount'] = CashRegisterService.expected_amount(register)
    return Response(data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def cash_register_detail(request, pk):
    """Retrieve a register session with its sales"""
    register = get_object_or_404(
        CashRegister.objects.select_related('user').prefetch_related('sales__client', 'sales__user'), pk=pk
    )
    if register.user_id != request.user.pk and not user_has_role(request.user, 'ADMIN', 'MANAGER'):
        return Response({'error': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)
    return Response(CashRegisterDetailSerializer(register).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def cash_register_close(request, pk):
    """Close a register with the counted cash"""
    register = get_object_or_404(CashRegister, pk=pk)
    serializer = CashRegisterCloseSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        register = CashRegisterService.close(register, request.user, **serializer.validated_data)
    except ValueError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

    create_audit_log(request=request, action='register_close', model_name='CashRegister',
                     object_id=register.id,
                     changes={'expected_amount': str(register.expected_amount),
                              'actual_amount': str(register.actual_amount),
                              'difference': str(register.difference)})
    return Response(CashRegisterSerializer(register).data)


# Quote views
def _quote_queryset():
    return Quote.objects.select_related('client', 'user', 'converted_sale').prefetch_related('items__product')


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def quote_list_create(request):
    """List quotes or create a new quote"""
    if request.method == 'GET':
        queryset = _filter_by_dates(request, _quote_queryset())
        client_id = request.query_params.get('client', '')
        if client_id.isdigit():
            queryset = queryset.filter(client_id=client_id)
        status_filter = request.query_params.get('status')
        if status_filter:
            queryset = queryset.filter(status=status_filter)
        return paginate_response(request, queryset.order_by('-created_at', '-id'), QuoteSerializer)

    serializer = QuoteCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        quote = QuoteService.create_quote(request.user, **serializer.validated_data)
    except ValueError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

    create_audit_log(request=request, action='create', model_name='Quote',
                     object_id=quote.id, object_reference=quote.quote_number,
                     changes={'total': str(quote.total)})
    return Response(QuoteSerializer(_quote_queryset().get(pk=quote.pk)).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'DELETE'])
@permission_classes([IsAuthenticated])
def quote_detail(request, pk):
    """Retrieve or delete a quote"""
    quote = get_object_or_404(_quote_queryset(), pk=pk)

    if request.method == 'GET':
        return Response(QuoteSerializer(quote).data)

    if quote.status == Quote.STATUS_CONVERTED:
        return Response({'error': 'A converted quote cannot be deleted'}, status=status.HTTP_400_BAD_REQUEST)
    create_audit_log(request=request, action='delete', model_name='Quote',
                     object_id=quote.id, object_reference=quote.quote_number)
    quote.delete()
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['PATCH', 'PUT'])
@permission_classes([IsAuthenticated])
def quote_status(request, pk):
    """Change a quote's status"""
    quote = get_object_or_404(Quote, pk=pk)
    serializer = QuoteStatusSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    previous = quote.status
    try:
        quote = QuoteService.update_status(quote, serializer.validated_data['status'])
    except ValueError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

    create_audit_log(request=request, action='update', model_name='Quote',
                     object_id=quote.id, object_reference=quote.quote_number,
                     changes={'status': {'old': previous, 'new': quote.status}})
    return Response(QuoteSerializer(_quote_queryset().get(pk=quote.pk)).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def quote_convert(request, pk):
    """Turn a quote into an invoice"""
    quote = get_object_or_404(Quote, pk=pk)
    serializer = QuoteConvertSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        quote, sale = QuoteService.convert_to_sale(quote, request.user, **serializer.validated_data)
    except ValueError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

    create_audit_log(request=request, action='quote_convert', model_name='Quote',
                     object_id=quote.id, object_reference=quote.quote_number,
                     changes={'sale': sale.number, 'total': str(sale.total)})
    return Response({
        'quote': QuoteSerializer(_quote_queryset().get(pk=quote.pk)).data,
        'sale': SaleSerializer(_sale_queryset().get(pk=sale.pk)).data,
    }, status=status.HTTP_201_CREATED)


# Credit views
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def credit_client_list(request):
    """Clients with unpaid sales, largest balance first"""
    params = request.query_params
    summaries = credits.client_summaries(
        search=params.get('search', '').strip() or None,
        client_id=params.get('client') or None,
    )
    overdue_min_days = params.get('overdue_min_days')
    summaries = credits.filter_summaries(
        summaries,
        min_total=parse_decimal_param(params.get('min_total')),
        max_total=parse_decimal_param(params.get('max_total')),
        overdue_min_days=int(overdue_min_days) if overdue_min_days and overdue_min_days.isdigit() else None,
    )
    return paginate_list(request, summaries, default_limit=20)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def credit_client_detail(request, pk):
    """A client's unpaid sales with days overdue"""
    client = get_object_or_404(Client, pk=pk)
    sales, total_due = credits.client_credit_detail(client)
    return Response({
        'client': ClientSerializer(client).data,
        'sales': CreditSaleSerializer(sales, many=True).data,
        'total_due': total_due,
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def credit_overdue_count(request):
    """Number of clients with a sale overdue beyond the threshold"""
    days = request.query_params.get('days')
    count, threshold = credits.overdue_client_count(int(days) if days and days.isdigit() else None)
    return Response({'count': count, 'days': threshold})
