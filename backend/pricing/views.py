import logging
from decimal import Decimal

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from backend.core.permissions import IsAdminRole, user_has_role
from backend.core.utils import create_audit_log
from .models import Currency
from .serializers import CurrencySerializer, DefaultCurrencySerializer, ConvertQuerySerializer
from . import services

logger = logging.getLogger(__name__)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def currency_list(request):
    """List active currencies"""
    currencies = Currency.objects.filter(is_active=True).order_by('code')
    return Response(CurrencySerializer(currencies, many=True).data)


@api_view(['GET', 'PUT'])
@permission_classes([IsAuthenticated])
def default_currency(request):
    """Get or set the company's default currency"""
    if request.method == 'GET':
        return Response({'code': services.get_default_currency_code()})

    if not user_has_role(request.user, 'ADMIN'):
        return Response({'error': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)
    serializer = DefaultCurrencySerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    previous = services.get_default_currency_code()
    try:
        code = services.set_default_currency_code(serializer.validated_data['code'])
    except ValueError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

    create_audit_log(request=request, action='update', model_name='Company', object_id='default_currency',
                     changes={'default_currency_code': {'old': previous, 'new': code}})
    return Response({'code': code})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def latest_rates(request):
    """Latest rate to the base currency for each active currency"""
    return Response(services.get_latest_rates())


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def convert_amount(request):
    """Convert an amount between two currencies"""
    serializer = ConvertQuerySerializer(data=request.query_params)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data
    from_code = request.query_params.get('from', '').strip().upper() or services.BASE_CURRENCY
    to_code = data['to'].strip().upper() or services.get_default_currency_code()

    try:
        result = services.convert(data['amount'], from_code, to_code)
    except services.UnknownRateError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

    return Response({
        'amount': data['amount'],
        'from': from_code,
        'to': to_code,
        'result': result.quantize(Decimal('0.01')),
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def import_bct(request):
    """Import today's rates from the Banque Centrale de Tunisie"""
    result = services.import_bct_rates()
    if result['imported']:
        create_audit_log(request=request, action='update', model_name='ExchangeRate', object_id='BCT',
                         changes={'currencies': result['currencies']})
    return Response(result)
