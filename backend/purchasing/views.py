import logging

from django.db.models import Q
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from backend.core.permissions import user_has_role
from backend.core.utils import create_audit_log, paginate_response, parse_date_param
from .models import Purchase, PurchaseItem
from .serializers import (
    PurchaseSerializer, PurchaseListSerializer, PurchaseCreateSerializer,
    PurchaseUpdateSerializer, ReceiveSerializer,
)
from .services import PurchaseService

logger = logging.getLogger(__name__)


def _forbidden():
    return Response({'error': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def purchase_list_create(request):
    """List all purchases or create a new purchase"""
    if request.method == 'GET':
        queryset = Purchase.objects.select_related('supplier', 'user').prefetch_related('items')

        supplier_id = request.query_params.get('supplier', '')
        if supplier_id.isdigit():
            queryset = queryset.filter(supplier_id=supplier_id)

        status_filter = request.query_params.get('status')
        if status_filter:
            queryset = queryset.filter(status=status_filter)

        start_date = parse_date_param(request.query_params.get('start_date'))
        end_date = parse_date_param(request.query_params.get('end_date'), end_of_day=True)
        if start_date:
            queryset = queryset.filter(created_at__gte=start_date)
        if end_date:
            queryset = queryset.filter(created_at__lte=end_date)

        search = request.query_params.get('search', '').strip()
        if search:
            queryset = queryset.filter(Q(reference__icontains=search) | Q(invoice_number__icontains=search))

        return paginate_response(request, queryset.order_by('-created_at', '-id'), PurchaseListSerializer)

    if not user_has_role(request.user, 'ADMIN', 'MANAGER'):
        return _forbidden()
    serializer = PurchaseCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        purchase = PurchaseService.create_purchase(user=request.user, **serializer.validated_data)
    except ValueError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

    create_audit_log(request=request, action='create', model_name='Purchase',
                     object_id=purchase.id, object_name=purchase.supplier.name,
                     object_reference=purchase.reference,
                     changes={'total_amount': str(purchase.total_amount), 'items': purchase.items.count()})
    return Response(PurchaseSerializer(purchase).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def purchase_detail(request, pk):
    """Retrieve, update or delete a purchase"""
    purchase = get_object_or_404(
        Purchase.objects.select_related('supplier', 'user').prefetch_related('items__product'), pk=pk
    )

    if request.method == 'GET':
        return Response(PurchaseSerializer(purchase).data)

    if request.method in ('PUT', 'PATCH'):
        if not user_has_role(request.user, 'ADMIN', 'MANAGER'):
            return _forbidden()
        serializer = PurchaseUpdateSerializer(purchase, data=request.data, partial=True)
        if serializer.is_valid():
            serializer.save()
            create_audit_log(request=request, action='update', model_name='Purchase',
                             object_id=purchase.id, object_reference=purchase.reference,
                             changes={k: str(v) for k, v in serializer.validated_data.items()})
            return Response(PurchaseSerializer(purchase).data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    # DELETE
    if not user_has_role(request.user, 'ADMIN'):
        return _forbidden()
    if purchase.status in (Purchase.STATUS_RECEIVED, Purchase.STATUS_PARTIAL):
        return Response({'error': 'Cannot delete a received purchase'}, status=status.HTTP_400_BAD_REQUEST)
    create_audit_log(request=request, action='delete', model_name='Purchase',
                     object_id=purchase.id, object_reference=purchase.reference)
    purchase.delete()
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def purchase_receive(request, pk):
    """Receive goods for a purchase, fully or partially"""
    if not user_has_role(request.user, 'ADMIN', 'MANAGER'):
        return _forbidden()
    purchase = get_object_or_404(Purchase, pk=pk)

    serializer = ReceiveSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data

    try:
        purchase, movements = PurchaseService.receive(
            purchase, data['items'], request.user,
            delivery_date=data.get('delivery_date'), notes=data.get('notes'),
        )
    except PurchaseItem.DoesNotExist as e:
        return Response({'error': str(e)}, status=status.HTTP_404_NOT_FOUND)
    except ValueError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

    create_audit_log(request=request, action='stock_purchase', model_name='Purchase',
                     object_id=purchase.id, object_reference=purchase.reference,
                     changes={'status': purchase.status,
                              'received': [{'product': m.product_id, 'quantity': m.quantity} for m in movements]})
    purchase = Purchase.objects.select_related('supplier', 'user').prefetch_related('items__product').get(pk=purchase.pk)
    return Response(PurchaseSerializer(purchase).data)
