import logging

from django.db.models import Count, F, Q
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from backend.catalog.models import Product
from backend.catalog.serializers import ProductSerializer
from backend.core.permissions import user_has_role
from backend.core.utils import create_audit_log, paginate_response, parse_date_param
from .models import StockMovement, Inventory, InventoryItem
from .serializers import (
    StockMovementSerializer, DamageSerializer, InventorySerializer, InventoryListSerializer,
    InventoryItemSerializer, InventoryItemInputSerializer, ProductStockHistorySerializer,
)
from .services import StockService, InventoryService

logger = logging.getLogger(__name__)


# Stock movement views
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def stock_movement_list(request):
    """List stock movements with filters"""
    queryset = StockMovement.objects.select_related('product', 'user', 'supplier')

    product_id = request.query_params.get('product', '')
    if product_id.isdigit():
        queryset = queryset.filter(product_id=product_id)

    movement_type = request.query_params.get('type')
    if movement_type:
        queryset = queryset.filter(type=movement_type)

    start_date = parse_date_param(request.query_params.get('start_date'))
    end_date = parse_date_param(request.query_params.get('end_date'), end_of_day=True)
    if start_date:
        queryset = queryset.filter(created_at__gte=start_date)
    if end_date:
        queryset = queryset.filter(created_at__lte=end_date)

    return paginate_response(request, queryset.order_by('-created_at', '-id'), StockMovementSerializer)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def low_stock_products(request):
    """Active products at or below their minimum stock, lowest stock first"""
    products = (
        Product.objects.select_related('category')
        .filter(is_active=True, stock_current__lte=F('stock_min'))
        .order_by('stock_current', 'name')
    )
    return Response(ProductSerializer(products, many=True).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def product_stock_history(request, pk):
    """Stock movements of one product, newest first"""
    product = get_object_or_404(Product, pk=pk)
    movements = product.stock_movements.select_related('user', 'supplier').order_by('-created_at', '-id')
    limit = request.query_params.get('limit')
    if limit and limit.isdigit():
        movements = movements[:int(limit)]
    serializer = ProductStockHistorySerializer({'product': product, 'movements': movements})
    return Response(serializer.data)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def stock_damage(request):
    """Record damaged, lost or stolen goods"""
    serializer = DamageSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data

    try:
        movement = StockService.record_damage(
            data['product'], data['type'], data['quantity'], data['reason'], user=request.user
        )
    except ValueError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

    create_audit_log(request=request, action='stock_adjust', model_name='Product',
                     object_id=movement.product_id, object_name=movement.product.name,
                     object_reference=movement.reference,
                     changes={'type': movement.type, 'quantity': movement.quantity, 'reason': movement.reason})
    return Response(StockMovementSerializer(movement).data, status=status.HTTP_201_CREATED)


# Inventory count views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def inventory_list_create(request):
    """List inventory counts or start a new one"""
    if request.method == 'GET':
        queryset = Inventory.objects.select_related('user').annotate(
            items_count=Count('items'),
            discrepancies_count=Count('items', filter=~Q(items__difference=0)),
        )
        status_filter = request.query_params.get('status')
        if status_filter:
            queryset = queryset.filter(status=status_filter)
        serializer = InventoryListSerializer(queryset.order_by('-created_at'), many=True)
        return Response(serializer.data)

    inventory = InventoryService.create_inventory(request.user, notes=request.data.get('notes', ''))
    create_audit_log(request=request, action='create', model_name='Inventory',
                     object_id=inventory.id, object_reference=inventory.reference)
    return Response(InventorySerializer(inventory).data, status=status.HTTP_201_CREATED)


def _get_inventory(pk):
    inventory = Inventory.objects.select_related('user', 'validated_by').filter(pk=pk).first()
    if inventory is None:
        return None, Response({'error': 'Inventory not found'}, status=status.HTTP_404_NOT_FOUND)
    return inventory, None


def _inventory_payload(inventory):
    inventory = Inventory.objects.select_related('user', 'validated_by').prefetch_related('items__product').get(pk=inventory.pk)
    return InventorySerializer(inventory).data


@api_view(['GET', 'DELETE'])
@permission_classes([IsAuthenticated])
def inventory_detail(request, pk):
    """Retrieve or delete (draft only) an inventory count"""
    inventory, error = _get_inventory(pk)
    if error:
        return error

    if request.method == 'GET':
        return Response(_inventory_payload(inventory))

    if inventory.status != Inventory.STATUS_DRAFT:
        return Response({'error': 'Only draft inventories can be deleted'}, status=status.HTTP_400_BAD_REQUEST)
    create_audit_log(request=request, action='delete', model_name='Inventory',
                     object_id=inventory.id, object_reference=inventory.reference)
    inventory.delete()
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def inventory_add_item(request, pk):
    """Record a counted quantity for a product"""
    inventory, error = _get_inventory(pk)
    if error:
        return error

    serializer = InventoryItemInputSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data

    try:
        item = InventoryService.add_item(inventory, data['product'], data['counted_qty'], data.get('reason', ''))
    except ValueError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
    return Response(InventoryItemSerializer(item).data, status=status.HTTP_201_CREATED)


@api_view(['DELETE'])
@permission_classes([IsAuthenticated])
def inventory_remove_item(request, pk, item_id):
    """Remove a counted line from an open inventory"""
    inventory, error = _get_inventory(pk)
    if error:
        return error
    item = get_object_or_404(InventoryItem, pk=item_id, inventory=inventory)
    try:
        InventoryService.remove_item(inventory, item)
    except ValueError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST', 'PUT'])
@permission_classes([IsAuthenticated])
def inventory_start(request, pk):
    """Move a draft inventory to IN_PROGRESS"""
    inventory, error = _get_inventory(pk)
    if error:
        return error
    try:
        inventory = InventoryService.start(inventory)
    except ValueError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
    return Response(_inventory_payload(inventory))


@api_view(['POST', 'PUT'])
@permission_classes([IsAuthenticated])
def inventory_complete(request, pk):
    """Close counting on an inventory"""
    inventory, error = _get_inventory(pk)
    if error:
        return error
    try:
        inventory = InventoryService.complete(inventory)
    except ValueError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
    return Response(_inventory_payload(inventory))


@api_view(['POST', 'PUT'])
@permission_classes([IsAuthenticated])
def inventory_validate(request, pk):
    """Apply the counted quantities of a completed inventory to stock"""
    if not user_has_role(request.user, 'ADMIN', 'MANAGER'):
        return Response({'error': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)
    inventory, error = _get_inventory(pk)
    if error:
        return error
    try:
        inventory, movements = InventoryService.validate(inventory, request.user)
    except ValueError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

    create_audit_log(request=request, action='inventory_validate', model_name='Inventory',
                     object_id=inventory.id, object_reference=inventory.reference,
                     changes={'adjustments': [{'product': m.product_id, 'quantity': m.quantity} for m in movements]})
    data = _inventory_payload(inventory)
    data['movements'] = StockMovementSerializer(movements, many=True).data
    return Response(data)
