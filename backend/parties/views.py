import logging

from django.db import transaction
from django.db.models import Q, Count
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from backend.core.permissions import user_has_role
from backend.core.utils import create_audit_log, paginate_response
from .models import Client, Supplier, SupplierProduct
from .serializers import ClientSerializer, SupplierSerializer, SupplierProductSerializer

logger = logging.getLogger(__name__)


# Client views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def client_list_create(request):
    """List all clients or create a new client"""
    if request.method == 'GET':
        queryset = Client.objects.annotate(sales_count=Count('sales')).order_by('-created_at')
        search = request.query_params.get('search', '').strip()
        if search:
            queryset = queryset.filter(
                Q(first_name__icontains=search) |
                Q(last_name__icontains=search) |
                Q(company_name__icontains=search) |
                Q(email__icontains=search) |
                Q(phone__icontains=search)
            )
        client_type = request.query_params.get('type')
        if client_type:
            queryset = queryset.filter(type=client_type)
        return paginate_response(request, queryset, ClientSerializer)
    else:
        serializer = ClientSerializer(data=request.data)
        if serializer.is_valid():
            client = serializer.save()
            create_audit_log(request=request, action='create', model_name='Client',
                             object_id=client.id, object_name=client.display_name)
            return Response(serializer.data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def client_detail(request, pk):
    """Retrieve, update or delete a client"""
    client = get_object_or_404(Client, pk=pk)

    if request.method == 'GET':
        from backend.pos.serializers import SaleListSerializer
        data = ClientSerializer(client).data
        data['sales_count'] = client.sales.count()
        recent_sales = client.sales.select_related('user').order_by('-created_at')[:10]
        data['recent_sales'] = SaleListSerializer(recent_sales, many=True).data
        return Response(data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = ClientSerializer(client, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            create_audit_log(request=request, action='update', model_name='Client',
                             object_id=client.id, object_name=client.display_name)
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        if client.sales.exists() or client.quotes.exists():
            return Response({'error': 'Cannot delete a client with sales or quotes'},
                            status=status.HTTP_400_BAD_REQUEST)
        create_audit_log(request=request, action='delete', model_name='Client',
                         object_id=client.id, object_name=client.display_name)
        client.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


# Supplier views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def supplier_list_create(request):
    """List all suppliers or create a new supplier"""
    if request.method == 'GET':
        queryset = Supplier.objects.prefetch_related('contacts').order_by('name')
        search = request.query_params.get('search', '').strip()
        if search:
            queryset = queryset.filter(
                Q(name__icontains=search) |
                Q(contact_person__icontains=search) |
                Q(phone__icontains=search) |
                Q(email__icontains=search)
            )
        return paginate_response(request, queryset, SupplierSerializer)
    else:
        if not user_has_role(request.user, 'ADMIN', 'MANAGER'):
            return Response({'error': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)
        serializer = SupplierSerializer(data=request.data)
        if serializer.is_valid():
            with transaction.atomic():
                supplier = serializer.save()
            create_audit_log(request=request, action='create', model_name='Supplier',
                             object_id=supplier.id, object_name=supplier.name)
            return Response(serializer.data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def supplier_detail(request, pk):
    """Retrieve, update or delete a supplier"""
    supplier = get_object_or_404(Supplier, pk=pk)

    if request.method == 'GET':
        from backend.purchasing.serializers import PurchaseListSerializer
        data = SupplierSerializer(supplier).data
        data['products'] = SupplierProductSerializer(
            supplier.products.select_related('product'), many=True
        ).data
        recent_purchases = supplier.purchases.order_by('-created_at')[:10]
        data['recent_purchases'] = PurchaseListSerializer(recent_purchases, many=True).data
        return Response(data)
    elif request.method in ('PUT', 'PATCH'):
        if not user_has_role(request.user, 'ADMIN', 'MANAGER'):
            return Response({'error': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)
        serializer = SupplierSerializer(supplier, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            with transaction.atomic():
                serializer.save()
            create_audit_log(request=request, action='update', model_name='Supplier',
                             object_id=supplier.id, object_name=supplier.name)
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        if not user_has_role(request.user, 'ADMIN'):
            return Response({'error': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)
        if supplier.purchases.exists():
            return Response({'error': 'Cannot delete a supplier with purchases'},
                            status=status.HTTP_400_BAD_REQUEST)
        create_audit_log(request=request, action='delete', model_name='Supplier',
                         object_id=supplier.id, object_name=supplier.name)
        supplier.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def supplier_products(request, pk):
    """List a supplier's product offers or add/update one"""
    supplier = get_object_or_404(Supplier, pk=pk)

    if request.method == 'GET':
        offers = supplier.products.select_related('product')
        return Response(SupplierProductSerializer(offers, many=True).data)

    if not user_has_role(request.user, 'ADMIN', 'MANAGER'):
        return Response({'error': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)
    serializer = SupplierProductSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    offer, created = SupplierProduct.objects.update_or_create(
        supplier=supplier,
        product=serializer.validated_data['product'],
        defaults={
            'supplier_sku': serializer.validated_data.get('supplier_sku', ''),
            'price': serializer.validated_data['price'],
        },
    )
    logger.info(f"Supplier offer {'created' if created else 'updated'}: supplier={supplier.id} product={offer.product_id}")
    return Response(SupplierProductSerializer(offer).data,
                    status=status.HTTP_201_CREATED if created else status.HTTP_200_OK)
