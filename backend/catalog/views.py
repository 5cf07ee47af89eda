import logging

from django.conf import settings
from django.db import transaction
from django.db.models import Count
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from backend.core.models import Company
from backend.core.permissions import user_has_role
from backend.core.utils import create_audit_log, paginate_response
from .filters import ProductFilter
from .label_generator import generate_label_image, LABEL_FORMATS, DEFAULT_LABEL_FORMAT
from .models import Category, Product, PriceHistory, SkuComponent
from .serializers import (
    CategorySerializer, ProductSerializer, ProductDetailSerializer,
    ProductWithVariantsSerializer, GenerateSkuSerializer,
)
from .utils import (
    generate_sku, sku_is_available, variant_name, register_sku_components,
    find_product_by_code, PRICE_REASON_CREATED,
)

logger = logging.getLogger(__name__)


def _forbidden():
    return Response({'error': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)


# Category views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def category_list_create(request):
    """List all categories or create a new category"""
    if request.method == 'GET':
        categories = Category.objects.select_related('parent').annotate(product_count=Count('products'))
        parent = request.query_params.get('parent')
        if parent == 'root':
            categories = categories.filter(parent__isnull=True)
        elif parent:
            categories = categories.filter(parent_id=parent)
        serializer = CategorySerializer(categories.order_by('name'), many=True)
        return Response(serializer.data)
    else:
        if not user_has_role(request.user, 'ADMIN', 'MANAGER'):
            return _forbidden()
        serializer = CategorySerializer(data=request.data)
        if serializer.is_valid():
            category = serializer.save()
            create_audit_log(request=request, action='create', model_name='Category',
                             object_id=category.id, object_name=category.name)
            return Response(serializer.data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def category_detail(request, pk):
    """Retrieve, update or delete a category"""
    category = get_object_or_404(Category, pk=pk)

    if request.method == 'GET':
        data = CategorySerializer(category).data
        data['children'] = CategorySerializer(category.children.all(), many=True).data
        return Response(data)

    if not user_has_role(request.user, 'ADMIN', 'MANAGER'):
        return _forbidden()

    if request.method in ('PUT', 'PATCH'):
        serializer = CategorySerializer(category, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            create_audit_log(request=request, action='update', model_name='Category',
                             object_id=category.id, object_name=category.name)
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        if category.products.exists():
            return Response({'error': 'Cannot delete a category that still contains products'},
                            status=status.HTTP_400_BAD_REQUEST)
        if category.children.exists():
            return Response({'error': 'Cannot delete a category that has sub-categories'},
                            status=status.HTTP_400_BAD_REQUEST)
        create_audit_log(request=request, action='delete', model_name='Category',
                         object_id=category.id, object_name=category.name)
        category.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


# Product views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def product_list_create(request):
    """List products with filters or create a new product"""
    if request.method == 'GET':
        queryset = Product.objects.select_related('category').order_by('name')
        product_filter = ProductFilter(request.query_params, queryset=queryset)
        if not product_filter.is_valid():
            return Response(product_filter.errors, status=status.HTTP_400_BAD_REQUEST)
        return paginate_response(request, product_filter.qs, ProductSerializer)

    if not user_has_role(request.user, 'ADMIN', 'MANAGER'):
        return _forbidden()
    serializer = ProductSerializer(data=request.data, context={'request': request})
    if serializer.is_valid():
        with transaction.atomic():
            product = serializer.save()
        logger.info(f"Product created: {product.sku} by {request.user.username}")
        create_audit_log(request=request, action='create', model_name='Product',
                         object_id=product.id, object_name=product.name, object_reference=product.sku)
        return Response(ProductSerializer(product).data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def product_detail(request, pk):
    """Retrieve, update or delete a product"""
    product = get_object_or_404(Product.objects.select_related('category'), pk=pk)

    if request.method == 'GET':
        return Response(ProductDetailSerializer(product).data)

    if request.method in ('PUT', 'PATCH'):
        if not user_has_role(request.user, 'ADMIN', 'MANAGER'):
            return _forbidden()
        old_prices = {'purchase_price': str(product.purchase_price), 'sale_price': str(product.sale_price)}
        serializer = ProductSerializer(product, data=request.data, partial=request.method == 'PATCH',
                                       context={'request': request})
        if serializer.is_valid():
            with transaction.atomic():
                product = serializer.save()
            new_prices = {'purchase_price': str(product.purchase_price), 'sale_price': str(product.sale_price)}
            action = 'price_change' if new_prices != old_prices else 'update'
            create_audit_log(request=request, action=action, model_name='Product',
                             object_id=product.id, object_name=product.name, object_reference=product.sku,
                             changes={'before': old_prices, 'after': new_prices} if action == 'price_change' else {})
            return Response(ProductDetailSerializer(product).data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    # DELETE
    if not user_has_role(request.user, 'ADMIN'):
        return _forbidden()
    if product.sale_items.exists() or product.purchase_items.exists() or product.quote_items.exists():
        # Keep history intact: referenced products are only deactivated
        product.is_active = False
        product.save(update_fields=['is_active', 'updated_at'])
        create_audit_log(request=request, action='update', model_name='Product',
                         object_id=product.id, object_name=product.name, object_reference=product.sku,
                         changes={'is_active': False})
        return Response({'message': 'Product is referenced by sales or purchases and was deactivated',
                         'product': ProductSerializer(product).data})
    create_audit_log(request=request, action='delete', model_name='Product',
                     object_id=product.id, object_name=product.name, object_reference=product.sku)
    product.delete()
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def product_by_barcode(request, barcode):
    """Find a product by barcode (falls back to SKU)"""
    product = find_product_by_code(barcode)
    if product is None:
        return Response({'error': 'Product not found'}, status=status.HTTP_404_NOT_FOUND)
    return Response(ProductSerializer(product).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def sku_components(request, component_type):
    """Suggest known SKU component values of a type"""
    queryset = SkuComponent.objects.filter(type=component_type.strip().lower())
    search = request.query_params.get('search', '').strip()
    if search:
        queryset = queryset.filter(value__istartswith=search)
    values = queryset.order_by('value').values_list('value', flat=True).distinct()[:20]
    return Response([value.upper() for value in values])


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def product_generate_sku(request):
    """Generate a SKU from a product name and component values"""
    serializer = GenerateSkuSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    sku = generate_sku(serializer.validated_data['name'], serializer.validated_data['components'])
    if not sku:
        return Response({'error': 'Name must contain at least one letter or digit'}, status=status.HTTP_400_BAD_REQUEST)
    return Response({'sku': sku, 'available': sku_is_available(sku)})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def product_create_with_variants(request):
    """Create one product per variant of a base article"""
    if not user_has_role(request.user, 'ADMIN', 'MANAGER'):
        return _forbidden()

    serializer = ProductWithVariantsSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data

    # Resolve SKUs and barcodes up-front so duplicates are reported before anything is written
    skus = []
    barcodes = []
    for variant in data['variants']:
        if variant.get('sku'):
            sku = variant['sku'].strip().upper()
        else:
            sku = generate_sku(data['name'], list(variant['attributes'].values()))
        skus.append(sku)
        barcodes.append((variant.get('barcode') or '').strip() or sku)

    duplicates = sorted({sku for sku in skus if skus.count(sku) > 1})
    if duplicates:
        return Response({'error': f"Duplicate SKUs in request: {', '.join(duplicates)}"},
                        status=status.HTTP_400_BAD_REQUEST)
    taken = list(Product.objects.filter(sku__in=skus).values_list('sku', flat=True))
    if taken:
        return Response({'error': f"SKU already exists: {', '.join(sorted(taken))}"},
                        status=status.HTTP_400_BAD_REQUEST)

    duplicates = sorted({code for code in barcodes if barcodes.count(code) > 1})
    if duplicates:
        return Response({'error': f"Duplicate barcodes in request: {', '.join(duplicates)}"},
                        status=status.HTTP_400_BAD_REQUEST)
    taken = list(Product.objects.filter(barcode__in=barcodes).values_list('barcode', flat=True))
    if taken:
        return Response({'error': f"Barcode already exists: {', '.join(sorted(taken))}"},
                        status=status.HTTP_400_BAD_REQUEST)

    created = []
    with transaction.atomic():
        for variant, sku, barcode in zip(data['variants'], skus, barcodes):
            product = Product.objects.create(
                name=variant_name(data['name'], variant['attributes']),
                description=data.get('description', ''),
                sku=sku,
                barcode=barcode,
                category=data.get('category_id'),
                purchase_price=variant['purchase_price'],
                sale_price=variant['sale_price'],
                unit=data.get('unit') or 'pièce',
                stock_min=variant.get('stock_min', data.get('stock_min', 0)),
                stock_current=variant.get('stock_current', 0),
                has_variants=True,
            )
            PriceHistory.objects.create(
                product=product,
                purchase_price=product.purchase_price,
                sale_price=product.sale_price,
                reason=PRICE_REASON_CREATED,
                user=request.user,
            )
            register_sku_components(variant['attributes'])
            created.append(product)

    logger.info(f"Created {len(created)} variant products for '{data['name']}'")
    for product in created:
        create_audit_log(request=request, action='create', model_name='Product',
                         object_id=product.id, object_name=product.name, object_reference=product.sku)
    return Response(ProductSerializer(created, many=True).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def product_label(request, pk):
    """Render a printable label for a product"""
    product = get_object_or_404(Product, pk=pk)
    label_format = request.query_params.get('size', DEFAULT_LABEL_FORMAT)
    if label_format not in LABEL_FORMATS:
        return Response({'error': f"Unknown label format. Use one of: {', '.join(LABEL_FORMATS)}"},
                        status=status.HTTP_400_BAD_REQUEST)

    show_price = request.query_params.get('show_price', 'true').lower() != 'false'
    currency = Company.get_solo().default_currency_code or settings.DEFAULT_CURRENCY_CODE
    image = generate_label_image(
        product_name=product.name,
        barcode_value=product.barcode or product.sku,
        sku=product.sku,
        price=product.sale_price if show_price else None,
        currency=currency,
        label_format=label_format,
    )
    return Response({'image': image, 'format': label_format, 'product': product.id})
