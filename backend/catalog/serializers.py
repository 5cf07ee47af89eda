from decimal import Decimal

from rest_framework import serializers
from .models import Category, Product, PriceHistory, SkuComponent
from .utils import PRICE_REASON_CREATED, PRICE_REASON_UPDATED


class CategorySerializer(serializers.ModelSerializer):
    parent_name = serializers.CharField(source='parent.name', read_only=True, default=None)
    product_count = serializers.SerializerMethodField()
    children_count = serializers.SerializerMethodField()

    class Meta:
        model = Category
        fields = ['id', 'name', 'parent', 'parent_name', 'description', 'product_count',
                  'children_count', 'created_at', 'updated_at']

    def get_product_count(self, obj):
        annotated = getattr(obj, 'product_count', None)
        if annotated is not None:
            return annotated
        return obj.products.count()

    def get_children_count(self, obj):
        return obj.children.count()

    def validate_parent(self, value):
        if value is None or self.instance is None:
            return value
        # Walk up the tree to refuse cycles
        node = value
        while node is not None:
            if node.pk == self.instance.pk:
                raise serializers.ValidationError('A category cannot be its own ancestor')
            node = node.parent
        return value


class PriceHistorySerializer(serializers.ModelSerializer):
    user_name = serializers.CharField(source='user.username', read_only=True, default=None)

    class Meta:
        model = PriceHistory
        fields = ['id', 'purchase_price', 'sale_price', 'reason', 'user', 'user_name', 'created_at']


class SkuComponentSerializer(serializers.ModelSerializer):
    class Meta:
        model = SkuComponent
        fields = ['id', 'type', 'value', 'created_at']


class ProductSerializer(serializers.ModelSerializer):
    # For reading: return nested category
    category = CategorySerializer(read_only=True)

    # For writing: accept integer IDs
    category_id = serializers.PrimaryKeyRelatedField(
        queryset=Category.objects.all(),
        source='category',
        write_only=True,
        required=False,
        allow_null=True
    )
    category_name = serializers.CharField(source='category.name', read_only=True, default=None)
    price_change_reason = serializers.CharField(write_only=True, required=False, allow_blank=True)
    purchase_price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0'), required=False)
    sale_price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0'), required=False)
    stock_min = serializers.IntegerField(min_value=0, required=False)
    stock_current = serializers.IntegerField(min_value=0, required=False)
    is_low_stock = serializers.BooleanField(read_only=True)
    margin = serializers.SerializerMethodField()

    class Meta:
        model = Product
        fields = ['id', 'name', 'description', 'sku', 'barcode', 'category', 'category_id', 'category_name',
                  'purchase_price', 'sale_price', 'margin', 'unit', 'stock_min', 'stock_current', 'is_low_stock',
                  'has_variants', 'is_active', 'price_change_reason', 'created_at', 'updated_at']
        read_only_fields = ['created_at', 'updated_at']

    def get_margin(self, obj):
        return obj.sale_price - obj.purchase_price

    def _user(self):
        request = self.context.get('request')
        if request and request.user and request.user.is_authenticated:
            return request.user
        return None

    def create(self, validated_data):
        reason = validated_data.pop('price_change_reason', None)
        product = super().create(validated_data)
        PriceHistory.objects.create(
            product=product,
            purchase_price=product.purchase_price,
            sale_price=product.sale_price,
            reason=reason or PRICE_REASON_CREATED,
            user=self._user(),
        )
        return product

    def update(self, instance, validated_data):
        reason = validated_data.pop('price_change_reason', None)
        # Stock only changes through stock movements
        validated_data.pop('stock_current', None)
        old_purchase_price = instance.purchase_price
        old_sale_price = instance.sale_price

        product = super().update(instance, validated_data)

        if product.purchase_price != old_purchase_price or product.sale_price != old_sale_price:
            PriceHistory.objects.create(
                product=product,
                purchase_price=product.purchase_price,
                sale_price=product.sale_price,
                reason=reason or PRICE_REASON_UPDATED,
                user=self._user(),
            )
        return product


class ProductDetailSerializer(ProductSerializer):
    price_history = serializers.SerializerMethodField()
    supplier_products = serializers.SerializerMethodField()

    class Meta(ProductSerializer.Meta):
        fields = ProductSerializer.Meta.fields + ['price_history', 'supplier_products']

    def get_price_history(self, obj):
        return PriceHistorySerializer(obj.price_history.select_related('user')[:10], many=True).data

    def get_supplier_products(self, obj):
        from backend.parties.serializers import SupplierProductSerializer
        offers = obj.supplier_offers.select_related('supplier')
        return SupplierProductSerializer(offers, many=True).data


class ProductLookupSerializer(serializers.ModelSerializer):
    """Compact product representation embedded in other payloads"""
    class Meta:
        model = Product
        fields = ['id', 'name', 'sku', 'barcode', 'unit', 'purchase_price', 'sale_price',
                  'stock_current', 'stock_min']


class VariantSerializer(serializers.Serializer):
    attributes = serializers.DictField(child=serializers.CharField(), allow_empty=False)
    sku = serializers.CharField(max_length=100, required=False, allow_blank=True)
    barcode = serializers.CharField(max_length=100, required=False, allow_blank=True)
    purchase_price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0'))
    sale_price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0'))
    stock_current = serializers.IntegerField(min_value=0, required=False, default=0)
    stock_min = serializers.IntegerField(min_value=0, required=False)


class ProductWithVariantsSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=200)
    description = serializers.CharField(required=False, allow_blank=True, default='')
    category_id = serializers.PrimaryKeyRelatedField(
        queryset=Category.objects.all(), required=False, allow_null=True
    )
    unit = serializers.CharField(max_length=30, required=False, default='pièce')
    stock_min = serializers.IntegerField(min_value=0, required=False, default=0)
    variants = VariantSerializer(many=True, allow_empty=False)


class GenerateSkuSerializer(serializers.Serializer):
    name = serializers.CharField()
    components = serializers.ListField(child=serializers.CharField(allow_blank=True), required=False, default=list)
