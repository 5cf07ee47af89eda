from rest_framework import serializers
from backend.catalog.models import Product
from backend.catalog.serializers import ProductLookupSerializer
from .models import StockMovement, Inventory, InventoryItem
from .services import DAMAGE_TYPES


class StockMovementSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='product.name', read_only=True)
    product_sku = serializers.CharField(source='product.sku', read_only=True)
    supplier_name = serializers.CharField(source='supplier.name', read_only=True, default=None)
    user_name = serializers.CharField(source='user.username', read_only=True, default=None)
    type_display = serializers.CharField(source='get_type_display', read_only=True)

    class Meta:
        model = StockMovement
        fields = ['id', 'product', 'product_name', 'product_sku', 'type', 'type_display', 'quantity',
                  'stock_before', 'stock_after', 'unit_price', 'total_value', 'reference', 'reference_id',
                  'reason', 'supplier', 'supplier_name', 'user', 'user_name', 'created_at']


class DamageSerializer(serializers.Serializer):
    product = serializers.PrimaryKeyRelatedField(queryset=Product.objects.all())
    type = serializers.ChoiceField(choices=[(t, t) for t in DAMAGE_TYPES])
    quantity = serializers.IntegerField()
    reason = serializers.CharField(max_length=255)

    def validate_quantity(self, value):
        if value == 0:
            raise serializers.ValidationError('Quantity cannot be zero')
        return value


class InventoryItemSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='product.name', read_only=True)
    product_sku = serializers.CharField(source='product.sku', read_only=True)
    unit = serializers.CharField(source='product.unit', read_only=True)

    class Meta:
        model = InventoryItem
        fields = ['id', 'product', 'product_name', 'product_sku', 'unit', 'theoretical_qty', 'counted_qty',
                  'difference', 'reason', 'created_at', 'updated_at']
        read_only_fields = ['theoretical_qty', 'difference']


class InventoryItemInputSerializer(serializers.Serializer):
    product = serializers.PrimaryKeyRelatedField(queryset=Product.objects.all())
    counted_qty = serializers.IntegerField(min_value=0)
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')


class InventoryListSerializer(serializers.ModelSerializer):
    user_name = serializers.CharField(source='user.username', read_only=True, default=None)
    items_count = serializers.SerializerMethodField()
    discrepancies_count = serializers.SerializerMethodField()

    class Meta:
        model = Inventory
        fields = ['id', 'reference', 'status', 'start_date', 'end_date', 'validated_at', 'notes',
                  'user', 'user_name', 'items_count', 'discrepancies_count', 'created_at', 'updated_at']

    def get_items_count(self, obj):
        annotated = getattr(obj, 'items_count', None)
        if annotated is not None:
            return annotated
        return obj.items.count()

    def get_discrepancies_count(self, obj):
        annotated = getattr(obj, 'discrepancies_count', None)
        if annotated is not None:
            return annotated
        return obj.items.exclude(difference=0).count()


class InventorySerializer(InventoryListSerializer):
    items = InventoryItemSerializer(many=True, read_only=True)
    validated_by_name = serializers.CharField(source='validated_by.username', read_only=True, default=None)

    class Meta(InventoryListSerializer.Meta):
        fields = InventoryListSerializer.Meta.fields + ['validated_by', 'validated_by_name', 'items']


class ProductStockHistorySerializer(serializers.Serializer):
    product = ProductLookupSerializer()
    movements = StockMovementSerializer(many=True)
