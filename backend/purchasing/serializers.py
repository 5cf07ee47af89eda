from decimal import Decimal

from rest_framework import serializers
from backend.catalog.models import Product
from backend.parties.models import Supplier
from .models import Purchase, PurchaseItem


class PurchaseItemSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='product.name', read_only=True)
    product_sku = serializers.CharField(source='product.sku', read_only=True)
    remaining_qty = serializers.IntegerField(read_only=True)

    class Meta:
        model = PurchaseItem
        fields = ['id', 'product', 'product_name', 'product_sku', 'quantity', 'received_qty',
                  'remaining_qty', 'unit_price', 'total_price']
        read_only_fields = ['received_qty', 'total_price']


class PurchaseListSerializer(serializers.ModelSerializer):
    supplier_name = serializers.CharField(source='supplier.name', read_only=True)
    user_name = serializers.CharField(source='user.username', read_only=True, default=None)
    items_count = serializers.SerializerMethodField()

    class Meta:
        model = Purchase
        fields = ['id', 'reference', 'supplier', 'supplier_name', 'invoice_number', 'invoice_date',
                  'delivery_date', 'status', 'total_amount', 'notes', 'user', 'user_name',
                  'items_count', 'created_at', 'updated_at']

    def get_items_count(self, obj):
        return len(obj.items.all())


class PurchaseSerializer(PurchaseListSerializer):
    items = PurchaseItemSerializer(many=True, read_only=True)

    class Meta(PurchaseListSerializer.Meta):
        fields = PurchaseListSerializer.Meta.fields + ['items']


class PurchaseItemInputSerializer(serializers.Serializer):
    product = serializers.PrimaryKeyRelatedField(queryset=Product.objects.all())
    quantity = serializers.IntegerField(min_value=1)
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0'))


class PurchaseCreateSerializer(serializers.Serializer):
    supplier = serializers.PrimaryKeyRelatedField(queryset=Supplier.objects.all())
    reference = serializers.CharField(max_length=100)
    invoice_number = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')
    invoice_date = serializers.DateField(required=False, allow_null=True, default=None)
    delivery_date = serializers.DateField(required=False, allow_null=True, default=None)
    notes = serializers.CharField(required=False, allow_blank=True, default='')
    items = PurchaseItemInputSerializer(many=True, allow_empty=False)

    def validate_reference(self, value):
        if Purchase.objects.filter(reference=value).exists():
            raise serializers.ValidationError('A purchase with this reference already exists')
        return value


class PurchaseUpdateSerializer(serializers.ModelSerializer):
    status = serializers.ChoiceField(
        choices=[(Purchase.STATUS_PENDING, 'Pending'), (Purchase.STATUS_CANCELLED, 'Cancelled')],
        required=False,
    )

    class Meta:
        model = Purchase
        fields = ['invoice_number', 'invoice_date', 'delivery_date', 'status', 'notes']

    def validate_status(self, value):
        # Receipt statuses are derived from received quantities
        if self.instance and self.instance.status in (Purchase.STATUS_PARTIAL, Purchase.STATUS_RECEIVED):
            if value != self.instance.status:
                raise serializers.ValidationError('Status of a received purchase cannot be changed')
        return value


class ReceiveLineSerializer(serializers.Serializer):
    item = serializers.IntegerField()
    received_qty = serializers.IntegerField(min_value=0)


class ReceiveSerializer(serializers.Serializer):
    items = ReceiveLineSerializer(many=True, allow_empty=False)
    delivery_date = serializers.DateField(required=False, allow_null=True, default=None)
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True, default=None)
