from decimal import Decimal

from rest_framework import serializers
from backend.catalog.models import Product
from backend.parties.models import Client
from .models import CashRegister, Sale, SaleItem, SalePayment, SaleRefund, Quote, QuoteItem


class SaleItemSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='product.name', read_only=True)
    product_sku = serializers.CharField(source='product.sku', read_only=True)

    class Meta:
        model = SaleItem
        fields = ['id', 'product', 'product_name', 'product_sku', 'quantity', 'unit_price',
                  'purchase_price', 'discount', 'total']


class SalePaymentSerializer(serializers.ModelSerializer):
    user_name = serializers.CharField(source='user.username', read_only=True, default=None)

    class Meta:
        model = SalePayment
        fields = ['id', 'amount', 'method', 'notes', 'user', 'user_name', 'created_at']


class SaleRefundSerializer(serializers.ModelSerializer):
    user_name = serializers.CharField(source='user.username', read_only=True, default=None)

    class Meta:
        model = SaleRefund
        fields = ['id', 'sale', 'avoir_number', 'amount', 'reason', 'refunded_items', 'user',
                  'user_name', 'created_at']


class SaleListSerializer(serializers.ModelSerializer):
    number = serializers.CharField(read_only=True)
    client_name = serializers.CharField(source='client.display_name', read_only=True, default=None)
    user_name = serializers.CharField(source='user.username', read_only=True, default=None)
    amount_due = serializers.DecimalField(max_digits=14, decimal_places=2, read_only=True)

    class Meta:
        model = Sale
        fields = ['id', 'number', 'ticket_number', 'invoice_number', 'type', 'status', 'client',
                  'client_name', 'user', 'user_name', 'cash_register', 'subtotal', 'discount', 'tax',
                  'total', 'margin', 'currency_code', 'payment_method', 'cash_amount', 'card_amount',
                  'amount_paid', 'amount_due', 'due_date', 'notes', 'created_at', 'updated_at']


class SaleSerializer(SaleListSerializer):
    items = SaleItemSerializer(many=True, read_only=True)
    payments = SalePaymentSerializer(many=True, read_only=True)
    refunds = SaleRefundSerializer(many=True, read_only=True)
    quote_number = serializers.SerializerMethodField()

    class Meta(SaleListSerializer.Meta):
        fields = SaleListSerializer.Meta.fields + ['items', 'payments', 'refunds', 'quote_number']

    def get_quote_number(self, obj):
        quote = Quote.objects.filter(converted_sale=obj).only('quote_number').first()
        return quote.quote_number if quote else None


class SaleItemInputSerializer(serializers.Serializer):
    product = serializers.PrimaryKeyRelatedField(queryset=Product.objects.all())
    quantity = serializers.IntegerField(min_value=1)
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0'),
                                          required=False, allow_null=True, default=None)
    discount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0'),
                                        required=False, default=Decimal('0.00'))


class SaleCreateSerializer(serializers.Serializer):
    type = serializers.ChoiceField(choices=Sale.TYPE_CHOICES, default=Sale.TYPE_TICKET)
    client = serializers.PrimaryKeyRelatedField(queryset=Client.objects.all(), required=False, allow_null=True,
                                                default=None)
    items = SaleItemInputSerializer(many=True, allow_empty=False)
    discount = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=Decimal('0'),
                                        required=False, default=Decimal('0.00'))
    payment_method = serializers.ChoiceField(choices=Sale.PAYMENT_METHOD_CHOICES, default=Sale.PAYMENT_CASH)
    cash_amount = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=Decimal('0'),
                                           required=False, allow_null=True, default=None)
    card_amount = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=Decimal('0'),
                                           required=False, allow_null=True, default=None)
    due_date = serializers.DateField(required=False, allow_null=True, default=None)
    notes = serializers.CharField(required=False, allow_blank=True, default='')
    currency_code = serializers.CharField(max_length=3, required=False, allow_blank=True, default='')
    cash_register = serializers.PrimaryKeyRelatedField(
        queryset=CashRegister.objects.filter(status=CashRegister.STATUS_OPEN),
        required=False, allow_null=True, default=None,
    )

    def validate_currency_code(self, value):
        return value.upper() or None

    def validate(self, attrs):
        if attrs['payment_method'] == Sale.PAYMENT_CREDIT and attrs.get('client') is None:
            raise serializers.ValidationError({'client': 'A client is required for a credit sale'})
        return attrs


class PaymentSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=Decimal('0.01'))
    method = serializers.ChoiceField(
        choices=[c for c in Sale.PAYMENT_METHOD_CHOICES if c[0] != Sale.PAYMENT_CREDIT],
        default=Sale.PAYMENT_CASH,
    )
    notes = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')


class RefundLineSerializer(serializers.Serializer):
    sale_item = serializers.IntegerField()
    quantity = serializers.IntegerField(min_value=1)


class RefundSerializer(serializers.Serializer):
    items = RefundLineSerializer(many=True, allow_empty=False)
    reason = serializers.CharField(required=False, allow_blank=True, default='')


class CashRegisterSerializer(serializers.ModelSerializer):
    user_name = serializers.CharField(source='user.username', read_only=True)

    class Meta:
        model = CashRegister
        fields = ['id', 'user', 'user_name', 'open_date', 'close_date', 'initial_amount', 'expected_amount',
                  'actual_amount', 'difference', 'status', 'notes']
        read_only_fields = fields


class CashRegisterDetailSerializer(CashRegisterSerializer):
    sales = SaleListSerializer(many=True, read_only=True)

    class Meta(CashRegisterSerializer.Meta):
        fields = CashRegisterSerializer.Meta.fields + ['sales']
        read_only_fields = fields


class CashRegisterOpenSerializer(serializers.Serializer):
    initial_amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0'),
                                              default=Decimal('0.00'))


class CashRegisterCloseSerializer(serializers.Serializer):
    actual_amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0'))
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class QuoteItemSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='product.name', read_only=True)
    product_sku = serializers.CharField(source='product.sku', read_only=True)

    class Meta:
        model = QuoteItem
        fields = ['id', 'product', 'product_name', 'product_sku', 'quantity', 'unit_price', 'discount', 'total']


class QuoteSerializer(serializers.ModelSerializer):
    client_name = serializers.CharField(source='client.display_name', read_only=True, default=None)
    user_name = serializers.CharField(source='user.username', read_only=True, default=None)
    converted_sale_number = serializers.CharField(source='converted_sale.number', read_only=True, default=None)
    items = QuoteItemSerializer(many=True, read_only=True)

    class Meta:
        model = Quote
        fields = ['id', 'quote_number', 'client', 'client_name', 'user', 'user_name', 'status', 'subtotal',
                  'discount', 'tax', 'total', 'currency_code', 'valid_until', 'notes', 'converted_sale',
                  'converted_sale_number', 'items', 'created_at', 'updated_at']


class QuoteItemInputSerializer(serializers.Serializer):
    product = serializers.PrimaryKeyRelatedField(queryset=Product.objects.all())
    quantity = serializers.IntegerField(min_value=1)
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0'),
                                          required=False, allow_null=True, default=None)
    discount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0'),
                                        required=False, default=Decimal('0.00'))


class QuoteCreateSerializer(serializers.Serializer):
    client = serializers.PrimaryKeyRelatedField(queryset=Client.objects.all(), required=False, allow_null=True,
                                                default=None)
    items = QuoteItemInputSerializer(many=True, allow_empty=False)
    discount = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=Decimal('0'),
                                        required=False, default=Decimal('0.00'))
    valid_until = serializers.DateField(required=False, allow_null=True, default=None)
    notes = serializers.CharField(required=False, allow_blank=True, default='')
    currency_code = serializers.CharField(max_length=3, required=False, allow_blank=True, default='')

    def validate_currency_code(self, value):
        return value.upper() or None


class QuoteStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Quote.STATUS_CHOICES)


class ConvertLineSerializer(serializers.Serializer):
    quote_item = serializers.IntegerField()
    quantity = serializers.IntegerField(min_value=1)


class QuoteConvertSerializer(serializers.Serializer):
    quantities = ConvertLineSerializer(many=True, required=False, default=list)
    payment_method = serializers.ChoiceField(choices=Sale.PAYMENT_METHOD_CHOICES, default=Sale.PAYMENT_CREDIT)


class CreditSaleSerializer(SaleListSerializer):
    days_overdue = serializers.IntegerField(read_only=True)

    class Meta(SaleListSerializer.Meta):
        fields = SaleListSerializer.Meta.fields + ['days_overdue']
