from decimal import Decimal

from rest_framework import serializers
from .models import Client, Supplier, SupplierContact, SupplierProduct


class ClientSerializer(serializers.ModelSerializer):
    display_name = serializers.CharField(read_only=True)
    sales_count = serializers.IntegerField(read_only=True, default=0)

    class Meta:
        model = Client
        fields = [
            'id', 'type', 'first_name', 'last_name', 'company_name', 'display_name',
            'email', 'phone', 'address', 'city', 'postal_code', 'country', 'vat_number',
            'sales_count', 'created_at', 'updated_at'
        ]

    def validate(self, attrs):
        client_type = attrs.get('type', getattr(self.instance, 'type', Client.TYPE_INDIVIDUAL))
        company_name = attrs.get('company_name', getattr(self.instance, 'company_name', ''))
        first_name = attrs.get('first_name', getattr(self.instance, 'first_name', ''))
        last_name = attrs.get('last_name', getattr(self.instance, 'last_name', ''))
        if client_type == Client.TYPE_COMPANY and not company_name:
            raise serializers.ValidationError({'company_name': 'Company name is required for company clients'})
        if client_type == Client.TYPE_INDIVIDUAL and not (first_name or last_name):
            raise serializers.ValidationError({'last_name': 'A first or last name is required'})
        return attrs


class SupplierContactSerializer(serializers.ModelSerializer):
    class Meta:
        model = SupplierContact
        fields = ['id', 'name', 'role', 'email', 'phone', 'created_at']


class SupplierProductSerializer(serializers.ModelSerializer):
    supplier_name = serializers.CharField(source='supplier.name', read_only=True)
    product_name = serializers.CharField(source='product.name', read_only=True)
    product_sku = serializers.CharField(source='product.sku', read_only=True)
    price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0'))

    class Meta:
        model = SupplierProduct
        fields = ['id', 'supplier', 'supplier_name', 'product', 'product_name', 'product_sku',
                  'supplier_sku', 'price', 'created_at', 'updated_at']
        read_only_fields = ['supplier']
        validators = []


class SupplierSerializer(serializers.ModelSerializer):
    contacts = SupplierContactSerializer(many=True, required=False)
    discount = serializers.DecimalField(max_digits=5, decimal_places=2, min_value=Decimal('0'),
                                        max_value=Decimal('100'), required=False)

    class Meta:
        model = Supplier
        fields = [
            'id', 'name', 'contact_person', 'email', 'phone', 'address', 'city', 'postal_code',
            'country', 'vat_number', 'payment_terms', 'discount', 'contacts', 'created_at', 'updated_at'
        ]

    def create(self, validated_data):
        contacts = validated_data.pop('contacts', [])
        supplier = Supplier.objects.create(**validated_data)
        for contact in contacts:
            SupplierContact.objects.create(supplier=supplier, **contact)
        return supplier

    def update(self, instance, validated_data):
        contacts = validated_data.pop('contacts', None)
        instance = super().update(instance, validated_data)
        if contacts is not None:
            # Contacts are replaced as a whole
            instance.contacts.all().delete()
            for contact in contacts:
                SupplierContact.objects.create(supplier=instance, **contact)
        return instance
