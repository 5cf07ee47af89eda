from decimal import Decimal

from rest_framework import serializers
from .models import Currency


class CurrencySerializer(serializers.ModelSerializer):
    class Meta:
        model = Currency
        fields = ['code', 'name', 'symbol', 'unit', 'is_active']


class DefaultCurrencySerializer(serializers.Serializer):
    code = serializers.CharField(max_length=3)


class ConvertQuerySerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=18, decimal_places=6, min_value=Decimal('0'))
    to = serializers.CharField(max_length=3, required=False, allow_blank=True, default='')
