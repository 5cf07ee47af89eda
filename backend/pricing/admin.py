from django.contrib import admin
from .models import Currency, ExchangeRate


@admin.register(Currency)
class CurrencyAdmin(admin.ModelAdmin):
    list_display = ['code', 'name', 'symbol', 'unit', 'is_active']
    list_filter = ['is_active']
    search_fields = ['code', 'name']


@admin.register(ExchangeRate)
class ExchangeRateAdmin(admin.ModelAdmin):
    list_display = ['currency', 'rate_to_base', 'rate_date', 'source', 'created_at']
    list_filter = ['source', 'rate_date']
    search_fields = ['currency__code']
