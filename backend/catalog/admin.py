from django.contrib import admin
from .models import Category, Product, PriceHistory, SkuComponent


@admin.register(Category)
class CategoryAdmin(admin.ModelAdmin):
    list_display = ['name', 'parent', 'created_at']
    search_fields = ['name']
    list_filter = ['parent']


class PriceHistoryInline(admin.TabularInline):
    model = PriceHistory
    extra = 0
    readonly_fields = ['purchase_price', 'sale_price', 'reason', 'user', 'created_at']


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ['name', 'sku', 'barcode', 'category', 'sale_price', 'stock_current', 'stock_min', 'is_active']
    list_filter = ['is_active', 'has_variants', 'category']
    search_fields = ['name', 'sku', 'barcode']
    readonly_fields = ['stock_current', 'created_at', 'updated_at']
    inlines = [PriceHistoryInline]


@admin.register(SkuComponent)
class SkuComponentAdmin(admin.ModelAdmin):
    list_display = ['type', 'value', 'created_at']
    list_filter = ['type']
    search_fields = ['value']
