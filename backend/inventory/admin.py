from django.contrib import admin
from .models import StockMovement, Inventory, InventoryItem


@admin.register(StockMovement)
class StockMovementAdmin(admin.ModelAdmin):
    list_display = ['product', 'type', 'quantity', 'stock_before', 'stock_after', 'reference', 'user', 'created_at']
    list_filter = ['type', 'created_at']
    search_fields = ['product__name', 'product__sku', 'reference']
    readonly_fields = [f.name for f in StockMovement._meta.fields]


class InventoryItemInline(admin.TabularInline):
    model = InventoryItem
    extra = 0
    readonly_fields = ['theoretical_qty', 'difference']


@admin.register(Inventory)
class InventoryAdmin(admin.ModelAdmin):
    list_display = ['reference', 'status', 'start_date', 'end_date', 'user', 'validated_by', 'created_at']
    list_filter = ['status']
    search_fields = ['reference']
    readonly_fields = ['status', 'validated_at', 'validated_by']
    inlines = [InventoryItemInline]
