from django.contrib import admin
from .models import Purchase, PurchaseItem


class PurchaseItemInline(admin.TabularInline):
    model = PurchaseItem
    extra = 0
    readonly_fields = ['received_qty', 'total_price']


@admin.register(Purchase)
class PurchaseAdmin(admin.ModelAdmin):
    list_display = ['reference', 'supplier', 'status', 'total_amount', 'invoice_number', 'created_at']
    list_filter = ['status', 'supplier', 'created_at']
    search_fields = ['reference', 'invoice_number', 'supplier__name']
    readonly_fields = ['total_amount', 'status']
    inlines = [PurchaseItemInline]
