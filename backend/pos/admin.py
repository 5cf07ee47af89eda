from django.contrib import admin
from .models import CashRegister, Sale, SaleItem, SalePayment, SaleRefund, Quote, QuoteItem


@admin.register(CashRegister)
class CashRegisterAdmin(admin.ModelAdmin):
    list_display = ['id', 'user', 'status', 'initial_amount', 'expected_amount', 'actual_amount', 'difference', 'open_date', 'close_date']
    list_filter = ['status', 'open_date']
    ordering = ['-open_date']
    readonly_fields = ['open_date', 'close_date', 'expected_amount', 'difference']


class SaleItemInline(admin.TabularInline):
    model = SaleItem
    extra = 0
    readonly_fields = ['product', 'quantity', 'unit_price', 'purchase_price', 'discount', 'total']


class SalePaymentInline(admin.TabularInline):
    model = SalePayment
    extra = 0
    readonly_fields = ['amount', 'method', 'notes', 'user', 'created_at']


@admin.register(Sale)
class SaleAdmin(admin.ModelAdmin):
    list_display = ['number', 'type', 'client', 'status', 'total', 'amount_paid', 'payment_method', 'user', 'created_at']
    list_filter = ['type', 'status', 'payment_method', 'created_at']
    search_fields = ['ticket_number', 'invoice_number']
    ordering = ['-created_at']
    inlines = [SaleItemInline, SalePaymentInline]
    readonly_fields = ['created_at', 'updated_at']


@admin.register(SaleRefund)
class SaleRefundAdmin(admin.ModelAdmin):
    list_display = ['avoir_number', 'sale', 'amount', 'user', 'created_at']
    search_fields = ['avoir_number', 'sale__ticket_number', 'sale__invoice_number']
    ordering = ['-created_at']
    readonly_fields = ['refunded_items', 'created_at']


class QuoteItemInline(admin.TabularInline):
    model = QuoteItem
    extra = 0


@admin.register(Quote)
class QuoteAdmin(admin.ModelAdmin):
    list_display = ['quote_number', 'client', 'status', 'total', 'valid_until', 'user', 'created_at']
    list_filter = ['status', 'created_at']
    search_fields = ['quote_number']
    ordering = ['-created_at']
    inlines = [QuoteItemInline]
    readonly_fields = ['converted_sale', 'created_at', 'updated_at']
