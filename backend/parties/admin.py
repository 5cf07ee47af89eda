from django.contrib import admin
from .models import Client, Supplier, SupplierContact, SupplierProduct


@admin.register(Client)
class ClientAdmin(admin.ModelAdmin):
    list_display = ['__str__', 'type', 'phone', 'email', 'city', 'created_at']
    list_filter = ['type', 'city']
    search_fields = ['first_name', 'last_name', 'company_name', 'phone', 'email']


class SupplierContactInline(admin.TabularInline):
    model = SupplierContact
    extra = 0


class SupplierProductInline(admin.TabularInline):
    model = SupplierProduct
    extra = 0
    autocomplete_fields = ['product']


@admin.register(Supplier)
class SupplierAdmin(admin.ModelAdmin):
    list_display = ['name', 'contact_person', 'phone', 'email', 'payment_terms', 'discount']
    search_fields = ['name', 'contact_person', 'phone', 'email']
    inlines = [SupplierContactInline, SupplierProductInline]
