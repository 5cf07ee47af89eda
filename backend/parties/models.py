from django.db import models
from decimal import Decimal
from backend.catalog.models import Product


class Client(models.Model):
    """Customers, either individuals or companies"""
    TYPE_INDIVIDUAL = 'INDIVIDUAL'
    TYPE_COMPANY = 'COMPANY'

    TYPE_CHOICES = [
        (TYPE_INDIVIDUAL, 'Individual'),
        (TYPE_COMPANY, 'Company'),
    ]

    type = models.CharField(max_length=20, choices=TYPE_CHOICES, default=TYPE_INDIVIDUAL)
    first_name = models.CharField(max_length=100, blank=True)
    last_name = models.CharField(max_length=100, blank=True)
    company_name = models.CharField(max_length=200, blank=True)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=30, blank=True)
    address = models.TextField(blank=True)
    city = models.CharField(max_length=100, blank=True)
    postal_code = models.CharField(max_length=20, blank=True)
    country = models.CharField(max_length=100, default='Tunisie')
    vat_number = models.CharField(max_length=50, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    @property
    def display_name(self):
        if self.type == self.TYPE_COMPANY and self.company_name:
            return self.company_name
        full_name = f"{self.first_name} {self.last_name}".strip()
        return full_name or self.company_name or f"Client #{self.pk}"

    def __str__(self):
        return self.display_name

    class Meta:
        db_table = 'clients'
        ordering = ['-created_at']


class Supplier(models.Model):
    """Suppliers"""
    name = models.CharField(max_length=200)
    contact_person = models.CharField(max_length=200, blank=True)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=30, blank=True)
    address = models.TextField(blank=True)
    city = models.CharField(max_length=100, blank=True)
    postal_code = models.CharField(max_length=20, blank=True)
    country = models.CharField(max_length=100, default='Tunisie')
    vat_number = models.CharField(max_length=50, blank=True)
    payment_terms = models.CharField(max_length=100, blank=True, help_text="e.g. 30 days end of month")
    discount = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal('0.00'), help_text="Negotiated discount in percent")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'suppliers'
        ordering = ['name']


class SupplierContact(models.Model):
    """Additional contact people at a supplier"""
    supplier = models.ForeignKey(Supplier, on_delete=models.CASCADE, related_name='contacts')
    name = models.CharField(max_length=200)
    role = models.CharField(max_length=100, blank=True)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=30, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.name} ({self.supplier.name})"

    class Meta:
        db_table = 'supplier_contacts'
        ordering = ['name']


class SupplierProduct(models.Model):
    """A product as offered by a supplier, with its reference and price"""
    supplier = models.ForeignKey(Supplier, on_delete=models.CASCADE, related_name='products')
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name='supplier_offers')
    supplier_sku = models.CharField(max_length=100, blank=True)
    price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.supplier.name} - {self.product.name}"

    class Meta:
        db_table = 'supplier_products'
        unique_together = [['supplier', 'product']]
