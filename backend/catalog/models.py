from django.conf import settings
from django.db import models
from decimal import Decimal


class Category(models.Model):
    """Product categories"""
    name = models.CharField(max_length=200, unique=True)
    parent = models.ForeignKey('self', on_delete=models.SET_NULL, null=True, blank=True, related_name='children')
    description = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'categories'
        verbose_name_plural = 'categories'
        ordering = ['name']


class Product(models.Model):
    """Product master, one row per sellable article (variants are flattened)"""
    name = models.CharField(max_length=255, db_index=True)
    description = models.TextField(blank=True)
    sku = models.CharField(max_length=100, unique=True)
    barcode = models.CharField(max_length=100, unique=True, blank=True, null=True)
    category = models.ForeignKey(Category, on_delete=models.SET_NULL, null=True, blank=True, related_name='products')
    purchase_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    sale_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    unit = models.CharField(max_length=30, default='pièce')
    stock_min = models.IntegerField(default=0)
    stock_current = models.IntegerField(default=0)
    has_variants = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.name} ({self.sku})"

    @property
    def is_low_stock(self):
        return self.stock_current <= self.stock_min

    def save(self, *args, **kwargs):
        if not self.barcode:
            self.barcode = self.sku
        super().save(*args, **kwargs)

    class Meta:
        db_table = 'products'
        ordering = ['name']
        indexes = [
            models.Index(fields=['is_active', 'stock_current'], name='idx_product_active_stock'),
        ]


class PriceHistory(models.Model):
    """Record of product price changes"""
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name='price_history')
    purchase_price = models.DecimalField(max_digits=12, decimal_places=2)
    sale_price = models.DecimalField(max_digits=12, decimal_places=2)
    reason = models.CharField(max_length=255, blank=True)
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='price_changes')
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.product.sku} @ {self.created_at:%Y-%m-%d}"

    class Meta:
        db_table = 'price_history'
        ordering = ['-created_at', '-id']


class SkuComponent(models.Model):
    """Known SKU building blocks (e.g. colors, sizes) offered for autocompletion"""
    type = models.CharField(max_length=50)
    value = models.CharField(max_length=100)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.type}: {self.value}"

    class Meta:
        db_table = 'sku_components'
        unique_together = [['type', 'value']]
        ordering = ['type', 'value']
