from django.conf import settings
from django.db import models
from decimal import Decimal
from backend.catalog.models import Product
from backend.parties.models import Supplier


class Purchase(models.Model):
    """Purchase orders placed with suppliers"""
    STATUS_PENDING = 'PENDING'
    STATUS_PARTIAL = 'PARTIAL'
    STATUS_RECEIVED = 'RECEIVED'
    STATUS_CANCELLED = 'CANCELLED'

    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_PARTIAL, 'Partially received'),
        (STATUS_RECEIVED, 'Received'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]

    supplier = models.ForeignKey(Supplier, on_delete=models.PROTECT, related_name='purchases')
    reference = models.CharField(max_length=100, unique=True)
    invoice_number = models.CharField(max_length=100, blank=True)
    invoice_date = models.DateField(null=True, blank=True)
    delivery_date = models.DateField(null=True, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)
    total_amount = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    notes = models.TextField(blank=True)
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, related_name='purchases')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.reference

    def get_total(self):
        """Sum of line totals"""
        return sum((item.get_line_total() for item in self.items.all()), Decimal('0.00'))

    def compute_status(self):
        """Derive the receipt status from the received quantities of the lines"""
        items = list(self.items.all())
        if items and all(item.received_qty >= item.quantity for item in items):
            return self.STATUS_RECEIVED
        if any(item.received_qty > 0 for item in items):
            return self.STATUS_PARTIAL
        return self.STATUS_PENDING

    class Meta:
        db_table = 'purchases'
        ordering = ['-created_at']


class PurchaseItem(models.Model):
    """Purchase order lines"""
    purchase = models.ForeignKey(Purchase, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name='purchase_items')
    quantity = models.PositiveIntegerField()
    received_qty = models.PositiveIntegerField(default=0)
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    total_price = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))

    def get_line_total(self):
        return self.unit_price * self.quantity

    @property
    def remaining_qty(self):
        return max(self.quantity - self.received_qty, 0)

    def save(self, *args, **kwargs):
        self.total_price = self.get_line_total()
        super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.purchase.reference} - {self.product.name}"

    class Meta:
        db_table = 'purchase_items'
