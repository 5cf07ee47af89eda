from django.conf import settings
from django.db import models
from backend.catalog.models import Product
from backend.parties.models import Supplier


class StockMovement(models.Model):
    """Audit trail of every change to a product's stock level"""
    TYPE_ENTRY = 'ENTRY'
    TYPE_EXIT = 'EXIT'
    TYPE_SALE = 'SALE'
    TYPE_INVENTORY = 'INVENTORY'
    TYPE_ADJUSTMENT = 'ADJUSTMENT'
    TYPE_RETURN = 'RETURN'
    TYPE_LOSS = 'LOSS'
    TYPE_THEFT = 'THEFT'
    TYPE_DAMAGE = 'DAMAGE'
    TYPE_REFUND = 'REFUND'

    TYPE_CHOICES = [
        (TYPE_ENTRY, 'Entry'),
        (TYPE_EXIT, 'Exit'),
        (TYPE_SALE, 'Sale'),
        (TYPE_INVENTORY, 'Inventory'),
        (TYPE_ADJUSTMENT, 'Adjustment'),
        (TYPE_RETURN, 'Return'),
        (TYPE_LOSS, 'Loss'),
        (TYPE_THEFT, 'Theft'),
        (TYPE_DAMAGE, 'Damage'),
        (TYPE_REFUND, 'Refund'),
    ]

    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name='stock_movements')
    type = models.CharField(max_length=20, choices=TYPE_CHOICES)
    quantity = models.IntegerField(help_text="Signed quantity: positive adds stock, negative removes it")
    stock_before = models.IntegerField(default=0)
    stock_after = models.IntegerField(default=0)
    unit_price = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    total_value = models.DecimalField(max_digits=14, decimal_places=2, null=True, blank=True)
    reference = models.CharField(max_length=100, blank=True)
    reference_id = models.CharField(max_length=100, blank=True)
    reason = models.CharField(max_length=255, blank=True)
    supplier = models.ForeignKey(Supplier, on_delete=models.SET_NULL, null=True, blank=True, related_name='stock_movements')
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='stock_movements')
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.type} {self.quantity:+d} {self.product.sku}"

    class Meta:
        db_table = 'stock_movements'
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['product', '-created_at'], name='idx_movement_product_date'),
            models.Index(fields=['type'], name='idx_movement_type'),
            models.Index(fields=['reference'], name='idx_movement_reference'),
        ]


class Inventory(models.Model):
    """A physical stock count session"""
    STATUS_DRAFT = 'DRAFT'
    STATUS_IN_PROGRESS = 'IN_PROGRESS'
    STATUS_COMPLETED = 'COMPLETED'
    STATUS_VALIDATED = 'VALIDATED'

    STATUS_CHOICES = [
        (STATUS_DRAFT, 'Draft'),
        (STATUS_IN_PROGRESS, 'In progress'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_VALIDATED, 'Validated'),
    ]

    # Allowed forward transitions of the counting workflow
    TRANSITIONS = {
        STATUS_DRAFT: STATUS_IN_PROGRESS,
        STATUS_IN_PROGRESS: STATUS_COMPLETED,
        STATUS_COMPLETED: STATUS_VALIDATED,
    }
    EDITABLE_STATUSES = (STATUS_DRAFT, STATUS_IN_PROGRESS)

    reference = models.CharField(max_length=50, unique=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_DRAFT)
    start_date = models.DateTimeField(null=True, blank=True)
    end_date = models.DateTimeField(null=True, blank=True)
    validated_at = models.DateTimeField(null=True, blank=True)
    notes = models.TextField(blank=True)
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, related_name='inventories')
    validated_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='validated_inventories')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.reference

    @property
    def is_editable(self):
        return self.status in self.EDITABLE_STATUSES

    def can_transition_to(self, new_status):
        return self.TRANSITIONS.get(self.status) == new_status

    class Meta:
        db_table = 'inventories'
        ordering = ['-created_at']
        verbose_name_plural = 'inventories'


class InventoryItem(models.Model):
    """Counted quantity of one product within an inventory session"""
    inventory = models.ForeignKey(Inventory, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name='inventory_items')
    theoretical_qty = models.IntegerField()
    counted_qty = models.IntegerField()
    difference = models.IntegerField()
    reason = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.inventory.reference} - {self.product.sku}"

    class Meta:
        db_table = 'inventory_items'
        unique_together = [['inventory', 'product']]
        ordering = ['product__name']
