"""
Stock and inventory-count operations.

Every change to Product.stock_current goes through StockService so that the stock level
and the StockMovement trail are written in the same transaction.
"""
import logging

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from backend.catalog.models import Product
from backend.core.cache_utils import invalidate_dashboard_cache
from backend.core.utils import generate_reference
from .models import StockMovement, Inventory, InventoryItem

logger = logging.getLogger(__name__)

DAMAGE_TYPES = (StockMovement.TYPE_DAMAGE, StockMovement.TYPE_LOSS, StockMovement.TYPE_THEFT)
INVENTORY_ADJUSTMENT_REASON = 'Ajustement inventaire'


class StockService:
    """All stock level changes go through this service"""

    @staticmethod
    @transaction.atomic
    def apply_movement(product, quantity, movement_type, user=None, reference='', reference_id='',
                       reason='', unit_price=None, total_value=None, supplier=None, allow_negative=False):
        """
        Apply a signed stock change to a product and record the movement.

        Args:
            product: Product instance (or primary key)
            quantity: Signed quantity, positive adds stock, negative removes it
            movement_type: One of StockMovement.TYPE_CHOICES
            user: User responsible for the change
            reference: Business reference (sale number, purchase reference, ...)
            reference_id: Identifier of the originating record
            reason: Free-text reason
            unit_price: Valuation price per unit (optional)
            total_value: Total valuation (defaults to unit_price * |quantity|)
            supplier: Supplier for entries coming from a purchase
            allow_negative: Allow the stock to drop below zero

        Returns:
            StockMovement instance

        Raises:
            ValueError: If quantity is zero or stock would become negative
        """
        if quantity == 0:
            raise ValueError("Quantity cannot be zero")

        product_id = product.pk if isinstance(product, Product) else product
        locked = Product.objects.select_for_update().get(pk=product_id)
        stock_before = locked.stock_current
        stock_after = stock_before + quantity

        if stock_after < 0 and not allow_negative:
            raise ValueError(
                f"Insufficient stock for product {locked.name}. "
                f"Available: {stock_before}, Requested: {-quantity}"
            )

        Product.objects.filter(pk=locked.pk).update(
            stock_current=F('stock_current') + quantity,
            updated_at=timezone.now(),
        )

        if total_value is None and unit_price is not None:
            total_value = unit_price * abs(quantity)

        movement = StockMovement.objects.create(
            product=locked,
            type=movement_type,
            quantity=quantity,
            stock_before=stock_before,
            stock_after=stock_after,
            unit_price=unit_price,
            total_value=total_value,
            reference=reference or '',
            reference_id=str(reference_id) if reference_id is not None else '',
            reason=reason or '',
            supplier=supplier,
            user=user if user is not None and user.is_authenticated else None,
        )

        if isinstance(product, Product):
            product.stock_current = stock_after

        invalidate_dashboard_cache()
        logger.info(f"Stock movement {movement_type} {quantity:+d} on {locked.sku}: {stock_before} -> {stock_after}")
        return movement

    @staticmethod
    @transaction.atomic
    def set_stock(product, new_quantity, movement_type, user=None, reference='', reference_id='', reason=''):
        """
        Bring a product's stock to an absolute level.

        Returns:
            StockMovement for the applied delta, or None if the stock already matches
        """
        if new_quantity < 0:
            raise ValueError("New quantity cannot be negative")

        product_id = product.pk if isinstance(product, Product) else product
        current = Product.objects.select_for_update().values_list('stock_current', flat=True).get(pk=product_id)
        delta = new_quantity - current
        if delta == 0:
            return None
        return StockService.apply_movement(
            product, delta, movement_type, user=user, reference=reference,
            reference_id=reference_id, reason=reason,
        )

    @staticmethod
    def record_damage(product, movement_type, quantity, reason, user=None):
        """
        Record damaged, lost or stolen goods (or their recovery with a positive quantity).

        The movement is valued at the product's purchase price.
        """
        if movement_type not in DAMAGE_TYPES:
            raise ValueError("Type must be DAMAGE, LOSS or THEFT")
        if quantity == 0:
            raise ValueError("Quantity cannot be zero")
        if quantity < 0 and product.stock_current + quantity < 0:
            raise ValueError("Insufficient stock")

        return StockService.apply_movement(
            product,
            quantity,
            movement_type,
            user=user,
            reference=movement_type,
            reason=reason,
            unit_price=product.purchase_price,
        )


class InventoryService:
    """Workflow of a physical stock count: DRAFT -> IN_PROGRESS -> COMPLETED -> VALIDATED"""

    @staticmethod
    def create_inventory(user, notes=''):
        inventory = Inventory.objects.create(
            reference=generate_reference('INV'),
            notes=notes or '',
            user=user,
        )
        logger.info(f"Inventory {inventory.reference} created by {user.username}")
        return inventory

    @staticmethod
    @transaction.atomic
    def add_item(inventory, product, counted_qty, reason=''):
        """
        Record a counted quantity for a product.

        The theoretical quantity is the product's stock at counting time. Counting the same
        product again replaces the previous count.
        """
        inventory = Inventory.objects.select_for_update().get(pk=inventory.pk)
        if not inventory.is_editable:
            raise ValueError("Cannot add items to a closed inventory")
        if counted_qty < 0:
            raise ValueError("Counted quantity cannot be negative")

        product.refresh_from_db(fields=['stock_current'])
        theoretical = product.stock_current
        item, created = InventoryItem.objects.update_or_create(
            inventory=inventory,
            product=product,
            defaults={
                'theoretical_qty': theoretical,
                'counted_qty': counted_qty,
                'difference': counted_qty - theoretical,
                'reason': reason or '',
            },
        )
        return item

    @staticmethod
    @transaction.atomic
    def remove_item(inventory, item):
        inventory = Inventory.objects.select_for_update().get(pk=inventory.pk)
        if not inventory.is_editable:
            raise ValueError("Cannot remove items from a closed inventory")
        item.delete()

    @staticmethod
    def _transition(inventory, new_status):
        if not inventory.can_transition_to(new_status):
            raise ValueError(f"Invalid status transition from {inventory.status} to {new_status}")
        inventory.status = new_status

    @staticmethod
    @transaction.atomic
    def start(inventory):
        inventory = Inventory.objects.select_for_update().get(pk=inventory.pk)
        InventoryService._transition(inventory, Inventory.STATUS_IN_PROGRESS)
        inventory.start_date = timezone.now()
        inventory.save(update_fields=['status', 'start_date', 'updated_at'])
        return inventory

    @staticmethod
    @transaction.atomic
    def complete(inventory):
        inventory = Inventory.objects.select_for_update().get(pk=inventory.pk)
        InventoryService._transition(inventory, Inventory.STATUS_COMPLETED)
        inventory.end_date = timezone.now()
        inventory.save(update_fields=['status', 'end_date', 'updated_at'])
        return inventory

    @staticmethod
    @transaction.atomic
    def validate(inventory, user):
        """
        Apply counted quantities to product stock.

        Each product whose current stock differs from its counted quantity is set to the
        counted quantity through an INVENTORY movement. Everything runs in one transaction:
        any failure leaves stock and status untouched.

        Returns:
            Tuple (inventory, list of StockMovement)
        """
        inventory = Inventory.objects.select_for_update().get(pk=inventory.pk)
        if inventory.status != Inventory.STATUS_COMPLETED:
            raise ValueError("Inventory must be completed before validation")

        movements = []
        for item in inventory.items.select_related('product').order_by('product_id'):
            movement = StockService.set_stock(
                item.product,
                item.counted_qty,
                StockMovement.TYPE_INVENTORY,
                user=user,
                reference=inventory.reference,
                reference_id=inventory.pk,
                reason=item.reason or INVENTORY_ADJUSTMENT_REASON,
            )
            if movement is not None:
                movements.append(movement)

        inventory.status = Inventory.STATUS_VALIDATED
        inventory.validated_by = user
        inventory.validated_at = timezone.now()
        inventory.save(update_fields=['status', 'validated_by', 'validated_at', 'updated_at'])

        logger.info(f"Inventory {inventory.reference} validated by {user.username}: {len(movements)} stock adjustments")
        return inventory, movements
