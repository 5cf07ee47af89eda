import logging

from django.db import transaction

from backend.core.cache_utils import invalidate_dashboard_cache
from backend.inventory.models import StockMovement
from backend.inventory.services import StockService
from .models import Purchase, PurchaseItem

logger = logging.getLogger(__name__)


class PurchaseService:
    """Purchase creation and goods receipt"""

    @staticmethod
    @transaction.atomic
    def create_purchase(user, supplier, reference, items, invoice_number='', invoice_date=None,
                        delivery_date=None, notes=''):
        """
        Create a pending purchase with its lines.

        Args:
            items: list of dicts with product, quantity and unit_price
        """
        if not items:
            raise ValueError("A purchase needs at least one item")

        purchase = Purchase.objects.create(
            supplier=supplier,
            reference=reference,
            invoice_number=invoice_number or '',
            invoice_date=invoice_date,
            delivery_date=delivery_date,
            notes=notes or '',
            user=user,
        )
        for item in items:
            PurchaseItem.objects.create(
                purchase=purchase,
                product=item['product'],
                quantity=item['quantity'],
                unit_price=item['unit_price'],
            )
        purchase.total_amount = purchase.get_total()
        purchase.save(update_fields=['total_amount', 'updated_at'])

        logger.info(f"Purchase {purchase.reference} created for supplier {supplier.name}: {purchase.total_amount}")
        invalidate_dashboard_cache()
        return purchase

    @staticmethod
    @transaction.atomic
    def receive(purchase, lines, user, delivery_date=None, notes=None):
        """
        Record received quantities and move the difference into stock.

        Args:
            purchase: Purchase instance
            lines: list of dicts with item (PurchaseItem id) and received_qty (new cumulative total)
            user: User receiving the goods
            delivery_date: Optional delivery date
            notes: Optional notes replacing the purchase notes

        Returns:
            Tuple (purchase, list of StockMovement)

        Raises:
            ValueError: If the purchase is cancelled or a quantity is out of range
        """
        purchase = Purchase.objects.select_for_update().select_related('supplier').get(pk=purchase.pk)
        if purchase.status == Purchase.STATUS_CANCELLED:
            raise ValueError("Cannot receive a cancelled purchase")

        items = {item.pk: item for item in purchase.items.select_for_update().select_related('product')}
        movements = []
        for line in lines:
            item = items.get(line['item'])
            if item is None:
                raise PurchaseItem.DoesNotExist(f"Purchase item {line['item']} not found")

            received_qty = line['received_qty']
            if received_qty < 0 or received_qty > item.quantity:
                raise ValueError(
                    f"Received quantity for {item.product.name} must be between 0 and {item.quantity}"
                )

            delta = received_qty - item.received_qty
            if delta == 0:
                continue

            movements.append(StockService.apply_movement(
                item.product,
                delta,
                StockMovement.TYPE_ENTRY,
                user=user,
                reference=purchase.reference,
                reference_id=purchase.pk,
                reason=f"Réception achat {purchase.reference}",
                unit_price=item.unit_price,
                supplier=purchase.supplier,
            ))
            item.received_qty = received_qty
            item.save(update_fields=['received_qty'])

        purchase.status = purchase.compute_status()
        update_fields = ['status', 'updated_at']
        if delivery_date is not None:
            purchase.delivery_date = delivery_date
            update_fields.append('delivery_date')
        if notes is not None:
            purchase.notes = notes
            update_fields.append('notes')
        purchase.save(update_fields=update_fields)

        logger.info(f"Purchase {purchase.reference} received: {len(movements)} lines moved, status {purchase.status}")
        return purchase, movements
