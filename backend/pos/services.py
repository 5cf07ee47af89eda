"""
Sales, refunds, cash registers and quotes.

Monetary amounts are Decimals rounded to cents; quantities are integers.
"""
import logging
from collections import defaultdict
from datetime import timedelta
from decimal import Decimal, ROUND_HALF_UP

from django.conf import settings
from django.db import transaction
from django.db.models import Sum
from django.utils import timezone

from backend.catalog.models import Product
from backend.core.cache_utils import invalidate_dashboard_cache
from backend.core.models import Company
from backend.core.utils import generate_reference
from backend.inventory.models import StockMovement
from backend.inventory.services import StockService
from .models import CashRegister, Sale, SaleItem, SalePayment, SaleRefund, Quote, QuoteItem

logger = logging.getLogger(__name__)

CENT = Decimal('0.01')
ZERO = Decimal('0.00')
# Tolerance when deciding that a sale has been refunded in full
REFUND_TOLERANCE = Decimal('0.02')


def money(value):
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def default_currency_code():
    return Company.get_solo().default_currency_code or settings.DEFAULT_CURRENCY_CODE


class SaleService:
    """Checkout, payments, cancellation and refunds"""

    @staticmethod
    def compute_tax(sale_type, taxable_amount):
        if sale_type == Sale.TYPE_INVOICE:
            return money(taxable_amount * settings.INVOICE_TAX_RATE)
        return ZERO

    @staticmethod
    @transaction.atomic
    def create_sale(user, items, type=Sale.TYPE_TICKET, client=None, discount=ZERO,
                    payment_method=Sale.PAYMENT_CASH, cash_amount=None, card_amount=None,
                    due_date=None, notes='', currency_code=None, cash_register=None):
        """
        Record a sale and take the sold quantities out of stock.

        Args:
            user: Seller
            items: list of dicts with product, quantity, and optional unit_price and discount
            type: TICKET or INVOICE (invoices carry tax and a due date)
            client: Optional client (required to follow up on credit)
            discount: Discount on the whole sale
            payment_method: CASH, CARD, MIXED, CREDIT or OTHER
            cash_amount, card_amount: Amounts tendered
            due_date: Payment due date (invoices default to INVOICE_DUE_DAYS)
            notes: Free text
            currency_code: Sale currency (defaults to the company currency)
            cash_register: Register to attach the sale to (defaults to the user's open register)

        Returns:
            Sale instance

        Raises:
            ValueError: On empty items, insufficient stock or a credit sale without client
        """
        if not items:
            raise ValueError("A sale needs at least one item")
        if payment_method == Sale.PAYMENT_CREDIT and client is None:
            raise ValueError("A credit sale requires a client")

        products = {
            product.pk: product
            for product in Product.objects.select_for_update().filter(
                pk__in=[item['product'].pk for item in items]
            )
        }

        requested = defaultdict(int)
        for item in items:
            requested[item['product'].pk] += item['quantity']
        for product_id, quantity in requested.items():
            product = products[product_id]
            if product.stock_current < quantity:
                raise ValueError(f"Insufficient stock for product {product.name}")

        lines = []
        gross = ZERO
        margin = ZERO
        for item in items:
            product = products[item['product'].pk]
            quantity = item['quantity']
            unit_price = item.get('unit_price')
            if unit_price is None:
                unit_price = product.sale_price
            line_discount = money(item.get('discount') or ZERO)
            line_total = money(unit_price * quantity - line_discount)
            gross += line_total
            margin += (unit_price - product.purchase_price) * quantity - line_discount
            lines.append((product, quantity, unit_price, line_discount, line_total))

        discount = money(discount or ZERO)
        subtotal = money(gross - discount)
        if subtotal < ZERO:
            raise ValueError("Discount cannot exceed the sale amount")
        tax = SaleService.compute_tax(type, subtotal)
        total = subtotal + tax
        margin = money(margin - discount)

        if payment_method == Sale.PAYMENT_CREDIT:
            cash_amount = None
            card_amount = None
            amount_paid = ZERO
        else:
            if cash_amount is None and card_amount is None:
                if payment_method == Sale.PAYMENT_CASH:
                    cash_amount = total
                elif payment_method == Sale.PAYMENT_CARD:
                    card_amount = total
            if payment_method == Sale.PAYMENT_OTHER and cash_amount is None and card_amount is None:
                amount_paid = total
            else:
                tendered = (cash_amount or ZERO) + (card_amount or ZERO)
                amount_paid = min(tendered, total)
                # Change is handed back in cash
                change = tendered - amount_paid
                if change > ZERO and cash_amount is not None:
                    cash_amount = max(cash_amount - change, ZERO)

        if due_date is None and type == Sale.TYPE_INVOICE:
            due_date = (timezone.now() + timedelta(days=settings.INVOICE_DUE_DAYS)).date()

        if cash_register is None:
            cash_register = CashRegister.objects.filter(user=user, status=CashRegister.STATUS_OPEN).first()

        number = generate_reference('FAC' if type == Sale.TYPE_INVOICE else 'TKT')
        sale = Sale.objects.create(
            ticket_number=number if type == Sale.TYPE_TICKET else None,
            invoice_number=number if type == Sale.TYPE_INVOICE else None,
            type=type,
            client=client,
            user=user,
            cash_register=cash_register,
            subtotal=subtotal,
            discount=discount,
            tax=tax,
            total=total,
            margin=margin,
            currency_code=currency_code or default_currency_code(),
            payment_method=payment_method,
            cash_amount=money(cash_amount) if cash_amount is not None else None,
            card_amount=money(card_amount) if card_amount is not None else None,
            amount_paid=money(amount_paid),
            due_date=due_date,
            notes=notes or '',
        )

        for product, quantity, unit_price, line_discount, line_total in lines:
            SaleItem.objects.create(
                sale=sale,
                product=product,
                quantity=quantity,
                unit_price=unit_price,
                purchase_price=product.purchase_price,
                discount=line_discount,
                total=line_total,
            )
            StockService.apply_movement(
                product,
                -quantity,
                StockMovement.TYPE_SALE,
                user=user,
                reference=sale.number,
                reference_id=sale.pk,
                unit_price=unit_price,
            )

        invalidate_dashboard_cache()
        logger.info(f"Sale {sale.number} created by {user.username}: total={sale.total} {sale.currency_code} paid={sale.amount_paid}")
        return sale

    @staticmethod
    @transaction.atomic
    def record_payment(sale, amount, user, method=Sale.PAYMENT_CASH, notes=''):
        """
        Record a payment against a sale's outstanding balance.

        Only the amount still due is applied; any excess is ignored.
        """
        sale = Sale.objects.select_for_update().get(pk=sale.pk)
        if sale.status == Sale.STATUS_CANCELLED:
            raise ValueError("Cannot record a payment on a cancelled sale")
        if amount < CENT:
            raise ValueError("Amount must be at least 0.01")
        if sale.is_paid:
            raise ValueError("Sale is already fully paid")

        applied = money(min(amount, sale.amount_due))
        sale.amount_paid = sale.amount_paid + applied
        sale.save(update_fields=['amount_paid', 'updated_at'])
        payment = SalePayment.objects.create(sale=sale, amount=applied, method=method, notes=notes or '', user=user)

        invalidate_dashboard_cache()
        logger.info(f"Payment of {applied} recorded on sale {sale.number}, remaining {sale.amount_due}")
        return sale, payment

    @staticmethod
    @transaction.atomic
    def cancel(sale, user):
        """Cancel a sale and put its items back in stock"""
        sale = Sale.objects.select_for_update().get(pk=sale.pk)
        if sale.status == Sale.STATUS_CANCELLED:
            raise ValueError("Sale is already cancelled")
        if sale.refunds.exists():
            raise ValueError("Cannot cancel a sale that has refunds")

        for item in sale.items.select_related('product'):
            StockService.apply_movement(
                item.product,
                item.quantity,
                StockMovement.TYPE_ADJUSTMENT,
                user=user,
                reference='CANCELLED_SALE',
                reference_id=sale.pk,
                reason=f"Annulation vente {sale.number}",
            )

        sale.status = Sale.STATUS_CANCELLED
        sale.save(update_fields=['status', 'updated_at'])
        invalidate_dashboard_cache()
        logger.info(f"Sale {sale.number} cancelled by {user.username}")
        return sale

    @staticmethod
    def refunded_quantities(sale):
        """Quantities already refunded per sale item id"""
        refunded = defaultdict(int)
        for refund in sale.refunds.all():
            for line in refund.refunded_items:
                refunded[int(line['sale_item'])] += int(line['quantity'])
        return refunded

    @staticmethod
    def next_avoir_number():
        """Credit-note numbers restart every day: AV-YYYYMMDD-001, AV-YYYYMMDD-002, ..."""
        prefix = f"AV-{timezone.now().strftime('%Y%m%d')}-"
        count = SaleRefund.objects.filter(avoir_number__startswith=prefix).count()
        number = f"{prefix}{count + 1:03d}"
        while SaleRefund.objects.filter(avoir_number=number).exists():
            count += 1
            number = f"{prefix}{count + 1:03d}"
        return number

    @staticmethod
    @transaction.atomic
    def refund(sale, lines, user, reason=''):
        """
        Refund some or all of a sale's items and return them to stock.

        Args:
            sale: Sale instance
            lines: list of dicts with sale_item (id) and quantity
            user: User issuing the credit note
            reason: Optional reason

        Returns:
            SaleRefund instance
        """
        sale = Sale.objects.select_for_update().get(pk=sale.pk)
        if sale.status == Sale.STATUS_CANCELLED:
            raise ValueError("Cannot refund a cancelled sale")
        if sale.status == Sale.STATUS_REFUNDED:
            raise ValueError("Sale is already fully refunded")

        sale_items = {item.pk: item for item in sale.items.select_related('product')}
        already_refunded = SaleService.refunded_quantities(sale)

        requested = defaultdict(int)
        for line in lines:
            if line['sale_item'] not in sale_items:
                raise ValueError(f"Sale item {line['sale_item']} does not belong to this sale")
            requested[line['sale_item']] += line['quantity']

        amount = ZERO
        refunded_items = []
        for sale_item_id, quantity in requested.items():
            item = sale_items[sale_item_id]
            refundable = item.quantity - already_refunded[sale_item_id]
            if quantity > refundable:
                raise ValueError(
                    f"Cannot refund {quantity} x {item.product.name}: only {refundable} refundable"
                )
            line_amount = item.unit_price * quantity - item.discount * quantity / item.quantity
            line_amount = money(line_amount + SaleService.compute_tax(sale.type, line_amount))
            amount += line_amount
            refunded_items.append({
                'sale_item': sale_item_id,
                'product': item.product_id,
                'product_name': item.product.name,
                'quantity': quantity,
                'unit_price': str(item.unit_price),
                'amount': str(line_amount),
            })

        refund = SaleRefund.objects.create(
            sale=sale,
            avoir_number=SaleService.next_avoir_number(),
            amount=money(amount),
            reason=reason or '',
            refunded_items=refunded_items,
            user=user,
        )

        for line in refunded_items:
            StockService.apply_movement(
                sale_items[line['sale_item']].product,
                line['quantity'],
                StockMovement.TYPE_REFUND,
                user=user,
                reference=refund.avoir_number,
                reference_id=sale.pk,
                reason=reason or f"Avoir sur {sale.number}",
            )

        total_refunded = sale.refunds.aggregate(total=Sum('amount'))['total'] or ZERO
        if total_refunded >= sale.total - REFUND_TOLERANCE:
            sale.status = Sale.STATUS_REFUNDED
            sale.save(update_fields=['status', 'updated_at'])

        invalidate_dashboard_cache()
        logger.info(f"Refund {refund.avoir_number} on sale {sale.number}: {refund.amount}")
        return refund


class CashRegisterService:
    """Opening and closing of till sessions"""

    @staticmethod
    @transaction.atomic
    def open(user, initial_amount):
        if initial_amount < ZERO:
            raise ValueError("Initial amount cannot be negative")
        if CashRegister.objects.select_for_update().filter(user=user, status=CashRegister.STATUS_OPEN).exists():
            raise ValueError("You already have an open cash register")
        register = CashRegister.objects.create(user=user, initial_amount=money(initial_amount))
        logger.info(f"Cash register {register.pk} opened by {user.username} with {register.initial_amount}")
        return register

    @staticmethod
    def expected_amount(register):
        """Opening float plus cash taken by the register's user since opening"""
        cash_sales = Sale.objects.filter(
            user=register.user,
            created_at__gte=register.open_date,
        ).exclude(status=Sale.STATUS_CANCELLED)
        if register.close_date:
            cash_sales = cash_sales.filter(created_at__lte=register.close_date)
        cash_total = cash_sales.aggregate(total=Sum('cash_amount'))['total'] or ZERO
        return money(register.initial_amount + cash_total)

    @staticmethod
    @transaction.atomic
    def close(register, user, actual_amount, notes=''):
        register = CashRegister.objects.select_for_update().get(pk=register.pk)
        if register.user_id != user.pk:
            raise ValueError("This cash register belongs to another user")
        if register.status == CashRegister.STATUS_CLOSED:
            raise ValueError("Cash register is already closed")

        register.expected_amount = CashRegisterService.expected_amount(register)
        register.actual_amount = money(actual_amount)
        register.difference = register.actual_amount - register.expected_amount
        register.close_date = timezone.now()
        register.status = CashRegister.STATUS_CLOSED
        if notes:
            register.notes = notes
        register.save()
        logger.info(f"Cash register {register.pk} closed by {user.username}: difference {register.difference}")
        return register


class QuoteService:
    """Quotes and their conversion into invoices"""

    @staticmethod
    @transaction.atomic
    def create_quote(user, items, client=None, discount=ZERO, valid_until=None, notes='', currency_code=None):
        if not items:
            raise ValueError("A quote needs at least one item")

        lines = []
        gross = ZERO
        for item in items:
            product = item['product']
            unit_price = item.get('unit_price')
            if unit_price is None:
                unit_price = product.sale_price
            line_discount = money(item.get('discount') or ZERO)
            line_total = money(unit_price * item['quantity'] - line_discount)
            gross += line_total
            lines.append((product, item['quantity'], unit_price, line_discount, line_total))

        discount = money(discount or ZERO)
        subtotal = money(gross - discount)
        if subtotal < ZERO:
            raise ValueError("Discount cannot exceed the quote amount")
        tax = money(subtotal * settings.INVOICE_TAX_RATE)

        quote = Quote.objects.create(
            quote_number=generate_reference('DEV'),
            client=client,
            user=user,
            subtotal=subtotal,
            discount=discount,
            tax=tax,
            total=subtotal + tax,
            currency_code=currency_code or default_currency_code(),
            valid_until=valid_until,
            notes=notes or '',
        )
        for product, quantity, unit_price, line_discount, line_total in lines:
            QuoteItem.objects.create(
                quote=quote, product=product, quantity=quantity,
                unit_price=unit_price, discount=line_discount, total=line_total,
            )
        logger.info(f"Quote {quote.quote_number} created by {user.username}: {quote.total}")
        return quote

    @staticmethod
    def update_status(quote, new_status):
        if quote.status == Quote.STATUS_CONVERTED:
            raise ValueError("A converted quote cannot change status")
        if new_status == Quote.STATUS_CONVERTED:
            raise ValueError("Use the convert action to convert a quote")
        quote.status = new_status
        quote.save(update_fields=['status', 'updated_at'])
        return quote

    @staticmethod
    @transaction.atomic
    def convert_to_sale(quote, user, quantities=None, payment_method=Sale.PAYMENT_CREDIT):
        """
        Turn a quote into an invoice.

        Args:
            quantities: optional list of dicts with quote_item (id) and quantity, to invoice
                only part of the quote; when given, only the listed lines are invoiced
        """
        quote = Quote.objects.select_for_update().get(pk=quote.pk)
        if quote.status == Quote.STATUS_CONVERTED or quote.converted_sale_id:
            raise ValueError("Quote has already been converted")

        quote_items = {item.pk: item for item in quote.items.select_related('product')}
        overrides = {}
        for line in quantities or []:
            item = quote_items.get(line['quote_item'])
            if item is None:
                raise ValueError(f"Quote item {line['quote_item']} does not belong to this quote")
            if line['quantity'] < 1 or line['quantity'] > item.quantity:
                raise ValueError(f"Quantity for {item.product.name} must be between 1 and {item.quantity}")
            overrides[item.pk] = line['quantity']

        if overrides:
            selected = [(quote_items[pk], quantity) for pk, quantity in overrides.items()]
        else:
            selected = [(item, item.quantity) for item in quote_items.values()]

        items = []
        for item, quantity in selected:
            items.append({
                'product': item.product,
                'quantity': quantity,
                'unit_price': item.unit_price,
                'discount': money(item.discount * quantity / item.quantity),
            })

        sale = SaleService.create_sale(
            user,
            items,
            type=Sale.TYPE_INVOICE,
            client=quote.client,
            discount=quote.discount,
            payment_method=payment_method,
            notes=f"Devis {quote.quote_number}",
            currency_code=quote.currency_code,
        )

        quote.status = Quote.STATUS_CONVERTED
        quote.converted_sale = sale
        quote.save(update_fields=['status', 'converted_sale', 'updated_at'])
        logger.info(f"Quote {quote.quote_number} converted to sale {sale.number}")
        return quote, sale
