from django.conf import settings
from django.db import models
from decimal import Decimal
from backend.catalog.models import Product
from backend.parties.models import Client


class CashRegister(models.Model):
    """A cashier's till session, from opening float to closing count"""
    STATUS_OPEN = 'OPEN'
    STATUS_CLOSED = 'CLOSED'

    STATUS_CHOICES = [
        (STATUS_OPEN, 'Open'),
        (STATUS_CLOSED, 'Closed'),
    ]

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='cash_registers')
    open_date = models.DateTimeField(auto_now_add=True)
    close_date = models.DateTimeField(null=True, blank=True)
    initial_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    expected_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    actual_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    difference = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_OPEN)
    notes = models.TextField(blank=True)

    def __str__(self):
        return f"Register #{self.pk} ({self.user.username}, {self.status})"

    class Meta:
        db_table = 'cash_registers'
        ordering = ['-open_date']


class Sale(models.Model):
    """Sales: till tickets and invoices"""
    TYPE_TICKET = 'TICKET'
    TYPE_INVOICE = 'INVOICE'

    TYPE_CHOICES = [
        (TYPE_TICKET, 'Ticket'),
        (TYPE_INVOICE, 'Invoice'),
    ]

    STATUS_COMPLETED = 'COMPLETED'
    STATUS_CANCELLED = 'CANCELLED'
    STATUS_REFUNDED = 'REFUNDED'

    STATUS_CHOICES = [
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_CANCELLED, 'Cancelled'),
        (STATUS_REFUNDED, 'Refunded'),
    ]

    PAYMENT_CASH = 'CASH'
    PAYMENT_CARD = 'CARD'
    PAYMENT_MIXED = 'MIXED'
    PAYMENT_CREDIT = 'CREDIT'
    PAYMENT_OTHER = 'OTHER'

    PAYMENT_METHOD_CHOICES = [
        (PAYMENT_CASH, 'Cash'),
        (PAYMENT_CARD, 'Card'),
        (PAYMENT_MIXED, 'Cash and card'),
        (PAYMENT_CREDIT, 'Credit'),
        (PAYMENT_OTHER, 'Other'),
    ]

    ticket_number = models.CharField(max_length=50, unique=True, null=True, blank=True)
    invoice_number = models.CharField(max_length=50, unique=True, null=True, blank=True)
    type = models.CharField(max_length=10, choices=TYPE_CHOICES, default=TYPE_TICKET)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_COMPLETED)
    client = models.ForeignKey(Client, on_delete=models.PROTECT, null=True, blank=True, related_name='sales')
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='sales')
    cash_register = models.ForeignKey(CashRegister, on_delete=models.SET_NULL, null=True, blank=True, related_name='sales')
    subtotal = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    discount = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    tax = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    total = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    margin = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    currency_code = models.CharField(max_length=3, default='TND')
    payment_method = models.CharField(max_length=10, choices=PAYMENT_METHOD_CHOICES, default=PAYMENT_CASH)
    cash_amount = models.DecimalField(max_digits=14, decimal_places=2, null=True, blank=True)
    card_amount = models.DecimalField(max_digits=14, decimal_places=2, null=True, blank=True)
    amount_paid = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    due_date = models.DateField(null=True, blank=True)
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.number or f"Sale-{self.pk}"

    @property
    def number(self):
        return self.invoice_number or self.ticket_number

    @property
    def amount_due(self):
        return max(self.total - self.amount_paid, Decimal('0.00'))

    @property
    def is_paid(self):
        return self.amount_due <= Decimal('0.00')

    class Meta:
        db_table = 'sales'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', 'created_at'], name='idx_sale_status_date'),
            models.Index(fields=['client', 'status'], name='idx_sale_client_status'),
        ]


class SaleItem(models.Model):
    """Sale lines"""
    sale = models.ForeignKey(Sale, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name='sale_items')
    quantity = models.PositiveIntegerField()
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    purchase_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    discount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    total = models.DecimalField(max_digits=14, decimal_places=2)

    def __str__(self):
        return f"{self.sale} - {self.product.name} x{self.quantity}"

    class Meta:
        db_table = 'sale_items'


class SalePayment(models.Model):
    """Payments received against a sale after checkout (credit follow-up)"""
    sale = models.ForeignKey(Sale, on_delete=models.CASCADE, related_name='payments')
    amount = models.DecimalField(max_digits=14, decimal_places=2)
    method = models.CharField(max_length=10, choices=Sale.PAYMENT_METHOD_CHOICES, default=Sale.PAYMENT_CASH)
    notes = models.CharField(max_length=255, blank=True)
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, related_name='sale_payments')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'sale_payments'
        ordering = ['-created_at']


class SaleRefund(models.Model):
    """Credit notes (avoirs) issued against a sale"""
    sale = models.ForeignKey(Sale, on_delete=models.CASCADE, related_name='refunds')
    avoir_number = models.CharField(max_length=30, unique=True)
    amount = models.DecimalField(max_digits=14, decimal_places=2)
    reason = models.TextField(blank=True)
    refunded_items = models.JSONField(default=list)
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, related_name='sale_refunds')
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.avoir_number

    class Meta:
        db_table = 'sale_refunds'
        ordering = ['-created_at']


class Quote(models.Model):
    """Quotes (devis) that can later be turned into an invoice"""
    STATUS_DRAFT = 'DRAFT'
    STATUS_SENT = 'SENT'
    STATUS_ACCEPTED = 'ACCEPTED'
    STATUS_REJECTED = 'REJECTED'
    STATUS_CONVERTED = 'CONVERTED'
    STATUS_EXPIRED = 'EXPIRED'

    STATUS_CHOICES = [
        (STATUS_DRAFT, 'Draft'),
        (STATUS_SENT, 'Sent'),
        (STATUS_ACCEPTED, 'Accepted'),
        (STATUS_REJECTED, 'Rejected'),
        (STATUS_CONVERTED, 'Converted'),
        (STATUS_EXPIRED, 'Expired'),
    ]

    quote_number = models.CharField(max_length=50, unique=True)
    client = models.ForeignKey(Client, on_delete=models.PROTECT, null=True, blank=True, related_name='quotes')
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='quotes')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_DRAFT)
    subtotal = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    discount = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    tax = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    total = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    currency_code = models.CharField(max_length=3, default='TND')
    valid_until = models.DateField(null=True, blank=True)
    notes = models.TextField(blank=True)
    converted_sale = models.OneToOneField(Sale, on_delete=models.SET_NULL, null=True, blank=True, related_name='source_quote')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.quote_number

    class Meta:
        db_table = 'quotes'
        ordering = ['-created_at']


class QuoteItem(models.Model):
    """Quote lines"""
    quote = models.ForeignKey(Quote, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name='quote_items')
    quantity = models.PositiveIntegerField()
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    discount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    total = models.DecimalField(max_digits=14, decimal_places=2)

    def __str__(self):
        return f"{self.quote.quote_number} - {self.product.name} x{self.quantity}"

    class Meta:
        db_table = 'quote_items'
