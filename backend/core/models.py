from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    """Extended user model with a business role"""
    ROLE_ADMIN = 'ADMIN'
    ROLE_MANAGER = 'MANAGER'
    ROLE_SELLER = 'SELLER'

    ROLE_CHOICES = [
        (ROLE_ADMIN, 'Administrator'),
        (ROLE_MANAGER, 'Manager'),
        (ROLE_SELLER, 'Seller'),
    ]

    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default=ROLE_SELLER)
    phone = models.CharField(max_length=20, blank=True, null=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    @property
    def effective_role(self):
        """Superusers always act as administrators"""
        if self.is_superuser:
            return self.ROLE_ADMIN
        return self.role

    def has_role(self, *roles):
        return self.effective_role in roles

    class Meta:
        db_table = 'users'


class Setting(models.Model):
    """Application settings stored as key/value pairs"""
    DEFAULTS = {
        'credit_overdue_days_threshold': '30',
    }

    key = models.CharField(max_length=100, unique=True)
    value = models.TextField()
    description = models.TextField(blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.key

    class Meta:
        db_table = 'settings'


class Company(models.Model):
    """Company profile (single row)"""
    name = models.CharField(max_length=255, default='Mon entreprise')
    address = models.CharField(max_length=255, blank=True)
    city = models.CharField(max_length=100, blank=True)
    postal_code = models.CharField(max_length=20, blank=True)
    country = models.CharField(max_length=100, default='Tunisie')
    phone = models.CharField(max_length=30, blank=True)
    email = models.EmailField(blank=True)
    siret = models.CharField(max_length=50, blank=True)
    vat_number = models.CharField(max_length=50, blank=True)
    logo = models.TextField(blank=True)
    default_currency_code = models.CharField(max_length=3, default='TND')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    @classmethod
    def get_solo(cls):
        """Return the company profile, creating it on first access"""
        company = cls.objects.order_by('id').first()
        if company is None:
            from django.conf import settings
            company = cls.objects.create(default_currency_code=settings.DEFAULT_CURRENCY_CODE)
        return company

    class Meta:
        db_table = 'company'
        verbose_name_plural = 'company'


class AuditLog(models.Model):
    """Audit log for critical operations"""
    ACTION_CHOICES = [
        ('create', 'Create'),
        ('update', 'Update'),
        ('delete', 'Delete'),
        ('price_change', 'Price Change'),
        ('stock_adjust', 'Stock Adjustment'),
        ('stock_purchase', 'Stock Added (Purchase)'),
        ('stock_sale', 'Stock Removed (Sale)'),
        ('sale_create', 'Sale Created'),
        ('sale_cancel', 'Sale Cancelled'),
        ('payment_add', 'Payment Added'),
        ('refund', 'Refund'),
        ('inventory_validate', 'Inventory Validated'),
        ('register_open', 'Cash Register Opened'),
        ('register_close', 'Cash Register Closed'),
        ('quote_convert', 'Quote Converted'),
    ]

    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, related_name='audit_logs')
    action = models.CharField(max_length=50, choices=ACTION_CHOICES)
    model_name = models.CharField(max_length=100)
    object_id = models.CharField(max_length=100)
    object_name = models.CharField(max_length=255, blank=True, null=True, help_text="Human-readable name of the object (e.g., product name, sale number)")
    object_reference = models.CharField(max_length=255, blank=True, null=True, help_text="Reference identifier (e.g., ticket number, purchase reference)")
    changes = models.JSONField(default=dict, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'audit_logs'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['-created_at'], name='idx_audit_created'),
            models.Index(fields=['action'], name='idx_audit_action'),
            models.Index(fields=['model_name'], name='idx_audit_model'),
            models.Index(fields=['object_reference'], name='idx_audit_reference'),
        ]
