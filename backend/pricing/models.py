from django.db import models
from decimal import Decimal


class Currency(models.Model):
    """Currencies the business can price and sell in"""
    code = models.CharField(max_length=3, primary_key=True)
    name = models.CharField(max_length=100)
    symbol = models.CharField(max_length=10, blank=True)
    unit = models.PositiveIntegerField(default=1)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.code

    class Meta:
        db_table = 'currencies'
        ordering = ['code']
        verbose_name_plural = 'currencies'


class ExchangeRate(models.Model):
    """Value of one unit of a currency in the base currency (TND) on a given date"""
    SOURCE_BCT = 'BCT'
    SOURCE_MANUAL = 'MANUAL'

    currency = models.ForeignKey(Currency, on_delete=models.CASCADE, related_name='rates')
    rate_to_base = models.DecimalField(max_digits=18, decimal_places=6, default=Decimal('1'))
    rate_date = models.DateField()
    source = models.CharField(max_length=20, default=SOURCE_MANUAL)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.currency_id} {self.rate_to_base} ({self.rate_date})"

    class Meta:
        db_table = 'exchange_rates'
        ordering = ['-rate_date', 'currency']
        unique_together = [['currency', 'rate_date', 'source']]
