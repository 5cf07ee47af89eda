"""
Comprehensive test suite for Reports module
Tests: Dashboard statistics, sales chart, currency conversion and cache invalidation
"""
from datetime import timedelta
from decimal import Decimal

from django.core.cache import cache
from django.test import TestCase
from django.utils import timezone
from rest_framework import status
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.pos.models import Sale
from backend.pos.services import SaleService
from backend.pricing.models import Currency, ExchangeRate
from backend.purchasing.services import PurchaseService


class DashboardStatsTests(TestCase):
    """Test dashboard statistics endpoint"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_manager()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.product = TestDataFactory.create_product(purchase_price='60.00', sale_price='100.00',
                                                      stock_current=20, stock_min=18)
        self.other = TestDataFactory.create_product(purchase_price='30.00', sale_price='50.00', stock_current=20)

    def test_empty_dashboard(self):
        """Test stats with no data"""
        response = self.client.get('/api/v1/dashboard/stats/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['default_currency_code'], 'TND')
        self.assertEqual(response.data['sales']['total_sales'], 0)
        self.assertEqual(response.data['sales']['total_revenue'], Decimal('0.00'))
        self.assertEqual(response.data['top_products'], [])
        self.assertEqual(response.data['pending_purchases'], 0)

    def test_stats_totals(self):
        """Test revenue, margin, top products and low stock"""
        SaleService.create_sale(self.user, [{'product': self.product, 'quantity': 3}])
        SaleService.create_sale(self.user, [{'product': self.other, 'quantity': 1}])
        cancelled = SaleService.create_sale(self.user, [{'product': self.other, 'quantity': 5}])
        SaleService.cancel(cancelled, self.user)

        response = self.client.get('/api/v1/dashboard/stats/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['sales']['total_sales'], 2)
        self.assertEqual(response.data['sales']['total_revenue'], Decimal('350.00'))
        self.assertEqual(response.data['sales']['total_margin'], Decimal('140.00'))
        self.assertEqual(response.data['top_products'][0]['product']['id'], self.product.id)
        self.assertEqual(response.data['top_products'][0]['quantity'], 3)
        self.assertEqual([p['id'] for p in response.data['low_stock_products']], [self.product.id])
        self.assertEqual(len(response.data['recent_sales']), 2)

    def test_foreign_currency_sales_are_converted(self):
        """Test sales in another currency are converted to the default one"""
        currency = Currency.objects.create(code='EUR', name='Euro')
        ExchangeRate.objects.create(currency=currency, rate_to_base=Decimal('3.4'),
                                    rate_date=timezone.localdate())
        SaleService.create_sale(self.user, [{'product': self.product, 'quantity': 1}], currency_code='EUR')
        SaleService.create_sale(self.user, [{'product': self.other, 'quantity': 1}])
        response = self.client.get('/api/v1/dashboard/stats/')
        self.assertEqual(response.data['sales']['total_revenue'], Decimal('390.00'))

    def test_unknown_rate_is_left_unconverted(self):
        """Test a currency without rate does not break the dashboard"""
        SaleService.create_sale(self.user, [{'product': self.other, 'quantity': 1}], currency_code='GBP')
        response = self.client.get('/api/v1/dashboard/stats/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['sales']['total_revenue'], Decimal('50.00'))

    def test_purchase_counts(self):
        """Test received and pending purchase figures"""
        supplier = TestDataFactory.create_supplier()
        received = PurchaseService.create_purchase(
            self.user, supplier, 'PO-R', [{'product': self.other, 'quantity': 2, 'unit_price': Decimal('10.00')}]
        )
        PurchaseService.receive(received, [{'item': received.items.get().id, 'received_qty': 2}], self.user)
        TestDataFactory.create_purchase(self.user, supplier=supplier, items=[(self.other, 1, '5.00')])

        response = self.client.get('/api/v1/dashboard/stats/')
        self.assertEqual(response.data['purchases']['total_purchases'], 1)
        self.assertEqual(response.data['purchases']['total_amount'], Decimal('20.00'))
        self.assertEqual(response.data['pending_purchases'], 1)

    def test_date_range(self):
        """Test stats restricted to a past range"""
        SaleService.create_sale(self.user, [{'product': self.other, 'quantity': 1}])
        response = self.client.get('/api/v1/dashboard/stats/?start_date=2020-01-01&end_date=2020-12-31')
        self.assertEqual(response.data['sales']['total_sales'], 0)

    def test_cache_is_invalidated_by_new_sales(self):
        """Test a committed sale refreshes cached stats"""
        response = self.client.get('/api/v1/dashboard/stats/')
        self.assertEqual(response.data['sales']['total_sales'], 0)
        with self.captureOnCommitCallbacks(execute=True):
            SaleService.create_sale(self.user, [{'product': self.other, 'quantity': 1}])
        response = self.client.get('/api/v1/dashboard/stats/')
        self.assertEqual(response.data['sales']['total_sales'], 1)

    def test_requires_authentication(self):
        self.client.logout()
        response = self.client.get('/api/v1/dashboard/stats/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


class SalesChartTests(TestCase):
    """Test sales chart endpoint"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.product = TestDataFactory.create_product(purchase_price='30.00', sale_price='50.00', stock_current=10)

    def test_daily_series(self):
        """Test today's sales are grouped into one point"""
        SaleService.create_sale(self.user, [{'product': self.product, 'quantity': 1}])
        SaleService.create_sale(self.user, [{'product': self.product, 'quantity': 2}])
        response = self.client.get('/api/v1/dashboard/sales-chart/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)
        point = response.data[0]
        self.assertEqual(point['date'], timezone.localdate().isoformat())
        self.assertEqual(point['value'], Decimal('150.00'))
        self.assertEqual(point['margin'], Decimal('60.00'))

    def test_old_sales_outside_default_range(self):
        """Test the default range covers the last 30 days"""
        sale = SaleService.create_sale(self.user, [{'product': self.product, 'quantity': 1}])
        Sale.objects.filter(pk=sale.pk).update(created_at=timezone.now() - timedelta(days=60))
        response = self.client.get('/api/v1/dashboard/sales-chart/?group_by=month')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data, [])

    def test_invalid_group_by(self):
        """Test unknown grouping is rejected"""
        response = self.client.get('/api/v1/dashboard/sales-chart/?group_by=year')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
