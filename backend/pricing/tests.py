"""
Test suite for Pricing module
Tests: Currencies, default currency, exchange rates, conversion and the BCT rate import
"""
from datetime import timedelta
from decimal import Decimal
from io import StringIO
from unittest import mock

import requests
from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import TestCase
from django.utils import timezone
from rest_framework import status
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.pricing import services
from backend.pricing.models import Currency, ExchangeRate

BCT_PAGE = """
<html><body>
<table class="bct">
  <tr><th>Monnaie</th><th>Code</th><th>Unité</th><th>Cours Moyens</th></tr>
  <tr><td>Euro</td><td>EUR</td><td>1</td><td>3,3750</td></tr>
  <tr><td>Dollar des USA</td><td>USD</td><td>1</td><td>3,1200</td></tr>
  <tr><td>Yen japonais</td><td>JPY</td><td>1000</td><td>21,0500</td></tr>
  <tr><td>Total</td><td>--</td><td>1</td><td>0</td></tr>
</table>
</body></html>
"""


def add_rate(code, rate, days_ago=0, **currency_fields):
    currency, _ = Currency.objects.get_or_create(code=code, defaults={'name': code, **currency_fields})
    return ExchangeRate.objects.create(
        currency=currency,
        rate_to_base=Decimal(rate),
        rate_date=timezone.localdate() - timedelta(days=days_ago),
    )


class ConversionTests(TestCase):
    """Test rate lookup and conversion"""

    def setUp(self):
        add_rate('EUR', '3.300000', days_ago=3)
        add_rate('EUR', '3.400000')
        add_rate('USD', '3.100000')

    def test_latest_rates_keep_newest(self):
        rates = services.get_latest_rates()
        self.assertEqual(rates['TND'], Decimal('1'))
        self.assertEqual(rates['EUR'], Decimal('3.400000'))

    def test_rates_on_past_date(self):
        rates = services.get_latest_rates(timezone.localdate() - timedelta(days=1))
        self.assertEqual(rates['EUR'], Decimal('3.300000'))
        self.assertNotIn('USD', rates)

    def test_convert_through_base(self):
        self.assertEqual(services.convert(Decimal('10'), 'EUR', 'TND'), Decimal('34.000000'))
        result = services.convert(Decimal('31'), 'USD', 'EUR')
        self.assertEqual(result.quantize(Decimal('0.01')), Decimal('28.26'))

    def test_convert_same_currency(self):
        self.assertEqual(services.convert(Decimal('5'), 'GBP', 'GBP'), Decimal('5'))

    def test_unknown_rate(self):
        with self.assertRaises(services.UnknownRateError):
            services.convert(Decimal('5'), 'GBP', 'TND')


class CurrencyAPITests(TestCase):
    """Test currency endpoints"""

    def setUp(self):
        self.admin = TestDataFactory.create_admin()
        self.seller = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.seller)
        add_rate('EUR', '3.375000', symbol='€')

    def test_list_and_rates(self):
        response = self.client.get('/api/v1/currencies/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([c['code'] for c in response.data], ['EUR'])
        response = self.client.get('/api/v1/currencies/rates/')
        self.assertEqual(response.data['EUR'], Decimal('3.375000'))

    def test_convert_endpoint(self):
        response = self.client.get('/api/v1/currencies/convert/?amount=100&from=EUR&to=TND')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['result'], Decimal('337.50'))
        self.assertEqual(response.data['from'], 'EUR')

    def test_convert_defaults_to_company_currency(self):
        response = self.client.get('/api/v1/currencies/convert/?amount=337.50&from=TND&to=')
        self.assertEqual(response.data['to'], 'TND')
        self.assertEqual(response.data['result'], Decimal('337.50'))

    def test_convert_unknown_currency(self):
        response = self.client.get('/api/v1/currencies/convert/?amount=1&from=XAF')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_convert_requires_amount(self):
        response = self.client.get('/api/v1/currencies/convert/?from=EUR')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_default_currency(self):
        response = self.client.get('/api/v1/currencies/default/')
        self.assertEqual(response.data, {'code': 'TND'})

        response = self.client.put('/api/v1/currencies/default/', {'code': 'EUR'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.client.authenticate_user(self.admin)
        response = self.client.put('/api/v1/currencies/default/', {'code': 'eur'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(services.get_default_currency_code(), 'EUR')

        response = self.client.put('/api/v1/currencies/default/', {'code': 'XYZ'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_new_sales_use_default_currency(self):
        services.set_default_currency_code('EUR')
        product = TestDataFactory.create_product(stock_current=1)
        response = self.client.post('/api/v1/sales/', {'items': [{'product': product.id, 'quantity': 1}]},
                                    format='json')
        self.assertEqual(response.data['currency_code'], 'EUR')


class BCTImportTests(TestCase):
    """Test the Banque Centrale de Tunisie rate import"""

    def setUp(self):
        self.admin = TestDataFactory.create_admin()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.admin)

    def test_parse_table(self):
        rows = services.parse_bct_table(BCT_PAGE)
        self.assertEqual(rows, [
            ('EUR', 1, Decimal('3.3750')),
            ('USD', 1, Decimal('3.1200')),
            ('JPY', 1000, Decimal('21.0500')),
        ])

    def test_parse_page_without_table(self):
        self.assertEqual(services.parse_bct_table('<html>maintenance</html>'), [])

    @mock.patch('backend.pricing.services.fetch_bct_page', return_value=BCT_PAGE)
    def test_import_creates_currencies_and_rates(self, mocked_fetch):
        response = self.client.post('/api/v1/currencies/import-bct/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['imported'], 3)
        self.assertEqual(response.data['currencies'], ['EUR', 'USD', 'JPY'])

        jpy = Currency.objects.get(code='JPY')
        self.assertEqual(jpy.unit, 1000)
        rate = ExchangeRate.objects.get(currency=jpy)
        self.assertEqual(rate.rate_to_base, Decimal('0.021050'))
        self.assertEqual(rate.source, ExchangeRate.SOURCE_BCT)
        self.assertTrue(Currency.objects.filter(code='TND').exists())

        # Importing again the same day updates in place
        services.import_bct_rates()
        self.assertEqual(ExchangeRate.objects.filter(currency=jpy).count(), 1)

    @mock.patch('backend.pricing.services.requests.get', side_effect=requests.ConnectionError('timeout'))
    def test_import_network_failure(self, mocked_get):
        result = services.import_bct_rates()
        self.assertEqual(result['imported'], 0)
        self.assertIn('error', result)
        self.assertFalse(ExchangeRate.objects.exists())

    @mock.patch('backend.pricing.services.fetch_bct_page', return_value='<html></html>')
    def test_import_without_table(self, mocked_fetch):
        result = services.import_bct_rates()
        self.assertEqual(result['imported'], 0)
        self.assertEqual(result['error'], 'Rate table not found on the BCT page')

    def test_import_requires_admin(self):
        self.client.authenticate_user(TestDataFactory.create_manager())
        response = self.client.post('/api/v1/currencies/import-bct/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class ImportBCTRatesCommandTests(TestCase):
    """Test the import_bct_rates management command"""

    @mock.patch('backend.pricing.services.fetch_bct_page', return_value=BCT_PAGE)
    def test_command_imports_rates(self, mocked_fetch):
        out = StringIO()
        call_command('import_bct_rates', stdout=out)
        self.assertIn('Imported 3 rates: EUR, USD, JPY', out.getvalue())
        self.assertEqual(ExchangeRate.objects.count(), 3)

    @mock.patch('backend.pricing.services.fetch_bct_page', return_value='<html></html>')
    def test_command_failure(self, mocked_fetch):
        out = StringIO()
        call_command('import_bct_rates', stdout=out)
        self.assertIn('Rate table not found', out.getvalue())
        with self.assertRaises(CommandError):
            call_command('import_bct_rates', fail_on_error=True, stdout=StringIO())
