"""
Test suite for Point of Sale module
Tests: Sales, payments, cancellation, refunds, cash registers, quotes and client credits
"""
from datetime import timedelta
from decimal import Decimal

from django.test import TestCase
from django.utils import timezone
from rest_framework import status
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.inventory.models import StockMovement
from backend.pos import credits
from backend.pos.models import Sale, SaleRefund, Quote, CashRegister
from backend.pos.services import SaleService, CashRegisterService, QuoteService


def D(value):
    return Decimal(str(value))


class SaleCreationTests(TestCase):
    """Test checkout through the API"""

    def setUp(self):
        self.seller = TestDataFactory.create_user()
        self.client_obj = TestDataFactory.create_client()
        self.product = TestDataFactory.create_product(purchase_price='60.00', sale_price='100.00', stock_current=10)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.seller)

    def _sell(self, **kwargs):
        data = {'items': [{'product': self.product.id, 'quantity': 2}]}
        data.update(kwargs)
        return self.client.post('/api/v1/sales/', data, format='json')

    def test_cash_ticket(self):
        """Test a cash ticket takes stock out and is fully paid"""
        response = self._sell()
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['number'].startswith('TKT-'))
        self.assertEqual(D(response.data['total']), Decimal('200.00'))
        self.assertEqual(D(response.data['tax']), Decimal('0.00'))
        self.assertEqual(D(response.data['margin']), Decimal('80.00'))
        self.assertEqual(D(response.data['amount_paid']), Decimal('200.00'))
        self.assertEqual(D(response.data['cash_amount']), Decimal('200.00'))
        self.assertEqual(D(response.data['amount_due']), Decimal('0.00'))

        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_current, 8)
        movement = StockMovement.objects.get(product=self.product)
        self.assertEqual(movement.type, StockMovement.TYPE_SALE)
        self.assertEqual(movement.quantity, -2)
        self.assertEqual(movement.reference, response.data['number'])

    def test_invoice_adds_tax_and_due_date(self):
        """Test invoices carry tax and a default due date"""
        response = self._sell(type='INVOICE', client=self.client_obj.id,
                              items=[{'product': self.product.id, 'quantity': 1}])
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['number'].startswith('FAC-'))
        self.assertEqual(D(response.data['subtotal']), Decimal('100.00'))
        self.assertEqual(D(response.data['tax']), Decimal('20.00'))
        self.assertEqual(D(response.data['total']), Decimal('120.00'))
        self.assertIsNotNone(response.data['due_date'])

    def test_discounts(self):
        """Test line and sale discounts reduce totals and margin"""
        response = self._sell(items=[{'product': self.product.id, 'quantity': 2, 'discount': '10.00'}],
                              discount='5.00')
        self.assertEqual(D(response.data['subtotal']), Decimal('185.00'))
        self.assertEqual(D(response.data['margin']), Decimal('65.00'))
        self.assertEqual(D(response.data['items'][0]['total']), Decimal('190.00'))

    def test_insufficient_stock_counts_all_lines(self):
        """Test stock is checked against the sum of lines for one product"""
        response = self._sell(items=[{'product': self.product.id, 'quantity': 6},
                                     {'product': self.product.id, 'quantity': 6}])
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('Insufficient stock', response.data['error'])
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_current, 10)
        self.assertFalse(Sale.objects.exists())

    def test_credit_sale_requires_client(self):
        """Test credit sales need a client"""
        response = self._sell(payment_method='CREDIT')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('client', response.data)

    def test_credit_sale_is_unpaid(self):
        response = self._sell(payment_method='CREDIT', client=self.client_obj.id)
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(D(response.data['amount_paid']), Decimal('0.00'))
        self.assertIsNone(response.data['cash_amount'])
        self.assertEqual(response.data['client_name'], self.client_obj.display_name)

    def test_change_is_taken_from_cash(self):
        """Test overpayment is capped at the total"""
        response = self._sell(cash_amount='250.00')
        self.assertEqual(D(response.data['amount_paid']), Decimal('200.00'))
        self.assertEqual(D(response.data['cash_amount']), Decimal('200.00'))

    def test_mixed_payment_partial(self):
        response = self._sell(payment_method='MIXED', cash_amount='50.00', card_amount='100.00',
                              client=self.client_obj.id)
        self.assertEqual(D(response.data['amount_paid']), Decimal('150.00'))
        self.assertEqual(D(response.data['amount_due']), Decimal('50.00'))

    def test_other_payment_without_amounts_is_paid(self):
        response = self._sell(payment_method='OTHER')
        self.assertEqual(D(response.data['amount_paid']), Decimal('200.00'))
        self.assertIsNone(response.data['cash_amount'])
        self.assertIsNone(response.data['card_amount'])

    def test_list_filters(self):
        self._sell()
        self._sell(type='INVOICE')
        response = self.client.get('/api/v1/sales/?type=INVOICE')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)
        response = self.client.get('/api/v1/sales/?search=TKT')
        self.assertEqual(response.data['count'], 1)
        response = self.client.get('/api/v1/sales/?client=abc&user=me&start_date=2024-02-30')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 2)
        response = self.client.get('/api/v1/quotes/?client=abc')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        response = self.client.get('/api/v1/cash-registers/?user=me')
        self.assertEqual(response.status_code, status.HTTP_200_OK)


class SalePaymentCancelTests(TestCase):
    """Test payments and cancellation of existing sales"""

    def setUp(self):
        self.seller = TestDataFactory.create_user()
        self.manager = TestDataFactory.create_manager()
        self.client_obj = TestDataFactory.create_client()
        self.product = TestDataFactory.create_product(sale_price='100.00', stock_current=10)
        self.sale = SaleService.create_sale(
            self.seller, [{'product': self.product, 'quantity': 2}],
            client=self.client_obj, payment_method=Sale.PAYMENT_CREDIT,
        )
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.seller)

    def test_payments_until_paid(self):
        """Test partial payments and the cap on the amount due"""
        url = f'/api/v1/sales/{self.sale.id}/payment/'
        response = self.client.post(url, {'amount': '50.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(D(response.data['sale']['amount_due']), Decimal('150.00'))

        response = self.client.post(url, {'amount': '500.00', 'method': 'CARD'}, format='json')
        self.assertEqual(D(response.data['payment']['amount']), Decimal('150.00'))
        self.assertEqual(D(response.data['sale']['amount_due']), Decimal('0.00'))
        self.assertEqual(len(response.data['sale']['payments']), 2)

        response = self.client.post(url, {'amount': '1.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'Sale is already fully paid')

    def test_payment_method_cannot_be_credit(self):
        response = self.client.post(f'/api/v1/sales/{self.sale.id}/payment/',
                                    {'amount': '10.00', 'method': 'CREDIT'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_seller_cannot_cancel(self):
        response = self.client.post(f'/api/v1/sales/{self.sale.id}/cancel/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_cancel_restores_stock(self):
        """Test cancelling puts items back in stock once"""
        self.client.authenticate_user(self.manager)
        response = self.client.post(f'/api/v1/sales/{self.sale.id}/cancel/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], Sale.STATUS_CANCELLED)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_current, 10)
        movement = StockMovement.objects.get(product=self.product, type=StockMovement.TYPE_ADJUSTMENT)
        self.assertEqual(movement.reference, 'CANCELLED_SALE')

        response = self.client.post(f'/api/v1/sales/{self.sale.id}/cancel/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.post(f'/api/v1/sales/{self.sale.id}/payment/', {'amount': '5.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class SaleRefundTests(TestCase):
    """Test credit notes"""

    def setUp(self):
        self.seller = TestDataFactory.create_user()
        self.product = TestDataFactory.create_product(sale_price='100.00', stock_current=10)
        self.sale = SaleService.create_sale(self.seller, [{'product': self.product, 'quantity': 3}])
        self.item = self.sale.items.get()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.seller)
        self.url = f'/api/v1/sales/{self.sale.id}/refund/'

    def test_partial_then_full_refund(self):
        response = self.client.post(self.url, {'items': [{'sale_item': self.item.id, 'quantity': 1}],
                                               'reason': 'Défaut'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(D(response.data['refund']['amount']), Decimal('100.00'))
        self.assertTrue(response.data['refund']['avoir_number'].startswith('AV-'))
        self.assertTrue(response.data['refund']['avoir_number'].endswith('-001'))
        self.assertEqual(response.data['sale']['status'], Sale.STATUS_COMPLETED)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_current, 8)

        response = self.client.post(self.url, {'items': [{'sale_item': self.item.id, 'quantity': 3}]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.post(self.url, {'items': [{'sale_item': self.item.id, 'quantity': 2}]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['refund']['avoir_number'].endswith('-002'))
        self.assertEqual(response.data['sale']['status'], Sale.STATUS_REFUNDED)
        self.assertEqual(StockMovement.objects.filter(type=StockMovement.TYPE_REFUND).count(), 2)

    def test_refund_unknown_item(self):
        response = self.client.post(self.url, {'items': [{'sale_item': 99999, 'quantity': 1}]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_invoice_refund_prorates_discount_and_tax(self):
        """Test refund amounts follow the line discount and invoice tax"""
        sale = SaleService.create_sale(
            self.seller, [{'product': self.product, 'quantity': 2, 'discount': Decimal('10.00')}],
            type=Sale.TYPE_INVOICE,
        )
        self.assertEqual(sale.total, Decimal('228.00'))
        refund = SaleService.refund(sale, [{'sale_item': sale.items.get().id, 'quantity': 1}], self.seller)
        self.assertEqual(refund.amount, Decimal('114.00'))

    def test_refunded_sale_cannot_be_cancelled(self):
        SaleService.refund(self.sale, [{'sale_item': self.item.id, 'quantity': 1}], self.seller)
        with self.assertRaises(ValueError):
            SaleService.cancel(self.sale, self.seller)
        self.assertEqual(SaleRefund.objects.count(), 1)


class CashRegisterTests(TestCase):
    """Test cash register sessions"""

    def setUp(self):
        self.seller = TestDataFactory.create_user()
        self.other = TestDataFactory.create_user()
        self.client_obj = TestDataFactory.create_client()
        self.product = TestDataFactory.create_product(sale_price='100.00', stock_current=20)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.seller)

    def test_open_sell_close(self):
        """Test expected cash counts only cash taken since opening"""
        response = self.client.get('/api/v1/cash-registers/current/')
        self.assertIsNone(response.data)

        response = self.client.post('/api/v1/cash-registers/open/', {'initial_amount': '100.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        register_id = response.data['id']

        response = self.client.post('/api/v1/cash-registers/open/', {'initial_amount': '0'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        cash_sale = SaleService.create_sale(self.seller, [{'product': self.product, 'quantity': 2}])
        SaleService.create_sale(self.seller, [{'product': self.product, 'quantity': 1}],
                                payment_method=Sale.PAYMENT_CARD)
        SaleService.create_sale(self.seller, [{'product': self.product, 'quantity': 1}],
                                client=self.client_obj, payment_method=Sale.PAYMENT_CREDIT)
        self.assertEqual(cash_sale.cash_register_id, register_id)

        response = self.client.get('/api/v1/cash-registers/current/')
        self.assertEqual(response.data['expected_amount'], Decimal('300.00'))

        response = self.client.post(f'/api/v1/cash-registers/{register_id}/close/',
                                    {'actual_amount': '290.00', 'notes': 'Manque 10'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], CashRegister.STATUS_CLOSED)
        self.assertEqual(D(response.data['expected_amount']), Decimal('300.00'))
        self.assertEqual(D(response.data['difference']), Decimal('-10.00'))

        response = self.client.post(f'/api/v1/cash-registers/{register_id}/close/',
                                    {'actual_amount': '290.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_cancelled_sales_are_not_expected(self):
        register = CashRegisterService.open(self.seller, Decimal('20.00'))
        sale = SaleService.create_sale(self.seller, [{'product': self.product, 'quantity': 1}])
        SaleService.cancel(sale, self.seller)
        self.assertEqual(CashRegisterService.expected_amount(register), Decimal('20.00'))

    def test_other_user_cannot_close(self):
        register = CashRegisterService.open(self.seller, Decimal('0'))
        self.client.authenticate_user(self.other)
        response = self.client.post(f'/api/v1/cash-registers/{register.id}/close/', {'actual_amount': '0'},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.get(f'/api/v1/cash-registers/{register.id}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_seller_lists_own_registers(self):
        CashRegisterService.open(self.seller, Decimal('0'))
        CashRegisterService.open(self.other, Decimal('0'))
        response = self.client.get('/api/v1/cash-registers/')
        self.assertEqual(response.data['count'], 1)
        self.client.authenticate_user(TestDataFactory.create_manager())
        response = self.client.get('/api/v1/cash-registers/')
        self.assertEqual(response.data['count'], 2)


class QuoteTests(TestCase):
    """Test quotes and their conversion into invoices"""

    def setUp(self):
        self.seller = TestDataFactory.create_user()
        self.client_obj = TestDataFactory.create_client()
        self.product = TestDataFactory.create_product(sale_price='100.00', stock_current=5)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.seller)

    def _create_quote(self):
        data = {'client': self.client_obj.id, 'items': [{'product': self.product.id, 'quantity': 2}]}
        response = self.client.post('/api/v1/quotes/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        return response.data

    def test_create_quote_does_not_move_stock(self):
        quote = self._create_quote()
        self.assertTrue(quote['quote_number'].startswith('DEV-'))
        self.assertEqual(quote['status'], Quote.STATUS_DRAFT)
        self.assertEqual(D(quote['tax']), Decimal('40.00'))
        self.assertEqual(D(quote['total']), Decimal('240.00'))
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_current, 5)

    def test_status_updates(self):
        quote = self._create_quote()
        url = f"/api/v1/quotes/{quote['id']}/status/"
        response = self.client.patch(url, {'status': 'SENT'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], Quote.STATUS_SENT)
        response = self.client.patch(url, {'status': 'CONVERTED'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_partial_conversion(self):
        """Test converting part of a quote into a credit invoice"""
        quote = self._create_quote()
        item_id = quote['items'][0]['id']
        url = f"/api/v1/quotes/{quote['id']}/convert/"
        response = self.client.post(url, {'quantities': [{'quote_item': item_id, 'quantity': 1}]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['quote']['status'], Quote.STATUS_CONVERTED)
        self.assertEqual(response.data['sale']['type'], Sale.TYPE_INVOICE)
        self.assertEqual(D(response.data['sale']['total']), Decimal('120.00'))
        self.assertEqual(D(response.data['sale']['amount_paid']), Decimal('0.00'))
        self.assertEqual(response.data['sale']['quote_number'], quote['quote_number'])
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_current, 4)

        response = self.client.post(url, {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.delete(f"/api/v1/quotes/{quote['id']}/")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_partial_conversion_invoices_listed_lines_only(self):
        """Test lines left out of the quantities are not invoiced"""
        other = TestDataFactory.create_product(sale_price='50.00', stock_current=5)
        quote = QuoteService.create_quote(self.seller, [
            {'product': self.product, 'quantity': 2},
            {'product': other, 'quantity': 2},
        ], client=self.client_obj)
        listed = quote.items.get(product=self.product)
        quote, sale = QuoteService.convert_to_sale(quote, self.seller,
                                                   quantities=[{'quote_item': listed.id, 'quantity': 1}])
        self.assertEqual([(i.product_id, i.quantity) for i in sale.items.all()], [(self.product.id, 1)])
        self.assertEqual(sale.total, Decimal('120.00'))
        other.refresh_from_db()
        self.assertEqual(other.stock_current, 5)

    def test_conversion_without_client_on_credit(self):
        """Test a quote without client cannot become an unpaid credit invoice"""
        quote = QuoteService.create_quote(self.seller, [{'product': self.product, 'quantity': 1}])
        with self.assertRaises(ValueError):
            QuoteService.convert_to_sale(quote, self.seller)
        quote.refresh_from_db()
        self.assertEqual(quote.status, Quote.STATUS_DRAFT)
        self.assertFalse(Sale.objects.exists())

        response = self.client.post(f"/api/v1/quotes/{quote.id}/convert/", {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        quote, sale = QuoteService.convert_to_sale(quote, self.seller, payment_method=Sale.PAYMENT_CASH)
        self.assertEqual(sale.amount_paid, sale.total)

    def test_conversion_quantity_out_of_range(self):
        quote = QuoteService.create_quote(self.seller, [{'product': self.product, 'quantity': 2}])
        with self.assertRaises(ValueError):
            QuoteService.convert_to_sale(quote, self.seller,
                                         quantities=[{'quote_item': quote.items.get().id, 'quantity': 3}])
        quote.refresh_from_db()
        self.assertEqual(quote.status, Quote.STATUS_DRAFT)

    def test_delete_draft_quote(self):
        quote = self._create_quote()
        response = self.client.delete(f"/api/v1/quotes/{quote['id']}/")
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)


class CreditTests(TestCase):
    """Test client credit follow-up"""

    def setUp(self):
        self.seller = TestDataFactory.create_user()
        self.product = TestDataFactory.create_product(sale_price='100.00', stock_current=50)
        self.late_client = TestDataFactory.create_client(first_name='Retard')
        self.recent_client = TestDataFactory.create_client(first_name='Recent')
        today = timezone.localdate()
        SaleService.create_sale(self.seller, [{'product': self.product, 'quantity': 2}],
                                client=self.late_client, payment_method=Sale.PAYMENT_CREDIT,
                                due_date=today - timedelta(days=40))
        SaleService.create_sale(self.seller, [{'product': self.product, 'quantity': 1}],
                                client=self.recent_client, payment_method=Sale.PAYMENT_CREDIT,
                                due_date=today - timedelta(days=5))
        # Fully paid sales are not credits
        SaleService.create_sale(self.seller, [{'product': self.product, 'quantity': 1}], client=self.recent_client)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.seller)

    def test_client_list(self):
        response = self.client.get('/api/v1/credits/clients/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 2)
        first = response.data['results'][0]
        self.assertEqual(first['client_id'], self.late_client.id)
        self.assertEqual(first['total_due'], Decimal('200.00'))
        self.assertEqual(first['max_days_overdue'], 40)

    def test_client_list_filters(self):
        response = self.client.get('/api/v1/credits/clients/?overdue_min_days=30')
        self.assertEqual(response.data['count'], 1)
        response = self.client.get('/api/v1/credits/clients/?max_total=150')
        self.assertEqual(response.data['results'][0]['client_id'], self.recent_client.id)
        response = self.client.get('/api/v1/credits/clients/?search=recent')
        self.assertEqual(response.data['count'], 1)
        response = self.client.get('/api/v1/credits/clients/?client=abc')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 2)

    def test_client_detail(self):
        response = self.client.get(f'/api/v1/credits/clients/{self.late_client.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total_due'], Decimal('200.00'))
        self.assertEqual(response.data['sales'][0]['days_overdue'], 40)

    def test_overdue_count(self):
        response = self.client.get('/api/v1/credits/overdue-count/')
        self.assertEqual(response.data, {'count': 1, 'days': 30})
        response = self.client.get('/api/v1/credits/overdue-count/?days=3')
        self.assertEqual(response.data['count'], 2)

    def test_paid_credit_disappears(self):
        sale = credits.unpaid_sales(self.late_client).get()
        SaleService.record_payment(sale, Decimal('200.00'), self.seller)
        self.assertEqual(credits.overdue_client_count()[0], 0)
