"""
Comprehensive test suite for Purchasing module
Tests: Purchase creation, goods receipt, status rules, deletion and edge cases
"""
from django.test import TestCase
from rest_framework import status
from decimal import Decimal
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.purchasing.models import Purchase
from backend.purchasing.services import PurchaseService
from backend.inventory.models import StockMovement


class PurchaseModelTests(TestCase):
    """Test Purchase and PurchaseItem model methods"""

    def setUp(self):
        self.user = TestDataFactory.create_manager()
        self.product = TestDataFactory.create_product()

    def test_purchase_str(self):
        """Test purchase string representation"""
        purchase = TestDataFactory.create_purchase(self.user, reference='PO-001')
        self.assertEqual(str(purchase), 'PO-001')

    def test_purchase_total(self):
        """Test purchase total is the sum of line totals"""
        other = TestDataFactory.create_product()
        purchase = TestDataFactory.create_purchase(
            self.user, items=[(self.product, 10, '2.50'), (other, 3, '10.00')]
        )
        self.assertEqual(purchase.total_amount, Decimal('55.00'))
        self.assertEqual(purchase.items.get(product=other).total_price, Decimal('30.00'))

    def test_compute_status(self):
        """Test status derived from received quantities"""
        purchase = TestDataFactory.create_purchase(self.user, items=[(self.product, 4, '1.00')])
        item = purchase.items.get()
        self.assertEqual(purchase.compute_status(), Purchase.STATUS_PENDING)
        item.received_qty = 2
        item.save()
        self.assertEqual(purchase.compute_status(), Purchase.STATUS_PARTIAL)
        item.received_qty = 4
        item.save()
        self.assertEqual(purchase.compute_status(), Purchase.STATUS_RECEIVED)
        self.assertEqual(item.remaining_qty, 0)


class PurchaseAPITests(TestCase):
    """Test Purchase API endpoints"""

    def setUp(self):
        self.manager = TestDataFactory.create_manager()
        self.seller = TestDataFactory.create_user()
        self.supplier = TestDataFactory.create_supplier()
        self.product = TestDataFactory.create_product(stock_current=2)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.manager)

    def _payload(self, reference='PO-API-1', **kwargs):
        data = {
            'supplier': self.supplier.id,
            'reference': reference,
            'invoice_number': 'F-2024-01',
            'items': [{'product': self.product.id, 'quantity': 10, 'unit_price': '3.20'}],
        }
        data.update(kwargs)
        return data

    def test_create_purchase(self):
        """Test creating a pending purchase does not touch stock"""
        response = self.client.post('/api/v1/purchases/', self._payload(), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], Purchase.STATUS_PENDING)
        self.assertEqual(Decimal(str(response.data['total_amount'])), Decimal('32.00'))
        self.assertEqual(len(response.data['items']), 1)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_current, 2)

    def test_create_purchase_without_items(self):
        """Test a purchase needs at least one line"""
        response = self.client.post('/api/v1/purchases/', self._payload(items=[]), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_duplicate_reference(self):
        """Test purchase references are unique"""
        self.client.post('/api/v1/purchases/', self._payload(), format='json')
        response = self.client.post('/api/v1/purchases/', self._payload(), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_seller_cannot_create_purchase(self):
        """Test sellers cannot place purchases"""
        self.client.authenticate_user(self.seller)
        response = self.client.post('/api/v1/purchases/', self._payload(), format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_list_filters(self):
        """Test filtering purchases by status and search"""
        TestDataFactory.create_purchase(self.manager, supplier=self.supplier, reference='PO-A')
        cancelled = TestDataFactory.create_purchase(self.manager, reference='PO-B')
        cancelled.status = Purchase.STATUS_CANCELLED
        cancelled.save()
        response = self.client.get('/api/v1/purchases/?status=CANCELLED')
        self.assertEqual(response.data['count'], 1)
        response = self.client.get(f'/api/v1/purchases/?supplier={self.supplier.id}&search=po-a')
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['reference'], 'PO-A')


class PurchaseReceiveTests(TestCase):
    """Test goods receipt"""

    def setUp(self):
        self.manager = TestDataFactory.create_manager()
        self.product = TestDataFactory.create_product(stock_current=1)
        self.purchase = TestDataFactory.create_purchase(self.manager, items=[(self.product, 10, '4.00')])
        self.item = self.purchase.items.get()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.manager)
        self.url = f'/api/v1/purchases/{self.purchase.id}/receive/'

    def test_partial_then_full_receipt(self):
        """Test received quantities are cumulative and only the delta enters stock"""
        response = self.client.post(self.url, {'items': [{'item': self.item.id, 'received_qty': 4}]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], Purchase.STATUS_PARTIAL)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_current, 5)

        response = self.client.post(self.url, {'items': [{'item': self.item.id, 'received_qty': 10}],
                                               'delivery_date': '2024-03-01'}, format='json')
        self.assertEqual(response.data['status'], Purchase.STATUS_RECEIVED)
        self.assertEqual(response.data['delivery_date'], '2024-03-01')
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_current, 11)

        movements = StockMovement.objects.filter(product=self.product).order_by('id')
        self.assertEqual([m.quantity for m in movements], [4, 6])
        self.assertTrue(all(m.type == StockMovement.TYPE_ENTRY for m in movements))
        self.assertEqual(movements[0].supplier, self.purchase.supplier)
        self.assertEqual(movements[0].reference, self.purchase.reference)

    def test_lowering_received_quantity_removes_stock(self):
        """Test correcting a receipt downwards"""
        PurchaseService.receive(self.purchase, [{'item': self.item.id, 'received_qty': 6}], self.manager)
        PurchaseService.receive(self.purchase, [{'item': self.item.id, 'received_qty': 5}], self.manager)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_current, 6)

    def test_receive_out_of_range(self):
        """Test received quantity above the ordered quantity"""
        response = self.client.post(self.url, {'items': [{'item': self.item.id, 'received_qty': 11}]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_current, 1)

    def test_receive_unknown_item(self):
        """Test an item that does not belong to the purchase"""
        response = self.client.post(self.url, {'items': [{'item': 99999, 'received_qty': 1}]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_receive_cancelled_purchase(self):
        """Test cancelled purchases cannot be received"""
        self.purchase.status = Purchase.STATUS_CANCELLED
        self.purchase.save()
        response = self.client.post(self.url, {'items': [{'item': self.item.id, 'received_qty': 1}]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_seller_cannot_receive(self):
        """Test only managers receive goods"""
        self.client.authenticate_user(TestDataFactory.create_user())
        response = self.client.post(self.url, {'items': [{'item': self.item.id, 'received_qty': 1}]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class PurchaseUpdateDeleteTests(TestCase):
    """Test purchase edits and deletion rules"""

    def setUp(self):
        self.manager = TestDataFactory.create_manager()
        self.admin = TestDataFactory.create_admin()
        self.product = TestDataFactory.create_product()
        self.purchase = TestDataFactory.create_purchase(self.manager, items=[(self.product, 2, '1.00')])
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.manager)

    def test_cancel_pending_purchase(self):
        """Test a pending purchase can be cancelled"""
        response = self.client.patch(f'/api/v1/purchases/{self.purchase.id}/', {'status': 'CANCELLED'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], Purchase.STATUS_CANCELLED)

    def test_status_cannot_be_set_to_received(self):
        """Test receipt statuses cannot be set by hand"""
        response = self.client.patch(f'/api/v1/purchases/{self.purchase.id}/', {'status': 'RECEIVED'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_received_purchase_status_is_locked(self):
        """Test a partially received purchase cannot be cancelled"""
        PurchaseService.receive(self.purchase, [{'item': self.purchase.items.get().id, 'received_qty': 1}],
                                self.manager)
        response = self.client.patch(f'/api/v1/purchases/{self.purchase.id}/', {'status': 'CANCELLED'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.patch(f'/api/v1/purchases/{self.purchase.id}/', {'notes': 'Livré en retard'},
                                     format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_only_admin_deletes(self):
        """Test managers cannot delete purchases"""
        response = self.client.delete(f'/api/v1/purchases/{self.purchase.id}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.client.authenticate_user(self.admin)
        response = self.client.delete(f'/api/v1/purchases/{self.purchase.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Purchase.objects.filter(pk=self.purchase.pk).exists())

    def test_received_purchase_cannot_be_deleted(self):
        """Test deleting a received purchase fails"""
        PurchaseService.receive(self.purchase, [{'item': self.purchase.items.get().id, 'received_qty': 2}],
                                self.manager)
        self.client.authenticate_user(self.admin)
        response = self.client.delete(f'/api/v1/purchases/{self.purchase.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
