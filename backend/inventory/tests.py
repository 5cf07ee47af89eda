"""
Test suite for Inventory module
Tests: Stock movements, damage records, low stock, inventory count workflow
"""
from decimal import Decimal
from io import StringIO
from unittest import mock

from django.core.management import call_command
from django.test import TestCase
from rest_framework import status
from backend.catalog.models import Product
from backend.inventory.models import StockMovement, Inventory
from backend.inventory.services import StockService, InventoryService
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient


class StockServiceTests(TestCase):
    """Test the stock movement service"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.product = TestDataFactory.create_product(stock_current=10)

    def test_apply_movement_updates_stock_and_trail(self):
        movement = StockService.apply_movement(self.product, -3, StockMovement.TYPE_EXIT, user=self.user,
                                               reference='EXIT-1', unit_price=Decimal('5.00'))
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_current, 7)
        self.assertEqual(movement.stock_before, 10)
        self.assertEqual(movement.stock_after, 7)
        self.assertEqual(movement.total_value, Decimal('15.00'))

    def test_negative_stock_refused(self):
        with self.assertRaises(ValueError):
            StockService.apply_movement(self.product, -11, StockMovement.TYPE_EXIT, user=self.user)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_current, 10)
        self.assertFalse(StockMovement.objects.exists())

    def test_zero_quantity_refused(self):
        with self.assertRaises(ValueError):
            StockService.apply_movement(self.product, 0, StockMovement.TYPE_ENTRY)

    def test_set_stock_to_same_level_is_noop(self):
        self.assertIsNone(StockService.set_stock(self.product, 10, StockMovement.TYPE_INVENTORY))


class StockAPITests(TestCase):
    """Test stock endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.product = TestDataFactory.create_product(purchase_price='4.00', stock_current=5, stock_min=2)

    def test_record_damage(self):
        data = {'product': self.product.id, 'type': 'DAMAGE', 'quantity': -2, 'reason': 'Emballage abîmé'}
        response = self.client.post('/api/v1/stock/damage/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['stock_after'], 3)
        self.assertEqual(Decimal(str(response.data['total_value'])), Decimal('8.00'))

    def test_damage_more_than_stock(self):
        data = {'product': self.product.id, 'type': 'LOSS', 'quantity': -6, 'reason': 'Perte'}
        response = self.client.post('/api/v1/stock/damage/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_damage_type_must_be_a_loss(self):
        data = {'product': self.product.id, 'type': 'ENTRY', 'quantity': 3, 'reason': 'x'}
        response = self.client.post('/api/v1/stock/damage/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_low_stock_list(self):
        TestDataFactory.create_product(name='Low', stock_current=1, stock_min=2)
        response = self.client.get('/api/v1/stock/low-stock/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([p['name'] for p in response.data], ['Low'])

    def test_movement_list_and_product_history(self):
        StockService.apply_movement(self.product, 4, StockMovement.TYPE_ENTRY, user=self.user)
        StockService.apply_movement(self.product, -1, StockMovement.TYPE_EXIT, user=self.user)
        response = self.client.get('/api/v1/stock/movements/?type=ENTRY')
        self.assertEqual(response.data['count'], 1)

        response = self.client.get(f'/api/v1/stock/products/{self.product.id}/history/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['product']['stock_current'], 8)
        self.assertEqual(response.data['movements'][0]['type'], 'EXIT')


class InventoryWorkflowTests(TestCase):
    """Test the inventory count workflow"""

    def setUp(self):
        self.seller = TestDataFactory.create_user()
        self.manager = TestDataFactory.create_manager()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.seller)
        self.product_a = TestDataFactory.create_product(stock_current=10)
        self.product_b = TestDataFactory.create_product(stock_current=4)

    def _create(self):
        response = self.client.post('/api/v1/inventories/', {'notes': 'Fin de mois'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        return response.data['id']

    def test_full_workflow_adjusts_stock(self):
        inventory_id = self._create()
        url = f'/api/v1/inventories/{inventory_id}/'

        self.assertEqual(self.client.post(url + 'start/').status_code, status.HTTP_200_OK)
        response = self.client.post(url + 'items/', {'product': self.product_a.id, 'counted_qty': 8}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['difference'], -2)
        self.client.post(url + 'items/', {'product': self.product_b.id, 'counted_qty': 4}, format='json')
        self.assertEqual(self.client.post(url + 'complete/').status_code, status.HTTP_200_OK)

        response = self.client.post(url + 'validate/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.client.authenticate_user(self.manager)
        response = self.client.post(url + 'validate/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], Inventory.STATUS_VALIDATED)
        self.assertEqual(len(response.data['movements']), 1)

        self.product_a.refresh_from_db()
        self.product_b.refresh_from_db()
        self.assertEqual(self.product_a.stock_current, 8)
        self.assertEqual(self.product_b.stock_current, 4)
        movement = StockMovement.objects.get(product=self.product_a)
        self.assertEqual(movement.type, StockMovement.TYPE_INVENTORY)
        self.assertEqual(movement.quantity, -2)

    def test_recount_replaces_line(self):
        inventory = InventoryService.create_inventory(self.seller)
        InventoryService.add_item(inventory, self.product_a, 3)
        item = InventoryService.add_item(inventory, self.product_a, 9)
        self.assertEqual(inventory.items.count(), 1)
        self.assertEqual(item.counted_qty, 9)
        self.assertEqual(item.difference, -1)

    def test_validation_uses_current_stock(self):
        inventory = InventoryService.create_inventory(self.seller)
        InventoryService.start(inventory)
        InventoryService.add_item(inventory, self.product_a, 7)
        InventoryService.complete(inventory)
        # Stock moved after counting
        StockService.apply_movement(self.product_a, -5, StockMovement.TYPE_EXIT)
        InventoryService.validate(inventory, self.manager)
        self.product_a.refresh_from_db()
        self.assertEqual(self.product_a.stock_current, 7)

    def test_failed_validation_rolls_back(self):
        """Test a failing item leaves stock, movements and status untouched"""
        inventory = InventoryService.create_inventory(self.seller)
        InventoryService.start(inventory)
        InventoryService.add_item(inventory, self.product_a, 7)
        InventoryService.add_item(inventory, self.product_b, 1)
        InventoryService.complete(inventory)

        real_set_stock = StockService.set_stock
        calls = []

        def fail_on_second_item(product, *args, **kwargs):
            calls.append(product.pk)
            if len(calls) == 2:
                raise ValueError("Stock update failed")
            return real_set_stock(product, *args, **kwargs)

        self.client.authenticate_user(self.manager)
        with mock.patch.object(StockService, 'set_stock', side_effect=fail_on_second_item):
            response = self.client.post(f'/api/v1/inventories/{inventory.id}/validate/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(len(calls), 2)

        self.product_a.refresh_from_db()
        self.product_b.refresh_from_db()
        self.assertEqual(self.product_a.stock_current, 10)
        self.assertEqual(self.product_b.stock_current, 4)
        self.assertFalse(StockMovement.objects.filter(type=StockMovement.TYPE_INVENTORY).exists())
        inventory.refresh_from_db()
        self.assertEqual(inventory.status, Inventory.STATUS_COMPLETED)
        self.assertIsNone(inventory.validated_by)

    def test_transitions_are_strict(self):
        inventory_id = self._create()
        response = self.client.post(f'/api/v1/inventories/{inventory_id}/complete/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.client.authenticate_user(self.manager)
        response = self.client.put(f'/api/v1/inventories/{inventory_id}/validate/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_closed_inventory_rejects_items(self):
        inventory = InventoryService.create_inventory(self.seller)
        InventoryService.start(inventory)
        InventoryService.complete(inventory)
        response = self.client.post(f'/api/v1/inventories/{inventory.id}/items/',
                                    {'product': self.product_a.id, 'counted_qty': 1}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_only_draft_can_be_deleted(self):
        draft_id = self._create()
        started = InventoryService.start(InventoryService.create_inventory(self.seller))
        self.assertEqual(self.client.delete(f'/api/v1/inventories/{started.id}/').status_code,
                         status.HTTP_400_BAD_REQUEST)
        self.assertEqual(self.client.delete(f'/api/v1/inventories/{draft_id}/').status_code,
                         status.HTTP_204_NO_CONTENT)

    def test_list_counts_discrepancies(self):
        inventory = InventoryService.create_inventory(self.seller)
        InventoryService.add_item(inventory, self.product_a, 10)
        InventoryService.add_item(inventory, self.product_b, 1)
        response = self.client.get('/api/v1/inventories/')
        self.assertEqual(response.data[0]['items_count'], 2)
        self.assertEqual(response.data[0]['discrepancies_count'], 1)

    def test_unknown_inventory(self):
        response = self.client.get('/api/v1/inventories/99999/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertFalse(Product.objects.filter(stock_current__lt=0).exists())


class CheckStockSyncCommandTests(TestCase):
    """Test the check_stock_sync management command"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.product = TestDataFactory.create_product(stock_current=10)

    def test_products_in_sync(self):
        StockService.apply_movement(self.product, 5, StockMovement.TYPE_ENTRY, user=self.user)
        out = StringIO()
        call_command('check_stock_sync', stdout=out)
        self.assertIn('All products are in sync', out.getvalue())

    def test_reports_discrepancy(self):
        StockService.apply_movement(self.product, 5, StockMovement.TYPE_ENTRY, user=self.user)
        Product.objects.filter(pk=self.product.pk).update(stock_current=3)
        out = StringIO()
        call_command('check_stock_sync', product_id=self.product.id, stdout=out)
        self.assertIn('last movement says 15', out.getvalue())
        self.assertIn('1 product(s) out of sync', out.getvalue())
