"""
Test suite for Catalog module
Tests: Categories, products, price history, SKU generation, variants, barcode lookup, labels
"""
from decimal import Decimal

from django.test import TestCase
from rest_framework import status
from backend.catalog.models import Category, Product, PriceHistory, SkuComponent
from backend.catalog.utils import generate_sku, variant_name, PRICE_REASON_CREATED
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient


class SkuUtilsTests(TestCase):
    """Test SKU helpers"""

    def test_generate_sku_from_name_and_components(self):
        self.assertEqual(generate_sku('T-shirt coton', ['Rouge', 'xl']), 'TS-ROUGE-XL')

    def test_generate_sku_skips_empty_parts(self):
        self.assertEqual(generate_sku('Stylo', ['', '  ', 'bleu']), 'ST-BLEU')

    def test_variant_name(self):
        self.assertEqual(variant_name('Chemise', {'taille': 'M'}), 'Chemise (taille: M)')
        self.assertEqual(variant_name('Chemise', {}), 'Chemise')


class CategoryAPITests(TestCase):
    """Test Category API endpoints"""

    def setUp(self):
        self.manager = TestDataFactory.create_manager()
        self.seller = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.manager)

    def test_create_category(self):
        response = self.client.post('/api/v1/categories/', {'name': 'Papeterie'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['product_count'], 0)

    def test_seller_cannot_create_category(self):
        self.client.authenticate_user(self.seller)
        response = self.client.post('/api/v1/categories/', {'name': 'Papeterie'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_category_cannot_become_its_own_ancestor(self):
        parent = TestDataFactory.create_category()
        child = TestDataFactory.create_category(parent=parent)
        response = self.client.patch(f'/api/v1/categories/{parent.id}/', {'parent': child.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_delete_category_with_products_fails(self):
        category = TestDataFactory.create_category()
        TestDataFactory.create_product(category=category)
        response = self.client.delete(f'/api/v1/categories/{category.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertTrue(Category.objects.filter(pk=category.pk).exists())

    def test_delete_empty_category(self):
        category = TestDataFactory.create_category()
        response = self.client.delete(f'/api/v1/categories/{category.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)


class ProductAPITests(TestCase):
    """Test Product API endpoints"""

    def setUp(self):
        self.manager = TestDataFactory.create_manager()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.manager)
        self.category = TestDataFactory.create_category()

    def test_create_product_records_price_history(self):
        data = {
            'name': 'Cahier A4',
            'sku': 'CA-A4',
            'category_id': self.category.id,
            'purchase_price': '2.50',
            'sale_price': '4.00',
            'stock_min': 5,
        }
        response = self.client.post('/api/v1/products/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['category']['id'], self.category.id)
        self.assertEqual(response.data['barcode'], 'CA-A4')
        history = PriceHistory.objects.get(product_id=response.data['id'])
        self.assertEqual(history.reason, PRICE_REASON_CREATED)
        self.assertEqual(history.user, self.manager)

    def test_duplicate_sku_rejected(self):
        TestDataFactory.create_product(sku='DUP-1')
        response = self.client.post('/api/v1/products/', {'name': 'Other', 'sku': 'DUP-1'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_price_change_adds_history_and_audit(self):
        product = TestDataFactory.create_product(sale_price='10.00')
        response = self.client.patch(f'/api/v1/products/{product.id}/',
                                     {'sale_price': '12.00', 'price_change_reason': 'Hausse fournisseur'},
                                     format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['price_history'][0]['reason'], 'Hausse fournisseur')
        self.assertEqual(Decimal(str(response.data['price_history'][0]['sale_price'])), Decimal('12.00'))

    def test_update_ignores_stock_current(self):
        product = TestDataFactory.create_product(stock_current=7)
        response = self.client.patch(f'/api/v1/products/{product.id}/', {'stock_current': 100}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        product.refresh_from_db()
        self.assertEqual(product.stock_current, 7)

    def test_list_filters_low_stock_and_search(self):
        TestDataFactory.create_product(name='Agrafeuse', stock_current=1, stock_min=3)
        TestDataFactory.create_product(name='Classeur', stock_current=10, stock_min=3)
        response = self.client.get('/api/v1/products/?low_stock=true')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['name'], 'Agrafeuse')

        response = self.client.get('/api/v1/products/?search=class')
        self.assertEqual(response.data['count'], 1)

    def test_find_by_barcode_falls_back_to_sku(self):
        product = TestDataFactory.create_product(sku='BC-77', barcode='1234567890123')
        response = self.client.get('/api/v1/products/barcode/1234567890123/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['id'], product.id)
        response = self.client.get('/api/v1/products/barcode/bc-77/')
        self.assertEqual(response.data['id'], product.id)
        response = self.client.get('/api/v1/products/barcode/UNKNOWN/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_manager_cannot_delete_product(self):
        product = TestDataFactory.create_product()
        response = self.client.delete(f'/api/v1/products/{product.id}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_admin_deletes_unreferenced_product(self):
        product = TestDataFactory.create_product()
        self.client.authenticate_user(TestDataFactory.create_admin())
        response = self.client.delete(f'/api/v1/products/{product.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Product.objects.filter(pk=product.pk).exists())

    def test_admin_delete_referenced_product_deactivates(self):
        product = TestDataFactory.create_product()
        TestDataFactory.create_purchase(self.manager, items=[(product, 2, '5.00')])
        self.client.authenticate_user(TestDataFactory.create_admin())
        response = self.client.delete(f'/api/v1/products/{product.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        product.refresh_from_db()
        self.assertFalse(product.is_active)


class VariantAndSkuAPITests(TestCase):
    """Test SKU generation and variant creation"""

    def setUp(self):
        self.manager = TestDataFactory.create_manager()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.manager)

    def test_generate_sku_endpoint(self):
        response = self.client.post('/api/v1/products/generate-sku/',
                                    {'name': 'Polo', 'components': ['bleu', 'M']}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['sku'], 'PO-BLEU-M')
        self.assertTrue(response.data['available'])

    def test_create_with_variants(self):
        data = {
            'name': 'Polo',
            'variants': [
                {'attributes': {'couleur': 'Bleu', 'taille': 'M'}, 'purchase_price': '8.00', 'sale_price': '15.00'},
                {'attributes': {'couleur': 'Bleu', 'taille': 'L'}, 'purchase_price': '8.00', 'sale_price': '15.00',
                 'stock_current': 4},
            ],
        }
        response = self.client.post('/api/v1/products/with-variants/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(len(response.data), 2)
        self.assertEqual({p['sku'] for p in response.data}, {'PO-BLEU-M', 'PO-BLEU-L'})
        self.assertTrue(all(p['has_variants'] for p in response.data))
        self.assertTrue(SkuComponent.objects.filter(type='taille', value='M').exists())

        response = self.client.get('/api/v1/products/sku-components/couleur/')
        self.assertEqual(response.data, ['BLEU'])

    def test_create_with_variants_rejects_existing_sku(self):
        TestDataFactory.create_product(sku='PO-ROUGE')
        data = {
            'name': 'Polo',
            'variants': [{'attributes': {'couleur': 'Rouge'}, 'purchase_price': '1.00', 'sale_price': '2.00'}],
        }
        response = self.client.post('/api/v1/products/with-variants/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(Product.objects.filter(name__startswith='Polo (').count(), 0)

    def test_create_with_variants_rejects_taken_barcodes(self):
        TestDataFactory.create_product(barcode='123456')
        TestDataFactory.create_product(barcode='PO-VERT')
        url = '/api/v1/products/with-variants/'

        data = {
            'name': 'Polo',
            'variants': [{'attributes': {'couleur': 'Bleu'}, 'barcode': '123456',
                          'purchase_price': '1.00', 'sale_price': '2.00'}],
        }
        response = self.client.post(url, data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('123456', response.data['error'])

        # Barcode defaults to the generated SKU
        data['variants'] = [{'attributes': {'couleur': 'Vert'}, 'purchase_price': '1.00', 'sale_price': '2.00'}]
        response = self.client.post(url, data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        data['variants'] = [
            {'attributes': {'couleur': 'Noir'}, 'barcode': '999', 'purchase_price': '1.00', 'sale_price': '2.00'},
            {'attributes': {'couleur': 'Blanc'}, 'barcode': '999', 'purchase_price': '1.00', 'sale_price': '2.00'},
        ]
        response = self.client.post(url, data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(Product.objects.filter(name__startswith='Polo (').count(), 0)


class LabelAPITests(TestCase):
    """Test product label rendering"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.product = TestDataFactory.create_product(name='Gomme', sku='GO-01')

    def test_label_is_png_data_url(self):
        response = self.client.get(f'/api/v1/products/{self.product.id}/label/?size=50x30')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['image'].startswith('data:image/png;base64,'))

    def test_unknown_label_format(self):
        response = self.client.get(f'/api/v1/products/{self.product.id}/label/?size=1x1')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
