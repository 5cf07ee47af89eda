"""
Test suite for Parties module
Tests: Clients, suppliers, supplier contacts and product offers
"""
from django.test import TestCase
from rest_framework import status
from backend.parties.models import Client, Supplier, SupplierProduct
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient


class ClientAPITests(TestCase):
    """Test Client API endpoints"""

    def setUp(self):
        self.seller = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.seller)

    def test_seller_creates_individual_client(self):
        data = {'first_name': 'Amine', 'last_name': 'Trabelsi', 'phone': '22123456'}
        response = self.client.post('/api/v1/clients/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['display_name'], 'Amine Trabelsi')
        self.assertEqual(response.data['country'], 'Tunisie')

    def test_company_client_requires_company_name(self):
        response = self.client.post('/api/v1/clients/', {'type': 'COMPANY', 'last_name': 'X'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('company_name', response.data)

    def test_company_display_name(self):
        response = self.client.post('/api/v1/clients/', {'type': 'COMPANY', 'company_name': 'SARL Nour'},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['display_name'], 'SARL Nour')

    def test_search_clients(self):
        TestDataFactory.create_client(first_name='Salma', phone='98111222')
        TestDataFactory.create_client(first_name='Karim', phone='98333444')
        response = self.client.get('/api/v1/clients/?search=salma')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)
        response = self.client.get('/api/v1/clients/?search=98333')
        self.assertEqual(response.data['results'][0]['first_name'], 'Karim')

    def test_detail_includes_recent_sales(self):
        client = TestDataFactory.create_client()
        response = self.client.get(f'/api/v1/clients/{client.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['sales_count'], 0)
        self.assertEqual(response.data['recent_sales'], [])

    def test_delete_client_without_sales(self):
        client = TestDataFactory.create_client()
        response = self.client.delete(f'/api/v1/clients/{client.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Client.objects.filter(pk=client.pk).exists())

    def test_unknown_client_returns_404(self):
        response = self.client.get('/api/v1/clients/99999/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


class SupplierAPITests(TestCase):
    """Test Supplier API endpoints"""

    def setUp(self):
        self.manager = TestDataFactory.create_manager()
        self.seller = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.manager)

    def test_create_supplier_with_contacts(self):
        data = {
            'name': 'Papeterie du Sud',
            'payment_terms': '30 jours',
            'discount': '5.00',
            'contacts': [{'name': 'Mourad', 'role': 'Commercial', 'phone': '74000000'}],
        }
        response = self.client.post('/api/v1/suppliers/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(len(response.data['contacts']), 1)

    def test_discount_above_hundred_rejected(self):
        response = self.client.post('/api/v1/suppliers/', {'name': 'X', 'discount': '150'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_seller_cannot_create_supplier(self):
        self.client.authenticate_user(self.seller)
        response = self.client.post('/api/v1/suppliers/', {'name': 'X'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_update_replaces_contacts(self):
        supplier = TestDataFactory.create_supplier()
        supplier.contacts.create(name='Old')
        response = self.client.patch(f'/api/v1/suppliers/{supplier.id}/',
                                     {'contacts': [{'name': 'New'}]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([c['name'] for c in response.data['contacts']], ['New'])

    def test_supplier_with_purchases_cannot_be_deleted(self):
        supplier = TestDataFactory.create_supplier()
        TestDataFactory.create_purchase(self.manager, supplier=supplier)
        self.client.authenticate_user(TestDataFactory.create_admin())
        response = self.client.delete(f'/api/v1/suppliers/{supplier.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertTrue(Supplier.objects.filter(pk=supplier.pk).exists())

    def test_supplier_offer_upsert(self):
        supplier = TestDataFactory.create_supplier()
        product = TestDataFactory.create_product()
        url = f'/api/v1/suppliers/{supplier.id}/products/'
        response = self.client.post(url, {'product': product.id, 'price': '12.50', 'supplier_sku': 'REF-1'},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        response = self.client.post(url, {'product': product.id, 'price': '11.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(SupplierProduct.objects.get(supplier=supplier, product=product).price, 11)

        response = self.client.get(f'/api/v1/suppliers/{supplier.id}/')
        self.assertEqual(len(response.data['products']), 1)
        self.assertEqual(response.data['recent_purchases'], [])
