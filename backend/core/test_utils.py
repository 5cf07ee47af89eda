"""
Test utilities and factories for creating test data
"""
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken
from backend.catalog.models import Category, Product
from backend.parties.models import Client, Supplier
from backend.purchasing.models import Purchase, PurchaseItem
from decimal import Decimal
import random
import string

User = get_user_model()


class TestDataFactory:
    """Factory class for creating test data"""

    @staticmethod
    def random_string(length=10):
        """Generate a random string"""
        return ''.join(random.choices(string.ascii_letters + string.digits, k=length))

    @staticmethod
    def create_user(username=None, email=None, password='testpass123', role=User.ROLE_SELLER, is_superuser=False):
        """Create a test user"""
        if not username:
            username = f'testuser_{TestDataFactory.random_string(6)}'
        if not email:
            email = f'{username}@test.com'
        return User.objects.create_user(
            username=username,
            email=email,
            password=password,
            role=role,
            is_superuser=is_superuser,
        )

    @staticmethod
    def create_admin(**kwargs):
        return TestDataFactory.create_user(role=User.ROLE_ADMIN, **kwargs)

    @staticmethod
    def create_manager(**kwargs):
        return TestDataFactory.create_user(role=User.ROLE_MANAGER, **kwargs)

    @staticmethod
    def create_category(name=None, parent=None):
        """Create a test category"""
        if not name:
            name = f'Category_{TestDataFactory.random_string(6)}'
        return Category.objects.create(name=name, parent=parent, description=f'Test category {name}')

    @staticmethod
    def create_product(name=None, sku=None, category=None, purchase_price='60.00', sale_price='100.00',
                       stock_current=0, stock_min=0, **kwargs):
        """Create a test product"""
        if not name:
            name = f'Product_{TestDataFactory.random_string(6)}'
        if not sku:
            sku = f'SKU-{TestDataFactory.random_string(8).upper()}'
        return Product.objects.create(
            name=name,
            sku=sku,
            category=category,
            purchase_price=Decimal(purchase_price),
            sale_price=Decimal(sale_price),
            stock_current=stock_current,
            stock_min=stock_min,
            **kwargs
        )

    @staticmethod
    def create_client(first_name=None, last_name='Test', phone=None, **kwargs):
        """Create a test client"""
        if not first_name:
            first_name = f'Client_{TestDataFactory.random_string(6)}'
        if not phone:
            phone = f'2{random.randint(1000000, 9999999)}'
        return Client.objects.create(first_name=first_name, last_name=last_name, phone=phone, **kwargs)

    @staticmethod
    def create_supplier(name=None, phone=None, email=None):
        """Create a test supplier"""
        if not name:
            name = f'Supplier_{TestDataFactory.random_string(6)}'
        if not phone:
            phone = f'7{random.randint(1000000, 9999999)}'
        if not email:
            email = f'{name.lower()}@test.com'
        return Supplier.objects.create(name=name, phone=phone, email=email)

    @staticmethod
    def create_purchase(user, supplier=None, reference=None, items=None):
        """
        Create a pending purchase.

        items: list of (product, quantity, unit_price) tuples
        """
        if not supplier:
            supplier = TestDataFactory.create_supplier()
        if not reference:
            reference = f'PO-{TestDataFactory.random_string(8).upper()}'
        purchase = Purchase.objects.create(user=user, supplier=supplier, reference=reference)
        for product, quantity, unit_price in items or []:
            PurchaseItem.objects.create(purchase=purchase, product=product, quantity=quantity,
                                        unit_price=Decimal(unit_price))
        purchase.total_amount = purchase.get_total()
        purchase.save(update_fields=['total_amount'])
        return purchase


class AuthenticatedAPIClient(APIClient):
    """APIClient with authentication helper"""

    def authenticate_user(self, user):
        """Authenticate the client with a user"""
        refresh = RefreshToken.for_user(user)
        self.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
        return self

    def logout(self):
        """Remove authentication"""
        self.credentials()
