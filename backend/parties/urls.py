from django.urls import path
from . import views

urlpatterns = [
    # Client endpoints
    path('clients/', views.client_list_create, name='client-list-create'),
    path('clients/<int:pk>/', views.client_detail, name='client-detail'),

    # Supplier endpoints
    path('suppliers/', views.supplier_list_create, name='supplier-list-create'),
    path('suppliers/<int:pk>/', views.supplier_detail, name='supplier-detail'),
    path('suppliers/<int:pk>/products/', views.supplier_products, name='supplier-products'),
]
