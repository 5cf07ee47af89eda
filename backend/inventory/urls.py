from django.urls import path
from . import views

urlpatterns = [
    # Stock endpoints
    path('stock/movements/', views.stock_movement_list, name='stock-movement-list'),
    path('stock/low-stock/', views.low_stock_products, name='stock-low-stock'),
    path('stock/products/<int:pk>/history/', views.product_stock_history, name='stock-product-history'),
    path('stock/damage/', views.stock_damage, name='stock-damage'),

    # Inventory count endpoints
    path('inventories/', views.inventory_list_create, name='inventory-list-create'),
    path('inventories/<int:pk>/', views.inventory_detail, name='inventory-detail'),
    path('inventories/<int:pk>/items/', views.inventory_add_item, name='inventory-add-item'),
    path('inventories/<int:pk>/items/<int:item_id>/', views.inventory_remove_item, name='inventory-remove-item'),
    path('inventories/<int:pk>/start/', views.inventory_start, name='inventory-start'),
    path('inventories/<int:pk>/complete/', views.inventory_complete, name='inventory-complete'),
    path('inventories/<int:pk>/validate/', views.inventory_validate, name='inventory-validate'),
]
