from django.urls import path
from . import views

urlpatterns = [
    # Category endpoints
    path('categories/', views.category_list_create, name='category-list-create'),
    path('categories/<int:pk>/', views.category_detail, name='category-detail'),

    # Product endpoints
    path('products/', views.product_list_create, name='product-list-create'),
    path('products/with-variants/', views.product_create_with_variants, name='product-create-with-variants'),
    path('products/generate-sku/', views.product_generate_sku, name='product-generate-sku'),
    path('products/barcode/<str:barcode>/', views.product_by_barcode, name='product-by-barcode'),
    path('products/sku-components/<str:component_type>/', views.sku_components, name='product-sku-components'),
    path('products/<int:pk>/', views.product_detail, name='product-detail'),
    path('products/<int:pk>/label/', views.product_label, name='product-label'),
]
