from django.urls import path
from . import views

urlpatterns = [
    # Sale endpoints
    path('sales/', views.sale_list_create, name='sale-list-create'),
    path('sales/<int:pk>/', views.sale_detail, name='sale-detail'),
    path('sales/<int:pk>/payment/', views.sale_payment, name='sale-payment'),
    path('sales/<int:pk>/cancel/', views.sale_cancel, name='sale-cancel'),
    path('sales/<int:pk>/refund/', views.sale_refund, name='sale-refund'),

    # Cash register endpoints
    path('cash-registers/', views.cash_register_list, name='cash-register-list'),
    path('cash-registers/open/', views.cash_register_open, name='cash-register-open'),
    path('cash-registers/current/', views.cash_register_current, name='cash-register-current'),
    path('cash-registers/<int:pk>/', views.cash_register_detail, name='cash-register-detail'),
    path('cash-registers/<int:pk>/close/', views.cash_register_close, name='cash-register-close'),

    # Quote endpoints
    path('quotes/', views.quote_list_create, name='quote-list-create'),
    path('quotes/<int:pk>/', views.quote_detail, name='quote-detail'),
    path('quotes/<int:pk>/status/', views.quote_status, name='quote-status'),
    path('quotes/<int:pk>/convert/', views.quote_convert, name='quote-convert'),

    # Credit endpoints
    path('credits/clients/', views.credit_client_list, name='credit-client-list'),
    path('credits/clients/<int:pk>/', views.credit_client_detail, name='credit-client-detail'),
    path('credits/overdue-count/', views.credit_overdue_count, name='credit-overdue-count'),
]
