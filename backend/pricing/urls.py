from django.urls import path
from . import views

urlpatterns = [
    path('currencies/', views.currency_list, name='currency-list'),
    path('currencies/default/', views.default_currency, name='currency-default'),
    path('currencies/rates/', views.latest_rates, name='currency-rates'),
    path('currencies/convert/', views.convert_amount, name='currency-convert'),
    path('currencies/import-bct/', views.import_bct, name='currency-import-bct'),
]
