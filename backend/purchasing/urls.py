from django.urls import path
from . import views

urlpatterns = [
    path('purchases/', views.purchase_list_create, name='purchase-list-create'),
    path('purchases/<int:pk>/', views.purchase_detail, name='purchase-detail'),
    path('purchases/<int:pk>/receive/', views.purchase_receive, name='purchase-receive'),
]
