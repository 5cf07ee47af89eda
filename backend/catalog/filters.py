import django_filters
from django.db.models import F, Q
from .models import Product


class ProductFilter(django_filters.FilterSet):
    """Filters for the product list: category, free-text search, low stock, active flag"""
    category = django_filters.NumberFilter(field_name='category_id')
    search = django_filters.CharFilter(method='filter_search')
    low_stock = django_filters.BooleanFilter(method='filter_low_stock')
    is_active = django_filters.BooleanFilter(field_name='is_active')

    class Meta:
        model = Product
        fields = ['category', 'search', 'low_stock', 'is_active']

    def filter_search(self, queryset, name, value):
        value = (value or '').strip()
        if not value:
            return queryset
        return queryset.filter(
            Q(name__icontains=value) |
            Q(sku__icontains=value) |
            Q(barcode__icontains=value) |
            Q(description__icontains=value)
        )

    def filter_low_stock(self, queryset, name, value):
        if value:
            return queryset.filter(stock_current__lte=F('stock_min'))
        if value is False:
            return queryset.filter(stock_current__gt=F('stock_min'))
        return queryset
