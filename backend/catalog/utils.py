"""
Utility functions for catalog operations
"""
import re

from backend.catalog.models import Product, SkuComponent

PRICE_REASON_CREATED = 'Création produit'
PRICE_REASON_UPDATED = 'Mise à jour'


def clean_sku_part(value):
    """Upper-case a SKU part and strip anything that is not a letter or digit"""
    return re.sub(r'[^A-Z0-9]', '', str(value or '').upper())


def generate_sku(name, components=None):
    """
    Build a SKU from a product name and a list of component values.

    The prefix is the first two alphanumeric characters of the name, followed by each
    cleaned component, joined with '-'. Empty parts are skipped.
    """
    prefix = clean_sku_part(name)[:2]
    parts = [prefix] + [clean_sku_part(component) for component in (components or [])]
    return '-'.join(part for part in parts if part)


def sku_is_available(sku, exclude_pk=None):
    queryset = Product.objects.filter(sku=sku)
    if exclude_pk is not None:
        queryset = queryset.exclude(pk=exclude_pk)
    return not queryset.exists()


def variant_name(base_name, attributes):
    """Format a variant name like 'T-shirt (color: Red, size: M)'"""
    if not attributes:
        return base_name
    details = ', '.join(f"{key}: {value}" for key, value in attributes.items())
    return f"{base_name} ({details})"


def register_sku_components(attributes):
    """Remember attribute values so they can be suggested for future SKUs"""
    for component_type, value in (attributes or {}).items():
        cleaned = str(value).strip().upper()
        if not cleaned:
            continue
        SkuComponent.objects.get_or_create(type=str(component_type).strip().lower(), value=cleaned)


def find_product_by_code(code):
    """Find a product by exact barcode, falling back to its SKU"""
    if not code:
        return None
    code = code.strip()
    product = Product.objects.filter(barcode=code).select_related('category').first()
    if product is None:
        product = Product.objects.filter(sku__iexact=code).select_related('category').first()
    return product
