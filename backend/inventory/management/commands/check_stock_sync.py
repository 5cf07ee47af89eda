"""
Django management command to check that product stock levels match their stock movement trail
"""
from django.core.management.base import BaseCommand
from backend.catalog.models import Product
from backend.inventory.models import StockMovement


class Command(BaseCommand):
    help = 'Compare each product stock with the stock_after of its latest movement'

    def add_arguments(self, parser):
        parser.add_argument(
            '--product-id',
            type=int,
            help='Check a single product',
        )
        parser.add_argument(
            '--show-all',
            action='store_true',
            help='Show all products, not just discrepancies',
        )

    def handle(self, *args, **options):
        product_id = options.get('product_id')
        show_all = options.get('show_all', False)

        if product_id:
            products = Product.objects.filter(id=product_id)
        else:
            products = Product.objects.all().order_by('id')

        self.stdout.write("=" * 80)
        self.stdout.write(self.style.SUCCESS("STOCK vs MOVEMENTS SYNCHRONIZATION"))
        self.stdout.write("=" * 80)
        self.stdout.write(f"Total Products: {products.count()}")

        discrepancies = 0
        for product in products:
            last = (
                StockMovement.objects.filter(product=product)
                .order_by('-created_at', '-id')
                .values_list('stock_after', flat=True)
                .first()
            )
            # Products never moved have nothing to compare against
            if last is None:
                if show_all:
                    self.stdout.write(f"  {product.sku}: {product.stock_current} (no movements)")
                continue

            if last != product.stock_current:
                discrepancies += 1
                self.stdout.write(self.style.ERROR(
                    f"  {product.sku}: stock {product.stock_current}, last movement says {last}"
                ))
            elif show_all:
                self.stdout.write(f"  {product.sku}: {product.stock_current} OK")

        self.stdout.write("")
        if discrepancies:
            self.stdout.write(self.style.WARNING(f"{discrepancies} product(s) out of sync"))
        else:
            self.stdout.write(self.style.SUCCESS("All products are in sync"))
