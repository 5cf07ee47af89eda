"""
Django management command to import today's exchange rates from the Banque Centrale de Tunisie
Meant to be run once a day from cron
"""
from django.core.management.base import BaseCommand, CommandError
from backend.pricing.services import import_bct_rates


class Command(BaseCommand):
    help = "Import today's average exchange rates published by the BCT"

    def add_arguments(self, parser):
        parser.add_argument(
            '--fail-on-error',
            action='store_true',
            help='Exit with an error status when the import fails',
        )

    def handle(self, *args, **options):
        result = import_bct_rates()

        if result.get('error'):
            if options.get('fail_on_error'):
                raise CommandError(result['error'])
            self.stdout.write(self.style.WARNING(result['error']))
            return

        self.stdout.write(self.style.SUCCESS(
            f"Imported {result['imported']} rates: {', '.join(result['currencies'])}"
        ))
