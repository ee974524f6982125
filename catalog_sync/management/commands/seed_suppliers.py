from django.core.management.base import BaseCommand

from catalog_sync.suppliers import seed_suppliers


class Command(BaseCommand):
    help = 'Load the built-in supplier code/name table into the Supplier table'

    def handle(self, *args, **options):
        result = seed_suppliers()
        self.stdout.write(self.style.SUCCESS(
            f"Suppliers seeded: {result['created']} created, {result['renamed']} renamed."
        ))
