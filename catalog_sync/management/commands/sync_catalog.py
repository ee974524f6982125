import json
import logging

from django.core.management.base import BaseCommand, CommandError

from catalog_sync import sync
from catalog_sync.exceptions import SyncError
from catalog_sync.suppliers import import_suppliers, update_missing_supplier_names

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = 'Synchronise the supplier catalog feed (products, categories, suppliers)'

    def add_arguments(self, parser):
        parser.add_argument(
            '--supplier',
            type=str,
            help='Sync only this supplier code (e.g. A113)',
        )
        parser.add_argument(
            '--categories',
            action='store_true',
            help='Import the category tree instead of products',
        )
        parser.add_argument(
            '--suppliers',
            action='store_true',
            help='Discover suppliers from the manifest instead of syncing products',
        )
        parser.add_argument(
            '--status',
            action='store_true',
            help='Print the last sync status of every active supplier',
        )
        parser.add_argument(
            '--test-connection',
            action='store_true',
            help='Check that the feed manifest is reachable',
        )
        parser.add_argument(
            '--update-supplier-names',
            action='store_true',
            help='Fill missing supplier names on parent products',
        )

    def handle(self, *args, **options):
        if options['status']:
            self._dump(sync.get_sync_status())
            return

        if options['test_connection']:
            result = sync.test_connection()
            self._dump(result)
            if result['status'] != 'success':
                raise CommandError(result['error'])
            return

        try:
            if options['categories']:
                self._dump(sync.import_categories())
                return
            if options['suppliers']:
                self._dump(import_suppliers())
                return
        except SyncError as exc:
            raise CommandError(str(exc)) from exc

        if options['update_supplier_names']:
            self._dump(update_missing_supplier_names())
            return

        report = sync.start_sync(options['supplier'])
        self._dump(report.as_dict())
        if report.success:
            self.stdout.write(self.style.SUCCESS('Catalog sync completed.'))
        else:
            self.stdout.write(self.style.WARNING(
                f"Catalog sync finished with {len(report.errors)} error(s). {report.message}".strip()
            ))

    def _dump(self, data):
        self.stdout.write(json.dumps(data, indent=2, ensure_ascii=False, default=str))
