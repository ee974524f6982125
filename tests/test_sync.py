import threading
from unittest.mock import patch

import pytest
import responses as responses_lib
from requests.exceptions import ChunkedEncodingError

from catalog_sync import sync
from catalog_sync.exceptions import RepositoryConflict
from catalog_sync.models import Category, MediaAsset, ParentProduct, ProductVariant, Supplier
from catalog_sync.report import SyncState
from catalog_sync.repository import EntityRepository

FEED = 'https://feed.test'
MANIFEST_URL = f'{FEED}/Import/Import.txt'
CATEGORIES_URL = f'{FEED}/Import/CAT.csv'
DOC_URL = f'{FEED}/A113/A113-100804.json'
OTHER_DOC_URL = f'{FEED}/A113/A113-200000.json'
IMAGE_URL = 'https://img.test/a113-100804-990.jpg'


def manifest(*lines):
    return '\n'.join([f'{CATEGORIES_URL}|c0ffee', *lines]) + '\n'


def add_manifest(*lines):
    responses_lib.add(responses_lib.GET, MANIFEST_URL, body=manifest(*lines), status=200)


@pytest.fixture()
def shirt(make_document, make_child):
    return make_document('A113-100804', [
        make_child('A113-100804-990-M', color_code='990', size='M', image=IMAGE_URL),
        make_child('A113-100804-990-L', color_code='990', size='L', image=IMAGE_URL),
        make_child('A113-100804-120-M', color_code='120', size='M'),
    ])


@pytest.fixture()
def shirt_feed(shirt):
    responses_lib.add(responses_lib.GET, DOC_URL, json=shirt, status=200)
    responses_lib.add(responses_lib.GET, IMAGE_URL, body=b'jpeg', status=200, content_type='image/jpeg')
    return shirt


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------

@pytest.mark.django_db
class TestSyncSupplier:
    @responses_lib.activate
    def test_creates_parent_and_one_variant_per_color(self, shirt_feed):
        add_manifest(f'{DOC_URL}|ABC123')

        report = sync.start_sync('A113')

        assert report.success
        supplier_report = report.suppliers[0]
        assert supplier_report.state == SyncState.COMPLETED
        assert supplier_report.parent_products['created'] == 1
        assert supplier_report.variants['created'] == 2

        parent = ParentProduct.objects.get(sku='A113-100804')
        assert parent.content_hash == 'ABC123'
        assert parent.supplier.code == 'A113'
        assert parent.supplier_name == 'Malfini'
        assert parent.variant_count == 3

        black = parent.variants.get(sku='A113-100804-990-M')
        assert black.sizes_for_color == ['L', 'M']
        assert black.is_primary_for_color
        assert black.primary_image.url == IMAGE_URL
        assert parent.variants.get(sku='A113-100804-120-M').primary_image is None
        assert not parent.variants.filter(sku='A113-100804-990-L').exists()

    @responses_lib.activate
    def test_supplier_row_records_outcome(self, shirt_feed):
        add_manifest(f'{DOC_URL}|ABC123')
        sync.start_sync('A113')

        supplier = Supplier.objects.get(code='A113')
        assert supplier.display_name == 'Malfini'
        assert supplier.last_sync_status == SyncState.COMPLETED
        assert supplier.last_sync_at is not None
        assert '1 created' in supplier.last_sync_message

    @responses_lib.activate
    def test_second_run_on_unchanged_manifest_is_a_no_op(self, shirt_feed):
        add_manifest(f'{DOC_URL}|ABC123')
        sync.start_sync('A113')

        second = sync.start_sync('A113').as_dict()

        assert second['parent_products'] == {'created': 0, 'updated': 0, 'skipped': 1}
        assert second['variants'] == {'created': 0, 'updated': 0, 'unchanged': 2}
        assert second['errors'] == []
        assert MediaAsset.objects.count() == 1

    @responses_lib.activate
    def test_placeholder_supplier_name_is_replaced(self, make_document):
        url = f'{FEED}/A999/A999-1.json'
        add_manifest(f'{url}|h1')
        responses_lib.add(responses_lib.GET, url, json=make_document('A999-1', supplier_name='Acme BV'), status=200)

        sync.start_sync('A999')

        assert Supplier.objects.get(code='A999').display_name == 'Acme BV'


# ---------------------------------------------------------------------------
# Hash gate
# ---------------------------------------------------------------------------

@pytest.mark.django_db
class TestContentHash:
    @pytest.fixture()
    def synced(self, shirt):
        with responses_lib.RequestsMock() as rsps:
            rsps.add(rsps.GET, MANIFEST_URL, body=manifest(f'{DOC_URL}|ABC123'), status=200)
            rsps.add(rsps.GET, DOC_URL, json=shirt, status=200)
            rsps.add(rsps.GET, IMAGE_URL, body=b'jpeg', status=200, content_type='image/jpeg')
            sync.start_sync('A113')
        return shirt

    @responses_lib.activate
    def test_same_hash_skips_parent(self, synced):
        changed = dict(synced, NonLanguageDependedProductDetails={'Brand': 'Renamed', 'Weight': 9.0})
        add_manifest(f'{DOC_URL}|ABC123')
        responses_lib.add(responses_lib.GET, DOC_URL, json=changed, status=200)

        report = sync.start_sync('A113')

        assert report.suppliers[0].parent_products['skipped'] == 1
        parent = ParentProduct.objects.get(sku='A113-100804')
        assert parent.content_hash == 'ABC123'
        assert parent.brand == 'Malfini'
        assert parent.weight == 0.25

    @responses_lib.activate
    def test_children_are_still_walked_when_parent_skipped(self, synced):
        synced['ChildProducts'][0]['ProductDetails']['en']['Name'] = 'Renamed child'
        add_manifest(f'{DOC_URL}|ABC123')
        responses_lib.add(responses_lib.GET, DOC_URL, json=synced, status=200)

        report = sync.start_sync('A113')

        assert report.suppliers[0].variants['updated'] == 1
        variant = ProductVariant.objects.get(sku='A113-100804-990-M')
        assert variant.name == {'en': 'Renamed child'}

    @responses_lib.activate
    def test_new_hash_updates_parent(self, synced):
        changed = dict(synced, NonLanguageDependedProductDetails={'Brand': 'Renamed', 'Weight': 9.0})
        add_manifest(f'{DOC_URL}|XYZ999')
        responses_lib.add(responses_lib.GET, DOC_URL, json=changed, status=200)

        report = sync.start_sync('A113')

        assert report.suppliers[0].parent_products['updated'] == 1
        parent = ParentProduct.objects.get(sku='A113-100804')
        assert parent.content_hash == 'XYZ999'
        assert parent.brand == 'Renamed'

    @responses_lib.activate
    def test_failed_write_keeps_old_hash(self, synced):
        add_manifest(f'{DOC_URL}|XYZ999')
        responses_lib.add(responses_lib.GET, DOC_URL, json=synced, status=200)

        with patch.object(EntityRepository, 'upsert_variant', side_effect=RepositoryConflict('rejected')):
            report = sync.start_sync('A113')

        assert report.errors == [{'product_code': 'A113-100804', 'url': DOC_URL, 'error': 'rejected'}]
        assert ParentProduct.objects.get(sku='A113-100804').content_hash == 'ABC123'


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------

@pytest.mark.django_db
class TestFailures:
    @responses_lib.activate
    def test_failing_document_does_not_abort_run(self, shirt_feed, no_sleep):
        add_manifest(f'{OTHER_DOC_URL}|H2', f'{DOC_URL}|ABC123')
        responses_lib.add(responses_lib.GET, OTHER_DOC_URL, status=404)

        report = sync.start_sync('A113')

        assert report.suppliers[0].state == SyncState.COMPLETED
        assert report.suppliers[0].parent_products['created'] == 1
        assert len(report.errors) == 1
        assert report.errors[0]['product_code'] == 'A113-200000'
        assert report.errors[0]['url'] == OTHER_DOC_URL
        assert '404' in report.errors[0]['error']
        assert not report.success

    @responses_lib.activate
    def test_malformed_document_is_not_retried(self, no_sleep):
        add_manifest(f'{DOC_URL}|ABC123')
        responses_lib.add(responses_lib.GET, DOC_URL, body='{"Sku": "A113', status=200)

        report = sync.start_sync('A113')

        assert len(report.errors) == 1
        assert 'not valid JSON' in report.errors[0]['error']
        no_sleep.assert_not_called()
        assert ParentProduct.objects.count() == 0

    @responses_lib.activate
    def test_image_failure_is_not_a_run_error(self, shirt, no_sleep):
        add_manifest(f'{DOC_URL}|ABC123')
        responses_lib.add(responses_lib.GET, DOC_URL, json=shirt, status=200)
        responses_lib.add(responses_lib.GET, IMAGE_URL, status=500)

        report = sync.start_sync('A113')

        assert report.errors == []
        assert report.suppliers[0].images['failed'] == 1
        variant = ProductVariant.objects.get(sku='A113-100804-990-M')
        assert variant.primary_image is None
        assert [c.request.url for c in responses_lib.calls].count(IMAGE_URL) == 3

    @responses_lib.activate
    def test_underivable_variant_sku_is_reported(self, make_document, make_child):
        doc = make_document('A113-100804', [
            make_child('A113-100804-990-M', color_code='990', size='M'),
            make_child(size='L'),
        ])
        add_manifest(f'{DOC_URL}|ABC123')
        responses_lib.add(responses_lib.GET, DOC_URL, json=doc, status=200)

        report = sync.start_sync('A113')

        assert report.suppliers[0].parent_products['created'] == 1
        assert report.suppliers[0].variants['created'] == 1
        assert len(report.errors) == 1
        assert 'unknown' in report.errors[0]['error']

    @responses_lib.activate
    def test_unavailable_manifest_fails_supplier(self, no_sleep):
        responses_lib.add(responses_lib.GET, MANIFEST_URL, status=503)

        report = sync.start_sync('A113')

        assert report.suppliers[0].state == SyncState.FAILED
        assert 'unavailable' in report.suppliers[0].message
        assert not report.success
        assert Supplier.objects.get(code='A113').last_sync_status == SyncState.FAILED

    @responses_lib.activate
    def test_supplier_without_products(self):
        add_manifest(f'{DOC_URL}|ABC123')

        report = sync.start_sync('A73')

        assert report.suppliers[0].state == SyncState.NO_PRODUCTS
        assert report.success

    @responses_lib.activate
    def test_broken_manifest_download_fails_supplier(self, no_sleep):
        responses_lib.add(responses_lib.GET, MANIFEST_URL, body=ChunkedEncodingError('truncated'))

        report = sync.start_sync('A113')

        assert report.suppliers[0].state == SyncState.FAILED
        assert 'truncated' in report.suppliers[0].message
        assert not report.success

    @responses_lib.activate
    def test_broken_document_download_is_retried(self, no_sleep):
        add_manifest(f'{DOC_URL}|ABC123')
        responses_lib.add(responses_lib.GET, DOC_URL, body=ChunkedEncodingError('truncated'))

        report = sync.start_sync('A113')

        assert [c.request.url for c in responses_lib.calls].count(DOC_URL) == 3
        assert len(report.errors) == 1
        assert 'truncated' in report.errors[0]['error']

    @responses_lib.activate
    def test_unexpected_supplier_error_is_reported(self):
        add_manifest(f'{DOC_URL}|ABC123')

        with patch.object(EntityRepository, 'stored_hashes', side_effect=RuntimeError('boom')):
            report = sync.start_sync('A113')

        assert report.suppliers[0].state == SyncState.FAILED
        assert report.suppliers[0].message == 'RuntimeError: boom'
        assert Supplier.objects.get(code='A113').last_sync_status == SyncState.FAILED


# ---------------------------------------------------------------------------
# Run level
# ---------------------------------------------------------------------------

@pytest.mark.django_db
class TestRun:
    @responses_lib.activate
    def test_discovers_suppliers_when_none_configured(self, shirt_feed):
        add_manifest(f'{DOC_URL}|ABC123')

        report = sync.start_sync()

        assert [s.supplier_code for s in report.suppliers] == ['A113']
        assert Supplier.objects.get(code='A113').auto_import
        assert ParentProduct.objects.count() == 1

    @responses_lib.activate
    def test_only_auto_import_suppliers_run(self, shirt_feed):
        Supplier.objects.create(code='A113', display_name='Malfini')
        Supplier.objects.create(code='A73', display_name='Buttonboss', auto_import=False)
        add_manifest(f'{DOC_URL}|ABC123', f'{FEED}/A73/A73-1.json|h')

        report = sync.start_sync()

        assert [s.supplier_code for s in report.suppliers] == ['A113']

    @responses_lib.activate
    def test_cancelled_run_starts_no_products(self):
        add_manifest(f'{DOC_URL}|ABC123')
        cancel = threading.Event()
        cancel.set()

        report = sync.start_sync('A113', cancel_event=cancel)

        assert report.suppliers[0].state == SyncState.CANCELLED
        assert ParentProduct.objects.count() == 0
        assert all(c.request.url == MANIFEST_URL for c in responses_lib.calls)

    @responses_lib.activate
    def test_cancel_between_products(self, shirt_feed, make_document):
        add_manifest(f'{DOC_URL}|ABC123', f'{OTHER_DOC_URL}|H2')
        responses_lib.add(responses_lib.GET, OTHER_DOC_URL, json=make_document('A113-200000'), status=200)
        cancel = threading.Event()
        process_entry = sync.SyncOrchestrator.process_entry

        def process_then_cancel(orchestrator, *args):
            outcome = process_entry(orchestrator, *args)
            cancel.set()
            return outcome

        with patch.object(sync.SyncOrchestrator, 'process_entry', autospec=True, side_effect=process_then_cancel):
            report = sync.start_sync('A113', cancel_event=cancel)

        supplier_report = report.suppliers[0]
        assert supplier_report.state == SyncState.CANCELLED
        assert supplier_report.parent_products['created'] == 1
        assert supplier_report.errors == []
        assert list(ParentProduct.objects.values_list('sku', flat=True)) == ['A113-100804']
        assert OTHER_DOC_URL not in [c.request.url for c in responses_lib.calls]
        assert Supplier.objects.get(code='A113').last_sync_status == SyncState.CANCELLED

    @responses_lib.activate
    def test_report_as_dict(self, shirt_feed):
        add_manifest(f'{DOC_URL}|ABC123')

        result = sync.start_sync('A113').as_dict()

        assert result['success'] is True
        assert result['suppliers_processed'] == 1
        assert result['parent_products']['created'] == 1
        assert result['suppliers'][0]['state'] == 'completed'


# ---------------------------------------------------------------------------
# Categories, status and connection test
# ---------------------------------------------------------------------------

@pytest.mark.django_db
class TestInvocationSurface:
    @responses_lib.activate
    def test_import_categories(self):
        add_manifest(f'{DOC_URL}|ABC123')
        responses_lib.add(
            responses_lib.GET, CATEGORIES_URL,
            body='code;name;parent\nTSH;T-shirts;TEX\nTEX;Textile;\nCAP;Caps;MISSING\n', status=200,
        )

        result = sync.import_categories()

        assert result['total'] == 3
        assert result['imported'] == 2
        assert result['errors'] == 1
        assert Category.objects.get(code='TSH').parent.code == 'TEX'

    @responses_lib.activate
    def test_connection_success(self, shirt_feed):
        add_manifest(f'{DOC_URL}|ABC123', f'{FEED}/A73/A73-1.json|h')
        responses_lib.add(responses_lib.GET, f'{FEED}/A73/A73-1.json', json={'Sku': 'A73-1'}, status=200)

        result = sync.test_connection()

        assert result['status'] == 'success'
        assert result['suppliers_found'] == 2
        assert Supplier.objects.get(code='A73').display_name == 'Buttonboss'

    @responses_lib.activate
    def test_connection_failure(self, no_sleep):
        responses_lib.add(responses_lib.GET, MANIFEST_URL, status=500)

        result = sync.test_connection()

        assert result['status'] == 'failed'
        assert 'unavailable' in result['error']

    @responses_lib.activate
    def test_sync_status(self, shirt_feed):
        add_manifest(f'{DOC_URL}|ABC123')
        Supplier.objects.create(code='A73', display_name='Buttonboss', is_active=False)
        sync.start_sync('A113')

        status = sync.get_sync_status()

        assert [s['code'] for s in status] == ['A113']
        assert status[0]['name'] == 'Malfini'
        assert status[0]['last_sync_status'] == 'completed'
        assert status[0]['last_sync_at'] is not None


# ---------------------------------------------------------------------------
# Worker pools
# ---------------------------------------------------------------------------

def product_urls(count):
    return [f'{FEED}/A113/A113-{n}.json' for n in range(count)]


@pytest.fixture()
def catalog(make_document, make_child):
    docs = {}
    for n, url in enumerate(product_urls(12)):
        docs[url] = make_document(f'A113-{n}', [make_child(f'A113-{n}-990-M', color_code='990', size='M')])
        responses_lib.add(responses_lib.GET, url, json=docs[url], status=200)
    return docs


@pytest.mark.django_db(transaction=True)
class TestWorkerPools:
    @pytest.fixture(autouse=True)
    def parallel(self, settings):
        settings.CATALOG_SYNC_DOCUMENT_WORKERS = 4
        settings.CATALOG_SYNC_SUPPLIER_WORKERS = 2

    @responses_lib.activate
    def test_parallel_documents_are_all_written(self, catalog):
        add_manifest(*(f'{url}|h{n}' for n, url in enumerate(catalog)))

        report = sync.start_sync('A113')

        assert report.errors == []
        assert report.suppliers[0].parent_products['created'] == 12
        assert report.suppliers[0].variants['created'] == 12
        assert ParentProduct.objects.count() == 12
        assert ProductVariant.objects.count() == 12

    @responses_lib.activate
    def test_parallel_rerun_only_updates_changed_hashes(self, catalog):
        urls = list(catalog)
        add_manifest(*(f'{url}|h{n}' for n, url in enumerate(urls)))
        sync.start_sync('A113')

        responses_lib.replace(
            responses_lib.GET, MANIFEST_URL,
            body=manifest(*(f'{url}|{"new" if n < 3 else "h"}{n}' for n, url in enumerate(urls))),
            status=200,
        )
        report = sync.start_sync('A113').as_dict()

        assert report['parent_products'] == {'created': 0, 'updated': 3, 'skipped': 9}
        assert report['variants'] == {'created': 0, 'updated': 0, 'unchanged': 12}
        assert report['errors'] == []
        assert ParentProduct.objects.get(sku='A113-0').content_hash == 'new0'

    @responses_lib.activate
    def test_parallel_failure_stays_with_its_product(self, catalog, no_sleep):
        broken = f'{FEED}/A113/A113-broken.json'
        responses_lib.add(responses_lib.GET, broken, status=404)
        add_manifest(*(f'{url}|h{n}' for n, url in enumerate(catalog)), f'{broken}|hx')

        report = sync.start_sync('A113')

        assert report.suppliers[0].state == SyncState.COMPLETED
        assert report.suppliers[0].parent_products['created'] == 12
        assert [error['url'] for error in report.errors] == [broken]

    @responses_lib.activate
    def test_suppliers_run_side_by_side(self, shirt_feed, make_document, make_child):
        other_url = f'{FEED}/A200/A200-1.json'
        Supplier.objects.create(code='A113', display_name='Malfini')
        Supplier.objects.create(code='A200', display_name='Sunrise')
        responses_lib.add(
            responses_lib.GET, other_url, status=200,
            json=make_document('A200-1', [make_child('A200-1-RED-S', color_code='RED', size='S')], supplier_name='Sunrise'),
        )
        add_manifest(f'{DOC_URL}|ABC123', f'{other_url}|h1')

        report = sync.start_sync()

        assert report.success
        by_code = {s.supplier_code: s for s in report.suppliers}
        assert set(by_code) == {'A113', 'A200'}
        assert by_code['A113'].parent_products['created'] == 1
        assert by_code['A113'].variants['created'] == 2
        assert by_code['A200'].parent_products['created'] == 1
        assert by_code['A200'].variants['created'] == 1
        assert ParentProduct.objects.get(sku='A200-1').supplier.code == 'A200'
        assert ParentProduct.objects.get(sku='A113-100804').supplier_name == 'Malfini'
