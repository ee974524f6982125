"""
Sync orchestrator and the operations exposed to callers.

One `SyncOrchestrator` instance is one run: it owns the run context (language
priority, retry budget, cancellation flag) and a lazily fetched manifest. Per
supplier the run moves through the SyncState states; per product all writes
happen in a single transaction, and failures are recorded in the report
instead of propagating.
"""
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from contextlib import nullcontext
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Sequence

from django.conf import settings
from django.db import connection, connections, transaction
from django.utils import timezone

from .exceptions import SyncCancelled, SyncError, ValidationGap
from .extractor import DEFAULT_LANGUAGE_PRIORITY
from .feed_client import FeedClient
from .grouping import group_variants
from .images import ImageIngestor, gallery_image_name, primary_image_name
from .manifest import (
    ManifestEntry,
    categories_url,
    fetch_manifest_entries,
    fetch_manifest_text,
    for_supplier,
    parse_categories_csv,
)
from .profiles import profile_for
from .report import ProductOutcome, SupplierSyncReport, SyncRunReport, SyncState
from .repository import UNCHANGED, EntityRepository
from .retry import DEFAULT_ATTEMPTS, DEFAULT_DELAY, call_with_retry
from .suppliers import (
    import_suppliers,
    is_placeholder,
    name_from_document,
    resolve_display_name,
)
from .transformer import (
    build_parent_payload,
    build_variant_payload,
    derive_variant_sku,
    extract_product_code,
    image_sources,
)

logger = logging.getLogger(__name__)


@dataclass
class RunContext:
    language_priority: Sequence[str] = DEFAULT_LANGUAGE_PRIORITY
    attempts: int = DEFAULT_ATTEMPTS
    delay: float = DEFAULT_DELAY
    document_workers: int = 1
    supplier_workers: int = 1
    cancel_event: threading.Event = field(default_factory=threading.Event)

    @classmethod
    def from_settings(cls, cancel_event: Optional[threading.Event] = None) -> 'RunContext':
        return cls(
            language_priority=tuple(getattr(settings, 'CATALOG_LANGUAGE_PRIORITY', DEFAULT_LANGUAGE_PRIORITY)),
            attempts=getattr(settings, 'CATALOG_SYNC_RETRIES', DEFAULT_ATTEMPTS),
            delay=getattr(settings, 'CATALOG_SYNC_RETRY_DELAY', DEFAULT_DELAY),
            document_workers=max(1, getattr(settings, 'CATALOG_SYNC_DOCUMENT_WORKERS', 1)),
            supplier_workers=max(1, getattr(settings, 'CATALOG_SYNC_SUPPLIER_WORKERS', 1)),
            cancel_event=cancel_event or threading.Event(),
        )

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def check_cancelled(self):
        if self.cancelled:
            raise SyncCancelled("Sync cancelled")


class SyncOrchestrator:

    def __init__(
        self,
        client: Optional[FeedClient] = None,
        repository: Optional[EntityRepository] = None,
        ingestor: Optional[ImageIngestor] = None,
        context: Optional[RunContext] = None,
    ):
        self.context = context or RunContext.from_settings()
        self.client = client or FeedClient()
        self.repository = repository or EntityRepository()
        self.ingestor = ingestor or ImageIngestor(
            client=self.client,
            store=self.repository.store,
            attempts=self.context.attempts,
            delay=self.context.delay,
        )
        self._manifest: Optional[List[ManifestEntry]] = None
        self._manifest_lock = threading.Lock()
        # SQLite allows a single writer, so workers take turns on the database.
        self._db_access = threading.RLock() if connection.vendor == 'sqlite' else nullcontext()

    # -- run level ---------------------------------------------------------

    def run(self, supplier_code: Optional[str] = None) -> SyncRunReport:
        """Sync one supplier, or every active auto-import supplier. Never raises."""
        report = SyncRunReport(started_at=timezone.now())
        try:
            codes = [supplier_code] if supplier_code else self._auto_import_codes()
        except SyncError as exc:
            logger.error("Sync aborted before any supplier ran: %s", exc)
            report.message = str(exc)
            report.finished_at = timezone.now()
            return report
        except Exception as exc:
            logger.exception("Sync aborted unexpectedly before any supplier ran")
            report.message = f"{type(exc).__name__}: {exc}"
            report.finished_at = timezone.now()
            return report

        logger.info("Starting catalog sync for %d supplier(s): %s", len(codes), ', '.join(codes))
        if self.context.supplier_workers > 1 and len(codes) > 1:
            with ThreadPoolExecutor(max_workers=self.context.supplier_workers) as pool:
                futures = [pool.submit(self._threaded, self.run_supplier, code) for code in codes]
                report.suppliers = [future.result() for future in futures]
        else:
            report.suppliers = [self.run_supplier(code) for code in codes]

        report.finished_at = timezone.now()
        totals = report.totals('parent_products')
        logger.info(
            "Catalog sync finished. created=%d, updated=%d, skipped=%d, errors=%d.",
            totals['created'], totals['updated'], totals['skipped'], len(report.errors),
        )
        return report

    def _auto_import_codes(self) -> List[str]:
        suppliers = self.repository.auto_import_suppliers()
        if not suppliers:
            logger.info("No auto-import suppliers configured, discovering them from the manifest.")
            import_suppliers(self.client, self.repository, entries=self.manifest())
            suppliers = self.repository.auto_import_suppliers()
        return [supplier['code'] for supplier in suppliers]

    def manifest(self) -> List[ManifestEntry]:
        """The manifest entries of this run, fetched once. Raises ManifestUnavailable."""
        with self._manifest_lock:
            if self._manifest is None:
                self._manifest = fetch_manifest_entries(self.client)
                logger.info("Manifest lists %d product document(s).", len(self._manifest))
            return self._manifest

    @staticmethod
    def _threaded(fn, *args):
        try:
            return fn(*args)
        finally:
            connections.close_all()

    # -- supplier level ----------------------------------------------------

    def run_supplier(self, supplier_code: str) -> SupplierSyncReport:
        """Sync one supplier. Never raises; a failure ends the supplier in the failed state."""
        report = SupplierSyncReport(supplier_code=supplier_code, started_at=timezone.now())
        try:
            self._run_supplier(report)
        except SyncError as exc:
            logger.error("Supplier %s failed: %s", supplier_code, exc)
            report.state = SyncState.FAILED
            report.message = str(exc)
        except Exception as exc:
            logger.exception("Supplier %s failed unexpectedly", supplier_code)
            report.state = SyncState.FAILED
            report.message = f"{type(exc).__name__}: {exc}"
        return self._finish(report)

    def _run_supplier(self, report: SupplierSyncReport):
        code = report.supplier_code
        with self._db_access:
            supplier = self.repository.ensure_supplier(code, resolve_display_name(code))
        report.state = SyncState.FETCHING_MANIFEST
        entries = for_supplier(self.manifest(), code)

        if not entries:
            logger.info("Supplier %s has no products in the manifest.", code)
            report.state = SyncState.NO_PRODUCTS
            report.message = 'No products found'
            return

        report.state = SyncState.PROCESSING
        logger.info("Supplier %s: processing %d product(s).", code, len(entries))
        with self._db_access:
            stored_hashes = self.repository.stored_hashes(supplier['id'])

        for outcome in self._process_entries(entries, supplier, stored_hashes):
            report.add(outcome)
            if outcome.supplier_name and is_placeholder(supplier['display_name'], code):
                with self._db_access:
                    supplier = self.repository.upsert_supplier(code, display_name=outcome.supplier_name).record
                logger.info("Supplier %s is now named %r.", code, outcome.supplier_name)

        if self.context.cancelled:
            report.state = SyncState.CANCELLED
            report.message = 'Cancelled'
        else:
            report.state = SyncState.COMPLETED
            report.message = (
                f"{report.parent_products['created']} created, {report.parent_products['updated']} updated, "
                f"{report.parent_products['skipped']} skipped, {len(report.errors)} error(s)"
            )

    def _finish(self, report: SupplierSyncReport) -> SupplierSyncReport:
        report.finished_at = timezone.now()
        try:
            with self._db_access:
                self.repository.upsert_supplier(
                    report.supplier_code,
                    last_sync_at=report.finished_at,
                    last_sync_status=report.state,
                    last_sync_message=report.message[:1000],
                )
        except Exception:
            logger.exception("Could not record sync status of %s", report.supplier_code)
        logger.info("Supplier %s finished: %s. %s", report.supplier_code, report.state, report.message)
        return report

    def _process_entries(self, entries, supplier, stored_hashes) -> Iterator[ProductOutcome]:
        """Outcomes of all entries; nothing new starts once the run is cancelled."""
        if self.context.document_workers <= 1:
            for entry in entries:
                outcome = self.process_entry(entry, supplier, stored_hashes)
                if outcome is None:
                    logger.info("Sync of %s cancelled.", supplier['code'])
                    return
                yield outcome
            return

        with ThreadPoolExecutor(max_workers=self.context.document_workers) as pool:
            futures = [
                pool.submit(self._threaded, self.process_entry, entry, supplier, stored_hashes)
                for entry in entries
            ]
            for future in as_completed(futures):
                outcome = future.result()
                if outcome is not None:
                    yield outcome

    # -- product level -----------------------------------------------------

    def process_entry(self, entry: ManifestEntry, supplier: dict, stored_hashes: dict) -> Optional[ProductOutcome]:
        """
        Fetch, transform and persist one product document.

        Failures end up in the outcome. Returns None when the run was
        cancelled before the product wrote anything.
        """
        outcome = ProductOutcome(product_code=entry.product_code, url=entry.document_url)
        try:
            self.context.check_cancelled()
            self._process(entry, supplier, stored_hashes, outcome)
        except SyncCancelled:
            logger.info("Product %s abandoned, sync cancelled.", outcome.product_code)
            return None
        except SyncError as exc:
            logger.error("Product %s failed: %s", outcome.product_code, exc)
            outcome.parent = None
            outcome.variants.clear()
            outcome.add_error(str(exc))
        except Exception as exc:
            logger.exception("Product %s failed unexpectedly", outcome.product_code)
            outcome.parent = None
            outcome.variants.clear()
            outcome.add_error(f"{type(exc).__name__}: {exc}")
        return outcome

    def _process(self, entry: ManifestEntry, supplier: dict, stored_hashes: dict, outcome: ProductOutcome):
        ctx = self.context
        doc = call_with_retry(
            lambda: self.client.fetch_document(entry.document_url),
            attempts=ctx.attempts,
            delay=ctx.delay,
            label=f"Document {entry.document_url}",
        )
        product_code = extract_product_code(doc, entry.document_url)
        if not product_code:
            raise ValidationGap(f"No product code in {entry.document_url}")
        outcome.product_code = product_code
        outcome.supplier_name = name_from_document(doc)
        ctx.check_cancelled()

        supplier_name = '' if is_placeholder(supplier['display_name'], supplier['code']) else supplier['display_name']
        parent_payload = build_parent_payload(
            doc, product_code, entry.content_hash, supplier_name, ctx.language_priority,
        )
        parent_sku = parent_payload['sku']
        unchanged = stored_hashes.get(parent_sku) == entry.content_hash
        profile = profile_for(supplier['code'], parent_sku)

        variants = []
        for group in group_variants(doc.get('ChildProducts') or [], parent_sku, profile, ctx.language_priority):
            variant_sku = derive_variant_sku(group.primary, parent_sku, profile, ctx.language_priority)
            if not variant_sku:
                message = f"No SKU derivable for color group {group.color_code} of {parent_sku}"
                logger.warning("%s, skipping it.", message)
                outcome.add_error(message, product_code=parent_sku)
                continue
            payload = build_variant_payload(group, variant_sku, doc, profile, ctx.language_priority)
            payload.update(self._ingest_images(group.primary, variant_sku, outcome))
            variants.append(payload)

        with self._db_access, transaction.atomic():
            if unchanged:
                parent = self.repository.get_parent(parent_sku)
                outcome.parent = 'skipped'
                logger.info("Product %s unchanged, parent skipped.", parent_sku)
            else:
                result = self.repository.upsert_parent(supplier['id'], parent_payload)
                parent = result.record
                outcome.parent = 'skipped' if result.status == UNCHANGED else result.status
                logger.info("Product %s %s.", parent_sku, outcome.parent)

            for payload in variants:
                result = self.repository.upsert_variant(parent['id'], payload)
                outcome.variants[result.status] += 1

    def _ingest_images(self, child: dict, variant_sku: str, outcome: ProductOutcome) -> dict:
        primary, gallery = image_sources(child, self.context.language_priority)
        fields = {'primary_image_id': None, 'gallery_images': []}

        if primary:
            with self._db_access:
                asset = self.ingestor.ingest(primary[0], primary_image_name(variant_sku), primary[1])
            outcome.images['stored' if asset else 'failed'] += 1
            fields['primary_image_id'] = asset['id'] if asset else None

        for position, (url, filename) in enumerate(gallery, start=1):
            with self._db_access:
                asset = self.ingestor.ingest(url, gallery_image_name(variant_sku, position), filename)
            outcome.images['stored' if asset else 'failed'] += 1
            if asset:
                fields['gallery_images'].append(asset['id'])
        return fields


# ---------------------------------------------------------------------------
# Invocation surface
# ---------------------------------------------------------------------------

def start_sync(
    supplier_code: Optional[str] = None,
    cancel_event: Optional[threading.Event] = None,
    client: Optional[FeedClient] = None,
) -> SyncRunReport:
    """Run a sync of one supplier (or all auto-import suppliers) and return its report."""
    context = RunContext.from_settings(cancel_event)
    return SyncOrchestrator(client=client, context=context).run(supplier_code)


def import_categories(
    client: Optional[FeedClient] = None,
    repository: Optional[EntityRepository] = None,
) -> dict:
    """
    Import the category tree named on the first manifest line.

    Raises ManifestUnavailable (or TransportError for the category file);
    per-category failures are reported in the returned dict.
    """
    client = client or FeedClient()
    repository = repository or EntityRepository()
    url = categories_url(fetch_manifest_text(client))
    if not url:
        raise ValidationGap("Manifest does not name a categories file")

    text = call_with_retry(
        lambda: client.fetch_text(url),
        attempts=getattr(settings, 'CATALOG_SYNC_RETRIES', DEFAULT_ATTEMPTS),
        delay=getattr(settings, 'CATALOG_SYNC_RETRY_DELAY', DEFAULT_DELAY),
        label=f"Categories {url}",
    )
    rows = parse_categories_csv(text)
    logger.info("Category file %s lists %d categories.", url, len(rows))
    return repository.import_categories(rows)


def test_connection(client: Optional[FeedClient] = None) -> dict:
    """Check the feed is reachable by discovering its suppliers."""
    timestamp = timezone.now().isoformat()
    try:
        result = import_suppliers(client=client)
    except SyncError as exc:
        logger.error("Feed connection test failed: %s", exc)
        return {'status': 'failed', 'error': str(exc), 'timestamp': timestamp}
    return {'status': 'success', 'suppliers_found': result['total'], 'timestamp': timestamp}


def get_sync_status(repository: Optional[EntityRepository] = None) -> List[dict]:
    repository = repository or EntityRepository()
    return [
        {
            'code': supplier['code'],
            'name': supplier['display_name'],
            'auto_import': supplier['auto_import'],
            'last_sync_at': supplier['last_sync_at'].isoformat() if supplier['last_sync_at'] else None,
            'last_sync_status': supplier['last_sync_status'],
            'last_sync_message': supplier['last_sync_message'],
        }
        for supplier in repository.active_suppliers()
    ]
