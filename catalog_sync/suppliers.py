"""
Supplier discovery and display names.

The Supplier table is the source of truth for display names. SEED_SUPPLIER_NAMES
only bootstraps it (see the `seed_suppliers` command) and serves as a
fallback when a feed document carries no usable name.
"""
import logging
from typing import List, Optional

from django.conf import settings

from .exceptions import SyncError
from .extractor import get_nested, is_empty
from .feed_client import FeedClient
from .manifest import ManifestEntry, fetch_manifest_entries, supplier_codes
from .repository import CREATED, UPDATED, EntityRepository
from .retry import DEFAULT_ATTEMPTS, DEFAULT_DELAY, call_with_retry

logger = logging.getLogger(__name__)

PLACEHOLDER_PREFIX = 'Supplier '

SEED_SUPPLIER_NAMES = {
    'A23': 'XD Connects (Xindao)',
    'A24': 'Clipper',
    'A30': 'Senator GmbH',
    'A33': 'PF Concept World Source',
    'A34': 'PF Concept',
    'A36': 'Midocean',
    'A37': 'THE PEPPERMINT COMPANY',
    'A38': 'Inspirion GmbH Germany',
    'A42': 'Bic Graphic Europe S.A.',
    'A53': 'Toppoint B.V.',
    'A58': 'Giving Europe BV',
    'A61': 'The Gift Groothandel BV',
    'A73': 'Buttonboss',
    'A81': 'ANDA Western Europe B.V.',
    'A82': 'REFLECTS GmbH',
    'A86': 'Araco International BV',
    'A94': 'New Wave Sportswear BV',
    'A113': 'Malfini',
    'A121': 'MAGNA sweets GmbH',
    'A127': 'Hypon BV',
    'A130': 'PREMO bv',
    'A145': 'Brandcharger BV',
    'A190': 'elasto GmbH & Co. KG',
    'A227': 'Troika Germany GmbH',
    'A233': 'IMPLIVA B.V.',
    'A261': 'Promotion4u',
    'A267': 'Care Concepts BV',
    'A288': 'Paul Stricker, S.A.',
    'A301': 'Clipfactory',
    'A360': 'Bosscher International BV',
    'A371': 'Wisa',
    'A373': 'PowerCubes',
    'A389': 'HMZ FASHIONGROUP B.V.',
    'A390': 'New Wave Sportswear BV Clique',
    'A398': 'Tricorp BV',
    'A403': 'Top Tex Group',
    'A407': 'Commercial Sweets',
    'A420': 'New Wave - Craft',
    'A434': 'FARE - Guenter Fassbender GmbH',
    'A455': 'HMZ Workwear',
    'A461': 'Texet Promo',
    'A467': 'Makito Western Europe',
    'A477': 'HMZ Fashiongroup BV',
    'A480': 'L-SHOP-TEAM GmbH',
    'A510': 'Samdam',
    'A511': 'Linotex GmbH',
    'A521': 'Headwear Professional',
    'A525': 'POLYCLEAN International GmbH',
    'A529': 'MACMA Werbeartikel oHG',
    'A556': 'LoGolf',
    'A558': 'Deonet',
    'A565': 'Premium Square Europe B.V.',
    'A572': 'Prodir BV',
    'A596': 'Arvas B.V.',
    'A616': 'Colorissimo',
    'A618': 'Premiums4Cars',
}


def placeholder_name(code: str) -> str:
    return f"{PLACEHOLDER_PREFIX}{code}"


def is_placeholder(name: Optional[str], code: str) -> bool:
    return is_empty(name) or name == placeholder_name(code) or name == code


def name_from_document(doc: Optional[dict]) -> Optional[str]:
    name = get_nested(doc, 'UnstructuredInformation.SupplierNameToShow') if isinstance(doc, dict) else None
    return name.strip() if isinstance(name, str) and name.strip() else None


def resolve_display_name(code: str, doc: Optional[dict] = None) -> str:
    """Name from the feed document, else the seed table, else a placeholder."""
    return name_from_document(doc) or SEED_SUPPLIER_NAMES.get(code) or placeholder_name(code)


def _document_name(client: FeedClient, entry: ManifestEntry) -> Optional[str]:
    try:
        doc = call_with_retry(
            lambda: client.fetch_document(entry.document_url),
            attempts=getattr(settings, 'CATALOG_SYNC_RETRIES', DEFAULT_ATTEMPTS),
            delay=getattr(settings, 'CATALOG_SYNC_RETRY_DELAY', DEFAULT_DELAY),
            label=f"Document {entry.document_url}",
        )
    except SyncError as exc:
        logger.warning("Could not read supplier name from %s: %s", entry.document_url, exc)
        return None
    return name_from_document(doc)


def import_suppliers(
    client: Optional[FeedClient] = None,
    repository: Optional[EntityRepository] = None,
    entries: Optional[List[ManifestEntry]] = None,
) -> dict:
    """
    Create a Supplier for every code found in the manifest.

    New suppliers are active and auto-imported. The display name is read
    from the supplier's first product document; existing suppliers are only
    renamed while they still carry a placeholder.
    """
    client = client or FeedClient()
    repository = repository or EntityRepository()
    if entries is None:
        entries = fetch_manifest_entries(client)

    first_entry = {}
    for entry in entries:
        if entry.supplier_code:
            first_entry.setdefault(entry.supplier_code, entry)

    created = updated = 0
    errors = []
    for code in supplier_codes(entries):
        try:
            existing = repository.get_supplier(code)
            if existing is not None and not is_placeholder(existing['display_name'], code):
                continue
            name = _document_name(client, first_entry[code]) or resolve_display_name(code)
            if existing is None:
                result = repository.upsert_supplier(code, display_name=name, is_active=True, auto_import=True)
            else:
                result = repository.upsert_supplier(code, display_name=name)
            if result.status == CREATED:
                created += 1
                logger.info("Supplier %s created as %r.", code, name)
            elif result.status == UPDATED:
                updated += 1
                logger.info("Supplier %s renamed to %r.", code, name)
        except SyncError as exc:
            logger.error("Supplier %s not imported: %s", code, exc)
            errors.append({'code': code, 'error': str(exc)})

    total = len(first_entry)
    logger.info("Supplier import: %d found, %d created, %d renamed.", total, created, updated)
    return {'total': total, 'created': created, 'updated': updated, 'errors': errors}


def seed_suppliers(repository: Optional[EntityRepository] = None) -> dict:
    """Load SEED_SUPPLIER_NAMES into the Supplier table without overriding real names."""
    repository = repository or EntityRepository()
    created = renamed = 0
    for code, name in SEED_SUPPLIER_NAMES.items():
        existing = repository.get_supplier(code)
        if existing is None:
            repository.upsert_supplier(code, display_name=name, is_active=True, auto_import=True)
            created += 1
        elif is_placeholder(existing['display_name'], code):
            repository.upsert_supplier(code, display_name=name)
            renamed += 1
    return {'created': created, 'renamed': renamed}


def update_missing_supplier_names(repository: Optional[EntityRepository] = None) -> dict:
    """Fill `supplier_name` on parent products that have none, from their Supplier row."""
    repository = repository or EntityRepository()
    names = {}
    updated = skipped = 0
    for parent in repository.parents_without_supplier_name():
        supplier_id = parent['supplier_id']
        if supplier_id not in names:
            supplier = repository.get('supplier', id=supplier_id)
            name = supplier['display_name'] if supplier else ''
            names[supplier_id] = '' if supplier is None or is_placeholder(name, supplier['code']) else name
        if not names[supplier_id]:
            skipped += 1
            continue
        repository.set_parent_supplier_name(parent['id'], names[supplier_id])
        updated += 1
    logger.info("Supplier names filled on %d product(s), %d without a known name.", updated, skipped)
    return {'updated': updated, 'skipped': skipped}
