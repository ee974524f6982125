import logging
from typing import Any, Dict, List, NamedTuple, Optional

from django.core.exceptions import ObjectDoesNotExist
from django.db import IntegrityError, transaction

from .exceptions import RepositoryConflict, SyncError, ValidationGap
from .models import Category, MediaAsset, ParentProduct, ProductVariant, Supplier
from .retry import call_with_retry
from .transformer import compute_hash

logger = logging.getLogger(__name__)

CREATED = 'created'
UPDATED = 'updated'
UNCHANGED = 'unchanged'

# Maintained by the store itself, never part of a comparison.
VOLATILE_FIELDS = frozenset({'id', 'last_synced_at', 'created_at'})

CONFLICT_ATTEMPTS = 2
CONFLICT_RETRY_DELAY = 0.1


def to_record(instance) -> dict:
    """Flatten a model instance into a plain dict; foreign keys appear as `<name>_id`."""
    return {f.attname: f.value_from_object(instance) for f in instance._meta.concrete_fields}


class ContentStore:
    """
    Narrow natural-key store over the catalog models.

    Records are plain dicts. Every write runs in its own savepoint, so a
    rejected write leaves an enclosing transaction usable.
    """

    models = {
        'supplier': Supplier,
        'category': Category,
        'media': MediaAsset,
        'parent': ParentProduct,
        'variant': ProductVariant,
    }

    def _model(self, kind: str):
        try:
            return self.models[kind]
        except KeyError:
            raise ValueError(f"Unknown entity kind {kind!r}") from None

    def find_many(self, kind: str, **filters) -> List[dict]:
        return [to_record(obj) for obj in self._model(kind).objects.filter(**filters).order_by('pk')]

    def create(self, kind: str, data: dict) -> dict:
        model = self._model(kind)
        try:
            with transaction.atomic():
                instance = model.objects.create(**data)
        except IntegrityError as exc:
            raise RepositoryConflict(f"Create {kind} rejected: {exc}") from exc
        return to_record(instance)

    def update(self, kind: str, pk: Any, data: dict) -> dict:
        model = self._model(kind)
        try:
            with transaction.atomic():
                instance = model.objects.get(pk=pk)
                for field_name, value in data.items():
                    setattr(instance, field_name, value)
                instance.save()
        except ObjectDoesNotExist as exc:
            raise RepositoryConflict(f"Update {kind} #{pk} rejected: record is gone") from exc
        except IntegrityError as exc:
            raise RepositoryConflict(f"Update {kind} #{pk} rejected: {exc}") from exc
        return to_record(instance)


def projection(record: dict, keys) -> dict:
    return {key: record.get(key) for key in keys if key not in VOLATILE_FIELDS}


def has_changes(stored: dict, new_data: dict) -> bool:
    """Deep, key-order independent comparison over the fields present in `new_data`."""
    keys = list(new_data)
    return compute_hash(projection(stored, keys)) != compute_hash(projection(new_data, keys))


class UpsertResult(NamedTuple):
    status: str
    record: dict


class EntityRepository:
    """Natural-key upserts of catalog entities on top of a ContentStore."""

    def __init__(self, store: Optional[ContentStore] = None):
        self.store = store or ContentStore()

    def upsert(self, kind: str, lookup: dict, data: dict) -> UpsertResult:
        """
        Create the record identified by `lookup` or update it when `data` differs.

        A rejected write is retried once; the retry sees the record a
        concurrent writer created and turns into an update.
        """
        def write():
            existing = self.store.find_many(kind, **lookup)
            if not existing:
                return UpsertResult(CREATED, self.store.create(kind, {**data, **lookup}))
            current = existing[0]
            if not has_changes(current, data):
                return UpsertResult(UNCHANGED, current)
            return UpsertResult(UPDATED, self.store.update(kind, current['id'], data))

        result = call_with_retry(
            write,
            attempts=CONFLICT_ATTEMPTS,
            delay=CONFLICT_RETRY_DELAY,
            retry_on=(RepositoryConflict,),
            label=f"Upsert {kind} {lookup}",
        )
        logger.debug("Upsert %s %s: %s", kind, lookup, result.status)
        return result

    def get(self, kind: str, **lookup) -> Optional[dict]:
        records = self.store.find_many(kind, **lookup)
        return records[0] if records else None

    # -- suppliers ---------------------------------------------------------

    def get_supplier(self, code: str) -> Optional[dict]:
        return self.get('supplier', code=code)

    def upsert_supplier(self, code: str, **fields) -> UpsertResult:
        return self.upsert('supplier', {'code': code}, fields)

    def ensure_supplier(self, code: str, display_name: str) -> dict:
        """Existing supplier, or a new active auto-import one named `display_name`."""
        supplier = self.get_supplier(code)
        if supplier is not None:
            return supplier
        return self.upsert_supplier(
            code, display_name=display_name, is_active=True, auto_import=True,
        ).record

    def auto_import_suppliers(self) -> List[dict]:
        return self.store.find_many('supplier', is_active=True, auto_import=True)

    def active_suppliers(self) -> List[dict]:
        return self.store.find_many('supplier', is_active=True)

    # -- categories --------------------------------------------------------

    def upsert_category(self, code: str, name: Dict[str, str], parent_id: Optional[int] = None) -> UpsertResult:
        return self.upsert('category', {'code': code}, {'name': name, 'parent_id': parent_id})

    def import_categories(self, rows: List[dict]) -> dict:
        """
        Import parsed category rows: roots first, then children.

        Children resolve their parent by code; a missing parent fails only
        that row.
        """
        roots = [row for row in rows if not row.get('parent_code')]
        children = [row for row in rows if row.get('parent_code')]
        imported = 0
        error_details = []

        for row in roots + children:
            try:
                parent_id = None
                if row.get('parent_code'):
                    parent = self.get('category', code=row['parent_code'])
                    if parent is None:
                        raise ValidationGap(
                            f"Parent category {row['parent_code']} of {row['code']} not found"
                        )
                    parent_id = parent['id']
                self.upsert_category(row['code'], row['name'], parent_id)
                imported += 1
            except SyncError as exc:
                logger.warning("Category %s not imported: %s", row.get('code'), exc)
                error_details.append({'code': row.get('code'), 'error': str(exc)})

        logger.info(
            "Categories imported: %d of %d, %d error(s).", imported, len(rows), len(error_details),
        )
        return {
            'total': len(rows),
            'imported': imported,
            'errors': len(error_details),
            'error_details': error_details,
        }

    # -- products ----------------------------------------------------------

    def stored_hashes(self, supplier_id: int) -> Dict[str, str]:
        """SKU -> content hash of the last successful sync, for one supplier."""
        return {
            record['sku']: record['content_hash']
            for record in self.store.find_many('parent', supplier_id=supplier_id)
        }

    def get_parent(self, sku: str) -> Optional[dict]:
        return self.get('parent', sku=sku)

    def upsert_parent(self, supplier_id: int, payload: dict) -> UpsertResult:
        data = {key: value for key, value in payload.items() if key != 'sku'}
        data['supplier_id'] = supplier_id
        return self.upsert('parent', {'sku': payload['sku']}, data)

    def upsert_variant(self, parent_id: int, payload: dict) -> UpsertResult:
        data = {key: value for key, value in payload.items() if key != 'sku'}
        return self.upsert('variant', {'parent_id': parent_id, 'sku': payload['sku']}, data)

    def parents_without_supplier_name(self) -> List[dict]:
        return self.store.find_many('parent', supplier_name='')

    def set_parent_supplier_name(self, parent_id: int, name: str) -> dict:
        return self.store.update('parent', parent_id, {'supplier_name': name})
