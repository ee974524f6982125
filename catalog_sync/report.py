from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional


class SyncState:
    IDLE = 'idle'
    FETCHING_MANIFEST = 'fetching_manifest'
    NO_PRODUCTS = 'no_products'
    PROCESSING = 'processing'
    COMPLETED = 'completed'
    FAILED = 'failed'
    CANCELLED = 'cancelled'


@dataclass
class ProductOutcome:
    """What happened to one manifest entry. Built by a worker, merged by the coordinator."""

    product_code: str
    url: str
    parent: Optional[str] = None
    variants: Counter = field(default_factory=Counter)
    images: Counter = field(default_factory=Counter)
    errors: List[dict] = field(default_factory=list)
    supplier_name: Optional[str] = None

    def add_error(self, message: str, product_code: Optional[str] = None):
        self.errors.append({
            'product_code': product_code or self.product_code,
            'url': self.url,
            'error': message,
        })


@dataclass
class SupplierSyncReport:
    supplier_code: str
    state: str = SyncState.IDLE
    message: str = ''
    parent_products: Counter = field(default_factory=Counter)
    variants: Counter = field(default_factory=Counter)
    images: Counter = field(default_factory=Counter)
    errors: List[dict] = field(default_factory=list)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    def add(self, outcome: ProductOutcome):
        if outcome.parent:
            self.parent_products[outcome.parent] += 1
        self.variants.update(outcome.variants)
        self.images.update(outcome.images)
        self.errors.extend(outcome.errors)

    @property
    def success(self) -> bool:
        return self.state in (SyncState.COMPLETED, SyncState.NO_PRODUCTS) and not self.errors

    def as_dict(self) -> dict:
        return {
            'supplier_code': self.supplier_code,
            'state': self.state,
            'message': self.message,
            'parent_products': _counts(self.parent_products, ('created', 'updated', 'skipped')),
            'variants': _counts(self.variants, ('created', 'updated', 'unchanged')),
            'images': _counts(self.images, ('stored', 'failed')),
            'errors': list(self.errors),
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'finished_at': self.finished_at.isoformat() if self.finished_at else None,
        }


@dataclass
class SyncRunReport:
    suppliers: List[SupplierSyncReport] = field(default_factory=list)
    message: str = ''
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def errors(self) -> List[dict]:
        return [error for supplier in self.suppliers for error in supplier.errors]

    def totals(self, kind: str) -> Counter:
        total = Counter()
        for supplier in self.suppliers:
            total.update(getattr(supplier, kind))
        return total

    @property
    def success(self) -> bool:
        return not self.message and all(supplier.success for supplier in self.suppliers)

    def as_dict(self) -> dict:
        return {
            'success': self.success,
            'message': self.message,
            'suppliers_processed': len(self.suppliers),
            'parent_products': _counts(self.totals('parent_products'), ('created', 'updated', 'skipped')),
            'variants': _counts(self.totals('variants'), ('created', 'updated', 'unchanged')),
            'images': _counts(self.totals('images'), ('stored', 'failed')),
            'errors': self.errors,
            'suppliers': [supplier.as_dict() for supplier in self.suppliers],
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'finished_at': self.finished_at.isoformat() if self.finished_at else None,
        }


def _counts(counter: Counter, keys) -> dict:
    return {key: counter.get(key, 0) for key in keys}
