import logging

from celery import shared_task

from . import sync
from .suppliers import import_suppliers

logger = logging.getLogger(__name__)


@shared_task(bind=True, name='catalog_sync.sync_catalog')
def sync_catalog_task(self, supplier_code=None):
    """
    Synchronise the supplier feed into the catalog.

    Steps:
      1. Fetch the manifest once for the run.
      2. For every auto-import supplier (or just `supplier_code`) walk its
         product documents, skipping parents whose content hash is unchanged.
      3. Group variants per color, copy their images and upsert everything
         in one transaction per product.
      4. Record the outcome on each Supplier row and return the run report.
    """
    logger.info("Starting catalog sync task (supplier=%s).", supplier_code or 'all')
    report = sync.start_sync(supplier_code)
    return report.as_dict()


@shared_task(bind=True, name='catalog_sync.sync_supplier')
def sync_supplier_task(self, supplier_code):
    return sync.start_sync(supplier_code).as_dict()


@shared_task(bind=True, name='catalog_sync.import_categories')
def import_categories_task(self):
    logger.info("Starting category import task.")
    return sync.import_categories()


@shared_task(bind=True, name='catalog_sync.import_suppliers')
def import_suppliers_task(self):
    logger.info("Starting supplier import task.")
    return import_suppliers()
