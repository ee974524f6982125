from unittest.mock import patch

import pytest

MANIFEST_URL = 'https://feed.test/Import/Import.txt'


@pytest.fixture(autouse=True)
def feed_settings(settings, tmp_path):
    settings.CATALOG_FEED_MANIFEST_URL = MANIFEST_URL
    settings.CATALOG_FEED_RATE_LIMIT = 1000
    settings.CATALOG_SYNC_RETRIES = 3
    settings.CATALOG_SYNC_RETRY_DELAY = 1.0
    settings.CATALOG_SYNC_DOCUMENT_WORKERS = 1
    settings.CATALOG_SYNC_SUPPLIER_WORKERS = 1
    settings.CATALOG_LANGUAGE_PRIORITY = ['en', 'nl']
    settings.MEDIA_ROOT = str(tmp_path / 'media')
    settings.MEDIA_URL = '/media/'


@pytest.fixture()
def no_sleep():
    """Backoff sleeps of the retry helper, recorded instead of slept."""
    with patch('catalog_sync.retry.time.sleep') as mock_sleep:
        yield mock_sleep


@pytest.fixture()
def make_child():
    def _make(sku=None, color_code=None, color=None, size=None, image=None, gallery=(), **extra):
        fields = []
        if color is not None:
            fields.append({'ConfigurationName': 'Color', 'ConfigurationValue': color})
        if size is not None:
            fields.append({'ConfigurationName': 'Size', 'ConfigurationValue': size})
        details = {
            'Name': f'T-shirt {sku or ""}'.strip(),
            'Description': '<p>Soft &amp; warm</p>',
            'ConfigurationFields': fields,
        }
        if image:
            details['Image'] = {'Url': image, 'FileName': image.rsplit('/', 1)[-1]}
        if gallery:
            details['MediaGalleryImages'] = [{'Url': url} for url in gallery]
        child = {
            'ProductDetails': {'en': details},
            'NonLanguageDependedProductDetails': {'Weight': 0.2},
        }
        if sku is not None:
            child['Sku'] = sku
        if color_code is not None:
            child['UnstructuredInformation'] = {'SupplierColorCode': color_code}
        child.update(extra)
        return child
    return _make


@pytest.fixture()
def make_document():
    def _make(sku, children=(), brand='Malfini', supplier_name='Malfini', **extra):
        doc = {
            'Sku': sku,
            'ANumber': sku.split('-', 1)[0],
            'UnstructuredInformation': {'SupplierNameToShow': supplier_name},
            'NonLanguageDependedProductDetails': {
                'Brand': brand,
                'Category': 'TEXTILE',
                'Weight': 0.25,
            },
            'ProductDetails': {'en': {'Name': 'Basic T-shirt', 'Description': '<b>Cotton</b> shirt'}},
            'ChildProducts': list(children),
        }
        doc.update(extra)
        return doc
    return _make
