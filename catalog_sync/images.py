import logging
from typing import Optional, Tuple
from urllib.parse import urlparse

from django.conf import settings
from django.core.files.base import ContentFile
from django.core.files.storage import default_storage

from .exceptions import TransportError
from .feed_client import FeedClient
from .repository import ContentStore
from .retry import DEFAULT_ATTEMPTS, DEFAULT_DELAY, call_with_retry

logger = logging.getLogger(__name__)

STORAGE_PREFIX = 'catalog'
DEFAULT_EXTENSION = 'jpg'
KNOWN_EXTENSIONS = ('png', 'gif', 'webp')
MIME_TYPES = {
    'jpg': 'image/jpeg',
    'png': 'image/png',
    'gif': 'image/gif',
    'webp': 'image/webp',
}


def infer_extension(content_type: str, url: str) -> str:
    """Extension from the content type, else from the URL suffix, else jpg."""
    content_type = (content_type or '').lower()
    for ext in KNOWN_EXTENSIONS:
        if ext in content_type:
            return ext
    path = urlparse(url or '').path.lower()
    for ext in KNOWN_EXTENSIONS:
        if path.endswith(f'.{ext}'):
            return ext
    return DEFAULT_EXTENSION


def primary_image_name(variant_sku: str) -> str:
    return f"{variant_sku}-primary"


def gallery_image_name(variant_sku: str, position: int) -> str:
    return f"{variant_sku}-gallery-{position}"


class ObjectStorage:
    """`put(key, data, content_type) -> public URL` over a Django storage backend."""

    def __init__(self, storage=None, prefix: str = STORAGE_PREFIX):
        self._storage = storage or default_storage
        self._prefix = prefix

    def put(self, key: str, data: bytes, content_type: str = '') -> str:
        path = f"{self._prefix}/{key}" if self._prefix else key
        # Deterministic keys: a re-upload replaces the previous object.
        if self._storage.exists(path):
            self._storage.delete(path)
        saved_path = self._storage.save(path, ContentFile(data))
        logger.debug("Stored %s (%d bytes, %s)", saved_path, len(data), content_type or 'unknown type')
        return self._storage.url(saved_path)


class ImageIngestor:
    """
    Copy supplier images to object storage and register them as MediaAsset.

    The registered URL is the supplier's original URL; the storage copy is
    kept in `provider_metadata['backup_url']`. Download and upload failures
    are retried and then swallowed: the caller simply gets None.
    """

    def __init__(
        self,
        client: Optional[FeedClient] = None,
        storage: Optional[ObjectStorage] = None,
        store: Optional[ContentStore] = None,
        attempts: Optional[int] = None,
        delay: Optional[float] = None,
    ):
        self.client = client or FeedClient()
        self.storage = storage or ObjectStorage()
        self.store = store or ContentStore()
        self.attempts = attempts or getattr(settings, 'CATALOG_SYNC_RETRIES', DEFAULT_ATTEMPTS)
        self.delay = delay if delay is not None else getattr(settings, 'CATALOG_SYNC_RETRY_DELAY', DEFAULT_DELAY)

    def ingest(self, url: str, logical_name: str, original_filename: Optional[str] = None) -> Optional[dict]:
        if not url:
            return None

        existing = self.store.find_many('media', name=logical_name)
        if existing and existing[0]['url'] == url:
            logger.debug("Reusing media asset %s for %s", logical_name, url)
            return existing[0]

        try:
            key, content_type, size, backup_url = call_with_retry(
                lambda: self._transfer(url, logical_name),
                attempts=self.attempts,
                delay=self.delay,
                retry_on=(TransportError, OSError),
                label=f"Image {url}",
            )
        except (TransportError, OSError) as exc:
            logger.warning("Image %s for %s skipped: %s", url, logical_name, exc)
            return None

        ext = key.rsplit('.', 1)[-1]
        data = {
            'url': url,
            'ext': ext,
            'mime': content_type or MIME_TYPES[ext],
            'size_kb': round(size / 1024, 2),
            'caption': original_filename or logical_name,
            'alternative_text': logical_name,
            'provider_metadata': {
                'original_url': url,
                'backup_url': backup_url,
                'storage_key': key,
                'original_filename': original_filename or '',
            },
        }
        if existing:
            asset = self.store.update('media', existing[0]['id'], data)
        else:
            asset = self.store.create('media', {'name': logical_name, **data})
        logger.info("Image %s stored as %s", url, key)
        return asset

    def _transfer(self, url: str, logical_name: str) -> Tuple[str, str, int, str]:
        content, content_type = self.client.fetch_binary(url)
        content_type = content_type.split(';', 1)[0].strip()
        key = f"{logical_name}.{infer_extension(content_type, url)}"
        backup_url = self.storage.put(key, content, content_type)
        return key, content_type, len(content), backup_url
