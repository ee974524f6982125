import logging
import re
from dataclasses import dataclass
from typing import List, Optional
from urllib.parse import urlparse

from django.conf import settings

from .exceptions import ManifestUnavailable, TransportError
from .retry import DEFAULT_ATTEMPTS, DEFAULT_DELAY, call_with_retry

logger = logging.getLogger(__name__)

SUPPLIER_CODE_RE = re.compile(r'^[A-Z0-9]+$')


@dataclass(frozen=True)
class ManifestEntry:
    document_url: str
    content_hash: str

    @property
    def product_code(self) -> str:
        return product_code_from_url(self.document_url)

    @property
    def supplier_code(self) -> Optional[str]:
        return supplier_code_from_url(self.document_url)


def _path_segments(url: str) -> List[str]:
    return [s for s in urlparse(url).path.split('/') if s]


def product_code_from_url(url: str) -> str:
    """`https://host/A113/A113-100804.json` -> `A113-100804`."""
    segments = _path_segments(url)
    if not segments:
        return ''
    file_name = segments[-1]
    return file_name[:-5] if file_name.lower().endswith('.json') else file_name


def supplier_code_from_url(url: str) -> Optional[str]:
    """The directory segment holding the document, if it looks like a supplier code."""
    segments = _path_segments(url)
    if len(segments) < 2:
        return None
    candidate = segments[-2]
    return candidate if SUPPLIER_CODE_RE.match(candidate) else None


def categories_url(manifest_text: str) -> Optional[str]:
    """The first non-empty manifest line is reserved for the categories file."""
    for line in manifest_text.split('\n'):
        line = line.strip()
        if line:
            return line.split('|', 1)[0].strip()
    return None


def parse_manifest(manifest_text: str, supplier_code: Optional[str] = None) -> List[ManifestEntry]:
    """
    Parse `<url>|<hash>` lines into entries, in file order.

    The first line (categories file) is skipped. When `supplier_code` is
    given only documents whose directory segment equals it are kept.
    """
    entries = []
    lines = [line.strip() for line in manifest_text.split('\n')]
    lines = [line for line in lines if line]

    for line in lines[1:]:
        if '|' not in line:
            logger.debug("Ignoring manifest line without hash: %r", line)
            continue
        url, content_hash = (part.strip() for part in line.split('|', 1))
        if not url or not content_hash:
            continue
        if url.lower().endswith('.csv'):
            continue
        entries.append(ManifestEntry(document_url=url, content_hash=content_hash))

    return for_supplier(entries, supplier_code) if supplier_code else entries


def for_supplier(entries: List[ManifestEntry], supplier_code: str) -> List[ManifestEntry]:
    """Entries with `supplier_code` as one of their directory segments, order kept."""
    return [e for e in entries if supplier_code in _path_segments(e.document_url)[:-1]]


def supplier_codes(entries: List[ManifestEntry]) -> List[str]:
    """Distinct supplier codes in first-seen order."""
    seen = {}
    for entry in entries:
        code = entry.supplier_code
        if code and code not in seen:
            seen[code] = None
    return list(seen)


def parse_categories_csv(text: str) -> List[dict]:
    """Parse `code;name;parentCode` rows, skipping the header row."""
    categories = []
    rows = [row for row in text.replace('\r', '').split('\n') if row.strip()]
    for row in rows[1:]:
        parts = row.split(';')
        code = parts[0].strip() if parts else ''
        name = parts[1].strip() if len(parts) > 1 else ''
        parent_code = parts[2].strip() if len(parts) > 2 else ''
        if not code or not name:
            logger.debug("Skipping incomplete category row: %r", row)
            continue
        categories.append({
            'code': code,
            'name': {'en': name},
            'parent_code': parent_code or None,
        })
    return categories


# ---------------------------------------------------------------------------
# Fetching
# ---------------------------------------------------------------------------

def fetch_manifest_text(client) -> str:
    """Raw manifest text from `client` (a FeedClient), with retry. Raises ManifestUnavailable."""
    try:
        return call_with_retry(
            client.fetch_manifest_text,
            attempts=getattr(settings, 'CATALOG_SYNC_RETRIES', DEFAULT_ATTEMPTS),
            delay=getattr(settings, 'CATALOG_SYNC_RETRY_DELAY', DEFAULT_DELAY),
            label='Manifest fetch',
        )
    except TransportError as exc:
        raise ManifestUnavailable(
            f"Manifest {client.manifest_url} unavailable: {exc}",
            url=client.manifest_url,
            status=exc.status,
        ) from exc


def fetch_manifest_entries(client, supplier_code: Optional[str] = None) -> List[ManifestEntry]:
    return parse_manifest(fetch_manifest_text(client), supplier_code)
