import logging
import time
from collections import deque
from threading import Lock
from typing import Optional, Tuple

import requests
from django.conf import settings

from .exceptions import ParseError, TransportError

logger = logging.getLogger(__name__)

DEFAULT_RATE_LIMIT = 10  # requests per second
DEFAULT_TIMEOUT = (5.0, 30.0)


class RateLimiter:
    """
    Sliding-window limiter shared by all workers of a run.

    At most `rate` requests start within any one-second span. A caller that
    would exceed it sleeps until the oldest request of the span ages out.
    """

    def __init__(self, rate: int, period: float = 1.0):
        self.rate = max(1, rate)
        self.period = period
        self._started = deque()
        self._lock = Lock()

    def acquire(self):
        with self._lock:
            now = time.monotonic()
            while self._started and now - self._started[0] >= self.period:
                self._started.popleft()
            if len(self._started) >= self.rate:
                pause = self.period - (now - self._started.popleft())
                if pause > 0:
                    logger.debug("Feed rate limit reached, pausing %.3fs", pause)
                    time.sleep(pause)
                now = time.monotonic()
            self._started.append(now)


class FeedClient:
    """
    Plain HTTP GET transport for the supplier feed.

    One instance is shared by every worker of a run; the session and the rate
    limiter are both safe to use from several threads for GET requests. Every
    call carries an explicit (connect, read) timeout.
    """

    def __init__(self, manifest_url: Optional[str] = None, timeout=None, rate_limit: Optional[int] = None):
        self.manifest_url = manifest_url or settings.CATALOG_FEED_MANIFEST_URL
        self._timeout = timeout or getattr(settings, 'CATALOG_FEED_TIMEOUT', DEFAULT_TIMEOUT)
        self._session = requests.Session()
        self._session.headers.update({'User-Agent': 'catalog-feed-sync/0.1'})
        self._rate_limiter = RateLimiter(
            rate_limit or getattr(settings, 'CATALOG_FEED_RATE_LIMIT', DEFAULT_RATE_LIMIT)
        )

    def fetch_text(self, url: str) -> str:
        response = self._get(url)
        response.encoding = response.encoding or 'utf-8'
        return response.text

    def fetch_manifest_text(self) -> str:
        return self.fetch_text(self.manifest_url)

    def fetch_document(self, url: str) -> dict:
        """Fetch a product document. Malformed JSON is a ParseError, never retried."""
        response = self._get(url)
        try:
            payload = response.json()
        except ValueError as exc:
            raise ParseError(f"Document {url} is not valid JSON: {exc}") from exc
        if not isinstance(payload, dict):
            raise ParseError(f"Document {url} is a {type(payload).__name__}, expected an object")
        return payload

    def fetch_binary(self, url: str) -> Tuple[bytes, str]:
        """Return (content, content-type header) for a binary asset."""
        response = self._get(url)
        return response.content, response.headers.get('Content-Type', '')

    def _get(self, url: str) -> requests.Response:
        self._rate_limiter.acquire()
        try:
            response = self._session.get(url, timeout=self._timeout)
        except requests.RequestException as exc:
            raise TransportError(f"GET {url} failed: {exc}", url=url) from exc

        if not response.ok:
            raise TransportError(
                f"GET {url} returned {response.status_code} {response.reason}",
                url=url,
                status=response.status_code,
                retry_after=retry_after_seconds(response),
            )
        return response


def retry_after_seconds(response: requests.Response) -> Optional[float]:
    """Delay requested by the server in seconds. HTTP-date values are not honoured."""
    value = response.headers.get('Retry-After', '').strip()
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        logger.debug("Ignoring non-numeric Retry-After %r", value)
        return None
