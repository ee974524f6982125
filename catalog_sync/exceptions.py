from typing import Optional


class SyncError(Exception):
    """Base class for everything the sync engine raises on purpose."""


class TransportError(SyncError):
    """A manifest, document or binary fetch failed."""

    def __init__(
        self,
        message: str,
        url: str = '',
        status: Optional[int] = None,
        retry_after: Optional[float] = None,
    ):
        super().__init__(message)
        self.url = url
        self.status = status
        self.retry_after = retry_after

    @property
    def retryable(self) -> bool:
        # No status means the connection itself failed (timeout, reset, DNS).
        if self.status is None:
            return True
        return self.status == 429 or self.status >= 500


class ManifestUnavailable(TransportError):
    """The supplier manifest could not be acquired."""


class ParseError(SyncError):
    """A document does not have the expected shape."""


class RepositoryConflict(SyncError):
    """The content store rejected a write."""


class ValidationGap(SyncError):
    """A required natural key could not be derived; the record is skipped."""


class SyncCancelled(SyncError):
    """Cooperative cancellation was requested; the current product is abandoned before any write."""
