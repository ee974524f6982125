import logging
import time
from typing import Callable, Iterator, Optional, Tuple, Type, TypeVar

from django.conf import settings

from .exceptions import TransportError

logger = logging.getLogger(__name__)

T = TypeVar('T')

DEFAULT_ATTEMPTS = 3
DEFAULT_DELAY = 1.0
DEFAULT_MAX_RETRY_AFTER = 60.0


def backoff_delays(initial: float, attempts: int) -> Iterator[float]:
    """Delays slept between attempts: initial, 2*initial, 4*initial, ..."""
    delay = initial
    for _ in range(max(attempts - 1, 0)):
        yield delay
        delay *= 2


def call_with_retry(
    fn: Callable[[], T],
    *,
    attempts: int = DEFAULT_ATTEMPTS,
    delay: float = DEFAULT_DELAY,
    retry_on: Tuple[Type[BaseException], ...] = (TransportError,),
    max_retry_after: Optional[float] = None,
    label: str = '',
) -> T:
    """
    Call `fn` until it succeeds or the attempt budget is spent.

    Only exceptions listed in `retry_on` are retried, and a TransportError
    that is not retryable (e.g. 404) surfaces immediately. A server supplied
    Retry-After takes precedence over the backoff schedule but never exceeds
    `max_retry_after` (CATALOG_SYNC_MAX_RETRY_AFTER by default). The last
    failure is re-raised unchanged.
    """
    if max_retry_after is None:
        max_retry_after = getattr(settings, 'CATALOG_SYNC_MAX_RETRY_AFTER', DEFAULT_MAX_RETRY_AFTER)
    delays = backoff_delays(delay, attempts)
    attempt = 1
    while True:
        try:
            return fn()
        except retry_on as exc:
            if isinstance(exc, TransportError) and not exc.retryable:
                raise
            wait = next(delays, None)
            if wait is None:
                raise
            retry_after = getattr(exc, 'retry_after', None)
            if retry_after is not None:
                wait = min(retry_after, max_retry_after)
            logger.warning(
                "%s failed (attempt %d/%d): %s. Retrying in %.1fs.",
                label or getattr(fn, '__name__', 'operation'), attempt, attempts, exc, wait,
            )
            time.sleep(wait)
            attempt += 1
