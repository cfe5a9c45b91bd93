"""
Fetch-With-Fallback

Wraps backend reads so the dashboard always gets a usable dataset.
A failed read yields the caller's fallback tagged with the failure reason;
it is logged and never raised.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Generic, Hashable, Mapping, Optional, TypeVar

from .exceptions import (
    BackendConnectionError,
    BackendResponseError,
    BackendTimeoutError,
    MalformedResponseError,
    NotFoundError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")
K = TypeVar("K", bound=Hashable)

DEFAULT_FETCH_TIMEOUT = 8.0


class Source(str, Enum):
    LIVE = "live"
    FALLBACK = "fallback"


class FallbackReason(str, Enum):
    NETWORK = "network"
    HTTP_STATUS = "http_status"
    NOT_FOUND = "not_found"
    MALFORMED = "malformed"
    TIMEOUT = "timeout"
    UNEXPECTED = "unexpected"


@dataclass(frozen=True)
class FetchResult(Generic[T]):
    """Fetched value, or the fallback plus why it was used."""

    value: T
    source: Source = Source.LIVE
    reason: Optional[FallbackReason] = None
    error: Optional[str] = None

    @property
    def is_fallback(self) -> bool:
        return self.source is Source.FALLBACK

    def describe(self) -> dict[str, Any]:
        """Compact form for the `sources` map of a page model."""
        if not self.is_fallback:
            return {"source": self.source.value}
        return {"source": self.source.value, "reason": self.reason.value, "error": self.error}


def classify_failure(error: BaseException) -> FallbackReason:
    """Map an exception to the reason reported alongside the fallback."""
    if isinstance(error, (asyncio.TimeoutError, BackendTimeoutError)):
        return FallbackReason.TIMEOUT
    if isinstance(error, NotFoundError):
        return FallbackReason.NOT_FOUND
    if isinstance(error, BackendResponseError):
        return FallbackReason.HTTP_STATUS
    if isinstance(error, MalformedResponseError):
        return FallbackReason.MALFORMED
    if isinstance(error, BackendConnectionError):
        return FallbackReason.NETWORK
    return FallbackReason.UNEXPECTED


async def fetch_or_default(
    request: Callable[[], Any],
    fallback: T,
    *,
    timeout: Optional[float] = DEFAULT_FETCH_TIMEOUT,
    label: Optional[str] = None,
) -> FetchResult[T]:
    """Run a read and return its value, or `fallback` on any failure.

    Args:
        request: Zero-argument callable. Coroutine functions are awaited;
            plain callables (blocking HTTP) run in a worker thread.
        fallback: Value returned when the read fails
        timeout: Seconds before giving up (None disables)
        label: Name used in log messages

    Returns:
        FetchResult tagged LIVE or FALLBACK. Only cancellation propagates.
    """
    name = label or getattr(request, "__name__", "request")

    try:
        if inspect.iscoroutinefunction(request):
            pending = request()
        else:
            pending = asyncio.to_thread(request)
        if timeout is not None:
            value = await asyncio.wait_for(pending, timeout)
        else:
            value = await pending
    except asyncio.CancelledError:
        raise
    except Exception as e:
        reason = classify_failure(e)
        logger.warning(f"Fetch '{name}' failed ({reason.value}): {e or type(e).__name__} - using fallback")
        return FetchResult(fallback, Source.FALLBACK, reason, str(e) or type(e).__name__)

    return FetchResult(value)


async def fetch_many(
    requests: Mapping[K, tuple[Callable[[], Any], Any]],
    *,
    timeout: Optional[float] = DEFAULT_FETCH_TIMEOUT,
) -> dict[K, FetchResult]:
    """Run several reads concurrently, each with its own fallback.

    Args:
        requests: key -> (request, fallback)

    Returns:
        key -> FetchResult, independent of completion order
    """
    if not requests:
        return {}

    keys = list(requests)
    pending = []
    for key in keys:
        request, fallback = requests[key]
        pending.append(fetch_or_default(request, fallback, timeout=timeout, label=str(key)))
    results = await asyncio.gather(*pending)

    fallbacks = sum(1 for r in results if r.is_fallback)
    if fallbacks:
        logger.info(f"Batch fetch: {len(results) - fallbacks}/{len(results)} live, {fallbacks} fallback")

    return dict(zip(keys, results))
