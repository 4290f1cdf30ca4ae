"""
Exponential back-off with jitter for individual I/O calls.

The job itself is never retried as a whole; object-store reads / deletes and
rewrite calls go through retry_async.

Delay before retry n (n = 1, 2, …):
    min(base_delay × 2^(n-1), max_delay) × (1 ± jitter)

Retryable:     rate limits, timeouts, connection errors, 5xx, S3 / Textract
               throttling codes
Non-retryable: everything else (auth, bad request, missing object) —
               raised on the first failure
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_ATTEMPTS   = 3
DEFAULT_BASE_DELAY = 1.0    # seconds, doubled on each retry
DEFAULT_MAX_DELAY  = 30.0
DEFAULT_JITTER     = 0.25

_RETRYABLE_EXCEPTION_TYPES = (
    # openai
    "RateLimitError",
    "APITimeoutError",
    "APIConnectionError",
    "InternalServerError",
    "ServiceUnavailableError",
    # httpx / aiohttp / generic
    "ConnectTimeout",
    "ReadTimeout",
    "RemoteProtocolError",
    "ClientConnectorError",
    "TimeoutError",
    "ConnectionError",
    # botocore
    "EndpointConnectionError",
    "ConnectTimeoutError",
    "ReadTimeoutError",
)

_RETRYABLE_AWS_CODES = frozenset({
    "Throttling",
    "ThrottlingException",
    "ThrottledException",
    "RequestLimitExceeded",
    "ProvisionedThroughputExceededException",
    "SlowDown",
    "InternalError",
    "ServiceUnavailable",
    "InternalServerError",
})


def _is_retryable(exc: BaseException) -> bool:
    """True if the exception looks like a transient provider error."""
    if isinstance(exc, (asyncio.TimeoutError, ConnectionError)):
        return True

    name = type(exc).__name__
    if any(name.endswith(r) for r in _RETRYABLE_EXCEPTION_TYPES):
        return True

    # botocore ClientError carries the service error code in .response
    response = getattr(exc, "response", None)
    if isinstance(response, dict):
        code = response.get("Error", {}).get("Code", "")
        status = response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0)
        return code in _RETRYABLE_AWS_CODES or (isinstance(status, int) and status >= 500)

    status = getattr(exc, "status_code", None)
    return isinstance(status, int) and status >= 500


def backoff_delay(
    attempt:    int,
    base_delay: float = DEFAULT_BASE_DELAY,
    max_delay:  float = DEFAULT_MAX_DELAY,
    jitter:     float = DEFAULT_JITTER,
    rng:        random.Random | None = None,
) -> float:
    """Delay before retry number `attempt` (1-based)."""
    delay = min(base_delay * (2 ** (attempt - 1)), max_delay)
    if jitter:
        delay *= 1 + (rng or random).uniform(-jitter, jitter)
    return max(0.0, delay)


async def retry_async(
    fn:         Callable[[], Awaitable[T]],
    *,
    attempts:   int   = DEFAULT_ATTEMPTS,
    base_delay: float = DEFAULT_BASE_DELAY,
    max_delay:  float = DEFAULT_MAX_DELAY,
    jitter:     float = DEFAULT_JITTER,
    retry_on:   Callable[[BaseException], bool] = _is_retryable,
    label:      str = "",
) -> T:
    """
    Await fn() up to `attempts` times.

    The last error propagates unchanged once attempts are exhausted or the
    error is not retryable.
    """
    attempts = max(1, attempts)
    for attempt in range(1, attempts + 1):
        try:
            return await fn()
        except Exception as exc:
            if attempt >= attempts or not retry_on(exc):
                raise
            delay = backoff_delay(attempt, base_delay, max_delay, jitter)
            logger.warning(
                "Retry | op=%s attempt=%d/%d delay=%.2fs error=%s %s",
                label or getattr(fn, "__name__", "call"), attempt, attempts,
                delay, type(exc).__name__, exc,
            )
            await asyncio.sleep(delay)

    raise AssertionError("unreachable")  # pragma: no cover
