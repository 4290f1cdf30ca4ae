"""
Batch Processor  —  Bounded-Concurrency Runner with Fault Isolation
═══════════════════════════════════════════════════════════════════

Design goals:
  • Order: results come back in input order, whatever order items finish in
  • Isolation: one failing item never aborts its siblings, other batches,
    or the run; it is counted, reported and left out of the results
  • Bounded fan-out: items are cut into batches of `batch_size`; at most
    `max_concurrent_batches` batches run at once, every item of a running
    batch runs concurrently
  • Observability: a progress callback after every item (success or failure)

Counters are only touched between awaits, so concurrent completions on one
event loop never lose an increment.

The processor knows nothing about chunks, sentences or records; the
pipeline uses it for per-chunk variant generation.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

DEFAULT_BATCH_SIZE             = 10
DEFAULT_MAX_CONCURRENT_BATCHES = 3

# Sentinel for failed slots; never leaks into BatchOutcome.results
_FAILED = object()


# ---------------------------------------------------------------------------
# Result dataclasses
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BatchProgress:
    processed: int
    total:     int
    failed:    int

    @property
    def percent(self) -> float:
        return 100.0 if self.total == 0 else self.processed * 100.0 / self.total


@dataclass
class BatchOutcome(Generic[R]):
    """
    results         : successful transform outputs, in input order
    processed_count : items attempted (always equals the input length)
    failed_count    : items whose transform raised
    elapsed_ms      : wall time of the run
    """
    results:         list[R] = field(default_factory=list)
    processed_count: int     = 0
    failed_count:    int     = 0
    elapsed_ms:      float   = 0.0

    @property
    def success_rate(self) -> float:
        if self.processed_count == 0:
            return 1.0
        return (self.processed_count - self.failed_count) / self.processed_count


ProgressCallback = Callable[[BatchProgress], Any]
ErrorCallback    = Callable[[Exception, Any], Any]
CompleteCallback = Callable[[BatchOutcome], Any]


# ---------------------------------------------------------------------------
# Processor
# ---------------------------------------------------------------------------

class BatchProcessor:
    """
    Usage:
        processor = BatchProcessor(batch_size=10, max_concurrent_batches=3,
                                   on_progress=report)
        outcome = await processor.run(chunks, generate_variants)

    Callbacks may be plain functions or coroutine functions.
    """

    def __init__(
        self,
        batch_size:             int = DEFAULT_BATCH_SIZE,
        max_concurrent_batches: int = DEFAULT_MAX_CONCURRENT_BATCHES,
        on_progress: ProgressCallback | None = None,
        on_error:    ErrorCallback    | None = None,
        on_complete: CompleteCallback | None = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if max_concurrent_batches < 1:
            raise ValueError("max_concurrent_batches must be at least 1")
        self.batch_size             = batch_size
        self.max_concurrent_batches = max_concurrent_batches
        self._on_progress = on_progress
        self._on_error    = on_error
        self._on_complete = on_complete

    async def run(
        self,
        items:     Sequence[T],
        transform: Callable[[T], Awaitable[R]],
    ) -> BatchOutcome[R]:
        items = list(items)
        total = len(items)
        t0 = time.monotonic()

        slots: list[Any] = [_FAILED] * total
        counters = {"processed": 0, "failed": 0}

        batches = [
            range(start, min(start + self.batch_size, total))
            for start in range(0, total, self.batch_size)
        ]
        logger.info(
            "BatchProcessor | items=%d batches=%d batch_size=%d max_concurrent=%d",
            total, len(batches), self.batch_size, self.max_concurrent_batches,
        )

        semaphore = asyncio.Semaphore(self.max_concurrent_batches)

        async def _run_item(index: int) -> None:
            item = items[index]
            try:
                slots[index] = await transform(item)
                failed = False
            except Exception as exc:
                failed = True
                logger.warning("Batch item failed | index=%d error=%s", index, exc)
                await _maybe_await(self._on_error, exc, item)

            counters["processed"] += 1
            if failed:
                counters["failed"] += 1
            await _maybe_await(
                self._on_progress,
                BatchProgress(
                    processed=counters["processed"],
                    total=total,
                    failed=counters["failed"],
                ),
            )

        async def _run_batch(batch_idx: int, indices: range) -> None:
            async with semaphore:
                logger.debug("Batch start | batch=%d size=%d", batch_idx, len(indices))
                await asyncio.gather(*(_run_item(i) for i in indices))

        await asyncio.gather(*(_run_batch(b, idx) for b, idx in enumerate(batches)))

        outcome: BatchOutcome[R] = BatchOutcome(
            results=[r for r in slots if r is not _FAILED],
            processed_count=counters["processed"],
            failed_count=counters["failed"],
            elapsed_ms=(time.monotonic() - t0) * 1000,
        )
        logger.info(
            "BatchProcessor done | processed=%d failed=%d elapsed_ms=%.0f",
            outcome.processed_count, outcome.failed_count, outcome.elapsed_ms,
        )
        await _maybe_await(self._on_complete, outcome)
        return outcome


async def _maybe_await(callback: Callable[..., Any] | None, *args: Any) -> None:
    """Invoke a sync or async callback; callback errors are logged, not raised."""
    if callback is None:
        return
    try:
        result = callback(*args)
        if inspect.isawaitable(result):
            await result
    except Exception:
        logger.exception("Batch callback failed | callback=%r", callback)
