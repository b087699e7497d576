"""Background click accounting for resolved short links.

Click Tracking Flow
===================
::
    ┌─────────────┐
    │ resolve()   │
    │ succeeded   │
    └──────┬──────┘
           ▼
    ┌─────────────┐   FULL   ┌─────────────┐
    │ schedule()  ├─────────►│ drop + count│
    │ put_nowait  │          └─────────────┘
    └──────┬──────┘
           ▼  (request returns here)
    ┌─────────────┐
    │ worker task │  (owned by the accountant, not the request)
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ MULTI       │
    │ INCR clicks │
    │ EXPIRE 30d  │
    │ EXEC        │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ UPDATE      │
    │ clicks + 1  │  (own deadline, single attempt)
    └─────────────┘

Key Behaviours
===============
- ``schedule`` never blocks and never raises into the resolving request.
- At most ``CLICK_WORKER_COUNT`` clicks are processed concurrently and at
  most ``CLICK_QUEUE_MAX_SIZE`` wait; anything beyond that is dropped.
- The cache counter and the durable counter are updated independently; a
  failure in one does not skip the other, and neither is retried.
- Cancelling the request that scheduled a click does not cancel the click.
"""

import asyncio
import logging

from prometheus_client import Counter

from shortlinks.cache import CacheBackend
from shortlinks.config import Settings
from shortlinks.keys import clicks_key
from shortlinks.store import LinkStore

__all__ = ["ClickAccountant"]

CLICKS_SCHEDULED_TOTAL = Counter(
    "shortlinks_clicks_scheduled_total",
    "Clicks accepted into the accounting queue",
)
CLICKS_DROPPED_TOTAL = Counter(
    "shortlinks_clicks_dropped_total",
    "Clicks dropped because the accounting queue was full or not running",
)
CLICKS_RECORDED_TOTAL = Counter(
    "shortlinks_clicks_recorded_total",
    "Click increments applied",
    ["target"],
)
CLICKS_FAILED_TOTAL = Counter(
    "shortlinks_clicks_failed_total",
    "Click increments that failed and were discarded",
    ["target"],
)


class ClickAccountant:
    """Bounded worker pool applying best-effort click increments.

    Args:
        cache: Cache holding the near-real-time counters
        store: Durable store holding the persisted counters
        settings: Worker count, queue size, counter TTL and deadlines
        logger: Optional logger (defaults to ``shortlinks.clicks``)
    """

    def __init__(self, cache: CacheBackend, store: LinkStore, settings: Settings, logger: logging.Logger | None = None):
        self._cache = cache
        self._store = store
        self._worker_count = settings.CLICK_WORKER_COUNT
        self._queue_size = settings.CLICK_QUEUE_MAX_SIZE
        self._counter_ttl = settings.CLICK_COUNTER_TTL_SECONDS
        self._persist_timeout = settings.CLICK_PERSIST_TIMEOUT_SECONDS
        self._drain_timeout = settings.CLICK_DRAIN_TIMEOUT_SECONDS
        self._logger = logger or logging.getLogger(__name__)
        self._queue: asyncio.Queue[str] | None = None
        self._workers: list[asyncio.Task[None]] = []

    @property
    def running(self) -> bool:
        return bool(self._workers)

    @property
    def pending(self) -> int:
        return self._queue.qsize() if self._queue is not None else 0

    def start(self) -> None:
        """Spawn the worker tasks on the running loop. Safe to call twice."""
        if self._workers:
            return
        self._queue = asyncio.Queue(maxsize=self._queue_size)
        self._workers = [
            asyncio.create_task(self._work(), name=f"click-worker-{index}") for index in range(self._worker_count)
        ]
        self._logger.info(f"Click accounting started with {self._worker_count} workers")

    def schedule(self, code: str) -> bool:
        """Queue one click for ``code``. Returns False when the click was dropped."""
        try:
            self.start()
            self._queue.put_nowait(code)
        except asyncio.QueueFull:
            CLICKS_DROPPED_TOTAL.inc()
            self._logger.debug(f"Click queue full, dropping click for {code}")
            return False
        except RuntimeError as exc:
            CLICKS_DROPPED_TOTAL.inc()
            self._logger.warning(f"Click accounting unavailable, dropping click for {code}: {exc}")
            return False
        CLICKS_SCHEDULED_TOTAL.inc()
        return True

    async def record(self, code: str) -> None:
        """Apply one click to the cache counter and the durable counter."""
        try:
            await self._cache.increment(clicks_key(code), self._counter_ttl)
            CLICKS_RECORDED_TOTAL.labels(target="cache").inc()
        except Exception as exc:
            CLICKS_FAILED_TOTAL.labels(target="cache").inc()
            self._logger.warning(f"Cache click increment failed for {code}: {exc}")

        try:
            await self._store.increment_clicks(code, timeout=self._persist_timeout)
            CLICKS_RECORDED_TOTAL.labels(target="store").inc()
        except Exception as exc:
            CLICKS_FAILED_TOTAL.labels(target="store").inc()
            self._logger.warning(f"Durable click increment failed for {code}: {exc}")

    async def _work(self) -> None:
        while True:
            code = await self._queue.get()
            try:
                await self.record(code)
            finally:
                self._queue.task_done()

    async def drain(self) -> None:
        """Wait until every queued click has been processed."""
        if self._queue is not None:
            await self._queue.join()

    async def aclose(self) -> None:
        """Drain within ``CLICK_DRAIN_TIMEOUT_SECONDS``, then stop the workers."""
        if not self._workers:
            return
        try:
            async with asyncio.timeout(self._drain_timeout):
                await self.drain()
        except TimeoutError:
            self._logger.warning(f"Click drain timed out, discarding {self.pending} queued clicks")

        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        self._queue = None
        self._logger.info("Click accounting stopped")
