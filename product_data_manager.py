"""
Batched product request queue.

A page scan can surface dozens of product cards at once.  Requests are
collected for a short debounce window, then processed in chunks of
``chunk_size`` with a pause between chunks so the backend never sees more
than one chunk of concurrent resolutions.

A second request for an ``external_id`` that is already pending does not
queue more work: its callback is attached to the pending entry and every
attached callback fires once when that resolution finishes.  A failing
item is logged and its callbacks receive ``None``; sibling items in the
same chunk are unaffected.

Usage:
    manager = ProductDataManager(engine.resolve_and_match)
    manager.queue_product(record, on_result)
    result = await manager.request(other_record)
    await manager.flush()
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

logger = logging.getLogger("batch")

Resolver = Callable[[dict[str, Any]], Awaitable[dict[str, Any] | None]]
Callback = Callable[[dict[str, Any] | None], Any]


class ProductDataManager:
    def __init__(
        self,
        resolve: Resolver,
        *,
        chunk_size: int = 10,
        chunk_pause_sec: float = 0.1,
        batch_delay_sec: float = 0.5,
    ):
        self._resolve = resolve
        self.chunk_size = max(1, chunk_size)
        self.chunk_pause_sec = chunk_pause_sec
        self.batch_delay_sec = batch_delay_sec

        self._pending: dict[str, list[Callback]] = {}
        self._batch: dict[str, dict[str, Any]] = {}
        self._timer: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task] = set()
        self.stats = {"queued": 0, "deduplicated": 0, "resolved": 0, "failed": 0}

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    # ------------------------------------------------------------------
    # Queueing
    # ------------------------------------------------------------------

    def queue_product(self, record: dict[str, Any], callback: Callback | None = None) -> None:
        """Queue *record*; *callback* gets the result (or None) when done."""
        external_id = record.get("external_id")
        if not external_id:
            logger.warning("Dropping record without external_id: %r", record.get("raw_name"))
            if callback is not None:
                self._invoke(callback, None, "<missing>")
            return

        listeners = self._pending.get(external_id)
        if listeners is not None:
            if callback is not None:
                listeners.append(callback)
            self.stats["deduplicated"] += 1
            logger.debug("Attached listener to in-flight %s", external_id)
            return

        self._pending[external_id] = [callback] if callback is not None else []
        self._batch[external_id] = record
        self.stats["queued"] += 1
        self._schedule()

    async def request(self, record: dict[str, Any]) -> dict[str, Any] | None:
        """Awaitable form of queue_product()."""
        future: asyncio.Future = asyncio.get_running_loop().create_future()

        def _done(result: dict[str, Any] | None) -> None:
            if not future.done():
                future.set_result(result)

        self.queue_product(record, _done)
        return await future

    def _schedule(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.batch_delay_sec, self._start_batch)

    def _start_batch(self) -> None:
        self._timer = None
        task = asyncio.ensure_future(self.process_batch())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    async def process_batch(self) -> int:
        """Drain the current batch chunk by chunk; return items processed."""
        if not self._batch:
            return 0
        items = list(self._batch.items())
        self._batch = {}

        total_chunks = (len(items) + self.chunk_size - 1) // self.chunk_size
        for index in range(0, len(items), self.chunk_size):
            chunk = items[index:index + self.chunk_size]
            await asyncio.gather(*[self._process_one(eid, rec) for eid, rec in chunk])
            if index + self.chunk_size < len(items):
                await asyncio.sleep(self.chunk_pause_sec)
        logger.info("Processed %d products in %d chunk(s)", len(items), total_chunks)
        return len(items)

    async def _process_one(self, external_id: str, record: dict[str, Any]) -> None:
        try:
            result = await self._resolve(record)
            self.stats["resolved"] += 1
        except Exception as exc:
            self.stats["failed"] += 1
            logger.warning("[%s] Resolution failed: %s", external_id, exc)
            result = None

        for callback in self._pending.pop(external_id, []):
            self._invoke(callback, result, external_id)

    @staticmethod
    def _invoke(callback: Callback, result: dict[str, Any] | None, external_id: str) -> None:
        try:
            callback(result)
        except Exception as exc:
            logger.warning("[%s] Listener raised: %s", external_id, exc)

    async def flush(self) -> None:
        """Process anything queued now and wait for in-flight batches."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        while self._batch or self._tasks:
            if self._batch:
                await self.process_batch()
            if self._tasks:
                await asyncio.gather(*list(self._tasks))
