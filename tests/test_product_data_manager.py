"""Tests for the batched, de-duplicated request queue."""

from __future__ import annotations

import asyncio

import pytest

from product_data_manager import ProductDataManager


class _Recorder:
    """Stand-in resolver that records concurrency and call counts."""

    def __init__(self, fail_ids=(), delay=0.0):
        self.fail_ids = set(fail_ids)
        self.delay = delay
        self.calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def __call__(self, record):
        self.calls.append(record["external_id"])
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            if record["external_id"] in self.fail_ids:
                raise RuntimeError("backend exploded")
            return {"external_id": record["external_id"]}
        finally:
            self.in_flight -= 1


def _manager(resolver, **kwargs):
    kwargs.setdefault("chunk_pause_sec", 0)
    kwargs.setdefault("batch_delay_sec", 0.01)
    return ProductDataManager(resolver, **kwargs)


@pytest.mark.asyncio
async def test_duplicate_requests_share_one_resolution():
    resolver = _Recorder(delay=0.01)
    manager = _manager(resolver)
    seen = []

    for _ in range(3):
        manager.queue_product({"external_id": "items_1"}, seen.append)
    await manager.flush()

    assert resolver.calls == ["items_1"]
    assert seen == [{"external_id": "items_1"}] * 3
    assert manager.stats["deduplicated"] == 2
    assert manager.pending_count == 0


@pytest.mark.asyncio
async def test_listener_attached_while_in_flight():
    resolver = _Recorder(delay=0.05)
    manager = _manager(resolver, batch_delay_sec=0)
    first = asyncio.ensure_future(manager.request({"external_id": "items_1"}))
    await asyncio.sleep(0.02)  # resolution now in flight
    second = await manager.request({"external_id": "items_1"})
    assert await first == second
    assert resolver.calls == ["items_1"]


@pytest.mark.asyncio
async def test_chunking_bounds_concurrency():
    resolver = _Recorder(delay=0.001)
    manager = _manager(resolver, chunk_size=10)
    for i in range(35):
        manager.queue_product({"external_id": f"items_{i}"})
    await manager.flush()

    assert len(resolver.calls) == 35
    assert resolver.max_in_flight <= 10


@pytest.mark.asyncio
async def test_partial_failure_isolated():
    resolver = _Recorder(fail_ids={"items_2"})
    manager = _manager(resolver)
    results = {}
    for i in range(4):
        eid = f"items_{i}"
        manager.queue_product({"external_id": eid}, lambda r, eid=eid: results.__setitem__(eid, r))
    await manager.flush()

    assert results["items_2"] is None
    assert all(results[f"items_{i}"] is not None for i in (0, 1, 3))
    assert manager.stats == {"queued": 4, "deduplicated": 0, "resolved": 3, "failed": 1}


@pytest.mark.asyncio
async def test_raising_listener_does_not_block_others():
    manager = _manager(_Recorder())
    seen = []

    def _boom(_result):
        raise ValueError("listener bug")

    manager.queue_product({"external_id": "items_1"}, _boom)
    manager.queue_product({"external_id": "items_1"}, seen.append)
    await manager.flush()
    assert seen == [{"external_id": "items_1"}]


@pytest.mark.asyncio
async def test_requeue_after_completion_resolves_again():
    resolver = _Recorder()
    manager = _manager(resolver)
    await manager.request({"external_id": "items_1"})
    await manager.request({"external_id": "items_1"})
    assert resolver.calls == ["items_1", "items_1"]


@pytest.mark.asyncio
async def test_missing_external_id():
    resolver = _Recorder()
    manager = _manager(resolver)
    seen = []
    manager.queue_product({"raw_name": "no id"}, seen.append)
    await manager.flush()
    assert seen == [None]
    assert resolver.calls == []


@pytest.mark.asyncio
async def test_debounce_processes_without_flush():
    resolver = _Recorder()
    manager = _manager(resolver, batch_delay_sec=0.01)
    result = await asyncio.wait_for(manager.request({"external_id": "items_1"}), timeout=1)
    assert result == {"external_id": "items_1"}
