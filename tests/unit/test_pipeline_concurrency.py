"""
Concurrency checks: writers, the sync loop and readers sharing one store.
"""

from __future__ import annotations

import asyncio
import random
from datetime import datetime, timedelta, timezone

import pytest

from recordflow.coordinator import PipelineCoordinator
from recordflow.domain.models import Owner, Record
from recordflow.generator import RecordGenerator
from recordflow.sync import SyncTask

BASE_TIME = datetime(2026, 1, 16, 12, 0, tzinfo=timezone.utc)
RECORD_COUNT = 100
FAST_SYNC_INTERVAL = 0.005


@pytest.mark.asyncio
async def test_inserts_during_sync_are_never_lost(store, owner: Owner, wait_until) -> None:
    sync_task = SyncTask(store, interval=FAST_SYNC_INTERVAL)
    sync_task.start()

    records = [
        Record(owner_id=owner.id, value=i, created_at=BASE_TIME + timedelta(milliseconds=i))
        for i in range(RECORD_COUNT)
    ]
    for record in records:
        await store.insert(record)
        await asyncio.sleep(0)

    await wait_until(lambda: sync_task.cycle_count > 0, timeout=2.0)

    deadline = asyncio.get_running_loop().time() + 5.0
    while await store.count_unsynced():
        assert asyncio.get_running_loop().time() < deadline, "backlog never drained"
        await asyncio.sleep(0.01)
    await sync_task.stop()

    stored = await store.fetch_recent(owner.id, limit=RECORD_COUNT * 2)
    assert {r.id for r in stored} == {r.id for r in records}
    assert all(r.synced for r in stored)


@pytest.mark.asyncio
async def test_readers_only_see_whole_batches(store, owner: Owner) -> None:
    records = [
        Record(owner_id=owner.id, value=i, created_at=BASE_TIME + timedelta(seconds=i))
        for i in range(RECORD_COUNT)
    ]
    for record in records:
        await store.insert(record)

    observed = []

    async def _reader() -> None:
        for _ in range(20):
            observed.append(await store.count_unsynced())
            await asyncio.sleep(0)

    await asyncio.gather(_reader(), store.mark_synced(r.id for r in records))

    assert set(observed) <= {0, RECORD_COUNT}


@pytest.mark.asyncio
async def test_full_pipeline_persists_and_syncs_everything(
    store, owner: Owner, test_settings, enrichment_stub, wait_until
) -> None:
    coordinator = PipelineCoordinator(
        store=store,
        generator=RecordGenerator(interval=3600.0),
        enrichment=enrichment_stub(),
        sync_task=SyncTask(store, interval=FAST_SYNC_INTERVAL),
        settings=test_settings,
        rng=random.Random(11),
    )
    await coordinator.start(owner.id)

    produced = []
    for _ in range(RECORD_COUNT):
        produced.append(coordinator.generator.tick())
        await asyncio.sleep(0)
    await wait_until(lambda: coordinator.persisted == RECORD_COUNT, timeout=5.0)
    await wait_until(lambda: coordinator.sync_task.cycle_count >= 2, timeout=2.0)

    deadline = asyncio.get_running_loop().time() + 5.0
    while await store.count_unsynced():
        assert asyncio.get_running_loop().time() < deadline, "backlog never drained"
        await asyncio.sleep(0.01)
    await coordinator.stop()

    stored = await store.fetch_recent(owner.id, limit=RECORD_COUNT * 2)
    assert {r.id for r in stored} == {r.id for r in produced}
    assert coordinator.dropped == 0
    assert coordinator.enrichments == 1
