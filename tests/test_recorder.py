"""Tests for depth capture and flag edits."""

from __future__ import annotations

import asyncio

import pytest

from conftest import make_fix, make_reading
from lakelogger.config import ClientConfig
from lakelogger.core.models import ReadingFlags, SyncState
from lakelogger.core.position import PositionTracker
from lakelogger.core.recorder import Advisory, ReadingRecorder


@pytest.fixture
def tracker(clock) -> PositionTracker:
    return PositionTracker(clock=clock)


@pytest.fixture
def recorder(local_store, tracker, remote_store) -> ReadingRecorder:
    return ReadingRecorder(local_store, tracker, remote_store, capture_wait_seconds=0.05)


@pytest.mark.asyncio
async def test_fresh_fix(recorder, tracker, clock, local_store):
    tracker.update(make_fix(clock, accuracy_m=4.0, age_s=1))

    result = await recorder.record_reading(3.2)
    assert result.advisories == ()
    assert result.reading.position.accuracy_m == 4.0
    assert result.reading.sync_state is SyncState.PENDING
    assert result.reading.captured_at == clock()
    assert await local_store.get(result.reading.id) == result.reading


@pytest.mark.asyncio
async def test_stale_fix_is_used_with_advisory(recorder, tracker, clock):
    tracker.update(make_fix(clock, lat=46.01, age_s=12))

    result = await recorder.record_reading(2.0)
    assert result.advisories == (Advisory.STALE_FIX,)
    assert result.reading.position.latitude == 46.01


@pytest.mark.asyncio
async def test_no_gps(recorder, local_store):
    result = await recorder.record_reading(5.0, project_id=3)
    assert result.advisories == (Advisory.NO_GPS,)
    assert result.reading.position is None
    assert result.reading.project_id == 3
    assert len(await local_store.get_pending()) == 1


@pytest.mark.asyncio
async def test_fix_older_than_stale_window_counts_as_no_gps(recorder, tracker, clock):
    tracker.update(make_fix(clock, age_s=60))

    result = await recorder.record_reading(5.0)
    assert result.advisories == (Advisory.NO_GPS,)
    assert result.reading.position is None


@pytest.mark.asyncio
async def test_fix_arriving_during_wait(local_store, tracker, clock):
    recorder = ReadingRecorder(local_store, tracker, capture_wait_seconds=2.0)
    loop = asyncio.get_running_loop()
    loop.call_later(0.02, tracker.update, make_fix(clock, lat=46.02))

    result = await recorder.record_reading(1.5)
    assert result.advisories == ()
    assert result.reading.position.latitude == 46.02


@pytest.mark.parametrize("depth", [-0.1, "3", True, float("inf"), None])
@pytest.mark.asyncio
async def test_invalid_depth_is_rejected(recorder, local_store, depth):
    with pytest.raises(ValueError):
        await recorder.record_reading(depth)
    assert await local_store.get_all() == []


@pytest.mark.asyncio
async def test_deep_reading_is_kept_with_advisory(recorder, tracker, clock):
    tracker.update(make_fix(clock))
    result = await recorder.record_reading(55)
    assert result.advisories == (Advisory.DEPTH_OUT_OF_RANGE,)
    assert result.reading.depth == 55.0


@pytest.mark.asyncio
async def test_flags_are_stored(recorder):
    result = await recorder.record_reading(1.0, ReadingFlags(is_shoreline=True))
    assert result.reading.flags.is_shoreline is True


@pytest.mark.asyncio
async def test_set_flags_on_pending_reading(recorder, local_store):
    captured = (await recorder.record_reading(2.0)).reading

    updated = await recorder.set_flags(captured.id, has_vegetation=True)
    assert updated.flags.has_vegetation is True
    assert updated.sync_state is SyncState.PENDING
    assert (await local_store.get(captured.id)).flags.has_vegetation is True


@pytest.mark.asyncio
async def test_set_flags_on_synced_reading_updates_remote(recorder, local_store, remote_store):
    project = await remote_store.create_project("Flags")
    local = await local_store.add(make_reading(2.0, 46.0, 7.0))
    [outcome] = await remote_store.insert_batch(project.id, [local])
    await local_store.update(local.mark_synced(outcome.remote_id))

    updated = await recorder.set_flags(local.id, has_catch_marker=True)
    assert updated.sync_state is SyncState.SYNCED
    assert updated.flags.has_catch_marker is True
    assert (await remote_store.get_reading(outcome.remote_id)).flags.has_catch_marker is True
    assert await local_store.get_pending() == []


@pytest.mark.asyncio
async def test_set_flags_on_synced_reading_needs_remote(local_store, tracker):
    recorder = ReadingRecorder(local_store, tracker)
    local = await local_store.add(make_reading(2.0, 46.0, 7.0))
    await local_store.update(local.mark_synced(remote_id=1))

    with pytest.raises(RuntimeError):
        await recorder.set_flags(local.id, has_vegetation=True)


@pytest.mark.asyncio
async def test_unknown_flag(recorder):
    captured = (await recorder.record_reading(2.0)).reading
    with pytest.raises(ValueError):
        await recorder.set_flags(captured.id, has_fish=True)


@pytest.mark.asyncio
async def test_tag_latest(recorder, clock):
    assert await recorder.tag_latest() is None

    await recorder.record_reading(1.0)
    clock.advance(10)
    latest = (await recorder.record_reading(2.0)).reading

    tagged = await recorder.tag_latest()
    assert tagged.id == latest.id
    assert tagged.flags.has_vegetation is True


def test_from_config(local_store, tracker):
    config = ClientConfig(capture_wait_seconds=1.5, stale_fix_max_age_seconds=20)
    recorder = ReadingRecorder.from_config(config, local_store, tracker)
    assert recorder._capture_wait == 1.5
    assert recorder._stale_ms == 20_000
