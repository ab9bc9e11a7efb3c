"""Tests for the file-based local reading store."""

from __future__ import annotations

import json

import pytest

from conftest import make_reading
from lakelogger.core.errors import LocalStoreError, ReadingNotFoundError
from lakelogger.core.models import SyncState
from lakelogger.storage.local_store import FileLocalReadingStore


@pytest.mark.asyncio
async def test_add_assigns_increasing_ids(local_store):
    a = await local_store.add(make_reading(1.0, 46.0, 7.0))
    b = await local_store.add(make_reading(2.0))
    assert a.id == 1
    assert b.id == 2
    assert (await local_store.get(2)).position is None


@pytest.mark.asyncio
async def test_readings_survive_reopen(tmp_path):
    store = FileLocalReadingStore(tmp_path / "local")
    await store.add(make_reading(3.0, 46.0, 7.0, has_vegetation=True))

    reopened = FileLocalReadingStore(tmp_path / "local")
    readings = await reopened.get_all()
    assert len(readings) == 1
    assert readings[0].flags.has_vegetation is True
    assert readings[0].sync_state is SyncState.PENDING

    added = await reopened.add(make_reading(4.0))
    assert added.id == 2


@pytest.mark.asyncio
async def test_pending_excludes_synced(local_store):
    a = await local_store.add(make_reading(1.0, 46.0, 7.0))
    await local_store.add(make_reading(2.0, 46.1, 7.0))
    await local_store.update(a.mark_synced(remote_id=10))

    pending = await local_store.get_pending()
    assert [r.depth for r in pending] == [2.0]
    assert (await local_store.get(a.id)).remote_id == 10


@pytest.mark.asyncio
async def test_missing_reading(local_store):
    with pytest.raises(ReadingNotFoundError):
        await local_store.get(5)
    with pytest.raises(ReadingNotFoundError):
        await local_store.delete(5)
    with pytest.raises(ReadingNotFoundError):
        await local_store.update(make_reading(1.0))


@pytest.mark.asyncio
async def test_delete(local_store):
    a = await local_store.add(make_reading(1.0))
    await local_store.delete(a.id)
    assert await local_store.get_all() == []


@pytest.mark.asyncio
async def test_corrupt_file_is_reported(tmp_path):
    store = FileLocalReadingStore(tmp_path / "local")
    await store.add(make_reading(1.0))
    (tmp_path / "local" / "readings" / "000001.json").write_text("{truncated")

    with pytest.raises(LocalStoreError):
        await store.get_all()


@pytest.mark.asyncio
async def test_no_temp_files_left_behind(tmp_path):
    store = FileLocalReadingStore(tmp_path / "local")
    await store.add(make_reading(1.0))
    leftovers = list((tmp_path / "local" / "readings").glob("*.tmp"))
    assert leftovers == []


@pytest.mark.asyncio
async def test_export_writes_an_import_file(local_store, tmp_path):
    a = await local_store.add(make_reading(1.0, 46.0, 7.0, has_vegetation=True))
    await local_store.add(make_reading(2.5))
    await local_store.update(a.mark_synced(remote_id=10))

    count = await local_store.export(tmp_path / "lake-readings.json")
    assert count == 2

    records = json.loads((tmp_path / "lake-readings.json").read_text())
    assert [r["depth"] for r in records] == [1.0, 2.5]
    assert records[0]["has_vegetation"] is True
    assert records[0]["latitude"] == 46.0
    assert records[1]["latitude"] is None
    assert all(r["captured_at"] == 1_700_000_000_000 for r in records)


@pytest.mark.asyncio
async def test_export_into_missing_directory(local_store, tmp_path):
    await local_store.add(make_reading(1.0))
    with pytest.raises(LocalStoreError):
        await local_store.export(tmp_path / "nowhere" / "lake-readings.json")


@pytest.mark.asyncio
async def test_clear(local_store):
    await local_store.add(make_reading(1.0))
    await local_store.add(make_reading(2.0))

    assert await local_store.clear() == 2
    assert await local_store.get_all() == []
    assert await local_store.clear() == 0
