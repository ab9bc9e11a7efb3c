"""Tests for ServerStats and active project tracking."""

from __future__ import annotations

import time

from lakelogger.core.stats import ServerStats


def test_initial_stats():
    stats = ServerStats()
    snap = stats.snapshot()
    assert snap["readings_received"] == 0
    assert snap["active_projects"]["total"] == 0
    assert snap["active_projects"]["sync"] == 0
    assert snap["active_projects"]["import"] == 0


def test_record_sync_batch():
    stats = ServerStats()
    stats.record_batch(1, source="sync", received=10, stored=8)

    snap = stats.snapshot()
    assert snap["readings_received"] == 10
    assert snap["readings_stored"] == 8
    assert snap["duplicates_skipped"] == 2
    assert snap["sync_batches"] == 1
    assert snap["import_batches"] == 0
    assert snap["active_projects"]["total"] == 1
    assert snap["active_projects"]["sync"] == 1


def test_project_source_updates():
    """A project that was synced and then imported into counts as import."""
    stats = ServerStats()
    stats.record_batch(7, source="sync", received=5, stored=5)
    assert stats.snapshot()["active_projects"]["sync"] == 1

    stats.record_batch(7, source="import", received=3, stored=1)
    snap = stats.snapshot()
    assert snap["active_projects"]["total"] == 1
    assert snap["active_projects"]["sync"] == 0
    assert snap["active_projects"]["import"] == 1
    assert snap["import_batches"] == 1


def test_render_and_error_counters():
    stats = ServerStats()
    stats.record_render()
    stats.record_render(insufficient=True)
    stats.record_render(insufficient=True)
    stats.record_import_rejected()
    stats.record_storage_error()

    snap = stats.snapshot()
    assert snap["surfaces_rendered"] == 1
    assert snap["surfaces_insufficient"] == 2
    assert snap["imports_rejected"] == 1
    assert snap["storage_errors"] == 1


def test_stale_project_pruning():
    """Projects not seen within the window should be pruned."""
    stats = ServerStats(active_window_seconds=0.1)
    stats.record_batch(1, source="sync", received=1, stored=1)
    assert stats.snapshot()["active_projects"]["total"] == 1

    time.sleep(0.15)
    snap = stats.snapshot()
    assert snap["active_projects"]["total"] == 0
    # Counters survive pruning
    assert snap["readings_received"] == 1


def test_uptime():
    stats = ServerStats()
    snap = stats.snapshot()
    assert snap["uptime_seconds"] >= 0
