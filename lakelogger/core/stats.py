"""Server statistics and active-project tracking.

Tracks in-memory counters and a sliding window of projects that received
readings recently. No framework dependencies.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass


@dataclass
class ProjectActivity:
    """Tracks a single project's recent upload activity."""
    last_seen: float          # time.monotonic() timestamp
    last_source: str          # "sync" or "import"
    readings_received: int = 0


class ServerStats:
    """Thread-safe server statistics.

    A project is "active" if it received a sync or import batch within
    ``active_window_seconds`` (default 600s).
    """

    def __init__(self, active_window_seconds: float = 600.0) -> None:
        self._lock = threading.Lock()
        self._started_at = time.time()
        self._active_window = active_window_seconds

        # Counters
        self.readings_received: int = 0
        self.readings_stored: int = 0
        self.duplicates_skipped: int = 0
        self.sync_batches: int = 0
        self.import_batches: int = 0
        self.imports_rejected: int = 0
        self.surfaces_rendered: int = 0
        self.surfaces_insufficient: int = 0
        self.storage_errors: int = 0

        # Project tracking: project_id → ProjectActivity
        self._projects: dict[int, ProjectActivity] = {}

    def _touch(self, project_id: int, source: str, count: int, now: float) -> None:
        """Caller holds lock."""
        if project_id in self._projects:
            act = self._projects[project_id]
            act.last_seen = now
            act.last_source = source
            act.readings_received += count
        else:
            self._projects[project_id] = ProjectActivity(
                last_seen=now, last_source=source, readings_received=count,
            )

    def record_batch(self, project_id: int, *, source: str, received: int, stored: int) -> None:
        """Record a committed sync or import batch."""
        now = time.monotonic()
        with self._lock:
            self.readings_received += received
            self.readings_stored += stored
            self.duplicates_skipped += received - stored
            if source == "import":
                self.import_batches += 1
            else:
                self.sync_batches += 1
            self._touch(project_id, source, received, now)

    def record_import_rejected(self) -> None:
        with self._lock:
            self.imports_rejected += 1

    def record_render(self, *, insufficient: bool = False) -> None:
        with self._lock:
            if insufficient:
                self.surfaces_insufficient += 1
            else:
                self.surfaces_rendered += 1

    def record_storage_error(self) -> None:
        with self._lock:
            self.storage_errors += 1

    def _prune_stale_projects(self, now: float) -> None:
        """Remove projects not seen within the active window. Caller holds lock."""
        cutoff = now - self._active_window
        stale = [pid for pid, act in self._projects.items() if act.last_seen < cutoff]
        for pid in stale:
            del self._projects[pid]

    def snapshot(self) -> dict:
        """Return a JSON-serializable snapshot of all stats."""
        now_mono = time.monotonic()
        with self._lock:
            self._prune_stale_projects(now_mono)

            return {
                "uptime_seconds": round(time.time() - self._started_at, 1),
                "readings_received": self.readings_received,
                "readings_stored": self.readings_stored,
                "duplicates_skipped": self.duplicates_skipped,
                "sync_batches": self.sync_batches,
                "import_batches": self.import_batches,
                "imports_rejected": self.imports_rejected,
                "surfaces_rendered": self.surfaces_rendered,
                "surfaces_insufficient": self.surfaces_insufficient,
                "storage_errors": self.storage_errors,
                "active_projects": {
                    "total": len(self._projects),
                    "sync": sum(1 for a in self._projects.values() if a.last_source == "sync"),
                    "import": sum(1 for a in self._projects.values() if a.last_source == "import"),
                    "window_seconds": self._active_window,
                },
            }
