"""File-based local reading store.

Each reading is one JSON file named after its local id:

    base_dir/readings/000042.json

Writes go to a temp file in the same directory and are renamed into place,
so a reading is either fully written or not there at all.
"""

from __future__ import annotations

import json
import os
from dataclasses import replace
from pathlib import Path

import structlog

from lakelogger.core.errors import LocalStoreError, ReadingNotFoundError
from lakelogger.core.models import Position, Reading, ReadingFlags, SyncState
from lakelogger.core.payloads import reading_to_payload

log = structlog.get_logger()


def _serialize(reading: Reading) -> dict:
    pos = reading.position
    return {
        "id": reading.id,
        "project_id": reading.project_id,
        "depth": reading.depth,
        "position": (
            {"latitude": pos.latitude, "longitude": pos.longitude, "accuracy_m": pos.accuracy_m}
            if pos else None
        ),
        "flags": {
            "is_shoreline": reading.flags.is_shoreline,
            "has_vegetation": reading.flags.has_vegetation,
            "has_catch_marker": reading.flags.has_catch_marker,
        },
        "captured_at": reading.captured_at,
        "sync_state": reading.sync_state.value,
        "remote_id": reading.remote_id,
    }


def _deserialize(data: dict) -> Reading:
    pos = data.get("position")
    return Reading(
        id=data["id"],
        project_id=data.get("project_id"),
        depth=data["depth"],
        position=Position(pos["latitude"], pos["longitude"], pos.get("accuracy_m")) if pos else None,
        flags=ReadingFlags(**data.get("flags", {})),
        captured_at=data["captured_at"],
        sync_state=SyncState(data.get("sync_state", SyncState.PENDING.value)),
        remote_id=data.get("remote_id"),
    )


class FileLocalReadingStore:
    """LocalReadingStore backed by one JSON file per reading."""

    def __init__(self, base_dir: str | Path) -> None:
        self._dir = Path(base_dir) / "readings"
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise LocalStoreError(f"cannot create local store at {self._dir}: {exc}") from exc
        self._next_id = max(self._existing_ids(), default=0) + 1

    def _existing_ids(self) -> list[int]:
        ids = []
        for path in self._dir.glob("*.json"):
            try:
                ids.append(int(path.stem))
            except ValueError:
                continue
        return ids

    def _path(self, reading_id: int) -> Path:
        return self._dir / f"{reading_id:06d}.json"

    @staticmethod
    def _atomic_write(path: Path, text: str) -> None:
        tmp_path = path.with_suffix(".tmp")
        try:
            with open(tmp_path, "w") as f:
                f.write(text)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
        except OSError:
            tmp_path.unlink(missing_ok=True)
            raise

    def _write(self, reading: Reading) -> None:
        payload = json.dumps(_serialize(reading), separators=(",", ":"))
        try:
            self._atomic_write(self._path(reading.id), payload)
        except OSError as exc:
            raise LocalStoreError(f"failed to write reading {reading.id}: {exc}") from exc

    def _read(self, path: Path) -> Reading:
        try:
            return _deserialize(json.loads(path.read_text()))
        except (OSError, ValueError, KeyError, TypeError) as exc:
            raise LocalStoreError(f"corrupt local reading {path.name}: {exc}") from exc

    async def add(self, reading: Reading) -> Reading:
        """Persist a new reading and return it with its local id."""
        stored = replace(reading, id=self._next_id)
        self._write(stored)
        self._next_id += 1
        log.debug("local_reading_added", reading_id=stored.id, depth=stored.depth,
                  has_position=stored.position is not None)
        return stored

    async def update(self, reading: Reading) -> Reading:
        if reading.id is None or not self._path(reading.id).exists():
            raise ReadingNotFoundError(reading.id)
        self._write(reading)
        return reading

    async def delete(self, reading_id: int) -> None:
        path = self._path(reading_id)
        if not path.exists():
            raise ReadingNotFoundError(reading_id)
        try:
            path.unlink()
        except OSError as exc:
            raise LocalStoreError(f"failed to delete reading {reading_id}: {exc}") from exc

    async def get(self, reading_id: int) -> Reading:
        path = self._path(reading_id)
        if not path.exists():
            raise ReadingNotFoundError(reading_id)
        return self._read(path)

    async def get_all(self) -> list[Reading]:
        """All readings, oldest capture first."""
        readings = [self._read(p) for p in sorted(self._dir.glob("*.json"))]
        readings.sort(key=lambda r: (r.captured_at, r.id))
        return readings

    async def get_pending(self) -> list[Reading]:
        return [r for r in await self.get_all() if r.sync_state is SyncState.PENDING]

    async def export(self, path: str | Path) -> int:
        """Write every local reading, synced or not, as an import file.

        The file is a JSON list in the current record shape, the same
        format ``POST /projects/{id}/import`` accepts. Returns the count.
        """
        readings = await self.get_all()
        text = json.dumps([reading_to_payload(r) for r in readings], indent=2)
        path = Path(path)
        try:
            self._atomic_write(path, text)
        except OSError as exc:
            raise LocalStoreError(f"failed to export readings to {path}: {exc}") from exc
        log.info("local_readings_exported", path=str(path), count=len(readings))
        return len(readings)

    async def clear(self) -> int:
        """Delete every local reading. Returns how many were removed."""
        removed = 0
        for path in self._dir.glob("*.json"):
            try:
                path.unlink()
            except OSError as exc:
                raise LocalStoreError(f"failed to delete {path.name}: {exc}") from exc
            removed += 1
        log.info("local_readings_cleared", count=removed)
        return removed
