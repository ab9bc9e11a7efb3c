"""Lake Logger — core internal data models.

These are plain dataclasses with no framework dependencies.
JSON payloads are converted to/from these at the boundary.
"""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass, field, replace


def now_ms() -> int:
    return int(time.time() * 1000)


class SyncState(str, enum.Enum):
    PENDING = "pending"
    SYNCED = "synced"


@dataclass(frozen=True)
class PositionFix:
    """One fix pushed by the position source."""
    latitude: float
    longitude: float
    accuracy_m: float
    timestamp_ms: int

    def age_ms(self, at_ms: int) -> int:
        return max(0, at_ms - self.timestamp_ms)

    def to_position(self) -> Position:
        return Position(self.latitude, self.longitude, self.accuracy_m)


@dataclass(frozen=True)
class Position:
    latitude: float
    longitude: float
    accuracy_m: float | None = None


@dataclass(frozen=True)
class ReadingFlags:
    is_shoreline: bool = False
    has_vegetation: bool = False
    has_catch_marker: bool = False

    def with_changes(self, **changes: bool) -> ReadingFlags:
        unknown = set(changes) - {"is_shoreline", "has_vegetation", "has_catch_marker"}
        if unknown:
            raise ValueError(f"unknown reading flag(s): {', '.join(sorted(unknown))}")
        return replace(self, **{k: bool(v) for k, v in changes.items()})


@dataclass(frozen=True)
class Reading:
    """One depth sample, local or remote.

    ``id`` lives in the id space of whichever store holds the reading.
    ``remote_id`` is set once the remote store has accepted it.
    """
    depth: float
    captured_at: int
    position: Position | None = None
    flags: ReadingFlags = field(default_factory=ReadingFlags)
    sync_state: SyncState = SyncState.PENDING
    id: int | None = None
    remote_id: int | None = None
    project_id: int | None = None

    @property
    def coordinates(self) -> tuple[float, float] | None:
        if self.position is None:
            return None
        return self.position.latitude, self.position.longitude

    def mark_synced(self, remote_id: int) -> Reading:
        if self.sync_state is SyncState.SYNCED:
            raise ValueError(f"reading {self.id} is already synced")
        return replace(self, sync_state=SyncState.SYNCED, remote_id=remote_id)


@dataclass(frozen=True)
class Project:
    id: int
    name: str
    created_at: int
    water_level_offset: float = 0.0
    readings_count: int = 0


@dataclass(frozen=True)
class FishCatch:
    project_id: int
    captured_at: int
    species: str = ""
    weight_kg: float | None = None
    length_cm: float | None = None
    note: str = ""
    position: Position | None = None
    id: int | None = None


@dataclass(frozen=True)
class InsertOutcome:
    """Per-reading acknowledgement of a remote batch insert."""
    remote_id: int
    inserted: bool


@dataclass(frozen=True)
class SyncResult:
    saved_count: int
    skipped_count: int = 0


@dataclass(frozen=True)
class ImportResult:
    imported_count: int
    skipped_count: int
