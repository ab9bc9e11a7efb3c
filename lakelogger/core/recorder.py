"""Depth capture — turns a keypad entry into a persisted PENDING reading.

The reading is written to the local store before anything touches the
network. Missing GPS is recorded as ``position=None`` and reported as an
advisory, never as an error.
"""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

import structlog

from lakelogger.core.models import Reading, ReadingFlags, SyncState

if TYPE_CHECKING:
    from lakelogger.config import ClientConfig
    from lakelogger.core.position import PositionTracker
    from lakelogger.storage.base import LocalReadingStore, RemoteReadingStore

log = structlog.get_logger()

# Deepest key on the keypad. Deeper entries are kept, with an advisory.
KEYPAD_MAX_DEPTH_M = 40.0


class Advisory(str, enum.Enum):
    NO_GPS = "no_gps"
    STALE_FIX = "stale_fix"
    DEPTH_OUT_OF_RANGE = "depth_out_of_range"


@dataclass(frozen=True)
class CaptureResult:
    reading: Reading
    advisories: tuple[Advisory, ...] = ()


class ReadingRecorder:
    """Records readings and applies flag edits to the store that owns them."""

    def __init__(
        self,
        store: LocalReadingStore,
        tracker: PositionTracker,
        remote: RemoteReadingStore | None = None,
        *,
        capture_wait_seconds: float = 3.0,
        fresh_fix_max_age_seconds: float = 5.0,
        stale_fix_max_age_seconds: float = 30.0,
    ) -> None:
        self._store = store
        self._tracker = tracker
        self._remote = remote
        self._capture_wait = capture_wait_seconds
        self._fresh_ms = int(fresh_fix_max_age_seconds * 1000)
        self._stale_ms = int(stale_fix_max_age_seconds * 1000)

    @classmethod
    def from_config(
        cls,
        config: ClientConfig,
        store: LocalReadingStore,
        tracker: PositionTracker,
        remote: RemoteReadingStore | None = None,
    ) -> ReadingRecorder:
        return cls(
            store, tracker, remote,
            capture_wait_seconds=config.capture_wait_seconds,
            fresh_fix_max_age_seconds=config.fresh_fix_max_age_seconds,
            stale_fix_max_age_seconds=config.stale_fix_max_age_seconds,
        )

    async def record_reading(
        self,
        depth: float,
        flags: ReadingFlags | None = None,
        project_id: int | None = None,
    ) -> CaptureResult:
        if isinstance(depth, bool) or not isinstance(depth, (int, float)) or not math.isfinite(depth):
            raise ValueError(f"depth must be a number, got {depth!r}")
        if depth < 0:
            raise ValueError(f"depth must be non-negative, got {depth}")

        advisories: list[Advisory] = []
        if depth > KEYPAD_MAX_DEPTH_M:
            advisories.append(Advisory.DEPTH_OUT_OF_RANGE)

        fix = await self._tracker.wait_for_fresh(self._fresh_ms, self._capture_wait)
        if fix is None:
            fix = self._tracker.latest_within(self._stale_ms)
            advisories.append(Advisory.NO_GPS if fix is None else Advisory.STALE_FIX)

        reading = await self._store.add(Reading(
            depth=float(depth),
            captured_at=self._tracker.now_ms(),
            position=fix.to_position() if fix is not None else None,
            flags=flags or ReadingFlags(),
            sync_state=SyncState.PENDING,
            project_id=project_id,
        ))

        log.info("reading_recorded", reading_id=reading.id, depth=reading.depth,
                 project_id=project_id,
                 accuracy_m=fix.accuracy_m if fix is not None else None,
                 advisories=[a.value for a in advisories])
        return CaptureResult(reading=reading, advisories=tuple(advisories))

    async def set_flags(self, reading_id: int, **changes: bool) -> Reading:
        """Toggle flags on a local reading.

        PENDING readings are edited in place. SYNCED readings are edited on
        the remote store and the local copy mirrors the result; they are
        never re-queued.
        """
        reading = await self._store.get(reading_id)
        flags = reading.flags.with_changes(**changes)

        if reading.sync_state is SyncState.SYNCED:
            if self._remote is None:
                raise RuntimeError("synced readings can only be edited with a remote store")
            await self._remote.update_reading(reading.remote_id, flags=flags)
            log.info("remote_reading_flags_updated", reading_id=reading_id,
                     remote_id=reading.remote_id)

        return await self._store.update(replace(reading, flags=flags))

    async def tag_latest(self, flag: str = "has_vegetation", value: bool = True) -> Reading | None:
        """Set a flag on the most recently captured reading, if any."""
        readings = await self._store.get_all()
        if not readings:
            return None
        return await self.set_flags(readings[-1].id, **{flag: value})
