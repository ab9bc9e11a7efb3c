"""Last-known GPS fix.

A single producer (the platform's position watch) pushes fixes with
:meth:`PositionTracker.update`; readers look at the one slot and never
mutate it. There is no history: a newer fix replaces the previous one.
A source that is permanently unavailable is a tracker that never gets a
fix, which readers see as ``None``.
"""

from __future__ import annotations

import asyncio
from typing import Callable

import structlog

from lakelogger.core.models import PositionFix, now_ms

log = structlog.get_logger()


class PositionTracker:
    """Holds the most recent :class:`PositionFix` and wakes waiting readers."""

    def __init__(self, clock: Callable[[], int] = now_ms) -> None:
        self._clock = clock
        self._latest: PositionFix | None = None
        self._changed = asyncio.Event()

    @property
    def latest(self) -> PositionFix | None:
        return self._latest

    def now_ms(self) -> int:
        return self._clock()

    def update(self, fix: PositionFix) -> None:
        """Replace the current fix. Called only by the position source."""
        self._latest = fix
        changed, self._changed = self._changed, asyncio.Event()
        changed.set()
        log.debug("position_fix", lat=round(fix.latitude, 6), lon=round(fix.longitude, 6),
                  accuracy_m=fix.accuracy_m)

    def latest_within(self, max_age_ms: int) -> PositionFix | None:
        """The current fix if it is no older than ``max_age_ms``."""
        fix = self._latest
        if fix is not None and fix.age_ms(self._clock()) <= max_age_ms:
            return fix
        return None

    async def wait_for_fresh(self, max_age_ms: int, timeout_s: float) -> PositionFix | None:
        """Wait up to ``timeout_s`` for a fix no older than ``max_age_ms``.

        Returns ``None`` when the window closes without one.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_s
        while True:
            fix = self.latest_within(max_age_ms)
            if fix is not None:
                return fix
            remaining = deadline - loop.time()
            if remaining <= 0:
                return None
            try:
                await asyncio.wait_for(self._changed.wait(), remaining)
            except asyncio.TimeoutError:
                return None
