"""Storage interfaces (ports) for the local queue and the remote store."""

from __future__ import annotations

from typing import Protocol, TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

    from lakelogger.core.models import InsertOutcome, Reading, ReadingFlags


class LocalReadingStore(Protocol):
    """Port: on-device persistence keyed by local reading id."""

    async def add(self, reading: Reading) -> Reading: ...

    async def update(self, reading: Reading) -> Reading: ...

    async def delete(self, reading_id: int) -> None: ...

    async def get(self, reading_id: int) -> Reading: ...

    async def get_all(self) -> list[Reading]: ...

    async def get_pending(self) -> list[Reading]: ...

    async def export(self, path: str | Path) -> int: ...

    async def clear(self) -> int: ...


class RemoteReadingStore(Protocol):
    """Port: project-scoped authoritative store.

    ``insert_batch`` is transactional: either every reading commits or none
    does. A reading matching one already stored in the project (same
    coordinates and, with ``match_captured_at``, same capture time) is not
    inserted; its outcome carries the existing id. Readings of the same
    batch are never matched against each other.
    """

    async def insert_batch(
        self,
        project_id: int,
        readings: list[Reading],
        *,
        match_captured_at: bool = True,
    ) -> list[InsertOutcome]: ...

    async def update_reading(
        self,
        reading_id: int,
        *,
        depth: float | None = None,
        flags: ReadingFlags | None = None,
    ) -> Reading: ...

    async def delete_reading(self, reading_id: int) -> None: ...

    async def list_readings(self, project_id: int) -> list[Reading]: ...
