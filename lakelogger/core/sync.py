"""Sync engine — reconciles the local pending queue with the remote store.

A sync is all-or-nothing: readings are marked SYNCED only after the remote
store has committed the whole batch. Anything that goes wrong before that
leaves every reading PENDING, so a sync can be retried any number of times.
Both sync and import go through ``insert_batch``, which skips readings
already stored in the project. Sync matches on coordinates and capture time,
so a retry after a lost acknowledgement does not duplicate located readings
while two captures on the same GPS fix both survive. Import matches on
coordinates alone, against what was stored before the import.
"""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING, Any

import structlog

from lakelogger.core.errors import RemoteStoreError
from lakelogger.core.models import ImportResult, SyncResult
from lakelogger.core.payloads import normalize_payload

if TYPE_CHECKING:
    from lakelogger.core.models import Reading
    from lakelogger.storage.base import LocalReadingStore, RemoteReadingStore

log = structlog.get_logger()


async def import_readings(remote: RemoteReadingStore, project_id: int, payload: Any) -> ImportResult:
    """Normalize an exported batch and insert it, skipping coordinate duplicates.

    The payload is validated completely before the store is touched; see
    :func:`lakelogger.core.payloads.normalize_payload` for what is accepted.
    """
    readings = normalize_payload(payload)
    outcomes = await remote.insert_batch(project_id, readings, match_captured_at=False)
    imported = sum(1 for o in outcomes if o.inserted)
    result = ImportResult(imported_count=imported, skipped_count=len(outcomes) - imported)
    log.info("readings_imported", project_id=project_id,
             imported=result.imported_count, skipped=result.skipped_count)
    return result


class SyncEngine:
    """Moves PENDING readings from the local store to the remote store."""

    def __init__(self, local: LocalReadingStore, remote: RemoteReadingStore) -> None:
        self._local = local
        self._remote = remote

    async def _pending_for(self, project_id: int) -> list[Reading]:
        # Readings captured before any project was chosen go with the first sync.
        return [
            r for r in await self._local.get_pending()
            if r.project_id is None or r.project_id == project_id
        ]

    async def sync(self, project_id: int) -> SyncResult:
        pending = await self._pending_for(project_id)
        if not pending:
            log.info("sync_nothing_pending", project_id=project_id)
            return SyncResult(saved_count=0)

        outcomes = await self._remote.insert_batch(project_id, pending)
        if len(outcomes) != len(pending):
            raise RemoteStoreError(
                f"remote acknowledged {len(outcomes)} of {len(pending)} readings"
            )

        for reading, outcome in zip(pending, outcomes):
            synced = replace(reading.mark_synced(outcome.remote_id), project_id=project_id)
            await self._local.update(synced)

        saved = sum(1 for o in outcomes if o.inserted)
        result = SyncResult(saved_count=saved, skipped_count=len(outcomes) - saved)
        log.info("sync_completed", project_id=project_id,
                 saved=result.saved_count, skipped=result.skipped_count)
        return result

    async def import_readings(self, project_id: int, payload: Any) -> ImportResult:
        return await import_readings(self._remote, project_id, payload)

    async def readings_for_render(self, project_id: int) -> list[Reading]:
        """Remote readings of the project plus local readings not yet synced."""
        remote = await self._remote.list_readings(project_id)
        return remote + await self._pending_for(project_id)
