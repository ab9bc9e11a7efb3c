"""HTTP client implementation of RemoteReadingStore.

Talks to the lakelogger server API. Transport failures and timeouts are
reported as :class:`RemoteUnavailableError` so callers can retry; any other
non-success answer is a :class:`RemoteStoreError`.
"""

from __future__ import annotations

import httpx
import structlog

from lakelogger.core.errors import (
    LakeLoggerError,
    ProjectNotFoundError,
    ReadingNotFoundError,
    RemoteStoreError,
    RemoteUnavailableError,
)
from lakelogger.core.models import InsertOutcome, Reading, ReadingFlags, SyncState
from lakelogger.core.payloads import normalize_record, reading_to_payload

log = structlog.get_logger()


class HttpRemoteStore:
    """RemoteReadingStore that calls ``/api/v1`` on a lakelogger server."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    @classmethod
    def connect(cls, server_url: str, timeout_seconds: float = 10.0) -> HttpRemoteStore:
        return cls(httpx.AsyncClient(base_url=server_url, timeout=timeout_seconds))

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        url: str,
        not_found: LakeLoggerError | None = None,
        **kwargs,
    ) -> dict:
        try:
            resp = await self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            log.warning("remote_timeout", method=method, url=url)
            raise RemoteUnavailableError(f"{method} {url} timed out") from exc
        except httpx.TransportError as exc:
            log.warning("remote_unreachable", method=method, url=url, error=str(exc))
            raise RemoteUnavailableError(f"{method} {url} failed: {exc}") from exc

        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if resp.status_code == 404 and not_found is not None:
            raise not_found
        if resp.status_code >= 500:
            raise RemoteUnavailableError(f"{method} {url} returned {resp.status_code}")
        if resp.status_code >= 400 or not body.get("ok", False):
            raise RemoteStoreError(body.get("error") or f"{method} {url} returned {resp.status_code}")
        return body

    async def insert_batch(
        self,
        project_id: int,
        readings: list[Reading],
        *,
        match_captured_at: bool = True,
    ) -> list[InsertOutcome]:
        body = {
            "readings": [reading_to_payload(r) for r in readings],
            "match_captured_at": match_captured_at,
        }
        data = await self._request(
            "POST", f"/api/v1/projects/{project_id}/sync",
            not_found=ProjectNotFoundError(project_id), json=body,
        )
        return [
            InsertOutcome(remote_id=item["remote_id"], inserted=item["inserted"])
            for item in data.get("results", [])
        ]

    async def update_reading(
        self,
        reading_id: int,
        *,
        depth: float | None = None,
        flags: ReadingFlags | None = None,
    ) -> Reading:
        body: dict = {}
        if depth is not None:
            body["depth"] = depth
        if flags is not None:
            body.update(
                is_shoreline=flags.is_shoreline,
                has_vegetation=flags.has_vegetation,
                has_catch_marker=flags.has_catch_marker,
            )
        data = await self._request(
            "PATCH", f"/api/v1/readings/{reading_id}",
            not_found=ReadingNotFoundError(reading_id), json=body,
        )
        return self._to_reading(data["reading"])

    async def delete_reading(self, reading_id: int) -> None:
        await self._request(
            "DELETE", f"/api/v1/readings/{reading_id}",
            not_found=ReadingNotFoundError(reading_id),
        )

    async def list_readings(self, project_id: int) -> list[Reading]:
        data = await self._request(
            "GET", f"/api/v1/projects/{project_id}/readings",
            not_found=ProjectNotFoundError(project_id),
        )
        return [self._to_reading(item, project_id) for item in data.get("readings", [])]

    @staticmethod
    def _to_reading(item: dict, project_id: int | None = None) -> Reading:
        reading = normalize_record(item)
        return Reading(
            id=item["id"],
            remote_id=item["id"],
            project_id=item.get("project_id", project_id),
            depth=reading.depth,
            position=reading.position,
            flags=reading.flags,
            captured_at=reading.captured_at,
            sync_state=SyncState.SYNCED,
        )
