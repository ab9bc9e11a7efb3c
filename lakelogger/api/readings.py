"""Reading sync, import and edit endpoints.

Thin FastAPI adapter: parses JSON, normalizes records at the boundary and
calls the remote store. Errors are turned into responses by the handlers
registered in :mod:`lakelogger.main`.
"""

from __future__ import annotations

import json
import math

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from lakelogger.core.errors import BadRequestError, ImportPayloadError, LakeLoggerError
from lakelogger.core.payloads import normalize_record, reading_to_payload
from lakelogger.core.sync import import_readings

router = APIRouter(prefix="/api/v1")


async def _json_body(request: Request, on_error: LakeLoggerError):
    body_bytes = await request.body()
    try:
        return json.loads(body_bytes) if body_bytes else None
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise on_error from None


@router.post("/projects/{project_id}/sync")
async def sync_readings(project_id: int, request: Request) -> JSONResponse:
    """Store a batch of client readings in one transaction.

    Body: {"readings": [...], "match_captured_at": true} in the current
    record shape. The answer lists, per submitted reading and in order, the
    remote id and whether it was inserted or matched a reading already
    stored at the same coordinates and capture time.
    """
    from lakelogger.main import get_stats, get_store

    body = await _json_body(request, BadRequestError("invalid JSON"))
    raw = body.get("readings") if isinstance(body, dict) else None
    if not isinstance(raw, list):
        raise BadRequestError("body must be {\"readings\": [...]}")
    match_captured_at = body.get("match_captured_at", True)
    if not isinstance(match_captured_at, bool):
        raise BadRequestError("match_captured_at must be true or false")
    if not raw:
        return JSONResponse(content={"ok": True, "saved": 0, "skipped": 0, "results": []})

    readings = [normalize_record(r) for r in raw]
    outcomes = await get_store().insert_batch(
        project_id, readings, match_captured_at=match_captured_at,
    )
    saved = sum(1 for o in outcomes if o.inserted)
    get_stats().record_batch(project_id, source="sync", received=len(outcomes), stored=saved)

    return JSONResponse(content={
        "ok": True,
        "saved": saved,
        "skipped": len(outcomes) - saved,
        "results": [{"remote_id": o.remote_id, "inserted": o.inserted} for o in outcomes],
    })


@router.post("/projects/{project_id}/import")
async def import_project_readings(project_id: int, request: Request) -> JSONResponse:
    """Import an exported readings file (any app version) into a project.

    Body: a list of readings or {"readings": [...]}. Readings whose exact
    coordinates already exist in the project are skipped.
    """
    from lakelogger.main import get_stats, get_store

    try:
        body = await _json_body(request, ImportPayloadError("unparseable", "body is not valid JSON"))
        result = await import_readings(get_store(), project_id, body)
    except ImportPayloadError:
        get_stats().record_import_rejected()
        raise

    get_stats().record_batch(
        project_id,
        source="import",
        received=result.imported_count + result.skipped_count,
        stored=result.imported_count,
    )
    return JSONResponse(content={
        "ok": True,
        "imported": result.imported_count,
        "skipped": result.skipped_count,
    })


@router.get("/projects/{project_id}/readings")
async def list_project_readings(project_id: int) -> JSONResponse:
    """All readings of a project, most recent first."""
    from lakelogger.main import get_store

    readings = await get_store().list_readings(project_id)
    return JSONResponse(content={
        "ok": True,
        "readings": [{**reading_to_payload(r), "project_id": r.project_id} for r in readings],
    })


@router.patch("/readings/{reading_id}")
async def update_reading(reading_id: int, request: Request) -> JSONResponse:
    """Edit a synced reading's depth and/or flags.

    Body: any of {"depth", "is_shoreline", "has_vegetation", "has_catch_marker"}.
    """
    from lakelogger.main import get_store

    body = await _json_body(request, BadRequestError("invalid JSON"))
    if not isinstance(body, dict):
        raise BadRequestError("expected an object")

    depth = body.get("depth")
    if depth is not None and (isinstance(depth, bool) or not isinstance(depth, (int, float))
                              or not math.isfinite(depth) or depth < 0):
        raise BadRequestError("depth must be a non-negative number")

    store = get_store()
    flag_changes = {
        k: body[k] for k in ("is_shoreline", "has_vegetation", "has_catch_marker") if k in body
    }
    if any(not isinstance(v, bool) for v in flag_changes.values()):
        raise BadRequestError("flags must be true or false")
    flags = None
    if flag_changes:
        current = await store.get_reading(reading_id)
        flags = current.flags.with_changes(**flag_changes)

    reading = await store.update_reading(reading_id, depth=depth, flags=flags)
    return JSONResponse(content={
        "ok": True,
        "reading": {**reading_to_payload(reading), "project_id": reading.project_id},
    })


@router.delete("/readings/{reading_id}")
async def delete_reading(reading_id: int) -> JSONResponse:
    from lakelogger.main import get_store

    await get_store().delete_reading(reading_id)
    return JSONResponse(content={"ok": True})
