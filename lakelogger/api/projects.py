"""Project and fish catch endpoints."""

from __future__ import annotations

import json
import math

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from lakelogger.core.errors import BadRequestError
from lakelogger.core.models import FishCatch, Position, Project, now_ms

router = APIRouter(prefix="/api/v1")


async def _object_body(request: Request) -> dict:
    try:
        body = json.loads(await request.body() or b"{}")
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise BadRequestError("invalid JSON") from None
    if not isinstance(body, dict):
        raise BadRequestError("expected an object")
    return body


def _optional_number(body: dict, key: str) -> float | None:
    value = body.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise BadRequestError(f"{key} must be a number")
    return float(value)


def _project_to_dict(project: Project) -> dict:
    return {
        "id": project.id,
        "name": project.name,
        "created_at": project.created_at,
        "water_level_offset": project.water_level_offset,
        "readings_count": project.readings_count,
    }


def _catch_to_dict(catch: FishCatch) -> dict:
    pos = catch.position
    return {
        "id": catch.id,
        "project_id": catch.project_id,
        "species": catch.species,
        "weight_kg": catch.weight_kg,
        "length_cm": catch.length_cm,
        "note": catch.note,
        "latitude": pos.latitude if pos else None,
        "longitude": pos.longitude if pos else None,
        "accuracy": pos.accuracy_m if pos else None,
        "captured_at": catch.captured_at,
    }


@router.get("/projects")
async def list_projects() -> JSONResponse:
    """All projects with their reading counts, sorted by name."""
    from lakelogger.main import get_store

    projects = await get_store().list_projects()
    return JSONResponse(content={"ok": True, "projects": [_project_to_dict(p) for p in projects]})


@router.post("/projects")
async def create_project(request: Request) -> JSONResponse:
    from lakelogger.main import get_store

    body = await _object_body(request)
    name = body.get("name")
    name = name.strip() if isinstance(name, str) else ""
    if not name:
        raise BadRequestError("Project name required")

    project = await get_store().create_project(name)
    return JSONResponse(content={"ok": True, **_project_to_dict(project)})


@router.patch("/projects/{project_id}")
async def update_project(project_id: int, request: Request) -> JSONResponse:
    """Set the water level offset (metres) applied to displayed depths."""
    from lakelogger.main import get_store

    body = await _object_body(request)
    offset = _optional_number(body, "water_level_offset")
    if offset is None:
        raise BadRequestError("water_level_offset required")

    project = await get_store().set_water_level_offset(project_id, offset)
    return JSONResponse(content={"ok": True, **_project_to_dict(project)})


@router.delete("/projects/{project_id}")
async def delete_project(project_id: int) -> JSONResponse:
    """Delete a project with all of its readings and catches."""
    from lakelogger.main import get_store

    await get_store().delete_project(project_id)
    return JSONResponse(content={"ok": True})


@router.get("/projects/{project_id}/catches")
async def list_catches(project_id: int) -> JSONResponse:
    from lakelogger.main import get_store

    catches = await get_store().list_catches(project_id)
    return JSONResponse(content={"ok": True, "catches": [_catch_to_dict(c) for c in catches]})


@router.post("/projects/{project_id}/catches")
async def add_catch(project_id: int, request: Request) -> JSONResponse:
    """Log a fish catch. Position is optional."""
    from lakelogger.main import get_store

    body = await _object_body(request)
    lat = _optional_number(body, "latitude")
    lon = _optional_number(body, "longitude")
    position = None
    if lat is not None and lon is not None:
        position = Position(lat, lon, _optional_number(body, "accuracy"))

    catch = await get_store().add_catch(FishCatch(
        project_id=project_id,
        species=str(body.get("species") or ""),
        weight_kg=_optional_number(body, "weight_kg"),
        length_cm=_optional_number(body, "length_cm"),
        note=str(body.get("note") or ""),
        position=position,
        captured_at=int(_optional_number(body, "captured_at") or now_ms()),
    ))
    return JSONResponse(content={"ok": True, "catch": _catch_to_dict(catch)})
