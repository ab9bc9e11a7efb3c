"""Depth map endpoint."""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from lakelogger.core.surface import InsufficientData, render_depth_surface

router = APIRouter(prefix="/api/v1")


@router.get("/projects/{project_id}/surface")
async def get_surface(project_id: int) -> JSONResponse:
    """Render the project's depth map as GeoJSON layers plus a legend.

    With fewer than three usable GPS points the answer is
    ``{"status": "insufficient_data", ...}`` rather than an error, so the
    client can show a "need more points" state.
    """
    from lakelogger.main import get_config, get_stats, get_store

    store = get_store()
    project = await store.get_project(project_id)
    readings = await store.list_readings(project_id)
    catches = await store.list_catches(project_id)

    result = render_depth_surface(
        readings,
        get_config().surface,
        water_level_offset=project.water_level_offset,
        catches=catches,
    )
    get_stats().record_render(insufficient=isinstance(result, InsufficientData))
    return JSONResponse(content={"ok": True, "project_id": project_id, **result.to_dict()})
