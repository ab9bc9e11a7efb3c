"""Health check and monitoring endpoints."""

from __future__ import annotations

import json
import shutil
from pathlib import Path

from fastapi import APIRouter

router = APIRouter(prefix="/api/v1")

# Load build info once at import time.
_BUILD_INFO_PATH = Path(__file__).parent.parent / "build_info.json"
_BUILD_INFO: dict = {}
if _BUILD_INFO_PATH.exists():
    try:
        _BUILD_INFO = json.loads(_BUILD_INFO_PATH.read_text())
    except (json.JSONDecodeError, OSError):
        pass


@router.get("/health")
async def health() -> dict:
    """Basic health check."""
    from lakelogger.main import get_config, get_stats

    stats = get_stats()
    config = get_config()

    db_dir = Path(config.storage.db_path).parent
    try:
        disk = shutil.disk_usage(db_dir if db_dir.exists() else ".")
        disk_free_gb = round(disk.free / (1024 ** 3), 1)
        storage_writable = True
    except OSError:
        disk_free_gb = -1
        storage_writable = False

    snapshot = stats.snapshot()
    result = {
        "status": "ok",
        "version": "0.1.0",
        "uptime_seconds": snapshot["uptime_seconds"],
        "storage_writable": storage_writable,
        "disk_free_gb": disk_free_gb,
    }
    result.update(_BUILD_INFO)
    return result


@router.get("/stats")
async def stats() -> dict:
    """Detailed server statistics.

    The ``active_projects`` section shows:
    - ``total``: projects that received readings in the last N seconds
    - ``sync``: projects whose last batch was a client sync
    - ``import``: projects whose last batch was a file import
    - ``window_seconds``: the time window used for "active" calculation
    """
    from lakelogger.main import get_stats

    return get_stats().snapshot()


@router.get("/config")
async def get_client_config() -> dict:
    """Configuration endpoint for the app.

    The app calls this on startup to get server-controlled parameters.
    """
    from lakelogger.main import get_config

    config = get_config()
    return {
        "max_accuracy_m": config.surface.max_accuracy_m,
        "min_points": config.surface.min_points,
        "vegetation_radius_m": config.surface.vegetation_radius_m,
        "capture_wait_seconds": config.client.capture_wait_seconds,
        "stale_fix_max_age_seconds": config.client.stale_fix_max_age_seconds,
    }
