"""Lake Logger server — main entry point.

This is the only file that knows about concrete implementations.
It wires together the core, storage, and API layers.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from lakelogger.api.monitoring import router as monitoring_router
from lakelogger.api.projects import router as projects_router
from lakelogger.api.readings import router as readings_router
from lakelogger.api.surface import router as surface_router
from lakelogger.config import AppConfig, load_config
from lakelogger.core.errors import (
    BadRequestError,
    DuplicateProjectError,
    ImportPayloadError,
    LakeLoggerError,
    ProjectNotFoundError,
    ReadingNotFoundError,
    RemoteStoreError,
)
from lakelogger.core.stats import ServerStats
from lakelogger.storage.sqlite_store import SqliteRemoteStore

log = structlog.get_logger()

# Module-level singletons (set during startup)
_store: SqliteRemoteStore | None = None
_stats: ServerStats | None = None
_config: AppConfig | None = None


def get_store() -> SqliteRemoteStore:
    assert _store is not None, "Server not initialized"
    return _store


def get_stats() -> ServerStats:
    assert _stats is not None, "Server not initialized"
    return _stats


def get_config() -> AppConfig:
    assert _config is not None, "Server not initialized"
    return _config


def setup_logging(config: AppConfig) -> None:
    """Configure structlog based on the logging config."""
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if config.logging.format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(config.logging.level.upper()),
        ),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    global _store, _stats, _config

    _config = load_config()
    setup_logging(_config)

    log.info("server_starting",
             env=_config.server.env,
             db_path=_config.storage.db_path)

    _stats = ServerStats(active_window_seconds=_config.server.active_window_seconds)
    _store = SqliteRemoteStore(_config.storage.db_path)

    log.info("server_started",
             host=_config.server.host,
             port=_config.server.port)

    yield

    log.info("server_stopped")


app = FastAPI(
    title="Lake Logger",
    description="Lake depth survey server",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(projects_router)
app.include_router(readings_router)
app.include_router(surface_router)
app.include_router(monitoring_router)


_ERROR_STATUS: list[tuple[type[LakeLoggerError], int]] = [
    (ProjectNotFoundError, 404),
    (ReadingNotFoundError, 404),
    (DuplicateProjectError, 409),
    (ImportPayloadError, 400),
    (BadRequestError, 400),
    (RemoteStoreError, 500),
]


@app.exception_handler(LakeLoggerError)
async def lakelogger_error_handler(request: Request, exc: LakeLoggerError) -> JSONResponse:
    status = next((code for cls, code in _ERROR_STATUS if isinstance(exc, cls)), 500)
    content = {"ok": False, "error": str(exc)}
    if isinstance(exc, ImportPayloadError):
        content["reason"] = exc.reason
    if status >= 500:
        get_stats().record_storage_error()
        log.error("request_failed", path=request.url.path, error=str(exc))
    else:
        log.info("request_rejected", path=request.url.path, status=status, error=str(exc))
    return JSONResponse(content=content, status_code=status)

