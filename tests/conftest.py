"""Shared test fixtures."""

from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

import lakelogger.main as main_module
from lakelogger.config import AppConfig
from lakelogger.core.models import Position, PositionFix, Reading, ReadingFlags
from lakelogger.core.stats import ServerStats
from lakelogger.storage.local_store import FileLocalReadingStore
from lakelogger.storage.sqlite_store import SqliteRemoteStore


@pytest.fixture(autouse=True)
def _init_server(tmp_path):
    """Initialize server singletons for every test, using a temp directory."""
    config = AppConfig()
    config.storage.db_path = str(tmp_path / "data" / "lake-logger.db")
    config.logging.level = "warning"

    stats = ServerStats(active_window_seconds=config.server.active_window_seconds)
    store = SqliteRemoteStore(config.storage.db_path)

    # Patch module-level singletons
    main_module._config = config
    main_module._stats = stats
    main_module._store = store

    yield

    # Cleanup
    main_module._config = None
    main_module._stats = None
    main_module._store = None


@pytest.fixture
def remote_store() -> SqliteRemoteStore:
    return main_module.get_store()


@pytest.fixture
def local_store(tmp_path) -> FileLocalReadingStore:
    return FileLocalReadingStore(tmp_path / "local")


@pytest.fixture
async def client():
    from lakelogger.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


class FakeClock:
    """Millisecond clock the tests move by hand."""

    def __init__(self, start_ms: int = 1_700_000_000_000) -> None:
        self.ms = start_ms

    def __call__(self) -> int:
        return self.ms

    def advance(self, seconds: float) -> None:
        self.ms += int(seconds * 1000)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


def make_fix(clock: FakeClock, lat: float = 46.05, lon: float = 7.12, accuracy_m: float = 5.0,
             age_s: float = 0.0) -> PositionFix:
    return PositionFix(lat, lon, accuracy_m, clock() - int(age_s * 1000))


def make_reading(depth: float, lat: float | None = None, lon: float | None = None,
                 accuracy: float | None = 5.0, **flags: bool) -> Reading:
    position = Position(lat, lon, accuracy) if lat is not None and lon is not None else None
    return Reading(
        depth=depth,
        captured_at=1_700_000_000_000,
        position=position,
        flags=ReadingFlags(**flags),
    )
