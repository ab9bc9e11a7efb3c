"""SQLite implementation of the remote (server-side) store.

Owns projects, readings and fish catches. The schema is brought up to date
by :mod:`lakelogger.storage.migrations` when the store is opened.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from dataclasses import replace
from pathlib import Path
from typing import Iterator

import structlog

from lakelogger.core.errors import (
    DuplicateProjectError,
    ProjectNotFoundError,
    ReadingNotFoundError,
    RemoteStoreError,
)
from lakelogger.core.models import (
    FishCatch,
    InsertOutcome,
    Position,
    Project,
    Reading,
    ReadingFlags,
    SyncState,
    now_ms,
)
from lakelogger.storage.migrations import apply_migrations

log = structlog.get_logger()

_READING_COLUMNS = """
    id, project_id, depth, latitude, longitude, accuracy,
    is_shoreline, has_vegetation, has_catch_marker, created_at
"""


def _position(row: sqlite3.Row) -> Position | None:
    if row["latitude"] is None or row["longitude"] is None:
        return None
    return Position(row["latitude"], row["longitude"], row["accuracy"])


def _dedup_key(lat: float, lon: float, captured_at: int, match_captured_at: bool) -> tuple:
    return (lat, lon, captured_at) if match_captured_at else (lat, lon)


def _row_to_reading(row: sqlite3.Row) -> Reading:
    return Reading(
        id=row["id"],
        remote_id=row["id"],
        project_id=row["project_id"],
        depth=row["depth"],
        position=_position(row),
        flags=ReadingFlags(
            is_shoreline=bool(row["is_shoreline"]),
            has_vegetation=bool(row["has_vegetation"]),
            has_catch_marker=bool(row["has_catch_marker"]),
        ),
        captured_at=row["created_at"],
        sync_state=SyncState.SYNCED,
    )


def _row_to_catch(row: sqlite3.Row) -> FishCatch:
    return FishCatch(
        id=row["id"],
        project_id=row["project_id"],
        species=row["species"],
        weight_kg=row["weight_kg"],
        length_cm=row["length_cm"],
        note=row["note"],
        position=_position(row),
        captured_at=row["captured_at"],
    )


class SqliteRemoteStore:
    """RemoteReadingStore backed by a single SQLite file."""

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._get_connection() as conn:
            conn.execute("PRAGMA journal_mode = WAL")
            applied = apply_migrations(conn)
        log.info("remote_store_opened", path=str(self.db_path), migrations_applied=applied)

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """One connection per operation; commit on success, roll back on error."""
        try:
            conn = sqlite3.connect(self.db_path)
        except sqlite3.Error as exc:
            raise RemoteStoreError(f"cannot open {self.db_path}: {exc}") from exc
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise RemoteStoreError(str(exc)) from exc
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    @staticmethod
    def _require_project(conn: sqlite3.Connection, project_id: int) -> sqlite3.Row:
        row = conn.execute(
            "SELECT id, name, created_at, water_level_offset FROM projects WHERE id = ?",
            (project_id,),
        ).fetchone()
        if row is None:
            raise ProjectNotFoundError(project_id)
        return row

    # --- projects ---

    async def create_project(self, name: str) -> Project:
        created_at = now_ms()
        with self._get_connection() as conn:
            try:
                cur = conn.execute(
                    "INSERT INTO projects (name, created_at) VALUES (?, ?)", (name, created_at),
                )
            except sqlite3.IntegrityError:
                raise DuplicateProjectError(name) from None
        log.info("project_created", project_id=cur.lastrowid, name=name)
        return Project(id=cur.lastrowid, name=name, created_at=created_at)

    async def list_projects(self) -> list[Project]:
        with self._get_connection() as conn:
            rows = conn.execute("""
                SELECT p.id, p.name, p.created_at, p.water_level_offset,
                       (SELECT COUNT(*) FROM readings r WHERE r.project_id = p.id) AS readings_count
                FROM projects p ORDER BY p.name
            """).fetchall()
        return [
            Project(
                id=row["id"],
                name=row["name"],
                created_at=row["created_at"],
                water_level_offset=row["water_level_offset"],
                readings_count=row["readings_count"],
            )
            for row in rows
        ]

    async def get_project(self, project_id: int) -> Project:
        with self._get_connection() as conn:
            row = self._require_project(conn, project_id)
        return Project(
            id=row["id"],
            name=row["name"],
            created_at=row["created_at"],
            water_level_offset=row["water_level_offset"],
        )

    async def set_water_level_offset(self, project_id: int, offset_m: float) -> Project:
        with self._get_connection() as conn:
            self._require_project(conn, project_id)
            conn.execute(
                "UPDATE projects SET water_level_offset = ? WHERE id = ?", (offset_m, project_id),
            )
        return await self.get_project(project_id)

    async def delete_project(self, project_id: int) -> None:
        """Delete a project together with its readings and catches."""
        with self._get_connection() as conn:
            self._require_project(conn, project_id)
            conn.execute("DELETE FROM readings WHERE project_id = ?", (project_id,))
            conn.execute("DELETE FROM fish_catches WHERE project_id = ?", (project_id,))
            conn.execute("DELETE FROM projects WHERE id = ?", (project_id,))
        log.info("project_deleted", project_id=project_id)

    # --- readings ---

    @staticmethod
    def _existing_keys(
        conn: sqlite3.Connection, project_id: int, match_captured_at: bool,
    ) -> dict[tuple, int]:
        """Dedup key -> oldest remote id, over rows committed before the batch."""
        rows = conn.execute(
            "SELECT id, latitude, longitude, created_at FROM readings "
            "WHERE project_id = ? AND latitude IS NOT NULL AND longitude IS NOT NULL "
            "ORDER BY id DESC",
            (project_id,),
        ).fetchall()
        return {
            _dedup_key(row["latitude"], row["longitude"], row["created_at"], match_captured_at): row["id"]
            for row in rows
        }

    async def insert_batch(
        self,
        project_id: int,
        readings: list[Reading],
        *,
        match_captured_at: bool = True,
    ) -> list[InsertOutcome]:
        """Insert readings in one transaction, skipping readings already stored.

        A reading is a duplicate when a row committed before this batch has
        the same coordinates (and, with ``match_captured_at``, the same
        capture time). Readings of one batch never dedup each other:
        consecutive captures on the same GPS fix are distinct readings.
        """
        outcomes: list[InsertOutcome] = []
        with self._get_connection() as conn:
            self._require_project(conn, project_id)
            existing = self._existing_keys(conn, project_id, match_captured_at)
            for reading in readings:
                coords = reading.coordinates
                if coords is not None:
                    key = _dedup_key(*coords, reading.captured_at, match_captured_at)
                    if key in existing:
                        outcomes.append(InsertOutcome(remote_id=existing[key], inserted=False))
                        continue
                pos = reading.position
                cur = conn.execute(
                    """
                    INSERT INTO readings (project_id, depth, latitude, longitude, accuracy,
                                          is_shoreline, has_vegetation, has_catch_marker, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        project_id,
                        reading.depth,
                        pos.latitude if pos else None,
                        pos.longitude if pos else None,
                        pos.accuracy_m if pos else None,
                        int(reading.flags.is_shoreline),
                        int(reading.flags.has_vegetation),
                        int(reading.flags.has_catch_marker),
                        reading.captured_at,
                    ),
                )
                outcomes.append(InsertOutcome(remote_id=cur.lastrowid, inserted=True))

        inserted = sum(1 for o in outcomes if o.inserted)
        log.info("readings_batch_committed", project_id=project_id,
                 inserted=inserted, skipped=len(outcomes) - inserted)
        return outcomes

    async def get_reading(self, reading_id: int) -> Reading:
        with self._get_connection() as conn:
            row = conn.execute(
                f"SELECT {_READING_COLUMNS} FROM readings WHERE id = ?", (reading_id,),
            ).fetchone()
        if row is None:
            raise ReadingNotFoundError(reading_id)
        return _row_to_reading(row)

    async def update_reading(
        self,
        reading_id: int,
        *,
        depth: float | None = None,
        flags: ReadingFlags | None = None,
    ) -> Reading:
        with self._get_connection() as conn:
            if conn.execute("SELECT 1 FROM readings WHERE id = ?", (reading_id,)).fetchone() is None:
                raise ReadingNotFoundError(reading_id)
            if depth is not None:
                conn.execute("UPDATE readings SET depth = ? WHERE id = ?", (depth, reading_id))
            if flags is not None:
                conn.execute(
                    "UPDATE readings SET is_shoreline = ?, has_vegetation = ?, has_catch_marker = ? "
                    "WHERE id = ?",
                    (int(flags.is_shoreline), int(flags.has_vegetation),
                     int(flags.has_catch_marker), reading_id),
                )
        return await self.get_reading(reading_id)

    async def delete_reading(self, reading_id: int) -> None:
        with self._get_connection() as conn:
            cur = conn.execute("DELETE FROM readings WHERE id = ?", (reading_id,))
            if cur.rowcount == 0:
                raise ReadingNotFoundError(reading_id)

    async def list_readings(self, project_id: int) -> list[Reading]:
        """All readings of a project, most recent capture first."""
        with self._get_connection() as conn:
            self._require_project(conn, project_id)
            rows = conn.execute(
                f"SELECT {_READING_COLUMNS} FROM readings WHERE project_id = ? "
                "ORDER BY created_at DESC, id DESC",
                (project_id,),
            ).fetchall()
        return [_row_to_reading(row) for row in rows]

    # --- fish catches ---

    async def add_catch(self, catch: FishCatch) -> FishCatch:
        pos = catch.position
        with self._get_connection() as conn:
            self._require_project(conn, catch.project_id)
            cur = conn.execute(
                """
                INSERT INTO fish_catches (project_id, species, weight_kg, length_cm, note,
                                          latitude, longitude, accuracy, captured_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    catch.project_id, catch.species, catch.weight_kg, catch.length_cm, catch.note,
                    pos.latitude if pos else None,
                    pos.longitude if pos else None,
                    pos.accuracy_m if pos else None,
                    catch.captured_at,
                ),
            )
        return replace(catch, id=cur.lastrowid)

    async def list_catches(self, project_id: int) -> list[FishCatch]:
        with self._get_connection() as conn:
            self._require_project(conn, project_id)
            rows = conn.execute(
                "SELECT * FROM fish_catches WHERE project_id = ? ORDER BY captured_at DESC",
                (project_id,),
            ).fetchall()
        return [_row_to_catch(row) for row in rows]
