"""Ordered schema migrations for the remote SQLite store.

Each migration runs at most once per database (tracked in
``schema_migrations``) and is written so re-running it is harmless.
"""

from __future__ import annotations

import sqlite3
import time
from dataclasses import dataclass
from typing import Callable

import structlog

log = structlog.get_logger()


@dataclass(frozen=True)
class Migration:
    version: int
    name: str
    apply: Callable[[sqlite3.Connection], None]


def _columns(conn: sqlite3.Connection, table: str) -> set[str]:
    return {row[1] for row in conn.execute(f"PRAGMA table_info({table})")}


def _add_column(conn: sqlite3.Connection, table: str, column: str, ddl: str) -> bool:
    if column in _columns(conn, table):
        return False
    conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {ddl}")
    return True


def _create_projects(conn: sqlite3.Connection) -> None:
    conn.execute("""
        CREATE TABLE IF NOT EXISTS projects (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT UNIQUE NOT NULL,
            created_at INTEGER NOT NULL
        )
    """)


def _create_readings(conn: sqlite3.Connection) -> None:
    conn.execute("""
        CREATE TABLE IF NOT EXISTS readings (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            project_id INTEGER NOT NULL,
            depth REAL NOT NULL,
            latitude REAL,
            longitude REAL,
            accuracy REAL,
            has_fish INTEGER DEFAULT 0,
            created_at INTEGER NOT NULL,
            FOREIGN KEY (project_id) REFERENCES projects(id)
        )
    """)
    conn.execute("CREATE INDEX IF NOT EXISTS idx_project_id ON readings(project_id)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_created ON readings(created_at)")


def _add_reading_flags(conn: sqlite3.Connection) -> None:
    # has_fish was the weed-bed marker in the first schema; carry it over.
    added = _add_column(conn, "readings", "has_vegetation", "INTEGER NOT NULL DEFAULT 0")
    _add_column(conn, "readings", "is_shoreline", "INTEGER NOT NULL DEFAULT 0")
    _add_column(conn, "readings", "has_catch_marker", "INTEGER NOT NULL DEFAULT 0")
    if added and "has_fish" in _columns(conn, "readings"):
        conn.execute("UPDATE readings SET has_vegetation = COALESCE(has_fish, 0)")


def _add_water_level_offset(conn: sqlite3.Connection) -> None:
    _add_column(conn, "projects", "water_level_offset", "REAL NOT NULL DEFAULT 0")


def _create_fish_catches(conn: sqlite3.Connection) -> None:
    conn.execute("""
        CREATE TABLE IF NOT EXISTS fish_catches (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            project_id INTEGER NOT NULL,
            species TEXT NOT NULL DEFAULT '',
            weight_kg REAL,
            length_cm REAL,
            note TEXT NOT NULL DEFAULT '',
            latitude REAL,
            longitude REAL,
            accuracy REAL,
            captured_at INTEGER NOT NULL,
            FOREIGN KEY (project_id) REFERENCES projects(id)
        )
    """)
    conn.execute("CREATE INDEX IF NOT EXISTS idx_catch_project ON fish_catches(project_id)")


def _index_reading_coordinates(conn: sqlite3.Connection) -> None:
    conn.execute("""
        CREATE INDEX IF NOT EXISTS idx_reading_coords
        ON readings(project_id, latitude, longitude)
    """)


MIGRATIONS: list[Migration] = [
    Migration(1, "create_projects", _create_projects),
    Migration(2, "create_readings", _create_readings),
    Migration(3, "add_reading_flags", _add_reading_flags),
    Migration(4, "add_water_level_offset", _add_water_level_offset),
    Migration(5, "create_fish_catches", _create_fish_catches),
    Migration(6, "index_reading_coordinates", _index_reading_coordinates),
]


def applied_versions(conn: sqlite3.Connection) -> set[int]:
    conn.execute("""
        CREATE TABLE IF NOT EXISTS schema_migrations (
            version INTEGER PRIMARY KEY,
            name TEXT NOT NULL,
            applied_at INTEGER NOT NULL
        )
    """)
    return {row[0] for row in conn.execute("SELECT version FROM schema_migrations")}


def apply_migrations(conn: sqlite3.Connection, migrations: list[Migration] | None = None) -> list[int]:
    """Apply pending migrations in version order. Returns the versions applied."""
    migrations = MIGRATIONS if migrations is None else migrations
    done = applied_versions(conn)
    applied = []
    for migration in sorted(migrations, key=lambda m: m.version):
        if migration.version in done:
            continue
        with conn:
            migration.apply(conn)
            conn.execute(
                "INSERT INTO schema_migrations (version, name, applied_at) VALUES (?, ?, ?)",
                (migration.version, migration.name, int(time.time() * 1000)),
            )
        applied.append(migration.version)
        log.info("migration_applied", version=migration.version, name=migration.name)
    return applied
