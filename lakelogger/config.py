"""Lake Logger configuration.

Loads from config.yaml if present, with environment variable overrides.
Environment variables use the pattern: LAKE_<SECTION>_<KEY> (uppercase).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path

import yaml


@dataclass
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 4567
    env: str = "dev"  # "dev" or "prod"
    active_window_seconds: float = 600.0


@dataclass
class StorageConfig:
    db_path: str = "data/lake-logger.db"
    local_dir: str = "data/local"


@dataclass
class ClientConfig:
    server_url: str = "http://localhost:4567"
    request_timeout_seconds: float = 10.0
    capture_wait_seconds: float = 3.0
    fresh_fix_max_age_seconds: float = 5.0
    stale_fix_max_age_seconds: float = 30.0


@dataclass
class SurfaceConfig:
    max_accuracy_m: float = 50.0
    min_points: int = 3
    cell_size_deg: float = 0.00005
    idw_power: float = 2.0
    vegetation_radius_m: float = 12.0
    max_grid_cells: int = 250_000


@dataclass
class LoggingConfig:
    level: str = "info"
    format: str = "console"  # "console" or "json"


@dataclass
class AppConfig:
    server: ServerConfig = field(default_factory=ServerConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    client: ClientConfig = field(default_factory=ClientConfig)
    surface: SurfaceConfig = field(default_factory=SurfaceConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _apply_env_overrides(config: AppConfig) -> None:
    """Override config values from environment variables."""
    mapping = {
        "LAKE_SERVER_HOST": lambda v: setattr(config.server, "host", v),
        "LAKE_SERVER_PORT": lambda v: setattr(config.server, "port", int(v)),
        "LAKE_SERVER_ENV": lambda v: setattr(config.server, "env", v),
        "LAKE_SERVER_ACTIVE_WINDOW": lambda v: setattr(config.server, "active_window_seconds", float(v)),
        "LAKE_STORAGE_DB_PATH": lambda v: setattr(config.storage, "db_path", v),
        "LAKE_STORAGE_LOCAL_DIR": lambda v: setattr(config.storage, "local_dir", v),
        "LAKE_CLIENT_SERVER_URL": lambda v: setattr(config.client, "server_url", v),
        "LAKE_CLIENT_TIMEOUT": lambda v: setattr(config.client, "request_timeout_seconds", float(v)),
        "LAKE_CLIENT_CAPTURE_WAIT": lambda v: setattr(config.client, "capture_wait_seconds", float(v)),
        "LAKE_SURFACE_MAX_ACCURACY_M": lambda v: setattr(config.surface, "max_accuracy_m", float(v)),
        "LAKE_SURFACE_CELL_SIZE_DEG": lambda v: setattr(config.surface, "cell_size_deg", float(v)),
        "LAKE_SURFACE_VEGETATION_RADIUS_M": lambda v: setattr(config.surface, "vegetation_radius_m", float(v)),
        "LAKE_LOG_LEVEL": lambda v: setattr(config.logging, "level", v),
        "LAKE_LOG_FORMAT": lambda v: setattr(config.logging, "format", v),
    }
    for env_key, setter in mapping.items():
        val = os.environ.get(env_key)
        if val is not None:
            setter(val)


def _apply_section(section: object, values: dict) -> None:
    known = {f.name for f in fields(section)}
    for k, v in values.items():
        if k in known:
            setattr(section, k, v)


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load configuration from YAML file + environment overrides."""
    config = AppConfig()

    if config_path is None:
        config_path = Path("config.yaml")
    else:
        config_path = Path(config_path)

    if config_path.exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}

        for name in ("server", "storage", "client", "surface", "logging"):
            if isinstance(raw.get(name), dict):
                _apply_section(getattr(config, name), raw[name])

    # Environment overrides always win
    _apply_env_overrides(config)
    return config
