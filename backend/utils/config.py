"""Environment-driven application settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


@dataclass(frozen=True)
class Settings:
    app_name: str
    app_version: str
    database_path: Path
    log_level: str

    default_room_capacity: int
    default_vehicle_capacity: int
    default_table_capacity: int
    fallback_capacity: int

    guest_name_delimiter: str
    default_assigned_by_user_id: str
    strict_remote_writes: bool

    seed_demo_data: bool
    demo_random_seed: int


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Read settings once per process; tests derive copies via `replace`."""
    return Settings(
        app_name=os.getenv("WEDDING_OPS_APP_NAME", "Wedding Ops Assignments"),
        app_version=os.getenv("WEDDING_OPS_APP_VERSION", "0.1.0"),
        database_path=Path(
            os.getenv("WEDDING_OPS_DB_PATH", "data/wedding_ops.db")
        ),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        default_room_capacity=_env_int("WEDDING_OPS_DEFAULT_ROOM_CAPACITY", 2),
        default_vehicle_capacity=_env_int("WEDDING_OPS_DEFAULT_VEHICLE_CAPACITY", 40),
        default_table_capacity=_env_int("WEDDING_OPS_DEFAULT_TABLE_CAPACITY", 8),
        fallback_capacity=_env_int("WEDDING_OPS_FALLBACK_CAPACITY", 2),
        guest_name_delimiter=os.getenv("WEDDING_OPS_NAME_DELIMITER", "; "),
        default_assigned_by_user_id=os.getenv("WEDDING_OPS_DEFAULT_USER_ID", "1"),
        strict_remote_writes=_env_bool("WEDDING_OPS_STRICT_REMOTE_WRITES", False),
        seed_demo_data=_env_bool("WEDDING_OPS_SEED_DEMO_DATA", True),
        demo_random_seed=_env_int("WEDDING_OPS_DEMO_RANDOM_SEED", 42),
    )
