"""Runtime settings, read from the environment (and a .env file if present)."""

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel

_ENV_PREFIX = "NESTEDSET_"


class Settings(BaseModel):
    database_path: str = "nestedset.db"
    busy_timeout_ms: int = 5000  # SQLite lock wait before SQLITE_BUSY
    lock_timeout: float = 10.0  # seconds waiting for the in-process writer lock
    journal_mode: str = "WAL"

    @classmethod
    def from_env(cls, env_file: str | Path | None = None) -> "Settings":
        """Build settings from NESTEDSET_* variables, loading env_file first."""
        load_dotenv(env_file)
        values: dict[str, str] = {}
        for name in cls.model_fields:
            raw = os.environ.get(f"{_ENV_PREFIX}{name.upper()}")
            if raw is not None:
                values[name] = raw
        return cls.model_validate(values)
