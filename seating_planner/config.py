from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from .editor import DEFAULT_GRID_SIZE
from .models import SeatingError
from .session import DEFAULT_AUTOSAVE_SECONDS
from .storage import DEFAULT_CACHE_FILE
from .store import DEFAULT_ARRANGEMENT_NAME, DEFAULT_RETENTION


@dataclass(frozen=True)
class Settings:
    data_dir: Path
    db_url: Optional[str]
    cache_file: Path
    arrangement_name: str = DEFAULT_ARRANGEMENT_NAME
    retention: int = DEFAULT_RETENTION
    autosave_seconds: float = DEFAULT_AUTOSAVE_SECONDS
    grid_size: float = DEFAULT_GRID_SIZE
    log_level: str = "INFO"


def _number(env: Mapping[str, str], key: str, default, cast):
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        return cast(raw)
    except ValueError as e:
        raise SeatingError(f"invalid {key}: {raw!r}") from e


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    env = os.environ if env is None else env
    data_dir = Path(env.get("SEATING_DATA_DIR") or Path.cwd() / "data")
    cache_file = Path(env.get("SEATING_CACHE_FILE") or data_dir / DEFAULT_CACHE_FILE)
    return Settings(
        data_dir=data_dir,
        db_url=env.get("SEATING_DB_URL") or None,
        cache_file=cache_file,
        arrangement_name=env.get("SEATING_ARRANGEMENT_NAME") or DEFAULT_ARRANGEMENT_NAME,
        retention=_number(env, "SEATING_RETENTION", DEFAULT_RETENTION, int),
        autosave_seconds=_number(env, "SEATING_AUTOSAVE_SECONDS", DEFAULT_AUTOSAVE_SECONDS, float),
        grid_size=_number(env, "SEATING_GRID_SIZE", DEFAULT_GRID_SIZE, float),
        log_level=(env.get("SEATING_LOG_LEVEL") or "INFO").upper(),
    )
