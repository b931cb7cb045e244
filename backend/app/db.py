from __future__ import annotations

from functools import lru_cache

from sqlalchemy.engine import Engine

from seating_planner.config import Settings, load_settings
from seating_planner.db import SqlArrangementTable, init_db as create_tables, make_engine, sqlite_url
from seating_planner.realtime import ArrangementChannel
from seating_planner.store import ArrangementStore


def database_url(settings: Settings) -> str:
    # Keep data out of git by default.
    return settings.db_url or sqlite_url(settings.data_dir, "seating.db")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return make_engine(database_url(get_settings()))


@lru_cache(maxsize=1)
def get_channel() -> ArrangementChannel:
    return ArrangementChannel()


@lru_cache(maxsize=1)
def get_store() -> ArrangementStore:
    settings = get_settings()
    return ArrangementStore(
        SqlArrangementTable(get_engine()),
        name=settings.arrangement_name,
        retention=settings.retention,
        channel=get_channel(),
    )


def init_db() -> None:
    create_tables(get_engine())
