from __future__ import annotations

import json
import uuid
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

from sqlalchemy import update
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import Field, Session, SQLModel, create_engine, delete, select

from .models import utc_now


def _new_id() -> str:
    return str(uuid.uuid4())


class ArrangementRecord(SQLModel, table=True):
    __tablename__ = "arrangements"

    id: str = Field(default_factory=_new_id, primary_key=True)
    name: str
    version: int = 1

    # Opaque JSON document: {"tables": [...], "seats": [...], "guests": [...]}
    data_json: str = "{}"

    created_at: datetime = Field(default_factory=utc_now, index=True)
    updated_at: datetime = Field(default_factory=utc_now, index=True)

    def data(self) -> dict:
        return json.loads(self.data_json)


def sqlite_url(data_dir: str | Path, filename: str = "seating.db") -> str:
    p = Path(data_dir)
    p.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{p / filename}"


def make_engine(url: str) -> Engine:
    if url.startswith("sqlite"):
        if url in ("sqlite://", "sqlite:///:memory:"):
            # One shared connection, otherwise every session sees a fresh empty DB.
            return create_engine(
                url, echo=False, connect_args={"check_same_thread": False}, poolclass=StaticPool
            )
        return create_engine(url, echo=False, connect_args={"check_same_thread": False})
    return create_engine(url, echo=False)


def init_db(engine: Engine) -> None:
    SQLModel.metadata.create_all(engine)


def _row(rec: ArrangementRecord) -> dict:
    return {
        "id": rec.id,
        "name": rec.name,
        "version": rec.version,
        "created_at": rec.created_at,
        "updated_at": rec.updated_at,
        "data": rec.data(),
    }


def _newest_first():
    return (ArrangementRecord.updated_at.desc(), ArrangementRecord.created_at.desc())


class SqlArrangementTable:
    """
    Row-level access to the arrangements table. Rows come back as plain dicts;
    errors (SQLAlchemyError) propagate to the caller.
    """

    available = True

    def __init__(self, engine: Engine):
        self.engine = engine

    def latest(self) -> Optional[dict]:
        with Session(self.engine) as session:
            rec = session.exec(select(ArrangementRecord).order_by(*_newest_first()).limit(1)).first()
            return _row(rec) if rec else None

    def get(self, arrangement_id: str) -> Optional[dict]:
        with Session(self.engine) as session:
            rec = session.get(ArrangementRecord, arrangement_id)
            return _row(rec) if rec else None

    def insert(self, *, name: str, data: dict, now: datetime) -> dict:
        with Session(self.engine) as session:
            rec = ArrangementRecord(name=name, data_json=json.dumps(data), created_at=now, updated_at=now)
            session.add(rec)
            session.commit()
            session.refresh(rec)
            return _row(rec)

    def update(
        self,
        arrangement_id: str,
        *,
        data: dict,
        now: datetime,
        expected_version: Optional[int] = None,
    ) -> Optional[dict]:
        """
        Overwrite data and bump version. With expected_version, the write is a
        compare-and-set on version; returns None when nothing matched.
        """
        stmt = update(ArrangementRecord).where(ArrangementRecord.id == arrangement_id)
        if expected_version is not None:
            stmt = stmt.where(ArrangementRecord.version == expected_version)
        stmt = stmt.values(
            data_json=json.dumps(data),
            updated_at=now,
            version=ArrangementRecord.version + 1,
        ).execution_options(synchronize_session=False)
        with Session(self.engine) as session:
            res = session.exec(stmt)
            session.commit()
            if not res.rowcount:
                return None
            rec = session.get(ArrangementRecord, arrangement_id)
            return _row(rec) if rec else None

    def recent(self, limit: Optional[int] = None) -> list[dict]:
        with Session(self.engine) as session:
            stmt = select(ArrangementRecord).order_by(*_newest_first())
            if limit is not None:
                stmt = stmt.limit(limit)
            return [_row(r) for r in session.exec(stmt).all()]

    def delete(self, ids: Iterable[str]) -> int:
        ids = list(ids)
        if not ids:
            return 0
        with Session(self.engine) as session:
            stmt = delete(ArrangementRecord).where(ArrangementRecord.id.in_(ids)).execution_options(synchronize_session=False)
            res = session.exec(stmt)
            session.commit()
            return int(res.rowcount or 0)
