"""
Persistence of the arrangement document.

The store is built over an explicitly injected table client: a
SqlArrangementTable for a real database, or an UnavailableTable when no
backend is configured. Backend failures never escape the store; they are
logged and turned into None / False / SaveResult(success=False).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Protocol

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from .models import Arrangement, ArrangementData, ArrangementSummary, SeatingError, utc_now
from .realtime import ArrangementChannel, ArrangementEvent


logger = logging.getLogger(__name__)

DEFAULT_ARRANGEMENT_NAME = "Wedding Seating Chart"
DEFAULT_RETENTION = 10


class BackendUnavailable(SeatingError):
    pass


class ArrangementTable(Protocol):
    available: bool

    def latest(self) -> Optional[dict]: ...

    def get(self, arrangement_id: str) -> Optional[dict]: ...

    def insert(self, *, name: str, data: dict, now: datetime) -> dict: ...

    def update(
        self, arrangement_id: str, *, data: dict, now: datetime, expected_version: Optional[int] = None
    ) -> Optional[dict]: ...

    def recent(self, limit: Optional[int] = None) -> list[dict]: ...

    def delete(self, ids) -> int: ...


class UnavailableTable:
    """Stand-in for a backend that is not configured or could not be reached."""

    available = False

    def __init__(self, reason: str = "no database configured"):
        self.reason = reason

    def _fail(self, *args, **kwargs):
        raise BackendUnavailable(self.reason)

    latest = get = insert = update = recent = delete = _fail


@dataclass(frozen=True)
class SaveResult:
    success: bool
    conflict: bool = False
    latest: Optional[Arrangement] = None


_STORE_ERRORS = (BackendUnavailable, SQLAlchemyError, ValidationError, ValueError)


class ArrangementStore:
    def __init__(
        self,
        table: ArrangementTable,
        *,
        name: str = DEFAULT_ARRANGEMENT_NAME,
        retention: int = DEFAULT_RETENTION,
        channel: Optional[ArrangementChannel] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        if retention < 1:
            raise SeatingError("retention must be >= 1")
        self.table = table
        self.name = name
        self.retention = retention
        self.channel = channel
        self.clock = clock
        # Set when the last fetch_latest() hit a backend error, cleared on success.
        self.last_error: Optional[Exception] = None

    @property
    def available(self) -> bool:
        return bool(getattr(self.table, "available", True))

    def fetch_latest(self) -> Optional[Arrangement]:
        try:
            row = self.table.latest()
        except (BackendUnavailable, SQLAlchemyError) as e:
            logger.error("Error fetching arrangement: %s", e)
            self.last_error = e
            return None
        self.last_error = None
        try:
            return Arrangement.model_validate(row) if row else None
        except (ValidationError, ValueError) as e:
            logger.error("Malformed arrangement row: %s", e)
            return None

    def get(self, arrangement_id: str) -> Optional[Arrangement]:
        try:
            row = self.table.get(arrangement_id)
            return Arrangement.model_validate(row) if row else None
        except _STORE_ERRORS as e:
            logger.error("Error fetching arrangement %s: %s", arrangement_id, e)
            return None

    def list_recent(self, limit: Optional[int] = None) -> list[ArrangementSummary]:
        try:
            return [ArrangementSummary.model_validate(r) for r in self.table.recent(limit)]
        except _STORE_ERRORS as e:
            logger.error("Error listing arrangements: %s", e)
            return []

    def save(self, data: ArrangementData, silent: bool = False) -> bool:
        """Last-writer-wins save into the single arrangement row (created if missing)."""
        level = logging.DEBUG if silent else logging.INFO
        try:
            payload = data.to_json_dict()
            now = self.clock()
            latest = self.table.latest()
            if latest:
                row = self.table.update(latest["id"], data=payload, now=now)
                if row is None:
                    # Row vanished between the read and the write (pruned elsewhere).
                    row = self.table.insert(name=self.name, data=payload, now=now)
                logger.log(level, "Arrangement saved: id=%s version=%s", row["id"], row["version"])
            else:
                row = self.table.insert(name=self.name, data=payload, now=now)
                logger.log(level, "Arrangement created: id=%s", row["id"])
        except _STORE_ERRORS as e:
            logger.log(logging.WARNING if silent else logging.ERROR, "Error saving arrangement: %s", e)
            return False

        self._prune()
        self._publish(row)
        return True

    def save_with_version(self, data: ArrangementData, arrangement_id: str, expected_version: int) -> SaveResult:
        """
        Conditional save: applies only if the stored version still equals
        expected_version. On mismatch nothing is written and the current latest
        arrangement is returned with conflict=True.
        """
        try:
            row = self.table.update(
                arrangement_id, data=data.to_json_dict(), now=self.clock(), expected_version=expected_version
            )
        except _STORE_ERRORS as e:
            logger.error("Error saving arrangement %s: %s", arrangement_id, e)
            return SaveResult(success=False)

        if row is None:
            logger.warning(
                "Version conflict saving arrangement %s (expected version %s)", arrangement_id, expected_version
            )
            return SaveResult(success=False, conflict=True, latest=self.fetch_latest())

        logger.info("Arrangement saved: id=%s version=%s", row["id"], row["version"])
        self._prune()
        self._publish(row)
        return SaveResult(success=True, latest=Arrangement.model_validate(row))

    def _prune(self) -> int:
        try:
            rows = self.table.recent()
            stale = [r["id"] for r in rows[self.retention :]]
            if not stale:
                return 0
            deleted = self.table.delete(stale)
        except _STORE_ERRORS as e:
            logger.error("Error cleaning up old arrangements: %s", e)
            return 0
        logger.info("Cleaned up %d old arrangements", deleted)
        return deleted

    def _publish(self, row: dict) -> None:
        if self.channel is None:
            return
        self.channel.publish(ArrangementEvent(type="update", arrangement_id=row["id"], version=row["version"]))
