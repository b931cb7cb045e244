from __future__ import annotations

import uuid
from typing import Optional

from .models import (
    DEFAULT_RECT_HEIGHT,
    DEFAULT_RECT_WIDTH,
    DEFAULT_SEAT_COUNT,
    ArrangementData,
    Guest,
    Seat,
    SeatingError,
    Table,
    TableShape,
    seat_id_for,
)
from .reconciler import assigned_guest_ids


def _new_table_id() -> str:
    return f"table-{uuid.uuid4().hex[:8]}"


def make_seats(table_id: str, start: int, stop: int) -> list[Seat]:
    return [Seat(id=seat_id_for(table_id, p), table_id=table_id, position=p) for p in range(start, stop)]


def _require_table(data: ArrangementData, table_id: str) -> Table:
    table = data.table(table_id)
    if table is None:
        raise SeatingError(f"table not found: {table_id}")
    return table


def add_table(
    data: ArrangementData,
    shape: TableShape = TableShape.circle,
    *,
    table_id: Optional[str] = None,
    name: Optional[str] = None,
    seat_count: int = DEFAULT_SEAT_COUNT,
    x: float = 100.0,
    y: float = 100.0,
) -> tuple[ArrangementData, Table]:
    if seat_count < 1:
        raise SeatingError("seat_count must be a positive integer")
    table_id = table_id or _new_table_id()
    if data.table(table_id) is not None:
        raise SeatingError(f"table already exists: {table_id}")
    table = Table(
        id=table_id,
        x=x,
        y=y,
        name=(name or "").strip() or f"Table {len(data.tables) + 1}",
        seat_count=seat_count,
        shape=shape,
        width=DEFAULT_RECT_WIDTH if shape is TableShape.rectangle else None,
        height=DEFAULT_RECT_HEIGHT if shape is TableShape.rectangle else None,
    )
    new = data.model_copy(
        update={
            "tables": [*data.tables, table],
            "seats": [*data.seats, *make_seats(table_id, 0, seat_count)],
        }
    )
    return new, table


def resize_table(data: ArrangementData, table_id: str, seat_count: int) -> ArrangementData:
    """
    Grow by appending empty seats, or shrink by removing the trailing seats
    (by position). Guests on removed seats become unassigned.
    """
    table = _require_table(data, table_id)
    if seat_count < 1:
        raise SeatingError("seat_count must be a positive integer")
    current = data.seats_for(table_id)
    seats = list(data.seats)
    if seat_count > len(current):
        start = max((s.position for s in current), default=-1) + 1
        seats.extend(make_seats(table_id, start, start + seat_count - len(current)))
    elif seat_count < len(current):
        doomed = {s.id for s in current[seat_count:]}
        seats = [s for s in seats if s.id not in doomed]
    updated = table.model_copy(update={"seat_count": seat_count})
    tables = [updated if t.id == table_id else t for t in data.tables]
    return data.model_copy(update={"tables": tables, "seats": seats})


def edit_table(
    data: ArrangementData,
    table_id: str,
    *,
    name: Optional[str] = None,
    seat_count: Optional[int] = None,
    shape: Optional[TableShape] = None,
    width: Optional[float] = None,
    height: Optional[float] = None,
    x: Optional[float] = None,
    y: Optional[float] = None,
) -> ArrangementData:
    if seat_count is not None:
        data = resize_table(data, table_id, seat_count)
    table = _require_table(data, table_id)

    changes: dict = {}
    if name is not None:
        name = name.strip()
        if not name:
            raise SeatingError("table name must be a non-empty string")
        changes["name"] = name
    if shape is not None:
        changes["shape"] = shape
        if shape is TableShape.rectangle:
            changes.setdefault("width", table.width or DEFAULT_RECT_WIDTH)
            changes.setdefault("height", table.height or DEFAULT_RECT_HEIGHT)
    for key, value in (("width", width), ("height", height)):
        if value is not None:
            if value <= 0:
                raise SeatingError(f"{key} must be > 0")
            changes[key] = float(value)
    if x is not None:
        changes["x"] = float(x)
    if y is not None:
        changes["y"] = float(y)
    if not changes:
        return data
    updated = table.model_copy(update=changes)
    return data.model_copy(update={"tables": [updated if t.id == table_id else t for t in data.tables]})


def move_table(data: ArrangementData, table_id: str, x: float, y: float) -> ArrangementData:
    return edit_table(data, table_id, x=x, y=y)


def delete_table(data: ArrangementData, table_id: str) -> tuple[ArrangementData, int]:
    _require_table(data, table_id)
    removed = sum(1 for s in data.seats if s.table_id == table_id)
    new = data.model_copy(
        update={
            "tables": [t for t in data.tables if t.id != table_id],
            "seats": [s for s in data.seats if s.table_id != table_id],
        }
    )
    return new, removed


def unassigned_guests(data: ArrangementData, query: str = "") -> list[Guest]:
    seated = assigned_guest_ids(data.seats)
    out = [g for g in data.guests if g.id not in seated]
    q = (query or "").strip().lower()
    if not q:
        return out
    return [g for g in out if q in g.name.lower()]


def find_guest(data: ArrangementData, name: str) -> Optional[Guest]:
    q = (name or "").strip().lower()
    if not q:
        return None
    exact = next((g for g in data.guests if g.name.lower() == q), None)
    if exact is not None:
        return exact
    return next((g for g in data.guests if q in g.name.lower()), None)
