from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Sequence

from shapely.geometry import Point, box
from shapely.geometry.base import BaseGeometry

from .models import Seat, Table, TableShape


CIRCLE_RADIUS = 50.0
SEAT_GAP = 15.0  # seat marker distance from the table edge
BADGE_GAP = 30.0  # name badge distance from the table edge (circle tables)
SEAT_HIT_RADIUS = 12.0


class GeometryError(Exception):
    pass


@dataclass(frozen=True)
class SeatPosition:
    position: int
    x: float  # offset from table center
    y: float
    rotation: float  # degrees
    badge_x: float  # offset from the seat marker
    badge_y: float


def _rad_to_deg(r: float) -> float:
    return r * 180.0 / math.pi


def circular_seat_positions(seats: int, table_radius: float = CIRCLE_RADIUS) -> list[SeatPosition]:
    if seats < 0:
        raise GeometryError("seat count must be >= 0")
    seat_distance = table_radius + SEAT_GAP
    badge_distance = table_radius + BADGE_GAP
    out: list[SeatPosition] = []
    for i in range(seats):
        angle = i * 2 * math.pi / seats
        x = seat_distance * math.cos(angle)
        y = seat_distance * math.sin(angle)
        bx = badge_distance * math.cos(angle)
        by = badge_distance * math.sin(angle)
        # Rotated so the marker faces the table.
        out.append(SeatPosition(position=i, x=x, y=y, rotation=_rad_to_deg(angle) - 90, badge_x=bx - x, badge_y=by - y))
    return out


def rectangular_seat_positions(seats: int, width: float = 80.0, height: float = 160.0) -> list[SeatPosition]:
    """
    Seats go on the two long (left/right) sides, evenly spaced; an odd seat
    goes on the top end.

    Splitting evenly leaves at most one seat over, so the bottom end is never
    used and layouts needing three or more end seats cannot occur.
    """
    if seats < 0:
        raise GeometryError("seat count must be >= 0")
    per_side = seats // 2
    remaining = seats - per_side * 2
    spacing = height / (per_side + 1)

    out: list[SeatPosition] = []
    for i in range(per_side):
        y = -height / 2 + spacing * (i + 1)
        out.append(SeatPosition(position=i, x=-width / 2 - SEAT_GAP, y=y, rotation=90.0, badge_x=-20.0, badge_y=0.0))
    for i in range(per_side):
        y = -height / 2 + spacing * (i + 1)
        out.append(
            SeatPosition(position=per_side + i, x=width / 2 + SEAT_GAP, y=y, rotation=270.0, badge_x=20.0, badge_y=0.0)
        )
    if remaining:
        out.append(
            SeatPosition(position=per_side * 2, x=0.0, y=-height / 2 - SEAT_GAP, rotation=0.0, badge_x=0.0, badge_y=-40.0)
        )
    return out


def seat_positions(table: Table) -> list[SeatPosition]:
    if table.shape is TableShape.rectangle:
        w, h = table.size
        return rectangular_seat_positions(table.seat_count, w, h)
    return circular_seat_positions(table.seat_count)


def table_footprint(table: Table) -> BaseGeometry:
    if table.shape is TableShape.rectangle:
        w, h = table.size
        return box(table.x - w / 2, table.y - h / 2, table.x + w / 2, table.y + h / 2)
    return Point(table.x, table.y).buffer(CIRCLE_RADIUS)


def table_at(tables: Sequence[Table], x: float, y: float) -> Optional[Table]:
    pt = Point(x, y)
    # Later tables are drawn on top.
    for table in reversed(tables):
        if table_footprint(table).covers(pt):
            return table
    return None


def seat_at(
    tables: Sequence[Table],
    seats: Sequence[Seat],
    x: float,
    y: float,
    *,
    hit_radius: float = SEAT_HIT_RADIUS,
) -> Optional[Seat]:
    pt = Point(x, y)
    by_id = {t.id: t for t in tables}
    layouts = {t.id: seat_positions(t) for t in tables}
    best: Optional[Seat] = None
    best_d = hit_radius
    for seat in seats:
        table = by_id.get(seat.table_id)
        if table is None or seat.position >= len(layouts[table.id]):
            continue
        p = layouts[table.id][seat.position]
        d = pt.distance(Point(table.x + p.x, table.y + p.y))
        if d <= best_d:
            best, best_d = seat, d
    return best
