from __future__ import annotations

from typing import Optional

from .layout import unassigned_guests
from .models import ArrangementData


def _cell(text: Optional[str], width: int) -> str:
    if not text:
        return "."
    t = str(text)
    if len(t) > width:
        t = t[: max(0, width - 1)] + "…"
    return t


def render_text(data: ArrangementData, *, name_width: int = 24) -> str:
    name_width = max(3, int(name_width))
    if not data.tables:
        return "(no tables)"
    lines: list[str] = []
    for table in data.tables:
        seats = data.seats_for(table.id)
        taken = sum(1 for s in seats if s.guest_id)
        lines.append(
            f"{table.name} [{table.id}] {table.shape.value}, {taken}/{len(seats)} seated @ ({table.x:g}, {table.y:g})"
        )
        for seat in seats:
            guest = data.guest(seat.guest_id) if seat.guest_id else None
            lines.append(f"  {seat.position:>2}  {_cell(guest.name if guest else None, name_width)}")
    waiting = len(unassigned_guests(data))
    lines.append(f"{waiting} unassigned guest(s)")
    return "\n".join(lines)
