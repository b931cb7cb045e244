"""
Headless editor state for the seating canvas.

Two interactions are modeled independently of any input API:

* table drag, a small state machine (idle -> dragging -> idle) driven by
  pointer_down / pointer_move / pointer_up;
* guest drag, a pick-up / hover / commit-or-cancel gesture that ends in the
  assignment reconciler.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from . import layout, reconciler
from .geometry import seat_at, table_at
from .models import ArrangementData, Guest, Seat, SeatingError, Table, TableShape
from .notifications import Notifier, Severity, notify
from .reconciler import AssignKind, AssignResult


logger = logging.getLogger(__name__)

MIN_ZOOM = 0.25
MAX_ZOOM = 3.0
DEFAULT_GRID_SIZE = 20.0


class DragState(str, Enum):
    idle = "idle"
    dragging = "dragging"


@dataclass
class Viewport:
    pan_x: float = 0.0
    pan_y: float = 0.0
    zoom: float = 1.0

    def to_canvas(self, sx: float, sy: float) -> tuple[float, float]:
        return ((sx - self.pan_x) / self.zoom, (sy - self.pan_y) / self.zoom)

    def pan(self, dx: float, dy: float) -> None:
        self.pan_x += dx
        self.pan_y += dy

    def zoom_by(self, factor: float) -> float:
        if factor <= 0:
            raise SeatingError("zoom factor must be > 0")
        self.zoom = max(MIN_ZOOM, min(MAX_ZOOM, self.zoom * factor))
        return self.zoom


def snap(value: float, grid: float) -> float:
    return round(value / grid) * grid


class SeatingEditor:
    def __init__(
        self,
        data: Optional[ArrangementData] = None,
        *,
        notifier: Optional[Notifier] = None,
        grid_size: float = DEFAULT_GRID_SIZE,
        snap_to_grid: bool = False,
    ):
        self._data = data or ArrangementData()
        self.notifier = notifier
        self.grid_size = grid_size
        self.snap_to_grid = snap_to_grid
        self.viewport = Viewport()
        self.search_query = ""
        self.revision = 0

        self._locked = False
        self.drag_state = DragState.idle
        self.dragging_table_id: Optional[str] = None

        self.carried_guest_id: Optional[str] = None
        self.highlighted_seat_id: Optional[str] = None

    # --- data
    @property
    def data(self) -> ArrangementData:
        return self._data

    def _commit(self, data: ArrangementData) -> None:
        self._data = data
        self.revision += 1

    def replace_data(self, data: ArrangementData) -> None:
        """Swap in a whole arrangement (load / remote update); any gesture in flight is dropped."""
        self._data = data
        self.revision += 1
        self.pointer_up()
        self.cancel()

    # --- lock
    @property
    def locked(self) -> bool:
        return self._locked

    @locked.setter
    def locked(self, value: bool) -> None:
        self._locked = bool(value)
        if self._locked:
            self.pointer_up()

    # --- table drag state machine
    def pointer_down(self, sx: float, sy: float) -> Optional[Table]:
        if self._locked or self.drag_state is DragState.dragging:
            return None
        x, y = self.viewport.to_canvas(sx, sy)
        table = table_at(self._data.tables, x, y)
        if table is None:
            return None
        self.drag_state = DragState.dragging
        self.dragging_table_id = table.id
        logger.debug("Dragging table %s", table.id)
        return table

    def pointer_move(self, sx: float, sy: float) -> None:
        if self.drag_state is not DragState.dragging or self.dragging_table_id is None:
            return
        x, y = self.viewport.to_canvas(sx, sy)
        if self.snap_to_grid:
            x, y = snap(x, self.grid_size), snap(y, self.grid_size)
        self._commit(layout.move_table(self._data, self.dragging_table_id, x, y))

    def pointer_up(self) -> None:
        self.drag_state = DragState.idle
        self.dragging_table_id = None

    # --- guest drag gesture
    def pick_up(self, guest_id: str) -> bool:
        if self._data.guest(guest_id) is None:
            self.carried_guest_id = None
            return False
        self.carried_guest_id = guest_id
        return True

    def hover(self, seat_id: str) -> None:
        if self._data.seat(seat_id) is not None:
            self.highlighted_seat_id = seat_id

    def hover_at(self, sx: float, sy: float) -> Optional[Seat]:
        """Highlight the seat under a screen point, or clear the highlight."""
        x, y = self.viewport.to_canvas(sx, sy)
        seat = seat_at(self._data.tables, self._data.seats, x, y)
        self.highlighted_seat_id = seat.id if seat else None
        return seat

    def leave(self) -> None:
        self.highlighted_seat_id = None

    def cancel(self) -> None:
        self.carried_guest_id = None
        self.highlighted_seat_id = None

    def commit(self, seat_id: str, guest_id: Optional[str] = None) -> Optional[AssignResult]:
        """Drop the carried guest (or guest_id) on seat_id. Missing/unknown payloads are ignored."""
        guest_id = guest_id or self.carried_guest_id
        self.cancel()
        if not guest_id or self._data.guest(guest_id) is None or self._data.seat(seat_id) is None:
            return None
        return self.assign(guest_id, seat_id)

    def assign(self, guest_id: str, seat_id: str) -> AssignResult:
        result = reconciler.assign(self._data.seats, guest_id, seat_id)
        if result.kind is AssignKind.unchanged:
            return result
        self._commit(self._data.model_copy(update={"seats": result.seats}))
        self._announce(result)
        return result

    def _announce(self, result: AssignResult) -> None:
        guest = self._data.guest(result.guest_id or "")
        if guest is None:
            return
        if result.kind is AssignKind.swapped:
            other = self._data.guest(result.displaced_guest_id or "")
            if other is not None:
                notify(
                    self.notifier,
                    Severity.success,
                    "Guests swapped",
                    f"{guest.name} and {other.name} have swapped seats",
                )
        elif result.kind is AssignKind.moved:
            notify(self.notifier, Severity.success, f"{guest.name} moved", "Guest has been moved to a new seat")
        else:
            notify(self.notifier, Severity.success, f"{guest.name} seated", "Guest has been assigned to a seat")

    def unassign_seat(self, seat_id: str) -> bool:
        seat = self._data.seat(seat_id)
        if seat is None or not seat.guest_id:
            return False
        self._commit(self._data.model_copy(update={"seats": reconciler.unassign(self._data.seats, seat_id)}))
        return True

    def clear_all(self, confirmed: bool = False) -> bool:
        if not confirmed:
            return False
        self._commit(self._data.model_copy(update={"seats": reconciler.clear_all(self._data.seats)}))
        notify(self.notifier, Severity.info, "All guests unassigned", "All guests have been returned to the unassigned list")
        return True

    # --- tables
    def add_table(self, shape: TableShape = TableShape.circle, **kwargs) -> Table:
        data, table = layout.add_table(self._data, shape, **kwargs)
        self._commit(data)
        return table

    def edit_table(self, table_id: str, **changes) -> Table:
        data = layout.edit_table(self._data, table_id, **changes)
        if data is not self._data:
            self._commit(data)
        table = self._data.table(table_id)
        if table is None:
            raise SeatingError(f"table not found: {table_id}")
        return table

    def delete_table(self, table_id: str) -> int:
        data, removed = layout.delete_table(self._data, table_id)
        if self.dragging_table_id == table_id:
            self.pointer_up()
        self._commit(data)
        notify(self.notifier, Severity.info, "Table deleted", f"Table and {removed} seats have been removed")
        return removed

    # --- guest list
    def unassigned_guests(self, query: Optional[str] = None) -> list[Guest]:
        return layout.unassigned_guests(self._data, self.search_query if query is None else query)
