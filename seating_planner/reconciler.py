"""
Guest/seat assignment rules.

Every function takes a seat list and returns a new one; the input list and
its Seat objects are never mutated. Each result keeps the invariant that a
guest id appears on at most one seat.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

from .models import Seat


class AssignKind(str, Enum):
    seated = "seated"  # guest was unassigned
    moved = "moved"  # guest left another seat, target was empty
    swapped = "swapped"  # target guest went to the guest's old seat
    unchanged = "unchanged"


@dataclass(frozen=True)
class AssignResult:
    seats: list[Seat]
    kind: AssignKind
    guest_id: Optional[str] = None
    displaced_guest_id: Optional[str] = None
    source_seat_id: Optional[str] = None


def _with_guest(seat: Seat, guest_id: Optional[str]) -> Seat:
    return seat.model_copy(update={"guest_id": guest_id})


def assign(seats: Sequence[Seat], guest_id: str, target_seat_id: str) -> AssignResult:
    out = list(seats)
    if not guest_id:
        return AssignResult(seats=out, kind=AssignKind.unchanged)

    target_idx = next((i for i, s in enumerate(out) if s.id == target_seat_id), None)
    if target_idx is None:
        return AssignResult(seats=out, kind=AssignKind.unchanged, guest_id=guest_id)

    source_idx = next((i for i, s in enumerate(out) if s.guest_id == guest_id), None)
    if source_idx == target_idx:
        return AssignResult(seats=out, kind=AssignKind.unchanged, guest_id=guest_id, source_seat_id=target_seat_id)

    target_guest_id = out[target_idx].guest_id
    source_seat_id = out[source_idx].id if source_idx is not None else None

    if source_idx is not None:
        # Vacated seat takes the target's guest, or nobody.
        out[source_idx] = _with_guest(out[source_idx], target_guest_id)
        kind = AssignKind.swapped if target_guest_id else AssignKind.moved
    else:
        kind = AssignKind.seated

    out[target_idx] = _with_guest(out[target_idx], guest_id)

    # Drop any stray duplicates so the one-seat-per-guest rule holds even on dirty input.
    for i, s in enumerate(out):
        if i != target_idx and s.guest_id == guest_id:
            out[i] = _with_guest(s, None)

    return AssignResult(
        seats=out,
        kind=kind,
        guest_id=guest_id,
        displaced_guest_id=target_guest_id,
        source_seat_id=source_seat_id,
    )


def unassign(seats: Sequence[Seat], seat_id: str) -> list[Seat]:
    return [_with_guest(s, None) if s.id == seat_id else s for s in seats]


def clear_all(seats: Sequence[Seat]) -> list[Seat]:
    return [_with_guest(s, None) if s.guest_id else s for s in seats]


def assigned_guest_ids(seats: Sequence[Seat]) -> set[str]:
    return {s.guest_id for s in seats if s.guest_id}
