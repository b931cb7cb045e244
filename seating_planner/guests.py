from __future__ import annotations

from pathlib import Path
from typing import Iterable, Sequence

from .models import Guest, SeatingError


DEFAULT_GUEST_NAMES: tuple[str, ...] = (
    "Avery Bennett",
    "Jordan Bennett",
    "Casey Morgan",
    "Riley Morgan",
    "Taylor Brooks",
    "Jamie Brooks",
    "Morgan Ellis",
    "Quinn Ellis",
    "Harper Lane",
    "Rowan Lane",
    "Skyler Reed",
    "Parker Reed",
    "Emerson Hale",
    "Finley Hale",
    "Dakota Shaw",
    "Reese Shaw",
    "Sawyer Cole",
    "Hayden Cole",
    "Logan Price",
    "Peyton Price",
    "Cameron Wade",
    "Elliot Wade",
    "Sage Porter",
    "Blake Porter",
)


def guest_id_for(index: int) -> str:
    return f"guest-{index}"


def seed_guests(names: Iterable[str] = DEFAULT_GUEST_NAMES) -> list[Guest]:
    return [Guest(id=guest_id_for(i), name=name) for i, name in enumerate(names)]


def merge_guests(saved: Sequence[Guest], names: Iterable[str] = DEFAULT_GUEST_NAMES) -> list[Guest]:
    """Saved guests first, then any seed guest whose id the saved list lacks."""
    known = {g.id for g in saved}
    return [*saved, *(g for g in seed_guests(names) if g.id not in known)]


def read_guest_names(path: str | Path) -> list[str]:
    p = Path(path)
    if not p.exists():
        raise SeatingError(f"guest list not found: {p}")
    names = [line.strip() for line in p.read_text(encoding="utf-8").splitlines()]
    return [n for n in names if n and not n.startswith("#")]
