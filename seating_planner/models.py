from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class SeatingError(Exception):
    pass


class TableShape(str, Enum):
    circle = "circle"
    rectangle = "rectangle"


DEFAULT_RECT_WIDTH = 80.0
DEFAULT_RECT_HEIGHT = 160.0
DEFAULT_SEAT_COUNT = 12


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def seat_id_for(table_id: str, position: int) -> str:
    return f"{table_id}-seat-{position}"


class _Model(BaseModel):
    # Documents saved by older clients used different keys; accept both, emit camelCase.
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class Guest(_Model):
    id: str
    name: str


class Seat(_Model):
    id: str
    table_id: str = Field(alias="tableId")
    position: int = Field(ge=0, validation_alias=AliasChoices("position", "index"), serialization_alias="position")
    guest_id: Optional[str] = Field(default=None, alias="guestId")


class Table(_Model):
    id: str
    x: float = 100.0
    y: float = 100.0
    name: str
    seat_count: int = Field(
        ge=0,
        validation_alias=AliasChoices("seatCount", "seat_count", "seats"),
        serialization_alias="seatCount",
    )
    shape: TableShape = Field(
        default=TableShape.circle,
        validation_alias=AliasChoices("shape", "type"),
        serialization_alias="shape",
    )
    width: Optional[float] = None
    height: Optional[float] = None

    @property
    def size(self) -> tuple[float, float]:
        return (self.width or DEFAULT_RECT_WIDTH, self.height or DEFAULT_RECT_HEIGHT)


class ArrangementData(_Model):
    tables: list[Table] = Field(default_factory=list)
    seats: list[Seat] = Field(default_factory=list)
    guests: list[Guest] = Field(default_factory=list)

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)

    def table(self, table_id: str) -> Optional[Table]:
        return next((t for t in self.tables if t.id == table_id), None)

    def seat(self, seat_id: str) -> Optional[Seat]:
        return next((s for s in self.seats if s.id == seat_id), None)

    def guest(self, guest_id: str) -> Optional[Guest]:
        return next((g for g in self.guests if g.id == guest_id), None)

    def seats_for(self, table_id: str) -> list[Seat]:
        return sorted((s for s in self.seats if s.table_id == table_id), key=lambda s: s.position)

    def seat_of(self, guest_id: str) -> Optional[Seat]:
        return next((s for s in self.seats if s.guest_id == guest_id), None)


class Arrangement(_Model):
    id: str
    name: str
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")
    version: int = 1
    data: ArrangementData = Field(default_factory=ArrangementData)


class ArrangementSummary(_Model):
    id: str
    name: str
    updated_at: datetime = Field(alias="updatedAt")
    version: int
