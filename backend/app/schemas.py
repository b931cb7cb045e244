from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from seating_planner.models import Arrangement, ArrangementData


class SaveRequest(BaseModel):
    data: ArrangementData


class VersionedSaveRequest(BaseModel):
    data: ArrangementData
    expected_version: int = Field(ge=1)


class AssignmentRequest(BaseModel):
    seat_id: str
    # None clears the seat
    guest_id: Optional[str] = None
    expected_version: int = Field(ge=1)


class SaveResponse(BaseModel):
    success: bool
    conflict: bool = False
    arrangement: Optional[Arrangement] = None
