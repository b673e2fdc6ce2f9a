from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from seatplanner.models import GuestInfo, ProximityPair, SeatMode


class Point2D(BaseModel):
    x: float = 0.0
    y: float = 0.0


class EventCreate(BaseModel):
    id: str = Field(min_length=1)
    name: str = ""


class GuestsUpsert(BaseModel):
    guests: list[GuestInfo] = Field(default_factory=list)


class RulesUpsert(BaseModel):
    sit_together: list[ProximityPair] = Field(default_factory=list)
    sit_away: list[ProximityPair] = Field(default_factory=list)


class _TableCreate(BaseModel):
    id: str = Field(min_length=1)
    label: Optional[str] = None
    seat_ordering: Optional[list[int]] = None
    seat_modes: Optional[list[SeatMode]] = None
    center: Point2D = Field(default_factory=Point2D)


class RoundTableCreate(_TableCreate):
    seats: int = Field(ge=0)


class RectangleTableCreate(_TableCreate):
    top: int = Field(ge=0, default=0)
    right: int = Field(ge=0, default=0)
    bottom: int = Field(ge=0, default=0)
    left: int = Field(ge=0, default=0)


class AssignRequest(BaseModel):
    table_id: str
    seat_id: str
    guest_id: str
    # Unseat whoever already holds the seat instead of refusing.
    replace: bool = False


class ClearRequest(BaseModel):
    table_id: str
    seat_id: str
    # Clearing a locked seat is a separate, explicit capability.
    allow_locked: bool = False


class SeatPair(BaseModel):
    table1_id: str
    seat1_id: str
    table2_id: str
    seat2_id: str


class SeatUpdate(BaseModel):
    table_id: str
    seat_id: str
    mode: Optional[SeatMode] = None
    locked: Optional[bool] = None


class TrackedGuestsUpsert(BaseModel):
    guest_ids: list[str] = Field(default_factory=list)

    @field_validator("guest_ids")
    @classmethod
    def _dedupe(cls, v: list[str]) -> list[str]:
        return list(dict.fromkeys(v))


class FinalizeRequest(BaseModel):
    start_time: str
