from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

log = logging.getLogger(__name__)


class SeatMode(str, Enum):
    default = "default"
    host_only = "host-only"
    external_only = "external-only"


class TableShape(str, Enum):
    round = "round"
    rectangle = "rectangle"


class RectangleSide(str, Enum):
    top = "top"
    right = "right"
    bottom = "bottom"
    left = "left"


class AdjacencyType(str, Enum):
    side = "side"
    opposite = "opposite"
    edge = "edge"


class ViolationType(str, Enum):
    sit_together = "sit-together"
    sit_away = "sit-away"


class SessionTrackingStatus(str, Enum):
    untracked = "untracked"
    tracked = "tracked"  # tracked, no planning order yet
    current = "current"
    needs_review = "needs-review"


# ----------------------------- layout -----------------------------


class Seat(BaseModel):
    id: str
    # Physical index around the table. Adjacency is derived from it; never renumbered.
    position: int = Field(ge=0)
    seat_number: int
    label: str = ""
    mode: SeatMode = SeatMode.default
    locked: bool = False
    assigned_guest_id: Optional[str] = None
    adjacent_seats: list[str] = Field(default_factory=list)

    # Visual placement only.
    x: float = 0.0
    y: float = 0.0

    @property
    def occupied(self) -> bool:
        return bool(self.assigned_guest_id)


class RectangleSeats(BaseModel):
    top: int = Field(ge=0, default=0)
    right: int = Field(ge=0, default=0)
    bottom: int = Field(ge=0, default=0)
    left: int = Field(ge=0, default=0)

    @property
    def total(self) -> int:
        return self.top + self.right + self.bottom + self.left

    def count(self, side: RectangleSide) -> int:
        return int(getattr(self, side.value))


class Table(BaseModel):
    id: str
    label: str = ""
    shape: TableShape
    seats: list[Seat] = Field(default_factory=list)
    rectangle_seats: Optional[RectangleSeats] = None

    x: float = 0.0
    y: float = 0.0
    radius: float = 0.0
    width: Optional[float] = None
    height: Optional[float] = None

    def seat(self, seat_id: str) -> Optional[Seat]:
        for s in self.seats:
            if s.id == seat_id:
                return s
        return None

    def seat_at(self, position: int) -> Optional[Seat]:
        for s in self.seats:
            if s.position == position:
                return s
        return None


class SeatRef(BaseModel):
    table_id: str
    seat_id: str


# ----------------------------- guests & rules -----------------------------


class GuestInfo(BaseModel):
    """The slice of a guest record the engine needs."""

    id: str
    from_host: bool = False
    name: Optional[str] = None

    @property
    def guest_type(self) -> str:
        return "host" if self.from_host else "external"


class ProximityPair(BaseModel):
    guest1_id: str
    guest2_id: str
    id: Optional[str] = None

    def matches(self, a: str, b: str) -> bool:
        return (self.guest1_id == a and self.guest2_id == b) or (self.guest1_id == b and self.guest2_id == a)

    def partner_of(self, guest_id: str) -> Optional[str]:
        if self.guest1_id == guest_id:
            return self.guest2_id
        if self.guest2_id == guest_id:
            return self.guest1_id
        return None


class ProximityRules(BaseModel):
    sit_together: list[ProximityPair] = Field(default_factory=list)
    sit_away: list[ProximityPair] = Field(default_factory=list)

    def together_partners(self, guest_id: str) -> list[str]:
        out: list[str] = []
        for rule in self.sit_together:
            p = rule.partner_of(guest_id)
            if p is not None and p not in out:
                out.append(p)
        return out

    def should_sit_away(self, a: str, b: str) -> bool:
        return any(rule.matches(a, b) for rule in self.sit_away)


# ----------------------------- results -----------------------------


class Violation(BaseModel):
    type: ViolationType
    guest1_id: str
    guest2_id: str
    guest1_name: Optional[str] = None
    guest2_name: Optional[str] = None
    table_id: str
    table_label: str = ""
    seat1_id: str
    seat2_id: Optional[str] = None
    reason: str = ""

    def pair_key(self) -> tuple[ViolationType, frozenset[str]]:
        return (self.type, frozenset((self.guest1_id, self.guest2_id)))


class ViolationCounts(BaseModel):
    sit_together: int = 0
    sit_away: int = 0
    total: int = 0


class AssignmentCheck(BaseModel):
    can_assign: bool
    reason: Optional[str] = None
    seat_mode: SeatMode = SeatMode.default
    guest_type: Optional[str] = None


class SwapCheck(BaseModel):
    can_swap: bool
    reasons: list[str] = Field(default_factory=list)
    guest1_check: Optional[AssignmentCheck] = None
    guest2_check: Optional[AssignmentCheck] = None


class ViolationPrediction(BaseModel):
    counts: ViolationCounts = Field(default_factory=ViolationCounts)
    details: list[Violation] = Field(default_factory=list)
    computable: bool = True


class SwapCandidate(BaseModel):
    table_id: str
    table_label: str = ""
    seat_id: str
    seat_number: int
    seat_mode: SeatMode
    guest_id: str
    check: SwapCheck
    violations_after_swap: list[Violation] = Field(default_factory=list)
    violation_count: int = 0


class IncompatibleCandidate(BaseModel):
    table_id: str
    table_label: str = ""
    seat_id: str
    seat_number: int
    seat_mode: SeatMode
    source_seat_mode: SeatMode
    guest_id: str
    check: SwapCheck
    reasons: list[str] = Field(default_factory=list)


# ----------------------------- tracking -----------------------------


class AdjacencyDetail(BaseModel):
    guest_id: str
    adjacency_type: AdjacencyType = AdjacencyType.side


class SessionAdjacencyRecord(BaseModel):
    session_id: str
    session_start_time: str
    planning_order: int
    tracked_guest_id: str
    # Snapshot taken when the session was recorded.
    adjacent_guest_ids: list[str] = Field(default_factory=list)
    adjacent_guest_details: list[AdjacencyDetail] = Field(default_factory=list)
    needs_review: bool = False


class PlanningOrderTracker(BaseModel):
    session_order_map: dict[str, int] = Field(default_factory=dict)
    next_order: int = Field(ge=1, default=1)

    @field_validator("session_order_map", mode="before")
    @classmethod
    def _coerce_order_map(cls, v: Any) -> Any:
        if v is None:
            return {}
        if not isinstance(v, dict):
            log.warning("discarding corrupted session order map of type %s", type(v).__name__)
            return {}
        kept = {str(k): order for k, order in v.items() if _is_order(order)}
        if len(kept) != len(v):
            log.warning("dropped %d session order entries that are not positive integers", len(v) - len(kept))
        return kept

    @field_validator("next_order", mode="before")
    @classmethod
    def _coerce_next_order(cls, v: Any) -> Any:
        if _is_order(v):
            return v
        log.warning("resetting corrupted next planning order %r", v)
        return 1

    @model_validator(mode="after")
    def _next_order_after_assigned(self) -> "PlanningOrderTracker":
        self.raise_next_order(max(self.session_order_map.values(), default=0) + 1)
        return self

    def raise_next_order(self, floor: int) -> None:
        if self.next_order < floor:
            log.warning("next planning order %d is already taken; moving it to %d", self.next_order, floor)
            self.next_order = floor


def _is_order(v: Any) -> bool:
    return isinstance(v, int) and not isinstance(v, bool) and v >= 1


def _coerce_id_set(v: Any, what: str) -> set[str]:
    if v is None:
        return set()
    if isinstance(v, (set, frozenset, list, tuple)):
        return {str(x) for x in v}
    log.warning("recovering corrupted %s of type %s; treating as empty", what, type(v).__name__)
    return set()


class EventTracking(BaseModel):
    """Per-event tracking state. Owned by the caller; created when tracking is first enabled."""

    event_id: str
    tracked_guest_ids: set[str] = Field(default_factory=set)
    tracked_session_ids: set[str] = Field(default_factory=set)
    records: list[SessionAdjacencyRecord] = Field(default_factory=list)
    planning: PlanningOrderTracker = Field(default_factory=PlanningOrderTracker)

    @field_validator("tracked_guest_ids", mode="before")
    @classmethod
    def _coerce_tracked_guests(cls, v: Any) -> set[str]:
        return _coerce_id_set(v, "tracked guest set")

    @field_validator("tracked_session_ids", mode="before")
    @classmethod
    def _coerce_tracked_sessions(cls, v: Any) -> set[str]:
        return _coerce_id_set(v, "tracked session set")

    @field_validator("records", mode="before")
    @classmethod
    def _coerce_records(cls, v: Any) -> Any:
        if v is None:
            return []
        if not isinstance(v, (list, tuple)):
            log.warning("discarding corrupted adjacency records of type %s", type(v).__name__)
            return []
        records = []
        for item in v:
            try:
                records.append(SessionAdjacencyRecord.model_validate(item))
            except ValidationError as e:
                log.warning("dropping corrupted adjacency record: %s", e.errors()[0]["msg"])
        return records

    @field_validator("planning", mode="before")
    @classmethod
    def _coerce_planning(cls, v: Any) -> Any:
        if v is None:
            return PlanningOrderTracker()
        if not isinstance(v, (dict, PlanningOrderTracker)):
            log.warning("discarding corrupted planning order tracker of type %s", type(v).__name__)
            return PlanningOrderTracker()
        return v

    @model_validator(mode="after")
    def _next_order_after_recorded(self) -> "EventTracking":
        self.planning.raise_next_order(max((r.planning_order for r in self.records), default=0) + 1)
        return self


# ----------------------------- history analysis -----------------------------


class FilteredExposure(BaseModel):
    count: int = 0
    by_type: dict[AdjacencyType, int] = Field(default_factory=dict)


class ThresholdCheck(BaseModel):
    guest_id: str
    count: int
    exceeded: bool


class HistoryWarning(BaseModel):
    tracked_guest_id: str
    adjacent_guest_id: str
    historical_count: int
    violation: bool


class GuestAdjacencyReport(BaseModel):
    tracked_guest_id: str
    total_adjacencies: int = 0
    unique_guests: int = 0
    top_adjacencies: list[tuple[str, int]] = Field(default_factory=list)


class EventAdjacencyReport(BaseModel):
    total_sessions: int = 0
    guest_reports: list[GuestAdjacencyReport] = Field(default_factory=list)
