from __future__ import annotations

import logging
from typing import Optional

from fastapi import Body, Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError

from seatplanner.geometry import GeometryError, create_rectangle_table, create_round_table
from seatplanner.layout import (
    assign_guest,
    clear_seat,
    find_guest_seat,
    find_seat,
    find_table,
    guest_info,
    set_seat_locked,
    set_seat_mode,
    swap_guests,
)
from seatplanner.models import EventTracking, ProximityRules, SeatRef, Table
from seatplanner.swaps import get_incompatible_swap_candidates, get_swap_candidates, predict_violations_after_swap
from seatplanner.tracking import AdjacencyTracker
from seatplanner.violations import count_violations, detect_proximity_violations

from . import settings
from .schemas import (
    AssignRequest,
    ClearRequest,
    EventCreate,
    FinalizeRequest,
    GuestsUpsert,
    RectangleTableCreate,
    RoundTableCreate,
    RulesUpsert,
    SeatPair,
    SeatUpdate,
    TrackedGuestsUpsert,
)
from .store import EventState, EventStore, store

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
log = logging.getLogger(__name__)


app = FastAPI(title="Event Seating Planner API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _store() -> EventStore:
    return store


def _event(s: EventStore, event_id: str) -> EventState:
    ev = s.get(event_id)
    if ev is None:
        raise HTTPException(status_code=404, detail="event not found")
    return ev


def _tables(ev: EventState, session_id: str) -> list[Table]:
    tables = ev.sessions.get(session_id)
    if tables is None:
        raise HTTPException(status_code=404, detail="session not found")
    return tables


def _tracker(ev: EventState) -> AdjacencyTracker:
    return AdjacencyTracker(ev.ensure_tracking())


def _read_tracker(ev: EventState) -> AdjacencyTracker:
    # Reads never create tracking state.
    if ev.tracking is None:
        return AdjacencyTracker(EventTracking(event_id=ev.event_id))
    return AdjacencyTracker(ev.tracking)


def _rejected(message: str, reasons: list[str]) -> HTTPException:
    return HTTPException(status_code=400, detail={"message": message, "reasons": reasons})


def _dump_tables(tables: list[Table]) -> list[dict]:
    return [t.model_dump(mode="json") for t in tables]


@app.get("/health")
def health() -> dict:
    return {"ok": True}


# ----------------------------- events -----------------------------


@app.post("/events")
def create_event(payload: EventCreate, s: EventStore = Depends(_store)) -> dict:
    with s.lock:
        if s.get(payload.id) is not None:
            raise HTTPException(status_code=409, detail="event already exists")
        ev = s.create(payload.id, payload.name)
    return {"id": ev.event_id, "name": ev.name}


@app.delete("/events/{event_id}")
def delete_event(event_id: str, s: EventStore = Depends(_store)) -> dict:
    if not s.delete(event_id):
        raise HTTPException(status_code=404, detail="event not found")
    return {"deleted": True}


@app.put("/events/{event_id}/guests")
def upsert_guests(event_id: str, payload: GuestsUpsert, s: EventStore = Depends(_store)) -> dict:
    ev = _event(s, event_id)
    with s.lock:
        ev.guests = {g.id: g for g in payload.guests}
    return {"guests": len(ev.guests)}


@app.put("/events/{event_id}/rules")
def upsert_rules(event_id: str, payload: RulesUpsert, s: EventStore = Depends(_store)) -> dict:
    ev = _event(s, event_id)
    with s.lock:
        ev.rules = ProximityRules(sit_together=payload.sit_together, sit_away=payload.sit_away)
    return {"sit_together": len(ev.rules.sit_together), "sit_away": len(ev.rules.sit_away)}


# ----------------------------- tables -----------------------------


def _add_table(ev: EventState, session_id: str, table: Table) -> dict:
    tables = ev.sessions.setdefault(session_id, [])
    if find_table(tables, table.id) is not None:
        raise HTTPException(status_code=409, detail="table already exists")
    tables.append(table)
    log.debug("event %s session %s: added %s table %s with %d seats", ev.event_id, session_id, table.shape.value, table.id, len(table.seats))
    return table.model_dump(mode="json")


@app.post("/events/{event_id}/sessions/{session_id}/tables/round")
def create_round(event_id: str, session_id: str, payload: RoundTableCreate, s: EventStore = Depends(_store)) -> dict:
    ev = _event(s, event_id)
    try:
        table = create_round_table(
            payload.id,
            payload.seats,
            label=payload.label,
            seat_ordering=payload.seat_ordering,
            seat_modes=payload.seat_modes,
            center=(payload.center.x, payload.center.y),
        )
    except GeometryError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    with s.lock:
        return _add_table(ev, session_id, table)


@app.post("/events/{event_id}/sessions/{session_id}/tables/rectangle")
def create_rectangle(event_id: str, session_id: str, payload: RectangleTableCreate, s: EventStore = Depends(_store)) -> dict:
    ev = _event(s, event_id)
    try:
        table = create_rectangle_table(
            payload.id,
            payload.top,
            payload.right,
            payload.bottom,
            payload.left,
            label=payload.label,
            seat_ordering=payload.seat_ordering,
            seat_modes=payload.seat_modes,
            center=(payload.center.x, payload.center.y),
        )
    except GeometryError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    with s.lock:
        return _add_table(ev, session_id, table)


@app.get("/events/{event_id}/sessions/{session_id}/tables")
def list_tables(event_id: str, session_id: str, s: EventStore = Depends(_store)) -> list[dict]:
    return _dump_tables(_tables(_event(s, event_id), session_id))


@app.patch("/events/{event_id}/sessions/{session_id}/seats")
def update_seat(event_id: str, session_id: str, payload: SeatUpdate, s: EventStore = Depends(_store)) -> dict:
    tables = _tables(_event(s, event_id), session_id)
    ref = SeatRef(table_id=payload.table_id, seat_id=payload.seat_id)
    with s.lock:
        found = True
        if payload.mode is not None:
            found = set_seat_mode(tables, ref, payload.mode)
        if found and payload.locked is not None:
            found = set_seat_locked(tables, ref, payload.locked)
    if not found:
        raise HTTPException(status_code=404, detail="seat not found")
    return {"updated": True}


# ----------------------------- seating -----------------------------


@app.post("/events/{event_id}/sessions/{session_id}/assign")
def assign(event_id: str, session_id: str, payload: AssignRequest, s: EventStore = Depends(_store)) -> dict:
    ev = _event(s, event_id)
    tables = _tables(ev, session_id)
    ref = SeatRef(table_id=payload.table_id, seat_id=payload.seat_id)
    with s.lock:
        target = find_seat(tables, ref)
        displaced = target.assigned_guest_id if target is not None else None
        if displaced == payload.guest_id:
            return {"assigned": True, "moved_from": None, "displaced": None}
        if displaced and not payload.replace:
            raise HTTPException(
                status_code=409,
                detail={"message": "seat already taken", "occupant": displaced},
            )
        previous = find_guest_seat(tables, payload.guest_id)
        if previous is not None and previous[1].locked:
            raise _rejected("cannot move guest", [f"Seat {previous[1].seat_number} is locked"])
        check = assign_guest(tables, ref, guest_info(ev.guests, payload.guest_id))
        if not check.can_assign:
            raise _rejected("cannot assign guest", [check.reason or "not allowed"])
        moved_from = None
        if previous is not None:
            prev_table, prev_seat = previous
            prev_seat.assigned_guest_id = None
            moved_from = {"table_id": prev_table.id, "seat_id": prev_seat.id}
        if displaced:
            log.info("event %s: %s unseated from %s/%s by %s", event_id, displaced, ref.table_id, ref.seat_id, payload.guest_id)
    return {"assigned": True, "moved_from": moved_from, "displaced": displaced or None}


@app.post("/events/{event_id}/sessions/{session_id}/clear")
def clear(event_id: str, session_id: str, payload: ClearRequest, s: EventStore = Depends(_store)) -> dict:
    tables = _tables(_event(s, event_id), session_id)
    ref = SeatRef(table_id=payload.table_id, seat_id=payload.seat_id)
    with s.lock:
        check = clear_seat(tables, ref, allow_locked=payload.allow_locked)
    if not check.can_assign:
        if check.reason == "Seat not found":
            raise HTTPException(status_code=404, detail="seat not found")
        raise _rejected("cannot clear seat", [check.reason or "not allowed"])
    return {"cleared": True}


@app.post("/events/{event_id}/sessions/{session_id}/swap")
def swap(event_id: str, session_id: str, payload: SeatPair, s: EventStore = Depends(_store)) -> dict:
    ev = _event(s, event_id)
    tables = _tables(ev, session_id)
    with s.lock:
        check = swap_guests(
            tables,
            SeatRef(table_id=payload.table1_id, seat_id=payload.seat1_id),
            SeatRef(table_id=payload.table2_id, seat_id=payload.seat2_id),
            ev.guests,
        )
    if not check.can_swap:
        raise _rejected("cannot swap seats", check.reasons)
    return {"swapped": True}


@app.get("/events/{event_id}/sessions/{session_id}/violations")
def violations(event_id: str, session_id: str, s: EventStore = Depends(_store)) -> dict:
    ev = _event(s, event_id)
    found = detect_proximity_violations(_tables(ev, session_id), ev.rules, ev.guests or None)
    return {
        "counts": count_violations(found).model_dump(),
        "violations": [v.model_dump(mode="json") for v in found],
    }


@app.post("/events/{event_id}/sessions/{session_id}/predict-swap")
def predict_swap(event_id: str, session_id: str, payload: SeatPair, s: EventStore = Depends(_store)) -> dict:
    ev = _event(s, event_id)
    prediction = predict_violations_after_swap(
        _tables(ev, session_id),
        SeatRef(table_id=payload.table1_id, seat_id=payload.seat1_id),
        SeatRef(table_id=payload.table2_id, seat_id=payload.seat2_id),
        ev.rules,
        ev.guests or None,
    )
    return prediction.model_dump(mode="json")


@app.get("/events/{event_id}/sessions/{session_id}/swap-candidates")
def swap_candidates(
    event_id: str,
    session_id: str,
    table_id: str,
    seat_id: str,
    include_incompatible: bool = False,
    s: EventStore = Depends(_store),
) -> dict:
    ev = _event(s, event_id)
    tables = _tables(ev, session_id)
    source = SeatRef(table_id=table_id, seat_id=seat_id)
    out = {
        "candidates": [
            c.model_dump(mode="json") for c in get_swap_candidates(source, tables, ev.guests or None, ev.rules)
        ]
    }
    if include_incompatible:
        out["incompatible"] = [
            c.model_dump(mode="json") for c in get_incompatible_swap_candidates(source, tables, ev.guests or None)
        ]
    return out


# ----------------------------- tracking -----------------------------


@app.put("/events/{event_id}/tracked-guests")
def set_tracked_guests(event_id: str, payload: TrackedGuestsUpsert, s: EventStore = Depends(_store)) -> dict:
    ev = _event(s, event_id)
    with s.lock:
        tracker = _tracker(ev)
        tracker.set_tracked_guests(payload.guest_ids)
    return {"tracked_guest_ids": tracker.tracked_guests()}


@app.post("/events/{event_id}/sessions/{session_id}/finalize")
def finalize_session(event_id: str, session_id: str, payload: FinalizeRequest, s: EventStore = Depends(_store)) -> dict:
    ev = _event(s, event_id)
    tables = _tables(ev, session_id)
    with s.lock:
        tracker = _tracker(ev)
        records = tracker.record_session_adjacency(session_id, payload.start_time, tables)
    return {
        "recorded": len(records),
        "planning_order": tracker.get_session_planning_order(session_id),
        "status": tracker.session_status(session_id).value,
        "needs_review": tracker.get_sessions_needing_review(),
    }


@app.get("/events/{event_id}/history")
def history(event_id: str, session_id: str, guest_id: str, threshold: Optional[int] = None, s: EventStore = Depends(_store)) -> dict:
    ev = _event(s, event_id)
    tracker = _read_tracker(ev)
    limit = threshold if threshold is not None else settings.ADJACENCY_THRESHOLD
    return {
        "session_id": session_id,
        "guest_id": guest_id,
        "planning_order": tracker.get_session_planning_order(session_id),
        "history": [{"guest_id": g, "count": c} for g, c in tracker.get_tracked_guest_history(session_id, guest_id)],
        "filtered": {
            g: exposure.model_dump(mode="json")
            for g, exposure in tracker.get_filtered_historical_adjacency_count(session_id, guest_id, ev.guests).items()
        },
        "threshold": limit,
        "avoid": tracker.get_guests_to_avoid(session_id, guest_id, limit),
    }


@app.get("/events/{event_id}/sessions/{session_id}/history-check")
def history_check(event_id: str, session_id: str, threshold: Optional[int] = None, s: EventStore = Depends(_store)) -> dict:
    ev = _event(s, event_id)
    tables = _tables(ev, session_id)
    limit = threshold if threshold is not None else settings.ADJACENCY_THRESHOLD
    warnings = _read_tracker(ev).validate_seating_against_history(session_id, tables, limit)
    return {"threshold": limit, "warnings": [w.model_dump() for w in warnings]}


@app.get("/events/{event_id}/report")
def adjacency_report(event_id: str, s: EventStore = Depends(_store)) -> dict:
    return _read_tracker(_event(s, event_id)).get_event_adjacency_report().model_dump()


@app.get("/events/{event_id}/review")
def review(event_id: str, s: EventStore = Depends(_store)) -> dict:
    return {"sessions": _read_tracker(_event(s, event_id)).get_sessions_needing_review()}


@app.post("/events/{event_id}/sessions/{session_id}/acknowledge")
def acknowledge(event_id: str, session_id: str, s: EventStore = Depends(_store)) -> dict:
    ev = _event(s, event_id)
    with s.lock:
        tracker = _tracker(ev)
        tracker.acknowledge_session_review(session_id)
    return {"session_id": session_id, "status": tracker.session_status(session_id).value}


@app.delete("/events/{event_id}/sessions/{session_id}")
def delete_session(event_id: str, session_id: str, s: EventStore = Depends(_store)) -> dict:
    ev = _event(s, event_id)
    with s.lock:
        existed = ev.sessions.pop(session_id, None) is not None
        if ev.tracking is not None:
            AdjacencyTracker(ev.tracking).remove_session(session_id)
    if not existed:
        raise HTTPException(status_code=404, detail="session not found")
    return {"deleted": True}


@app.get("/events/{event_id}/tracking")
def get_tracking(event_id: str, s: EventStore = Depends(_store)) -> dict:
    return _read_tracker(_event(s, event_id)).state.model_dump(mode="json")


@app.put("/events/{event_id}/tracking")
def load_tracking(event_id: str, payload: dict = Body(...), s: EventStore = Depends(_store)) -> dict:
    ev = _event(s, event_id)
    try:
        state = EventTracking.model_validate({**payload, "event_id": event_id})
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    with s.lock:
        ev.tracking = state
    return {
        "tracked_guest_ids": sorted(state.tracked_guest_ids),
        "records": len(state.records),
        "next_order": state.planning.next_order,
    }
