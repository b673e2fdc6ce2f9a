from __future__ import annotations

import logging
from typing import Iterable, Mapping, Optional

from .models import AssignmentCheck, GuestInfo, Seat, SeatMode, SeatRef, SwapCheck, Table
from .validation import validate_guest_seat_assignment, validate_seat_swap

log = logging.getLogger(__name__)

GuestLookup = Mapping[str, GuestInfo]


def find_table(tables: Iterable[Table], table_id: str) -> Optional[Table]:
    for t in tables:
        if t.id == table_id:
            return t
    return None


def find_seat(tables: Iterable[Table], ref: SeatRef) -> Optional[Seat]:
    table = find_table(tables, ref.table_id)
    if table is None:
        return None
    return table.seat(ref.seat_id)


def find_guest_seat(tables: Iterable[Table], guest_id: str) -> Optional[tuple[Table, Seat]]:
    for t in tables:
        for s in t.seats:
            if s.assigned_guest_id == guest_id:
                return t, s
    return None


def guest_seat_map(tables: Iterable[Table]) -> dict[str, tuple[Table, Seat]]:
    out: dict[str, tuple[Table, Seat]] = {}
    for t in tables:
        for s in t.seats:
            if s.assigned_guest_id:
                out[s.assigned_guest_id] = (t, s)
    return out


def is_guest_seated(tables: Iterable[Table], guest_id: str) -> bool:
    return find_guest_seat(tables, guest_id) is not None


def adjacent_seats(table: Table, seat: Seat) -> list[Seat]:
    out = []
    for seat_id in seat.adjacent_seats:
        other = table.seat(seat_id)
        if other is not None:
            out.append(other)
    return out


def adjacent_seat_ids(table: Table, seat_id: str) -> list[str]:
    seat = table.seat(seat_id)
    if seat is None:
        return []
    return list(seat.adjacent_seats)


def adjacent_guest_ids(table: Table, seat: Seat) -> list[str]:
    return [s.assigned_guest_id for s in adjacent_seats(table, seat) if s.assigned_guest_id]


def would_be_adjacent(table: Table, seat1_id: str, seat2_id: str) -> bool:
    seat1 = table.seat(seat1_id)
    seat2 = table.seat(seat2_id)
    if seat1 is None or seat2 is None:
        return False
    return seat2.id in seat1.adjacent_seats


def guest_info(lookup: Optional[GuestLookup], guest_id: Optional[str]) -> Optional[GuestInfo]:
    """Resolve an occupant id; ids missing from the lookup are treated as external guests."""
    if not guest_id:
        return None
    if lookup is not None and guest_id in lookup:
        return lookup[guest_id]
    return GuestInfo(id=guest_id, from_host=False)


# ----------------------------- mutation entry points -----------------------------


def assign_guest(tables: list[Table], ref: SeatRef, guest: GuestInfo) -> AssignmentCheck:
    seat = find_seat(tables, ref)
    check = validate_guest_seat_assignment(guest, seat)
    if check.can_assign and seat is not None:
        seat.assigned_guest_id = guest.id
        log.debug("assigned %s to %s/%s", guest.id, ref.table_id, ref.seat_id)
    return check


def clear_seat(tables: list[Table], ref: SeatRef, *, allow_locked: bool = False) -> AssignmentCheck:
    seat = find_seat(tables, ref)
    check = validate_guest_seat_assignment(None, seat)
    if not check.can_assign or seat is None:
        return check
    if seat.locked and not allow_locked:
        return AssignmentCheck(can_assign=False, reason=f"Seat {seat.seat_number} is locked", seat_mode=seat.mode)
    seat.assigned_guest_id = None
    return check


def swap_guests(tables: list[Table], ref1: SeatRef, ref2: SeatRef, guest_lookup: Optional[GuestLookup] = None) -> SwapCheck:
    seat1 = find_seat(tables, ref1)
    seat2 = find_seat(tables, ref2)
    check = validate_seat_swap(
        seat1,
        seat2,
        guest_info(guest_lookup, seat1.assigned_guest_id if seat1 else None),
        guest_info(guest_lookup, seat2.assigned_guest_id if seat2 else None),
    )
    if check.can_swap and seat1 is not None and seat2 is not None:
        seat1.assigned_guest_id, seat2.assigned_guest_id = seat2.assigned_guest_id, seat1.assigned_guest_id
    return check


def set_seat_mode(tables: list[Table], ref: SeatRef, mode: SeatMode) -> bool:
    seat = find_seat(tables, ref)
    if seat is None:
        return False
    seat.mode = SeatMode(mode)
    return True


def set_seat_locked(tables: list[Table], ref: SeatRef, locked: bool) -> bool:
    seat = find_seat(tables, ref)
    if seat is None:
        return False
    seat.locked = bool(locked)
    return True
