"""Seat eligibility checks.

These are the only gate in front of a seat mutation: callers apply an assignment
or swap only after the matching check says it is allowed.
"""
from __future__ import annotations

from typing import Iterable, Optional, TypeVar

from .models import AssignmentCheck, GuestInfo, Seat, SeatMode, SwapCheck

G = TypeVar("G")


def can_guest_sit_in_seat(from_host: bool, mode: Optional[SeatMode]) -> bool:
    mode = mode or SeatMode.default
    if mode == SeatMode.host_only:
        return from_host is True
    if mode == SeatMode.external_only:
        return from_host is False
    return True


def compatible_seat_modes(from_host: bool) -> list[SeatMode]:
    if from_host:
        return [SeatMode.default, SeatMode.host_only]
    return [SeatMode.default, SeatMode.external_only]


def seat_mode_incompatibility_reason(mode: Optional[SeatMode], from_host: bool) -> Optional[str]:
    mode = mode or SeatMode.default
    if can_guest_sit_in_seat(from_host, mode):
        return None
    guest_type = "Host guests" if from_host else "External guests"
    return f"{guest_type} cannot be seated in {mode.value} seats"


def validate_guest_seat_assignment(guest: Optional[GuestInfo], seat: Optional[Seat]) -> AssignmentCheck:
    """Decide whether ``guest`` may be placed in ``seat``.

    ``guest=None`` means clearing the seat, which seat mode never blocks. Lock
    state is not consulted for a clear; callers that clear seats check the lock
    themselves (see ``layout.clear_seat``).
    """
    if seat is None:
        return AssignmentCheck(can_assign=False, reason="Seat not found")

    if guest is None:
        return AssignmentCheck(can_assign=True, seat_mode=seat.mode)

    if seat.locked:
        return AssignmentCheck(
            can_assign=False,
            reason=f"Seat {seat.seat_number} is locked",
            seat_mode=seat.mode,
            guest_type=guest.guest_type,
        )

    if not can_guest_sit_in_seat(guest.from_host, seat.mode):
        requirement = "host guests only" if seat.mode == SeatMode.host_only else "external guests only"
        return AssignmentCheck(
            can_assign=False,
            reason=f"{guest.name or 'Guest'} ({guest.guest_type.capitalize()}) cannot be assigned to this seat ({requirement})",
            seat_mode=seat.mode,
            guest_type=guest.guest_type,
        )

    return AssignmentCheck(can_assign=True, seat_mode=seat.mode, guest_type=guest.guest_type)


def validate_seat_swap(
    seat1: Optional[Seat],
    seat2: Optional[Seat],
    guest1: Optional[GuestInfo],
    guest2: Optional[GuestInfo],
) -> SwapCheck:
    if seat1 is None or seat2 is None:
        return SwapCheck(can_swap=False, reasons=["One or both seats not found"])
    if seat1 is seat2:
        return SwapCheck(can_swap=False, reasons=["Cannot swap a seat with itself"])

    reasons: list[str] = []
    if seat1.locked:
        reasons.append(f"Seat {seat1.seat_number} is locked")
    if seat2.locked:
        reasons.append(f"Seat {seat2.seat_number} is locked")
    if guest1 is None:
        reasons.append(f"Seat {seat1.seat_number} is empty")
    if guest2 is None:
        reasons.append(f"Seat {seat2.seat_number} is empty")
    if reasons:
        return SwapCheck(can_swap=False, reasons=reasons)

    # Locks were ruled out above; only mode matters for the cross checks.
    guest1_check = validate_guest_seat_assignment(guest1, seat2.model_copy(update={"locked": False}))
    guest2_check = validate_guest_seat_assignment(guest2, seat1.model_copy(update={"locked": False}))
    if not guest1_check.can_assign:
        reasons.append(guest1_check.reason or "Guest 1 cannot sit in seat 2")
    if not guest2_check.can_assign:
        reasons.append(guest2_check.reason or "Guest 2 cannot sit in seat 1")

    return SwapCheck(
        can_swap=not reasons,
        reasons=reasons,
        guest1_check=guest1_check,
        guest2_check=guest2_check,
    )


def filter_guests_by_seat_mode(guests: Iterable[G], mode: Optional[SeatMode]) -> list[G]:
    mode = mode or SeatMode.default
    return [g for g in guests if can_guest_sit_in_seat(bool(getattr(g, "from_host", False)), mode)]


def partition_guests_by_seat_mode(guests: Iterable[G], mode: Optional[SeatMode]) -> tuple[list[G], list[G]]:
    compatible: list[G] = []
    incompatible: list[G] = []
    for g in guests:
        if can_guest_sit_in_seat(bool(getattr(g, "from_host", False)), mode):
            compatible.append(g)
        else:
            incompatible.append(g)
    return compatible, incompatible
