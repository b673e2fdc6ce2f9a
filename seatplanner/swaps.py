"""What-if swaps: predicted violations and ranked swap partners for a seat."""
from __future__ import annotations

import logging
from typing import Optional

from .layout import GuestLookup, find_seat, guest_info
from .models import (
    IncompatibleCandidate,
    ProximityRules,
    SeatMode,
    SeatRef,
    SwapCandidate,
    Table,
    ViolationPrediction,
)
from .validation import validate_seat_swap
from .violations import count_violations, detect_proximity_violations

log = logging.getLogger(__name__)


def predict_violations_after_swap(
    tables: list[Table],
    seat1_ref: SeatRef,
    seat2_ref: SeatRef,
    rules: ProximityRules,
    guest_lookup: Optional[GuestLookup] = None,
) -> ViolationPrediction:
    """Swap the two occupants on a copy of the layout and re-detect over all of it.

    The live layout is never touched. Unknown seats give an empty, non-computable
    prediction.
    """
    trial = [t.model_copy(deep=True) for t in tables]
    seat1 = find_seat(trial, seat1_ref)
    seat2 = find_seat(trial, seat2_ref)
    if seat1 is None or seat2 is None:
        log.warning(
            "swap prediction skipped: seat %s/%s or %s/%s not found",
            seat1_ref.table_id, seat1_ref.seat_id, seat2_ref.table_id, seat2_ref.seat_id,
        )
        return ViolationPrediction(computable=False)

    seat1.assigned_guest_id, seat2.assigned_guest_id = seat2.assigned_guest_id, seat1.assigned_guest_id
    details = detect_proximity_violations(trial, rules, guest_lookup)
    return ViolationPrediction(counts=count_violations(details), details=details)


def get_swap_candidates(
    source_ref: SeatRef,
    tables: list[Table],
    guest_lookup: Optional[GuestLookup],
    rules: ProximityRules,
) -> list[SwapCandidate]:
    """Every legal swap partner for the guest at ``source_ref``, fewest resulting violations first."""
    source = find_seat(tables, source_ref)
    if source is None or not source.assigned_guest_id:
        return []

    source_guest = guest_info(guest_lookup, source.assigned_guest_id)
    candidates: list[SwapCandidate] = []
    for table in tables:
        for seat in table.seats:
            if seat is source or not seat.occupied or seat.locked:
                continue
            check = validate_seat_swap(source, seat, source_guest, guest_info(guest_lookup, seat.assigned_guest_id))
            if not check.can_swap:
                continue
            prediction = predict_violations_after_swap(
                tables, source_ref, SeatRef(table_id=table.id, seat_id=seat.id), rules, guest_lookup
            )
            candidates.append(
                SwapCandidate(
                    table_id=table.id,
                    table_label=table.label,
                    seat_id=seat.id,
                    seat_number=seat.seat_number,
                    seat_mode=seat.mode,
                    guest_id=seat.assigned_guest_id,
                    check=check,
                    violations_after_swap=prediction.details,
                    violation_count=prediction.counts.total,
                )
            )

    candidates.sort(key=lambda c: c.violation_count)
    log.debug("%d swap candidates for %s/%s", len(candidates), source_ref.table_id, source_ref.seat_id)
    return candidates


def get_incompatible_swap_candidates(
    source_ref: SeatRef,
    tables: list[Table],
    guest_lookup: Optional[GuestLookup],
) -> list[IncompatibleCandidate]:
    """Occupied, unlocked seats the source guest could only swap with if seat modes allowed it."""
    source = find_seat(tables, source_ref)
    if source is None or not source.assigned_guest_id or source.locked:
        return []

    source_guest = guest_info(guest_lookup, source.assigned_guest_id)
    out: list[IncompatibleCandidate] = []
    for table in tables:
        for seat in table.seats:
            if seat is source or not seat.occupied or seat.locked:
                continue
            check = validate_seat_swap(source, seat, source_guest, guest_info(guest_lookup, seat.assigned_guest_id))
            # cross checks only run once the lock/empty checks pass
            if check.can_swap or check.guest1_check is None:
                continue
            out.append(
                IncompatibleCandidate(
                    table_id=table.id,
                    table_label=table.label,
                    seat_id=seat.id,
                    seat_number=seat.seat_number,
                    seat_mode=seat.mode or SeatMode.default,
                    source_seat_mode=source.mode or SeatMode.default,
                    guest_id=seat.assigned_guest_id,
                    check=check,
                    reasons=list(check.reasons),
                )
            )
    return out
