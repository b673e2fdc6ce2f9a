from __future__ import annotations

import logging
import math
from collections import defaultdict
from typing import Iterable, Optional

from .layout import GuestLookup, adjacent_seats, find_seat, guest_seat_map
from .models import ProximityRules, SeatRef, Table, Violation, ViolationCounts, ViolationType

log = logging.getLogger(__name__)


def _display_name(lookup: Optional[GuestLookup], guest_id: str) -> Optional[str]:
    if lookup is None or guest_id not in lookup:
        return None
    return lookup[guest_id].name


def detect_proximity_violations(
    tables: list[Table],
    rules: ProximityRules,
    guest_lookup: Optional[GuestLookup] = None,
) -> list[Violation]:
    """Scan every occupied seat for broken sit-together / sit-away rules.

    Adjacency is symmetric, so each broken rule is seen from both ends; the
    result holds one entry per unordered pair and rule type.

    A sit-together rule is only broken once both guests are seated somewhere.
    When ``guest_lookup`` is given, guests missing from it are ignored.
    """
    seated = guest_seat_map(tables)
    found: list[Violation] = []
    seen: set = set()

    def known(guest_id: str) -> bool:
        return guest_lookup is None or guest_id in guest_lookup

    def add(v: Violation) -> None:
        key = v.pair_key()
        if key in seen:
            return
        seen.add(key)
        found.append(v)

    for table in tables:
        for seat in table.seats:
            guest_id = seat.assigned_guest_id
            if not guest_id or not known(guest_id):
                continue

            neighbours = [s for s in adjacent_seats(table, seat) if s.assigned_guest_id]
            neighbour_ids = {s.assigned_guest_id for s in neighbours}
            name = _display_name(guest_lookup, guest_id)

            for partner_id in rules.together_partners(guest_id):
                if partner_id in neighbour_ids or partner_id not in seated or not known(partner_id):
                    continue
                partner_name = _display_name(guest_lookup, partner_id)
                _, partner_seat = seated[partner_id]
                add(
                    Violation(
                        type=ViolationType.sit_together,
                        guest1_id=guest_id,
                        guest2_id=partner_id,
                        guest1_name=name,
                        guest2_name=partner_name,
                        table_id=table.id,
                        table_label=table.label,
                        seat1_id=seat.id,
                        seat2_id=partner_seat.id,
                        reason=f"{name or guest_id} and {partner_name or partner_id} should sit together but are not adjacent",
                    )
                )

            for other in neighbours:
                other_id = other.assigned_guest_id
                if not known(other_id) or not rules.should_sit_away(guest_id, other_id):
                    continue
                other_name = _display_name(guest_lookup, other_id)
                add(
                    Violation(
                        type=ViolationType.sit_away,
                        guest1_id=guest_id,
                        guest2_id=other_id,
                        guest1_name=name,
                        guest2_name=other_name,
                        table_id=table.id,
                        table_label=table.label,
                        seat1_id=seat.id,
                        seat2_id=other.id,
                        reason=f"{name or guest_id} and {other_name or other_id} should not sit together but are adjacent",
                    )
                )

    log.debug("detected %d proximity violations across %d tables", len(found), len(tables))
    return found


def count_violations(violations: Iterable[Violation]) -> ViolationCounts:
    together = away = 0
    for v in violations:
        if v.type == ViolationType.sit_together:
            together += 1
        else:
            away += 1
    return ViolationCounts(sit_together=together, sit_away=away, total=together + away)


def halve_directional(raw_count: int) -> int:
    """Pair count from a tally that saw every pair once from each end."""
    return math.ceil(raw_count / 2)


def violations_by_table(violations: Iterable[Violation]) -> dict[str, list[Violation]]:
    out: dict[str, list[Violation]] = defaultdict(list)
    for v in violations:
        out[v.table_id].append(v)
    return dict(out)


def violations_for_guest(violations: Iterable[Violation], guest_id: str) -> list[Violation]:
    return [v for v in violations if v.guest1_id == guest_id or v.guest2_id == guest_id]


def detect_violations_after_assignment(
    tables: list[Table],
    ref: SeatRef,
    guest_id: str,
    rules: ProximityRules,
    guest_lookup: Optional[GuestLookup] = None,
) -> Optional[list[Violation]]:
    """Violations if ``guest_id`` sat at ``ref``; None when the seat does not exist."""
    trial = [t.model_copy(deep=True) for t in tables]
    seat = find_seat(trial, ref)
    if seat is None:
        log.warning("assignment preview skipped: seat %s/%s not found", ref.table_id, ref.seat_id)
        return None
    seat.assigned_guest_id = guest_id
    return detect_proximity_violations(trial, rules, guest_lookup)


def check_assignment_proximity(
    tables: list[Table],
    ref: SeatRef,
    guest_id: str,
    rules: ProximityRules,
    guest_lookup: Optional[GuestLookup] = None,
) -> tuple[bool, list[str], list[Violation]]:
    after = detect_violations_after_assignment(tables, ref, guest_id, rules, guest_lookup)
    if after is None:
        return False, ["Table or seat not found"], []
    mine = violations_for_guest(after, guest_id)
    warnings = [v.reason or "Proximity rule violation" for v in mine]
    return not mine, warnings, mine
