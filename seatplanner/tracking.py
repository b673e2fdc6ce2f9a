"""Exposure history for tracked guests across independently planned sessions.

Sessions are ordered by when their seating was decided (planning order), not by
their calendar time. Each session gets the next order the first time it is
recorded and keeps it on every later re-plan; the counter only moves forward.
Re-planning a session flags every record planned after it for review.

Neighbours in locked seats are left out of the records.
"""
from __future__ import annotations

import logging
from collections import Counter, defaultdict
from typing import Iterable, Mapping, Optional

from .geometry import adjacency_type
from .layout import GuestLookup, adjacent_seats, guest_seat_map
from .models import (
    AdjacencyDetail,
    AdjacencyType,
    EventAdjacencyReport,
    EventTracking,
    FilteredExposure,
    GuestAdjacencyReport,
    HistoryWarning,
    Seat,
    SessionAdjacencyRecord,
    SessionTrackingStatus,
    Table,
    ThresholdCheck,
)

log = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 2
REPORT_TOP_N = 10


def qualifying_neighbours(table: Table, seat: Seat) -> list[AdjacencyDetail]:
    """Occupied, unlocked seats next to ``seat`` with how they are adjacent."""
    out: list[AdjacencyDetail] = []
    for other in adjacent_seats(table, seat):
        if other.locked or not other.occupied:
            continue
        out.append(
            AdjacencyDetail(
                guest_id=other.assigned_guest_id,
                adjacency_type=adjacency_type(table, seat, other) or AdjacencyType.side,
            )
        )
    return out


class AdjacencyTracker:
    """Reads and writes one event's ``EventTracking`` state in place."""

    def __init__(self, state: EventTracking):
        self.state = state

    @property
    def event_id(self) -> str:
        return self.state.event_id

    # ----------------------------- tracked guests -----------------------------

    def track_guest(self, guest_id: str) -> None:
        self.state.tracked_guest_ids.add(guest_id)

    def untrack_guest(self, guest_id: str) -> None:
        self.state.tracked_guest_ids.discard(guest_id)

    def toggle_guest(self, guest_id: str) -> bool:
        if guest_id in self.state.tracked_guest_ids:
            self.state.tracked_guest_ids.discard(guest_id)
            return False
        self.state.tracked_guest_ids.add(guest_id)
        return True

    def set_tracked_guests(self, guest_ids: Iterable[str]) -> None:
        self.state.tracked_guest_ids = set(guest_ids)

    def is_guest_tracked(self, guest_id: str) -> bool:
        return guest_id in self.state.tracked_guest_ids

    def tracked_guests(self) -> list[str]:
        return sorted(self.state.tracked_guest_ids)

    # ----------------------------- sessions -----------------------------

    def set_session_tracking(self, session_id: str, tracked: bool) -> None:
        if tracked:
            self.state.tracked_session_ids.add(session_id)
        else:
            self.state.tracked_session_ids.discard(session_id)

    def is_session_tracked(self, session_id: str) -> bool:
        return session_id in self.state.tracked_session_ids

    def session_status(self, session_id: str) -> SessionTrackingStatus:
        if not self.is_session_tracked(session_id):
            return SessionTrackingStatus.untracked
        if self.get_session_planning_order(session_id) is None:
            return SessionTrackingStatus.tracked
        if any(r.needs_review for r in self.records_for_session(session_id)):
            return SessionTrackingStatus.needs_review
        return SessionTrackingStatus.current

    def get_session_planning_order(self, session_id: str) -> Optional[int]:
        return self.state.planning.session_order_map.get(session_id)

    def reset_session_planning_order(self, session_id: str) -> None:
        self.state.planning.session_order_map.pop(session_id, None)

    def remove_session(self, session_id: str) -> None:
        """Forget a deleted session. Its planning order is never handed out again."""
        self.state.records = [r for r in self.state.records if r.session_id != session_id]
        self.state.planning.session_order_map.pop(session_id, None)
        self.state.tracked_session_ids.discard(session_id)

    def records_for_session(self, session_id: str) -> list[SessionAdjacencyRecord]:
        return [r for r in self.state.records if r.session_id == session_id]

    def event_records(self) -> list[SessionAdjacencyRecord]:
        return list(self.state.records)

    # ----------------------------- recording -----------------------------

    def record_session_adjacency(
        self, session_id: str, session_start_time: str, tables: list[Table]
    ) -> list[SessionAdjacencyRecord]:
        if not self.state.tracked_guest_ids:
            log.debug("event %s: no tracked guests, session %s not recorded", self.event_id, session_id)
            return []

        planning = self.state.planning
        order = planning.session_order_map.get(session_id)
        replan = order is not None
        if not replan:
            order = planning.next_order
            planning.next_order += 1
            planning.session_order_map[session_id] = order

        kept = [r for r in self.state.records if r.session_id != session_id]

        seated = guest_seat_map(tables)
        new_records: list[SessionAdjacencyRecord] = []
        for tracked_id in sorted(self.state.tracked_guest_ids):
            if tracked_id not in seated:
                continue
            table, seat = seated[tracked_id]
            details = qualifying_neighbours(table, seat)
            if not details:
                continue
            new_records.append(
                SessionAdjacencyRecord(
                    session_id=session_id,
                    session_start_time=session_start_time,
                    planning_order=order,
                    tracked_guest_id=tracked_id,
                    adjacent_guest_ids=[d.guest_id for d in details],
                    adjacent_guest_details=details,
                )
            )

        if replan:
            flagged = set()
            for r in kept:
                if r.planning_order > order:
                    r.needs_review = True
                    flagged.add(r.session_id)
            if flagged:
                log.info(
                    "event %s: re-plan of session %s (order %d) flags %d later session(s) for review",
                    self.event_id, session_id, order, len(flagged),
                )

        self.state.records = sorted(kept + new_records, key=lambda r: r.planning_order)
        self.state.tracked_session_ids.add(session_id)
        log.info(
            "event %s: recorded %d adjacency record(s) for session %s at planning order %d",
            self.event_id, len(new_records), session_id, order,
        )
        return new_records

    # ----------------------------- history -----------------------------

    def _earlier_records(self, current_session_id: str, tracked_guest_id: str) -> list[SessionAdjacencyRecord]:
        current = self.get_session_planning_order(current_session_id)
        if current is None:
            return []
        return [
            r for r in self.state.records
            if r.tracked_guest_id == tracked_guest_id and r.planning_order < current
        ]

    def get_historical_adjacency_count(self, current_session_id: str, tracked_guest_id: str) -> dict[str, int]:
        """How often each guest sat beside ``tracked_guest_id`` in sessions planned before this one."""
        counts: Counter = Counter()
        for r in self._earlier_records(current_session_id, tracked_guest_id):
            counts.update(r.adjacent_guest_ids)
        return dict(counts)

    def get_tracked_guest_history(self, current_session_id: str, tracked_guest_id: str) -> list[tuple[str, int]]:
        counts = self.get_historical_adjacency_count(current_session_id, tracked_guest_id)
        return sorted(counts.items(), key=lambda kv: kv[1], reverse=True)

    def get_filtered_historical_adjacency_count(
        self,
        current_session_id: str,
        tracked_guest_id: str,
        guest_lookup: GuestLookup,
    ) -> dict[str, FilteredExposure]:
        """Historical counts limited to guests on the other side (host vs external) of the tracked guest."""
        tracked = guest_lookup.get(tracked_guest_id)
        tracked_from_host = tracked.from_host if tracked is not None else False
        opposite = {gid for gid, g in guest_lookup.items() if g.from_host != tracked_from_host}

        out: dict[str, FilteredExposure] = {}
        for r in self._earlier_records(current_session_id, tracked_guest_id):
            details = r.adjacent_guest_details or [AdjacencyDetail(guest_id=g) for g in r.adjacent_guest_ids]
            for d in details:
                if d.guest_id not in opposite:
                    continue
                exposure = out.setdefault(d.guest_id, FilteredExposure())
                exposure.count += 1
                exposure.by_type[d.adjacency_type] = exposure.by_type.get(d.adjacency_type, 0) + 1
        return out

    # ----------------------------- review -----------------------------

    def get_sessions_needing_review(self) -> list[str]:
        out: list[str] = []
        for r in self.state.records:
            if r.needs_review and r.session_id not in out:
                out.append(r.session_id)
        return out

    def acknowledge_session_review(self, session_id: str) -> None:
        for r in self.state.records:
            if r.session_id == session_id:
                r.needs_review = False

    # ----------------------------- analysis -----------------------------

    def check_adjacency_threshold(
        self, current_session_id: str, tracked_guest_id: str, threshold: int = DEFAULT_THRESHOLD
    ) -> list[ThresholdCheck]:
        counts = self.get_historical_adjacency_count(current_session_id, tracked_guest_id)
        return [ThresholdCheck(guest_id=g, count=c, exceeded=c >= threshold) for g, c in counts.items()]

    def get_guests_to_avoid(
        self, current_session_id: str, tracked_guest_id: str, threshold: int = DEFAULT_THRESHOLD
    ) -> list[str]:
        return [c.guest_id for c in self.check_adjacency_threshold(current_session_id, tracked_guest_id, threshold) if c.exceeded]

    def get_all_tracked_guests_warnings(
        self, current_session_id: str, threshold: int = DEFAULT_THRESHOLD
    ) -> dict[str, list[str]]:
        out: dict[str, list[str]] = {}
        for tracked_id in self.tracked_guests():
            avoid = self.get_guests_to_avoid(current_session_id, tracked_id, threshold)
            if avoid:
                out[tracked_id] = avoid
        return out

    def proposed_adjacencies(self, tables: list[Table]) -> dict[str, list[str]]:
        seated = guest_seat_map(tables)
        out: dict[str, list[str]] = {}
        for tracked_id in self.tracked_guests():
            if tracked_id in seated:
                table, seat = seated[tracked_id]
                out[tracked_id] = [d.guest_id for d in qualifying_neighbours(table, seat)]
        return out

    def validate_seating_against_history(
        self,
        current_session_id: str,
        tables: Optional[list[Table]] = None,
        threshold: int = DEFAULT_THRESHOLD,
        *,
        proposed: Optional[Mapping[str, Iterable[str]]] = None,
    ) -> list[HistoryWarning]:
        """Flag tracked guests who would sit beside someone they already sat beside before.

        Pass either the candidate ``tables`` or an explicit ``proposed`` map of
        tracked guest id to neighbour ids. Warnings are sorted most-repeated first.
        """
        if proposed is None:
            proposed = self.proposed_adjacencies(tables or [])

        warnings: list[HistoryWarning] = []
        for tracked_id, neighbour_ids in proposed.items():
            counts = self.get_historical_adjacency_count(current_session_id, tracked_id)
            for neighbour_id in neighbour_ids:
                count = counts.get(neighbour_id, 0)
                if count > 0:
                    warnings.append(
                        HistoryWarning(
                            tracked_guest_id=tracked_id,
                            adjacent_guest_id=neighbour_id,
                            historical_count=count,
                            violation=count >= threshold,
                        )
                    )
        warnings.sort(key=lambda w: w.historical_count, reverse=True)
        return warnings

    def get_event_adjacency_report(self) -> EventAdjacencyReport:
        per_guest: dict[str, Counter] = defaultdict(Counter)
        for r in self.state.records:
            per_guest[r.tracked_guest_id].update(r.adjacent_guest_ids)

        reports = []
        for tracked_id in self.tracked_guests():
            counts = per_guest.get(tracked_id, Counter())
            reports.append(
                GuestAdjacencyReport(
                    tracked_guest_id=tracked_id,
                    total_adjacencies=sum(counts.values()),
                    unique_guests=len(counts),
                    top_adjacencies=counts.most_common(REPORT_TOP_N),
                )
            )
        return EventAdjacencyReport(
            total_sessions=len({r.session_id for r in self.state.records}),
            guest_reports=reports,
        )
