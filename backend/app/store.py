from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Optional

from seatplanner.models import EventTracking, GuestInfo, ProximityRules, Table


@dataclass
class EventState:
    """Everything the API keeps for one event. Lives only as long as the process."""

    event_id: str
    name: str = ""
    guests: dict[str, GuestInfo] = field(default_factory=dict)
    rules: ProximityRules = field(default_factory=ProximityRules)
    # session id -> tables in that session
    sessions: dict[str, list[Table]] = field(default_factory=dict)
    tracking: Optional[EventTracking] = None

    def ensure_tracking(self) -> EventTracking:
        if self.tracking is None:
            self.tracking = EventTracking(event_id=self.event_id)
        return self.tracking


class EventStore:
    def __init__(self) -> None:
        self._events: dict[str, EventState] = {}
        # FastAPI runs sync endpoints in a thread pool; one mutation at a time.
        self.lock = threading.RLock()

    def create(self, event_id: str, name: str = "") -> EventState:
        with self.lock:
            ev = EventState(event_id=event_id, name=name)
            self._events[event_id] = ev
            return ev

    def get(self, event_id: str) -> Optional[EventState]:
        return self._events.get(event_id)

    def delete(self, event_id: str) -> bool:
        with self.lock:
            return self._events.pop(event_id, None) is not None

    def clear(self) -> None:
        with self.lock:
            self._events.clear()


store = EventStore()
