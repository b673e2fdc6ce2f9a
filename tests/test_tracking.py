import unittest

from seatplanner.geometry import create_rectangle_table, create_round_table
from seatplanner.models import AdjacencyType, EventTracking, GuestInfo, PlanningOrderTracker, SessionTrackingStatus
from seatplanner.tracking import AdjacencyTracker


def _round(seating, locked=()):
    t = create_round_table("T", 8)
    for position, guest_id in seating.items():
        t.seat_at(position).assigned_guest_id = guest_id
    for position in locked:
        t.seat_at(position).locked = True
    return [t]


class TestRecording(unittest.TestCase):
    def setUp(self):
        self.tracker = AdjacencyTracker(EventTracking(event_id="ev"))
        self.tracker.track_guest("vip")

    def test_no_tracked_guests_is_a_noop(self):
        tracker = AdjacencyTracker(EventTracking(event_id="ev"))
        self.assertEqual(tracker.record_session_adjacency("S1", "09:00", _round({0: "vip", 1: "a"})), [])
        self.assertIsNone(tracker.get_session_planning_order("S1"))
        self.assertEqual(tracker.state.planning.next_order, 1)
        self.assertEqual(tracker.event_records(), [])

    def test_records_neighbours(self):
        records = self.tracker.record_session_adjacency("S1", "09:00", _round({0: "vip", 1: "a", 7: "b", 4: "c"}))
        self.assertEqual(len(records), 1)
        r = records[0]
        self.assertEqual((r.session_id, r.planning_order, r.tracked_guest_id), ("S1", 1, "vip"))
        self.assertEqual(sorted(r.adjacent_guest_ids), ["a", "b"])
        self.assertFalse(r.needs_review)
        self.assertTrue(self.tracker.is_session_tracked("S1"))

    def test_locked_neighbours_excluded(self):
        records = self.tracker.record_session_adjacency("S1", "09:00", _round({0: "vip", 1: "a", 7: "b"}, locked=[7]))
        self.assertEqual(records[0].adjacent_guest_ids, ["a"])

    def test_no_qualifying_neighbour_no_record(self):
        self.tracker.track_guest("lonely")
        records = self.tracker.record_session_adjacency("S1", "09:00", _round({0: "vip", 1: "a", 4: "lonely", 5: "x"}, locked=[5]))
        self.assertEqual([r.tracked_guest_id for r in records], ["vip"])
        # the session still takes a planning order
        self.assertEqual(self.tracker.get_session_planning_order("S1"), 1)

    def test_unseated_tracked_guest_ignored(self):
        self.tracker.track_guest("absent")
        records = self.tracker.record_session_adjacency("S1", "09:00", _round({0: "vip", 1: "a"}))
        self.assertEqual([r.tracked_guest_id for r in records], ["vip"])

    def test_rectangle_adjacency_types(self):
        t = create_rectangle_table("R", 2, 1, 2, 1)
        for position, guest_id in [(0, "vip"), (1, "side"), (4, "across"), (5, "corner")]:
            t.seat_at(position).assigned_guest_id = guest_id
        r = self.tracker.record_session_adjacency("S1", "09:00", [t])[0]
        types = {d.guest_id: d.adjacency_type for d in r.adjacent_guest_details}
        self.assertEqual(
            types,
            {"side": AdjacencyType.side, "across": AdjacencyType.opposite, "corner": AdjacencyType.edge},
        )


class TestPlanningOrder(unittest.TestCase):
    def setUp(self):
        self.tracker = AdjacencyTracker(EventTracking(event_id="ev"))
        self.tracker.set_tracked_guests(["vip"])
        self.tracker.record_session_adjacency("S1", "2024-05-01T09:00", _round({0: "vip", 1: "a", 7: "b"}))
        self.tracker.record_session_adjacency("S2", "2024-05-01T13:00", _round({0: "vip", 1: "a", 7: "c"}))
        self.tracker.record_session_adjacency("S3", "2024-05-02T09:00", _round({0: "vip", 1: "a", 7: "d"}))

    def test_orders_are_sequential(self):
        self.assertEqual([self.tracker.get_session_planning_order(s) for s in ("S1", "S2", "S3")], [1, 2, 3])
        self.assertEqual(self.tracker.state.planning.next_order, 4)
        self.assertEqual([r.planning_order for r in self.tracker.event_records()], [1, 2, 3])

    def test_historical_count_uses_earlier_orders_only(self):
        self.assertEqual(self.tracker.get_historical_adjacency_count("S1", "vip"), {})
        self.assertEqual(self.tracker.get_historical_adjacency_count("S2", "vip"), {"a": 1, "b": 1})
        self.assertEqual(self.tracker.get_historical_adjacency_count("S3", "vip"), {"a": 2, "b": 1, "c": 1})
        self.assertEqual(self.tracker.get_historical_adjacency_count("unknown", "vip"), {})
        self.assertEqual(self.tracker.get_historical_adjacency_count("S3", "nobody"), {})

    def test_history_sorted_by_count(self):
        history = self.tracker.get_tracked_guest_history("S3", "vip")
        self.assertEqual(history[0], ("a", 2))
        self.assertEqual(sorted(history[1:]), [("b", 1), ("c", 1)])

    def test_replan_keeps_order_and_flags_later_sessions(self):
        s1_before = [r.model_copy() for r in self.tracker.records_for_session("S1")]
        self.tracker.record_session_adjacency("S2", "2024-05-01T13:00", _round({0: "vip", 1: "e", 7: "c"}))

        self.assertEqual(self.tracker.get_session_planning_order("S2"), 2)
        self.assertEqual(self.tracker.state.planning.next_order, 4)
        self.assertTrue(all(r.needs_review for r in self.tracker.records_for_session("S3")))
        self.assertFalse(any(r.needs_review for r in self.tracker.records_for_session("S2")))
        self.assertEqual(self.tracker.records_for_session("S1"), s1_before)
        self.assertEqual(self.tracker.get_sessions_needing_review(), ["S3"])

        # full replace of S2's records
        s2 = self.tracker.records_for_session("S2")
        self.assertEqual(len(s2), 1)
        self.assertEqual(sorted(s2[0].adjacent_guest_ids), ["c", "e"])
        self.assertEqual(self.tracker.get_historical_adjacency_count("S3", "vip"), {"a": 1, "b": 1, "c": 1, "e": 1})
        self.assertEqual([r.planning_order for r in self.tracker.event_records()], [1, 2, 3])

    def test_replan_of_latest_flags_nothing(self):
        self.tracker.record_session_adjacency("S3", "2024-05-02T09:00", _round({0: "vip", 1: "z"}))
        self.assertEqual(self.tracker.get_sessions_needing_review(), [])

    def test_status_and_acknowledge(self):
        self.assertEqual(self.tracker.session_status("S9"), SessionTrackingStatus.untracked)
        self.tracker.set_session_tracking("S9", True)
        self.assertEqual(self.tracker.session_status("S9"), SessionTrackingStatus.tracked)
        self.assertEqual(self.tracker.session_status("S3"), SessionTrackingStatus.current)

        self.tracker.record_session_adjacency("S1", "2024-05-01T09:00", _round({0: "vip", 1: "q"}))
        self.assertEqual(self.tracker.session_status("S3"), SessionTrackingStatus.needs_review)
        self.tracker.acknowledge_session_review("S3")
        self.assertEqual(self.tracker.session_status("S3"), SessionTrackingStatus.current)
        self.tracker.acknowledge_session_review("S2")
        self.assertEqual(self.tracker.get_sessions_needing_review(), [])

    def test_removed_session_order_never_reused(self):
        self.tracker.remove_session("S3")
        self.assertEqual(self.tracker.records_for_session("S3"), [])
        self.assertIsNone(self.tracker.get_session_planning_order("S3"))
        self.assertFalse(self.tracker.is_session_tracked("S3"))
        self.tracker.record_session_adjacency("S4", "2024-05-03T09:00", _round({0: "vip", 1: "a"}))
        self.assertEqual(self.tracker.get_session_planning_order("S4"), 4)

    def test_reset_planning_order_assigns_a_fresh_one(self):
        self.tracker.reset_session_planning_order("S1")
        self.assertIsNone(self.tracker.get_session_planning_order("S1"))
        self.tracker.record_session_adjacency("S1", "2024-05-01T09:00", _round({0: "vip", 1: "a"}))
        self.assertEqual(self.tracker.get_session_planning_order("S1"), 4)
        self.assertEqual(self.tracker.state.planning.next_order, 5)


class TestGuestTracking(unittest.TestCase):
    def test_toggle_and_set(self):
        tracker = AdjacencyTracker(EventTracking(event_id="ev"))
        self.assertTrue(tracker.toggle_guest("a"))
        self.assertTrue(tracker.is_guest_tracked("a"))
        self.assertFalse(tracker.toggle_guest("a"))
        tracker.set_tracked_guests(["c", "b"])
        self.assertEqual(tracker.tracked_guests(), ["b", "c"])
        tracker.untrack_guest("b")
        tracker.untrack_guest("missing")
        self.assertEqual(tracker.tracked_guests(), ["c"])


class TestRecovery(unittest.TestCase):
    def test_list_shaped_sets_are_accepted(self):
        state = EventTracking.model_validate({"event_id": "ev", "tracked_guest_ids": ["a", "b", "a"]})
        self.assertEqual(state.tracked_guest_ids, {"a", "b"})

    def test_corrupted_collections_become_empty(self):
        with self.assertLogs("seatplanner.models", level="WARNING") as logs:
            state = EventTracking.model_validate(
                {
                    "event_id": "ev",
                    "tracked_guest_ids": "vip",
                    "tracked_session_ids": 42,
                    "records": {"oops": True},
                    "planning": "bad",
                }
            )
        self.assertEqual(state.tracked_guest_ids, set())
        self.assertEqual(state.tracked_session_ids, set())
        self.assertEqual(state.records, [])
        self.assertEqual(state.planning.next_order, 1)
        self.assertEqual(len(logs.records), 4)

    def test_corrupted_order_map(self):
        with self.assertLogs("seatplanner.models", level="WARNING"):
            tracker = PlanningOrderTracker.model_validate({"session_order_map": ["S1"], "next_order": 3})
        self.assertEqual(tracker.session_order_map, {})
        self.assertEqual(tracker.next_order, 3)

    def test_malformed_records_are_dropped_individually(self):
        good = {"session_id": "S1", "session_start_time": "09:00", "planning_order": 1, "tracked_guest_id": "vip", "adjacent_guest_ids": ["a"]}
        with self.assertLogs("seatplanner.models", level="WARNING") as logs:
            state = EventTracking.model_validate(
                {"event_id": "ev", "tracked_guest_ids": ["vip"], "records": [{"bogus": 1}, good, "junk"]}
            )
        self.assertEqual([r.session_id for r in state.records], ["S1"])
        self.assertEqual(len([m for m in logs.output if "dropping corrupted adjacency record" in m]), 2)

    def test_bad_order_entries_and_next_order_recover(self):
        with self.assertLogs("seatplanner.models", level="WARNING"):
            tracker = PlanningOrderTracker.model_validate(
                {"session_order_map": {"S1": 1, "S2": "two", "S3": True}, "next_order": "soon"}
            )
        self.assertEqual(tracker.session_order_map, {"S1": 1})
        self.assertEqual(tracker.next_order, 2)

    def test_stale_next_order_never_reissues_an_order(self):
        with self.assertLogs("seatplanner.models", level="WARNING"):
            state = EventTracking.model_validate(
                {"event_id": "ev", "tracked_guest_ids": ["vip"], "planning": {"session_order_map": {"S1": 1, "S2": 2}}}
            )
        self.assertEqual(state.planning.next_order, 3)
        tracker = AdjacencyTracker(state)
        tracker.record_session_adjacency("S3", "09:00", _round({0: "vip", 1: "a"}))
        self.assertEqual(tracker.get_session_planning_order("S3"), 3)
        self.assertEqual(sorted(state.planning.session_order_map.values()), [1, 2, 3])

    def test_next_order_moves_past_loaded_records(self):
        record = {"session_id": "S5", "session_start_time": "09:00", "planning_order": 5, "tracked_guest_id": "vip"}
        with self.assertLogs("seatplanner.models", level="WARNING"):
            state = EventTracking.model_validate({"event_id": "ev", "records": [record], "planning": {"next_order": 2}})
        self.assertEqual(state.planning.next_order, 6)

    def test_round_trip_through_json(self):
        tracker = AdjacencyTracker(EventTracking(event_id="ev", tracked_guest_ids={"vip"}))
        tracker.record_session_adjacency("S1", "09:00", _round({0: "vip", 1: "a"}))
        restored = EventTracking.model_validate_json(tracker.state.model_dump_json())
        self.assertEqual(restored, tracker.state)


class TestAnalysis(unittest.TestCase):
    def setUp(self):
        self.tracker = AdjacencyTracker(EventTracking(event_id="ev", tracked_guest_ids={"vip"}))
        self.guests = {
            "vip": GuestInfo(id="vip", from_host=True),
            "a": GuestInfo(id="a", from_host=False),
            "b": GuestInfo(id="b", from_host=True),
            "c": GuestInfo(id="c", from_host=False),
        }
        self.tracker.record_session_adjacency("S1", "d1", _round({0: "vip", 1: "a", 7: "b"}))
        self.tracker.record_session_adjacency("S2", "d2", _round({0: "vip", 1: "a", 7: "c"}))
        self.tracker.record_session_adjacency("S3", "d3", _round({0: "vip", 1: "a", 7: "b"}))

    def test_filtered_history_keeps_opposite_type(self):
        filtered = self.tracker.get_filtered_historical_adjacency_count("S3", "vip", self.guests)
        self.assertEqual(set(filtered), {"a", "c"})
        self.assertEqual(filtered["a"].count, 2)
        self.assertEqual(filtered["a"].by_type, {AdjacencyType.side: 2})

    def test_threshold_helpers(self):
        checks = {c.guest_id: c for c in self.tracker.check_adjacency_threshold("S3", "vip")}
        self.assertTrue(checks["a"].exceeded)
        self.assertFalse(checks["b"].exceeded)
        self.assertEqual(self.tracker.get_guests_to_avoid("S3", "vip"), ["a"])
        self.assertEqual(self.tracker.get_guests_to_avoid("S3", "vip", threshold=1), ["a", "b", "c"])
        self.assertEqual(self.tracker.get_all_tracked_guests_warnings("S3"), {"vip": ["a"]})
        self.assertEqual(self.tracker.get_all_tracked_guests_warnings("S2"), {})

    def test_validate_seating_against_history(self):
        warnings = self.tracker.validate_seating_against_history("S3", _round({0: "vip", 1: "a", 7: "c", 3: "b"}))
        self.assertEqual([(w.adjacent_guest_id, w.historical_count, w.violation) for w in warnings], [("a", 2, True), ("c", 1, False)])
        warnings = self.tracker.validate_seating_against_history("S3", proposed={"vip": ["b", "new"]})
        self.assertEqual([(w.adjacent_guest_id, w.historical_count) for w in warnings], [("b", 1)])

    def test_event_report(self):
        report = self.tracker.get_event_adjacency_report()
        self.assertEqual(report.total_sessions, 3)
        vip = report.guest_reports[0]
        self.assertEqual(vip.tracked_guest_id, "vip")
        self.assertEqual(vip.total_adjacencies, 6)
        self.assertEqual(vip.unique_guests, 3)
        self.assertEqual(vip.top_adjacencies[0], ("a", 3))


if __name__ == "__main__":
    unittest.main()
