from __future__ import annotations

import json

import pytest

from guide_booking.bookings.domain import Booking
from guide_booking.notifications.events import BookingStatusChanged, ChangeType
from guide_booking.notifications.trackers import BookingStatusTracker, NewBookingTracker


@pytest.fixture
def status_tracker(history_store):
    return BookingStatusTracker(history_store)


@pytest.fixture
def new_booking_tracker(history_store):
    return NewBookingTracker(history_store)


def _booking(booking_id, status, **fields):
    return {"id": booking_id, "status": status, "guideName": "Karim", "location": "Sylhet", **fields}


class TestBookingStatusTracker:
    def test_initialize_twice_is_idempotent(self, status_tracker, history_store):
        snapshot = [_booking("b1", "pending"), _booking("b2", "confirmed")]

        assert status_tracker.initialize(snapshot, "u1") is True
        first = history_store.get("u1")
        assert status_tracker.initialize(snapshot, "u1") is False

        assert history_store.get("u1") == first == {"b1": "pending", "b2": "confirmed"}
        assert status_tracker.detect_status_changes(snapshot, "u1") == []

    def test_first_sight_is_a_baseline(self, status_tracker, history_store):
        changes = status_tracker.detect_status_changes([_booking("b1", "pending")], "u1")

        assert changes == []
        assert history_store.get("u1") == {"b1": "pending"}

    def test_detects_approval(self, status_tracker, history_store):
        history_store.set("u1", {"b1": "pending"})

        changes = status_tracker.detect_status_changes([_booking("b1", "confirmed")], "u1")

        assert len(changes) == 1
        change = changes[0]
        assert isinstance(change, BookingStatusChanged)
        assert change.booking.id == "b1"
        assert change.previous_status == "pending"
        assert change.new_status == "confirmed"
        assert change.change_type is ChangeType.APPROVED
        assert change.aggregate_id == "b1"

    def test_accepted_counts_as_approval(self, status_tracker, history_store):
        history_store.set("u1", {"b1": "pending"})

        changes = status_tracker.detect_status_changes([_booking("b1", "accepted")], "u1")

        assert [change.change_type for change in changes] == [ChangeType.APPROVED]

    def test_detects_rejection(self, status_tracker, history_store):
        history_store.set("u1", {"b1": "pending"})

        changes = status_tracker.detect_status_changes([_booking("b1", "cancelled")], "u1")

        assert [change.change_type for change in changes] == [ChangeType.REJECTED]

    def test_no_refire_after_consumption(self, status_tracker, history_store):
        history_store.set("u1", {"b1": "pending"})
        snapshot = [_booking("b1", "confirmed")]

        assert len(status_tracker.detect_status_changes(snapshot, "u1")) == 1
        assert status_tracker.detect_status_changes(snapshot, "u1") == []
        assert history_store.get("u1") == {"b1": "confirmed"}

    def test_only_transitions_out_of_pending_are_reported(self, status_tracker, history_store):
        history_store.set("u1", {"b1": "confirmed", "b2": "cancelled", "b3": "pending"})

        changes = status_tracker.detect_status_changes(
            [_booking("b1", "cancelled"), _booking("b2", "pending"), _booking("b3", "archived")],
            "u1",
        )

        assert changes == []
        assert history_store.get("u1") == {"b1": "cancelled", "b2": "pending", "b3": "archived"}

    def test_vanished_bookings_are_dropped_from_history(self, status_tracker, history_store):
        history_store.set("u1", {"b1": "pending", "gone": "pending"})

        status_tracker.detect_status_changes([_booking("b1", "pending")], "u1")

        assert history_store.get("u1") == {"b1": "pending"}

    def test_accepts_booking_objects(self, status_tracker, history_store):
        history_store.set("u1", {"b1": "pending"})

        changes = status_tracker.detect_status_changes([Booking(id="b1", status="confirmed")], "u1")

        assert len(changes) == 1

    def test_corrupt_history_returns_no_changes(self, status_tracker, kv_backend):
        kv_backend.set("test_history_u1", "{not json")

        assert status_tracker.detect_status_changes([_booking("b1", "confirmed")], "u1") == []

    @pytest.mark.parametrize("bad_entry", [None, "b1", object()])
    def test_malformed_snapshot_entry_returns_no_changes(self, status_tracker, history_store, bad_entry):
        history_store.set("u1", {"b1": "pending"})

        changes = status_tracker.detect_status_changes([_booking("b1", "confirmed"), bad_entry], "u1")

        assert changes == []
        assert history_store.get("u1") == {"b1": "pending"}

    def test_clear_resets_tracking(self, status_tracker, history_store):
        history_store.set("u1", {"b1": "pending"})

        assert status_tracker.clear_notification_history("u1") is True

        assert status_tracker.detect_status_changes([_booking("b1", "confirmed")], "u1") == []
        assert history_store.get("u1") == {"b1": "confirmed"}

    def test_mark_status_changes_as_notified_keeps_history(self, status_tracker, history_store):
        history_store.set("u1", {"b1": "confirmed"})

        status_tracker.mark_status_changes_as_notified(["b1"], "u1")

        assert history_store.get("u1") == {"b1": "confirmed"}


class TestNewBookingTracker:
    def test_detects_unseen_pending_bookings(self, new_booking_tracker):
        snapshot = [_booking("b1", "pending"), _booking("b2", "confirmed")]

        new_bookings = new_booking_tracker.detect_new_bookings(snapshot, "g1")

        assert [booking.id for booking in new_bookings] == ["b1"]

    def test_at_least_once_until_marked(self, new_booking_tracker):
        snapshot = [_booking("b1", "pending")]

        assert len(new_booking_tracker.detect_new_bookings(snapshot, "g1")) == 1
        assert len(new_booking_tracker.detect_new_bookings(snapshot, "g1")) == 1

        assert new_booking_tracker.mark_notified(["b1"], "g1") is True

        assert new_booking_tracker.detect_new_bookings(snapshot, "g1") == []

    def test_mark_notified_records_first_notification_time(self, new_booking_tracker, kv_backend):
        new_booking_tracker.mark_notified(["b1"], "g1")
        first = json.loads(kv_backend.get("test_history_g1"))["b1"]

        new_booking_tracker.mark_notified(["b1", "b2"], "g1")
        stored = json.loads(kv_backend.get("test_history_g1"))

        assert stored["b1"] == first
        assert set(stored) == {"b1", "b2"}

    def test_get_notified_bookings(self, new_booking_tracker):
        new_booking_tracker.mark_notified(["b1", "b2"], "g1")

        assert sorted(new_booking_tracker.get_notified_bookings("g1")) == ["b1", "b2"]
        assert new_booking_tracker.get_notified_bookings("other") == []

    def test_clear_resets_tracking(self, new_booking_tracker):
        snapshot = [_booking("b1", "pending")]
        new_booking_tracker.mark_notified(["b1"], "g1")

        assert new_booking_tracker.clear_notification_history("g1") is True

        assert [booking.id for booking in new_booking_tracker.detect_new_bookings(snapshot, "g1")] == ["b1"]

    def test_read_failure_returns_no_bookings(self, new_booking_tracker, kv_backend):
        kv_backend.set("test_history_g1", "[1, 2]")

        assert new_booking_tracker.detect_new_bookings([_booking("b1", "pending")], "g1") == []
        assert new_booking_tracker.mark_notified(["b1"], "g1") is False

    @pytest.mark.parametrize("bad_entry", [None, 42])
    def test_malformed_snapshot_entry_returns_no_bookings(self, new_booking_tracker, bad_entry):
        assert new_booking_tracker.detect_new_bookings([_booking("b1", "pending"), bad_entry], "g1") == []
