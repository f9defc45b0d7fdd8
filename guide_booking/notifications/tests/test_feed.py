from __future__ import annotations

import threading
from collections import deque
from unittest.mock import MagicMock

import pytest
from google.cloud import exceptions as gexc

from guide_booking.notifications.exceptions import RecordNotFound, StorageReadFailure, StorageWriteFailure
from guide_booking.notifications.feed import FirestoreFeed, InMemoryFeed, get_feed


class _QueueWithEmptyHook(deque):
    """Runs `on_empty` once, the first time the queue is seen empty"""

    def __init__(self, on_empty):
        super().__init__()
        self.on_empty = on_empty

    def __len__(self):
        size = super().__len__()
        if size == 0 and self.on_empty is not None:
            on_empty, self.on_empty = self.on_empty, None
            on_empty()
        return size


class TestInMemoryFeed:
    def test_push_and_query_by_field(self, feed):
        first = feed.push("guide-notifications", {"guide_uid": "g1", "title": "a"})
        feed.push("guide-notifications", {"guide_uid": "g2", "title": "b"})

        records = feed.query("guide-notifications", "guide_uid", "g1")

        assert list(records) == [first]
        assert records[first]["title"] == "a"

    def test_query_returns_copies(self, feed):
        record_id = feed.push("c", {"guide_uid": "g1", "data": {"x": 1}})

        feed.query("c", "guide_uid", "g1")[record_id]["data"]["x"] = 2

        assert feed.query("c", "guide_uid", "g1")[record_id]["data"]["x"] == 1

    def test_update_is_field_level(self, feed):
        record_id = feed.push("c", {"guide_uid": "g1", "shown": False, "title": "a"})

        feed.update("c", record_id, {"shown": True})

        assert feed.query("c", "guide_uid", "g1")[record_id] == {"guide_uid": "g1", "shown": True, "title": "a"}

    def test_update_missing_record_raises(self, feed):
        with pytest.raises(RecordNotFound):
            feed.update("c", "missing", {"shown": True})

    def test_update_many_is_all_or_nothing(self, feed):
        record_id = feed.push("c", {"guide_uid": "g1", "shown": False})

        with pytest.raises(RecordNotFound):
            feed.update_many("c", {record_id: {"shown": True}, "missing": {"shown": True}})

        assert feed.query("c", "guide_uid", "g1")[record_id]["shown"] is False

    def test_remove_is_idempotent(self, feed):
        record_id = feed.push("c", {"guide_uid": "g1"})

        feed.remove("c", record_id)
        feed.remove("c", record_id)

        assert feed.query("c", "guide_uid", "g1") == {}

    def test_listen_delivers_initial_set_and_every_change(self, feed):
        deliveries = []
        feed.listen("c", "guide_uid", "g1", lambda records: deliveries.append(sorted(records)))

        record_id = feed.push("c", {"guide_uid": "g1"})
        feed.push("c", {"guide_uid": "g2"})
        feed.remove("c", record_id)

        # Other recipients' changes still redeliver the (unchanged) set
        assert deliveries == [[], [record_id], [record_id], []]

    def test_closed_listener_receives_nothing(self, feed):
        deliveries = []
        listener = feed.listen("c", "guide_uid", "g1", deliveries.append)

        listener.close()
        feed.push("c", {"guide_uid": "g1"})

        assert deliveries == [{}]

    def test_changes_made_inside_a_callback_are_queued(self, feed):
        seen = []

        def callback(records):
            seen.append({record_id: record.get("shown") for record_id, record in records.items()})
            unshown = [record_id for record_id, record in records.items() if not record.get("shown")]
            if unshown:
                feed.update_many("c", {record_id: {"shown": True} for record_id in unshown})

        feed.listen("c", "guide_uid", "g1", callback)
        record_id = feed.push("c", {"guide_uid": "g1", "shown": False})

        assert seen == [{}, {record_id: False}, {record_id: True}]

    def test_failing_listener_does_not_stop_others(self, feed):
        deliveries = []

        def broken(records):
            raise RuntimeError("boom")

        feed.listen("c", "guide_uid", "g1", broken)
        feed.listen("c", "guide_uid", "g1", deliveries.append)
        feed.push("c", {"guide_uid": "g1"})

        assert len(deliveries) == 2

    def test_change_queued_while_dispatch_finishes_is_delivered(self, feed):
        deliveries = []
        feed.listen("c", "guide_uid", "g1", lambda records: deliveries.append(sorted(records)))
        writers = []

        def push_from_other_thread():
            # Blocks on the feed lock until the running dispatch lets go of it
            writer = threading.Thread(target=feed.push, args=("c", {"guide_uid": "g1", "n": 2}))
            writers.append(writer)
            writer.start()

        feed._pending = _QueueWithEmptyHook(push_from_other_thread)
        first = feed.push("c", {"guide_uid": "g1", "n": 1})
        writers[0].join(timeout=5)

        assert len(deliveries[-1]) == 2
        assert first in deliveries[-1]
        assert feed._dispatching is False


class TestFirestoreFeed:
    @pytest.fixture
    def client(self):
        return MagicMock()

    def test_push_returns_generated_id(self, client):
        client.collection.return_value.document.return_value.id = "generated"

        record_id = FirestoreFeed(client).push("guide-notifications", {"guide_uid": "g1"})

        assert record_id == "generated"
        client.collection.return_value.document.return_value.set.assert_called_once_with({"guide_uid": "g1"})

    def test_update_missing_document_raises_record_not_found(self, client):
        client.collection.return_value.document.return_value.update.side_effect = gexc.NotFound("gone")

        with pytest.raises(RecordNotFound):
            FirestoreFeed(client).update("c", "x", {"shown": True})

    def test_update_many_commits_one_batch(self, client):
        FirestoreFeed(client).update_many("c", {"a": {"shown": True}, "b": {"shown": True}})

        batch = client.batch.return_value
        assert batch.update.call_count == 2
        batch.commit.assert_called_once_with()

    def test_write_errors_are_wrapped(self, client):
        client.collection.return_value.document.return_value.delete.side_effect = gexc.GoogleCloudError("down")

        with pytest.raises(StorageWriteFailure):
            FirestoreFeed(client).remove("c", "x")

    def test_query_filters_on_field(self, client):
        document = MagicMock()
        document.id = "n1"
        document.to_dict.return_value = {"guide_uid": "g1"}
        where = client.collection.return_value.where
        where.return_value.stream.return_value = [document]

        records = FirestoreFeed(client).query("c", "guide_uid", "g1")

        assert records == {"n1": {"guide_uid": "g1"}}
        condition = where.call_args.kwargs["filter"]
        assert (condition.field_path, condition.op_string, condition.value) == ("guide_uid", "==", "g1")

    def test_query_errors_are_wrapped(self, client):
        client.collection.return_value.where.return_value.stream.side_effect = gexc.GoogleCloudError("down")

        with pytest.raises(StorageReadFailure):
            FirestoreFeed(client).query("c", "guide_uid", "g1")

    def test_listen_maps_snapshots_and_unsubscribes(self, client):
        document = MagicMock()
        document.id = "n1"
        document.to_dict.return_value = {"guide_uid": "g1"}
        query = client.collection.return_value.where.return_value
        deliveries = []

        listener = FirestoreFeed(client).listen("c", "guide_uid", "g1", deliveries.append)
        on_snapshot = query.on_snapshot.call_args.args[0]
        on_snapshot([document], [], None)
        listener.close()

        assert deliveries == [{"n1": {"guide_uid": "g1"}}]
        query.on_snapshot.return_value.unsubscribe.assert_called_once_with()


def test_memory_feed_is_shared_per_process(settings):
    settings.NOTIFICATION_FEED_BACKEND = "memory"

    assert get_feed() is get_feed()
    assert isinstance(get_feed(), InMemoryFeed)


def test_firestore_backend_is_selectable():
    assert isinstance(get_feed("firestore"), FirestoreFeed)


def test_unknown_feed_backend_is_rejected():
    with pytest.raises(ValueError):
        get_feed("kafka")
