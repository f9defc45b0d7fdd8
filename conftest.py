import pytest

from guide_booking.notifications.feed import InMemoryFeed
from guide_booking.notifications.history import KeyValueBackend, NotificationHistoryStore
from guide_booking.notifications.senders import BaseAlertDispatcher


class DictBackend(KeyValueBackend):
    def __init__(self):
        self.values = {}

    def get(self, key):
        return self.values.get(key)

    def set(self, key, value):
        self.values[key] = value

    def remove(self, key):
        self.values.pop(key, None)


class RecordingDispatcher(BaseAlertDispatcher):
    """Keeps shown alerts in memory; fail=True makes every alert fail"""

    def __init__(self, fail=False):
        self.fail = fail
        self.shown = []

    def request_permission(self):
        return not self.fail

    def show(self, title, body, data=None):
        if self.fail:
            raise RuntimeError("alert surface unavailable")
        self.shown.append({"title": title, "body": body, "data": data})
        return f"alert-{len(self.shown)}"


@pytest.fixture
def kv_backend():
    return DictBackend()


@pytest.fixture
def history_store(kv_backend):
    return NotificationHistoryStore("test_history", backend=kv_backend)


@pytest.fixture
def feed():
    return InMemoryFeed()


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def failing_dispatcher():
    return RecordingDispatcher(fail=True)
