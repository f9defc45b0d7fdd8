"""Realtime notification feed backends.

The feed is a partitioned, appendable log (one collection per audience).
Listeners are filtered by one indexed field and receive the full matching
set of records on every change, never a diff.
"""

from __future__ import annotations

import copy
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from collections import defaultdict, deque
from typing import Any, Callable, Dict

from django.conf import settings
from google.cloud import exceptions as gexc
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from .exceptions import RecordNotFound, StorageReadFailure, StorageWriteFailure

logger = logging.getLogger(__name__)

Records = Dict[str, Dict[str, Any]]
FeedCallback = Callable[[Records], None]


class FeedListener(ABC):
    """Handle of an open feed subscription"""

    @abstractmethod
    def close(self) -> None:
        pass


class RealtimeFeed(ABC):
    """Appendable, field-filtered, subscribable record log"""

    @abstractmethod
    def push(self, collection: str, record: Dict[str, Any]) -> str:
        """Append a record under a generated id and return the id"""

    @abstractmethod
    def update(self, collection: str, record_id: str, fields: Dict[str, Any]) -> None:
        """Field-level update; RecordNotFound when the record is absent"""

    @abstractmethod
    def update_many(self, collection: str, updates: Dict[str, Dict[str, Any]]) -> None:
        """Apply several field-level updates as one write"""

    @abstractmethod
    def remove(self, collection: str, record_id: str) -> None:
        """Delete a record; absence is not an error"""

    @abstractmethod
    def query(self, collection: str, field: str, value: Any) -> Records:
        """Current records whose `field` equals `value`"""

    @abstractmethod
    def listen(self, collection: str, field: str, value: Any, callback: FeedCallback) -> FeedListener:
        """Deliver the matching set now and after every change until closed"""


class _MemoryListener(FeedListener):
    def __init__(self, feed: 'InMemoryFeed', collection: str, field: str, value: Any, callback: FeedCallback):
        self.feed = feed
        self.collection = collection
        self.field = field
        self.value = value
        self.callback = callback
        self.active = True

    def close(self) -> None:
        self.feed._detach(self)


class InMemoryFeed(RealtimeFeed):
    """
    Process-local feed for development and tests.

    Deliveries are serialized: a change made from inside a listener callback
    is queued and delivered after that callback returns, the way a single
    event loop would.
    """

    def __init__(self):
        self._collections: Dict[str, Records] = defaultdict(dict)
        self._listeners: list[_MemoryListener] = []
        self._pending: deque[_MemoryListener] = deque()
        self._dispatching = False
        self._lock = threading.RLock()

    def push(self, collection: str, record: Dict[str, Any]) -> str:
        record_id = uuid.uuid4().hex
        with self._lock:
            self._collections[collection][record_id] = copy.deepcopy(record)
        self._notify(collection)
        return record_id

    def update(self, collection: str, record_id: str, fields: Dict[str, Any]) -> None:
        self.update_many(collection, {record_id: fields})

    def update_many(self, collection: str, updates: Dict[str, Dict[str, Any]]) -> None:
        if not updates:
            return
        with self._lock:
            records = self._collections[collection]
            missing = [record_id for record_id in updates if record_id not in records]
            if missing:
                raise RecordNotFound(f"{collection}: no records {', '.join(missing)}")
            for record_id, fields in updates.items():
                records[record_id].update(copy.deepcopy(fields))
        self._notify(collection)

    def remove(self, collection: str, record_id: str) -> None:
        with self._lock:
            removed = self._collections[collection].pop(record_id, None)
        if removed is not None:
            self._notify(collection)

    def query(self, collection: str, field: str, value: Any) -> Records:
        with self._lock:
            return {
                record_id: copy.deepcopy(record)
                for record_id, record in self._collections[collection].items()
                if record.get(field) == value
            }

    def listen(self, collection: str, field: str, value: Any, callback: FeedCallback) -> FeedListener:
        listener = _MemoryListener(self, collection, field, value, callback)
        with self._lock:
            self._listeners.append(listener)
            self._pending.append(listener)
        self._drain()
        return listener

    def _detach(self, listener: _MemoryListener) -> None:
        with self._lock:
            listener.active = False
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _notify(self, collection: str) -> None:
        with self._lock:
            for listener in self._listeners:
                if listener.collection == collection and listener not in self._pending:
                    self._pending.append(listener)
        self._drain()

    def _drain(self) -> None:
        with self._lock:
            if self._dispatching:
                return
            self._dispatching = True
        try:
            while True:
                with self._lock:
                    if not self._pending:
                        # Cleared under the same lock as the empty check
                        self._dispatching = False
                        return
                    listener = self._pending.popleft()
                    if not listener.active:
                        continue
                    records = self.query(listener.collection, listener.field, listener.value)
                try:
                    listener.callback(records)
                except Exception as e:  # noqa: BLE001 - one listener must not stop the others
                    logger.error(f"Feed listener on {listener.collection} failed: {e}", exc_info=True)
        except BaseException:
            with self._lock:
                self._dispatching = False
            raise


class _FirestoreListener(FeedListener):
    def __init__(self, watch):
        self.watch = watch

    def close(self) -> None:
        self.watch.unsubscribe()


class FirestoreFeed(RealtimeFeed):
    """Feed stored in Firestore collections, watched with on_snapshot"""

    def __init__(self, client: firestore.Client | None = None):
        self._client = client

    @property
    def client(self) -> firestore.Client:
        if self._client is None:
            from guide_booking.bookings.repository import get_firestore_client

            self._client = get_firestore_client()
        return self._client

    def _filtered(self, collection: str, field: str, value: Any):
        return self.client.collection(collection).where(filter=FieldFilter(field, "==", value))

    def push(self, collection: str, record: Dict[str, Any]) -> str:
        try:
            ref = self.client.collection(collection).document()
            ref.set(record)
        except gexc.GoogleCloudError as err:
            raise StorageWriteFailure(f"Firestore error appending to {collection}: {err}") from err
        return ref.id

    def update(self, collection: str, record_id: str, fields: Dict[str, Any]) -> None:
        try:
            self.client.collection(collection).document(record_id).update(fields)
        except gexc.NotFound as err:
            raise RecordNotFound(f"{collection}/{record_id} does not exist") from err
        except gexc.GoogleCloudError as err:
            raise StorageWriteFailure(f"Firestore error updating {collection}/{record_id}: {err}") from err

    def update_many(self, collection: str, updates: Dict[str, Dict[str, Any]]) -> None:
        if not updates:
            return
        batch = self.client.batch()
        for record_id, fields in updates.items():
            batch.update(self.client.collection(collection).document(record_id), fields)
        try:
            batch.commit()
        except gexc.NotFound as err:
            raise RecordNotFound(f"{collection}: batch update hit a missing record") from err
        except gexc.GoogleCloudError as err:
            raise StorageWriteFailure(f"Firestore error updating {collection}: {err}") from err

    def remove(self, collection: str, record_id: str) -> None:
        try:
            self.client.collection(collection).document(record_id).delete()
        except gexc.GoogleCloudError as err:
            raise StorageWriteFailure(f"Firestore error deleting {collection}/{record_id}: {err}") from err

    def query(self, collection: str, field: str, value: Any) -> Records:
        try:
            return {doc.id: doc.to_dict() or {} for doc in self._filtered(collection, field, value).stream()}
        except gexc.GoogleCloudError as err:
            raise StorageReadFailure(f"Firestore error reading {collection}: {err}") from err

    def listen(self, collection: str, field: str, value: Any, callback: FeedCallback) -> FeedListener:
        def on_snapshot(docs, changes, read_time):
            callback({doc.id: doc.to_dict() or {} for doc in docs})

        try:
            watch = self._filtered(collection, field, value).on_snapshot(on_snapshot)
        except gexc.GoogleCloudError as err:
            raise StorageReadFailure(f"Firestore error watching {collection}: {err}") from err
        return _FirestoreListener(watch)


_memory_feeds: Dict[str, InMemoryFeed] = {}
_memory_feeds_lock = threading.Lock()


def get_feed(backend: str | None = None) -> RealtimeFeed:
    """
    Feed configured by NOTIFICATION_FEED_BACKEND.

    The memory feed is shared per process so publishers and subscribers see
    the same records, like Django's locmem cache.
    """
    backend = backend or getattr(settings, "NOTIFICATION_FEED_BACKEND", "memory")
    if backend == "firestore":
        return FirestoreFeed()
    if backend == "memory":
        with _memory_feeds_lock:
            return _memory_feeds.setdefault("default", InMemoryFeed())
    raise ValueError(f"Unknown notification feed backend: {backend}")
