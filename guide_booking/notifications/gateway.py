"""Realtime notification gateway.

Publishes notification records to the audience feeds and turns unshown
records into local alerts for their recipient. A record moves from
created (shown=False) to delivered (shown=True) exactly once; the gateway
never alerts for a record that was already shown when it was read.

Delivery is split in two explicit phases, partition_unshown() and
mark_shown(), which deliver() and subscribe() run together. Records are
marked before alerting: an alert that fails to display is not retried,
so a recipient never sees the same alert twice.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Tuple

from django.conf import settings

from guide_booking.bookings.domain import Booking

from .delivery import build_booking_request, build_booking_response
from .exceptions import NotificationError, RecordNotFound
from .feed import FeedListener, RealtimeFeed
from .payloads import USER_RESPONSE_TYPES, Audience, Notification, NotificationRecord
from .senders import BaseAlertDispatcher

logger = logging.getLogger(__name__)

UpdateCallback = Callable[[List[NotificationRecord]], None]


@dataclass
class OperationResult:
    success: bool
    error: str | None = None
    notification_id: str | None = None

    def to_dict(self) -> dict:
        data = {"success": self.success}
        if self.notification_id:
            data["notificationId"] = self.notification_id
        if not self.success:
            data["error"] = self.error
        return data


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def sort_newest_first(records: Iterable[NotificationRecord]) -> List[NotificationRecord]:
    return sorted(records, key=lambda record: record.timestamp, reverse=True)


class Subscription:
    """Open listener for one recipient; unsubscribe() is final"""

    def __init__(self, gateway: 'RealtimeNotificationGateway', recipient_id: str, audience: Audience,
                 on_update: UpdateCallback | None):
        self.gateway = gateway
        self.recipient_id = recipient_id
        self.audience = audience
        self.on_update = on_update
        self.listener: FeedListener | None = None
        self.active = True
        self.lock = gateway._lock_for(audience, recipient_id)

    def handle(self, raw_records: Dict[str, dict]) -> None:
        with self.lock:
            if not self.active:
                return
            try:
                records = self.gateway.deliver(self.audience, self.gateway._parse(self.audience, raw_records))
                if self.on_update:
                    self.on_update(records)
            except Exception as e:  # noqa: BLE001 - runs on the feed's listener thread
                logger.error(
                    f"Error handling {self.audience.value} notifications of {self.recipient_id}: {e}",
                    exc_info=True,
                )

    def unsubscribe(self) -> None:
        # Waits for an in-flight delivery, so nothing fires after this returns
        with self.lock:
            self.active = False
        if self.listener is not None:
            try:
                self.listener.close()
            except Exception as e:  # noqa: BLE001 - connection teardown is best effort
                logger.warning(f"Error closing {self.audience.value} listener for {self.recipient_id}: {e}")
            self.listener = None

    __call__ = unsubscribe


class RealtimeNotificationGateway:
    """
    Boundary between the app and the notification feed.

    Every public method catches feed failures and returns a result value;
    nothing raises past this class.
    """

    def __init__(self, feed: RealtimeFeed, dispatcher: BaseAlertDispatcher,
                 clock: Callable[[], float] | None = None):
        self.feed = feed
        self.dispatcher = dispatcher
        self.clock = clock or time.time
        self._last_timestamp = 0
        self._timestamp_lock = threading.Lock()
        self._locks: Dict[Tuple[Audience, str], threading.RLock] = defaultdict(threading.RLock)
        self._locks_guard = threading.Lock()

    # ------------------------------------------------------------------ publish

    def _next_timestamp(self) -> int:
        with self._timestamp_lock:
            timestamp = max(int(self.clock() * 1000), self._last_timestamp + 1)
            self._last_timestamp = timestamp
            return timestamp

    def publish(self, recipient_id: str, audience: Audience | str, notification: Notification) -> OperationResult:
        try:
            audience = Audience.parse(audience)
            if not recipient_id:
                raise ValueError(f"{audience.recipient_key} is empty")
            record = notification.to_feed(audience, recipient_id, self._next_timestamp())
            notification_id = self.feed.push(audience.collection, record)
        except (NotificationError, ValueError) as e:
            logger.error(f"Error publishing {notification.type} notification to {recipient_id}: {e}", exc_info=True)
            return OperationResult(success=False, error=str(e))

        logger.info(
            f"Notification {notification_id} ({notification.type}) saved to {audience.collection}",
        )
        return OperationResult(success=True, notification_id=notification_id)

    def send_booking_request(self, guide_id: str, booking: Booking) -> OperationResult:
        """Tell a guide about a new booking request"""
        return self.publish(guide_id, Audience.GUIDE, build_booking_request(booking))

    def send_booking_response(self, user_id: str, booking: Booking, status: str) -> OperationResult:
        """Tell a tourist the guide confirmed or cancelled their booking"""
        return self.publish(user_id, Audience.USER, build_booking_response(booking, status))

    # ----------------------------------------------------------------- delivery

    def _parse(self, audience: Audience, raw_records: Dict[str, dict]) -> List[NotificationRecord]:
        records = [
            NotificationRecord.from_feed(audience, record_id, raw)
            for record_id, raw in (raw_records or {}).items()
        ]
        if audience is Audience.USER:
            records = [record for record in records if self._is_user_visible(record)]
        return records

    @staticmethod
    def _is_user_visible(record: NotificationRecord) -> bool:
        if record.type not in USER_RESPONSE_TYPES:
            logger.debug(f"Filtered out user notification {record.id} with type {record.type!r}")
            return False
        return True

    @staticmethod
    def partition_unshown(records: Iterable[NotificationRecord]) -> Tuple[List[NotificationRecord], List[NotificationRecord]]:
        """(unshown, already shown)"""
        unshown, shown = [], []
        for record in records:
            (shown if record.shown else unshown).append(record)
        return unshown, shown

    def mark_shown(self, audience: Audience | str, notification_ids: Iterable[str],
                   shown_at: str | None = None) -> bool:
        notification_ids = list(notification_ids)
        if not notification_ids:
            return True
        shown_at = shown_at or _now_iso()
        try:
            audience = Audience.parse(audience)
            self.feed.update_many(
                audience.collection,
                {notification_id: {"shown": True, "shownAt": shown_at} for notification_id in notification_ids},
            )
        except (NotificationError, ValueError) as e:
            logger.error(f"Error marking notifications {notification_ids} as shown: {e}", exc_info=True)
            return False
        return True

    def deliver(self, audience: Audience | str, records: Iterable[NotificationRecord]) -> List[NotificationRecord]:
        """
        Process one snapshot: mark unshown records shown, alert for them,
        and return every record newest first.
        """
        audience = Audience.parse(audience)
        unshown, shown = self.partition_unshown(records)

        shown_at = _now_iso()
        if unshown and self.mark_shown(audience, [record.id for record in unshown], shown_at):
            delivered = [record.as_shown(shown_at) for record in unshown]
            for record in delivered:
                result = self.dispatcher.send(record.title, record.message, record.data)
                if not result.success:
                    logger.warning(f"Notification {record.id} observed but alert failed: {result.error}")
            unshown = delivered
        elif unshown:
            logger.warning(f"Skipping alerts for {len(unshown)} {audience.value} notifications until marked shown")

        return sort_newest_first(unshown + shown)

    def _lock_for(self, audience: Audience, recipient_id: str) -> threading.RLock:
        with self._locks_guard:
            return self._locks[(audience, recipient_id)]

    def subscribe(self, recipient_id: str, audience: Audience | str,
                  on_update: UpdateCallback | None = None) -> Subscription | None:
        """
        Listen to one recipient's records. on_update receives the full list
        (newest first, [] when there is nothing) after every change.
        """
        try:
            audience = Audience.parse(audience)
            subscription = Subscription(self, recipient_id, audience, on_update)
            subscription.listener = self.feed.listen(
                audience.collection, audience.recipient_key, recipient_id, subscription.handle
            )
        except (NotificationError, ValueError) as e:
            logger.error(f"Error listening for {audience} notifications of {recipient_id}: {e}", exc_info=True)
            return None

        if not subscription.active:
            # Unsubscribed from inside the first delivery
            subscription.unsubscribe()
        logger.info(f"Listening for {audience.value} notifications of {recipient_id}")
        return subscription

    # --------------------------------------------------------------- management

    def get_notifications(self, recipient_id: str, audience: Audience | str) -> List[NotificationRecord]:
        """One-shot read for display; never marks or alerts"""
        try:
            audience = Audience.parse(audience)
            raw_records = self.feed.query(audience.collection, audience.recipient_key, recipient_id)
        except (NotificationError, ValueError) as e:
            logger.error(f"Error getting {audience} notifications of {recipient_id}: {e}")
            return []
        return sort_newest_first(self._parse(audience, raw_records))

    def mark_read(self, notification_id: str, audience: Audience | str = Audience.USER) -> OperationResult:
        try:
            audience = Audience.parse(audience)
            self.feed.update(audience.collection, notification_id, {"shown": True, "shownAt": _now_iso()})
        except RecordNotFound as e:
            logger.warning(f"Cannot mark notification {notification_id} as read: {e}")
            return OperationResult(success=False, error=f"Notification {notification_id} not found")
        except (NotificationError, ValueError) as e:
            logger.error(f"Error marking notification {notification_id} as read: {e}")
            return OperationResult(success=False, error=str(e))

        logger.info(f"Notification {notification_id} marked as read")
        return OperationResult(success=True, notification_id=notification_id)

    def delete_record(self, notification_id: str, audience: Audience | str = Audience.USER) -> OperationResult:
        try:
            audience = Audience.parse(audience)
            self.feed.remove(audience.collection, notification_id)
        except (NotificationError, ValueError) as e:
            logger.error(f"Error deleting notification {notification_id}: {e}")
            return OperationResult(success=False, error=str(e))

        logger.info(f"Notification {notification_id} deleted")
        return OperationResult(success=True, notification_id=notification_id)

    def check_connection(self) -> OperationResult:
        """Write and remove a probe record to verify the feed is reachable"""
        collection = getattr(settings, "CONNECTION_TEST_COLLECTION", "connection-test")
        try:
            probe_id = self.feed.push(
                collection,
                {"timestamp": self._next_timestamp(), "message": "Connection test successful"},
            )
            self.feed.remove(collection, probe_id)
        except NotificationError as e:
            logger.error(f"Feed connection test failed: {e}")
            return OperationResult(success=False, error=str(e))

        logger.info("Feed connection test successful")
        return OperationResult(success=True)
