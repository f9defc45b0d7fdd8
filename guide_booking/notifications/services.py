"""Builds the notification core from settings.

Every call returns fresh objects; callers that need to share one (a
subscription and the code that later unsubscribes it) keep the instance.
"""

from __future__ import annotations

from django.conf import settings

from guide_booking.bookings.repository import FirestoreBookingRepository

from .feed import get_feed
from .gateway import RealtimeNotificationGateway
from .history import NotificationHistoryStore
from .senders import get_alert_dispatcher
from .trackers import BookingStatusTracker, NewBookingTracker


def get_status_tracker() -> BookingStatusTracker:
    prefix = getattr(settings, "BOOKING_STATUS_HISTORY_PREFIX", "lastNotifiedBookingStatuses")
    return BookingStatusTracker(NotificationHistoryStore(prefix))


def get_new_booking_tracker() -> NewBookingTracker:
    prefix = getattr(settings, "NEW_BOOKING_HISTORY_PREFIX", "new_bookings_notified")
    return NewBookingTracker(NotificationHistoryStore(prefix))


def get_gateway(push_token: str | None = None) -> RealtimeNotificationGateway:
    return RealtimeNotificationGateway(get_feed(), get_alert_dispatcher(push_token))


def get_booking_repository() -> FirestoreBookingRepository:
    return FirestoreBookingRepository()
