"""Booking trackers.

Compare the current booking snapshot with notification history and report
only what the user has not been told about yet. Both trackers are boundary
objects: storage failures are logged and turned into empty results.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, List, Mapping, Union

from guide_booking.bookings.domain import Booking, BookingStatus, RESOLVED_STATUSES

from .events import BookingStatusChanged, ChangeType
from .exceptions import NotificationError
from .history import NotificationHistoryStore

logger = logging.getLogger(__name__)

BookingLike = Union[Booking, Mapping[str, object]]


def _coerce_all(bookings: Iterable[BookingLike]) -> List[Booking]:
    return [Booking.coerce(booking) for booking in bookings]


class BookingStatusTracker:
    """
    Tourist side: pending bookings that the guide has since accepted or
    declined.

    History holds {bookingId: lastKnownStatus}. Detection advances it, so
    every transition is reported once.
    """

    def __init__(self, store: NotificationHistoryStore):
        self.store = store

    def detect_status_changes(self, bookings: Iterable[BookingLike], user_id: str) -> List[BookingStatusChanged]:
        try:
            snapshot = _coerce_all(bookings)
            last_statuses = self.store.get(user_id)

            changes = []
            for booking in snapshot:
                last_status = last_statuses.get(booking.id)

                # Only pending -> approved/rejected is news; first sight is a baseline
                if last_status == BookingStatus.PENDING.value and booking.status in RESOLVED_STATUSES:
                    changes.append(
                        BookingStatusChanged(
                            booking=booking,
                            previous_status=last_status,
                            new_status=booking.status,
                            change_type=ChangeType.for_status(booking.status),
                        )
                    )

            self.store.set(user_id, {booking.id: booking.status for booking in snapshot})
        except (NotificationError, ValueError) as e:
            logger.error(f"Error checking for booking status changes for user {user_id}: {e}", exc_info=True)
            return []

        if changes:
            logger.info(f"Detected {len(changes)} booking status changes for user {user_id}")
        return changes

    def initialize(self, bookings: Iterable[BookingLike], user_id: str) -> bool:
        """
        Seed history on first load without reporting anything.

        Returns True when history was created, False when it already existed
        or could not be written.
        """
        try:
            if self.store.exists(user_id):
                return False
            snapshot = _coerce_all(bookings)
            self.store.set(user_id, {booking.id: booking.status for booking in snapshot})
        except (NotificationError, ValueError) as e:
            logger.error(f"Error initializing status tracking for user {user_id}: {e}", exc_info=True)
            return False

        logger.info(f"Initialized status tracking for {len(snapshot)} bookings for user {user_id}")
        return True

    def mark_status_changes_as_notified(self, booking_ids: Iterable[str], user_id: str) -> None:
        # History already advanced in detect_status_changes
        booking_ids = list(booking_ids)
        logger.info(f"Marked {len(booking_ids)} booking status changes as notified for user {user_id}")

    def clear_notification_history(self, user_id: str) -> bool:
        try:
            self.store.clear(user_id)
        except NotificationError as e:
            logger.error(f"Error clearing booking status history for user {user_id}: {e}")
            return False
        return True


class NewBookingTracker:
    """
    Guide side: pending booking requests the guide has not been alerted about.

    History holds {bookingId: notifiedAt}. Detection is read-only; callers
    acknowledge with mark_notified once the alert went out, so a failed alert
    is retried on the next refresh.
    """

    def __init__(self, store: NotificationHistoryStore):
        self.store = store

    def detect_new_bookings(self, bookings: Iterable[BookingLike], guide_id: str) -> List[Booking]:
        try:
            snapshot = _coerce_all(bookings)
            notified = self.store.get(guide_id)
        except (NotificationError, ValueError) as e:
            logger.error(f"Error checking for new bookings for guide {guide_id}: {e}", exc_info=True)
            return []

        pending = [booking for booking in snapshot if booking.is_pending]
        new_bookings = [booking for booking in pending if booking.id not in notified]

        logger.info(
            "Checking for new bookings",
            extra={
                "guide_id": guide_id,
                "total_bookings": len(snapshot),
                "pending_bookings": len(pending),
                "notified_bookings": len(notified),
                "new_bookings": len(new_bookings),
            },
        )
        return new_bookings

    def mark_notified(self, booking_ids: Iterable[str], guide_id: str) -> bool:
        booking_ids = [str(booking_id) for booking_id in booking_ids]
        try:
            notified = self.store.get(guide_id)
            notified_at = datetime.now(timezone.utc).isoformat()
            for booking_id in booking_ids:
                notified.setdefault(booking_id, notified_at)
            self.store.set(guide_id, notified)
        except NotificationError as e:
            logger.error(f"Error marking bookings as notified for guide {guide_id}: {e}", exc_info=True)
            return False

        logger.info(f"Marked bookings as notified for guide {guide_id}: {booking_ids}")
        return True

    def get_notified_bookings(self, guide_id: str) -> List[str]:
        try:
            return list(self.store.get(guide_id))
        except NotificationError as e:
            logger.error(f"Error getting notified bookings for guide {guide_id}: {e}")
            return []

    def clear_notification_history(self, guide_id: str) -> bool:
        try:
            self.store.clear(guide_id)
        except NotificationError as e:
            logger.error(f"Error clearing new booking history for guide {guide_id}: {e}")
            return False
        return True
