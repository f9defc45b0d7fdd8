"""Celery tasks for the notification core.

The refresh cycle that decides when to poll lives outside this project; it
enqueues these tasks whenever a tourist or a guide reloads their bookings.
"""

from __future__ import annotations

import logging

from celery import shared_task
from django.conf import settings

from shared.application.message_bus import MessageBus

from .delivery import build_new_booking_alert, build_status_change_alert
from .events import BookingStatusChanged
from .exceptions import NotificationError, PublishFailure
from .senders import BaseAlertDispatcher, get_alert_dispatcher
from .services import get_booking_repository, get_gateway, get_new_booking_tracker, get_status_tracker

logger = logging.getLogger(__name__)


class StatusChangeAlertHandler:
    """Alerts the tourist about each BookingStatusChanged and remembers what went out"""

    def __init__(self, dispatcher: BaseAlertDispatcher):
        self.dispatcher = dispatcher
        self.alerted: list[str] = []

    def __call__(self, event: BookingStatusChanged) -> None:
        title, body, data = build_status_change_alert(event)
        result = self.dispatcher.send(title, body, data)
        if result.success:
            self.alerted.append(event.booking.id)


@shared_task
def poll_booking_status_changes(user_id: str, push_token: str | None = None) -> dict:
    """Alert a tourist about bookings the guide accepted or declined since the last poll."""
    try:
        bookings = get_booking_repository().list_for_user(user_id)
    except NotificationError as e:
        logger.error(f"Could not load bookings for user {user_id}: {e}")
        return {"success": False, "error": str(e)}

    tracker = get_status_tracker()
    if tracker.initialize(bookings, user_id):
        return {"success": True, "initialized": True, "changes": 0, "alerted": []}

    changes = tracker.detect_status_changes(bookings, user_id)
    handler = StatusChangeAlertHandler(get_alert_dispatcher(push_token))

    bus = MessageBus()
    bus.register_event_handler(BookingStatusChanged, handler)
    bus.publish_events(changes)

    tracker.mark_status_changes_as_notified(handler.alerted, user_id)
    return {"success": True, "initialized": False, "changes": len(changes), "alerted": handler.alerted}


@shared_task
def poll_new_bookings(guide_id: str, push_token: str | None = None, guide_doc_id: str | None = None) -> dict:
    """
    Alert a guide about pending requests they have not seen yet.

    Only bookings whose alert went out are marked notified; the rest are
    picked up again on the next poll.
    """
    try:
        bookings = get_booking_repository().list_for_guide(guide_id, guide_doc_id)
    except NotificationError as e:
        logger.error(f"Could not load bookings for guide {guide_id}: {e}")
        return {"success": False, "error": str(e)}

    tracker = get_new_booking_tracker()
    new_bookings = tracker.detect_new_bookings(bookings, guide_id)
    dispatcher = get_alert_dispatcher(push_token)

    alerted = []
    for booking in new_bookings:
        title, body, data = build_new_booking_alert(booking)
        if dispatcher.send(title, body, data).success:
            alerted.append(booking.id)

    if alerted:
        tracker.mark_notified(alerted, guide_id)

    logger.info(f"Alerted guide {guide_id} about {len(alerted)} of {len(new_bookings)} new bookings")
    return {"success": True, "new_bookings": len(new_bookings), "alerted": alerted}


def _retry_publish(task, error: str | None):
    raise task.retry(
        exc=PublishFailure(error or "Notification was not published"),
        countdown=getattr(settings, "NOTIFICATION_PUBLISH_RETRY_DELAY", 30),
        max_retries=getattr(settings, "NOTIFICATION_PUBLISH_MAX_RETRIES", 3),
    )


@shared_task(bind=True)
def send_booking_request_notification(self, guide_id: str, booking_id: str) -> dict:
    """Publish a booking request to the guide's feed."""
    try:
        booking = get_booking_repository().get(booking_id)
    except NotificationError as e:
        _retry_publish(self, str(e))

    if booking is None:
        logger.warning(f"Booking {booking_id} not found, request notification skipped")
        return {"success": False, "error": f"Booking {booking_id} not found"}

    result = get_gateway().send_booking_request(guide_id, booking)
    if not result.success:
        _retry_publish(self, result.error)
    return result.to_dict()


@shared_task(bind=True)
def send_booking_response_notification(self, user_id: str, booking_id: str, status: str) -> dict:
    """Publish the guide's answer to the tourist's feed."""
    try:
        booking = get_booking_repository().get(booking_id)
    except NotificationError as e:
        _retry_publish(self, str(e))

    if booking is None:
        logger.warning(f"Booking {booking_id} not found, response notification skipped")
        return {"success": False, "error": f"Booking {booking_id} not found"}

    result = get_gateway().send_booking_response(user_id, booking, status)
    if not result.success:
        _retry_publish(self, result.error)
    return result.to_dict()
