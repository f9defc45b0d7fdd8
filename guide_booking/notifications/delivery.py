"""Texts of booking notifications shared by the feed gateway and local alerts."""

from guide_booking.bookings.domain import APPROVED_STATUSES, Booking, BookingStatus

from .events import BookingStatusChanged, ChangeType
from .payloads import BookingRequestPayload, BookingResponsePayload, Notification, NotificationType


def _price_text(booking: Booking) -> str:
    return str(booking.total_price) if booking.total_price else "৳0"


def _price_value(booking: Booking):
    return booking.total_price.to_primitive() if booking.total_price else None


def build_booking_request(booking: Booking) -> Notification:
    """Request sent to the guide when a tourist books a tour."""
    dates = booking.dates.display()
    return Notification(
        type=NotificationType.BOOKING_REQUEST.value,
        title="🎯 New Booking Request",
        message=f"{booking.user_name} wants to book you for {booking.location} on {dates}",
        payload=BookingRequestPayload(
            booking_id=booking.id,
            user_name=booking.user_name,
            location=booking.location,
            dates=dates,
            guests=booking.guests,
            total_price=_price_value(booking),
        ),
    )


def build_booking_response(booking: Booking, status: str) -> Notification:
    """Answer sent to the tourist once the guide confirmed or cancelled."""
    confirmed = status in APPROVED_STATUSES
    if confirmed:
        status = BookingStatus.CONFIRMED.value
    emoji = "🎉" if confirmed else "❌"
    status_text = "Confirmed" if confirmed else "Cancelled"
    dates = booking.dates.display()

    return Notification(
        type=f"booking_{status}",
        title=f"{emoji} Booking {status_text}",
        message=(
            f"{booking.guide_name} has {status} your booking for {booking.location} "
            f"on {dates}. Total: {_price_text(booking)}"
        ),
        payload=BookingResponsePayload(
            booking_id=booking.id,
            status=status,
            guide_name=booking.guide_name,
            location=booking.location,
            dates=dates,
            total_price=_price_value(booking),
        ),
    )


def build_status_change_alert(event: BookingStatusChanged) -> tuple[str, str, dict]:
    """(title, body, data) for a tourist's local alert."""
    booking = event.booking
    guide = booking.guide_name or "Your guide"
    if event.change_type is ChangeType.APPROVED:
        title = "🎉 Booking Approved"
        body = f"{guide} approved your booking for {booking.location} on {booking.dates.display()}."
    else:
        title = "❌ Booking Rejected"
        body = f"{guide} declined your booking for {booking.location} on {booking.dates.display()}."

    data = {
        "bookingId": booking.id,
        "previousStatus": event.previous_status,
        "newStatus": event.new_status,
        "statusChangeType": event.change_type.value,
    }
    return title, body, data


def build_new_booking_alert(booking: Booking) -> tuple[str, str, dict]:
    """(title, body, data) for a guide's local alert about a pending request."""
    notification = build_booking_request(booking)
    return notification.title, notification.message, notification.payload.to_dict()
