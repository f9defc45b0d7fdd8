"""Notification records and their typed payloads.

A feed record carries a `type` tag and an event-specific `data` mapping.
Each known tag has its own payload class; anything else is kept as an
UnknownPayload so new record types written by other clients still flow
through to the UI unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Mapping, Type

from django.conf import settings

from shared.domain.value_objects import Money


class Audience(Enum):
    """Recipient class of a notification record"""
    GUIDE = 'guide'
    USER = 'user'

    @property
    def recipient_key(self) -> str:
        return f"{self.value}_uid"

    @property
    def collection(self) -> str:
        if self is Audience.GUIDE:
            return getattr(settings, "GUIDE_NOTIFICATIONS_COLLECTION", "guide-notifications")
        return getattr(settings, "USER_NOTIFICATIONS_COLLECTION", "user-notifications")

    @classmethod
    def parse(cls, value: 'Audience | str') -> 'Audience':
        if isinstance(value, Audience):
            return value
        return cls(str(value).lower())


class NotificationType(Enum):
    BOOKING_REQUEST = 'booking_request'
    BOOKING_CONFIRMED = 'booking_confirmed'
    BOOKING_CANCELLED = 'booking_cancelled'
    BOOKING_CANCELED = 'booking_canceled'
    BOOKING_REJECTED = 'booking_rejected'


# Types a tourist may ever see; booking_request is guide-only
USER_RESPONSE_TYPES = frozenset({
    NotificationType.BOOKING_CONFIRMED.value,
    NotificationType.BOOKING_CANCELLED.value,
    NotificationType.BOOKING_CANCELED.value,
    NotificationType.BOOKING_REJECTED.value,
})


def make_json_safe(value: Any) -> Any:
    """Reduce a payload to values the feed and push services accept"""
    if isinstance(value, dict):
        return {str(key): make_json_safe(val) for key, val in value.items()}

    if isinstance(value, (list, tuple, set)):
        return [make_json_safe(item) for item in value]

    if isinstance(value, Money):
        return value.to_primitive()

    if isinstance(value, (datetime, date)):
        return value.isoformat()

    if isinstance(value, Decimal):
        return float(value)

    if isinstance(value, Enum):
        return value.value

    if isinstance(value, (str, int, float, bool)) or value is None:
        return value

    return str(value)


@dataclass(frozen=True)
class NotificationPayload:
    """Base for the `data` part of a record"""

    def to_dict(self) -> Dict[str, Any]:
        raise NotImplementedError

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'NotificationPayload':
        raise NotImplementedError


@dataclass(frozen=True)
class BookingRequestPayload(NotificationPayload):
    """booking_request: a tourist asked a guide for a tour"""
    booking_id: str
    user_name: str
    location: str
    dates: str
    guests: int | None = None
    total_price: int | float | None = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'bookingId': self.booking_id,
            'userName': self.user_name,
            'location': self.location,
            'dates': self.dates,
            'guests': self.guests,
            'totalPrice': self.total_price,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'BookingRequestPayload':
        return cls(
            booking_id=str(data.get('bookingId') or ''),
            user_name=str(data.get('userName') or ''),
            location=str(data.get('location') or ''),
            dates=str(data.get('dates') or ''),
            guests=data.get('guests'),
            total_price=data.get('totalPrice'),
        )


@dataclass(frozen=True)
class BookingResponsePayload(NotificationPayload):
    """booking_confirmed / booking_cancelled / ...: the guide answered"""
    booking_id: str
    status: str
    guide_name: str
    location: str
    dates: str
    total_price: int | float | None = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'bookingId': self.booking_id,
            'status': self.status,
            'guideName': self.guide_name,
            'location': self.location,
            'dates': self.dates,
            'totalPrice': self.total_price,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'BookingResponsePayload':
        return cls(
            booking_id=str(data.get('bookingId') or ''),
            status=str(data.get('status') or ''),
            guide_name=str(data.get('guideName') or ''),
            location=str(data.get('location') or ''),
            dates=str(data.get('dates') or ''),
            total_price=data.get('totalPrice'),
        )


@dataclass(frozen=True)
class UnknownPayload(NotificationPayload):
    """Fallback for types this version does not know"""
    fields: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.fields)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'UnknownPayload':
        return cls(fields=dict(data))


PAYLOAD_TYPES: Dict[str, Type[NotificationPayload]] = {
    NotificationType.BOOKING_REQUEST.value: BookingRequestPayload,
    NotificationType.BOOKING_CONFIRMED.value: BookingResponsePayload,
    NotificationType.BOOKING_CANCELLED.value: BookingResponsePayload,
    NotificationType.BOOKING_CANCELED.value: BookingResponsePayload,
    NotificationType.BOOKING_REJECTED.value: BookingResponsePayload,
}


def parse_payload(notification_type: str, data: Any) -> NotificationPayload:
    if not isinstance(data, Mapping):
        data = {}
    payload_class = PAYLOAD_TYPES.get(notification_type, UnknownPayload)
    return payload_class.from_dict(data)


@dataclass(frozen=True)
class Notification:
    """Content of a record before it is published"""
    type: str
    title: str
    message: str
    payload: NotificationPayload

    def to_feed(self, audience: Audience, recipient_id: str, timestamp: int) -> Dict[str, Any]:
        return {
            audience.recipient_key: recipient_id,
            'type': self.type,
            'title': self.title,
            'message': self.message,
            'data': make_json_safe(self.payload.to_dict()),
            'shown': False,
            'timestamp': timestamp,
        }


@dataclass(frozen=True)
class NotificationRecord:
    """A record as read back from the feed"""
    id: str
    audience: Audience
    recipient_id: str
    type: str
    title: str
    message: str
    payload: NotificationPayload
    shown: bool = False
    timestamp: int = 0
    shown_at: str | None = None

    @classmethod
    def from_feed(cls, audience: Audience, record_id: str, raw: Mapping[str, Any]) -> 'NotificationRecord':
        notification_type = str(raw.get('type') or '')
        timestamp = raw.get('timestamp')
        return cls(
            id=str(record_id),
            audience=audience,
            recipient_id=str(raw.get(audience.recipient_key) or ''),
            type=notification_type,
            title=str(raw.get('title') or ''),
            message=str(raw.get('message') or ''),
            payload=parse_payload(notification_type, raw.get('data')),
            shown=bool(raw.get('shown', False)),
            timestamp=timestamp if isinstance(timestamp, (int, float)) and not isinstance(timestamp, bool) else 0,
            shown_at=raw.get('shownAt'),
        )

    @property
    def data(self) -> Dict[str, Any]:
        return self.payload.to_dict()

    def as_shown(self, shown_at: str) -> 'NotificationRecord':
        return replace(self, shown=True, shown_at=shown_at)

    def to_dict(self) -> Dict[str, Any]:
        """Feed-shaped mapping with the id, for UI display"""
        data = {
            'id': self.id,
            self.audience.recipient_key: self.recipient_id,
            'type': self.type,
            'title': self.title,
            'message': self.message,
            'data': self.data,
            'shown': self.shown,
            'timestamp': self.timestamp,
        }
        if self.shown_at:
            data['shownAt'] = self.shown_at
        return data
