"""
Booking Domain

Read-only snapshot of a tour booking as the document store reports it:
- BookingStatus: known status values (the store may report others)
- Booking: normalized snapshot used by the notification trackers

Normalization happens once, here, at the store boundary: legacy `date`
vs `dates`, `guideLocation` vs `location`, raw price numbers vs Money.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

from shared.domain.value_objects import Money, TravelDates

logger = logging.getLogger(__name__)


class BookingStatus(Enum):
    """
    Booking statuses

    Intended flow:
    - PENDING -> CONFIRMED (guide accepted; some clients write ACCEPTED)
    - PENDING -> CANCELLED (guide declined or tourist cancelled)
    """
    PENDING = 'pending'
    CONFIRMED = 'confirmed'
    ACCEPTED = 'accepted'      # Synonym of CONFIRMED written by older clients
    CANCELLED = 'cancelled'


APPROVED_STATUSES = frozenset({BookingStatus.CONFIRMED.value, BookingStatus.ACCEPTED.value})
RESOLVED_STATUSES = APPROVED_STATUSES | {BookingStatus.CANCELLED.value}


def _optional_money(value: Any, field_name: str, booking_id: str) -> Money | None:
    if value is None or value == '':
        return None
    try:
        return Money.parse(value)
    except ValueError:
        logger.warning(f"Booking {booking_id}: ignoring invalid {field_name} {value!r}")
        return None


def _optional_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class Booking:
    """
    Booking snapshot

    Identity is `id`, stable across fetches. `status` is the raw string so
    that values outside BookingStatus never break a refresh.
    """
    id: str
    status: str
    user_id: str = ''
    guide_id: str = ''
    user_name: str = ''
    guide_name: str = ''
    location: str = ''
    dates: TravelDates = field(default_factory=lambda: TravelDates.from_fields())
    guests: int | None = None
    total_price: Money | None = None
    price_per_day: Money | None = None
    created_at: Any = None

    @classmethod
    def from_document(cls, doc_id: str, data: Mapping[str, Any]) -> 'Booking':
        """Build a snapshot from a document id and its field mapping"""
        booking_id = str(doc_id)
        return cls(
            id=booking_id,
            status=str(data.get('status') or ''),
            user_id=str(data.get('userId') or ''),
            guide_id=str(data.get('guideId') or ''),
            user_name=str(data.get('userName') or data.get('userEmail') or ''),
            guide_name=str(data.get('guideName') or ''),
            location=str(data.get('location') or data.get('guideLocation') or ''),
            dates=TravelDates.from_fields(data.get('dates'), data.get('date')),
            guests=_optional_int(data.get('guests')),
            total_price=_optional_money(data.get('totalPrice'), 'totalPrice', booking_id),
            price_per_day=_optional_money(data.get('pricePerDay'), 'pricePerDay', booking_id),
            created_at=data.get('createdAt'),
        )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> 'Booking':
        """Build a snapshot from a mapping that carries its own `id`"""
        if data.get('id') in (None, ''):
            raise ValueError("Booking mapping has no id")
        return cls.from_document(data['id'], data)

    @classmethod
    def coerce(cls, value: 'Booking | Mapping[str, Any]') -> 'Booking':
        if isinstance(value, Booking):
            return value
        if not isinstance(value, Mapping):
            raise ValueError(f"Cannot read a booking from {type(value).__name__}")
        return cls.from_mapping(value)

    @property
    def is_pending(self) -> bool:
        return self.status == BookingStatus.PENDING.value

    @property
    def is_approved(self) -> bool:
        return self.status in APPROVED_STATUSES

    def to_dict(self) -> dict:
        """Store-shaped mapping (camelCase keys, JSON-safe values)"""
        return {
            'id': self.id,
            'status': self.status,
            'userId': self.user_id,
            'guideId': self.guide_id,
            'userName': self.user_name,
            'guideName': self.guide_name,
            'location': self.location,
            'dates': list(self.dates.values),
            'guests': self.guests,
            'totalPrice': self.total_price.to_primitive() if self.total_price else None,
            'pricePerDay': self.price_per_day.to_primitive() if self.price_per_day else None,
            'createdAt': self.created_at.isoformat() if hasattr(self.created_at, 'isoformat') else self.created_at,
        }
