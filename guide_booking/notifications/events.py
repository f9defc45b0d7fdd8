"""
Notification Domain Events

Events detected by comparing a booking snapshot against notification history.
"""

from dataclasses import dataclass
from enum import Enum

from shared.domain.base import DomainEvent
from guide_booking.bookings.domain import Booking, BookingStatus


class ChangeType(Enum):
    APPROVED = 'approved'
    REJECTED = 'rejected'

    @classmethod
    def for_status(cls, new_status: str) -> 'ChangeType':
        if new_status == BookingStatus.CANCELLED.value:
            return cls.REJECTED
        return cls.APPROVED


@dataclass
class BookingStatusChanged(DomainEvent):
    """
    Event: A pending booking was resolved by the guide

    Triggers:
    - Local alert to the tourist who made the booking
    """
    booking: Booking
    previous_status: str
    new_status: str
    change_type: ChangeType

    def __post_init__(self):
        if self.aggregate_id is None:
            self.aggregate_id = self.booking.id

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update({
            'booking': self.booking.to_dict(),
            'previous_status': self.previous_status,
            'new_status': self.new_status,
            'change_type': self.change_type.value,
        })
        return data
