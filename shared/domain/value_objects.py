"""
Common Value Objects

Value objects used across multiple domains:
- Money: Monetary amount with currency (booking prices)
- TravelDates: Ordered, non-empty sequence of tour dates
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable

from shared.domain.base import ValueObject

CURRENCY_SYMBOLS = {
    'BDT': '৳',
    'USD': '$',
    'EUR': '€',
}

UNSCHEDULED = 'TBD'


@dataclass(frozen=True)
class Money(ValueObject):
    """
    Money value object

    Represents a non-negative monetary amount with currency.
    """
    amount: Decimal
    currency: str = 'BDT'

    def __post_init__(self):
        if self.amount < 0:
            raise ValueError("Amount cannot be negative")
        if self.currency not in CURRENCY_SYMBOLS:
            raise ValueError(f"Unsupported currency: {self.currency}")

    @classmethod
    def parse(cls, value: Any, currency: str = 'BDT') -> 'Money':
        """
        Build Money from a raw document value (int, float, str or Decimal)

        Raises ValueError for anything that is not a non-negative number.
        """
        if isinstance(value, Money):
            return value
        if isinstance(value, bool) or value is None:
            raise ValueError(f"Not a monetary amount: {value!r}")
        try:
            amount = Decimal(str(value))
        except InvalidOperation as e:
            raise ValueError(f"Not a monetary amount: {value!r}") from e
        if not amount.is_finite():
            raise ValueError(f"Not a monetary amount: {value!r}")
        return cls(amount, currency)

    @property
    def display_amount(self) -> str:
        """Amount without trailing zeros: 1500.0 -> '1500', 99.50 -> '99.5'"""
        if self.amount == self.amount.to_integral_value():
            return str(self.amount.quantize(Decimal(1)))
        return format(self.amount.normalize(), 'f')

    def to_primitive(self) -> int | float:
        """JSON-friendly number for feed payloads"""
        if self.amount == self.amount.to_integral_value():
            return int(self.amount)
        return float(self.amount)

    def __str__(self):
        return f"{CURRENCY_SYMBOLS[self.currency]}{self.display_amount}"

    def __repr__(self):
        return f"Money({self.amount}, '{self.currency}')"


def _date_to_str(value: Any) -> str:
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value).strip()


@dataclass(frozen=True)
class TravelDates(ValueObject):
    """
    Tour dates value object

    Always holds at least one entry. Order is the order the booking was
    made with; values are kept as strings because the store accepts free-form
    date text.
    """
    values: tuple[str, ...]

    def __post_init__(self):
        if not self.values:
            raise ValueError("TravelDates requires at least one date")

    @classmethod
    def from_fields(cls, dates: Any = None, single_date: Any = None) -> 'TravelDates':
        """
        Normalize the `dates` sequence / legacy `date` field pair

        Examples:
            - dates=['2024-05-01', '2024-05-02'] -> ('2024-05-01', '2024-05-02')
            - dates='2024-05-01' -> ('2024-05-01',)
            - dates=None, single_date='2024-05-01' -> ('2024-05-01',)
            - nothing usable -> ('TBD',)
        """
        for candidate in (dates, single_date):
            values = cls._collect(candidate)
            if values:
                return cls(values)
        return cls((UNSCHEDULED,))

    @staticmethod
    def _collect(candidate: Any) -> tuple[str, ...]:
        if candidate is None:
            return ()
        if isinstance(candidate, (str, date)):
            items: Iterable[Any] = [candidate]
        elif isinstance(candidate, (list, tuple)):
            items = candidate
        else:
            items = [candidate]
        return tuple(text for text in (_date_to_str(item) for item in items if item is not None) if text)

    @property
    def is_scheduled(self) -> bool:
        return self.values != (UNSCHEDULED,)

    def display(self) -> str:
        """Comma separated, as shown in notification messages"""
        return ', '.join(self.values)

    def __len__(self) -> int:
        return len(self.values)

    def __iter__(self):
        return iter(self.values)

    def __str__(self):
        return self.display()

    def __repr__(self):
        return f"TravelDates({self.values!r})"
