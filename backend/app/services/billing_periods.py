"""Billing periods and the overlap rule that prevents double billing."""

from __future__ import annotations

import re
from calendar import monthrange
from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, Optional, Sequence, Union

from .payment_errors import InvalidGroupError
from .pricing import SemesterTerm

DateLike = Union[date, datetime, str]

VALID_PERIOD_KEY_PATTERN = re.compile(r"^\d{4}-\d{2}$")


def day_floor(value: DateLike) -> date:
    """Normalize a date, datetime or ISO string to its calendar day."""

    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError as exc:
        raise InvalidGroupError(f"Invalid date: {value!r}") from exc


def format_date_range(start: date, end: date) -> str:
    """Human readable range such as ``1/1/2026 - 1/7/2026``."""

    return f"{start.day}/{start.month}/{start.year} - {end.day}/{end.month}/{end.year}"


@dataclass(frozen=True)
class BillingPeriod:
    """Span of service covered by a payment, in whole days."""

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.end <= self.start:
            raise InvalidGroupError(
                f"Period end ({self.end.isoformat()}) must be after its start "
                f"({self.start.isoformat()})"
            )

    @classmethod
    def from_bounds(cls, start: DateLike, end: DateLike) -> "BillingPeriod":
        return cls(start=day_floor(start), end=day_floor(end))

    @property
    def label(self) -> str:
        return format_date_range(self.start, self.end)

    def overlaps(self, other: "BillingPeriod") -> bool:
        """Strict overlap on day bounds.

        A period that starts on the day another one ends does not overlap it,
        so consecutive payments can hand over on the same calendar day.
        """

        return self.start < other.end and self.end > other.start


@dataclass(frozen=True)
class ExistingPaymentRecord:
    """Read-only view of a stored payment used for overlap checks."""

    student_id: str
    period_start: date
    period_end: date
    voided: bool = False
    payment_id: Optional[str] = None

    @property
    def period(self) -> BillingPeriod:
        return BillingPeriod.from_bounds(self.period_start, self.period_end)


def find_overlaps(
    candidate: BillingPeriod, existing_payments: Iterable[ExistingPaymentRecord]
) -> list[BillingPeriod]:
    """Return the periods of non-voided payments that collide with ``candidate``."""

    conflicts: list[BillingPeriod] = []
    for record in existing_payments:
        if record.voided:
            continue
        period = record.period
        if candidate.overlaps(period) and period not in conflicts:
            conflicts.append(period)
    return sorted(conflicts, key=lambda period: (period.start, period.end))


def parse_month_key(month_key: str) -> tuple[int, int]:
    """Validate a ``YYYY-MM`` key and return ``(year, month)``."""

    sanitized = (month_key or "").strip()
    if not VALID_PERIOD_KEY_PATTERN.match(sanitized):
        raise InvalidGroupError("Invalid month key format, expected YYYY-MM")
    year_str, month_str = sanitized.split("-", maxsplit=1)
    year, month = int(year_str), int(month_str)
    if month < 1 or month > 12:
        raise InvalidGroupError("Invalid month key format, expected YYYY-MM")
    return year, month


def semester_period(term: SemesterTerm, starts_on: Optional[DateLike] = None) -> BillingPeriod:
    """The full semester, or the rest of it from ``starts_on``."""

    start = term.start if starts_on is None else day_floor(starts_on)
    return BillingPeriod(start=start, end=term.end)


def monthly_period(month_keys: Sequence[str]) -> tuple[BillingPeriod, int]:
    """Period spanning the selected months and the number of months billed.

    Months do not need to be consecutive; the period runs from the first day
    of the earliest month to the last day of the latest one.
    """

    months = sorted({parse_month_key(key) for key in month_keys})
    if not months:
        raise InvalidGroupError("Select at least one month for a monthly payment")
    first_year, first_month = months[0]
    last_year, last_month = months[-1]
    _, last_day = monthrange(last_year, last_month)
    period = BillingPeriod(
        start=date(first_year, first_month, 1),
        end=date(last_year, last_month, last_day),
    )
    return period, len(months)


def periods_overlap(first: BillingPeriod, second: BillingPeriod) -> bool:
    return first.overlaps(second)
