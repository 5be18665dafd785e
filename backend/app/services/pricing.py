"""Tuition pricing table and family total calculations.

Amounts are whole Iraqi dinars (IQD). A semester is priced per family: the
first student pays the single-student fee and every additional sibling pays
the discounted sibling fee, up to ``max_family_size`` students. Monthly
billing is a flat per-student rate with no sibling discount.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from functools import lru_cache
from typing import Optional

SINGLE_STUDENT_FEE_ENV = "PRICING_SINGLE_STUDENT_FEE"
ADDITIONAL_SIBLING_FEE_ENV = "PRICING_ADDITIONAL_SIBLING_FEE"
MONTHLY_FEE_ENV = "PRICING_MONTHLY_FEE"
MAX_FAMILY_SIZE_ENV = "PRICING_MAX_FAMILY_SIZE"
SEMESTER_START_ENV = "SEMESTER_START"
SEMESTER_END_ENV = "SEMESTER_END"

DEFAULT_SINGLE_STUDENT_FEE = 25000
DEFAULT_ADDITIONAL_SIBLING_FEE = 20000
DEFAULT_MONTHLY_FEE = 5000
DEFAULT_MAX_FAMILY_SIZE = 6
DEFAULT_SEMESTER_START = date(2026, 1, 1)
DEFAULT_SEMESTER_END = date(2026, 7, 1)


def round_half_up(value: Decimal) -> int:
    """Round to the nearest dinar, halves away from zero."""

    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def round_to_nearest_500(amount: int | Decimal) -> int:
    """Round a display amount to the nearest 500 IQD."""

    return round_half_up(Decimal(amount) / 500) * 500


def months_between(start: date, end: date) -> int:
    """Whole calendar months from ``start`` to ``end`` ignoring the day."""

    return (end.year - start.year) * 12 + (end.month - start.month)


@dataclass(frozen=True)
class SemesterTerm:
    """Fixed academic term with tiered family pricing."""

    start: date = DEFAULT_SEMESTER_START
    end: date = DEFAULT_SEMESTER_END

    def __post_init__(self) -> None:
        if self.end <= self.start:
            raise ValueError("Semester end must be after its start")
        if self.months < 1:
            raise ValueError("Semester must span at least one month")

    @property
    def months(self) -> int:
        return months_between(self.start, self.end)

    def remaining_months(self, starts_on: date) -> int:
        """Months left in the term for a payment starting on ``starts_on``.

        Always between one month and the full term length.
        """

        return max(1, min(self.months, months_between(starts_on, self.end)))


@dataclass(frozen=True)
class PricingConfig:
    """Immutable pricing table shared by every calculation."""

    single_student_fee: int = DEFAULT_SINGLE_STUDENT_FEE
    additional_sibling_fee: int = DEFAULT_ADDITIONAL_SIBLING_FEE
    monthly_fee: int = DEFAULT_MONTHLY_FEE
    max_family_size: int = DEFAULT_MAX_FAMILY_SIZE
    semester: SemesterTerm = field(default_factory=SemesterTerm)

    def __post_init__(self) -> None:
        for name in ("single_student_fee", "additional_sibling_fee", "monthly_fee"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be non-negative")
        if self.max_family_size < 1:
            raise ValueError("max_family_size must be at least 1")

    def effective_count(self, student_count: int) -> int:
        """Clamp a head count to ``0..max_family_size``."""

        if student_count < 1:
            return 0
        return min(student_count, self.max_family_size)

    def family_total(self, student_count: int) -> int:
        count = self.effective_count(student_count)
        if count == 0:
            return 0
        return self.single_student_fee + (count - 1) * self.additional_sibling_fee

    def family_breakdown(self, student_count: int) -> list[int]:
        count = self.effective_count(student_count)
        if count == 0:
            return []
        return [self.single_student_fee] + [self.additional_sibling_fee] * (count - 1)

    def monthly_total(self, months_count: int, student_count: int) -> int:
        """Flat monthly pricing; siblings pay the same rate as the first student."""

        if months_count < 1 or student_count < 1:
            return 0
        return months_count * self.monthly_fee * student_count

    def prorated_fees(self, months_count: int) -> tuple[int, int]:
        """Return ``(first_student, sibling)`` fees for a partial semester.

        The first student pays the monthly rate for each remaining month and
        siblings keep the full-semester discount ratio. A full (or longer)
        term returns the regular semester fees.
        """

        if months_count >= self.semester.months:
            return self.single_student_fee, self.additional_sibling_fee
        first = max(months_count, 0) * self.monthly_fee
        if self.single_student_fee == 0:
            return first, 0
        ratio = Decimal(self.additional_sibling_fee) / Decimal(self.single_student_fee)
        return first, round_half_up(Decimal(first) * ratio)

    def semester_total(self, student_count: int, months_count: Optional[int] = None) -> int:
        """Standard semester price, pro-rated when fewer months remain."""

        months = self.semester.months if months_count is None else months_count
        if months >= self.semester.months:
            return self.family_total(student_count)
        count = self.effective_count(student_count)
        if count == 0:
            return 0
        first, sibling = self.prorated_fees(months)
        return first + (count - 1) * sibling

    def suggested_amounts(self) -> list[dict[str, int]]:
        """Full-semester family totals for every allowed family size."""

        return [
            {"student_count": count, "amount": self.family_total(count)}
            for count in range(1, self.max_family_size + 1)
        ]


DEFAULT_PRICING = PricingConfig()


def family_total(student_count: int, pricing: PricingConfig = DEFAULT_PRICING) -> int:
    """Total semester price for ``student_count`` siblings paying together."""

    return pricing.family_total(student_count)


def family_breakdown(
    student_count: int, pricing: PricingConfig = DEFAULT_PRICING
) -> list[int]:
    """Per-student semester prices; the first entry is the full-price student."""

    return pricing.family_breakdown(student_count)


def monthly_total(
    months_count: int, student_count: int, pricing: PricingConfig = DEFAULT_PRICING
) -> int:
    return pricing.monthly_total(months_count, student_count)


def _read_int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw.strip())
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer") from exc
    if value < 0:
        raise ValueError(f"{name} must be non-negative")
    return value


def _read_date_env(name: str, default: date) -> date:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return date.fromisoformat(raw.strip())
    except ValueError as exc:
        raise ValueError(f"{name} must be an ISO date (YYYY-MM-DD)") from exc


def load_pricing_config() -> PricingConfig:
    """Build the pricing table from the environment, using defaults for gaps."""

    return PricingConfig(
        single_student_fee=_read_int_env(SINGLE_STUDENT_FEE_ENV, DEFAULT_SINGLE_STUDENT_FEE),
        additional_sibling_fee=_read_int_env(
            ADDITIONAL_SIBLING_FEE_ENV, DEFAULT_ADDITIONAL_SIBLING_FEE
        ),
        monthly_fee=_read_int_env(MONTHLY_FEE_ENV, DEFAULT_MONTHLY_FEE),
        max_family_size=_read_int_env(MAX_FAMILY_SIZE_ENV, DEFAULT_MAX_FAMILY_SIZE),
        semester=SemesterTerm(
            start=_read_date_env(SEMESTER_START_ENV, DEFAULT_SEMESTER_START),
            end=_read_date_env(SEMESTER_END_ENV, DEFAULT_SEMESTER_END),
        ),
    )


@lru_cache(maxsize=1)
def get_pricing_config() -> PricingConfig:
    """Process-wide pricing table; also used as a FastAPI dependency."""

    return load_pricing_config()
