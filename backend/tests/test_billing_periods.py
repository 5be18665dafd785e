from __future__ import annotations

from datetime import date, datetime

import pytest

from backend.app.services.billing_periods import (
    BillingPeriod,
    ExistingPaymentRecord,
    day_floor,
    find_overlaps,
    format_date_range,
    monthly_period,
    periods_overlap,
    semester_period,
)
from backend.app.services.payment_errors import InvalidGroupError


def _record(start: date, end: date, *, voided: bool = False, student_id: str = "s1"):
    return ExistingPaymentRecord(
        student_id=student_id, period_start=start, period_end=end, voided=voided
    )


def test_period_starting_when_the_previous_one_ends_is_allowed():
    candidate = BillingPeriod(date(2026, 2, 1), date(2026, 3, 1))
    existing = [_record(date(2026, 1, 1), date(2026, 2, 1))]

    assert find_overlaps(candidate, existing) == []


def test_same_day_handover_ignores_the_time_of_day():
    candidate = BillingPeriod.from_bounds(
        datetime(2026, 2, 1, 0, 0), datetime(2026, 3, 1, 18, 30)
    )
    previous = BillingPeriod.from_bounds(
        datetime(2026, 1, 1, 9, 0), datetime(2026, 2, 1, 23, 59, 59)
    )

    assert not periods_overlap(candidate, previous)


def test_one_day_of_shared_coverage_is_reported():
    candidate = BillingPeriod(date(2026, 1, 31), date(2026, 3, 1))
    existing = [_record(date(2026, 1, 1), date(2026, 2, 1))]

    assert find_overlaps(candidate, existing) == [
        BillingPeriod(date(2026, 1, 1), date(2026, 2, 1))
    ]


def test_overlap_is_symmetric():
    first = BillingPeriod(date(2026, 1, 1), date(2026, 4, 1))
    second = BillingPeriod(date(2026, 3, 1), date(2026, 7, 1))

    assert periods_overlap(first, second)
    assert periods_overlap(second, first)


def test_voided_payments_never_block():
    candidate = BillingPeriod(date(2026, 1, 1), date(2026, 7, 1))
    existing = [_record(date(2026, 1, 1), date(2026, 7, 1), voided=True)]

    assert find_overlaps(candidate, existing) == []


def test_conflicts_are_sorted_and_deduplicated():
    candidate = BillingPeriod(date(2026, 1, 1), date(2026, 7, 1))
    existing = [
        _record(date(2026, 4, 1), date(2026, 5, 1)),
        _record(date(2026, 2, 1), date(2026, 3, 1)),
        _record(date(2026, 4, 1), date(2026, 5, 1)),
    ]

    periods = find_overlaps(candidate, existing)

    assert [period.start for period in periods] == [date(2026, 2, 1), date(2026, 4, 1)]


def test_period_end_must_follow_start():
    with pytest.raises(InvalidGroupError):
        BillingPeriod(date(2026, 3, 1), date(2026, 3, 1))
    with pytest.raises(InvalidGroupError):
        BillingPeriod.from_bounds("2026-03-02", "2026-03-01")


def test_day_floor_accepts_iso_strings():
    assert day_floor("2026-02-01T15:30:00Z") == date(2026, 2, 1)
    assert day_floor(date(2026, 2, 1)) == date(2026, 2, 1)
    with pytest.raises(InvalidGroupError):
        day_floor("first of february")


def test_label_uses_day_month_year():
    assert format_date_range(date(2026, 1, 1), date(2026, 7, 1)) == "1/1/2026 - 1/7/2026"
    assert BillingPeriod(date(2026, 3, 5), date(2026, 4, 5)).label == "5/3/2026 - 5/4/2026"


def test_monthly_period_spans_the_selected_months():
    period, months = monthly_period(["2026-03", "2026-01", "2026-03"])

    assert period == BillingPeriod(date(2026, 1, 1), date(2026, 3, 31))
    assert months == 2


@pytest.mark.parametrize("bad_key", ["2026/01", "2026-13", "26-01", ""])
def test_monthly_period_rejects_malformed_keys(bad_key):
    with pytest.raises(InvalidGroupError):
        monthly_period([bad_key])


def test_monthly_period_requires_a_month():
    with pytest.raises(InvalidGroupError):
        monthly_period([])


def test_semester_period_defaults_to_the_whole_term(pricing):
    assert semester_period(pricing.semester) == BillingPeriod(date(2026, 1, 1), date(2026, 7, 1))
    assert semester_period(pricing.semester, date(2026, 3, 15)).start == date(2026, 3, 15)
