from __future__ import annotations

from datetime import date

import pytest

from backend.app.services.pricing import (
    DEFAULT_PRICING,
    PricingConfig,
    SemesterTerm,
    family_breakdown,
    family_total,
    load_pricing_config,
    monthly_total,
    round_to_nearest_500,
)


@pytest.mark.parametrize(
    ("student_count", "expected"),
    [(0, 0), (-2, 0), (1, 25000), (2, 45000), (3, 65000), (6, 125000), (9, 125000)],
)
def test_family_total_clamps_to_family_size(student_count, expected):
    assert family_total(student_count) == expected


def test_family_breakdown_lists_full_price_first():
    assert family_breakdown(3) == [25000, 20000, 20000]
    assert family_breakdown(0) == []
    assert len(family_breakdown(10)) == DEFAULT_PRICING.max_family_size


@pytest.mark.parametrize("student_count", range(-1, 9))
def test_breakdown_always_sums_to_family_total(student_count):
    assert sum(family_breakdown(student_count)) == family_total(student_count)


def test_family_total_grows_then_plateaus():
    totals = [family_total(n) for n in range(1, 10)]
    assert totals == sorted(totals)
    assert len(set(totals[5:])) == 1


def test_monthly_total_has_no_sibling_discount():
    assert monthly_total(3, 2) == 30000
    assert monthly_total(1, 1) == 5000
    assert monthly_total(0, 2) == 0
    assert monthly_total(2, 0) == 0


def test_semester_total_prorates_a_late_start(pricing):
    assert pricing.semester.months == 6
    assert pricing.semester_total(1) == 25000
    assert pricing.semester_total(3, 6) == 65000

    # Four months left: first student pays 4 * 5000, siblings keep the 20/25 ratio.
    assert pricing.prorated_fees(4) == (20000, 16000)
    assert pricing.semester_total(2, 4) == 36000


def test_remaining_months_is_bounded_by_the_term():
    term = SemesterTerm(start=date(2026, 1, 1), end=date(2026, 7, 1))

    assert term.remaining_months(date(2026, 3, 15)) == 4
    assert term.remaining_months(date(2025, 9, 1)) == 6
    assert term.remaining_months(date(2026, 6, 20)) == 1
    assert term.remaining_months(date(2026, 8, 1)) == 1


def test_suggested_amounts_cover_each_family_size(pricing):
    suggestions = pricing.suggested_amounts()

    assert [entry["student_count"] for entry in suggestions] == [1, 2, 3, 4, 5, 6]
    assert suggestions[1]["amount"] == 45000


def test_round_to_nearest_500():
    assert round_to_nearest_500(36249) == 36000
    assert round_to_nearest_500(36250) == 36500
    assert round_to_nearest_500(0) == 0


def test_pricing_config_rejects_invalid_values():
    with pytest.raises(ValueError):
        PricingConfig(single_student_fee=-1)
    with pytest.raises(ValueError):
        PricingConfig(max_family_size=0)
    with pytest.raises(ValueError):
        SemesterTerm(start=date(2026, 7, 1), end=date(2026, 1, 1))


def test_load_pricing_config_reads_environment(monkeypatch):
    monkeypatch.setenv("PRICING_SINGLE_STUDENT_FEE", "30000")
    monkeypatch.setenv("PRICING_ADDITIONAL_SIBLING_FEE", "22000")
    monkeypatch.setenv("PRICING_MAX_FAMILY_SIZE", "4")
    monkeypatch.setenv("SEMESTER_START", "2026-09-01")
    monkeypatch.setenv("SEMESTER_END", "2027-01-01")

    config = load_pricing_config()

    assert config.family_total(2) == 52000
    assert config.max_family_size == 4
    assert config.monthly_fee == 5000
    assert config.semester.months == 4


def test_load_pricing_config_rejects_bad_numbers(monkeypatch):
    monkeypatch.setenv("PRICING_MONTHLY_FEE", "cheap")

    with pytest.raises(ValueError, match="PRICING_MONTHLY_FEE"):
        load_pricing_config()
