from __future__ import annotations

from datetime import date
from itertools import count

import pytest

from backend.app.models import BillingMode, PaymentType
from backend.app.services.billing_periods import BillingPeriod, ExistingPaymentRecord
from backend.app.services.payment_errors import InvalidGroupError, PeriodOverlapError
from backend.app.services.payment_groups import (
    ExplicitAmount,
    FamilyMember,
    PaymentGroupBuilder,
    PaymentIntent,
    amount_spec,
)

SEMESTER = BillingPeriod(date(2026, 1, 1), date(2026, 7, 1))
ALI = FamilyMember("s-ali", "Ali")
SARA = FamilyMember("s-sara", "Sara")
OMAR = FamilyMember("s-omar", "Omar")


class FakeStore:
    """In-memory stand-in for the payments table."""

    def __init__(self, records=()):
        self.records = list(records)
        self.saved = []
        self.lookups = []

    def fetch(self, student_ids, period):
        self.lookups.append((list(student_ids), period))
        return [record for record in self.records if record.student_id in student_ids]

    def persist(self, group):
        self.saved.append(group)
        return group


@pytest.fixture
def builder(pricing):
    ids = count(1)
    return PaymentGroupBuilder(
        pricing, id_factory=lambda: f"p-{next(ids)}", today=lambda: date(2026, 1, 10)
    )


def test_standard_family_payment_links_siblings_to_the_primary(builder):
    store = FakeStore()
    intent = PaymentIntent.for_members(
        [ALI, SARA, OMAR], billing_mode=BillingMode.SEMESTER, period=SEMESTER, notes="cash"
    )

    group = builder.create(intent, store.fetch, store.persist)

    assert store.saved == [group]
    assert group.total_amount == 65000
    assert [draft.amount for draft in group.records] == [25000, 20000, 20000]
    assert group.primary.payment_type is PaymentType.FAMILY
    assert group.primary.sibling_payment_id is None
    for sibling in group.siblings:
        assert sibling.sibling_payment_id == group.primary.payment_id
        assert sibling.sibling_student_id == ALI.student_id
        assert sibling.payment_type is PaymentType.FAMILY
    assert {draft.sibling_names for draft in group.records} == {"Ali، Sara، Omar"}
    assert {draft.notes for draft in group.records} == {"cash"}
    assert {draft.period for draft in group.records} == {SEMESTER}
    assert {draft.paid_on for draft in group.records} == {date(2026, 1, 10)}
    assert dict(group.billing_preferences) == {
        "s-ali": BillingMode.SEMESTER,
        "s-sara": BillingMode.SEMESTER,
        "s-omar": BillingMode.SEMESTER,
    }


def test_single_student_payment_has_no_sibling_names(builder):
    store = FakeStore()
    intent = PaymentIntent(primary=ALI, billing_mode=BillingMode.SEMESTER, period=SEMESTER)

    group = builder.create(intent, store.fetch, store.persist)

    assert group.siblings == ()
    assert group.primary.payment_type is PaymentType.SINGLE
    assert group.primary.sibling_names is None
    assert group.primary.months_count == 6


def test_explicit_zero_amount_records_a_free_payment(builder):
    store = FakeStore()
    intent = PaymentIntent.for_members(
        [ALI, SARA],
        billing_mode=BillingMode.SEMESTER,
        period=SEMESTER,
        amount=amount_spec(0),
        payment_type=PaymentType.SCHOLARSHIP,
    )

    group = builder.create(intent, store.fetch, store.persist)

    assert group.total_amount == 0
    assert [draft.amount for draft in group.records] == [0, 0]
    assert group.primary.payment_type is PaymentType.SCHOLARSHIP


def test_missing_amount_uses_standard_pricing(builder):
    assert amount_spec(None) != ExplicitAmount(0)
    intent = PaymentIntent(
        primary=ALI,
        billing_mode=BillingMode.MONTHLY,
        period=BillingPeriod(date(2026, 1, 1), date(2026, 3, 31)),
        months_count=3,
        amount=amount_spec(None),
    )

    assert builder.resolve_total(intent) == 15000


def test_discounted_amount_is_split_proportionally(builder):
    store = FakeStore()
    intent = PaymentIntent.for_members(
        [ALI, SARA],
        billing_mode=BillingMode.SEMESTER,
        period=SEMESTER,
        amount=ExplicitAmount(40000),
    )

    group = builder.create(intent, store.fetch, store.persist)

    assert [draft.amount for draft in group.records] == [22222, 17778]


def test_late_semester_start_is_prorated(builder):
    intent = PaymentIntent.for_members(
        [ALI, SARA],
        billing_mode=BillingMode.SEMESTER,
        period=BillingPeriod(date(2026, 3, 1), date(2026, 7, 1)),
    )

    group = builder.build(intent)

    assert group.primary.months_count == 4
    assert [draft.amount for draft in group.records] == [20000, 16000]


def test_conflict_for_one_sibling_rejects_the_whole_group(builder):
    store = FakeStore(
        [
            ExistingPaymentRecord(
                student_id=SARA.student_id,
                period_start=date(2026, 3, 1),
                period_end=date(2026, 4, 1),
            )
        ]
    )
    intent = PaymentIntent.for_members(
        [ALI, SARA, OMAR], billing_mode=BillingMode.SEMESTER, period=SEMESTER
    )

    with pytest.raises(PeriodOverlapError) as excinfo:
        builder.create(intent, store.fetch, store.persist)

    assert store.saved == []
    assert excinfo.value.blocked_student_ids == [SARA.student_id]
    assert excinfo.value.conflict_descriptions == ["Sara: 1/3/2026 - 1/4/2026"]
    assert "Sara" in str(excinfo.value)


def test_every_blocked_student_is_reported(builder):
    store = FakeStore(
        [
            ExistingPaymentRecord(OMAR.student_id, date(2026, 1, 1), date(2026, 2, 1)),
            ExistingPaymentRecord(ALI.student_id, date(2026, 5, 1), date(2026, 6, 1)),
            ExistingPaymentRecord(SARA.student_id, date(2026, 1, 1), date(2026, 7, 1), voided=True),
        ]
    )
    intent = PaymentIntent.for_members(
        [ALI, SARA, OMAR], billing_mode=BillingMode.SEMESTER, period=SEMESTER
    )

    with pytest.raises(PeriodOverlapError) as excinfo:
        builder.create(intent, store.fetch, store.persist)

    assert excinfo.value.blocked_student_ids == [ALI.student_id, OMAR.student_id]


def test_persistence_errors_propagate_unchanged(builder):
    class StorageDown(Exception):
        pass

    def persist(_group):
        raise StorageDown("disk full")

    intent = PaymentIntent(primary=ALI, billing_mode=BillingMode.SEMESTER, period=SEMESTER)

    with pytest.raises(StorageDown):
        builder.create(intent, FakeStore().fetch, persist)


@pytest.mark.parametrize(
    "intent_kwargs",
    [
        {"siblings": (ALI,)},
        {"siblings": (FamilyMember("", "Nameless"),)},
        {"billing_mode": BillingMode.MONTHLY, "months_count": 0},
        {"billing_mode": BillingMode.MONTHLY},
        {"amount": ExplicitAmount(-1)},
        {
            "siblings": tuple(
                FamilyMember(f"s-{index}", f"Child {index}") for index in range(6)
            )
        },
    ],
)
def test_invalid_groups_are_rejected_before_lookup(builder, intent_kwargs):
    store = FakeStore()
    kwargs = {"billing_mode": BillingMode.SEMESTER, "period": SEMESTER, **intent_kwargs}
    intent = PaymentIntent(primary=ALI, **kwargs)

    with pytest.raises(InvalidGroupError):
        builder.create(intent, store.fetch, store.persist)

    assert store.lookups == []
    assert store.saved == []


def test_empty_member_list_is_rejected():
    with pytest.raises(InvalidGroupError):
        PaymentIntent.for_members([], billing_mode=BillingMode.SEMESTER, period=SEMESTER)


def test_semester_payment_with_a_short_period_is_billed_for_the_months_it_spans(builder):
    intent = PaymentIntent(
        primary=ALI,
        billing_mode=BillingMode.SEMESTER,
        period=BillingPeriod(date(2026, 1, 1), date(2026, 2, 1)),
    )

    group = builder.build(intent)

    assert group.primary.months_count == 1
    assert group.primary.amount == 5000


def test_siblings_keep_their_submission_order(builder):
    intent = PaymentIntent.for_members(
        [ALI, OMAR, SARA], billing_mode=BillingMode.SEMESTER, period=SEMESTER
    )

    group = builder.build(intent)

    assert group.primary.position == 0
    assert [(draft.student_id, draft.position) for draft in group.siblings] == [
        (OMAR.student_id, 1),
        (SARA.student_id, 2),
    ]
