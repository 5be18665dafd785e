"""Build linked family payments and guard them against double billing.

A payment group is one primary payment plus one linked payment per sibling.
The builder checks every participant's existing coverage, works out the
amount each student is charged and assembles the complete group in memory,
ids and links included, before handing it to a persistence callback that
writes it in a single transaction.
"""

from __future__ import annotations

import enum
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Iterable, Mapping, Optional, Sequence, TypeVar, Union

from ..db_types import new_id
from ..models.payment import BillingMode, PaymentType
from .allocation import AllocationResult, allocate
from .billing_periods import BillingPeriod, ExistingPaymentRecord, find_overlaps
from .payment_errors import InvalidGroupError, PeriodOverlapError, StudentConflict
from .pricing import DEFAULT_PRICING, PricingConfig, months_between

LOGGER = logging.getLogger(__name__)

SIBLING_NAME_SEPARATOR = "، "

T = TypeVar("T")


@dataclass(frozen=True)
class StandardAmount:
    """Charge the regular price for the group."""


@dataclass(frozen=True)
class ExplicitAmount:
    """Charge exactly ``amount`` for the whole group; zero records a free payment."""

    amount: int


AmountSpec = Union[StandardAmount, ExplicitAmount]
STANDARD_AMOUNT = StandardAmount()


def amount_spec(amount: Optional[int]) -> AmountSpec:
    """Map an optional request amount onto an ``AmountSpec``.

    ``None`` means "use standard pricing"; any number, including ``0``, is an
    explicit override.
    """

    return STANDARD_AMOUNT if amount is None else ExplicitAmount(int(amount))


@dataclass(frozen=True)
class FamilyMember:
    student_id: str
    name: str


@dataclass(frozen=True)
class PaymentIntent:
    """Everything needed to record one payment for a group of students."""

    primary: FamilyMember
    billing_mode: BillingMode
    period: BillingPeriod
    siblings: tuple[FamilyMember, ...] = ()
    months_count: Optional[int] = None
    amount: AmountSpec = STANDARD_AMOUNT
    payment_type: Optional[PaymentType] = None
    notes: Optional[str] = None
    recorded_by: Optional[str] = None
    paid_on: Optional[date] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "billing_mode", BillingMode(self.billing_mode))
        object.__setattr__(self, "siblings", tuple(self.siblings))

    @classmethod
    def for_members(
        cls, members: Sequence[FamilyMember], **kwargs
    ) -> "PaymentIntent":
        """Build an intent from an ordered member list; the first one is primary."""

        if not members:
            raise InvalidGroupError("Select at least one student")
        return cls(primary=members[0], siblings=tuple(members[1:]), **kwargs)

    @property
    def primary_student_id(self) -> str:
        return self.primary.student_id

    @property
    def sibling_student_ids(self) -> list[str]:
        return [sibling.student_id for sibling in self.siblings]

    @property
    def members(self) -> tuple[FamilyMember, ...]:
        return (self.primary, *self.siblings)

    @property
    def student_ids(self) -> list[str]:
        return [member.student_id for member in self.members]

    @property
    def student_count(self) -> int:
        return 1 + len(self.siblings)


@dataclass(frozen=True)
class PaymentDraft:
    """A payment row ready to be written."""

    payment_id: str
    student_id: str
    student_name: str
    amount: int
    payment_type: PaymentType
    billing_mode: BillingMode
    period: BillingPeriod
    months_count: int
    paid_on: date
    position: int = 0
    sibling_names: Optional[str] = None
    sibling_student_id: Optional[str] = None
    sibling_payment_id: Optional[str] = None
    notes: Optional[str] = None
    recorded_by: Optional[str] = None


@dataclass(frozen=True)
class PaymentGroup:
    """The primary payment, its linked sibling payments and side effects."""

    primary: PaymentDraft
    siblings: tuple[PaymentDraft, ...]
    allocation: AllocationResult
    billing_preferences: Mapping[str, BillingMode] = field(default_factory=dict)

    @property
    def records(self) -> tuple[PaymentDraft, ...]:
        return (self.primary, *self.siblings)

    @property
    def total_amount(self) -> int:
        return self.allocation.total_amount


class GroupState(str, enum.Enum):
    VALIDATING = "validating"
    ALLOCATING = "allocating"
    PERSISTING = "persisting"
    DONE = "done"
    REJECTED = "rejected"


FetchExistingPayments = Callable[
    [Sequence[str], BillingPeriod], Iterable[ExistingPaymentRecord]
]


class PaymentGroupBuilder:
    """Validates, prices and assembles family payment groups."""

    def __init__(
        self,
        pricing: PricingConfig = DEFAULT_PRICING,
        *,
        id_factory: Callable[[], str] = new_id,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.pricing = pricing
        self._id_factory = id_factory
        self._today = today

    def check_intent(self, intent: PaymentIntent) -> None:
        """Reject malformed groups before any lookup or allocation happens."""

        ids = intent.student_ids
        if any(not student_id for student_id in ids):
            raise InvalidGroupError("Every student in the group needs an identifier")
        if len(set(ids)) != len(ids):
            raise InvalidGroupError("A student can only appear once in a payment group")
        if intent.student_count > self.pricing.max_family_size:
            raise InvalidGroupError(
                f"A payment group covers at most {self.pricing.max_family_size} students"
            )
        if intent.billing_mode is BillingMode.MONTHLY:
            if intent.months_count is None or intent.months_count < 1:
                raise InvalidGroupError("Monthly payments must cover at least one month")
        elif intent.months_count is not None and intent.months_count < 1:
            raise InvalidGroupError("months_count must be greater than zero")
        if isinstance(intent.amount, ExplicitAmount) and intent.amount.amount < 0:
            raise InvalidGroupError("Payment amount cannot be negative")

    def find_conflicts(
        self,
        intent: PaymentIntent,
        existing_payments: Iterable[ExistingPaymentRecord],
    ) -> list[StudentConflict]:
        """Per-student conflicts, in group order; empty when the period is free."""

        return find_member_conflicts(intent.members, intent.period, existing_payments)

    def months_for(self, intent: PaymentIntent) -> int:
        if intent.months_count is not None:
            return intent.months_count
        # A semester payment is billed for the months it actually spans, never
        # past the end of the term.
        spanned = max(1, months_between(intent.period.start, intent.period.end))
        return min(self.pricing.semester.remaining_months(intent.period.start), spanned)

    def resolve_total(self, intent: PaymentIntent) -> int:
        if isinstance(intent.amount, ExplicitAmount):
            return intent.amount.amount
        months = self.months_for(intent)
        if intent.billing_mode is BillingMode.MONTHLY:
            return self.pricing.monthly_total(months, intent.student_count)
        return self.pricing.semester_total(intent.student_count, months)

    def allocate(self, intent: PaymentIntent) -> AllocationResult:
        return allocate(
            self.resolve_total(intent),
            intent.student_count,
            intent.billing_mode,
            self.pricing,
        )

    def build(self, intent: PaymentIntent) -> PaymentGroup:
        """Assemble the full group; does not look at existing payments."""

        self.check_intent(intent)
        allocation = self.allocate(intent)
        months = self.months_for(intent)
        paid_on = intent.paid_on or self._today()
        sibling_names = None
        if intent.siblings:
            sibling_names = SIBLING_NAME_SEPARATOR.join(
                member.name for member in intent.members if member.name
            )

        primary_type = intent.payment_type or (
            PaymentType.FAMILY if intent.siblings else PaymentType.SINGLE
        )
        primary = PaymentDraft(
            payment_id=self._id_factory(),
            student_id=intent.primary.student_id,
            student_name=intent.primary.name,
            amount=allocation.primary_amount,
            payment_type=primary_type,
            billing_mode=intent.billing_mode,
            period=intent.period,
            months_count=months,
            paid_on=paid_on,
            sibling_names=sibling_names,
            notes=intent.notes,
            recorded_by=intent.recorded_by,
        )
        siblings = tuple(
            PaymentDraft(
                payment_id=self._id_factory(),
                student_id=sibling.student_id,
                student_name=sibling.name,
                amount=amount,
                payment_type=PaymentType.FAMILY,
                billing_mode=intent.billing_mode,
                period=intent.period,
                months_count=months,
                paid_on=paid_on,
                position=position,
                sibling_names=sibling_names,
                sibling_student_id=primary.student_id,
                sibling_payment_id=primary.payment_id,
                notes=intent.notes,
                recorded_by=intent.recorded_by,
            )
            for position, (sibling, amount) in enumerate(
                zip(intent.siblings, allocation.sibling_amounts), start=1
            )
        )
        return PaymentGroup(
            primary=primary,
            siblings=siblings,
            allocation=allocation,
            billing_preferences={
                student_id: intent.billing_mode for student_id in intent.student_ids
            },
        )

    def create(
        self,
        intent: PaymentIntent,
        fetch_existing: FetchExistingPayments,
        persist: Callable[[PaymentGroup], T],
    ) -> T:
        """Validate, allocate and persist a payment group.

        ``fetch_existing`` returns the stored payments of the given students and
        ``persist`` must write the whole group atomically. Errors raised by
        ``persist`` propagate unchanged.
        """

        state = GroupState.VALIDATING
        LOGGER.debug(
            "Validating payment group",
            extra={"state": state.value, "student_ids": intent.student_ids},
        )
        self.check_intent(intent)
        conflicts = self.find_conflicts(
            intent, fetch_existing(intent.student_ids, intent.period)
        )
        if conflicts:
            state = GroupState.REJECTED
            LOGGER.warning(
                "Payment group rejected because of overlapping coverage",
                extra={
                    "state": state.value,
                    "blocked_student_ids": [conflict.student_id for conflict in conflicts],
                    "period": intent.period.label,
                },
            )
            raise PeriodOverlapError(conflicts)

        state = GroupState.ALLOCATING
        group = self.build(intent)

        state = GroupState.PERSISTING
        LOGGER.debug(
            "Persisting payment group",
            extra={
                "state": state.value,
                "primary_payment_id": group.primary.payment_id,
                "student_count": len(group.records),
                "total_amount": group.total_amount,
            },
        )
        result = persist(group)

        state = GroupState.DONE
        LOGGER.info(
            "Payment group recorded",
            extra={
                "state": state.value,
                "primary_payment_id": group.primary.payment_id,
                "billing_mode": intent.billing_mode.value,
                "total_amount": group.total_amount,
            },
        )
        return result


def find_member_conflicts(
    members: Sequence[FamilyMember],
    period: BillingPeriod,
    existing_payments: Iterable[ExistingPaymentRecord],
) -> list[StudentConflict]:
    """Run the overlap check for each member against their own history."""

    history: dict[str, list[ExistingPaymentRecord]] = defaultdict(list)
    for record in existing_payments:
        history[str(record.student_id)].append(record)

    conflicts: list[StudentConflict] = []
    for member in members:
        overlapping = find_overlaps(period, history.get(member.student_id, ()))
        if overlapping:
            conflicts.append(
                StudentConflict(
                    student_id=member.student_id,
                    student_name=member.name,
                    periods=tuple(overlapping),
                )
            )
    return conflicts
