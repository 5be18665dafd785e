"""Split a family payment across the students it covers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from ..models.payment import BillingMode
from .payment_errors import AllocationInvariantError, InvalidGroupError
from .pricing import DEFAULT_PRICING, PricingConfig, round_half_up

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class AllocationResult:
    """Amounts for the primary student and each sibling, in sibling order."""

    total_amount: int
    primary_amount: int
    sibling_amounts: tuple[int, ...] = ()

    @property
    def amounts(self) -> tuple[int, ...]:
        return (self.primary_amount, *self.sibling_amounts)

    @property
    def student_count(self) -> int:
        return 1 + len(self.sibling_amounts)


def _split_evenly(total_amount: int, student_count: int) -> tuple[int, list[int]]:
    per_student, remainder = divmod(total_amount, student_count)
    return per_student + remainder, [per_student] * (student_count - 1)


def _split_proportionally(
    total_amount: int, student_count: int, pricing: PricingConfig
) -> tuple[int, list[int]]:
    breakdown = pricing.family_breakdown(student_count)
    standard_total = sum(breakdown)
    if standard_total == 0:
        return total_amount, [0] * (student_count - 1)

    total = Decimal(total_amount)
    primary = round_half_up(Decimal(breakdown[0]) * total / standard_total)
    siblings: list[int] = []
    distributed = primary
    for index, standard_share in enumerate(breakdown[1:], start=1):
        if index == student_count - 1:
            # Last sibling takes whatever is left so rounding never drifts.
            siblings.append(total_amount - distributed)
            break
        share = round_half_up(Decimal(standard_share) * total / standard_total)
        # Rounding up must not hand out more than is left for the later siblings.
        share = min(share, total_amount - distributed)
        siblings.append(share)
        distributed += share
    return primary, siblings


def allocate(
    total_amount: int,
    student_count: int,
    billing_mode: BillingMode,
    pricing: PricingConfig = DEFAULT_PRICING,
) -> AllocationResult:
    """Distribute ``total_amount`` over the primary student and siblings.

    Monthly payments are split evenly with the remainder going to the primary
    student. Semester payments keep the shape of the standard family
    breakdown, so an unmodified family total reproduces the standard per
    student prices exactly; intermediate shares are rounded half up but never
    exceed what is left, so the last sibling absorbs the remainder.
    """

    if student_count < 1:
        raise InvalidGroupError("At least one student is required to allocate a payment")
    if total_amount < 0:
        raise InvalidGroupError("Payment amount cannot be negative")

    if BillingMode(billing_mode) is BillingMode.MONTHLY:
        primary, siblings = _split_evenly(total_amount, student_count)
    else:
        if student_count > pricing.max_family_size:
            raise InvalidGroupError(
                f"A family payment covers at most {pricing.max_family_size} students"
            )
        primary, siblings = _split_proportionally(total_amount, student_count, pricing)

    result = AllocationResult(
        total_amount=total_amount,
        primary_amount=primary,
        sibling_amounts=tuple(siblings),
    )
    if (
        sum(result.amounts) != total_amount
        or result.student_count != student_count
        or min(result.amounts) < 0
    ):
        LOGGER.error(
            "Allocation does not add up or has a negative share",
            extra={"total_amount": total_amount, "amounts": list(result.amounts)},
        )
        raise AllocationInvariantError(
            f"Allocated {list(result.amounts)} across {result.student_count} students "
            f"for a payment total of {total_amount}"
        )
    return result
