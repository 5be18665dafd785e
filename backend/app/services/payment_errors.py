"""Errors raised while validating and building family payments."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:  # pragma: no cover - only used for typing
    from .billing_periods import BillingPeriod


class InvalidGroupError(ValueError):
    """The requested payment group cannot be processed as submitted."""


@dataclass(frozen=True)
class StudentConflict:
    """Existing coverage that blocks one student from a new payment."""

    student_id: str
    student_name: str
    periods: tuple["BillingPeriod", ...]

    @property
    def description(self) -> str:
        ranges = ", ".join(period.label for period in self.periods)
        return f"{self.student_name}: {ranges}"


class PeriodOverlapError(Exception):
    """One or more students already paid for part of the requested period."""

    def __init__(self, conflicts: Sequence[StudentConflict]):
        self.conflicts = tuple(conflicts)
        names = ", ".join(conflict.student_name for conflict in self.conflicts)
        super().__init__(f"Existing payments overlap the requested period for: {names}")

    @property
    def blocked_student_ids(self) -> list[str]:
        return [conflict.student_id for conflict in self.conflicts]

    @property
    def conflict_descriptions(self) -> list[str]:
        return [conflict.description for conflict in self.conflicts]


class AllocationInvariantError(RuntimeError):
    """Allocated shares do not add back up to the payment total.

    Signals a defect in the allocator rather than bad input.
    """
