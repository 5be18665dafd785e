from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..models.payment import BillingMode, PaymentType
from .common import PaginatedResponse


class PaymentGroupCreate(BaseModel):
    """Payload used to record a payment for one student and their siblings."""

    student_id: str = Field(..., min_length=1, description="Primary student paying")
    sibling_student_ids: list[str] = Field(
        default_factory=list, description="Siblings covered by the same payment"
    )
    billing_mode: BillingMode = Field(
        default=BillingMode.SEMESTER, description="Semester or monthly billing"
    )
    payment_type: Optional[PaymentType] = Field(
        default=None, description="Defaults to family when siblings are included"
    )
    amount: Optional[int] = Field(
        default=None,
        description="Explicit total in IQD; omit to use standard pricing, 0 records a free payment",
    )
    months: Optional[list[str]] = Field(
        default=None, description="Months paid for in monthly mode, as YYYY-MM keys"
    )
    months_count: Optional[int] = Field(
        default=None, description="Number of months covered when no month list is sent"
    )
    period_start: Optional[date] = Field(
        default=None, description="Start of coverage; a semester may start late"
    )
    period_end: Optional[date] = Field(default=None, description="End of coverage")
    paid_on: Optional[date] = Field(
        default=None, description="Date when the payment was received"
    )
    notes: Optional[str] = Field(default=None, description="Optional note for the payment")
    recorded_by: Optional[str] = Field(
        default=None, max_length=120, description="User who captured the payment"
    )

    @model_validator(mode="after")
    def _require_start_with_end(self):
        if self.period_end is not None and self.period_start is None:
            raise ValueError("period_start is required when period_end is given")
        return self


class PaymentRead(BaseModel):
    """One student's share of a payment."""

    id: str
    student_id: str
    student_name: Optional[str] = None
    amount: int
    paid_on: date
    payment_type: PaymentType
    billing_mode: BillingMode
    period_start: date
    period_end: date
    months_count: int
    position: int = 0
    sibling_names: Optional[str] = None
    sibling_student_id: Optional[str] = None
    sibling_payment_id: Optional[str] = None
    notes: Optional[str] = None
    recorded_by: Optional[str] = None
    voided: bool = False
    voided_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PaymentGroupRead(PaymentRead):
    """Primary payment with the sibling payments linked to it."""

    linked_payments: list[PaymentRead] = Field(default_factory=list)
    group_total: int = 0


class PaymentListResponse(PaginatedResponse[PaymentGroupRead]):
    """Paginated listing of payment groups."""

    total_amount: int = Field(
        0, ge=0, description="Sum of every active payment in the matching groups"
    )


class PaymentAmountUpdate(BaseModel):
    """Corrects the amount stored on a single payment record."""

    amount: int = Field(..., description="New amount in IQD")
    performed_by: Optional[str] = Field(default=None, max_length=120)
    notes: Optional[str] = None


class PeriodRead(BaseModel):
    start: date
    end: date
    label: str

    model_config = ConfigDict(from_attributes=True)


class StudentConflictRead(BaseModel):
    """Existing coverage that blocks a student."""

    student_id: str
    student_name: str
    periods: list[PeriodRead]
    description: str

    model_config = ConfigDict(from_attributes=True)


class OverlapCheckRequest(BaseModel):
    student_ids: list[str] = Field(..., min_length=1)
    period_start: date
    period_end: date


class OverlapCheckResponse(BaseModel):
    has_conflicts: bool
    conflicts: list[StudentConflictRead] = Field(default_factory=list)


class PaymentQuote(BaseModel):
    """Standard price for a group and how it would be split."""

    student_count: int
    billing_mode: BillingMode
    months_count: int
    total_amount: int
    rounded_total: int
    allocations: list[int]


class SuggestedAmount(BaseModel):
    student_count: int
    amount: int
