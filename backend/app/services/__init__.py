"""Service layer encapsulating business logic for API routers."""

from .allocation import AllocationResult, allocate
from .billing_periods import (
    BillingPeriod,
    ExistingPaymentRecord,
    find_overlaps,
    format_date_range,
    monthly_period,
    periods_overlap,
    semester_period,
)
from .observability import MetricOutcome, ObservabilityService
from .payment_errors import (
    AllocationInvariantError,
    InvalidGroupError,
    PeriodOverlapError,
    StudentConflict,
)
from .payment_groups import (
    ExplicitAmount,
    FamilyMember,
    GroupState,
    PaymentDraft,
    PaymentGroup,
    PaymentGroupBuilder,
    PaymentIntent,
    StandardAmount,
    amount_spec,
)
from .payments import PaymentGroupResult, PaymentService, PaymentServiceError
from .pricing import (
    DEFAULT_PRICING,
    PricingConfig,
    SemesterTerm,
    family_breakdown,
    family_total,
    get_pricing_config,
    monthly_total,
    round_to_nearest_500,
)
from .students import StudentNotFoundError, StudentService, StudentServiceError

__all__ = [
    "AllocationInvariantError",
    "AllocationResult",
    "BillingPeriod",
    "DEFAULT_PRICING",
    "ExistingPaymentRecord",
    "ExplicitAmount",
    "FamilyMember",
    "GroupState",
    "InvalidGroupError",
    "MetricOutcome",
    "ObservabilityService",
    "PaymentDraft",
    "PaymentGroup",
    "PaymentGroupBuilder",
    "PaymentGroupResult",
    "PaymentIntent",
    "PaymentService",
    "PaymentServiceError",
    "PeriodOverlapError",
    "PricingConfig",
    "SemesterTerm",
    "StandardAmount",
    "StudentConflict",
    "StudentNotFoundError",
    "StudentService",
    "StudentServiceError",
    "allocate",
    "amount_spec",
    "family_breakdown",
    "family_total",
    "find_overlaps",
    "format_date_range",
    "get_pricing_config",
    "monthly_period",
    "monthly_total",
    "periods_overlap",
    "round_to_nearest_500",
    "semester_period",
]
