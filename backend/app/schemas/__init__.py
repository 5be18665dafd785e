"""Expose Pydantic schemas for convenient imports."""

from .common import PaginatedResponse
from .payment import (
    OverlapCheckRequest,
    OverlapCheckResponse,
    PaymentAmountUpdate,
    PaymentGroupCreate,
    PaymentGroupRead,
    PaymentListResponse,
    PaymentQuote,
    PaymentRead,
    PeriodRead,
    StudentConflictRead,
    SuggestedAmount,
)
from .student import StudentCreate, StudentListResponse, StudentRead

__all__ = [
    "OverlapCheckRequest",
    "OverlapCheckResponse",
    "PaginatedResponse",
    "PaymentAmountUpdate",
    "PaymentGroupCreate",
    "PaymentGroupRead",
    "PaymentListResponse",
    "PaymentQuote",
    "PaymentRead",
    "PeriodRead",
    "StudentConflictRead",
    "StudentCreate",
    "StudentListResponse",
    "StudentRead",
    "SuggestedAmount",
]
