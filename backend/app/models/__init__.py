"""Expose SQLAlchemy models for convenient imports."""

from .audit import PaymentAuditAction, PaymentAuditLog
from .operational_metric import OperationalMetricEvent
from .payment import BillingMode, Payment, PaymentType
from .student import Student

__all__ = [
    "BillingMode",
    "OperationalMetricEvent",
    "Payment",
    "PaymentAuditAction",
    "PaymentAuditLog",
    "PaymentType",
    "Student",
]
