"""Audit trail models for payment operations."""

from __future__ import annotations

import enum

from sqlalchemy import Column, DateTime, Enum, ForeignKey, JSON, String, Text, func
from sqlalchemy.orm import relationship

from ..database import Base
from ..db_types import GUID, new_id


class PaymentAuditAction(str, enum.Enum):
    """Actions recorded in the payment audit log."""

    CREATED = "created"
    AMOUNT_UPDATED = "amount_updated"
    VOIDED = "voided"


class PaymentAuditLog(Base):
    """Stores audit entries for payment operations."""

    __tablename__ = "payment_audit_log"

    id = Column(GUID(), primary_key=True, default=new_id)
    payment_id = Column(
        GUID(),
        ForeignKey("payments.payment_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    action = Column(Enum(PaymentAuditAction), nullable=False)
    performed_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    performed_by = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    snapshot = Column(JSON, nullable=True)

    payment = relationship("Payment", back_populates="audit_trail")
