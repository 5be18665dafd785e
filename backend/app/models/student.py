"""SQLAlchemy model definitions for students."""

from __future__ import annotations

from sqlalchemy import Boolean, Column, DateTime, String, func
from sqlalchemy.orm import relationship

from ..database import Base
from ..db_types import GUID, new_id
from .payment import BILLING_MODE_ENUM, BillingMode


class Student(Base):
    """Represents a student on the roster."""

    __tablename__ = "students"

    id = Column("student_id", GUID(), primary_key=True, default=new_id)
    full_name = Column(String, nullable=False)
    billing_preference = Column(
        BILLING_MODE_ENUM,
        nullable=False,
        default=BillingMode.SEMESTER,
        comment="Mode used by the last recorded payment; drives which list the student appears on",
    )
    forgiven = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    payments = relationship(
        "Payment",
        back_populates="student",
        foreign_keys="Payment.student_id",
    )
