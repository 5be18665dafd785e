"""SQLAlchemy model definitions for tuition payments."""

from __future__ import annotations

import enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import relationship

from ..database import Base
from ..db_types import GUID, new_id


class BillingMode(str, enum.Enum):
    """How a payment is priced: the whole semester or per month."""

    SEMESTER = "semester"
    MONTHLY = "monthly"


class PaymentType(str, enum.Enum):
    """Supported payment categories."""

    SINGLE = "single"
    FAMILY = "family"
    DONATION = "donation"
    SCHOLARSHIP = "scholarship"


def _enum_column_type(enum_cls: type[enum.Enum], name: str) -> Enum:
    return Enum(
        enum_cls,
        name=name,
        values_callable=lambda members: [member.value for member in members],
        validate_strings=True,
    )


BILLING_MODE_ENUM = _enum_column_type(BillingMode, "billing_mode_enum")
PAYMENT_TYPE_ENUM = _enum_column_type(PaymentType, "payment_type_enum")


class Payment(Base):
    """One student's share of a recorded payment.

    Family payments are stored as a primary row plus one linked row per
    sibling. Linked rows point at the primary through ``sibling_payment_id``
    and at the primary student through ``sibling_student_id``.
    """

    __tablename__ = "payments"
    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_payments_amount_non_negative"),
        CheckConstraint("period_end > period_start", name="ck_payments_valid_period"),
        CheckConstraint("months_count >= 0", name="ck_payments_months_non_negative"),
    )

    id = Column("payment_id", GUID(), primary_key=True, default=new_id)
    student_id = Column(
        GUID(),
        ForeignKey("students.student_id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    amount = Column(Integer, nullable=False)
    paid_on = Column(Date, nullable=False)
    payment_type = Column(PAYMENT_TYPE_ENUM, nullable=False, default=PaymentType.SINGLE)
    billing_mode = Column(BILLING_MODE_ENUM, nullable=False, default=BillingMode.SEMESTER)
    period_start = Column(Date, nullable=False)
    period_end = Column(Date, nullable=False)
    months_count = Column(Integer, nullable=False, default=0)
    # 0 for the primary row, then siblings in submission order.
    position = Column(Integer, nullable=False, default=0)
    sibling_names = Column(Text, nullable=True)
    sibling_student_id = Column(
        GUID(),
        ForeignKey("students.student_id", ondelete="SET NULL"),
        nullable=True,
    )
    sibling_payment_id = Column(
        GUID(),
        ForeignKey("payments.payment_id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    notes = Column(Text, nullable=True)
    recorded_by = Column(String(120), nullable=True)
    voided = Column(Boolean, nullable=False, default=False)
    voided_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    student = relationship(
        "Student", back_populates="payments", foreign_keys=[student_id]
    )
    sibling_student = relationship("Student", foreign_keys=[sibling_student_id])
    primary_payment = relationship(
        "Payment", remote_side=[id], back_populates="linked_payments"
    )
    linked_payments = relationship(
        "Payment",
        back_populates="primary_payment",
        order_by="Payment.position",
    )
    audit_trail = relationship(
        "PaymentAuditLog",
        back_populates="payment",
        cascade="all, delete-orphan",
    )

    @property
    def is_primary(self) -> bool:
        return self.sibling_payment_id is None

    @property
    def student_name(self) -> str | None:
        return self.student.full_name if self.student else None

    @property
    def group_total(self) -> int:
        """Active amount of this payment plus its linked sibling payments."""

        rows = [self, *self.linked_payments]
        return sum(row.amount or 0 for row in rows if not row.voided)


Index("payments_student_period_idx", Payment.student_id, Payment.period_start, Payment.period_end)
Index("payments_paid_on_idx", Payment.paid_on)
