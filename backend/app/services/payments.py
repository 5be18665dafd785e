"""Business logic for recording, listing and correcting tuition payments."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from time import perf_counter
from typing import Iterable, Optional, Sequence, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, aliased, selectinload

from .. import models, schemas
from .allocation import AllocationResult, allocate
from .billing_periods import (
    BillingPeriod,
    ExistingPaymentRecord,
    monthly_period,
    semester_period,
)
from .observability import MetricOutcome, ObservabilityService
from .payment_errors import InvalidGroupError, PeriodOverlapError, StudentConflict
from .payment_groups import (
    FamilyMember,
    PaymentDraft,
    PaymentGroup,
    PaymentGroupBuilder,
    PaymentIntent,
    amount_spec,
    find_member_conflicts,
)
from .pricing import PricingConfig, get_pricing_config, months_between, round_to_nearest_500
from .students import StudentNotFoundError, StudentService

LOGGER = logging.getLogger(__name__)


class PaymentServiceError(RuntimeError):
    """Raised when payment operations cannot be completed."""


@dataclass
class PaymentGroupResult:
    """Stored primary payment, its linked siblings and the split used."""

    payment: models.Payment
    linked_payments: list[models.Payment]
    allocation: AllocationResult

    @property
    def total_amount(self) -> int:
        return self.allocation.total_amount


class PaymentService:
    """Operations for reading and recording tuition payments."""

    @staticmethod
    def fetch_existing_payments(
        db: Session, student_ids: Sequence[str], period: BillingPeriod
    ) -> list[ExistingPaymentRecord]:
        """Active payments of the given students that touch ``period``.

        The query is inclusive on both bounds; the exact overlap rule is
        applied afterwards in Python.
        """

        if not student_ids:
            return []
        rows = (
            db.query(
                models.Payment.id,
                models.Payment.student_id,
                models.Payment.period_start,
                models.Payment.period_end,
                models.Payment.voided,
            )
            .filter(models.Payment.student_id.in_(list(student_ids)))
            .filter(models.Payment.voided.is_(False))
            .filter(models.Payment.period_start <= period.end)
            .filter(models.Payment.period_end >= period.start)
            .all()
        )
        return [
            ExistingPaymentRecord(
                student_id=str(row.student_id),
                period_start=row.period_start,
                period_end=row.period_end,
                voided=bool(row.voided),
                payment_id=str(row.id),
            )
            for row in rows
        ]

    @staticmethod
    def resolve_period(
        data: schemas.PaymentGroupCreate, pricing: PricingConfig
    ) -> Tuple[BillingPeriod, Optional[int]]:
        """Work out the covered period and month count for a request."""

        if data.billing_mode is models.BillingMode.MONTHLY:
            if data.months:
                return monthly_period(data.months)
            if data.period_start is None or data.period_end is None:
                raise InvalidGroupError(
                    "Monthly payments need the months being paid for"
                )
            period = BillingPeriod.from_bounds(data.period_start, data.period_end)
            months_count = data.months_count
            if months_count is None:
                # A started month is billed as a whole month.
                months_count = max(
                    1, months_between(period.start, period.end + timedelta(days=1))
                )
            return period, months_count

        if data.period_start is not None and data.period_end is not None:
            return BillingPeriod.from_bounds(data.period_start, data.period_end), data.months_count
        return semester_period(pricing.semester, data.period_start), data.months_count

    @classmethod
    def build_intent(
        cls,
        db: Session,
        data: schemas.PaymentGroupCreate,
        pricing: PricingConfig,
    ) -> PaymentIntent:
        period, months_count = cls.resolve_period(data, pricing)
        student_ids = [data.student_id, *data.sibling_student_ids]
        students = StudentService.get_students_by_ids(db, student_ids, for_update=True)
        members = [
            FamilyMember(student_id=str(student.id), name=student.full_name)
            for student in students
        ]
        return PaymentIntent.for_members(
            members,
            billing_mode=data.billing_mode,
            period=period,
            months_count=months_count,
            amount=amount_spec(data.amount),
            payment_type=data.payment_type,
            notes=data.notes,
            recorded_by=data.recorded_by,
            paid_on=data.paid_on,
        )

    @classmethod
    def create_payment_group(
        cls,
        db: Session,
        data: schemas.PaymentGroupCreate,
        pricing: Optional[PricingConfig] = None,
    ) -> PaymentGroupResult:
        """Record a payment for a student and their siblings in one transaction.

        Raises ``PeriodOverlapError`` when any participant already has active
        coverage overlapping the period; nothing is written in that case.
        """

        start = perf_counter()
        pricing = pricing or get_pricing_config()
        tags: dict[str, object] = {
            "student_id": data.student_id,
            "sibling_count": len(data.sibling_student_ids),
            "billing_mode": data.billing_mode.value,
            "has_explicit_amount": data.amount is not None,
        }

        try:
            intent = cls.build_intent(db, data, pricing)
            builder = PaymentGroupBuilder(pricing)
            return builder.create(
                intent,
                fetch_existing=lambda ids, period: cls.fetch_existing_payments(db, ids, period),
                persist=lambda group: cls._persist_group(db, group),
            )
        except PeriodOverlapError as exc:
            ObservabilityService.record_validation_result(
                db,
                "payments.overlap_rejected",
                outcome=MetricOutcome.REJECTED,
                reason=str(exc),
                tags=tags,
                duration_ms=(perf_counter() - start) * 1000,
                details={"blocked_student_ids": exc.blocked_student_ids},
            )
            raise
        except (ValueError, StudentNotFoundError) as exc:
            ObservabilityService.record_validation_result(
                db,
                "payments.validation_failed",
                outcome=MetricOutcome.REJECTED,
                reason=str(exc),
                tags=tags,
                duration_ms=(perf_counter() - start) * 1000,
            )
            raise
        except PaymentServiceError as exc:
            ObservabilityService.record_validation_result(
                db,
                "payments.persistence_failed",
                outcome=MetricOutcome.ERROR,
                reason=str(exc.__cause__ or exc),
                tags=tags,
                duration_ms=(perf_counter() - start) * 1000,
            )
            raise

    @staticmethod
    def _payment_from_draft(draft: PaymentDraft) -> models.Payment:
        return models.Payment(
            id=draft.payment_id,
            student_id=draft.student_id,
            amount=draft.amount,
            paid_on=draft.paid_on,
            payment_type=draft.payment_type,
            billing_mode=draft.billing_mode,
            period_start=draft.period.start,
            period_end=draft.period.end,
            months_count=draft.months_count,
            position=draft.position,
            sibling_names=draft.sibling_names,
            sibling_student_id=draft.sibling_student_id,
            sibling_payment_id=draft.sibling_payment_id,
            notes=draft.notes,
            recorded_by=draft.recorded_by,
            voided=False,
        )

    @classmethod
    def _persist_group(cls, db: Session, group: PaymentGroup) -> PaymentGroupResult:
        primary = cls._payment_from_draft(group.primary)
        linked = []
        for draft in group.siblings:
            payment = cls._payment_from_draft(draft)
            payment.primary_payment = primary
            linked.append(payment)

        try:
            db.add(primary)
            db.add_all(linked)

            students = (
                db.query(models.Student)
                .filter(models.Student.id.in_(list(group.billing_preferences)))
                .all()
            )
            for student in students:
                student.billing_preference = group.billing_preferences[str(student.id)]

            db.add(
                models.PaymentAuditLog(
                    payment=primary,
                    action=models.PaymentAuditAction.CREATED,
                    performed_by=group.primary.recorded_by,
                    snapshot={
                        "total_amount": group.total_amount,
                        "amounts": list(group.allocation.amounts),
                        "payment_type": group.primary.payment_type.value,
                        "billing_mode": group.primary.billing_mode.value,
                        "student_count": len(group.records),
                        "student_ids": [draft.student_id for draft in group.records],
                        "student_names": [draft.student_name for draft in group.records],
                        "period_start": group.primary.period.start.isoformat(),
                        "period_end": group.primary.period.end.isoformat(),
                        "months_count": group.primary.months_count,
                    },
                )
            )
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            LOGGER.exception(
                "Failed to store payment group",
                extra={"primary_payment_id": group.primary.payment_id},
            )
            raise PaymentServiceError("Unable to record payment at this time.") from exc

        db.refresh(primary)
        for payment in linked:
            db.refresh(payment)
        return PaymentGroupResult(
            payment=primary, linked_payments=linked, allocation=group.allocation
        )

    @staticmethod
    def list_payments(
        db: Session,
        *,
        student_id: Optional[str] = None,
        payment_type: Optional[models.PaymentType] = None,
        billing_mode: Optional[models.BillingMode] = None,
        recorded_by: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> Tuple[Iterable[models.Payment], int, int]:
        """Active payment groups, newest first, with the summed group amounts."""

        conditions = [
            models.Payment.sibling_payment_id.is_(None),
            models.Payment.voided.is_(False),
        ]
        if student_id:
            conditions.append(
                or_(
                    models.Payment.student_id == student_id,
                    models.Payment.linked_payments.any(
                        models.Payment.student_id == student_id
                    ),
                )
            )
        if payment_type:
            conditions.append(models.Payment.payment_type == payment_type)
        if billing_mode:
            conditions.append(models.Payment.billing_mode == billing_mode)
        if recorded_by:
            conditions.append(models.Payment.recorded_by == recorded_by)
        if start_date:
            conditions.append(models.Payment.paid_on >= start_date)
        if end_date:
            conditions.append(models.Payment.paid_on <= end_date)

        query = (
            db.query(models.Payment)
            .options(
                selectinload(models.Payment.student),
                selectinload(models.Payment.linked_payments).selectinload(
                    models.Payment.student
                ),
            )
            .filter(*conditions)
        )

        total = query.count()
        items = (
            query.order_by(
                models.Payment.paid_on.desc(),
                models.Payment.created_at.desc(),
            )
            .offset(max(skip, 0))
            .limit(max(limit, 1))
            .all()
        )

        root_ids = select(models.Payment.id).where(*conditions)
        row = aliased(models.Payment)
        total_amount = (
            db.query(func.coalesce(func.sum(row.amount), 0))
            .filter(row.voided.is_(False))
            .filter(or_(row.id.in_(root_ids), row.sibling_payment_id.in_(root_ids)))
            .scalar()
        )
        return items, total, int(total_amount or 0)

    @staticmethod
    def get_payment(db: Session, payment_id: str) -> Optional[models.Payment]:
        return (
            db.query(models.Payment)
            .options(selectinload(models.Payment.student))
            .options(selectinload(models.Payment.linked_payments))
            .options(selectinload(models.Payment.audit_trail))
            .filter(models.Payment.id == payment_id)
            .first()
        )

    @staticmethod
    def update_amount(
        db: Session,
        payment: models.Payment,
        amount: int,
        *,
        performed_by: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> models.Payment:
        """Change the amount of one record; the rest of the group is untouched."""

        if amount < 0:
            raise InvalidGroupError("Payment amount cannot be negative")
        if payment.voided:
            raise InvalidGroupError("Voided payments cannot be edited")

        previous = payment.amount
        payment.amount = amount
        db.add(
            models.PaymentAuditLog(
                payment=payment,
                action=models.PaymentAuditAction.AMOUNT_UPDATED,
                performed_by=performed_by,
                notes=notes,
                snapshot={"previous_amount": previous, "amount": amount},
            )
        )
        try:
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise PaymentServiceError("Unable to update payment at this time.") from exc
        db.refresh(payment)
        LOGGER.info(
            "Payment amount updated",
            extra={"payment_id": payment.id, "previous_amount": previous, "amount": amount},
        )
        return payment

    @staticmethod
    def void_payment(
        db: Session,
        payment: models.Payment,
        *,
        performed_by: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> list[str]:
        """Void a payment; voiding a primary also voids its linked payments.

        Returns the ids of the records voided by this call.
        """

        if payment.voided:
            return []

        targets = [payment]
        if payment.is_primary:
            targets.extend(linked for linked in payment.linked_payments if not linked.voided)

        voided_at = datetime.now(timezone.utc)
        for target in targets:
            target.voided = True
            target.voided_at = voided_at

        voided_ids = [str(target.id) for target in targets]
        db.add(
            models.PaymentAuditLog(
                payment=payment,
                action=models.PaymentAuditAction.VOIDED,
                performed_by=performed_by,
                notes=notes,
                snapshot={
                    "amount": payment.amount,
                    "voided_payment_ids": voided_ids,
                    "period_start": payment.period_start.isoformat(),
                    "period_end": payment.period_end.isoformat(),
                },
            )
        )
        try:
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise PaymentServiceError("Unable to void payment at this time.") from exc

        LOGGER.info(
            "Payment voided",
            extra={"payment_id": payment.id, "voided_payment_ids": voided_ids},
        )
        return voided_ids

    @classmethod
    def check_overlaps(
        cls,
        db: Session,
        student_ids: Sequence[str],
        period: BillingPeriod,
    ) -> list[StudentConflict]:
        """Report existing coverage for each student without recording anything."""

        students = StudentService.get_students_by_ids(db, list(dict.fromkeys(student_ids)))
        members = [
            FamilyMember(student_id=str(student.id), name=student.full_name)
            for student in students
        ]
        existing = cls.fetch_existing_payments(
            db, [member.student_id for member in members], period
        )
        return find_member_conflicts(members, period, existing)

    @staticmethod
    def quote(
        pricing: PricingConfig,
        *,
        student_count: int,
        billing_mode: models.BillingMode = models.BillingMode.SEMESTER,
        months_count: Optional[int] = None,
        period_start: Optional[date] = None,
    ) -> schemas.PaymentQuote:
        """Standard price for a group and the per-student split."""

        if student_count < 1:
            raise InvalidGroupError("Select at least one student")
        if student_count > pricing.max_family_size:
            raise InvalidGroupError(
                f"A payment group covers at most {pricing.max_family_size} students"
            )

        if billing_mode is models.BillingMode.MONTHLY:
            if months_count is None or months_count < 1:
                raise InvalidGroupError("Monthly payments must cover at least one month")
            total = pricing.monthly_total(months_count, student_count)
        else:
            if months_count is None:
                months_count = (
                    pricing.semester.remaining_months(period_start)
                    if period_start is not None
                    else pricing.semester.months
                )
            elif months_count < 1:
                raise InvalidGroupError("months_count must be greater than zero")
            total = pricing.semester_total(student_count, months_count)

        allocation = allocate(total, student_count, billing_mode, pricing)
        return schemas.PaymentQuote(
            student_count=student_count,
            billing_mode=billing_mode,
            months_count=months_count,
            total_amount=total,
            rounded_total=round_to_nearest_500(total),
            allocations=list(allocation.amounts),
        )
