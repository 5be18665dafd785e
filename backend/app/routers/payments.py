"""Router exposing tuition payment operations."""

from __future__ import annotations

from datetime import date
from typing import Optional

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import models, schemas
from ..database import get_db
from ..services import (
    AllocationInvariantError,
    BillingPeriod,
    PaymentService,
    PaymentServiceError,
    PeriodOverlapError,
    PricingConfig,
    StudentConflict,
    StudentNotFoundError,
    get_pricing_config,
)

LOGGER = logging.getLogger(__name__)

router = APIRouter()

GENERIC_FAILURE_DETAIL = "The payment could not be processed. Please try again later."


def _conflict_payload(conflicts: list[StudentConflict]) -> list[dict]:
    return [
        schemas.StudentConflictRead.model_validate(conflict).model_dump(mode="json")
        for conflict in conflicts
    ]


def _group_read(
    payment: models.Payment, linked: Optional[list[models.Payment]] = None
) -> schemas.PaymentGroupRead:
    group = schemas.PaymentGroupRead.model_validate(payment)
    if linked is not None:
        group.linked_payments = [schemas.PaymentRead.model_validate(row) for row in linked]
    return group


def _get_payment_or_404(db: Session, payment_id: str) -> models.Payment:
    payment = PaymentService.get_payment(db, payment_id)
    if payment is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Payment not found")
    return payment


@router.get("", response_model=schemas.PaymentListResponse)
def list_payments(
    db: Session = Depends(get_db),
    student_id: Optional[str] = Query(None, description="Groups that include this student"),
    payment_type: Optional[models.PaymentType] = Query(None, description="Filter by payment type"),
    billing_mode: Optional[models.BillingMode] = Query(None, description="Filter by billing mode"),
    recorded_by: Optional[str] = Query(None, description="Filter by the user who recorded it"),
    start_date: Optional[date] = Query(None, description="Return payments on or after this date"),
    end_date: Optional[date] = Query(None, description="Return payments on or before this date"),
    skip: int = Query(0, ge=0, description="Number of records to skip"),
    limit: int = Query(50, ge=1, le=200, description="Maximum number of records to return"),
) -> schemas.PaymentListResponse:
    """Return active payment groups with pagination and filters."""

    if start_date and end_date and start_date > end_date:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="start_date cannot be after end_date",
        )

    try:
        items, total, total_amount = PaymentService.list_payments(
            db,
            student_id=student_id,
            payment_type=payment_type,
            billing_mode=billing_mode,
            recorded_by=recorded_by,
            start_date=start_date,
            end_date=end_date,
            skip=skip,
            limit=limit,
        )
    except (PaymentServiceError, SQLAlchemyError) as exc:
        LOGGER.exception(
            "Failed to list payments",
            exc_info=exc,
            extra={
                "start_date": str(start_date) if start_date else None,
                "end_date": str(end_date) if end_date else None,
                "limit": limit,
                "skip": skip,
            },
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Payments could not be loaded. Please try again later."},
        )
    return schemas.PaymentListResponse(
        items=[_group_read(item) for item in items],
        total=total,
        limit=limit,
        skip=skip,
        total_amount=total_amount,
    )


@router.post(
    "",
    response_model=schemas.PaymentGroupRead,
    status_code=status.HTTP_201_CREATED,
)
def create_payment(
    payment_in: schemas.PaymentGroupCreate,
    db: Session = Depends(get_db),
    pricing: PricingConfig = Depends(get_pricing_config),
) -> schemas.PaymentGroupRead:
    """Record a payment for a student and any siblings paying with them."""

    try:
        result = PaymentService.create_payment_group(db, payment_in, pricing)
    except PeriodOverlapError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "message": str(exc),
                "blocked_student_ids": exc.blocked_student_ids,
                "conflicts": _conflict_payload(list(exc.conflicts)),
            },
        ) from exc
    except StudentNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except (PaymentServiceError, AllocationInvariantError) as exc:
        LOGGER.exception("Failed to record payment", exc_info=exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=GENERIC_FAILURE_DETAIL,
        ) from exc

    LOGGER.info(
        "Payment created",
        extra={
            "payment_id": result.payment.id,
            "student_id": result.payment.student_id,
            "linked_payment_ids": [row.id for row in result.linked_payments],
            "total_amount": result.total_amount,
        },
    )
    return _group_read(result.payment, result.linked_payments)


@router.get(
    "/suggested-amounts",
    response_model=list[schemas.SuggestedAmount],
    summary="Full semester totals for each family size",
)
def suggested_amounts(
    pricing: PricingConfig = Depends(get_pricing_config),
) -> list[schemas.SuggestedAmount]:
    return [schemas.SuggestedAmount(**entry) for entry in pricing.suggested_amounts()]


@router.get("/quote", response_model=schemas.PaymentQuote, summary="Standard price for a group")
def quote_payment(
    student_count: int = Query(..., description="Students paying together"),
    billing_mode: models.BillingMode = Query(models.BillingMode.SEMESTER),
    months_count: Optional[int] = Query(None, description="Months covered"),
    period_start: Optional[date] = Query(
        None, description="Late start date used to pro-rate a semester"
    ),
    pricing: PricingConfig = Depends(get_pricing_config),
) -> schemas.PaymentQuote:
    try:
        return PaymentService.quote(
            pricing,
            student_count=student_count,
            billing_mode=billing_mode,
            months_count=months_count,
            period_start=period_start,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.post(
    "/overlaps/check",
    response_model=schemas.OverlapCheckResponse,
    summary="Check existing coverage before recording a payment",
)
def check_overlaps(
    payload: schemas.OverlapCheckRequest, db: Session = Depends(get_db)
) -> schemas.OverlapCheckResponse:
    try:
        period = BillingPeriod.from_bounds(payload.period_start, payload.period_end)
        conflicts = PaymentService.check_overlaps(db, payload.student_ids, period)
    except StudentNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return schemas.OverlapCheckResponse(
        has_conflicts=bool(conflicts),
        conflicts=[schemas.StudentConflictRead.model_validate(item) for item in conflicts],
    )


@router.get("/{payment_id}", response_model=schemas.PaymentGroupRead)
def get_payment(payment_id: str, db: Session = Depends(get_db)) -> schemas.PaymentGroupRead:
    return _group_read(_get_payment_or_404(db, payment_id))


@router.put("/{payment_id}/amount", response_model=schemas.PaymentRead)
def update_payment_amount(
    payment_id: str,
    payload: schemas.PaymentAmountUpdate,
    db: Session = Depends(get_db),
) -> schemas.PaymentRead:
    payment = _get_payment_or_404(db, payment_id)
    try:
        return PaymentService.update_amount(
            db,
            payment,
            payload.amount,
            performed_by=payload.performed_by,
            notes=payload.notes,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except PaymentServiceError as exc:
        LOGGER.exception("Failed to update payment amount", exc_info=exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=GENERIC_FAILURE_DETAIL,
        ) from exc


@router.delete("/{payment_id}", status_code=status.HTTP_204_NO_CONTENT)
def void_payment(
    payment_id: str,
    performed_by: Optional[str] = Query(None, description="User voiding the payment"),
    reason: Optional[str] = Query(None, description="Why the payment is voided"),
    db: Session = Depends(get_db),
) -> Response:
    payment = _get_payment_or_404(db, payment_id)
    try:
        PaymentService.void_payment(db, payment, performed_by=performed_by, notes=reason)
    except PaymentServiceError as exc:
        LOGGER.exception("Failed to void payment", exc_info=exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=GENERIC_FAILURE_DETAIL,
        ) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)
