"""Persist structured events for rejected and failed payment attempts."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

from sqlalchemy.orm import Session

from .. import models

LOGGER = logging.getLogger(__name__)


class MetricOutcome(str):
    SUCCESS = "success"
    REJECTED = "rejected"
    ERROR = "error"


class ObservabilityService:
    """Records operational events outside the caller's transaction."""

    @staticmethod
    def record_event(
        db: Session,
        event_type: str,
        outcome: str,
        *,
        duration_ms: float | None = None,
        tags: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        event = models.OperationalMetricEvent(
            event_type=event_type,
            outcome=outcome,
            duration_ms=Decimal(str(round(duration_ms, 3))) if duration_ms is not None else None,
            tags=tags or {},
            details=metadata or None,
        )
        ObservabilityService._persist(db, event)

    @staticmethod
    def record_validation_result(
        db: Session,
        event_type: str,
        *,
        outcome: str,
        reason: str,
        tags: dict[str, Any] | None = None,
        duration_ms: float | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        ObservabilityService.record_event(
            db,
            event_type,
            outcome,
            duration_ms=duration_ms,
            tags={"reason": reason, **(tags or {})},
            metadata={"rejection_reason": reason, **(details or {})},
        )

    @staticmethod
    def _persist(db: Session, event: models.OperationalMetricEvent) -> None:
        # A separate session keeps the event even when the payment rolls back.
        try:
            with Session(bind=db.get_bind()) as metrics_session:
                metrics_session.add(event)
                metrics_session.commit()
        except Exception:  # pragma: no cover - metrics failures should not break flows
            LOGGER.exception("Failed to persist operational metric event")
