"""Roster lookups used by the payment workflows."""

from __future__ import annotations

from typing import Iterable, Optional, Sequence, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import models, schemas


class StudentNotFoundError(LookupError):
    """Raised when one or more referenced students do not exist."""

    def __init__(self, missing_ids: Sequence[str]):
        self.missing_ids = list(missing_ids)
        super().__init__(f"Student not found: {', '.join(self.missing_ids)}")


class StudentServiceError(RuntimeError):
    """Raised when student records cannot be stored."""


class StudentService:
    """Minimal student operations backing the payment screens."""

    @staticmethod
    def create_student(db: Session, data: schemas.StudentCreate) -> models.Student:
        student = models.Student(
            full_name=data.full_name.strip(),
            billing_preference=data.billing_preference,
            forgiven=data.forgiven,
        )
        try:
            db.add(student)
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise StudentServiceError("Unable to save the student at this time.") from exc
        db.refresh(student)
        return student

    @staticmethod
    def list_students(
        db: Session,
        *,
        billing_preference: Optional[models.BillingMode] = None,
        forgiven: Optional[bool] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> Tuple[Iterable[models.Student], int]:
        query = db.query(models.Student)
        if billing_preference is not None:
            query = query.filter(models.Student.billing_preference == billing_preference)
        if forgiven is not None:
            query = query.filter(models.Student.forgiven.is_(forgiven))

        total = query.count()
        items = (
            query.order_by(models.Student.full_name.asc())
            .offset(max(skip, 0))
            .limit(max(limit, 1))
            .all()
        )
        return items, total

    @staticmethod
    def get_student(db: Session, student_id: str) -> Optional[models.Student]:
        return db.query(models.Student).filter(models.Student.id == student_id).first()

    @staticmethod
    def get_students_by_ids(
        db: Session, student_ids: Sequence[str], *, for_update: bool = False
    ) -> list[models.Student]:
        """Return students in the order requested, raising if any id is unknown.

        With ``for_update`` the rows are locked on databases that support it so
        concurrent payments for the same student are serialized.
        """

        if not student_ids:
            return []
        query = db.query(models.Student).filter(models.Student.id.in_(list(student_ids)))
        if for_update and getattr(getattr(db, "bind", None), "dialect", None):
            if getattr(db.bind.dialect, "supports_for_update", False):
                query = query.with_for_update()

        found = {str(student.id): student for student in query.all()}
        missing = [student_id for student_id in student_ids if student_id not in found]
        if missing:
            raise StudentNotFoundError(missing)
        return [found[student_id] for student_id in student_ids]
