"""Router exposing the student roster."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from .. import models, schemas
from ..database import get_db
from ..services import StudentService, StudentServiceError

router = APIRouter()


@router.get("", response_model=schemas.StudentListResponse)
def list_students(
    db: Session = Depends(get_db),
    billing_preference: Optional[models.BillingMode] = Query(
        None, description="Only students billed this way"
    ),
    forgiven: Optional[bool] = Query(None, description="Filter by exemption flag"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
) -> schemas.StudentListResponse:
    items, total = StudentService.list_students(
        db,
        billing_preference=billing_preference,
        forgiven=forgiven,
        skip=skip,
        limit=limit,
    )
    return schemas.StudentListResponse(items=items, total=total, limit=limit, skip=skip)


@router.post("", response_model=schemas.StudentRead, status_code=status.HTTP_201_CREATED)
def create_student(
    student_in: schemas.StudentCreate, db: Session = Depends(get_db)
) -> schemas.StudentRead:
    try:
        return StudentService.create_student(db, student_in)
    except StudentServiceError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)
        ) from exc


@router.get("/{student_id}", response_model=schemas.StudentRead)
def get_student(student_id: str, db: Session = Depends(get_db)) -> schemas.StudentRead:
    student = StudentService.get_student(db, student_id)
    if student is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Student not found")
    return student
