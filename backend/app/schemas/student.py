from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..models.payment import BillingMode
from .common import PaginatedResponse


class StudentBase(BaseModel):
    """Shared attributes for students."""

    full_name: str = Field(..., min_length=1, description="Student display name")
    billing_preference: BillingMode = Field(
        default=BillingMode.SEMESTER, description="Preferred billing mode"
    )
    forgiven: bool = Field(
        default=False, description="Exempt from payment requirements"
    )

    @field_validator("full_name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("full_name cannot be blank")
        return stripped


class StudentCreate(StudentBase):
    """Payload used to add a student to the roster."""

    pass


class StudentRead(StudentBase):
    """Student as returned by the API."""

    id: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class StudentListResponse(PaginatedResponse[StudentRead]):
    """Paginated student listing."""

    pass
