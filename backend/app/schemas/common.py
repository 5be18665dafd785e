"""Shared schema definitions."""

from __future__ import annotations

from typing import Generic, Sequence, TypeVar

from pydantic import BaseModel, Field

ItemT = TypeVar("ItemT")


class PaginatedResponse(BaseModel, Generic[ItemT]):
    """Page of results plus the size of the full result set."""

    items: Sequence[ItemT]
    total: int = Field(..., ge=0, description="Rows matching the filters")
    limit: int = Field(..., ge=1, description="Page size requested")
    skip: int = Field(..., ge=0, description="Rows skipped before this page")
