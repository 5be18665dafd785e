"""Routers package."""

from .payments import router as payments_router
from .students import router as students_router

__all__ = [
    "payments_router",
    "students_router",
]
