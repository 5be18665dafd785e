"""Custom SQLAlchemy column types shared by the models."""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy.dialects import postgresql
from sqlalchemy.types import CHAR, TypeDecorator


class GUID(TypeDecorator):
    """UUID column that reads back as text.

    PostgreSQL gets its native ``UUID`` type; every other engine stores the
    36-character string form. Identifiers are always handed to application
    code as ``str`` so student and payment ids compare equal regardless of
    the backing database.
    """

    impl = CHAR
    cache_ok = True

    def load_dialect_impl(self, dialect):  # type: ignore[override]
        if dialect.name == "postgresql":
            return dialect.type_descriptor(postgresql.UUID(as_uuid=True))
        return dialect.type_descriptor(CHAR(36))

    def process_bind_param(self, value: Any, dialect):  # type: ignore[override]
        if value is None:
            return None
        if dialect.name != "postgresql":
            return str(value)
        return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))

    def process_result_value(self, value: Any, dialect):  # type: ignore[override]
        return None if value is None else str(value)


def new_id() -> str:
    """Return a fresh identifier in the textual form used across the app."""

    return str(uuid.uuid4())
