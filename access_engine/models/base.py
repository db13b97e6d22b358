"""
Base mixins for database models.

Provides common functionality:
- TimestampMixin: created_at, updated_at timestamps
- SchoolScopedMixin: school_id for multi-tenant isolation
- RecordMixin: plain-dict view of a row for the access engine
- generate_uuid: UUID generation for primary keys
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict

from sqlalchemy import Column, String, DateTime, inspect
from sqlalchemy.orm import declared_attr

from access_engine.db_base import Base  # noqa: F401 - re-exported for models


def generate_uuid() -> str:
    """Generate a UUID4 string for use as a primary key default."""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TimestampMixin:
    """Mixin that adds created_at and updated_at timestamp columns."""

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        comment="Timestamp when record was created"
    )

    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
        comment="Timestamp when record was last updated"
    )


class SchoolScopedMixin:
    """
    Mixin that adds school_id column for multi-tenant isolation.

    SECURITY: school_id is ONLY set from the caller's school context.
    NEVER accept school_id from a client payload.
    """

    @declared_attr
    def school_id(cls):
        return Column(
            String(255),
            nullable=False,
            index=True,
            comment="Owning school (tenant). NEVER from client input."
        )


class RecordMixin:
    """
    Plain-dict conversion for rows handed to the access engine.

    The engine works on plain records so it can sit behind any persistence
    collaborator, not only SQLAlchemy.
    """

    def to_record(self) -> Dict[str, Any]:
        mapper = inspect(self).mapper
        return {
            attr.key: getattr(self, attr.key)
            for attr in mapper.column_attrs
        }
