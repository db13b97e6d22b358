"""
Entitlement and legacy subscription models.

An entitlement grants a capability to a user within a school:
- COURSE: access to one course (course_id required)
- ALL_COURSES: access to every course of the school
- COPY_LICENSE / DOWNLOAD_LICENSE: add-on rights, never a substitute for
  course access

Entitlements are created on purchase or grant and are never mutated by the
access engine; they simply stop being active once expires_at passes.
"""

from sqlalchemy import Column, String, DateTime, Index

from access_engine.models.base import (
    Base, TimestampMixin, SchoolScopedMixin, RecordMixin, generate_uuid,
)


class Entitlement(Base, TimestampMixin, SchoolScopedMixin, RecordMixin):
    """Persistent entitlement grant for one user in one school."""

    __tablename__ = "entitlements"

    id = Column(String(36), primary_key=True, default=generate_uuid)

    user_email = Column(
        String(255),
        nullable=False,
        index=True,
        comment="Grantee e-mail"
    )

    type = Column(
        String(32),
        nullable=False,
        comment="COURSE | ALL_COURSES | COPY_LICENSE | DOWNLOAD_LICENSE"
    )

    course_id = Column(
        String(36),
        nullable=True,
        index=True,
        comment="Required when type=COURSE"
    )

    starts_at = Column(
        DateTime(timezone=True),
        nullable=True,
        comment="Inactive before this instant. NULL = active immediately"
    )

    expires_at = Column(
        DateTime(timezone=True),
        nullable=True,
        comment="Inactive from this instant on. NULL = never expires"
    )

    __table_args__ = (
        Index("ix_entitlements_school_user", "school_id", "user_email"),
    )

    def __repr__(self) -> str:
        return (
            f"<Entitlement(school_id={self.school_id}, user_email={self.user_email}, "
            f"type={self.type}, course_id={self.course_id})>"
        )


class Subscription(Base, TimestampMixin, SchoolScopedMixin, RecordMixin):
    """
    Legacy subscription tier (free < premium < elite).

    Kept for backward compatibility; per-course entitlements supersede it.
    """

    __tablename__ = "subscriptions"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_email = Column(String(255), nullable=False, index=True)
    tier = Column(String(32), nullable=False, default="free")
