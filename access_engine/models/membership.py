"""
School membership model.

A membership is the only source of a user's role inside a school. Callers
never assert their own role; the HTTP layer looks it up here.
"""

from sqlalchemy import Column, String, Index

from access_engine.models.base import (
    Base, TimestampMixin, SchoolScopedMixin, RecordMixin, generate_uuid,
)


class SchoolMembership(Base, TimestampMixin, SchoolScopedMixin, RecordMixin):
    """Role of one user in one school."""

    __tablename__ = "school_memberships"

    id = Column(String(36), primary_key=True, default=generate_uuid)

    user_email = Column(
        String(255),
        nullable=False,
        index=True,
        comment="Member e-mail, lower case"
    )

    role = Column(
        String(32),
        nullable=False,
        default="STUDENT",
        comment="OWNER | ADMIN | INSTRUCTOR | TA | MODERATOR | STUDENT"
    )

    __table_args__ = (
        Index("ix_school_memberships_school_user", "school_id", "user_email", unique=True),
    )

    def __repr__(self) -> str:
        return (
            f"<SchoolMembership(school_id={self.school_id}, "
            f"user_email={self.user_email}, role={self.role})>"
        )
