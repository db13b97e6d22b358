"""
Course content models: courses, lessons, enrollments and downloads.
"""

from sqlalchemy import Column, String, Integer, Boolean, DateTime, Text, Numeric, Index

from access_engine.models.base import (
    Base, TimestampMixin, SchoolScopedMixin, RecordMixin, generate_uuid,
)


class Course(Base, TimestampMixin, SchoolScopedMixin, RecordMixin):
    """
    A course offered by a school.

    Two access models may coexist on one row:
    - access_level (FREE | PAID | PRIVATE): modern, entitlement based
    - access_tier (free | premium | elite): legacy subscription tier
    """

    __tablename__ = "courses"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    title = Column(String(255), nullable=False, default="")
    access_level = Column(String(16), nullable=True)
    access_tier = Column(String(16), nullable=True)
    is_published = Column(Boolean, nullable=False, default=False)


class Lesson(Base, TimestampMixin, SchoolScopedMixin, RecordMixin):
    """A lesson within a course, optionally previewable and drip scheduled."""

    __tablename__ = "lessons"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    course_id = Column(String(36), nullable=False, index=True)
    title = Column(String(255), nullable=False, default="")
    order = Column(Integer, nullable=False, default=0)
    is_preview = Column(Boolean, nullable=False, default=False)

    content = Column(Text, nullable=True)
    video_url = Column(String(1024), nullable=True)
    audio_url = Column(String(1024), nullable=True)
    duration_seconds = Column(Integer, nullable=True)

    drip_mode = Column(
        String(16),
        nullable=True,
        comment="none | offset | absolute"
    )
    drip_offset_days = Column(Integer, nullable=True)
    drip_unlock_at = Column(DateTime(timezone=True), nullable=True)


class Enrollment(Base, TimestampMixin, SchoolScopedMixin, RecordMixin):
    """Enrollment event of a user in a course. Drives offset drip schedules."""

    __tablename__ = "enrollments"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_email = Column(String(255), nullable=False)
    course_id = Column(String(36), nullable=False)
    enrolled_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_enrollments_school_user_course", "school_id", "user_email", "course_id"),
    )


class Download(Base, TimestampMixin, SchoolScopedMixin, RecordMixin):
    """A downloadable file, free or gated behind a course."""

    __tablename__ = "downloads"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    course_id = Column(String(36), nullable=True, index=True)
    title = Column(String(255), nullable=False, default="")
    price = Column(Numeric(10, 2), nullable=True)
    file_url = Column(String(1024), nullable=False)
