"""
Per-school content protection policy and the append-only event log.
"""

from sqlalchemy import Column, String, Integer, Boolean, Text, JSON

from access_engine.models.base import (
    Base, TimestampMixin, SchoolScopedMixin, RecordMixin, generate_uuid,
)


class ContentProtectionPolicy(Base, TimestampMixin, SchoolScopedMixin, RecordMixin):
    """
    Content protection configuration, one per school.

    Missing rows fall back to the configured default policy.
    """

    __tablename__ = "content_protection_policies"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    protect_content = Column(Boolean, nullable=False, default=True)
    require_payment_for_materials = Column(Boolean, nullable=False, default=True)
    allow_previews = Column(Boolean, nullable=False, default=True)
    max_preview_seconds = Column(Integer, nullable=True)
    max_preview_chars = Column(Integer, nullable=True)
    watermark_enabled = Column(Boolean, nullable=False, default=True)
    block_copy = Column(Boolean, nullable=False, default=True)
    block_print = Column(Boolean, nullable=False, default=True)
    copy_mode = Column(String(32), nullable=False, default="DISALLOW")
    download_mode = Column(String(32), nullable=False, default="DISALLOW")


class EventLog(Base, TimestampMixin, SchoolScopedMixin, RecordMixin):
    """
    Append-only audit event.

    CRITICAL: rows are never updated or deleted by the application.
    """

    __tablename__ = "event_logs"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_email = Column(String(255), nullable=True, index=True)
    event_type = Column(String(100), nullable=False, index=True)
    entity_type = Column(String(50), nullable=True)
    entity_id = Column(String(255), nullable=True)
    event_metadata = Column("metadata", JSON, nullable=False, default=dict)
    outcome = Column(String(20), nullable=False, default="success")
    error_code = Column(Text, nullable=True)
