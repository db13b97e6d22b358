"""
Audit events for access decisions.

CRITICAL SECURITY REQUIREMENTS:
- Event logs MUST be append-only (no UPDATE/DELETE)
- Download grants and denials MUST write exactly one event
- Sensitive metadata keys MUST be redacted before persistence
- Failed writes MUST fall back to the secondary logger

Audit writes are best-effort: callers schedule them through the
SideEffectRunner and never await them on the critical path.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional

from access_engine.utils.dates import utc_now

logger = logging.getLogger(__name__)
fallback_logger = logging.getLogger("audit.fallback")


class AuditAction(str, Enum):
    """Auditable actions. Values are persisted as EventLog.event_type."""
    DOWNLOAD_GRANTED = "download_granted"
    DOWNLOAD_BLOCKED = "download_blocked"


class AuditOutcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    DENIED = "denied"


class AuditEntity(str, Enum):
    """EventLog.entity_type values."""
    DOWNLOAD = "DOWNLOAD"


class PIIRedactor:
    """
    Redacts sensitive keys from event metadata before persistence.

    The acting user is stored in EventLog.user_email; copies of it inside
    metadata are masked down to the domain.
    """

    REDACTED_FIELDS: FrozenSet[str] = frozenset({
        "email",
        "user_email",
        "token",
        "access_token",
        "api_key",
        "password",
        "secret",
        "file_url",
        "signed_url",
    })

    REDACTION_MARKER = "[REDACTED]"

    @classmethod
    def redact(cls, data: Dict[str, Any]) -> Dict[str, Any]:
        if not isinstance(data, dict):
            return data
        return cls._redact_dict(data)

    @classmethod
    def _redact_dict(cls, d: Dict[str, Any]) -> Dict[str, Any]:
        result = {}
        for key, value in d.items():
            lower_key = str(key).lower()
            if lower_key in cls.REDACTED_FIELDS:
                result[key] = cls._redact_value(lower_key, value)
            elif isinstance(value, dict):
                result[key] = cls._redact_dict(value)
            elif isinstance(value, list):
                result[key] = [
                    cls._redact_dict(v) if isinstance(v, dict) else v for v in value
                ]
            else:
                result[key] = value
        return result

    @classmethod
    def _redact_value(cls, key: str, value: Any) -> str:
        # Keep the domain of e-mail addresses
        if key in ("email", "user_email") and isinstance(value, str) and "@" in value:
            return f"***@{value.split('@', 1)[1]}"
        return cls.REDACTION_MARKER


@dataclass
class AuditEvent:
    """
    Audit event before persistence.

    Metadata is redacted in to_record().
    """
    school_id: str
    action: AuditAction
    user_email: Optional[str] = None
    entity_type: Optional[AuditEntity] = None
    entity_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    outcome: AuditOutcome = AuditOutcome.SUCCESS
    error_code: Optional[str] = None
    timestamp: datetime = field(default_factory=utc_now)

    def to_record(self) -> Dict[str, Any]:
        """EventLog fields for ScopedStore.create (school_id passed separately)."""
        return {
            "user_email": self.user_email,
            "event_type": _value(self.action),
            "entity_type": _value(self.entity_type),
            "entity_id": self.entity_id,
            "metadata": PIIRedactor.redact(self.metadata),
            "outcome": _value(self.outcome),
            "error_code": self.error_code,
        }


def _value(member: Any) -> Any:
    return member.value if isinstance(member, Enum) else member


async def write_audit_event(store, event: AuditEvent) -> Dict[str, Any]:
    """
    Append an audit event to the school's EventLog.

    On failure the event goes to the fallback logger and the error is
    re-raised so the SideEffectRunner records the side effect as failed.
    It is never awaited by a caller's critical path.
    """
    try:
        record = await store.create("EventLog", event.school_id, event.to_record())
    except Exception as e:
        _write_fallback_log(event, str(e))
        raise

    logger.info(
        "Audit event recorded",
        extra={
            "audit_id": record.get("id"),
            "school_id": event.school_id,
            "action": _value(event.action),
            "outcome": _value(event.outcome),
        },
    )
    return record


def _write_fallback_log(event: AuditEvent, error_reason: str) -> None:
    """Write the audit event to the fallback logger when the store fails."""
    fallback_entry = {
        "school_id": event.school_id,
        "action": _value(event.action),
        "timestamp": event.timestamp.isoformat(),
        "outcome": _value(event.outcome),
        "entity_type": _value(event.entity_type),
        "entity_id": event.entity_id,
        "metadata": PIIRedactor.redact(event.metadata),
        "fallback_reason": error_reason,
    }
    fallback_logger.error(
        "Audit log fallback",
        extra={"audit_entry": json.dumps(fallback_entry, default=str)},
    )
