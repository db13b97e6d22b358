"""
Entitlement models: canonical types for the access engine.

Provides:
- AccessLevel: the single computed access decision
- EntitlementType: what an entitlement grants
- LicenseMode: how copy/download add-ons are licensed
- CourseAccessModel: modern per-course access model
- SubscriptionTier: legacy subscription tiers with ordering
- EntitlementGrant: canonical, immutable view of an entitlement record

Raw records may carry the grant type as either "type" or "entitlement_type".
EntitlementGrant.from_record() is the ONLY place that ambiguity is handled;
the rest of the engine works with canonical grants.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from access_engine.utils.dates import to_utc
from access_engine.utils.records import get_field as _field

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Canonical enums, import from here
# ---------------------------------------------------------------------------

class AccessLevel(str, Enum):
    """
    Computed access decision for one user and one content item.

    FULL ⊇ PREVIEW ⊇ {LOCKED, DRIP_LOCKED, NOT_FOUND}; the last three grant
    nothing.
    """
    FULL = "FULL"
    PREVIEW = "PREVIEW"
    LOCKED = "LOCKED"
    DRIP_LOCKED = "DRIP_LOCKED"
    NOT_FOUND = "NOT_FOUND"

    def allows_content(self) -> bool:
        return self in (AccessLevel.FULL, AccessLevel.PREVIEW)

    def is_full(self) -> bool:
        return self == AccessLevel.FULL

    @classmethod
    def parse(cls, value: Any) -> "AccessLevel":
        """Parse a level case-insensitively. Unknown values are LOCKED."""
        if isinstance(value, AccessLevel):
            return value
        try:
            return cls(str(value or "").strip().upper())
        except ValueError:
            logger.warning("Unknown access level, treating as LOCKED", extra={"value": value})
            return cls.LOCKED


class EntitlementType(str, Enum):
    """What an entitlement grants."""
    COURSE = "COURSE"
    ALL_COURSES = "ALL_COURSES"
    COPY_LICENSE = "COPY_LICENSE"
    DOWNLOAD_LICENSE = "DOWNLOAD_LICENSE"


class LicenseMode(str, Enum):
    """Policy mode for an add-on right (copy or download)."""
    DISALLOW = "DISALLOW"
    INCLUDED_WITH_ACCESS = "INCLUDED_WITH_ACCESS"
    ADDON = "ADDON"

    @classmethod
    def parse(cls, value: Any) -> "LicenseMode":
        """Unknown or missing modes are DISALLOW."""
        if isinstance(value, LicenseMode):
            return value
        try:
            return cls(str(value or "").strip().upper())
        except ValueError:
            return cls.DISALLOW


class CourseAccessModel(str, Enum):
    """Modern course access model (Course.access_level)."""
    FREE = "FREE"
    PAID = "PAID"
    PRIVATE = "PRIVATE"


class SubscriptionTier(str, Enum):
    """Legacy subscription tiers: free < premium < elite."""
    FREE = "free"
    PREMIUM = "premium"
    ELITE = "elite"

    @property
    def rank(self) -> int:
        return _TIER_RANK[self]

    @classmethod
    def parse(cls, value: Any) -> "SubscriptionTier":
        """Missing tiers are free."""
        if isinstance(value, SubscriptionTier):
            return value
        raw = str(value or "free").strip().lower()
        try:
            return cls(raw)
        except ValueError:
            logger.warning("Unknown subscription tier, treating as free", extra={"value": value})
            return cls.FREE


_TIER_RANK = {
    SubscriptionTier.FREE: 0,
    SubscriptionTier.PREMIUM: 1,
    SubscriptionTier.ELITE: 2,
}


# ---------------------------------------------------------------------------
# Value objects (frozen dataclasses)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class EntitlementGrant:
    """
    Canonical entitlement. Immutable.

    type is None when the raw record carries an unknown grant type; such a
    grant never matches any access check. window_malformed is set when the
    record has a starts_at or expires_at that cannot be read; such a grant
    is never active.
    """
    school_id: Optional[str]
    user_email: Optional[str]
    type: Optional[EntitlementType]
    course_id: Optional[str] = None
    starts_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    window_malformed: bool = False

    @classmethod
    def from_record(cls, record: Any) -> "EntitlementGrant":
        """Normalize a raw record (dict or ORM row) into a canonical grant."""
        if isinstance(record, EntitlementGrant):
            return record

        raw_type = _field(record, "type") or _field(record, "entitlement_type")
        try:
            grant_type = EntitlementType(str(raw_type).strip().upper()) if raw_type else None
        except ValueError:
            logger.warning("Unknown entitlement type", extra={"type": raw_type})
            grant_type = None

        raw_starts = _field(record, "starts_at")
        raw_expires = _field(record, "expires_at")
        starts_at = to_utc(raw_starts)
        expires_at = to_utc(raw_expires)
        malformed = (
            (starts_at is None and raw_starts not in (None, ""))
            or (expires_at is None and raw_expires not in (None, ""))
        )
        if malformed:
            logger.warning(
                "Unreadable entitlement window, grant is inactive",
                extra={"school_id": _field(record, "school_id"), "type": raw_type},
            )

        course_id = _field(record, "course_id")
        return cls(
            school_id=_field(record, "school_id"),
            user_email=_field(record, "user_email"),
            type=grant_type,
            course_id=str(course_id) if course_id is not None else None,
            starts_at=starts_at,
            expires_at=expires_at,
            window_malformed=malformed,
        )

    def grants_course(self, course_id: Any) -> bool:
        if self.type == EntitlementType.ALL_COURSES:
            return True
        return (
            self.type == EntitlementType.COURSE
            and course_id is not None
            and self.course_id == str(course_id)
        )
