"""
Entitlement evaluator.

Pure functions, no I/O: decide whether an entitlement is currently active
and whether a set of entitlements grants a course or a license.
"""

import logging
from datetime import datetime
from typing import Any, Iterable, List, Optional

from access_engine.entitlements.models import EntitlementGrant, EntitlementType
from access_engine.utils.dates import to_utc, utc_now

logger = logging.getLogger(__name__)


def is_entitlement_active(entitlement: Any, now: Optional[datetime] = None) -> bool:
    """
    True iff now >= starts_at (or unset) and (expires_at unset or now < expires_at).

    Accepts a canonical grant or a raw record. None is never active, and
    neither is a grant whose window could not be read.
    """
    if entitlement is None:
        return False

    grant = EntitlementGrant.from_record(entitlement)
    if grant.window_malformed:
        return False
    now = to_utc(now) or utc_now()

    if grant.starts_at is not None and now < grant.starts_at:
        return False
    if grant.expires_at is not None and now >= grant.expires_at:
        return False
    return True


def normalize_entitlements(records: Optional[Iterable[Any]]) -> List[EntitlementGrant]:
    """Normalize raw entitlement records at the engine boundary."""
    return [EntitlementGrant.from_record(r) for r in (records or []) if r is not None]


def active_entitlements(
    records: Optional[Iterable[Any]],
    now: Optional[datetime] = None,
) -> List[EntitlementGrant]:
    """Canonical grants that are active at now."""
    now = to_utc(now) or utc_now()
    return [g for g in normalize_entitlements(records) if is_entitlement_active(g, now)]


def belongs_to(grant: EntitlementGrant, school_id: str, user_email: Optional[str]) -> bool:
    """
    False when the grant names another school or another user.

    Grants without school_id or user_email are taken as already scoped by
    the caller that loaded them.
    """
    if grant.school_id is not None and str(grant.school_id) != str(school_id):
        return False
    if grant.user_email is not None:
        if not user_email or str(grant.user_email).strip().lower() != user_email.strip().lower():
            return False
    return True


def entitlements_for(
    records: Optional[Iterable[Any]],
    school_id: str,
    user_email: Optional[str],
    now: Optional[datetime] = None,
) -> List[EntitlementGrant]:
    """Active grants of user_email in school_id. Grants of anyone else are dropped."""
    grants = active_entitlements(records, now)
    scoped = [g for g in grants if belongs_to(g, school_id, user_email)]
    if len(scoped) != len(grants):
        logger.warning(
            "Dropped entitlements of another school or user",
            extra={"school_id": school_id, "dropped": len(grants) - len(scoped)},
        )
    return scoped


def has_course_access(
    entitlements: Iterable[EntitlementGrant],
    course_id: Any,
) -> bool:
    """Active ALL_COURSES grant, or a COURSE grant for exactly course_id."""
    return any(g.grants_course(course_id) for g in entitlements)


def has_license(
    entitlements: Iterable[EntitlementGrant],
    license_type: EntitlementType,
) -> bool:
    """Active add-on license of the given type."""
    return any(g.type == license_type for g in entitlements)
