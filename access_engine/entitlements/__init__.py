"""
Entitlement types and evaluation.

This module provides:
- AccessLevel, EntitlementType, LicenseMode, CourseAccessModel, SubscriptionTier
- EntitlementGrant: canonical entitlement, normalized once at the boundary
- is_entitlement_active(): time-window check
- active_entitlements(), entitlements_for(): active grants, scoped to one user
- has_course_access(), has_license()
"""

from access_engine.entitlements.models import (
    AccessLevel,
    EntitlementType,
    LicenseMode,
    CourseAccessModel,
    SubscriptionTier,
    EntitlementGrant,
)
from access_engine.entitlements.evaluator import (
    is_entitlement_active,
    normalize_entitlements,
    active_entitlements,
    belongs_to,
    entitlements_for,
    has_course_access,
    has_license,
)

__all__ = [
    "AccessLevel",
    "EntitlementType",
    "LicenseMode",
    "CourseAccessModel",
    "SubscriptionTier",
    "EntitlementGrant",
    "is_entitlement_active",
    "normalize_entitlements",
    "active_entitlements",
    "belongs_to",
    "entitlements_for",
    "has_course_access",
    "has_license",
]
