"""
License gate for add-on rights (copy, download).

CRITICAL: add-ons never substitute for course access, and course access
never substitutes for an add-on in ADDON mode.
"""

from dataclasses import dataclass
from typing import Any, Iterable, Optional

from access_engine.access.policy import ContentPolicy
from access_engine.entitlements import evaluator
from access_engine.entitlements.models import AccessLevel, EntitlementType, LicenseMode


def resolve_license(access_level: AccessLevel, policy_mode: LicenseMode, has_license: bool) -> bool:
    """
    DISALLOW → False
    INCLUDED_WITH_ACCESS → access_level is FULL
    ADDON → access_level is FULL and has_license
    """
    mode = LicenseMode.parse(policy_mode)
    full = AccessLevel.parse(access_level) == AccessLevel.FULL

    if mode == LicenseMode.INCLUDED_WITH_ACCESS:
        return full
    if mode == LicenseMode.ADDON:
        return full and bool(has_license)
    return False


@dataclass(frozen=True)
class LicenseRights:
    can_copy: bool
    can_download: bool
    has_copy_license: bool
    has_download_license: bool


def resolve_license_rights(
    access_level: AccessLevel,
    policy: Optional[ContentPolicy],
    entitlements: Iterable[Any],
    school_id: Optional[str] = None,
    user_email: Optional[str] = None,
) -> LicenseRights:
    """
    Apply the gate for copy_mode/COPY_LICENSE and download_mode/DOWNLOAD_LICENSE.

    With school_id, entitlements are narrowed to active grants of user_email
    in that school; without it they must already be.
    """
    policy = policy or ContentPolicy.default()
    if school_id is not None:
        grants = evaluator.entitlements_for(entitlements, school_id, user_email)
    else:
        grants = list(entitlements)
    has_copy = evaluator.has_license(grants, EntitlementType.COPY_LICENSE)
    has_download = evaluator.has_license(grants, EntitlementType.DOWNLOAD_LICENSE)

    return LicenseRights(
        can_copy=resolve_license(access_level, policy.copy_mode, has_copy),
        can_download=resolve_license(access_level, policy.download_mode, has_download),
        has_copy_license=has_copy,
        has_download_license=has_download,
    )
