"""
Secure download resolution.

get_secure_download_url() decides whether a user may download a file and
returns the file URL only when allowed.

Reasons:
    not_found          no such download in the school
    free               no parent course, or zero price
    no_access          anonymous caller on a paid download
    downloads_disabled policy download_mode is DISALLOW
    course_required    no course access (wins over license_required)
    license_required   ADDON mode, course access but no DOWNLOAD_LICENSE
    course_access      INCLUDED_WITH_ACCESS mode, allowed
    addon_access       ADDON mode, allowed
    error              the download record could not be read

Every resolution schedules exactly one audit event (download_granted or
download_blocked). Audit writes are best-effort and never delay or change
the decision.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Iterable, Optional

from access_engine.access.licenses import resolve_license
from access_engine.access.policy import ContentPolicy, load_content_policy
from access_engine.access.service import AccessService
from access_engine.entitlements.evaluator import entitlements_for, has_course_access, has_license
from access_engine.entitlements.models import AccessLevel, EntitlementType, LicenseMode
from access_engine.errors import require
from access_engine.platform.audit import (
    AuditAction,
    AuditEntity,
    AuditEvent,
    AuditOutcome,
    write_audit_event,
)
from access_engine.platform.side_effects import SideEffect, SideEffectRunner
from access_engine.utils.records import get_field

logger = logging.getLogger(__name__)


class DownloadReason(str, Enum):
    NOT_FOUND = "not_found"
    FREE = "free"
    COURSE_REQUIRED = "course_required"
    LICENSE_REQUIRED = "license_required"
    ADDON_ACCESS = "addon_access"
    COURSE_ACCESS = "course_access"
    DOWNLOADS_DISABLED = "downloads_disabled"
    NO_ACCESS = "no_access"
    ERROR = "error"


@dataclass(frozen=True)
class DownloadResolution:
    allowed: bool
    url: Optional[str]
    reason: DownloadReason
    audit: Optional[SideEffect] = field(default=None, compare=False, repr=False)


def is_free_download(download: Any) -> bool:
    if not get_field(download, "course_id"):
        return True
    price = get_field(download, "price")
    if price is None:
        return False
    try:
        return Decimal(str(price)) == 0
    except InvalidOperation:
        logger.warning("Unparseable download price", extra={"download_id": get_field(download, "id")})
        return False


def _paid_decision(mode: LicenseMode, has_course: bool, has_download_license: bool) -> DownloadReason:
    """Most specific reason for a paid download under the policy mode."""
    if mode == LicenseMode.INCLUDED_WITH_ACCESS:
        return DownloadReason.COURSE_ACCESS if has_course else DownloadReason.COURSE_REQUIRED
    if mode == LicenseMode.ADDON:
        if not has_course:
            return DownloadReason.COURSE_REQUIRED
        if not has_download_license:
            return DownloadReason.LICENSE_REQUIRED
        return DownloadReason.ADDON_ACCESS
    return DownloadReason.DOWNLOADS_DISABLED


class DownloadService:
    """Resolves secure download URLs for one store."""

    def __init__(self, store, side_effects: Optional[SideEffectRunner] = None):
        self.store = store
        self.side_effects = side_effects or SideEffectRunner()

    def _audit(
        self,
        school_id: str,
        download_id: str,
        user_email: Optional[str],
        allowed: bool,
        metadata: dict,
    ) -> SideEffect:
        event = AuditEvent(
            school_id=school_id,
            action=AuditAction.DOWNLOAD_GRANTED if allowed else AuditAction.DOWNLOAD_BLOCKED,
            user_email=user_email,
            entity_type=AuditEntity.DOWNLOAD,
            entity_id=download_id,
            metadata=metadata,
            outcome=AuditOutcome.SUCCESS if allowed else AuditOutcome.DENIED,
        )
        return self.side_effects.schedule(
            "download_audit",
            write_audit_event(self.store, event),
            school_id=school_id,
            download_id=download_id,
        )

    def _resolve(
        self,
        school_id: str,
        download_id: str,
        user_email: Optional[str],
        allowed: bool,
        url: Optional[str],
        reason: DownloadReason,
        **facts: Any,
    ) -> DownloadResolution:
        audit = self._audit(
            school_id, download_id, user_email, allowed, {"reason": reason.value, **facts},
        )
        logger.info(
            "Download resolved",
            extra={
                "school_id": school_id,
                "download_id": download_id,
                "allowed": allowed,
                "reason": reason.value,
            },
        )
        return DownloadResolution(allowed=allowed, url=url if allowed else None, reason=reason, audit=audit)

    async def get_secure_download_url(
        self,
        school_id: str,
        download_id: str,
        user_email: Optional[str],
        entitlements: Optional[Iterable[Any]] = None,
        policy: Any = None,
    ) -> DownloadResolution:
        """
        Decide a download for user_email.

        entitlements and policy are loaded from the store when not supplied.
        """
        require(school_id, "school_id")
        require(download_id, "download_id")

        try:
            downloads = await self.store.filter("Download", school_id, {"id": download_id}, limit=1)
        except Exception as e:
            logger.error(
                "Download lookup failed",
                extra={"school_id": school_id, "download_id": download_id, "error": str(e)},
            )
            return self._resolve(
                school_id, download_id, user_email, False, None, DownloadReason.ERROR,
            )

        if not downloads:
            return self._resolve(
                school_id, download_id, user_email, False, None, DownloadReason.NOT_FOUND,
            )

        download = downloads[0]
        url = get_field(download, "file_url")

        if is_free_download(download):
            return self._resolve(
                school_id, download_id, user_email, True, url, DownloadReason.FREE, free=True,
            )

        if not user_email:
            return self._resolve(
                school_id, download_id, user_email, False, None, DownloadReason.NO_ACCESS,
                has_license=False, has_course=False,
            )

        if entitlements is None:
            grants = await AccessService(self.store).load_entitlements(school_id, user_email)
        else:
            grants = entitlements_for(entitlements, school_id, user_email)

        if policy is None:
            policy = await load_content_policy(self.store, school_id)
        else:
            policy = ContentPolicy.from_record(policy)

        has_download_license = has_license(grants, EntitlementType.DOWNLOAD_LICENSE)
        has_course = has_course_access(grants, get_field(download, "course_id"))

        course_level = AccessLevel.FULL if has_course else AccessLevel.LOCKED
        allowed = resolve_license(course_level, policy.download_mode, has_download_license)
        reason = _paid_decision(policy.download_mode, has_course, has_download_license)

        return self._resolve(
            school_id, download_id, user_email, allowed, url, reason,
            has_license=has_download_license, has_course=has_course,
        )
