"""
Access service: loads the school snapshot and resolves access.

Provides:
- resolve(context, kind, target_id)          → AccessDecision
- get_lesson_access(context, lesson_id)      → LessonAccess
- get_lesson_material(context, lesson_id)    → (LessonAccess, LessonMaterial | None)

Every read is scoped by the explicit SchoolContext. Store failures on this
path propagate: a failed entitlement or policy fetch is never read as
"no access" or "full access".
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple

from access_engine.access.drip import DripMode, get_drip_mode, get_enroll_date
from access_engine.access.licenses import LicenseRights, resolve_license_rights
from access_engine.access.materials import LessonMaterial, load_material_for_access
from access_engine.access.policy import ContentPolicy, load_content_policy
from access_engine.access.resolver import (
    AccessContext,
    AccessDecision,
    ContentKind,
    resolve_access_decision,
)
from access_engine.entitlements.evaluator import entitlements_for
from access_engine.entitlements.models import AccessLevel, EntitlementGrant, SubscriptionTier
from access_engine.errors import require
from access_engine.platform.tenant_context import SchoolContext
from access_engine.utils.dates import to_utc, utc_now
from access_engine.utils.records import get_field

logger = logging.getLogger(__name__)

_ENTITY_BY_KIND = {
    ContentKind.COURSE: "Course",
    ContentKind.LESSON: "Lesson",
    ContentKind.QUIZ: "Quiz",
}

ENTITLEMENT_FETCH_LIMIT = 250


@dataclass(frozen=True)
class DripInfo:
    is_available: bool = True
    available_at: Optional[datetime] = None
    countdown_label: Optional[str] = None
    reason: Optional[str] = None


@dataclass(frozen=True)
class LessonAccess:
    """Complete access snapshot for one lesson and one user."""
    access_level: AccessLevel
    decision: AccessDecision
    policy: ContentPolicy
    entitlements: List[EntitlementGrant] = field(default_factory=list)
    has_course_access: bool = False
    preview_allowed: bool = False
    drip_info: DripInfo = field(default_factory=DripInfo)
    rights: LicenseRights = LicenseRights(False, False, False, False)
    watermark_text: str = ""

    @property
    def can_copy(self) -> bool:
        return self.rights.can_copy

    @property
    def can_download(self) -> bool:
        return self.rights.can_download

    @property
    def max_preview_seconds(self) -> int:
        return self.policy.max_preview_seconds

    @property
    def max_preview_chars(self) -> int:
        return self.policy.max_preview_chars


def build_watermark(user_email: Optional[str], policy: ContentPolicy, now: datetime) -> str:
    if not user_email or not policy.watermark_enabled:
        return ""
    return f"{user_email} • {now.date().isoformat()}"


class AccessService:
    """Resolves access for courses, lessons and quizzes of one store."""

    def __init__(self, store):
        self.store = store

    async def get_record(self, entity: str, school_id: str, record_id: Optional[str]) -> Optional[dict]:
        """Single record by id within the school, or None."""
        if not record_id:
            return None
        records = await self.store.filter(entity, school_id, {"id": record_id}, limit=1)
        return records[0] if records else None

    async def load_entitlements(self, school_id: str, user_email: Optional[str]) -> List[EntitlementGrant]:
        """Active, canonical grants of the user. Anonymous users have none."""
        if not user_email:
            return []
        records = await self.store.filter(
            "Entitlement",
            school_id,
            {"user_email": user_email},
            sort="-created_date",
            limit=ENTITLEMENT_FETCH_LIMIT,
        )
        return entitlements_for(records, school_id, user_email)

    async def load_subscription_tier(self, school_id: str, user_email: Optional[str]) -> SubscriptionTier:
        """Highest legacy tier among the user's subscriptions; free if none."""
        if not user_email:
            return SubscriptionTier.FREE
        records = await self.store.filter("Subscription", school_id, {"user_email": user_email})
        tiers = [SubscriptionTier.parse(get_field(r, "tier")) for r in records]
        return max(tiers, key=lambda t: t.rank, default=SubscriptionTier.FREE)

    async def build_context(
        self,
        context: SchoolContext,
        kind: ContentKind,
        target_id: str,
        now: Optional[datetime] = None,
        policy: Optional[ContentPolicy] = None,
        entitlements: Optional[List[EntitlementGrant]] = None,
    ) -> AccessContext:
        """Load everything the resolver needs for one target."""
        require(target_id, f"{kind.value}_id")
        school_id = context.school_id
        user_email = context.user_email

        target = await self.get_record(_ENTITY_BY_KIND[kind], school_id, target_id)

        if kind == ContentKind.COURSE:
            course = target
        else:
            course = await self.get_record("Course", school_id, get_field(target, "course_id"))

        if policy is None:
            policy = await load_content_policy(self.store, school_id)
        if entitlements is None:
            entitlements = await self.load_entitlements(school_id, user_email)

        subscription_tier = None
        if course is not None and not get_field(course, "access_level"):
            subscription_tier = await self.load_subscription_tier(school_id, user_email)

        enroll_date = None
        if kind == ContentKind.LESSON and target is not None and get_drip_mode(target) == DripMode.OFFSET:
            enroll_date = await get_enroll_date(
                self.store, school_id, user_email, get_field(target, "course_id"),
            )

        return AccessContext(
            school_id=school_id,
            kind=kind,
            course=course,
            lesson=target if kind == ContentKind.LESSON else None,
            quiz=target if kind == ContentKind.QUIZ else None,
            user_email=user_email,
            role=context.role,
            is_teacher=context.is_teacher,
            entitlements=tuple(entitlements),
            subscription_tier=subscription_tier,
            enroll_date=enroll_date,
            policy=policy,
            now=now,
        )

    async def resolve(
        self,
        context: SchoolContext,
        kind: ContentKind,
        target_id: str,
        now: Optional[datetime] = None,
    ) -> AccessDecision:
        access_context = await self.build_context(context, kind, target_id, now=now)
        decision = resolve_access_decision(access_context)
        logger.debug(
            "Access resolved",
            extra={
                "school_id": context.school_id,
                "kind": kind.value,
                "target_id": target_id,
                "access_level": decision.level.value,
                "reason": decision.reason.value,
            },
        )
        return decision

    async def get_lesson_access(
        self,
        context: SchoolContext,
        lesson_id: str,
        now: Optional[datetime] = None,
    ) -> LessonAccess:
        now = to_utc(now) or utc_now()
        policy = await load_content_policy(self.store, context.school_id)
        entitlements = await self.load_entitlements(context.school_id, context.user_email)

        access_context = await self.build_context(
            context, ContentKind.LESSON, lesson_id,
            now=now, policy=policy, entitlements=entitlements,
        )
        decision = resolve_access_decision(access_context)

        drip_info = DripInfo()
        if decision.level == AccessLevel.DRIP_LOCKED and decision.availability is not None:
            availability = decision.availability
            drip_info = DripInfo(
                is_available=False,
                available_at=availability.available_at,
                countdown_label=decision.countdown_label,
                reason=availability.reason.value if availability.reason else None,
            )

        return LessonAccess(
            access_level=decision.level,
            decision=decision,
            policy=policy,
            entitlements=entitlements,
            has_course_access=decision.level in (AccessLevel.FULL, AccessLevel.DRIP_LOCKED),
            preview_allowed=bool(policy.allow_previews and get_field(access_context.lesson, "is_preview")),
            drip_info=drip_info,
            rights=resolve_license_rights(
                decision.level, policy, entitlements,
                school_id=context.school_id, user_email=context.user_email,
            ),
            watermark_text=build_watermark(context.user_email, policy, now),
        )

    async def get_lesson_material(
        self,
        context: SchoolContext,
        lesson_id: str,
        now: Optional[datetime] = None,
    ) -> Tuple[LessonAccess, Optional[LessonMaterial]]:
        """Resolve access first; material is fetched only at FULL or PREVIEW."""
        access = await self.get_lesson_access(context, lesson_id, now=now)
        material = await load_material_for_access(
            self.store, context.school_id, lesson_id, access.access_level, access.policy,
        )
        return access, material
