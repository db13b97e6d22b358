"""
Gated lesson materials.

CRITICAL SECURITY:
- Nothing is fetched unless the access level is FULL or PREVIEW
- sanitize_material_for_access() is the LAST step before a renderer and
  returns None for every level that grants nothing
- Media URLs pass through in PREVIEW; time limiting streamed media is the
  player's job
"""

import logging
from dataclasses import dataclass, replace
from typing import Any, Optional

from access_engine.access.policy import ContentPolicy
from access_engine.entitlements.models import AccessLevel
from access_engine.errors import require
from access_engine.utils.records import get_field

logger = logging.getLogger(__name__)

ELLIPSIS = "..."


@dataclass
class LessonMaterial:
    content_text: str = ""
    video_url: Optional[str] = None
    audio_url: Optional[str] = None
    duration_seconds: Optional[int] = None
    lesson_id: Optional[str] = None
    is_preview: bool = False
    preview_limit_chars: Optional[int] = None
    preview_limit_seconds: Optional[int] = None

    @classmethod
    def from_lesson(cls, lesson: Any) -> "LessonMaterial":
        return cls(
            content_text=get_field(lesson, "content") or "",
            video_url=get_field(lesson, "video_url"),
            audio_url=get_field(lesson, "audio_url"),
            duration_seconds=get_field(lesson, "duration_seconds"),
            lesson_id=get_field(lesson, "id"),
        )


def should_fetch_materials(access_level: AccessLevel) -> bool:
    return AccessLevel.parse(access_level).allows_content()


def get_preview_material(
    material: Optional[LessonMaterial],
    policy: Optional[ContentPolicy] = None,
) -> Optional[LessonMaterial]:
    """Copy of material truncated to the policy's preview limits."""
    if material is None:
        return None

    policy = policy or ContentPolicy.default()
    max_chars = policy.max_preview_chars
    max_seconds = policy.max_preview_seconds

    text = material.content_text or ""
    if len(text) > max_chars:
        text = text[:max_chars] + ELLIPSIS

    duration = material.duration_seconds
    if duration is not None:
        duration = min(duration, max_seconds)

    return replace(
        material,
        content_text=text,
        duration_seconds=duration,
        is_preview=True,
        preview_limit_chars=max_chars,
        preview_limit_seconds=max_seconds,
    )


def sanitize_material_for_access(
    material: Optional[LessonMaterial],
    access_level: AccessLevel,
    policy: Optional[ContentPolicy] = None,
) -> Optional[LessonMaterial]:
    """
    Return only what access_level permits.

    LOCKED, DRIP_LOCKED, NOT_FOUND → None
    PREVIEW → truncated copy
    FULL → the same object, unmodified
    """
    level = AccessLevel.parse(access_level)
    if not level.allows_content():
        return None
    if level == AccessLevel.PREVIEW:
        return get_preview_material(material, policy)
    return material


async def get_lesson_material(store, school_id: str, lesson_id: str) -> Optional[LessonMaterial]:
    """Build the full material payload of a lesson. None if missing."""
    require(school_id, "school_id")
    require(lesson_id, "lesson_id")

    lessons = await store.filter("Lesson", school_id, {"id": lesson_id}, limit=1)
    if not lessons:
        return None
    return LessonMaterial.from_lesson(lessons[0])


async def load_material_for_access(
    store,
    school_id: str,
    lesson_id: str,
    access_level: AccessLevel,
    policy: Optional[ContentPolicy] = None,
) -> Optional[LessonMaterial]:
    """Fetch and sanitize; the fetch is never issued below PREVIEW."""
    if not should_fetch_materials(access_level):
        logger.debug(
            "Material fetch skipped",
            extra={"school_id": school_id, "lesson_id": lesson_id, "access_level": str(access_level)},
        )
        return None

    material = await get_lesson_material(store, school_id, lesson_id)
    return sanitize_material_for_access(material, access_level, policy)
