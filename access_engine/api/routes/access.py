"""
Access API routes.

Provides:
- GET /api/access/{kind}/{target_id}      resolved access level for a course, lesson or quiz
- GET /api/lessons/{lesson_id}/access     lesson access snapshot (drip, rights, watermark)
- GET /api/lessons/{lesson_id}/material   sanitized lesson material

SECURITY: the school and user come from request headers (X-School-Id,
X-User-Email); the role is read from the caller's SchoolMembership and
threaded explicitly into every call.
"""

import logging

from fastapi import APIRouter, Depends

from access_engine.access.materials import LessonMaterial
from access_engine.access.resolver import ContentKind
from access_engine.access.service import AccessService, LessonAccess
from access_engine.api.dependencies.context import get_school_context
from access_engine.api.dependencies.store import get_access_service
from access_engine.api.schemas.access import (
    AccessDecisionResponse,
    DripInfoResponse,
    LessonAccessResponse,
    LessonMaterialResponse,
    MaterialResponse,
)
from access_engine.platform.tenant_context import SchoolContext

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["access"])


def _lesson_access_response(lesson_id: str, access: LessonAccess) -> LessonAccessResponse:
    return LessonAccessResponse(
        lesson_id=lesson_id,
        access_level=access.access_level,
        has_course_access=access.has_course_access,
        preview_allowed=access.preview_allowed,
        drip=DripInfoResponse(
            is_available=access.drip_info.is_available,
            available_at=access.drip_info.available_at,
            countdown_label=access.drip_info.countdown_label,
            reason=access.drip_info.reason,
        ),
        can_copy=access.can_copy,
        can_download=access.can_download,
        has_copy_license=access.rights.has_copy_license,
        has_download_license=access.rights.has_download_license,
        watermark_text=access.watermark_text,
        max_preview_seconds=access.max_preview_seconds,
        max_preview_chars=access.max_preview_chars,
    )


def _material_response(material: LessonMaterial) -> MaterialResponse:
    return MaterialResponse.model_validate(material)


@router.get("/access/{kind}/{target_id}", response_model=AccessDecisionResponse)
async def resolve_access_route(
    kind: ContentKind,
    target_id: str,
    context: SchoolContext = Depends(get_school_context),
    service: AccessService = Depends(get_access_service),
):
    """Resolve the caller's access level for one course, lesson or quiz."""
    decision = await service.resolve(context, kind, target_id)
    return AccessDecisionResponse(
        kind=kind.value,
        target_id=target_id,
        access_level=decision.level,
        reason=decision.reason.value,
        available_at=decision.availability.available_at if decision.availability else None,
        countdown_label=decision.countdown_label,
    )


@router.get("/lessons/{lesson_id}/access", response_model=LessonAccessResponse)
async def get_lesson_access(
    lesson_id: str,
    context: SchoolContext = Depends(get_school_context),
    service: AccessService = Depends(get_access_service),
):
    access = await service.get_lesson_access(context, lesson_id)
    return _lesson_access_response(lesson_id, access)


@router.get("/lessons/{lesson_id}/material", response_model=LessonMaterialResponse)
async def get_lesson_material(
    lesson_id: str,
    context: SchoolContext = Depends(get_school_context),
    service: AccessService = Depends(get_access_service),
):
    """
    Lesson material gated by access.

    LOCKED, DRIP_LOCKED and NOT_FOUND return material=null; PREVIEW returns
    truncated material.
    """
    access, material = await service.get_lesson_material(context, lesson_id)
    logger.info(
        "Lesson material requested",
        extra={
            "school_id": context.school_id,
            "lesson_id": lesson_id,
            "access_level": access.access_level.value,
        },
    )
    return LessonMaterialResponse(
        access=_lesson_access_response(lesson_id, access),
        material=_material_response(material) if material is not None else None,
    )
