"""
Tests for material gating and preview truncation.
"""

from unittest.mock import AsyncMock

import pytest

from access_engine.access.materials import (
    ELLIPSIS,
    LessonMaterial,
    get_lesson_material,
    load_material_for_access,
    sanitize_material_for_access,
    should_fetch_materials,
)
from access_engine.access.policy import ContentPolicy
from access_engine.entitlements.models import AccessLevel
from access_engine.models import Lesson
from access_engine.tests.conftest import SCHOOL_A, SCHOOL_B

POLICY = ContentPolicy(max_preview_chars=10, max_preview_seconds=30)


def _material(**overrides):
    values = dict(
        content_text="abcdefghijklmnopqrstuvwxyz",
        video_url="https://cdn.example.com/v.mp4",
        duration_seconds=600,
        lesson_id="l1",
    )
    values.update(overrides)
    return LessonMaterial(**values)


class TestSanitize:

    @pytest.mark.security
    @pytest.mark.parametrize("level", [AccessLevel.LOCKED, AccessLevel.DRIP_LOCKED, AccessLevel.NOT_FOUND])
    def test_no_content_below_preview(self, level):
        assert sanitize_material_for_access(_material(), level, POLICY) is None

    def test_full_returns_same_object(self):
        material = _material()
        assert sanitize_material_for_access(material, AccessLevel.FULL, POLICY) is material

    def test_preview_truncates_copy(self):
        material = _material()
        preview = sanitize_material_for_access(material, AccessLevel.PREVIEW, POLICY)

        assert preview is not material
        assert preview.content_text == "abcdefghij" + ELLIPSIS
        assert preview.duration_seconds == 30
        assert preview.is_preview is True
        assert preview.preview_limit_chars == 10
        assert preview.video_url == material.video_url
        assert material.content_text == "abcdefghijklmnopqrstuvwxyz"

    def test_short_preview_is_not_marked_truncated(self):
        preview = sanitize_material_for_access(_material(content_text="short"), AccessLevel.PREVIEW, POLICY)
        assert preview.content_text == "short"

    def test_should_fetch(self):
        assert should_fetch_materials(AccessLevel.FULL) is True
        assert should_fetch_materials(AccessLevel.PREVIEW) is True
        assert should_fetch_materials(AccessLevel.DRIP_LOCKED) is False


class TestLoadMaterial:

    @pytest.mark.asyncio
    @pytest.mark.security
    async def test_locked_never_fetches(self):
        store = AsyncMock()

        result = await load_material_for_access(store, SCHOOL_A, "l1", AccessLevel.LOCKED)

        assert result is None
        store.filter.assert_not_called()

    @pytest.mark.asyncio
    async def test_fetch_is_school_scoped(self, store, seed):
        seed(Lesson(id="l1", school_id=SCHOOL_A, course_id="c1", content="hello", duration_seconds=5))

        assert (await get_lesson_material(store, SCHOOL_A, "l1")).content_text == "hello"
        assert await get_lesson_material(store, SCHOOL_B, "l1") is None

    @pytest.mark.asyncio
    async def test_preview_from_store(self, store, seed):
        seed(Lesson(id="l1", school_id=SCHOOL_A, course_id="c1", content="x" * 50))

        result = await load_material_for_access(store, SCHOOL_A, "l1", AccessLevel.PREVIEW, POLICY)

        assert result.content_text == "x" * 10 + ELLIPSIS
