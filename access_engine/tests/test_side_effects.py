"""
Tests for best-effort side effects and audit event persistence.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from access_engine.platform.audit import (
    AuditAction,
    AuditEntity,
    AuditEvent,
    AuditOutcome,
    PIIRedactor,
    write_audit_event,
)
from access_engine.platform.side_effects import (
    BestEffortResult,
    ResultOutcome,
    SideEffectRunner,
    SideEffectStatus,
)
from access_engine.tests.conftest import SCHOOL_A


async def _ok():
    await asyncio.sleep(0)
    return "done"


async def _boom():
    await asyncio.sleep(0)
    raise RuntimeError("boom")


class TestSideEffectRunner:

    @pytest.mark.asyncio
    async def test_success(self, runner):
        effect = runner.schedule("ok", _ok())
        assert effect.status == SideEffectStatus.PENDING

        await effect.wait()

        assert effect.status == SideEffectStatus.SUCCEEDED
        assert effect.result == "done"

    @pytest.mark.asyncio
    async def test_failure_is_captured(self, runner, caplog):
        effect = runner.schedule("boom", _boom(), school_id=SCHOOL_A)

        await effect.wait()

        assert effect.failed
        assert str(effect.error) == "boom"
        assert any("side effect failed" in r.getMessage() for r in caplog.records)

    @pytest.mark.asyncio
    async def test_drain(self):
        runner = SideEffectRunner()
        effects = [runner.schedule("ok", _ok()) for _ in range(3)]

        await runner.drain()

        assert runner.pending_count == 0
        assert all(e.done for e in effects)


class TestBestEffortResult:

    @pytest.mark.asyncio
    async def test_outcomes(self, runner):
        ok = BestEffortResult(value=1, side_effects=[runner.schedule("ok", _ok())])
        assert ok.outcome == ResultOutcome.SIDE_EFFECT_PENDING
        assert await ok.settle() == ResultOutcome.SUCCEEDED

        failed = BestEffortResult(value=1, side_effects=[runner.schedule("boom", _boom())])
        assert await failed.settle() == ResultOutcome.SIDE_EFFECT_FAILED
        assert failed.value == 1

        assert BestEffortResult(error=ValueError("x")).outcome == ResultOutcome.FAILED
        assert BestEffortResult(value=1).outcome == ResultOutcome.SUCCEEDED


class TestAudit:

    def test_redaction(self):
        redacted = PIIRedactor.redact({
            "email": "someone@school.org",
            "file_url": "https://secret",
            "nested": {"token": "t", "reason": "free"},
        })
        assert redacted == {
            "email": "***@school.org",
            "file_url": "[REDACTED]",
            "nested": {"token": "[REDACTED]", "reason": "free"},
        }

    @pytest.mark.asyncio
    async def test_write_audit_event(self, store):
        event = AuditEvent(
            school_id=SCHOOL_A,
            action=AuditAction.DOWNLOAD_BLOCKED,
            user_email="s@example.com",
            entity_type=AuditEntity.DOWNLOAD,
            entity_id="d1",
            metadata={"reason": "course_required"},
            outcome=AuditOutcome.DENIED,
        )

        record = await write_audit_event(store, event)

        assert record["school_id"] == SCHOOL_A
        assert record["event_type"] == "download_blocked"
        assert record["entity_type"] == "DOWNLOAD"
        assert record["outcome"] == "denied"

    @pytest.mark.asyncio
    async def test_write_failure_falls_back_and_raises(self, caplog):
        store = AsyncMock()
        store.create.side_effect = RuntimeError("db down")
        event = AuditEvent(school_id=SCHOOL_A, action=AuditAction.DOWNLOAD_GRANTED)

        with pytest.raises(RuntimeError):
            await write_audit_event(store, event)

        fallback = [r for r in caplog.records if r.name == "audit.fallback"]
        assert len(fallback) == 1
        assert "db down" in fallback[0].audit_entry
