"""
Best-effort side effects.

Audit writes and attempt recording run as asyncio tasks that the caller
never awaits on its critical path. Their outcome is captured on a
SideEffect handle so tests and shutdown hooks can drain and inspect them.

BestEffortResult separates three cases:
- SUCCEEDED: primary operation and every side effect succeeded
- SIDE_EFFECT_FAILED: primary operation succeeded, a side effect failed
- FAILED: the primary operation itself failed
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Dict, Generic, List, Optional, Set, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SideEffectStatus(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class SideEffect:
    """Handle on one scheduled side effect."""
    name: str
    context: Dict[str, Any] = field(default_factory=dict)
    status: SideEffectStatus = SideEffectStatus.PENDING
    result: Any = None
    error: Optional[BaseException] = None
    _task: Optional["asyncio.Task"] = field(default=None, repr=False)

    @property
    def done(self) -> bool:
        return self.status != SideEffectStatus.PENDING

    @property
    def failed(self) -> bool:
        return self.status == SideEffectStatus.FAILED

    async def wait(self) -> "SideEffect":
        """Wait for completion. Never raises the side effect's error."""
        if self._task is not None and not self._task.done():
            await asyncio.gather(self._task, return_exceptions=True)
        return self


class SideEffectRunner:
    """
    Schedules fire-and-forget coroutines and tracks them until done.

    Failures are logged with structured context and stored on the handle;
    they are never propagated to the scheduling caller.
    """

    def __init__(self):
        self._pending: Set[asyncio.Task] = set()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def schedule(self, name: str, coro: Awaitable[Any], **context: Any) -> SideEffect:
        """Start coro in the background and return its handle immediately."""
        effect = SideEffect(name=name, context=context)
        task = asyncio.create_task(self._run(effect, coro))
        effect._task = task
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return effect

    async def _run(self, effect: SideEffect, coro: Awaitable[Any]) -> None:
        try:
            effect.result = await coro
            effect.status = SideEffectStatus.SUCCEEDED
        except asyncio.CancelledError as e:
            effect.status = SideEffectStatus.FAILED
            effect.error = e
            raise
        except Exception as e:
            effect.status = SideEffectStatus.FAILED
            effect.error = e
            logger.warning(
                "Best-effort side effect failed",
                extra={
                    "side_effect": effect.name,
                    "error": str(e),
                    "error_type": type(e).__name__,
                    **effect.context,
                },
            )

    async def drain(self) -> None:
        """Wait until every scheduled side effect has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


class ResultOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    SIDE_EFFECT_PENDING = "side_effect_pending"
    SIDE_EFFECT_FAILED = "side_effect_failed"
    FAILED = "failed"


@dataclass
class BestEffortResult(Generic[T]):
    """
    Primary value plus the side effects it scheduled.

    Usage:
        result = await service.submit_quiz_attempt(...)
        result.value          # graded attempt, available immediately
        await result.settle() # ResultOutcome once side effects finish
    """
    value: Optional[T] = None
    side_effects: List[SideEffect] = field(default_factory=list)
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def outcome(self) -> ResultOutcome:
        if self.error is not None:
            return ResultOutcome.FAILED
        if any(e.failed for e in self.side_effects):
            return ResultOutcome.SIDE_EFFECT_FAILED
        if not all(e.done for e in self.side_effects):
            return ResultOutcome.SIDE_EFFECT_PENDING
        return ResultOutcome.SUCCEEDED

    async def settle(self) -> ResultOutcome:
        """Wait for this result's side effects and return the final outcome."""
        for effect in self.side_effects:
            await effect.wait()
        return self.outcome


_runner: Optional[SideEffectRunner] = None


def get_side_effect_runner() -> SideEffectRunner:
    """Process-wide runner used by the HTTP layer."""
    global _runner
    if _runner is None:
        _runner = SideEffectRunner()
    return _runner
