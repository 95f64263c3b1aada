"""Step outcomes and the runner that records them."""

import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class StepStatus(str, Enum):
    """Outcome of a single step."""

    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True, slots=True)
class StepOutcome:
    """Immutable record of one step, appended to its owner's step list."""

    name: str
    status: StepStatus
    detail: str | None = None
    error: str | None = None
    duration_ms: int = 0

    @classmethod
    def succeeded(
        cls, name: str, detail: str | None = None, duration_ms: int = 0
    ) -> "StepOutcome":
        return cls(name, StepStatus.SUCCESS, detail=detail, duration_ms=duration_ms)

    @classmethod
    def failed(cls, name: str, error: str, duration_ms: int = 0) -> "StepOutcome":
        return cls(name, StepStatus.FAILED, error=error, duration_ms=duration_ms)

    @classmethod
    def skipped(cls, name: str, detail: str, duration_ms: int = 0) -> "StepOutcome":
        return cls(name, StepStatus.SKIPPED, detail=detail, duration_ms=duration_ms)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data: dict[str, Any] = {
            "step": self.name,
            "status": self.status.value,
            "duration_ms": self.duration_ms,
        }
        if self.detail is not None:
            data["detail"] = self.detail
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass(frozen=True, slots=True)
class Skipped:
    """Returned by a step operation to record itself as skipped."""

    reason: str


@dataclass(slots=True)
class StepLog:
    """Ordered, append-only list of step outcomes owned by one scope."""

    steps: list[StepOutcome] = field(default_factory=list)

    def append(self, outcome: StepOutcome) -> None:
        self.steps.append(outcome)

    def __iter__(self):
        return iter(self.steps)

    def __len__(self) -> int:
        return len(self.steps)

    def failed(self) -> list[StepOutcome]:
        return [s for s in self.steps if s.status is StepStatus.FAILED]


async def run_step(
    log: StepLog,
    name: str,
    operation: Callable[[], Awaitable[T]],
    *,
    describe: Callable[[T], str | None] | None = None,
    default: Any = None,
    fatal: bool = False,
) -> T | Any:
    """Run one step and record its outcome.

    The operation may return :class:`Skipped` to be recorded as skipped. On
    success the detail comes from ``describe(result)`` or, without
    ``describe``, from a string result.

    Args:
        log: Step list that owns the outcome.
        name: Step name as shown in reports.
        operation: Zero-argument coroutine function doing the work.
        describe: Optional detail builder applied to the result.
        default: Value returned when the step fails or is skipped.
        fatal: Re-raise after recording instead of returning ``default``.

    Returns:
        The operation result, or ``default`` on failure or skip.

    Raises:
        Exception: Whatever the operation raised, only when ``fatal`` is set.
    """
    start = time.monotonic()
    try:
        result = await operation()
    except Exception as e:
        duration_ms = _elapsed_ms(start)
        log.append(StepOutcome.failed(name, str(e), duration_ms))
        logger.error("Step failed", step=name, error=str(e), fatal=fatal)
        if fatal:
            raise
        return default

    duration_ms = _elapsed_ms(start)
    if isinstance(result, Skipped):
        log.append(StepOutcome.skipped(name, result.reason, duration_ms))
        logger.info("Step skipped", step=name, reason=result.reason)
        return default

    if describe is not None:
        detail = describe(result)
    else:
        detail = result if isinstance(result, str) else None
    log.append(StepOutcome.succeeded(name, detail, duration_ms))
    logger.debug("Step succeeded", step=name, detail=detail)
    return result


async def run_fatal_step(
    log: StepLog,
    name: str,
    operation: Callable[[], Awaitable[T]],
    *,
    describe: Callable[[T], str | None] | None = None,
) -> T:
    """Run a step whose failure aborts the enclosing phase."""
    return await run_step(log, name, operation, describe=describe, fatal=True)


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)
