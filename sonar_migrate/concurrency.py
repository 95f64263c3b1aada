"""Bounded fan-out helpers and performance defaults."""

import asyncio
import os
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Any, TypeVar

import structlog

from sonar_migrate.config import PerformanceConfig

logger = structlog.get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass(frozen=True, slots=True)
class PerformanceSettings:
    """Resolved concurrency limits used for one run."""

    auto_tune: bool
    max_concurrency: int
    issue_sync_concurrency: int
    hotspot_sync_concurrency: int
    project_concurrency: int


def resolve_performance_config(
    perf: PerformanceConfig | None = None, cpu_count: int | None = None
) -> PerformanceSettings:
    """Fill unset performance values with fixed or CPU-derived defaults.

    Args:
        perf: User supplied performance configuration.
        cpu_count: CPU count override, mainly for tests.

    Returns:
        Fully populated performance settings.
    """
    perf = perf or PerformanceConfig()
    cpus = cpu_count or os.cpu_count() or 1

    if perf.auto_tune:
        defaults = {
            "max_concurrency": cpus,
            "issue_sync_concurrency": cpus,
            "hotspot_sync_concurrency": min(max(cpus // 2, 3), 5),
            "project_concurrency": max(1, cpus // 3),
        }
    else:
        defaults = {
            "max_concurrency": min(cpus, 8),
            "issue_sync_concurrency": 5,
            "hotspot_sync_concurrency": 3,
            "project_concurrency": 1,
        }

    return PerformanceSettings(
        auto_tune=perf.auto_tune,
        max_concurrency=perf.max_concurrency or defaults["max_concurrency"],
        issue_sync_concurrency=perf.issue_sync_concurrency
        or defaults["issue_sync_concurrency"],
        hotspot_sync_concurrency=perf.hotspot_sync_concurrency
        or defaults["hotspot_sync_concurrency"],
        project_concurrency=perf.project_concurrency
        or defaults["project_concurrency"],
    )


async def map_concurrent(
    items: Iterable[T],
    func: Callable[[T], Awaitable[R]],
    concurrency: int,
) -> list[R | BaseException]:
    """Run ``func`` over ``items`` with at most ``concurrency`` in flight.

    Every item is settled independently: a failing item yields its exception
    in the result list instead of cancelling the others. Results keep the
    order of ``items``.

    Args:
        items: Inputs to process.
        func: Coroutine function applied to each input.
        concurrency: Maximum number of concurrent calls.

    Returns:
        One entry per input, either the return value or the raised exception.
    """
    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def run_one(item: T) -> R:
        async with semaphore:
            return await func(item)

    return await asyncio.gather(
        *[run_one(item) for item in items], return_exceptions=True
    )


def split_settled(
    results: list[Any],
) -> tuple[list[Any], list[BaseException]]:
    """Split ``map_concurrent`` output into successes and failures."""
    successes = [r for r in results if not isinstance(r, BaseException)]
    failures = [r for r in results if isinstance(r, BaseException)]
    return successes, failures
