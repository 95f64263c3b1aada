"""Server-wide extraction phase."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

import structlog

from sonar_migrate import extractors
from sonar_migrate.clients.sonarqube import SonarQubeClient
from sonar_migrate.concurrency import PerformanceSettings
from sonar_migrate.pipeline.results import RunResult
from sonar_migrate.pipeline.steps import run_fatal_step, run_step

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def _found(items: Any) -> str:
    return f"{len(items)} found"


@dataclass(slots=True)
class ExtractedData:
    """Everything read from the source server before any destination write."""

    projects: list[dict[str, Any]]
    quality_gates: list[dict[str, Any]] = field(default_factory=list)
    quality_profiles: list[dict[str, Any]] = field(default_factory=list)
    groups: list[dict[str, Any]] = field(default_factory=list)
    global_permissions: list[dict[str, Any]] = field(default_factory=list)
    permission_templates: dict[str, Any] = field(
        default_factory=lambda: {"templates": [], "default_templates": []}
    )
    portfolios: list[dict[str, Any]] = field(default_factory=list)
    alm_settings: dict[str, Any] = field(default_factory=dict)
    project_bindings: dict[str, dict[str, Any]] = field(default_factory=dict)
    project_branches: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    server_info: dict[str, Any] = field(
        default_factory=lambda: {"system": {}, "plugins": [], "settings": []}
    )
    webhooks: list[dict[str, Any]] = field(default_factory=list)


async def extract_all_projects(
    client: SonarQubeClient, results: RunResult
) -> list[dict[str, Any]]:
    """List every source project. Failure aborts the run."""
    logger.info("Extracting all projects")
    return await run_fatal_step(
        results.server_steps,
        "Extract projects",
        client.list_all_projects,
        describe=_found,
    )


async def run_nonfatal_extraction(
    results: RunResult,
    label: str,
    operation: Callable[[], Awaitable[T]],
    default: T,
    describe: Callable[[T], str | None] | None = None,
) -> T:
    """Run one extraction, recording ``Extract {label}`` and defaulting on failure.

    Args:
        results: Run result owning the server steps.
        label: Resource name used in the step name.
        operation: Zero-argument coroutine function doing the extraction.
        default: Value returned when the extraction fails.
        describe: Optional detail builder for the step.

    Returns:
        The extracted data, or ``default``.
    """
    logger.info("Extracting", resource=label)
    return await run_step(
        results.server_steps,
        f"Extract {label}",
        operation,
        describe=describe,
        default=default,
    )


async def extract_server_wide_data(
    client: SonarQubeClient,
    projects: list[dict[str, Any]],
    results: RunResult,
    performance: PerformanceSettings,
) -> ExtractedData:
    """Extract every server-scoped resource, each independently of the others."""
    data = ExtractedData(projects=projects)

    data.quality_gates = await run_nonfatal_extraction(
        results, "quality gates", lambda: extractors.extract_quality_gates(client), [], _found
    )
    data.quality_profiles = await run_nonfatal_extraction(
        results,
        "quality profiles",
        lambda: extractors.extract_quality_profiles(client),
        [],
        _found,
    )
    data.groups = await run_nonfatal_extraction(
        results, "groups", lambda: extractors.extract_groups(client), [], _found
    )
    data.global_permissions = await run_nonfatal_extraction(
        results,
        "global permissions",
        lambda: extractors.extract_global_permissions(client),
        [],
    )
    data.permission_templates = await run_nonfatal_extraction(
        results,
        "permission templates",
        lambda: extractors.extract_permission_templates(client),
        {"templates": [], "default_templates": []},
    )
    data.portfolios = await run_nonfatal_extraction(
        results, "portfolios", lambda: extractors.extract_portfolios(client), [], _found
    )

    async def bindings() -> tuple[dict[str, Any], dict[str, dict[str, Any]]]:
        alm = await extractors.extract_alm_settings(client)
        per_project = await extractors.extract_all_project_bindings(
            client, projects, performance.max_concurrency
        )
        return alm, per_project

    data.alm_settings, data.project_bindings = await run_nonfatal_extraction(
        results,
        "DevOps bindings",
        bindings,
        ({}, {}),
        lambda r: f"bindings for {len(r[1])}/{len(projects)} projects",
    )
    data.project_branches = await run_nonfatal_extraction(
        results,
        "project branches",
        lambda: extractors.extract_all_project_branches(
            client, projects, performance.max_concurrency
        ),
        {},
        lambda r: f"branches for {len(r)}/{len(projects)} projects",
    )
    data.server_info = await run_nonfatal_extraction(
        results,
        "server info",
        lambda: extractors.extract_server_info(client),
        {"system": {}, "plugins": [], "settings": []},
    )
    data.webhooks = await run_nonfatal_extraction(
        results, "webhooks", lambda: extractors.extract_webhooks(client), [], _found
    )
    return data
