"""Per-project migration: key resolution and the fixed step sequence."""

from typing import Any, Protocol

import structlog

from sonar_migrate import extractors
from sonar_migrate.concurrency import map_concurrent
from sonar_migrate.pipeline.context import MigrationContext, OrgContext
from sonar_migrate.pipeline.results import ProjectResult, ProjectStatus, RunResult
from sonar_migrate.pipeline.steps import Skipped, StepOutcome, run_step
from sonar_migrate.resources import project_config
from sonar_migrate.resources.hotspot_sync import HotspotSynchronizer
from sonar_migrate.resources.issue_sync import IssueSynchronizer
from sonar_migrate.resources.permissions import migrate_project_permissions

logger = structlog.get_logger(__name__)

PREVIOUSLY_MIGRATED = "Previously migrated"


class KeyAvailabilityChecker(Protocol):
    """Answers whether a project key is already used anywhere on the destination."""

    async def is_project_key_taken_globally(self, project_key: str) -> dict[str, Any]:
        ...


async def resolve_project_key(
    project_key: str, org_key: str, checker: KeyAvailabilityChecker
) -> tuple[str, dict[str, str] | None]:
    """Pick the destination key for a project.

    The source key is kept unless another organization already owns it, in
    which case the key is prefixed with the organization key. The answer is
    never cached, so a re-run sees the current state of the destination.

    Args:
        project_key: Source project key.
        org_key: Destination organization key.
        checker: Global key-uniqueness lookup.

    Returns:
        The destination key and, on collision, a warning entry.
    """
    check = await checker.is_project_key_taken_globally(project_key)
    if not check.get("taken") or check.get("owner") == org_key:
        return project_key, None

    destination_key = f"{org_key}_{project_key}"
    logger.warning(
        "Project key taken by another organization, using prefixed key",
        project=project_key,
        owner=check.get("owner"),
        destination=destination_key,
    )
    return destination_key, {
        "sq_key": project_key,
        "sc_key": destination_key,
        "owner": check.get("owner"),
    }


async def migrate_org_projects(
    ctx: MigrationContext,
    org_ctx: OrgContext,
    projects: list[dict[str, Any]],
    results: RunResult,
) -> dict[str, str]:
    """Migrate an organization's projects under bounded concurrency.

    Each project owns its own result; only the appends to ``results`` are
    shared, and those are serialized by the run result's lock.

    Returns:
        Source to destination project keys for this organization.
    """
    state = ctx.state_store.load(org_ctx.key) if ctx.config.migration.resume else None
    key_mapping: dict[str, str] = {}
    total = len(projects)

    async def migrate(indexed: tuple[int, dict[str, Any]]) -> None:
        index, project = indexed
        source_key = project["key"]

        try:
            destination_key, warning = await resolve_project_key(
                source_key, org_ctx.key, org_ctx.client
            )
        except Exception as e:
            failed = ProjectResult(source_key, source_key, org_ctx.key)
            failed.steps.append(StepOutcome.failed("Resolve project key", str(e)))
            await results.add_project(failed)
            return

        key_mapping[source_key] = destination_key
        await results.record_project_key(source_key, destination_key, warning)
        logger.info(
            f"Project {index + 1}/{total}",
            org=org_ctx.key,
            project=source_key,
            destination=destination_key,
        )

        if state is not None and state.is_completed(source_key):
            result = ProjectResult(source_key, destination_key, org_ctx.key)
            result.steps.append(
                StepOutcome.skipped(PREVIOUSLY_MIGRATED, "Completed in an earlier run")
            )
            await results.add_project(result)
            return

        result = await migrate_one_project(ctx, org_ctx, project, destination_key, results)
        await results.add_project(result)

        if state is not None:
            if result.status is ProjectStatus.FAILED:
                state.mark_failed(source_key)
            else:
                state.mark_completed(source_key)
            ctx.state_store.save(state)

    outcomes = await map_concurrent(
        list(enumerate(projects)), migrate, ctx.performance.project_concurrency
    )
    for project, outcome in zip(projects, outcomes):
        if isinstance(outcome, BaseException):
            logger.error(
                "Project worker crashed", project=project["key"], error=str(outcome)
            )
    return key_mapping


async def migrate_one_project(
    ctx: MigrationContext,
    org_ctx: OrgContext,
    project: dict[str, Any],
    destination_key: str,
    results: RunResult,
) -> ProjectResult:
    """Run every per-project step in order and return the project's result.

    Issue and hotspot sync need the uploaded report and are skipped without
    it. All later steps are independent of each other and of the upload.
    """
    source_key = project["key"]
    source = ctx.source_client
    dest = org_ctx.client
    migration = ctx.config.migration
    result = ProjectResult(source_key, destination_key, org_ctx.key)
    steps = result.steps

    transfer = await run_step(
        steps,
        "Upload scanner report",
        lambda: ctx.transfer.transfer_project(source, dest, project, destination_key),
        describe=lambda t: t.describe(),
    )
    report_ok = transfer is not None
    if report_ok:
        result.lines_of_code = transfer.lines_of_code

    async def sync_issues() -> str | Skipped:
        if migration.skip_issue_sync:
            return Skipped("Disabled by config")
        if not report_ok:
            return Skipped("Report upload failed")
        issues = await source.get_issues_with_comments(source_key)
        synchronizer = IssueSynchronizer(
            source, dest, ctx.performance.issue_sync_concurrency
        )
        stats = await synchronizer.sync(destination_key, issues)
        await results.record_issue_sync(stats.matched, stats.transitioned)
        return f"{stats.matched} matched, {stats.transitioned} transitioned"

    async def sync_hotspots() -> str | Skipped:
        if migration.skip_hotspot_sync:
            return Skipped("Disabled by config")
        if not report_ok:
            return Skipped("Report upload failed")
        hotspots = await extractors.extract_hotspots(
            source, source_key, ctx.performance.max_concurrency
        )
        synchronizer = HotspotSynchronizer(dest, ctx.performance.hotspot_sync_concurrency)
        stats = await synchronizer.sync(destination_key, hotspots)
        await results.record_hotspot_sync(stats.matched, stats.status_changed)
        return f"{stats.matched} matched, {stats.status_changed} status changed"

    await run_step(steps, "Sync issues", sync_issues)
    await run_step(steps, "Sync hotspots", sync_hotspots)

    async def settings() -> str:
        values = await extractors.extract_project_settings(source, source_key)
        return await project_config.migrate_project_settings(dest, destination_key, values)

    async def tags() -> str | Skipped:
        values = await extractors.extract_project_tags(source, source_key)
        return await project_config.migrate_project_tags(dest, destination_key, values)

    async def links() -> str | Skipped:
        values = await extractors.extract_project_links(source, source_key)
        return await project_config.migrate_project_links(dest, destination_key, values)

    async def new_code() -> str | Skipped:
        periods = await extractors.extract_new_code_periods(source, source_key)
        outcome = await project_config.migrate_new_code_periods(
            dest, destination_key, periods
        )
        if isinstance(outcome, Skipped):
            await results.record_new_code_not_set(source_key)
        return outcome

    async def binding() -> str | Skipped:
        return await project_config.migrate_devops_binding(
            dest, destination_key, org_ctx.binding_for(source_key)
        )

    async def quality_gate() -> str | Skipped:
        gate = await source.get_project_quality_gate(source_key)
        return await project_config.assign_quality_gate(
            dest, destination_key, gate, org_ctx.gate_mapping
        )

    async def permissions() -> str:
        grants = await extractors.extract_project_permissions(source, source_key)
        applied = await migrate_project_permissions(dest, destination_key, grants)
        return f"{applied} grants applied"

    await run_step(steps, "Project settings", settings)
    await run_step(steps, "Project tags", tags)
    await run_step(steps, "Project links", links)
    await run_step(steps, "New code definitions", new_code)
    await run_step(steps, "DevOps binding", binding)
    await run_step(steps, "Assign quality gate", quality_gate)
    if org_ctx.builtin_profile_mapping:
        await run_step(
            steps,
            "Assign quality profiles",
            lambda: project_config.assign_quality_profiles(
                dest, destination_key, org_ctx.builtin_profile_mapping
            ),
        )
    await run_step(steps, "Project permissions", permissions)

    return result
