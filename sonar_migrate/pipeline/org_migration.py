"""Per-organization phase: org-wide resources, then the organization's projects."""

import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import structlog

from sonar_migrate.clients.sonarcloud import SonarCloudClient
from sonar_migrate.config import OrganizationConfig
from sonar_migrate.mapping import OrgAssignment, ResourceMapping
from sonar_migrate.pipeline.context import MigrationContext, OrgContext
from sonar_migrate.pipeline.extraction import ExtractedData
from sonar_migrate.pipeline.project_migration import migrate_org_projects
from sonar_migrate.pipeline.results import OrgResult, RunResult
from sonar_migrate.pipeline.steps import Skipped, run_step
from sonar_migrate.resources import (
    GlobalPermissionMigrator,
    GroupMigrator,
    PermissionTemplateMigrator,
    QualityGateMigrator,
    QualityProfileMigrator,
)

logger = structlog.get_logger(__name__)

SonarCloudClientFactory = Callable[[OrganizationConfig], SonarCloudClient]


def save_server_info(output_dir: Path, extracted: ExtractedData) -> Path:
    """Dump server reference data as JSON, once per run."""
    server_info_dir = output_dir / "server-info"
    server_info_dir.mkdir(parents=True, exist_ok=True)
    files: dict[str, Any] = {
        "system.json": extracted.server_info.get("system", {}),
        "plugins.json": extracted.server_info.get("plugins", []),
        "settings.json": extracted.server_info.get("settings", []),
        "webhooks.json": extracted.webhooks,
        "alm-settings.json": extracted.alm_settings,
    }
    for name, payload in files.items():
        with open(server_info_dir / name, "w") as f:
            json.dump(payload, f, indent=2, default=str)
    logger.info("Saved server info", path=str(server_info_dir))
    return server_info_dir


async def migrate_org_wide_resources(
    ctx: MigrationContext,
    org_ctx: OrgContext,
    resources: ResourceMapping,
    org_result: OrgResult,
    results: RunResult,
) -> None:
    """Replay org-wide resources in dependency order.

    Every step is non-fatal. The gate and built-in profile mapping tables are
    stored on ``org_ctx`` for the organization's project steps; a failed step
    leaves its table empty and the dependent project steps become no-ops.
    """
    org_key = org_ctx.key
    client = org_ctx.client
    steps = org_result.steps
    extracted = org_ctx.extracted

    async def create_groups() -> str:
        mapping = await GroupMigrator(client).migrate(resources.groups_by_org.get(org_key, []))
        results.groups += len(mapping)
        return f"{len(mapping)} created"

    async def global_permissions() -> str:
        granted = await GlobalPermissionMigrator(client).migrate(extracted.global_permissions)
        return f"{granted} grants applied"

    async def quality_gates() -> str:
        org_ctx.gate_mapping = await QualityGateMigrator(client).migrate(
            resources.gates_by_org.get(org_key, [])
        )
        results.quality_gates += len(org_ctx.gate_mapping)
        return f"{len(org_ctx.gate_mapping)} created"

    async def quality_profiles() -> str | Skipped:
        if ctx.config.migration.skip_quality_profile_sync:
            logger.info("Skipping quality profile sync, projects keep default profiles")
            return Skipped("Disabled by --skip-quality-profile-sync")
        migrated = await QualityProfileMigrator(client).migrate(
            resources.profiles_by_org.get(org_key, [])
        )
        org_ctx.builtin_profile_mapping = migrated.builtin_profile_mapping
        results.quality_profiles += len(migrated.profile_mapping)
        return migrated.describe()

    async def permission_templates() -> str:
        mapping = await PermissionTemplateMigrator(client).migrate(
            {
                "templates": resources.templates_by_org.get(org_key, []),
                "default_templates": extracted.permission_templates.get(
                    "default_templates", []
                ),
            }
        )
        return f"{len(mapping)} created"

    await run_step(steps, "Create groups", create_groups)
    await run_step(steps, "Set global permissions", global_permissions)
    await run_step(steps, "Create quality gates", quality_gates)
    await run_step(steps, "Restore quality profiles", quality_profiles)
    await run_step(steps, "Create permission templates", permission_templates)


async def migrate_one_organization(
    ctx: MigrationContext,
    assignment: OrgAssignment,
    extracted: ExtractedData,
    resources: ResourceMapping,
    results: RunResult,
    client_factory: SonarCloudClientFactory,
) -> dict[str, str]:
    """Migrate one organization end to end.

    Returns:
        Source to destination project keys for the organization's projects.
        Empty when the organization has no projects or cannot be reached.
    """
    org = assignment.organization
    projects = list(assignment.projects)
    log = logger.bind(org=org.key)
    if not projects:
        log.info("Skipping organization with no projects assigned")
        return {}

    log.info("Migrating organization", projects=len(projects))
    org_result = OrgResult(key=org.key, project_count=len(projects))
    results.org_results.append(org_result)

    async with client_factory(org) as client:
        connected = await run_step(
            org_result.steps,
            "Connect to SonarCloud",
            client.test_connection,
            describe=lambda _: None,
            default=False,
        )
        if connected is False:
            log.error("Cannot reach organization, skipping it")
            return {}

        org_ctx = OrgContext(organization=org, client=client, extracted=extracted)
        await migrate_org_wide_resources(ctx, org_ctx, resources, org_result, results)
        key_mapping = await migrate_org_projects(ctx, org_ctx, projects, results)

    log.info("Organization migrated", projects=len(key_mapping))
    return key_mapping
