"""Per-project configuration migrators: settings, tags, links, new code, bindings."""

from typing import Any

import structlog

from sonar_migrate.clients.exceptions import APIError
from sonar_migrate.clients.sonarcloud import SonarCloudClient
from sonar_migrate.pipeline.steps import Skipped

logger = structlog.get_logger(__name__)


async def migrate_project_settings(
    client: SonarCloudClient, project_key: str, settings: list[dict[str, Any]]
) -> str:
    """Set each non-inherited setting; multi-valued settings are comma-joined."""
    applied = 0
    for setting in settings:
        value = setting.get("value") or ",".join(setting.get("values") or [])
        if not value:
            continue
        try:
            await client.set_project_setting(setting["key"], value, project_key)
            applied += 1
        except APIError as e:
            logger.debug(
                "Failed to set project setting",
                project=project_key,
                setting=setting["key"],
                error=str(e),
            )
    return f"{applied}/{len(settings)} settings applied"


async def migrate_project_tags(
    client: SonarCloudClient, project_key: str, tags: list[str]
) -> str | Skipped:
    if not tags:
        return Skipped("No tags")
    await client.set_project_tags(project_key, tags)
    return f"{len(tags)} tags set"


async def migrate_project_links(
    client: SonarCloudClient, project_key: str, links: list[dict[str, Any]]
) -> str | Skipped:
    if not links:
        return Skipped("No links")
    created = 0
    for link in links:
        try:
            await client.create_project_link(project_key, link["name"], link["url"])
            created += 1
        except APIError as e:
            logger.debug(
                "Failed to create project link",
                project=project_key,
                link=link["name"],
                error=str(e),
            )
    return f"{created}/{len(links)} links created"


async def migrate_new_code_periods(
    client: SonarCloudClient, project_key: str, periods: list[dict[str, Any]]
) -> str | Skipped:
    """Apply the project's own (non-inherited) new code definitions.

    Returns:
        A detail string, or :class:`Skipped` when the project defines none so
        the caller can report it as lacking a new code definition.
    """
    own = [p for p in periods if not p.get("inherited", False)]
    if not own:
        return Skipped("No new code definition")

    applied = 0
    for period in own:
        try:
            await client.set_new_code_period(
                project_key, period["type"], period.get("value"), period.get("branch_key")
            )
            applied += 1
        except APIError as e:
            logger.debug(
                "Failed to set new code period",
                project=project_key,
                type=period["type"],
                branch=period.get("branch_key"),
                error=str(e),
            )
    return f"{applied}/{len(own)} definitions applied"


async def migrate_devops_binding(
    client: SonarCloudClient, project_key: str, binding: dict[str, Any] | None
) -> str | Skipped:
    """Recreate the project's DevOps platform binding.

    Raises:
        ValueError: If the binding's platform is not supported.
    """
    if not binding:
        return Skipped("No binding")

    alm = binding.get("alm")
    setting = binding.get("key")
    if alm == "github":
        await client.set_github_binding(
            project_key, setting, binding["repository"], binding.get("monorepo", False)
        )
    elif alm == "gitlab":
        await client.set_gitlab_binding(project_key, setting, binding["repository"])
    elif alm == "azure":
        await client.set_azure_binding(
            project_key, setting, binding.get("repository"), binding.get("slug")
        )
    elif alm in ("bitbucket", "bitbucketcloud"):
        await client.set_bitbucket_binding(
            project_key, setting, binding.get("repository"), binding.get("slug")
        )
    else:
        raise ValueError(f"Unsupported DevOps platform: {alm}")
    return f"{alm} binding set"


async def assign_quality_gate(
    client: SonarCloudClient,
    project_key: str,
    gate: dict[str, Any] | None,
    gate_mapping: dict[str, str],
) -> str | Skipped:
    """Assign the migrated counterpart of the project's source gate.

    A no-op when the project has no gate or its gate was not migrated.
    """
    if not gate:
        return Skipped("No quality gate")
    gate_id = gate_mapping.get(gate.get("name"))
    if gate_id is None:
        return Skipped(f"Gate not migrated: {gate.get('name')}")
    await client.assign_quality_gate(gate_id, project_key)
    return gate["name"]


async def assign_quality_profiles(
    client: SonarCloudClient, project_key: str, builtin_profile_mapping: dict[str, str]
) -> str:
    """Add each migrated built-in profile to the project, best effort per language."""
    assigned = 0
    for language, profile_name in builtin_profile_mapping.items():
        try:
            await client.add_quality_profile_to_project(language, profile_name, project_key)
            assigned += 1
        except APIError as e:
            logger.debug(
                "Could not assign profile",
                project=project_key,
                profile=profile_name,
                language=language,
                error=str(e),
            )
    return f"{assigned} profiles assigned"
