"""Field extractors: fetch SonarQube resources and normalise them into plain dicts."""

from typing import Any

import structlog

from sonar_migrate.clients.exceptions import APIError
from sonar_migrate.clients.sonarqube import SonarQubeClient
from sonar_migrate.concurrency import map_concurrent

logger = structlog.get_logger(__name__)

NEW_CODE_TYPE_MAP = {
    "NUMBER_OF_DAYS": "days",
    "PREVIOUS_VERSION": "previous_version",
    "SPECIFIC_ANALYSIS": "specific_analysis",
    "REFERENCE_BRANCH": "reference_branch",
}

ALM_KINDS = ("github", "gitlab", "azure", "bitbucket", "bitbucketcloud")


async def extract_quality_gates(client: SonarQubeClient) -> list[dict[str, Any]]:
    """Extract all quality gates with their conditions and permissions."""
    gates = await client.get_quality_gates()
    logger.info("Found quality gates", count=len(gates))

    detailed = []
    for gate in gates:
        details = await client.get_quality_gate_details(gate["name"])
        permissions = await client.get_quality_gate_permissions(gate["name"])
        detailed.append(
            {
                "name": gate["name"],
                "is_default": gate.get("isDefault", False),
                "is_built_in": gate.get("isBuiltIn", False),
                "conditions": [
                    {
                        "metric": c["metric"],
                        "op": c.get("op"),
                        "error": c.get("error"),
                    }
                    for c in details.get("conditions", [])
                ],
                "permissions": permissions,
            }
        )
    return detailed


async def extract_quality_profiles(client: SonarQubeClient) -> list[dict[str, Any]]:
    """Extract all quality profiles with their XML backup and permissions.

    A profile whose backup cannot be fetched is kept with ``backup_xml=None``;
    the restore step skips it.
    """
    profiles = await client.get_quality_profiles()
    logger.info("Found quality profiles", count=len(profiles))

    detailed = []
    for profile in profiles:
        language, name = profile["language"], profile["name"]
        backup_xml = None
        try:
            backup_xml = await client.get_quality_profile_backup(language, name)
        except APIError as e:
            logger.warning(
                "Failed to back up profile", profile=name, language=language, error=str(e)
            )

        permissions = {"users": [], "groups": []}
        if not profile.get("isBuiltIn", False):
            permissions = await client.get_quality_profile_permissions(language, name)

        detailed.append(
            {
                "key": profile["key"],
                "name": name,
                "language": language,
                "is_default": profile.get("isDefault", False),
                "is_built_in": profile.get("isBuiltIn", False),
                "parent_key": profile.get("parentKey"),
                "parent_name": profile.get("parentName"),
                "active_rule_count": profile.get("activeRuleCount", 0),
                "backup_xml": backup_xml,
                "permissions": permissions,
            }
        )
    return detailed


async def extract_groups(client: SonarQubeClient) -> list[dict[str, Any]]:
    groups = await client.get_groups()
    logger.info("Found user groups", count=len(groups))
    return [
        {
            "name": g["name"],
            "description": g.get("description", ""),
            "members_count": g.get("membersCount", 0),
            "default": g.get("default", False),
        }
        for g in groups
    ]


def _normalise_group_permissions(groups: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return [
        {
            "name": g["name"],
            "description": g.get("description", ""),
            "permissions": g.get("permissions", []),
        }
        for g in groups
    ]


async def extract_global_permissions(client: SonarQubeClient) -> list[dict[str, Any]]:
    groups = await client.get_global_permissions()
    logger.info("Found groups with global permissions", count=len(groups))
    return _normalise_group_permissions(groups)


async def extract_project_permissions(
    client: SonarQubeClient, project_key: str
) -> list[dict[str, Any]]:
    return _normalise_group_permissions(await client.get_project_permissions(project_key))


async def extract_permission_templates(client: SonarQubeClient) -> dict[str, Any]:
    """Extract permission templates and the per-qualifier defaults."""
    data = await client.get_permission_templates()
    templates = data.get("permissionTemplates", [])
    logger.info("Found permission templates", count=len(templates))
    return {
        "templates": [
            {
                "id": t["id"],
                "name": t["name"],
                "description": t.get("description", ""),
                "project_key_pattern": t.get("projectKeyPattern", ""),
                "permissions": [
                    {"key": p["key"], "groups": p.get("groups", [])}
                    for p in t.get("permissions", [])
                ],
            }
            for t in templates
        ],
        "default_templates": [
            {"template_id": d["templateId"], "qualifier": d["qualifier"]}
            for d in data.get("defaultTemplates", [])
        ],
    }


async def extract_portfolios(client: SonarQubeClient) -> list[dict[str, Any]]:
    """Extract portfolios with their member projects.

    Raises on servers without portfolio support; the caller treats that as a
    non-fatal extraction failure.
    """
    portfolios = await client.get_portfolios()
    logger.info("Found portfolios", count=len(portfolios))

    detailed = []
    for portfolio in portfolios:
        details = await client.get_portfolio_details(portfolio["key"]) or {}
        members = details.get("projects") or details.get("selectedProjects") or []
        detailed.append(
            {
                "key": portfolio["key"],
                "name": portfolio["name"],
                "description": portfolio.get("desc") or portfolio.get("description", ""),
                "selection_mode": details.get("selectionMode", "MANUAL"),
                "projects": [{"key": p.get("key") or p.get("projectKey")} for p in members],
            }
        )
    return detailed


async def extract_alm_settings(client: SonarQubeClient) -> dict[str, list[Any]]:
    settings = await client.get_alm_settings()
    return {kind: settings.get(kind, []) for kind in ALM_KINDS}


async def extract_project_binding(
    client: SonarQubeClient, project_key: str
) -> dict[str, Any] | None:
    binding = await client.get_project_binding(project_key)
    if not binding:
        return None
    return {
        "alm": binding.get("alm"),
        "key": binding.get("key"),
        "repository": binding.get("repository"),
        "slug": binding.get("slug"),
        "url": binding.get("url"),
        "monorepo": binding.get("monorepo", False),
    }


async def extract_all_project_bindings(
    client: SonarQubeClient, projects: list[dict[str, Any]], concurrency: int
) -> dict[str, dict[str, Any]]:
    """Fetch every project's DevOps binding under bounded concurrency.

    A project whose lookup fails is left out of the map; the other projects are
    unaffected.
    """
    logger.info(
        "Extracting DevOps bindings", projects=len(projects), concurrency=concurrency
    )

    async def fetch(project: dict[str, Any]) -> tuple[str, dict[str, Any] | None]:
        return project["key"], await extract_project_binding(client, project["key"])

    results = await map_concurrent(projects, fetch, concurrency)
    bindings = {}
    for project, result in zip(projects, results):
        if isinstance(result, BaseException):
            logger.warning(
                "Failed to fetch DevOps binding", project=project["key"], error=str(result)
            )
            continue
        key, binding = result
        if binding:
            bindings[key] = binding

    logger.info(f"Found DevOps bindings for {len(bindings)}/{len(projects)} projects")
    return bindings


async def extract_all_project_branches(
    client: SonarQubeClient, projects: list[dict[str, Any]], concurrency: int
) -> dict[str, list[dict[str, Any]]]:
    """Fetch every project's branch list under bounded concurrency.

    Failed projects are absent from the map; its size relative to the project
    count shows how complete the extraction was.
    """
    logger.info("Extracting branches", projects=len(projects), concurrency=concurrency)

    async def fetch(project: dict[str, Any]) -> tuple[str, list[dict[str, Any]]]:
        return project["key"], await client.get_branches(project["key"])

    results = await map_concurrent(projects, fetch, concurrency)
    branches = {}
    for project, result in zip(projects, results):
        if isinstance(result, BaseException):
            logger.warning(
                "Failed to fetch branches", project=project["key"], error=str(result)
            )
            continue
        key, project_branches = result
        branches[key] = project_branches

    logger.info(f"Extracted branches for {len(branches)}/{len(projects)} projects")
    return branches


async def extract_server_info(client: SonarQubeClient) -> dict[str, Any]:
    return {
        "system": await client.get_system_info(),
        "plugins": await client.get_installed_plugins(),
        "settings": await client.get_global_settings(),
    }


async def extract_webhooks(client: SonarQubeClient) -> list[dict[str, Any]]:
    return await client.get_webhooks()


# Per-project extractors


async def extract_project_settings(
    client: SonarQubeClient, project_key: str
) -> list[dict[str, Any]]:
    """Extract settings set on the project itself (inherited ones are dropped)."""
    settings = await client.get_project_settings(project_key)
    own = [s for s in settings if not s.get("inherited", False)]
    logger.debug(
        "Found project settings", project=project_key, own=len(own), total=len(settings)
    )
    return [
        {"key": s["key"], "value": s.get("value"), "values": s.get("values", [])}
        for s in own
    ]


async def extract_project_tags(client: SonarQubeClient, project_key: str) -> list[str]:
    return await client.get_project_tags(project_key)


async def extract_project_links(
    client: SonarQubeClient, project_key: str
) -> list[dict[str, Any]]:
    links = await client.get_project_links(project_key)
    # Links derived from the SCM configuration cannot be recreated
    return [
        {"name": link.get("name") or link.get("type"), "url": link["url"]}
        for link in links
        if link.get("url")
    ]


async def extract_new_code_periods(
    client: SonarQubeClient, project_key: str
) -> list[dict[str, Any]]:
    periods = await client.get_new_code_periods(project_key)
    return [
        {
            "project_key": p.get("projectKey", project_key),
            "branch_key": p.get("branchKey"),
            "type": NEW_CODE_TYPE_MAP.get(p.get("type"), p.get("type")),
            "value": p.get("value"),
            "inherited": p.get("inherited", False),
        }
        for p in periods
    ]


async def extract_hotspots(
    client: SonarQubeClient, project_key: str, concurrency: int
) -> list[dict[str, Any]]:
    """Extract hotspots with their comments.

    A hotspot whose details cannot be fetched is kept without comments.
    """
    hotspots = await client.get_hotspots(project_key)
    logger.debug("Found hotspots", project=project_key, count=len(hotspots))

    async def detail(hotspot: dict[str, Any]) -> dict[str, Any]:
        details = await client.get_hotspot_details(hotspot["key"])
        return {
            **hotspot,
            "rule_key": (details.get("rule") or {}).get("key"),
            "comments": details.get("comment", []),
        }

    results = await map_concurrent(hotspots, detail, concurrency)
    detailed = []
    for hotspot, result in zip(hotspots, results):
        if isinstance(result, BaseException):
            logger.warning(
                "Failed to get hotspot details", hotspot=hotspot["key"], error=str(result)
            )
            detailed.append({**hotspot, "comments": []})
        else:
            detailed.append(result)
    return detailed
