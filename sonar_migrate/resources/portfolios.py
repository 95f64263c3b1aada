"""Enterprise portfolio migrator.

Portfolios live above organizations, so their member projects must be given as
platform-wide ids. Those ids are only listed through a portfolio's
"selectable projects" endpoints, which is why a throwaway lookup portfolio is
created first and always deleted afterwards.
"""

import time
from dataclasses import dataclass
from typing import Any

import structlog

from sonar_migrate.clients.enterprise import EnterpriseClient

logger = structlog.get_logger(__name__)

LOOKUP_PORTFOLIO_PREFIX = "_sonar_migrate_temp_lookup_"
ALL_PROJECTS_MODE = "REST"


@dataclass(slots=True)
class PortfolioMigrationStats:
    created: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0

    @property
    def migrated(self) -> int:
        return self.created + self.updated

    def describe(self) -> str:
        return (
            f"{self.created} created, {self.updated} updated, "
            f"{self.skipped} skipped, {self.failed} failed"
        )


async def build_project_uuid_map(
    client: EnterpriseClient, enterprise_id: str
) -> dict[str, dict[str, Any]]:
    """Map every selectable destination project key to its ``{id, branchId}``.

    The lookup portfolio is deleted even when enumeration fails; the
    enumeration error is then propagated.
    """
    lookup = await client.create_portfolio(
        name=f"{LOOKUP_PORTFOLIO_PREFIX}{int(time.time() * 1000)}",
        enterprise_id=enterprise_id,
        description="Temporary portfolio for project id resolution (will be deleted)",
    )

    uuid_map: dict[str, dict[str, Any]] = {}
    try:
        organizations = await client.get_selectable_organizations(lookup["id"])
        logger.debug("Found selectable organizations", count=len(organizations))
        for org in organizations:
            projects = await client.get_selectable_projects(lookup["id"], org["id"])
            for project in projects:
                uuid_map[project["projectKey"]] = {
                    "id": project["id"],
                    "branchId": project.get("branchId"),
                }
            logger.debug(
                "Resolved project ids", org=org.get("name"), count=len(projects)
            )
    finally:
        await client.delete_portfolio(lookup["id"])
        logger.debug("Deleted lookup portfolio", portfolio_id=lookup["id"])

    logger.info("Resolved project ids for portfolios", count=len(uuid_map))
    return uuid_map


def resolve_portfolio_projects(
    portfolio: dict[str, Any],
    project_key_mapping: dict[str, str],
    uuid_map: dict[str, dict[str, Any]],
) -> list[dict[str, Any]]:
    """Resolve a source portfolio's members to destination project ids.

    An "all projects" portfolio gets every selectable project. Otherwise each
    member goes through the project key mapping (falling back to its own key)
    and then the id map; members missing from either are dropped.
    """
    if portfolio.get("selection_mode") == ALL_PROJECTS_MODE:
        return [{"id": u["id"], "branchId": u.get("branchId")} for u in uuid_map.values()]

    resolved = []
    for member in portfolio.get("projects", []):
        destination_key = project_key_mapping.get(member["key"], member["key"])
        ids = uuid_map.get(destination_key)
        if ids is None:
            logger.debug(
                "Portfolio member not found on destination",
                portfolio=portfolio["name"],
                project=destination_key,
            )
            continue
        resolved.append({"id": ids["id"], "branchId": ids.get("branchId")})

    logger.info(
        f"Portfolio {portfolio['name']!r}: resolved "
        f"{len(resolved)}/{len(portfolio.get('projects', []))} projects"
    )
    return resolved


async def migrate_portfolios(
    client: EnterpriseClient,
    enterprise_key: str,
    portfolios: list[dict[str, Any]],
    project_key_mapping: dict[str, str],
) -> PortfolioMigrationStats:
    """Create or update every source portfolio at the enterprise level.

    A same-named destination portfolio is updated, unless it has no projects
    and none resolve either, in which case it is skipped. One failing portfolio
    does not stop the others.

    Args:
        client: Enterprise API client.
        enterprise_key: Destination enterprise key.
        portfolios: Extracted source portfolios.
        project_key_mapping: Source to destination project keys for the run.

    Returns:
        Per-outcome counts.

    Raises:
        APIError: If the enterprise or the project id map cannot be resolved.
    """
    stats = PortfolioMigrationStats()
    if not portfolios:
        logger.info("No portfolios to migrate")
        return stats

    logger.info("Migrating portfolios", count=len(portfolios))
    enterprise_id = await client.resolve_enterprise_id(enterprise_key)
    existing_by_name = {
        p["name"]: p for p in await client.list_portfolios(enterprise_id)
    }
    uuid_map = await build_project_uuid_map(client, enterprise_id)

    for portfolio in portfolios:
        name = portfolio["name"]
        try:
            projects = resolve_portfolio_projects(portfolio, project_key_mapping, uuid_map)
            existing = existing_by_name.get(name)
            if existing is not None:
                if not projects and not existing.get("projects"):
                    logger.info("Portfolio exists with nothing to add", portfolio=name)
                    stats.skipped += 1
                    continue
                await client.update_portfolio(
                    existing["id"],
                    name=name,
                    description=portfolio.get("description") or "",
                    projects=projects,
                )
                stats.updated += 1
                logger.info("Updated portfolio", portfolio=name, projects=len(projects))
            else:
                await client.create_portfolio(
                    name=name,
                    enterprise_id=enterprise_id,
                    description=portfolio.get("description") or "",
                    projects=projects,
                )
                stats.created += 1
                logger.info("Created portfolio", portfolio=name, projects=len(projects))
        except Exception as e:
            stats.failed += 1
            logger.warning("Failed to migrate portfolio", portfolio=name, error=str(e))

    logger.info("Portfolio migration complete", detail=stats.describe())
    return stats
