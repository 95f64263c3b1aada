"""Organization assignment for projects and org-wide resources, plus mapping CSVs."""

import csv
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog

from sonar_migrate.config import OrganizationConfig

logger = structlog.get_logger(__name__)

UNBOUND_GROUP = "(no binding)"


@dataclass(slots=True)
class BindingGroup:
    """Projects that share a DevOps platform owner (GitHub org, GitLab group...)."""

    alm: str
    identifier: str
    url: str = ""
    projects: list[dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class OrgAssignment:
    """Projects assigned to one destination organization. Immutable once built."""

    organization: OrganizationConfig
    projects: tuple[dict[str, Any], ...]
    binding_groups: tuple[BindingGroup, ...] = ()

    @property
    def key(self) -> str:
        return self.organization.key


@dataclass(slots=True)
class OrganizationMapping:
    """Result of :func:`map_projects_to_organizations`."""

    assignments: list[OrgAssignment]
    binding_groups: list[BindingGroup]
    unbound_projects: list[dict[str, Any]]


@dataclass(slots=True)
class ResourceMapping:
    """Org-wide resources each organization needs, keyed by organization key."""

    gates_by_org: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    profiles_by_org: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    groups_by_org: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    portfolios_by_org: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    templates_by_org: dict[str, list[dict[str, Any]]] = field(default_factory=dict)


def binding_group_key(binding: dict[str, Any]) -> str:
    """Build the grouping key for a binding: ALM plus the repository owner."""
    alm = binding.get("alm") or "unknown"
    repo = binding.get("repository") or binding.get("slug") or ""

    if alm in ("github", "gitlab"):
        return f"{alm}:{repo.split('/')[0]}"
    if alm == "azure":
        return f"azure:{repo or 'default'}"
    if alm in ("bitbucket", "bitbucketcloud"):
        path = binding.get("slug") or repo
        return f"bitbucket:{path.split('/')[0]}"
    return f"{alm}:{repo}"


def map_projects_to_organizations(
    projects: list[dict[str, Any]],
    bindings: dict[str, dict[str, Any]],
    organizations: list[OrganizationConfig],
) -> OrganizationMapping:
    """Assign every project to exactly one destination organization.

    With a single organization everything goes there. With several, a binding
    group goes to the first organization whose key appears (case-insensitive)
    in the group key, else to the first organization; unbound projects also go
    to the first organization.

    Args:
        projects: All source projects.
        bindings: Project key to DevOps binding.
        organizations: Configured destination organizations, in priority order.

    Returns:
        The assignments, in the same order as ``organizations``.
    """
    groups: dict[str, BindingGroup] = {}
    unbound: list[dict[str, Any]] = []

    for project in projects:
        binding = bindings.get(project["key"])
        if binding is None:
            unbound.append(project)
            continue
        group_key = binding_group_key(binding)
        if group_key not in groups:
            groups[group_key] = BindingGroup(
                alm=binding.get("alm") or "unknown",
                identifier=group_key,
                url=binding.get("url") or "",
            )
        groups[group_key].projects.append(project)

    logger.info(
        "Grouped projects by DevOps binding",
        binding_groups=len(groups),
        unbound_projects=len(unbound),
    )

    if len(organizations) == 1:
        only = organizations[0]
        return OrganizationMapping(
            assignments=[
                OrgAssignment(only, tuple(projects), tuple(groups.values()))
            ],
            binding_groups=list(groups.values()),
            unbound_projects=unbound,
        )

    assigned_projects: dict[str, list[dict[str, Any]]] = {o.key: [] for o in organizations}
    assigned_groups: dict[str, list[BindingGroup]] = {o.key: [] for o in organizations}
    default_org = organizations[0].key

    for group_key, group in groups.items():
        target = next(
            (o.key for o in organizations if o.key.lower() in group_key.lower()),
            default_org,
        )
        assigned_projects[target].extend(group.projects)
        assigned_groups[target].append(group)

    assigned_projects[default_org].extend(unbound)

    return OrganizationMapping(
        assignments=[
            OrgAssignment(
                o, tuple(assigned_projects[o.key]), tuple(assigned_groups[o.key])
            )
            for o in organizations
        ],
        binding_groups=list(groups.values()),
        unbound_projects=unbound,
    )


def map_resources_to_organizations(
    gates: list[dict[str, Any]],
    profiles: list[dict[str, Any]],
    groups: list[dict[str, Any]],
    portfolios: list[dict[str, Any]],
    templates: list[dict[str, Any]],
    assignments: list[OrgAssignment],
) -> ResourceMapping:
    """Decide which org-wide resources each organization receives.

    Gates, profiles, groups and templates are server-wide and go to every
    organization. A portfolio goes to each organization owning at least one of
    its projects.
    """
    mapping = ResourceMapping()
    for assignment in assignments:
        org_key = assignment.key
        project_keys = {p["key"] for p in assignment.projects}
        mapping.gates_by_org[org_key] = list(gates)
        mapping.profiles_by_org[org_key] = list(profiles)
        mapping.groups_by_org[org_key] = list(groups)
        mapping.templates_by_org[org_key] = list(templates)
        mapping.portfolios_by_org[org_key] = [
            p for p in portfolios if any(m["key"] in project_keys for m in p["projects"])
        ]
    return mapping


def write_mapping_csvs(
    output_dir: Path,
    organization_mapping: OrganizationMapping,
    resources: ResourceMapping,
    bindings: dict[str, dict[str, Any]],
    global_permissions: list[dict[str, Any]],
) -> list[Path]:
    """Write the reviewable mapping CSVs.

    Args:
        output_dir: Directory to write into; created if missing.
        organization_mapping: Project assignments.
        resources: Org-wide resource assignments.
        bindings: Project key to DevOps binding.
        global_permissions: Groups with their global permissions.

    Returns:
        Paths of the files written.
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    assignments = organization_mapping.assignments

    tables: dict[str, list[list[Any]]] = {
        "organizations.csv": _organizations_rows(assignments),
        "projects.csv": _projects_rows(assignments, bindings),
        "group-mappings.csv": [["Group Name", "Description", "Target Organization"]]
        + [
            [g["name"], g.get("description", ""), org]
            for org, groups in resources.groups_by_org.items()
            for g in groups
        ],
        "profile-mappings.csv": [
            ["Profile Name", "Language", "Is Default", "Parent", "Active Rules",
             "Target Organization"]
        ]
        + [
            [p["name"], p["language"], p.get("is_default", False),
             p.get("parent_name") or "", p.get("active_rule_count", 0), org]
            for org, profiles in resources.profiles_by_org.items()
            for p in profiles
        ],
        "gate-mappings.csv": [
            ["Gate Name", "Is Default", "Is Built-In", "Conditions Count",
             "Target Organization"]
        ]
        + [
            [g["name"], g.get("is_default", False), g.get("is_built_in", False),
             len(g.get("conditions", [])), org]
            for org, gates in resources.gates_by_org.items()
            for g in gates
        ],
        "portfolio-mappings.csv": [
            ["Portfolio Key", "Portfolio Name", "Projects Count", "Target Organization"]
        ]
        + [
            [p["key"], p["name"], len(p.get("projects", [])), org]
            for org, portfolios in resources.portfolios_by_org.items()
            for p in portfolios
        ],
        "template-mappings.csv": [
            ["Template Name", "Description", "Key Pattern", "Target Organization"]
        ]
        + [
            [t["name"], t.get("description", ""), t.get("project_key_pattern", ""), org]
            for org, templates in resources.templates_by_org.items()
            for t in templates
        ],
        "global-permissions.csv": [["Group Name", "Permission", "Target Organization"]]
        + [
            [g["name"], permission, a.key]
            for a in assignments
            for g in global_permissions
            for permission in g.get("permissions", [])
        ],
    }

    written = []
    for name, rows in tables.items():
        path = output_dir / name
        with open(path, "w", newline="", encoding="utf-8") as f:
            csv.writer(f).writerows(rows)
        logger.info("Generated mapping file", path=str(path), rows=len(rows) - 1)
        written.append(path)
    return written


def _organizations_rows(assignments: list[OrgAssignment]) -> list[list[Any]]:
    rows: list[list[Any]] = [
        ["Include", "Target Organization", "Binding Group", "ALM Platform", "Projects Count"]
    ]
    for assignment in assignments:
        for group in assignment.binding_groups:
            rows.append(
                ["yes", assignment.key, group.identifier, group.alm, len(group.projects)]
            )
        bound = {p["key"] for g in assignment.binding_groups for p in g.projects}
        unbound = [p for p in assignment.projects if p["key"] not in bound]
        if unbound:
            rows.append(["yes", assignment.key, UNBOUND_GROUP, "none", len(unbound)])
    return rows


def _projects_rows(
    assignments: list[OrgAssignment], bindings: dict[str, dict[str, Any]]
) -> list[list[Any]]:
    rows: list[list[Any]] = [
        ["Include", "Project Key", "Project Name", "Target Organization", "ALM Platform",
         "Repository", "Monorepo", "Visibility", "Last Analysis"]
    ]
    for assignment in assignments:
        for project in assignment.projects:
            binding = bindings.get(project["key"]) or {}
            rows.append(
                [
                    "yes",
                    project["key"],
                    project.get("name") or project["key"],
                    assignment.key,
                    binding.get("alm") or "none",
                    binding.get("repository") or "",
                    binding.get("monorepo", False),
                    project.get("visibility") or "public",
                    project.get("lastAnalysisDate") or "",
                ]
            )
    return rows
