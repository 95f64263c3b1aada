"""Read-only client for the source SonarQube Web API."""

from typing import Any

import httpx

from sonar_migrate.clients.base import BaseAPIClient
from sonar_migrate.clients.exceptions import ResourceNotFoundError
from sonar_migrate.config import RateLimitConfig, SonarQubeConfig


class SonarQubeClient(BaseAPIClient):
    """SonarQube API client.

    Authenticates with the token as the basic-auth user name and an empty
    password, which works on every SonarQube version still in the field.
    """

    def __init__(
        self,
        config: SonarQubeConfig,
        rate_limit: RateLimitConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the SonarQube client.

        Args:
            config: Source server URL and token.
            rate_limit: Retry and throttling settings.
            transport: Optional httpx transport for tests.
        """
        super().__init__(
            str(config.url),
            rate_limit=rate_limit,
            transport=transport,
            auth=httpx.BasicAuth(config.token, ""),
        )
        self.config = config

    def _get_auth_headers(self) -> dict[str, str]:
        return {}

    async def test_connection(self) -> dict[str, Any]:
        """Check that the server is reachable and up.

        Returns:
            The system status payload.
        """
        status = await self.get("/api/system/status")
        self._logger.info(
            "Connected to SonarQube",
            version=status.get("version"),
            status=status.get("status"),
        )
        return status

    # Projects

    async def list_all_projects(self) -> list[dict[str, Any]]:
        """List every project on the server."""
        return await self.get_paginated(
            "/api/projects/search", "components", params={"qualifiers": "TRK"}
        )

    async def get_branches(self, project_key: str) -> list[dict[str, Any]]:
        body = await self.get("/api/project_branches/list", {"project": project_key})
        return body.get("branches", [])

    async def get_project_measures(
        self, project_key: str, metric_keys: list[str]
    ) -> dict[str, str]:
        """Get measure values for a project keyed by metric."""
        body = await self.get(
            "/api/measures/component",
            {"component": project_key, "metricKeys": ",".join(metric_keys)},
        )
        measures = (body.get("component") or {}).get("measures", [])
        return {m["metric"]: m.get("value") for m in measures}

    # Quality gates

    async def get_quality_gates(self) -> list[dict[str, Any]]:
        body = await self.get("/api/qualitygates/list")
        return body.get("qualitygates", [])

    async def get_quality_gate_details(self, name: str) -> dict[str, Any]:
        return await self.get("/api/qualitygates/show", {"name": name})

    async def get_quality_gate_permissions(self, name: str) -> dict[str, Any]:
        """Get users and groups allowed to administer a gate.

        Older servers do not expose gate permissions; they yield empty lists.
        """
        try:
            users = await self.get(
                "/api/qualitygates/search_users", {"gateName": name, "selected": "selected"}
            )
            groups = await self.get(
                "/api/qualitygates/search_groups", {"gateName": name, "selected": "selected"}
            )
        except ResourceNotFoundError:
            return {"users": [], "groups": []}
        return {"users": users.get("users", []), "groups": groups.get("groups", [])}

    async def get_project_quality_gate(self, project_key: str) -> dict[str, Any] | None:
        """Get the gate assigned to a project, or None when there is none."""
        try:
            body = await self.get(
                "/api/qualitygates/get_by_project", {"project": project_key}
            )
        except ResourceNotFoundError:
            return None
        return body.get("qualityGate")

    # Quality profiles

    async def get_quality_profiles(self) -> list[dict[str, Any]]:
        body = await self.get("/api/qualityprofiles/search")
        return body.get("profiles", [])

    async def get_quality_profile_backup(self, language: str, name: str) -> str:
        """Get the XML backup of a profile."""
        return await self.get_text(
            "/api/qualityprofiles/backup",
            {"language": language, "qualityProfile": name},
        )

    async def get_quality_profile_permissions(
        self, language: str, name: str
    ) -> dict[str, Any]:
        """Get users and groups allowed to edit a profile.

        Built-in profiles cannot carry edit permissions and answer 400 on some
        versions; that case yields empty lists.
        """
        params = {"language": language, "qualityProfile": name, "selected": "selected"}
        try:
            users = await self.get("/api/qualityprofiles/search_users", params)
            groups = await self.get("/api/qualityprofiles/search_groups", params)
        except ResourceNotFoundError:
            return {"users": [], "groups": []}
        return {"users": users.get("users", []), "groups": groups.get("groups", [])}

    # Groups and permissions

    async def get_groups(self) -> list[dict[str, Any]]:
        return await self.get_paginated("/api/user_groups/search", "groups")

    async def get_global_permissions(self) -> list[dict[str, Any]]:
        return await self.get_paginated(
            "/api/permissions/groups", "groups", page_size=100
        )

    async def get_project_permissions(self, project_key: str) -> list[dict[str, Any]]:
        return await self.get_paginated(
            "/api/permissions/groups",
            "groups",
            params={"projectKey": project_key},
            page_size=100,
        )

    async def get_permission_templates(self) -> dict[str, Any]:
        return await self.get("/api/permissions/search_templates")

    # Portfolios

    async def get_portfolios(self) -> list[dict[str, Any]]:
        body = await self.get("/api/views/list")
        return body.get("views", [])

    async def get_portfolio_details(self, key: str) -> dict[str, Any] | None:
        try:
            return await self.get("/api/views/show", {"key": key})
        except ResourceNotFoundError:
            return None

    # Per-project configuration

    async def get_project_settings(self, project_key: str) -> list[dict[str, Any]]:
        body = await self.get("/api/settings/values", {"component": project_key})
        return body.get("settings", [])

    async def get_project_tags(self, project_key: str) -> list[str]:
        body = await self.get(
            "/api/components/show", {"component": project_key}
        )
        return (body.get("component") or {}).get("tags", [])

    async def get_project_links(self, project_key: str) -> list[dict[str, Any]]:
        body = await self.get("/api/project_links/search", {"projectKey": project_key})
        return body.get("links", [])

    async def get_new_code_periods(self, project_key: str) -> list[dict[str, Any]]:
        """Get the project-level and branch-level new code definitions."""
        project_level = await self.get(
            "/api/new_code_periods/show", {"project": project_key}
        )
        branches = await self.get(
            "/api/new_code_periods/list", {"project": project_key}
        )
        periods = []
        if project_level and project_level.get("type"):
            periods.append({**project_level, "projectKey": project_key})
        for period in branches.get("newCodePeriods", []):
            periods.append({**period, "projectKey": project_key})
        return periods

    # DevOps platforms

    async def get_alm_settings(self) -> dict[str, Any]:
        return await self.get("/api/alm_settings/list_definitions")

    async def get_project_binding(self, project_key: str) -> dict[str, Any] | None:
        """Get a project's DevOps binding, or None when it is not bound."""
        try:
            return await self.get(
                "/api/alm_settings/get_binding", {"project": project_key}
            )
        except ResourceNotFoundError:
            return None

    # Server-wide reference data

    async def get_system_info(self) -> dict[str, Any]:
        return await self.get("/api/system/info")

    async def get_installed_plugins(self) -> list[dict[str, Any]]:
        body = await self.get("/api/plugins/installed")
        return body.get("plugins", [])

    async def get_global_settings(self) -> list[dict[str, Any]]:
        body = await self.get("/api/settings/values")
        return body.get("settings", [])

    async def get_webhooks(self) -> list[dict[str, Any]]:
        body = await self.get("/api/webhooks/list")
        return body.get("webhooks", [])

    # Issues and hotspots

    async def get_issues_with_comments(self, project_key: str) -> list[dict[str, Any]]:
        return await self.get_paginated(
            "/api/issues/search",
            "issues",
            params={"componentKeys": project_key, "additionalFields": "comments"},
        )

    async def get_issue_changelog(self, issue_key: str) -> list[dict[str, Any]]:
        body = await self.get("/api/issues/changelog", {"issue": issue_key})
        return body.get("changelog", [])

    async def get_hotspots(self, project_key: str) -> list[dict[str, Any]]:
        return await self.get_paginated(
            "/api/hotspots/search", "hotspots", params={"projectKey": project_key}
        )

    async def get_hotspot_details(self, hotspot_key: str) -> dict[str, Any]:
        return await self.get("/api/hotspots/show", {"hotspot": hotspot_key})
