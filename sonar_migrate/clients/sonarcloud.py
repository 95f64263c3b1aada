"""Organization-scoped client for the SonarCloud Web API."""

from typing import Any

import httpx

from sonar_migrate.clients.base import BaseAPIClient
from sonar_migrate.clients.exceptions import APIError, ResourceNotFoundError
from sonar_migrate.config import OrganizationConfig, RateLimitConfig

UNKNOWN_OWNER = "unknown"


class SonarCloudClient(BaseAPIClient):
    """SonarCloud API client bound to one organization.

    Every write call carries the ``organization`` parameter, so one instance
    must never be shared between organizations.
    """

    def __init__(
        self,
        org_config: OrganizationConfig,
        rate_limit: RateLimitConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the SonarCloud client.

        Args:
            org_config: Organization key, token and server URL.
            rate_limit: Retry and throttling settings.
            transport: Optional httpx transport for tests.
        """
        super().__init__(
            str(org_config.url), rate_limit=rate_limit, transport=transport
        )
        self.org_config = org_config
        self.organization = org_config.key
        self._logger = self._logger.bind(org=org_config.key)

    def _get_auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.org_config.token}"}

    def _org(self, **params: Any) -> dict[str, Any]:
        return {**params, "organization": self.organization}

    async def test_connection(self) -> dict[str, Any]:
        """Check that the token can see the configured organization.

        Raises:
            ResourceNotFoundError: If the organization is not visible.
        """
        body = await self.get(
            "/api/organizations/search", {"organizations": self.organization}
        )
        organizations = body.get("organizations", [])
        if not organizations:
            raise ResourceNotFoundError(
                f"Organization not found or not accessible: {self.organization}"
            )
        self._logger.info("Connected to SonarCloud organization")
        return organizations[0]

    # Projects

    async def is_project_key_taken_globally(self, project_key: str) -> dict[str, Any]:
        """Check whether a project key already exists anywhere on SonarCloud.

        Returns:
            ``{"taken": bool, "owner": str | None}``. A lookup error other than
            404 is reported as taken by an unknown owner, so the caller picks a
            prefixed key rather than colliding.
        """
        try:
            body = await self.get("/api/components/show", {"component": project_key})
        except ResourceNotFoundError:
            return {"taken": False, "owner": None}
        except APIError as e:
            self._logger.debug(
                "Could not check global key availability",
                project_key=project_key,
                error=str(e),
            )
            return {"taken": True, "owner": UNKNOWN_OWNER}

        component = body.get("component") or {}
        return {"taken": True, "owner": component.get("organization") or UNKNOWN_OWNER}

    async def project_exists(self, project_key: str) -> bool:
        body = await self.get(
            "/api/projects/search", self._org(projects=project_key)
        )
        return any(c.get("key") == project_key for c in body.get("components", []))

    async def create_project(
        self, project_key: str, name: str, visibility: str | None = None
    ) -> dict[str, Any]:
        body = await self.post(
            "/api/projects/create",
            params=self._org(project=project_key, name=name, visibility=visibility),
        )
        return body.get("project", body)

    # Quality gates

    async def create_quality_gate(self, name: str) -> dict[str, Any]:
        return await self.post("/api/qualitygates/create", params=self._org(name=name))

    async def create_quality_gate_condition(
        self, gate_id: str, metric: str, op: str, error: str
    ) -> dict[str, Any]:
        return await self.post(
            "/api/qualitygates/create_condition",
            params=self._org(gateId=gate_id, metric=metric, op=op, error=error),
        )

    async def set_default_quality_gate(self, gate_id: str) -> None:
        await self.post("/api/qualitygates/set_as_default", params=self._org(id=gate_id))

    async def assign_quality_gate(self, gate_id: str, project_key: str) -> None:
        await self.post(
            "/api/qualitygates/select",
            params=self._org(gateId=gate_id, projectKey=project_key),
        )

    # Quality profiles

    async def restore_quality_profile(self, backup_xml: str) -> dict[str, Any]:
        """Restore a profile from its XML backup (multipart upload)."""
        return await self.post(
            "/api/qualityprofiles/restore",
            files={
                "backup": (
                    "profile-backup.xml",
                    backup_xml.encode("utf-8"),
                    "application/xml",
                )
            },
            data={"organization": self.organization},
        )

    async def set_default_quality_profile(self, language: str, name: str) -> None:
        await self.post(
            "/api/qualityprofiles/set_default",
            params=self._org(language=language, qualityProfile=name),
        )

    async def add_quality_profile_group(
        self, name: str, language: str, group: str
    ) -> None:
        await self.post(
            "/api/qualityprofiles/add_group",
            params=self._org(qualityProfile=name, language=language, group=group),
        )

    async def add_quality_profile_user(
        self, name: str, language: str, login: str
    ) -> None:
        await self.post(
            "/api/qualityprofiles/add_user",
            params=self._org(qualityProfile=name, language=language, login=login),
        )

    async def add_quality_profile_to_project(
        self, language: str, name: str, project_key: str
    ) -> None:
        await self.post(
            "/api/qualityprofiles/add_project",
            params=self._org(language=language, qualityProfile=name, project=project_key),
        )

    # Groups and permissions

    async def create_group(self, name: str, description: str = "") -> dict[str, Any]:
        body = await self.post(
            "/api/user_groups/create",
            params=self._org(name=name, description=description),
        )
        return body.get("group", body)

    async def add_group_permission(
        self, group_name: str, permission: str, project_key: str | None = None
    ) -> None:
        await self.post(
            "/api/permissions/add_group",
            params=self._org(
                groupName=group_name, permission=permission, projectKey=project_key
            ),
        )

    async def create_permission_template(
        self, name: str, description: str = "", project_key_pattern: str = ""
    ) -> dict[str, Any]:
        body = await self.post(
            "/api/permissions/create_template",
            params=self._org(
                name=name,
                description=description,
                projectKeyPattern=project_key_pattern or None,
            ),
        )
        return body.get("permissionTemplate", body)

    async def add_group_to_template(
        self, template_id: str, group_name: str, permission: str
    ) -> None:
        await self.post(
            "/api/permissions/add_group_to_template",
            params=self._org(
                templateId=template_id, groupName=group_name, permission=permission
            ),
        )

    async def set_default_template(self, template_id: str, qualifier: str = "TRK") -> None:
        await self.post(
            "/api/permissions/set_default_template",
            params=self._org(templateId=template_id, qualifier=qualifier),
        )

    # Project configuration

    async def set_project_setting(self, key: str, value: str, project_key: str) -> None:
        await self.post(
            "/api/settings/set",
            params={"key": key, "value": value, "component": project_key},
        )

    async def set_project_tags(self, project_key: str, tags: list[str]) -> None:
        await self.post(
            "/api/project_tags/set",
            params={"project": project_key, "tags": ",".join(tags)},
        )

    async def create_project_link(self, project_key: str, name: str, url: str) -> None:
        await self.post(
            "/api/project_links/create",
            params={"projectKey": project_key, "name": name, "url": url},
        )

    async def set_new_code_period(
        self,
        project_key: str,
        period_type: str,
        value: str | None = None,
        branch: str | None = None,
    ) -> None:
        await self.post(
            "/api/new_code_periods/set",
            params={
                "project": project_key,
                "type": period_type,
                "value": value,
                "branch": branch,
            },
        )

    async def set_github_binding(
        self, project_key: str, alm_setting: str, repository: str, monorepo: bool = False
    ) -> None:
        await self.post(
            "/api/alm_settings/set_github_binding",
            params={
                "project": project_key,
                "almSetting": alm_setting,
                "repository": repository,
                "monorepo": monorepo,
            },
        )

    async def set_gitlab_binding(
        self, project_key: str, alm_setting: str, repository: str
    ) -> None:
        await self.post(
            "/api/alm_settings/set_gitlab_binding",
            params={"project": project_key, "almSetting": alm_setting, "repository": repository},
        )

    async def set_azure_binding(
        self, project_key: str, alm_setting: str, project_name: str, repository_name: str
    ) -> None:
        await self.post(
            "/api/alm_settings/set_azure_binding",
            params={
                "project": project_key,
                "almSetting": alm_setting,
                "projectName": project_name,
                "repositoryName": repository_name,
            },
        )

    async def set_bitbucket_binding(
        self, project_key: str, alm_setting: str, repository: str, slug: str
    ) -> None:
        await self.post(
            "/api/alm_settings/set_bitbucket_binding",
            params={
                "project": project_key,
                "almSetting": alm_setting,
                "repository": repository,
                "slug": slug,
            },
        )

    # Issues and hotspots

    async def search_issues(self, project_key: str) -> list[dict[str, Any]]:
        return await self.get_paginated(
            "/api/issues/search", "issues", params=self._org(componentKeys=project_key)
        )

    async def transition_issue(self, issue_key: str, transition: str) -> None:
        await self.post(
            "/api/issues/do_transition",
            params={"issue": issue_key, "transition": transition},
        )

    async def assign_issue(self, issue_key: str, assignee: str) -> None:
        await self.post(
            "/api/issues/assign", params={"issue": issue_key, "assignee": assignee}
        )

    async def add_issue_comment(self, issue_key: str, text: str) -> None:
        await self.post(
            "/api/issues/add_comment", params={"issue": issue_key, "text": text}
        )

    async def set_issue_tags(self, issue_key: str, tags: list[str]) -> None:
        await self.post(
            "/api/issues/set_tags", params={"issue": issue_key, "tags": ",".join(tags)}
        )

    async def search_hotspots(self, project_key: str) -> list[dict[str, Any]]:
        return await self.get_paginated(
            "/api/hotspots/search", "hotspots", params={"projectKey": project_key}
        )

    async def change_hotspot_status(
        self, hotspot_key: str, status: str, resolution: str | None = None
    ) -> None:
        await self.post(
            "/api/hotspots/change_status",
            params={"hotspot": hotspot_key, "status": status, "resolution": resolution},
        )

    async def add_hotspot_comment(self, hotspot_key: str, text: str) -> None:
        await self.post(
            "/api/hotspots/add_comment", params={"hotspot": hotspot_key, "text": text}
        )
