"""Global, project and template permission migrators."""

from typing import Any

import structlog

from sonar_migrate.clients.exceptions import APIError
from sonar_migrate.clients.sonarcloud import SonarCloudClient
from sonar_migrate.resources.base import ResourceMigrator

logger = structlog.get_logger(__name__)


class GlobalPermissionMigrator(ResourceMigrator):
    """Grants organization-level permissions to groups, one grant at a time."""

    @property
    def resource_name(self) -> str:
        return "Global permissions"

    async def migrate(self, group_permissions: list[dict[str, Any]]) -> int:
        """Apply every group's global permissions.

        Returns:
            Number of grants applied. Failed grants are logged and skipped.
        """
        self._logger.info("Migrating global permissions", groups=len(group_permissions))
        granted = 0
        for group in group_permissions:
            for permission in group.get("permissions", []):
                try:
                    await self.client.add_group_permission(group["name"], permission)
                    granted += 1
                except APIError as e:
                    self._logger.debug(
                        "Failed to grant permission",
                        group=group["name"],
                        permission=permission,
                        error=str(e),
                    )
        return granted


async def migrate_project_permissions(
    client: SonarCloudClient, project_key: str, group_permissions: list[dict[str, Any]]
) -> int:
    """Apply project-level group permissions, best effort per grant.

    Returns:
        Number of grants applied.
    """
    granted = 0
    for group in group_permissions:
        for permission in group.get("permissions", []):
            try:
                await client.add_group_permission(group["name"], permission, project_key)
                granted += 1
            except APIError as e:
                logger.debug(
                    "Failed to grant project permission",
                    project=project_key,
                    group=group["name"],
                    permission=permission,
                    error=str(e),
                )
    return granted


class PermissionTemplateMigrator(ResourceMigrator):
    """Recreates permission templates and the per-qualifier defaults."""

    @property
    def resource_name(self) -> str:
        return "Permission templates"

    async def migrate(self, template_data: dict[str, Any]) -> dict[str, str]:
        """Create templates, add their group grants, then set the defaults.

        Args:
            template_data: ``{"templates": [...], "default_templates": [...]}``.

        Returns:
            Mapping of source template id to destination template id.
        """
        templates = template_data.get("templates", [])
        self._logger.info("Migrating permission templates", count=len(templates))

        mapping: dict[str, str] = {}
        for template in templates:
            try:
                created = await self.client.create_permission_template(
                    template["name"],
                    template.get("description", ""),
                    template.get("project_key_pattern", ""),
                )
            except APIError as e:
                self._logger.warning(
                    "Failed to create template", template=template["name"], error=str(e)
                )
                continue

            dest_id = str(created["id"])
            mapping[template["id"]] = dest_id
            for permission in template.get("permissions", []):
                for group_name in permission.get("groups", []):
                    try:
                        await self.client.add_group_to_template(
                            dest_id, group_name, permission["key"]
                        )
                    except APIError as e:
                        self._logger.debug(
                            "Failed to add group to template",
                            template=template["name"],
                            group=group_name,
                            error=str(e),
                        )
            self._logger.info("Migrated permission template", template=template["name"])

        for default in template_data.get("default_templates", []):
            dest_id = mapping.get(default["template_id"])
            if dest_id is None:
                continue
            try:
                await self.client.set_default_template(dest_id, default["qualifier"])
            except APIError as e:
                self._logger.warning(
                    "Failed to set default template",
                    qualifier=default["qualifier"],
                    error=str(e),
                )
        return mapping
