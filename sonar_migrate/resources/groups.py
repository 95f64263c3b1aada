"""Group migrator."""

from typing import Any

from sonar_migrate.clients.exceptions import APIError
from sonar_migrate.resources.base import ResourceMigrator

SYSTEM_GROUPS = frozenset({"Anyone", "sonar-users", "sonar-administrators"})


def is_already_exists(error: APIError) -> bool:
    return error.mentions("already exists")


class GroupMigrator(ResourceMigrator):
    """Creates custom user groups.

    Members are not migrated: accounts on the destination are separate
    identities and join groups on their own.
    """

    @property
    def resource_name(self) -> str:
        return "Groups"

    async def migrate(self, groups: list[dict[str, Any]]) -> dict[str, dict[str, Any]]:
        """Create every non-system group.

        A group that already exists counts as migrated, so a re-run maps it
        instead of failing.

        Args:
            groups: Extracted source groups.

        Returns:
            Mapping of group name to the destination group.
        """
        custom = [g for g in groups if g["name"] not in SYSTEM_GROUPS]
        self._logger.info(
            "Migrating groups",
            custom=len(custom),
            system_skipped=len(groups) - len(custom),
        )

        mapping: dict[str, dict[str, Any]] = {}
        for group in custom:
            name = group["name"]
            try:
                mapping[name] = await self.client.create_group(
                    name, group.get("description", "")
                )
                self._logger.info("Created group", group=name)
            except APIError as e:
                if is_already_exists(e):
                    self._logger.debug("Group already exists", group=name)
                    mapping[name] = {"name": name}
                else:
                    self._logger.warning(
                        "Failed to create group", group=name, error=str(e)
                    )
        return mapping
