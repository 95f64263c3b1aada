"""Quality profile migrator: inheritance-aware restore plus built-in preservation."""

import re
from dataclasses import dataclass, field
from typing import Any
from xml.sax.saxutils import escape

from sonar_migrate.clients.exceptions import APIError
from sonar_migrate.resources.base import ResourceMigrator

BUILT_IN_SUFFIX = " (SonarQube Migrated)"


@dataclass(slots=True)
class ProfileMigrationResult:
    """Mapping tables produced by one organization's profile migration."""

    profile_mapping: dict[str, str] = field(default_factory=dict)
    builtin_profile_mapping: dict[str, str] = field(default_factory=dict)
    restored_keys: list[str] = field(default_factory=list)

    def describe(self) -> str:
        return (
            f"{len(self.profile_mapping)} restored "
            f"({len(self.builtin_profile_mapping)} built-in migrated)"
        )


def build_inheritance_chains(profiles: list[dict[str, Any]]) -> list[list[dict[str, Any]]]:
    """Build root-to-leaf chains following ``parent_key``.

    Only chains longer than one profile are returned. Chains that share an
    ancestor repeat it; the restore loop de-duplicates. A parent cycle stops the
    walk at the first repeated profile.

    Args:
        profiles: Custom profiles.

    Returns:
        Chains, each ordered parent before child.
    """
    by_key = {p["key"]: p for p in profiles}
    visited: set[str] = set()
    chains = []

    for profile in profiles:
        if profile["key"] in visited:
            continue

        chain: list[dict[str, Any]] = []
        seen: set[str] = set()
        current: dict[str, Any] | None = profile
        while current is not None and current["key"] not in seen:
            chain.insert(0, current)
            seen.add(current["key"])
            visited.add(current["key"])
            parent_key = current.get("parent_key")
            current = by_key.get(parent_key) if parent_key else None

        if len(chain) > 1:
            chains.append(chain)
    return chains


def rename_profile_backup(backup_xml: str, name: str, new_name: str) -> str:
    """Rename a profile inside its XML backup.

    Only the first ``<name>`` element whose text is exactly the profile name is
    rewritten; rule names and other text are untouched.
    """
    pattern = re.compile(rf"<name>\s*{re.escape(escape(name))}\s*</name>")
    return pattern.sub(f"<name>{escape(new_name)}</name>", backup_xml, count=1)


class QualityProfileMigrator(ResourceMigrator):
    """Restores quality profiles from their XML backups.

    Custom profiles are restored parent before child. Built-in profiles cannot
    be restored under their own name, so each is restored as a renamed custom
    profile carrying the exact same rule activations. Profiles are always
    restored, never looked up by name first.
    """

    @property
    def resource_name(self) -> str:
        return "Quality profiles"

    async def migrate(self, profiles: list[dict[str, Any]]) -> ProfileMigrationResult:
        """Restore all profiles, then set defaults and permissions.

        Args:
            profiles: Extracted source profiles, custom and built-in.

        Returns:
            The profile key mapping and the ``language -> migrated name``
            mapping for built-in profiles.
        """
        result = ProfileMigrationResult()
        restored: set[str] = set()

        custom = [p for p in profiles if not p.get("is_built_in", False)]
        built_in = [p for p in profiles if p.get("is_built_in", False)]
        self._logger.info(
            "Migrating quality profiles", custom=len(custom), built_in=len(built_in)
        )

        for chain in build_inheritance_chains(custom):
            for profile in chain:
                await self._restore(profile, restored, result)
        for profile in custom:
            await self._restore(profile, restored, result)

        for profile in built_in:
            await self._restore_built_in(profile, result)

        await self._set_defaults(custom, restored)
        for profile in custom:
            if profile["key"] in restored:
                await self._set_permissions(profile)

        self._logger.info("Quality profiles migrated", detail=result.describe())
        return result

    async def _restore(
        self,
        profile: dict[str, Any],
        restored: set[str],
        result: ProfileMigrationResult,
    ) -> None:
        if profile["key"] in restored or not profile.get("backup_xml"):
            return
        try:
            await self.client.restore_quality_profile(profile["backup_xml"])
        except APIError as e:
            self._logger.warning(
                "Failed to restore profile", profile=profile["name"], error=str(e)
            )
            return

        restored.add(profile["key"])
        result.restored_keys.append(profile["key"])
        result.profile_mapping[profile["key"]] = profile["name"]
        self._logger.info(
            "Restored profile", profile=profile["name"], language=profile["language"]
        )

    async def _restore_built_in(
        self, profile: dict[str, Any], result: ProfileMigrationResult
    ) -> None:
        backup_xml = profile.get("backup_xml")
        if not backup_xml:
            return

        migrated_name = profile["name"] + BUILT_IN_SUFFIX
        renamed = rename_profile_backup(backup_xml, profile["name"], migrated_name)
        try:
            await self.client.restore_quality_profile(renamed)
        except APIError as e:
            self._logger.warning(
                "Failed to migrate built-in profile",
                profile=profile["name"],
                language=profile["language"],
                error=str(e),
            )
            return

        result.builtin_profile_mapping[profile["language"]] = migrated_name
        self._logger.info(
            "Migrated built-in profile",
            profile=migrated_name,
            language=profile["language"],
        )

    async def _set_defaults(
        self, profiles: list[dict[str, Any]], restored: set[str]
    ) -> None:
        for profile in profiles:
            if not profile.get("is_default", False) or profile["key"] not in restored:
                continue
            try:
                await self.client.set_default_quality_profile(
                    profile["language"], profile["name"]
                )
                self._logger.info(
                    "Set default profile",
                    profile=profile["name"],
                    language=profile["language"],
                )
            except APIError as e:
                self._logger.warning(
                    "Failed to set default profile",
                    language=profile["language"],
                    error=str(e),
                )

    async def _set_permissions(self, profile: dict[str, Any]) -> None:
        permissions = profile.get("permissions") or {}
        for group in permissions.get("groups", []):
            if not group.get("selected", True):
                continue
            try:
                await self.client.add_quality_profile_group(
                    profile["name"], profile["language"], group["name"]
                )
            except APIError as e:
                self._logger.debug(
                    "Failed to grant profile group", group=group["name"], error=str(e)
                )
        for user in permissions.get("users", []):
            if not user.get("selected", True):
                continue
            try:
                await self.client.add_quality_profile_user(
                    profile["name"], profile["language"], user["login"]
                )
            except APIError as e:
                self._logger.debug(
                    "Failed to grant profile user", user=user["login"], error=str(e)
                )
