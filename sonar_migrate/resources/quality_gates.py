"""Quality gate migrator."""

from typing import Any

from sonar_migrate.clients.exceptions import APIError
from sonar_migrate.resources.base import ResourceMigrator

GATE_ADMIN_PERMISSION = "gateadmin"


class QualityGateMigrator(ResourceMigrator):
    """Recreates custom quality gates with their conditions.

    Built-in gates are skipped because the destination ships its own. Gates are
    always created, never looked up by name first, so a re-run against an
    organization that already has the gate fails on that gate and continues.
    """

    @property
    def resource_name(self) -> str:
        return "Quality gates"

    async def migrate(self, gates: list[dict[str, Any]]) -> dict[str, str]:
        """Create every custom gate.

        Args:
            gates: Extracted source gates.

        Returns:
            Mapping of gate name to destination gate id.
        """
        custom = [g for g in gates if not g.get("is_built_in", False)]
        self._logger.info(
            "Migrating quality gates",
            custom=len(custom),
            built_in_skipped=len(gates) - len(custom),
        )

        mapping: dict[str, str] = {}
        for gate in custom:
            try:
                await self._migrate_gate(gate, mapping)
            except Exception as e:
                self._logger.error(
                    "Failed to migrate quality gate", gate=gate["name"], error=str(e)
                )
        return mapping

    async def _migrate_gate(self, gate: dict[str, Any], mapping: dict[str, str]) -> None:
        created = await self.client.create_quality_gate(gate["name"])
        if created.get("id") is None:
            raise ValueError("create response has no gate id")

        gate_id = str(created["id"])
        mapping[gate["name"]] = gate_id
        await self._add_conditions(gate, gate_id)

        if gate.get("is_default", False):
            try:
                await self.client.set_default_quality_gate(gate_id)
            except APIError as e:
                self._logger.warning(
                    "Failed to set default gate", gate=gate["name"], error=str(e)
                )

        await self._grant_admins(gate)
        self._logger.info(
            "Migrated quality gate",
            gate=gate["name"],
            conditions=len(gate.get("conditions", [])),
        )

    async def _add_conditions(self, gate: dict[str, Any], gate_id: str) -> None:
        for condition in gate.get("conditions", []):
            try:
                await self.client.create_quality_gate_condition(
                    gate_id, condition["metric"], condition["op"], condition["error"]
                )
            except APIError as e:
                self._logger.warning(
                    "Failed to create gate condition",
                    gate=gate["name"],
                    metric=condition["metric"],
                    error=str(e),
                )

    async def _grant_admins(self, gate: dict[str, Any]) -> None:
        groups = (gate.get("permissions") or {}).get("groups", [])
        for group in groups:
            if not group.get("selected", True):
                continue
            try:
                await self.client.add_group_permission(group["name"], GATE_ADMIN_PERMISSION)
            except APIError as e:
                self._logger.debug(
                    "Failed to grant gate admin", group=group["name"], error=str(e)
                )
