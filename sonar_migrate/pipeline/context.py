"""Run-scoped and organization-scoped inputs threaded through the pipeline."""

from dataclasses import dataclass, field
from typing import Any

from sonar_migrate.clients.sonarcloud import SonarCloudClient
from sonar_migrate.clients.sonarqube import SonarQubeClient
from sonar_migrate.concurrency import PerformanceSettings
from sonar_migrate.config import Config, OrganizationConfig
from sonar_migrate.pipeline.extraction import ExtractedData
from sonar_migrate.state import StateStore
from sonar_migrate.transfer import ScanReportTransfer


@dataclass(slots=True)
class MigrationContext:
    """Inputs shared by every organization of one run. Read-only once built."""

    config: Config
    performance: PerformanceSettings
    source_client: SonarQubeClient
    transfer: ScanReportTransfer
    state_store: StateStore


@dataclass(slots=True)
class OrgContext:
    """One organization's client and mapping tables.

    Built per organization and discarded when that organization is done, so no
    mapping table is ever shared between organizations.
    """

    organization: OrganizationConfig
    client: SonarCloudClient
    extracted: ExtractedData
    gate_mapping: dict[str, str] = field(default_factory=dict)
    builtin_profile_mapping: dict[str, str] = field(default_factory=dict)

    @property
    def key(self) -> str:
        return self.organization.key

    def binding_for(self, project_key: str) -> dict[str, Any] | None:
        return self.extracted.project_bindings.get(project_key)
