"""Scan report transfer collaborator.

Building and uploading the analysis payload is delegated to an implementation
of :class:`ScanReportTransfer`. The bundled implementation provisions the
destination project and reports its size, which is what the rest of the
migration depends on.
"""

from dataclasses import dataclass
from typing import Any, Protocol

import structlog

from sonar_migrate.clients.sonarcloud import SonarCloudClient
from sonar_migrate.clients.sonarqube import SonarQubeClient

logger = structlog.get_logger(__name__)

LINES_OF_CODE_METRIC = "ncloc"


@dataclass(frozen=True, slots=True)
class TransferResult:
    """Outcome of one project transfer.

    Attributes:
        lines_of_code: Size of the source project.
        analysis_uploaded: False when only the destination project was provisioned.
    """

    lines_of_code: int = 0
    analysis_uploaded: bool = False

    def describe(self) -> str:
        if self.analysis_uploaded:
            return f"{self.lines_of_code} lines of code"
        return f"provisioned, no analysis uploaded ({self.lines_of_code} lines of code)"


class ScanReportTransfer(Protocol):
    """Moves one project's analysis onto its destination project."""

    async def transfer_project(
        self,
        source_client: SonarQubeClient,
        dest_client: SonarCloudClient,
        project: dict[str, Any],
        destination_key: str,
    ) -> TransferResult:
        """Transfer the project, raising on failure."""
        ...


class ProjectProvisioningTransfer:
    """Creates the destination project when missing and reports lines of code.

    No analysis is uploaded, so the result says the project was only provisioned.
    """

    async def transfer_project(
        self,
        source_client: SonarQubeClient,
        dest_client: SonarCloudClient,
        project: dict[str, Any],
        destination_key: str,
    ) -> TransferResult:
        log = logger.bind(project=project["key"], destination=destination_key)

        if await dest_client.project_exists(destination_key):
            log.debug("Destination project exists")
        else:
            await dest_client.create_project(
                destination_key,
                project.get("name") or project["key"],
                visibility=project.get("visibility"),
            )
            log.info("Created destination project")

        measures = await source_client.get_project_measures(
            project["key"], [LINES_OF_CODE_METRIC]
        )
        lines_of_code = int(measures.get(LINES_OF_CODE_METRIC) or 0)
        return TransferResult(lines_of_code=lines_of_code, analysis_uploaded=False)
