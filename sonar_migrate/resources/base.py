"""Base class for org-wide resource migrators."""

from abc import ABC, abstractmethod

import structlog

from sonar_migrate.clients.sonarcloud import SonarCloudClient

logger = structlog.get_logger(__name__)


class ResourceMigrator(ABC):
    """Replays one kind of server-wide resource onto a destination organization.

    A migrator instance is bound to exactly one organization's client, and any
    mapping table it builds belongs to that organization only.
    """

    def __init__(self, client: SonarCloudClient) -> None:
        """Initialize the migrator.

        Args:
            client: Client for the destination organization.
        """
        self.client = client
        self._logger = logger.bind(
            migrator=self.__class__.__name__, org=client.organization
        )

    @property
    @abstractmethod
    def resource_name(self) -> str:
        """Human-readable name for this resource type."""
