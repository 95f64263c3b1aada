"""API clients for SonarQube, SonarCloud organizations and SonarCloud enterprises."""

from sonar_migrate.clients.enterprise import EnterpriseClient
from sonar_migrate.clients.exceptions import (
    APIError,
    AuthenticationError,
    AuthorizationError,
    ClientError,
    ConflictError,
    MigrationError,
    NetworkError,
    RateLimitError,
    ResourceNotFoundError,
    ServerError,
)
from sonar_migrate.clients.sonarcloud import SonarCloudClient
from sonar_migrate.clients.sonarqube import SonarQubeClient

__all__ = [
    "APIError",
    "AuthenticationError",
    "AuthorizationError",
    "ClientError",
    "ConflictError",
    "EnterpriseClient",
    "MigrationError",
    "NetworkError",
    "RateLimitError",
    "ResourceNotFoundError",
    "ServerError",
    "SonarCloudClient",
    "SonarQubeClient",
]
