"""SonarQube to SonarCloud Migration Tool.

A Python CLI & library for moving a SonarQube server into one or more
SonarCloud organizations.
"""

__version__ = "0.1.0"

from sonar_migrate.config import Config, MigrationConfig
from sonar_migrate.orchestration import MigrationOrchestrator

__all__ = [
    "Config",
    "MigrationConfig",
    "MigrationOrchestrator",
    "__version__",
]
