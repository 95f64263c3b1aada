"""Resource migrators for SonarCloud organizations and enterprises."""

from sonar_migrate.resources.groups import GroupMigrator
from sonar_migrate.resources.permissions import (
    GlobalPermissionMigrator,
    PermissionTemplateMigrator,
)
from sonar_migrate.resources.quality_gates import QualityGateMigrator
from sonar_migrate.resources.quality_profiles import QualityProfileMigrator

__all__ = [
    "GlobalPermissionMigrator",
    "GroupMigrator",
    "PermissionTemplateMigrator",
    "QualityGateMigrator",
    "QualityProfileMigrator",
]
