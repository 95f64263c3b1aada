"""Configuration models and environment variable parsing for the SonarQube migration tool."""

import json
import os
from pathlib import Path

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, HttpUrl, field_validator

# Load environment variables from .env file if it exists
load_dotenv()

DEFAULT_SONARCLOUD_URL = "https://sonarcloud.io"


def _require_token(v: str) -> str:
    if not v or v.strip() == "":
        raise ValueError("Token cannot be empty")
    return v.strip()


class SonarQubeConfig(BaseModel):
    """Connection settings for the source SonarQube server."""

    url: HttpUrl = Field(..., description="SonarQube server URL")
    token: str = Field(..., description="SonarQube API token")

    @field_validator("token")
    def validate_token(cls, v: str) -> str:
        """Validate that the token is not empty."""
        return _require_token(v)


class OrganizationConfig(BaseModel):
    """A target SonarCloud organization."""

    key: str = Field(..., min_length=1, description="SonarCloud organization key")
    token: str = Field(..., description="SonarCloud API token")
    url: HttpUrl = Field(
        default=DEFAULT_SONARCLOUD_URL, description="SonarCloud server URL"
    )

    @field_validator("token")
    def validate_token(cls, v: str) -> str:
        """Validate that the token is not empty."""
        return _require_token(v)


class EnterpriseConfig(BaseModel):
    """SonarCloud enterprise, required for portfolio migration."""

    key: str = Field(..., min_length=1, description="SonarCloud enterprise key")


class SonarCloudConfig(BaseModel):
    """Destination side of the migration."""

    organizations: list[OrganizationConfig] = Field(
        ..., min_length=1, description="Target SonarCloud organizations"
    )
    enterprise: EnterpriseConfig | None = Field(
        default=None, description="Enterprise used for portfolio migration"
    )


class RateLimitConfig(BaseModel):
    """HTTP retry and throttling behaviour shared by all API clients."""

    max_retries: int = Field(
        default=3,
        ge=0,
        le=20,
        description="Retry attempts on rate limit, server and network errors",
    )
    base_delay: float = Field(
        default=1.0,
        ge=0.0,
        le=60.0,
        description="Initial delay between retries in seconds (doubles each retry)",
    )
    requests_per_minute: int = Field(
        default=600, ge=1, le=100000, description="Maximum requests per minute"
    )
    timeout: float = Field(
        default=60.0, ge=1.0, le=600.0, description="Request timeout in seconds"
    )


class PerformanceConfig(BaseModel):
    """Concurrency knobs. Unset values fall back to computed defaults."""

    auto_tune: bool = Field(
        default=False,
        description="Derive defaults from the CPU count instead of fixed values",
    )
    max_concurrency: int | None = Field(default=None, ge=1, le=64)
    issue_sync_concurrency: int | None = Field(default=None, ge=1, le=20)
    hotspot_sync_concurrency: int | None = Field(default=None, ge=1, le=20)
    project_concurrency: int | None = Field(default=None, ge=1, le=8)


class MigrationConfig(BaseModel):
    """Configuration for migration behavior."""

    skip_issue_sync: bool = Field(
        default=False,
        description="Skip syncing issue metadata (statuses, assignments, comments, tags)",
    )
    skip_hotspot_sync: bool = Field(
        default=False, description="Skip syncing hotspot metadata (statuses, comments)"
    )
    skip_quality_profile_sync: bool = Field(
        default=False, description="Skip restoring quality profiles"
    )
    dry_run: bool = Field(
        default=False, description="Extract and generate mappings without migrating"
    )
    resume: bool = Field(
        default=False,
        description="Skip projects completed by a previous run (uses saved state)",
    )


class LoggingConfig(BaseModel):
    """Configuration for structured logging."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="json", description="Log format (json or text)")

    @field_validator("level")
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {', '.join(valid_levels)}")
        return v.upper()

    @field_validator("format")
    def validate_log_format(cls, v: str) -> str:
        """Validate log format."""
        if v.lower() not in {"json", "text"}:
            raise ValueError("Log format must be 'json' or 'text'")
        return v.lower()


class Config(BaseModel):
    """Main configuration class for the SonarQube migration tool."""

    sonarqube: SonarQubeConfig
    sonarcloud: SonarCloudConfig
    migration: MigrationConfig = Field(default_factory=MigrationConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    performance: PerformanceConfig = Field(default_factory=PerformanceConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    output_dir: Path = Field(
        default=Path("./migration-output"),
        description="Directory for reports, mapping CSVs, server info and state",
    )

    model_config = {"validate_assignment": True}

    @classmethod
    def from_env(cls) -> "Config":
        """Create configuration from environment variables.

        Returns:
            Config instance populated from environment variables.

        Raises:
            ValueError: If required environment variables are missing.
        """
        required = {
            name: os.getenv(name)
            for name in (
                "SONARQUBE_URL",
                "SONARQUBE_TOKEN",
                "SONARCLOUD_ORG_KEY",
                "SONARCLOUD_TOKEN",
            )
        }
        for name, value in required.items():
            if not value:
                raise ValueError(f"{name} environment variable is required")

        enterprise_key = os.getenv("SONARCLOUD_ENTERPRISE_KEY")

        return cls(
            sonarqube=SonarQubeConfig(
                url=required["SONARQUBE_URL"],
                token=required["SONARQUBE_TOKEN"],
            ),
            sonarcloud=SonarCloudConfig(
                organizations=[
                    OrganizationConfig(
                        key=required["SONARCLOUD_ORG_KEY"],
                        token=required["SONARCLOUD_TOKEN"],
                        url=os.getenv("SONARCLOUD_URL", DEFAULT_SONARCLOUD_URL),
                    )
                ],
                enterprise=EnterpriseConfig(key=enterprise_key)
                if enterprise_key
                else None,
            ),
            migration=MigrationConfig(
                skip_issue_sync=_env_flag("MIGRATION_SKIP_ISSUE_SYNC"),
                skip_hotspot_sync=_env_flag("MIGRATION_SKIP_HOTSPOT_SYNC"),
                skip_quality_profile_sync=_env_flag(
                    "MIGRATION_SKIP_QUALITY_PROFILE_SYNC"
                ),
                dry_run=_env_flag("MIGRATION_DRY_RUN"),
                resume=_env_flag("MIGRATION_RESUME"),
            ),
            rate_limit=RateLimitConfig(
                max_retries=int(os.getenv("MIGRATION_RETRY_ATTEMPTS", "3")),
                base_delay=float(os.getenv("MIGRATION_RETRY_DELAY", "1.0")),
            ),
            performance=PerformanceConfig(
                max_concurrency=_env_int("MIGRATION_MAX_CONCURRENT"),
                project_concurrency=_env_int("MIGRATION_PROJECT_CONCURRENCY"),
            ),
            logging=LoggingConfig(
                level=os.getenv("LOG_LEVEL", "INFO"),
                format=os.getenv("LOG_FORMAT", "json"),
            ),
            output_dir=Path(os.getenv("MIGRATION_OUTPUT_DIR", "./migration-output")),
        )

    @classmethod
    def from_file(cls, config_path: Path) -> "Config":
        """Create configuration from a YAML or JSON file.

        Args:
            config_path: Path to the configuration file

        Returns:
            Config instance populated from the file

        Raises:
            ValueError: If the file format is unsupported or required fields are missing
            FileNotFoundError: If the configuration file doesn't exist
        """
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        file_extension = config_path.suffix.lower()
        if file_extension not in {".json", ".yaml", ".yml"}:
            raise ValueError(
                f"Unsupported configuration file format: {file_extension}. Supported formats: .json, .yaml, .yml"
            )

        try:
            with open(config_path) as f:
                if file_extension == ".json":
                    config_data = json.load(f)
                else:
                    config_data = yaml.safe_load(f)

            return cls(**(config_data or {}))

        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in configuration file: {e}") from e
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file: {e}") from e
        except Exception as e:
            raise ValueError(f"Failed to load configuration file: {e}") from e

    def ensure_output_dir(self, *parts: str) -> Path:
        """Ensure a directory under output_dir exists and return it.

        Args:
            *parts: Optional sub-directory components.

        Returns:
            Path to the directory.
        """
        path = self.output_dir.joinpath(*parts)
        path.mkdir(parents=True, exist_ok=True)
        return path


def _env_flag(name: str) -> bool:
    return os.getenv(name, "false").strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str) -> int | None:
    value = os.getenv(name)
    return int(value) if value else None
