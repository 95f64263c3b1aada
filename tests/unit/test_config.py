"""Unit tests for configuration loading."""

import json
from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from sonar_migrate.concurrency import resolve_performance_config
from sonar_migrate.config import (
    Config,
    LoggingConfig,
    OrganizationConfig,
    PerformanceConfig,
    SonarQubeConfig,
)

REQUIRED_ENV = {
    "SONARQUBE_URL": "https://sonarqube.example.com",
    "SONARQUBE_TOKEN": "sq-token",
    "SONARCLOUD_ORG_KEY": "org-a",
    "SONARCLOUD_TOKEN": "sc-token",
}

OPTIONAL_ENV = (
    "SONARCLOUD_URL",
    "SONARCLOUD_ENTERPRISE_KEY",
    "MIGRATION_SKIP_ISSUE_SYNC",
    "MIGRATION_SKIP_HOTSPOT_SYNC",
    "MIGRATION_SKIP_QUALITY_PROFILE_SYNC",
    "MIGRATION_DRY_RUN",
    "MIGRATION_RESUME",
    "MIGRATION_RETRY_ATTEMPTS",
    "MIGRATION_RETRY_DELAY",
    "MIGRATION_MAX_CONCURRENT",
    "MIGRATION_PROJECT_CONCURRENCY",
    "MIGRATION_OUTPUT_DIR",
    "LOG_LEVEL",
    "LOG_FORMAT",
)


@pytest.fixture
def clean_env(monkeypatch):
    """Set the required variables and clear every optional one."""
    for name in OPTIONAL_ENV:
        monkeypatch.delenv(name, raising=False)
    for name, value in REQUIRED_ENV.items():
        monkeypatch.setenv(name, value)
    return monkeypatch


def _file_config() -> dict:
    return {
        "sonarqube": {"url": "https://sonarqube.example.com", "token": "sq-token"},
        "sonarcloud": {
            "organizations": [
                {"key": "org-a", "token": "token-a"},
                {"key": "org-b", "token": "token-b"},
            ],
            "enterprise": {"key": "acme"},
        },
        "migration": {"skip_hotspot_sync": True},
        "performance": {"project_concurrency": 4},
    }


class TestConfigFromEnv:
    """Test environment-based configuration."""

    def test_required_variables(self, clean_env):
        """Test that the required variables populate the config."""
        config = Config.from_env()

        assert str(config.sonarqube.url).startswith("https://sonarqube.example.com")
        assert config.sonarqube.token == "sq-token"
        assert len(config.sonarcloud.organizations) == 1
        assert config.sonarcloud.organizations[0].key == "org-a"
        assert config.sonarcloud.enterprise is None
        assert config.migration.dry_run is False
        assert config.output_dir == Path("./migration-output")

    @pytest.mark.parametrize("missing", sorted(REQUIRED_ENV))
    def test_missing_required_variable(self, clean_env, missing):
        """Test that each required variable is enforced."""
        clean_env.delenv(missing)

        with pytest.raises(ValueError, match=missing):
            Config.from_env()

    def test_optional_variables(self, clean_env):
        """Test flags, enterprise and tuning variables."""
        clean_env.setenv("SONARCLOUD_ENTERPRISE_KEY", "acme")
        clean_env.setenv("MIGRATION_SKIP_ISSUE_SYNC", "true")
        clean_env.setenv("MIGRATION_RESUME", "1")
        clean_env.setenv("MIGRATION_PROJECT_CONCURRENCY", "3")
        clean_env.setenv("LOG_LEVEL", "debug")
        clean_env.setenv("MIGRATION_OUTPUT_DIR", "/tmp/out")

        config = Config.from_env()

        assert config.sonarcloud.enterprise.key == "acme"
        assert config.migration.skip_issue_sync is True
        assert config.migration.skip_hotspot_sync is False
        assert config.migration.resume is True
        assert config.performance.project_concurrency == 3
        assert config.logging.level == "DEBUG"
        assert config.output_dir == Path("/tmp/out")


class TestConfigFromFile:
    """Test file-based configuration."""

    def test_yaml_file(self, tmp_path):
        """Test loading a YAML file with several organizations."""
        path = tmp_path / "migration.yaml"
        path.write_text(yaml.safe_dump(_file_config()))

        config = Config.from_file(path)

        assert [o.key for o in config.sonarcloud.organizations] == ["org-a", "org-b"]
        assert config.sonarcloud.enterprise.key == "acme"
        assert config.migration.skip_hotspot_sync is True
        assert config.performance.project_concurrency == 4

    def test_json_file(self, tmp_path):
        """Test loading a JSON file."""
        path = tmp_path / "migration.json"
        path.write_text(json.dumps(_file_config()))

        config = Config.from_file(path)

        assert config.sonarcloud.organizations[1].token == "token-b"

    def test_missing_file(self, tmp_path):
        """Test that a missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            Config.from_file(tmp_path / "absent.yaml")

    def test_unsupported_format(self, tmp_path):
        """Test that unknown extensions are rejected."""
        path = tmp_path / "migration.toml"
        path.write_text("x = 1")

        with pytest.raises(ValueError, match="Unsupported configuration file format"):
            Config.from_file(path)

    def test_invalid_content(self, tmp_path):
        """Test that a config without organizations is rejected."""
        data = _file_config()
        data["sonarcloud"]["organizations"] = []
        path = tmp_path / "migration.json"
        path.write_text(json.dumps(data))

        with pytest.raises(ValueError):
            Config.from_file(path)


class TestModelValidation:
    """Test field validators."""

    def test_token_is_stripped(self):
        config = SonarQubeConfig(url="https://sq.example.com", token="  abc  ")
        assert config.token == "abc"

    def test_empty_token_rejected(self):
        with pytest.raises(ValidationError):
            OrganizationConfig(key="org-a", token="   ")

    def test_default_sonarcloud_url(self):
        org = OrganizationConfig(key="org-a", token="t")
        assert str(org.url).startswith("https://sonarcloud.io")

    def test_log_level_normalised(self):
        assert LoggingConfig(level="warning").level == "WARNING"

    def test_invalid_log_format(self):
        with pytest.raises(ValidationError):
            LoggingConfig(format="xml")


class TestPerformanceDefaults:
    """Test performance default resolution."""

    def test_fixed_defaults(self):
        settings = resolve_performance_config(PerformanceConfig(), cpu_count=16)

        assert settings.max_concurrency == 8
        assert settings.issue_sync_concurrency == 5
        assert settings.hotspot_sync_concurrency == 3
        assert settings.project_concurrency == 1

    def test_auto_tuned_defaults(self):
        settings = resolve_performance_config(
            PerformanceConfig(auto_tune=True), cpu_count=12
        )

        assert settings.max_concurrency == 12
        assert settings.issue_sync_concurrency == 12
        assert settings.hotspot_sync_concurrency == 5
        assert settings.project_concurrency == 4

    def test_auto_tune_clamps_on_small_machines(self):
        settings = resolve_performance_config(
            PerformanceConfig(auto_tune=True), cpu_count=2
        )

        assert settings.hotspot_sync_concurrency == 3
        assert settings.project_concurrency == 1

    def test_explicit_values_override(self):
        settings = resolve_performance_config(
            PerformanceConfig(auto_tune=True, project_concurrency=2, max_concurrency=3),
            cpu_count=12,
        )

        assert settings.project_concurrency == 2
        assert settings.max_concurrency == 3
        assert settings.issue_sync_concurrency == 12
