"""Unit tests for the command-line interface."""

from pathlib import Path

from typer.testing import CliRunner

from sonar_migrate import __version__
from sonar_migrate.cli import app, apply_overrides

runner = CliRunner()


class TestApplyOverrides:
    """Test command-line flags layered over configuration."""

    def test_flags_switch_behaviour_on(self, config):
        apply_overrides(
            config,
            output_dir=Path("/tmp/out"),
            dry_run=True,
            skip_hotspot_sync=True,
            concurrency=4,
            project_concurrency=2,
            log_level="DEBUG",
        )

        assert config.output_dir == Path("/tmp/out")
        assert config.migration.dry_run is True
        assert config.migration.skip_hotspot_sync is True
        assert config.migration.skip_issue_sync is False
        assert config.performance.max_concurrency == 4
        assert config.performance.project_concurrency == 2
        assert config.logging.level == "DEBUG"

    def test_unset_flags_keep_configured_values(self, config):
        config.migration.resume = True
        config.performance.max_concurrency = 6

        apply_overrides(config)

        assert config.migration.resume is True
        assert config.performance.max_concurrency == 6
        assert config.logging.format == "json"


def test_version_command():
    result = runner.invoke(app, ["version"])

    assert result.exit_code == 0
    assert __version__ in result.output
