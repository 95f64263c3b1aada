"""Command-line interface for the SonarQube to SonarCloud migration tool."""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Annotated

import structlog
import typer
from rich.console import Console
from rich.table import Table

from sonar_migrate.clients.exceptions import MigrationError
from sonar_migrate.clients.sonarcloud import SonarCloudClient
from sonar_migrate.clients.sonarqube import SonarQubeClient
from sonar_migrate.config import Config
from sonar_migrate.orchestration import MigrationOrchestrator
from sonar_migrate.pipeline.results import RunResult
from sonar_migrate.reports import format_duration

# Constants
MAX_ERRORS_TO_DISPLAY = 10

# Create Typer app
app = typer.Typer(
    name="sonar-migrate",
    help="Migrate a SonarQube server to SonarCloud organizations",
    add_completion=False,
)

console = Console()


def setup_logging(log_level: str = "INFO", log_format: str = "json") -> None:
    """Setup structured logging.

    Args:
        log_level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_format: Log format (json or text).
    """
    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if log_format.lower() == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", level=log_level.upper())


def load_config(config_file: Path | None) -> Config:
    """Load configuration from a file when given, otherwise from the environment."""
    logger = structlog.get_logger(__name__)
    if config_file is not None:
        logger.info("Loading configuration from file", config_file=str(config_file))
        return Config.from_file(config_file)
    return Config.from_env()


def apply_overrides(
    config: Config,
    *,
    output_dir: Path | None = None,
    dry_run: bool = False,
    skip_issue_sync: bool = False,
    skip_hotspot_sync: bool = False,
    skip_quality_profile_sync: bool = False,
    resume: bool = False,
    concurrency: int | None = None,
    project_concurrency: int | None = None,
    auto_tune: bool = False,
    log_level: str | None = None,
    log_format: str | None = None,
) -> Config:
    """Apply command-line flags on top of a loaded configuration.

    Flags only ever switch behaviour on; a flag left at its default keeps
    whatever the configuration file or environment said.
    """
    if output_dir is not None:
        config.output_dir = output_dir

    migration = config.migration
    migration.dry_run = migration.dry_run or dry_run
    migration.skip_issue_sync = migration.skip_issue_sync or skip_issue_sync
    migration.skip_hotspot_sync = migration.skip_hotspot_sync or skip_hotspot_sync
    migration.skip_quality_profile_sync = (
        migration.skip_quality_profile_sync or skip_quality_profile_sync
    )
    migration.resume = migration.resume or resume

    performance = config.performance
    if concurrency is not None:
        performance.max_concurrency = concurrency
    if project_concurrency is not None:
        performance.project_concurrency = project_concurrency
    performance.auto_tune = performance.auto_tune or auto_tune

    if log_level is not None:
        config.logging.level = log_level
    if log_format is not None:
        config.logging.format = log_format
    return config


@app.command()
def migrate(
    config_file: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Path to configuration file (optional, uses environment variables by default)",
        ),
    ] = None,
    output_dir: Annotated[
        Path | None,
        typer.Option(
            "--output-dir",
            "-o",
            help="Directory for reports, mappings, server info and resume state",
        ),
    ] = None,
    dry_run: Annotated[
        bool,
        typer.Option(
            "--dry-run",
            "-n",
            help="Extract and write mapping CSVs without changing SonarCloud",
        ),
    ] = False,
    skip_issue_sync: Annotated[
        bool,
        typer.Option("--skip-issue-sync", help="Do not sync issue statuses and comments"),
    ] = False,
    skip_hotspot_sync: Annotated[
        bool,
        typer.Option("--skip-hotspot-sync", help="Do not sync security hotspot reviews"),
    ] = False,
    skip_quality_profile_sync: Annotated[
        bool,
        typer.Option(
            "--skip-quality-profile-sync",
            help="Do not restore quality profiles; projects keep SonarCloud defaults",
        ),
    ] = False,
    resume: Annotated[
        bool,
        typer.Option("--resume", help="Skip projects completed by an earlier run"),
    ] = False,
    concurrency: Annotated[
        int | None,
        typer.Option("--concurrency", help="Maximum concurrent extraction requests"),
    ] = None,
    project_concurrency: Annotated[
        int | None,
        typer.Option("--project-concurrency", help="Projects migrated in parallel"),
    ] = None,
    auto_tune: Annotated[
        bool,
        typer.Option("--auto-tune", help="Derive concurrency defaults from CPU count"),
    ] = False,
    log_level: Annotated[
        str,
        typer.Option(
            "--log-level",
            "-l",
            help="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
        ),
    ] = "INFO",
    log_format: Annotated[
        str,
        typer.Option(
            "--log-format",
            "-f",
            help="Log format (json or text)",
        ),
    ] = "json",
) -> None:
    """Migrate a SonarQube server to SonarCloud.

    Extracts server-wide data, maps projects to organizations, replays
    org-wide resources and migrates every project, then writes reports.

    Examples:
        sonar-migrate migrate --config migration.yaml
        sonar-migrate migrate --dry-run --output-dir ./preview
        sonar-migrate migrate --resume --project-concurrency 4
    """
    setup_logging(log_level, log_format)
    logger = structlog.get_logger(__name__)

    try:
        config = apply_overrides(
            load_config(config_file),
            output_dir=output_dir,
            dry_run=dry_run,
            skip_issue_sync=skip_issue_sync,
            skip_hotspot_sync=skip_hotspot_sync,
            skip_quality_profile_sync=skip_quality_profile_sync,
            resume=resume,
            concurrency=concurrency,
            project_concurrency=project_concurrency,
            auto_tune=auto_tune,
            log_level=log_level,
            log_format=log_format,
        )
    except (ValueError, FileNotFoundError) as e:
        console.print(f"[red]Invalid configuration: {e}[/red]")
        logger.error("Invalid configuration", error=str(e))
        sys.exit(1)

    if config.migration.dry_run:
        console.print("[yellow]DRY RUN MODE - No changes will be made[/yellow]")

    try:
        results = asyncio.run(MigrationOrchestrator(config).migrate_all())
    except KeyboardInterrupt:
        console.print("\n[red]Migration interrupted by user[/red]")
        logger.info("Migration interrupted by user")
        sys.exit(1)
    except MigrationError as e:
        console.print(f"[red]Migration failed: {e}[/red]")
        console.print(f"Partial report written to: {config.output_dir / 'reports'}")
        sys.exit(1)

    _display_results(results)
    console.print(f"\nReports saved to: {config.output_dir / 'reports'}")

    if results.status_counts()["failed"] > 0:
        console.print("\n[red]Migration finished with failed projects[/red]")
        sys.exit(1)
    console.print("\n[green]Migration completed successfully![/green]")


def _display_results(results: RunResult) -> None:
    """Display migration results in formatted tables.

    Args:
        results: The run result.
    """
    counts = results.status_counts()

    summary_table = Table(title="Migration Summary")
    summary_table.add_column("Metric", style="cyan")
    summary_table.add_column("Count", style="magenta", justify="right")

    summary_table.add_row("Total Projects", str(len(results.projects)))
    summary_table.add_row("Succeeded", str(counts["success"]))
    summary_table.add_row("Partial", str(counts["partial"]))
    summary_table.add_row("Failed", str(counts["failed"]))
    summary_table.add_row("Quality Gates", str(results.quality_gates))
    summary_table.add_row("Quality Profiles", str(results.quality_profiles))
    summary_table.add_row("Groups", str(results.groups))
    summary_table.add_row("Portfolios", str(results.portfolios))
    summary_table.add_row("Lines of Code", str(results.total_lines_of_code))
    summary_table.add_row("Duration", format_duration(results.duration_seconds))

    console.print("\n")
    console.print(summary_table)

    if results.org_results:
        orgs_table = Table(title="Organizations")
        orgs_table.add_column("Organization", style="cyan")
        orgs_table.add_column("Projects", justify="right")
        orgs_table.add_column("Failed Steps", justify="right", style="red")

        for org in results.org_results:
            orgs_table.add_row(
                org.key, str(org.project_count), str(len(org.steps.failed()))
            )

        console.print("\n")
        console.print(orgs_table)

    if results.project_key_warnings:
        console.print(
            f"\n[yellow]{len(results.project_key_warnings)} project key(s) were "
            "prefixed because another organization owns them[/yellow]"
        )

    # Show errors if any
    if results.errors:
        console.print("\n[red]Errors encountered:[/red]")
        for i, error in enumerate(results.errors[:MAX_ERRORS_TO_DISPLAY], 1):
            steps = ", ".join(s["step"] for s in error["failed_steps"])
            console.print(f"  {i}. {error['project']}: {steps}")

        if len(results.errors) > MAX_ERRORS_TO_DISPLAY:
            console.print(
                f"  ... and {len(results.errors) - MAX_ERRORS_TO_DISPLAY} more errors"
            )


@app.command()
def validate(
    config_file: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Path to configuration file (optional, uses environment variables by default)",
        ),
    ] = None,
    log_level: Annotated[
        str,
        typer.Option(
            "--log-level",
            "-l",
            help="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
        ),
    ] = "INFO",
) -> None:
    """Validate configuration and test connectivity.

    Loads the configuration and checks that SonarQube and every configured
    SonarCloud organization are reachable, without migrating anything.
    """
    setup_logging(log_level, "text")
    logger = structlog.get_logger(__name__)

    try:
        console.print("[blue]Validating configuration...[/blue]")
        config = load_config(config_file)
        console.print("[green]✓[/green] Configuration loaded successfully")

        console.print("[blue]Testing connectivity...[/blue]")
        asyncio.run(_test_connectivity(config))

        console.print("[green]✓[/green] All validation checks passed!")

    except Exception as e:
        console.print(f"[red]✗ Validation failed: {e}[/red]")
        logger.error("Validation failed", error=str(e))
        sys.exit(1)


async def _test_connectivity(config: Config) -> None:
    """Test connectivity to SonarQube and every SonarCloud organization.

    Args:
        config: Migration configuration.
    """
    async with SonarQubeClient(config.sonarqube, rate_limit=config.rate_limit) as source:
        status = await source.test_connection()
        console.print(
            f"[green]✓[/green] SonarQube {config.sonarqube.url} "
            f"(version {status.get('version', 'unknown')})"
        )

    for org in config.sonarcloud.organizations:
        async with SonarCloudClient(org, rate_limit=config.rate_limit) as client:
            await client.test_connection()
            console.print(f"[green]✓[/green] SonarCloud organization: {org.key}")


@app.command()
def version() -> None:
    """Show version information."""
    from sonar_migrate import __version__

    console.print(f"sonar-migrate version {__version__}")


if __name__ == "__main__":
    app()
