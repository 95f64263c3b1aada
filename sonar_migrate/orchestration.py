"""Migration orchestrator for moving a SonarQube server to SonarCloud."""

from collections.abc import Callable
from datetime import datetime

import structlog

from sonar_migrate.clients.enterprise import EnterpriseClient
from sonar_migrate.clients.exceptions import MigrationError
from sonar_migrate.clients.sonarcloud import SonarCloudClient
from sonar_migrate.clients.sonarqube import SonarQubeClient
from sonar_migrate.concurrency import resolve_performance_config
from sonar_migrate.config import Config, OrganizationConfig
from sonar_migrate.mapping import (
    OrganizationMapping,
    ResourceMapping,
    map_projects_to_organizations,
    map_resources_to_organizations,
    write_mapping_csvs,
)
from sonar_migrate.pipeline.context import MigrationContext
from sonar_migrate.pipeline.extraction import (
    ExtractedData,
    extract_all_projects,
    extract_server_wide_data,
)
from sonar_migrate.pipeline.org_migration import migrate_one_organization, save_server_info
from sonar_migrate.pipeline.results import RunResult
from sonar_migrate.pipeline.steps import Skipped, run_fatal_step, run_step
from sonar_migrate.reports import write_reports
from sonar_migrate.resources.portfolios import migrate_portfolios
from sonar_migrate.state import StateStore
from sonar_migrate.transfer import ProjectProvisioningTransfer, ScanReportTransfer

logger = structlog.get_logger(__name__)


class MigrationOrchestrator:
    """Runs a complete migration and always leaves a report behind.

    Phases run in order: connect and list projects (fatal), extract
    server-wide data (non-fatal per resource), map projects to organizations,
    migrate each organization, then migrate portfolios once at the enterprise
    level with the merged project key mapping.
    """

    def __init__(
        self,
        config: Config,
        sonarqube_factory: Callable[[], SonarQubeClient] | None = None,
        sonarcloud_factory: Callable[[OrganizationConfig], SonarCloudClient] | None = None,
        enterprise_factory: Callable[[OrganizationConfig], EnterpriseClient] | None = None,
        transfer: ScanReportTransfer | None = None,
    ) -> None:
        """Initialize the migration orchestrator.

        Args:
            config: Migration configuration.
            sonarqube_factory: Builds the source client.
            sonarcloud_factory: Builds a client for one destination organization.
            enterprise_factory: Builds the enterprise client for portfolios.
            transfer: Scan report transfer implementation.
        """
        self.config = config
        self.sonarqube_factory = sonarqube_factory or (
            lambda: SonarQubeClient(config.sonarqube, rate_limit=config.rate_limit)
        )
        self.sonarcloud_factory = sonarcloud_factory or (
            lambda org: SonarCloudClient(org, rate_limit=config.rate_limit)
        )
        self.enterprise_factory = enterprise_factory or (
            lambda org: EnterpriseClient(org, rate_limit=config.rate_limit)
        )
        self.transfer = transfer or ProjectProvisioningTransfer()
        self._logger = logger.bind(orchestrator=True)

    async def migrate_all(self) -> RunResult:
        """Run the migration.

        Returns:
            The run result. Reports are written even when the run aborts.

        Raises:
            MigrationError: If connecting to SonarQube or listing its projects fails.
        """
        migration = self.config.migration
        results = RunResult(start_time=datetime.now(), dry_run=migration.dry_run)
        performance = resolve_performance_config(self.config.performance)
        self._logger.info(
            "Starting migration",
            dry_run=migration.dry_run,
            organizations=len(self.config.sonarcloud.organizations),
            project_concurrency=performance.project_concurrency,
            max_concurrency=performance.max_concurrency,
        )

        try:
            async with self.sonarqube_factory() as source_client:
                await run_fatal_step(
                    results.server_steps,
                    "Connect to SonarQube",
                    source_client.test_connection,
                    describe=lambda status: status.get("version"),
                )
                projects = await extract_all_projects(source_client, results)
                extracted = await extract_server_wide_data(
                    source_client, projects, results, performance
                )

                org_mapping = map_projects_to_organizations(
                    projects,
                    extracted.project_bindings,
                    self.config.sonarcloud.organizations,
                )
                resources = map_resources_to_organizations(
                    extracted.quality_gates,
                    extracted.quality_profiles,
                    extracted.groups,
                    extracted.portfolios,
                    extracted.permission_templates.get("templates", []),
                    org_mapping.assignments,
                )
                await run_step(
                    results.server_steps,
                    "Generate mapping CSVs",
                    lambda: self._write_mappings(org_mapping, resources, extracted),
                )

                if migration.dry_run:
                    self._logger.info("Dry run complete, no data migrated")
                    return results

                save_server_info(self.config.output_dir, extracted)

                ctx = MigrationContext(
                    config=self.config,
                    performance=performance,
                    source_client=source_client,
                    transfer=self.transfer,
                    state_store=StateStore(self.config.output_dir / "state"),
                )
                merged_key_mapping: dict[str, str] = {}
                for assignment in org_mapping.assignments:
                    merged_key_mapping.update(
                        await migrate_one_organization(
                            ctx,
                            assignment,
                            extracted,
                            resources,
                            results,
                            self.sonarcloud_factory,
                        )
                    )

                await run_step(
                    results.server_steps,
                    "Migrate portfolios",
                    lambda: self._migrate_portfolios(extracted, merged_key_mapping, results),
                )
        except Exception as e:
            results.fatal_error = str(e)
            self._logger.error("Migration aborted", error=str(e))
            raise MigrationError(f"Migration aborted: {e}") from e
        finally:
            results.end_time = datetime.now()
            self._write_reports(results)

        counts = results.status_counts()
        self._logger.info(
            "Migration completed",
            duration_seconds=results.duration_seconds,
            succeeded=counts["success"],
            partial=counts["partial"],
            failed=counts["failed"],
        )
        return results

    async def _write_mappings(
        self,
        org_mapping: OrganizationMapping,
        resources: ResourceMapping,
        extracted: ExtractedData,
    ) -> str:
        written = write_mapping_csvs(
            self.config.output_dir / "mappings",
            org_mapping,
            resources,
            extracted.project_bindings,
            extracted.global_permissions,
        )
        return f"{len(written)} files written"

    async def _migrate_portfolios(
        self,
        extracted: ExtractedData,
        project_key_mapping: dict[str, str],
        results: RunResult,
    ) -> str | Skipped:
        enterprise = self.config.sonarcloud.enterprise
        if enterprise is None:
            self._logger.info("No enterprise configured, skipping portfolio migration")
            return Skipped("No enterprise configured")
        if not extracted.portfolios:
            return Skipped("No portfolios")

        # Portfolios are enterprise-wide; any organization token with access works
        org = self.config.sonarcloud.organizations[0]
        async with self.enterprise_factory(org) as client:
            stats = await migrate_portfolios(
                client, enterprise.key, extracted.portfolios, project_key_mapping
            )
        results.portfolios += stats.migrated
        return stats.describe()

    def _write_reports(self, results: RunResult) -> None:
        try:
            write_reports(results, self.config.output_dir / "reports")
        except OSError as e:
            self._logger.error("Failed to write migration reports", error=str(e))
