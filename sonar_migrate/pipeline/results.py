"""Result tree for a migration run: per-project, per-organization and run-wide."""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

import structlog

from sonar_migrate.pipeline.steps import StepLog, StepOutcome, StepStatus

logger = structlog.get_logger(__name__)


class ProjectStatus(str, Enum):
    """Overall outcome of a project migration."""

    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


def classify_steps(steps: list[StepOutcome]) -> ProjectStatus:
    """Derive a project's status from its steps.

    ``failed`` when every non-skipped step failed, ``success`` when no step
    failed, ``partial`` otherwise. A project whose steps were all skipped has
    no failures and is therefore ``success``. The result does not depend on
    step order.
    """
    attempted = [s for s in steps if s.status is not StepStatus.SKIPPED]
    failures = [s for s in attempted if s.status is StepStatus.FAILED]
    if not failures:
        return ProjectStatus.SUCCESS
    if len(failures) == len(attempted):
        return ProjectStatus.FAILED
    return ProjectStatus.PARTIAL


@dataclass(slots=True)
class ProjectResult:
    """Outcome of one project's migration sequence."""

    project_key: str
    destination_key: str
    organization: str
    steps: StepLog = field(default_factory=StepLog)
    lines_of_code: int = 0

    @property
    def status(self) -> ProjectStatus:
        return classify_steps(self.steps.steps)

    @property
    def errors(self) -> list[str]:
        return [f"{s.name}: {s.error}" for s in self.steps.failed()]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "project_key": self.project_key,
            "destination_key": self.destination_key,
            "organization": self.organization,
            "status": self.status.value,
            "lines_of_code": self.lines_of_code,
            "steps": [s.to_dict() for s in self.steps],
            "errors": self.errors,
        }


@dataclass(slots=True)
class OrgResult:
    """Org-wide (non-project) steps for one destination organization."""

    key: str
    project_count: int
    steps: StepLog = field(default_factory=StepLog)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "key": self.key,
            "project_count": self.project_count,
            "steps": [s.to_dict() for s in self.steps],
        }


@dataclass
class RunResult:
    """Top-level aggregate, built incrementally over the whole run.

    Project-scoped appends go through the ``add_*``/``record_*`` coroutines,
    which serialize on one lock so concurrent project workers cannot interleave
    writes to the shared lists and counters.
    """

    start_time: datetime = field(default_factory=datetime.now)
    end_time: datetime | None = None
    dry_run: bool = False
    server_steps: StepLog = field(default_factory=StepLog)
    org_results: list[OrgResult] = field(default_factory=list)
    projects: list[ProjectResult] = field(default_factory=list)
    quality_gates: int = 0
    quality_profiles: int = 0
    groups: int = 0
    portfolios: int = 0
    issue_sync_stats: dict[str, int] = field(
        default_factory=lambda: {"matched": 0, "transitioned": 0}
    )
    hotspot_sync_stats: dict[str, int] = field(
        default_factory=lambda: {"matched": 0, "status_changed": 0}
    )
    project_key_warnings: list[dict[str, str]] = field(default_factory=list)
    project_key_mapping: dict[str, str] = field(default_factory=dict)
    errors: list[dict[str, Any]] = field(default_factory=list)
    total_lines_of_code: int = 0
    project_lines_of_code: list[dict[str, Any]] = field(default_factory=list)
    new_code_not_set: list[str] = field(default_factory=list)
    fatal_error: str | None = None
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    async def add_project(self, result: ProjectResult) -> None:
        """Record a finished project and its failed-step summary."""
        async with self._lock:
            self.projects.append(result)
            if result.lines_of_code > 0:
                self.total_lines_of_code += result.lines_of_code
                self.project_lines_of_code.append(
                    {
                        "project_key": result.project_key,
                        "lines_of_code": result.lines_of_code,
                    }
                )

            failed = result.steps.failed()
            if failed:
                self.errors.append(
                    {
                        "project": result.project_key,
                        "failed_steps": [
                            {"step": s.name, "error": s.error} for s in failed
                        ],
                    }
                )

        status = result.status
        log = logger.bind(project=result.project_key, status=status.value)
        if status is ProjectStatus.SUCCESS:
            log.info("Project migrated")
        elif status is ProjectStatus.PARTIAL:
            log.warning("Project partially migrated", failed_steps=len(failed))
        else:
            log.error("Project migration failed", failed_steps=len(failed))

    async def record_project_key(
        self, source_key: str, destination_key: str, warning: dict[str, str] | None
    ) -> None:
        async with self._lock:
            self.project_key_mapping[source_key] = destination_key
            if warning is not None:
                self.project_key_warnings.append(warning)

    async def record_issue_sync(self, matched: int, transitioned: int) -> None:
        async with self._lock:
            self.issue_sync_stats["matched"] += matched
            self.issue_sync_stats["transitioned"] += transitioned

    async def record_hotspot_sync(self, matched: int, status_changed: int) -> None:
        async with self._lock:
            self.hotspot_sync_stats["matched"] += matched
            self.hotspot_sync_stats["status_changed"] += status_changed

    async def record_new_code_not_set(self, project_key: str) -> None:
        async with self._lock:
            self.new_code_not_set.append(project_key)

    def status_counts(self) -> dict[str, int]:
        counts = {status.value: 0 for status in ProjectStatus}
        for project in self.projects:
            counts[project.status.value] += 1
        return counts

    @property
    def duration_seconds(self) -> float | None:
        if self.end_time is None:
            return None
        return (self.end_time - self.start_time).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "duration_seconds": self.duration_seconds,
            "dry_run": self.dry_run,
            "fatal_error": self.fatal_error,
            "summary": {
                "projects": self.status_counts(),
                "quality_gates": self.quality_gates,
                "quality_profiles": self.quality_profiles,
                "groups": self.groups,
                "portfolios": self.portfolios,
                "issue_sync": dict(self.issue_sync_stats),
                "hotspot_sync": dict(self.hotspot_sync_stats),
                "total_lines_of_code": self.total_lines_of_code,
            },
            "server_steps": [s.to_dict() for s in self.server_steps],
            "org_results": [o.to_dict() for o in self.org_results],
            "projects": [p.to_dict() for p in self.projects],
            "project_key_warnings": list(self.project_key_warnings),
            "project_key_mapping": dict(self.project_key_mapping),
            "new_code_not_set": list(self.new_code_not_set),
            "project_lines_of_code": list(self.project_lines_of_code),
            "errors": list(self.errors),
        }
