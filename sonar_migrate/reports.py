"""JSON and plain-text migration reports."""

import json
from pathlib import Path

import structlog

from sonar_migrate.pipeline.results import ProjectResult, ProjectStatus, RunResult
from sonar_migrate.pipeline.steps import StepOutcome, StepStatus

logger = structlog.get_logger(__name__)

JSON_REPORT = "migration-report.json"
TEXT_REPORT = "migration-report.txt"

SEPARATOR = "=" * 70
SUBSEPARATOR = "-" * 70

STEP_TAGS = {
    StepStatus.SUCCESS: "OK  ",
    StepStatus.FAILED: "FAIL",
    StepStatus.SKIPPED: "SKIP",
}
PROJECT_TAGS = {
    ProjectStatus.SUCCESS: "OK     ",
    ProjectStatus.PARTIAL: "PARTIAL",
    ProjectStatus.FAILED: "FAIL   ",
}


def format_duration(seconds: float | None) -> str:
    """Format a duration as ``1h 2m 3s``, ``2m 3s``, ``3s`` or milliseconds."""
    if seconds is None or seconds < 0:
        return "-"
    total = int(seconds)
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}h {minutes}m {secs}s"
    if minutes:
        return f"{minutes}m {secs}s"
    if secs:
        return f"{secs}s"
    return f"{int(seconds * 1000)}ms"


def write_reports(results: RunResult, reports_dir: Path) -> tuple[Path, Path]:
    """Write the JSON and text reports.

    Args:
        results: The run result, complete or partial.
        reports_dir: Directory to write into; created if missing.

    Returns:
        Paths of the JSON and text reports.
    """
    reports_dir.mkdir(parents=True, exist_ok=True)
    json_path = reports_dir / JSON_REPORT
    text_path = reports_dir / TEXT_REPORT

    with open(json_path, "w") as f:
        json.dump(results.to_dict(), f, indent=2, default=str)
    with open(text_path, "w") as f:
        f.write(format_text_report(results))

    logger.info(
        "Generated migration reports",
        report_path=str(json_path),
        summary_path=str(text_path),
    )
    return json_path, text_path


def format_text_report(results: RunResult) -> str:
    """Render the sectioned human-readable report."""
    lines: list[str] = []
    _header(lines, results)
    _summary(lines, results)
    _key_conflicts(lines, results)
    _new_code_not_set(lines, results)

    if len(results.server_steps):
        lines += ["SERVER-WIDE STEPS", SUBSEPARATOR]
        for step in results.server_steps:
            _step_line(lines, step, "  ")
        lines.append("")

    for org in results.org_results:
        lines += [f"ORGANIZATION: {org.key} ({org.project_count} projects)", SUBSEPARATOR]
        for step in org.steps:
            _step_line(lines, step, "  ")
        lines.append("")

    problems = [p for p in results.projects if p.status is not ProjectStatus.SUCCESS]
    if problems:
        lines += ["FAILED / PARTIAL PROJECTS (DETAILED)", SUBSEPARATOR]
        for project in problems:
            lines.append(
                f"  [{PROJECT_TAGS[project.status]}] "
                f"{project.project_key} -> {project.destination_key}"
            )
            for step in project.steps:
                _step_line(lines, step, "    ")
            lines.append("")

    if results.projects:
        lines += ["ALL PROJECTS", SUBSEPARATOR]
        for project in results.projects:
            lines.append(_project_line(project))
        lines.append("")

    lines.append(SEPARATOR)
    return "\n".join(lines) + "\n"


def _header(lines: list[str], results: RunResult) -> None:
    lines += [
        SEPARATOR,
        "SONARQUBE TO SONARCLOUD MIGRATION REPORT",
        SEPARATOR,
        "",
        f"Started:  {results.start_time.isoformat()}",
        f"Finished: {results.end_time.isoformat() if results.end_time else 'In progress'}",
    ]
    if results.duration_seconds is not None:
        lines.append(f"Duration: {format_duration(results.duration_seconds)}")
    if results.dry_run:
        lines.append("Mode:     DRY RUN (no data migrated)")
    if results.fatal_error:
        lines.append(f"Aborted:  {results.fatal_error}")
    lines.append("")


def _summary(lines: list[str], results: RunResult) -> None:
    counts = results.status_counts()
    total = len(results.projects)
    lines += ["SUMMARY", SUBSEPARATOR]
    if total:
        lines.append(
            f"  Projects:         {counts['success']} succeeded, {counts['partial']} partial, "
            f"{counts['failed']} failed ({total} total)"
        )
    else:
        lines.append("  Projects:         0 (no projects migrated)")
    issues = results.issue_sync_stats
    hotspots = results.hotspot_sync_stats
    lines += [
        f"  Quality Gates:    {results.quality_gates} migrated",
        f"  Quality Profiles: {results.quality_profiles} migrated",
        f"  Groups:           {results.groups} created",
        f"  Portfolios:       {results.portfolios} created or updated",
        f"  Issues:           {issues['matched']} matched, {issues['transitioned']} transitioned",
        f"  Hotspots:         {hotspots['matched']} matched, "
        f"{hotspots['status_changed']} status changed",
        f"  Lines of code:    {results.total_lines_of_code}",
        "",
    ]


def _key_conflicts(lines: list[str], results: RunResult) -> None:
    warnings = results.project_key_warnings
    if not warnings:
        return
    lines += [
        "PROJECT KEY CONFLICTS",
        SUBSEPARATOR,
        f"  {len(warnings)} project(s) could not keep their SonarQube key because",
        "  another SonarCloud organization already uses it. A prefixed key",
        "  ({org}_{key}) was used instead.",
        "",
    ]
    for w in warnings:
        lines.append(f'  [WARN] "{w["sq_key"]}" -> "{w["sc_key"]}" (taken by org "{w["owner"]}")')
    lines.append("")


def _new_code_not_set(lines: list[str], results: RunResult) -> None:
    if not results.new_code_not_set:
        return
    lines += [
        "NEW CODE PERIOD NOT SET",
        SUBSEPARATOR,
        f"  {len(results.new_code_not_set)} project(s) have no project-level new code",
        "  definition to migrate. Configure it manually in SonarCloud if needed.",
        "",
    ]
    for project_key in results.new_code_not_set:
        lines.append(f"  [SKIP] {project_key}")
    lines.append("")


def _step_line(lines: list[str], step: StepOutcome, indent: str) -> None:
    detail = f" ({step.detail})" if step.detail else ""
    lines.append(f"{indent}[{STEP_TAGS[step.status]}] {step.name}{detail}")
    if step.error:
        lines.append(f"{indent}       {step.error}")


def _project_line(project: ProjectResult) -> str:
    failed = project.steps.failed()
    detail = f" (failed: {', '.join(s.name for s in failed)})" if failed else ""
    return f"  [{PROJECT_TAGS[project.status]}] {project.project_key}{detail}"
