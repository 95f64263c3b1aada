"""Issue metadata sync: status, assignee, comments and tags onto re-analysed issues."""

from collections import defaultdict
from collections.abc import Callable
from dataclasses import asdict, dataclass
from typing import Any

import structlog

from sonar_migrate.clients.exceptions import APIError
from sonar_migrate.clients.sonarcloud import SonarCloudClient
from sonar_migrate.clients.sonarqube import SonarQubeClient
from sonar_migrate.concurrency import map_concurrent

logger = structlog.get_logger(__name__)

COMMENT_PREFIX = "[Migrated from SonarQube]"

RESOLUTION_TRANSITIONS = {"FALSE-POSITIVE": "falsepositive", "WONTFIX": "wontfix"}

STATUS_TRANSITIONS = {
    "CONFIRMED": "confirm",
    "REOPENED": "reopen",
    "OPEN": "unconfirm",
    "RESOLVED": "resolve",
    "CLOSED": "resolve",
    "ACCEPTED": "accept",
}


@dataclass(slots=True)
class IssueSyncStats:
    matched: int = 0
    transitioned: int = 0
    assigned: int = 0
    commented: int = 0
    tagged: int = 0
    failed: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


def build_match_key(
    item: dict[str, Any], rule_of: Callable[[dict[str, Any]], str | None] | None = None
) -> str | None:
    """Build the ``rule|file|line`` key used to pair source and destination items.

    The file path is the component key without its project prefix, so it is
    stable across a project key change.
    """
    rule = rule_of(item) if rule_of else item.get("rule")
    component = item.get("component") or ""
    file_path = component.rsplit(":", 1)[-1]
    line = item.get("line") or (item.get("textRange") or {}).get("startLine") or 0
    if not rule or not file_path:
        return None
    return f"{rule}|{file_path}|{line}"


def match_by_location(
    source_items: list[dict[str, Any]],
    destination_items: list[dict[str, Any]],
    rule_of: Callable[[dict[str, Any]], str | None] | None = None,
) -> list[tuple[dict[str, Any], dict[str, Any]]]:
    """Pair source items with destination items sharing a match key.

    Several items can share a location; candidates are consumed in order so
    each destination item is paired at most once.
    """
    candidates: dict[str, list[dict[str, Any]]] = defaultdict(list)
    for item in destination_items:
        key = build_match_key(item, rule_of)
        if key:
            candidates[key].append(item)

    pairs = []
    for item in source_items:
        key = build_match_key(item, rule_of)
        if key and candidates.get(key):
            pairs.append((item, candidates[key].pop(0)))
    return pairs


def format_migrated_comment(comment: dict[str, Any]) -> str:
    body = comment.get("markdown") or comment.get("htmlText") or ""
    return (
        f"{COMMENT_PREFIX} {comment.get('login') or 'unknown'} "
        f"({comment.get('createdAt') or ''}): {body}"
    )


def transition_for_diffs(diffs: list[dict[str, Any]]) -> str | None:
    """Map one changelog entry's status/resolution diffs to a transition."""
    new_status = next((d.get("newValue") for d in diffs if d.get("key") == "status"), None)
    if not new_status:
        return None
    new_resolution = next(
        (d.get("newValue") for d in diffs if d.get("key") == "resolution"), None
    )
    if new_resolution in RESOLUTION_TRANSITIONS:
        return RESOLUTION_TRANSITIONS[new_resolution]
    return STATUS_TRANSITIONS.get(new_status)


def transitions_from_changelog(changelog: list[dict[str, Any]]) -> list[str]:
    """Extract the ordered status transitions recorded in a changelog."""
    transitions = []
    for entry in changelog:
        transition = transition_for_diffs(entry.get("diffs", []))
        if transition:
            transitions.append(transition)
    return transitions


def fallback_transition(issue: dict[str, Any]) -> str | None:
    """Single transition that reaches the issue's current state."""
    if issue.get("resolution") in RESOLUTION_TRANSITIONS:
        return RESOLUTION_TRANSITIONS[issue["resolution"]]
    status = issue.get("status")
    if status == "OPEN":
        return None
    return STATUS_TRANSITIONS.get(status)


class IssueSynchronizer:
    """Copies issue metadata from a source project onto its migrated counterpart."""

    def __init__(
        self,
        source_client: SonarQubeClient,
        dest_client: SonarCloudClient,
        concurrency: int = 5,
    ) -> None:
        self.source_client = source_client
        self.dest_client = dest_client
        self.concurrency = concurrency
        self._logger = logger.bind(org=dest_client.organization)

    async def sync(
        self, project_key: str, source_issues: list[dict[str, Any]]
    ) -> IssueSyncStats:
        """Sync matched issues under bounded concurrency.

        Args:
            project_key: Destination project key.
            source_issues: Source issues with comments.

        Returns:
            Counters for the project.
        """
        stats = IssueSyncStats()
        dest_issues = await self.dest_client.search_issues(project_key)
        pairs = match_by_location(source_issues, dest_issues)
        stats.matched = len(pairs)
        self._logger.info(
            "Matched issues",
            project=project_key,
            matched=stats.matched,
            source=len(source_issues),
            destination=len(dest_issues),
        )

        results = await map_concurrent(
            pairs, lambda pair: self._sync_one(pair[0], pair[1], stats), self.concurrency
        )
        for (source, _), result in zip(pairs, results):
            if isinstance(result, BaseException):
                stats.failed += 1
                self._logger.debug(
                    "Failed to sync issue", issue=source.get("key"), error=str(result)
                )

        self._logger.info("Issue sync complete", project=project_key, **stats.to_dict())
        return stats

    async def _sync_one(
        self, source: dict[str, Any], dest: dict[str, Any], stats: IssueSyncStats
    ) -> None:
        if await self._sync_status(source, dest):
            stats.transitioned += 1

        assignee = source.get("assignee")
        if assignee and assignee != dest.get("assignee"):
            try:
                await self.dest_client.assign_issue(dest["key"], assignee)
                stats.assigned += 1
            except APIError as e:
                self._logger.debug("Failed to assign issue", issue=dest["key"], error=str(e))

        for comment in source.get("comments", []):
            try:
                await self.dest_client.add_issue_comment(
                    dest["key"], format_migrated_comment(comment)
                )
                stats.commented += 1
            except APIError as e:
                self._logger.debug("Failed to add comment", issue=dest["key"], error=str(e))

        if source.get("tags"):
            try:
                await self.dest_client.set_issue_tags(dest["key"], source["tags"])
                stats.tagged += 1
            except APIError as e:
                self._logger.debug("Failed to set tags", issue=dest["key"], error=str(e))

    async def _sync_status(self, source: dict[str, Any], dest: dict[str, Any]) -> bool:
        """Replay the source changelog's transitions, or one fallback transition."""
        if (source.get("status"), source.get("resolution")) == (
            dest.get("status"),
            dest.get("resolution"),
        ):
            return False

        try:
            changelog = await self.source_client.get_issue_changelog(source["key"])
        except APIError as e:
            self._logger.debug(
                "Changelog unavailable, using single transition",
                issue=source["key"],
                error=str(e),
            )
            changelog = []

        transitions = transitions_from_changelog(changelog)
        if not transitions:
            transition = fallback_transition(source)
            transitions = [transition] if transition else []

        applied = False
        for transition in transitions:
            try:
                await self.dest_client.transition_issue(dest["key"], transition)
                applied = True
            except APIError as e:
                self._logger.debug(
                    "Failed to apply transition",
                    issue=dest["key"],
                    transition=transition,
                    error=str(e),
                )
        return applied
