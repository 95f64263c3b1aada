"""Hotspot metadata sync: review status and comments."""

from dataclasses import asdict, dataclass
from typing import Any

import structlog

from sonar_migrate.clients.exceptions import APIError
from sonar_migrate.clients.sonarcloud import SonarCloudClient
from sonar_migrate.concurrency import map_concurrent
from sonar_migrate.resources.issue_sync import format_migrated_comment, match_by_location

logger = structlog.get_logger(__name__)

TO_REVIEW = "TO_REVIEW"
REVIEWED = "REVIEWED"
RESOLUTIONS = ("SAFE", "ACKNOWLEDGED", "FIXED")


@dataclass(slots=True)
class HotspotSyncStats:
    matched: int = 0
    status_changed: int = 0
    commented: int = 0
    failed: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


def hotspot_rule(hotspot: dict[str, Any]) -> str | None:
    return (
        hotspot.get("rule_key")
        or hotspot.get("ruleKey")
        or (hotspot.get("rule") or {}).get("key")
        or hotspot.get("securityCategory")
    )


def review_resolution(hotspot: dict[str, Any]) -> str | None:
    """Resolution to apply on the destination, or None when not reviewed."""
    if hotspot.get("resolution") in RESOLUTIONS:
        return hotspot["resolution"]
    if hotspot.get("status") == REVIEWED:
        return "SAFE"
    return None


class HotspotSynchronizer:
    """Copies hotspot review outcomes and comments onto the migrated project."""

    def __init__(self, dest_client: SonarCloudClient, concurrency: int = 3) -> None:
        self.dest_client = dest_client
        self.concurrency = concurrency
        self._logger = logger.bind(org=dest_client.organization)

    async def sync(
        self, project_key: str, source_hotspots: list[dict[str, Any]]
    ) -> HotspotSyncStats:
        stats = HotspotSyncStats()
        dest_hotspots = await self.dest_client.search_hotspots(project_key)
        pairs = match_by_location(source_hotspots, dest_hotspots, rule_of=hotspot_rule)
        stats.matched = len(pairs)
        self._logger.info(
            "Matched hotspots",
            project=project_key,
            matched=stats.matched,
            source=len(source_hotspots),
            destination=len(dest_hotspots),
        )

        results = await map_concurrent(
            pairs, lambda pair: self._sync_one(pair[0], pair[1], stats), self.concurrency
        )
        for (source, _), result in zip(pairs, results):
            if isinstance(result, BaseException):
                stats.failed += 1
                self._logger.debug(
                    "Failed to sync hotspot", hotspot=source.get("key"), error=str(result)
                )

        self._logger.info("Hotspot sync complete", project=project_key, **stats.to_dict())
        return stats

    async def _sync_one(
        self, source: dict[str, Any], dest: dict[str, Any], stats: HotspotSyncStats
    ) -> None:
        if source.get("status") != TO_REVIEW and dest.get("status") == TO_REVIEW:
            resolution = review_resolution(source)
            if resolution:
                try:
                    await self.dest_client.change_hotspot_status(
                        dest["key"], REVIEWED, resolution
                    )
                    stats.status_changed += 1
                except APIError as e:
                    self._logger.debug(
                        "Failed to change hotspot status", hotspot=dest["key"], error=str(e)
                    )

        for comment in source.get("comments", []):
            try:
                await self.dest_client.add_hotspot_comment(
                    dest["key"], format_migrated_comment(comment)
                )
                stats.commented += 1
            except APIError as e:
                self._logger.debug(
                    "Failed to add hotspot comment", hotspot=dest["key"], error=str(e)
                )
