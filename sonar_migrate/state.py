"""Resumable per-organization migration state."""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog

logger = structlog.get_logger(__name__)


@dataclass(slots=True)
class MigrationState:
    """Which projects of one organization have already been processed."""

    org_key: str
    completed_projects: set[str] = field(default_factory=set)
    failed_projects: set[str] = field(default_factory=set)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "org_key": self.org_key,
            "completed_projects": sorted(self.completed_projects),
            "failed_projects": sorted(self.failed_projects),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MigrationState":
        """Create from dictionary loaded from JSON."""
        return cls(
            org_key=data["org_key"],
            completed_projects=set(data.get("completed_projects", [])),
            failed_projects=set(data.get("failed_projects", [])),
        )

    def mark_completed(self, project_key: str) -> None:
        self.completed_projects.add(project_key)
        self.failed_projects.discard(project_key)

    def mark_failed(self, project_key: str) -> None:
        self.failed_projects.add(project_key)
        self.completed_projects.discard(project_key)

    def is_completed(self, project_key: str) -> bool:
        return project_key in self.completed_projects


class StateStore:
    """Loads and saves :class:`MigrationState` files under ``{output_dir}/state``."""

    def __init__(self, state_dir: Path) -> None:
        self.state_dir = state_dir

    def path_for(self, org_key: str) -> Path:
        return self.state_dir / f"{org_key}_state.json"

    def load(self, org_key: str) -> MigrationState:
        """Load an organization's state, starting fresh if none is readable."""
        path = self.path_for(org_key)
        if not path.exists():
            return MigrationState(org_key=org_key)
        try:
            with open(path) as f:
                state = MigrationState.from_dict(json.load(f))
        except (OSError, ValueError, KeyError) as e:
            logger.warning("Failed to load state, starting fresh", path=str(path), error=str(e))
            return MigrationState(org_key=org_key)

        logger.info(
            "Loaded migration state",
            org=org_key,
            completed=len(state.completed_projects),
            failed=len(state.failed_projects),
        )
        return state

    def save(self, state: MigrationState) -> None:
        self.state_dir.mkdir(parents=True, exist_ok=True)
        path = self.path_for(state.org_key)
        with open(path, "w") as f:
            json.dump(state.to_dict(), f, indent=2)
