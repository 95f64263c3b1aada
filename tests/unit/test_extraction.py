"""Unit tests for extractors and the server-wide extraction phase."""

import pytest

from sonar_migrate import extractors
from sonar_migrate.clients.exceptions import (
    AuthenticationError,
    ResourceNotFoundError,
    ServerError,
)
from sonar_migrate.concurrency import resolve_performance_config
from sonar_migrate.pipeline.extraction import extract_all_projects, extract_server_wide_data
from sonar_migrate.pipeline.results import RunResult
from sonar_migrate.pipeline.steps import StepStatus

PROJECTS = [{"key": "p1", "name": "One"}, {"key": "p2", "name": "Two"}]


@pytest.fixture
def source_client(mock_source_client):
    """Source client answering every server-wide extraction call."""
    client = mock_source_client
    client.get_quality_gates.return_value = [{"name": "Strict", "isDefault": True}]
    client.get_quality_gate_details.return_value = {
        "conditions": [{"id": 1, "metric": "coverage", "op": "LT", "error": "80"}]
    }
    client.get_quality_gate_permissions.return_value = {"users": [], "groups": []}
    client.get_groups.return_value = [{"name": "devs", "membersCount": 3}]
    client.get_permission_templates.return_value = {
        "permissionTemplates": [
            {"id": "t1", "name": "Default", "permissions": [{"key": "user", "groups": ["devs"]}]}
        ],
        "defaultTemplates": [{"templateId": "t1", "qualifier": "TRK"}],
    }
    client.get_portfolios.return_value = []
    client.get_alm_settings.return_value = {"github": [{"key": "gh"}]}
    client.get_project_binding.return_value = None
    client.get_branches.return_value = [{"name": "main", "isMain": True}]
    client.get_system_info.return_value = {"System": {"Version": "9.9"}}
    client.get_installed_plugins.return_value = []
    client.get_global_settings.return_value = []
    client.get_webhooks.return_value = []
    return client


def _step(results: RunResult, name: str):
    return next(s for s in results.server_steps if s.name == name)


@pytest.mark.asyncio
class TestExtractServerWideData:
    """Test non-fatal extraction semantics."""

    async def test_all_resources_extracted(self, source_client):
        results = RunResult()

        data = await extract_server_wide_data(
            source_client, PROJECTS, results, resolve_performance_config()
        )

        assert data.quality_gates[0]["name"] == "Strict"
        assert data.quality_gates[0]["conditions"] == [
            {"metric": "coverage", "op": "LT", "error": "80"}
        ]
        assert data.groups == [
            {"name": "devs", "description": "", "members_count": 3, "default": False}
        ]
        assert data.permission_templates["default_templates"] == [
            {"template_id": "t1", "qualifier": "TRK"}
        ]
        assert data.alm_settings["github"] == [{"key": "gh"}]
        assert set(data.project_branches) == {"p1", "p2"}
        assert results.server_steps.failed() == []
        assert _step(results, "Extract quality gates").detail == "1 found"

    async def test_gate_failure_does_not_stop_groups(self, source_client):
        source_client.get_quality_gates.side_effect = ServerError("down")
        results = RunResult()

        data = await extract_server_wide_data(
            source_client, PROJECTS, results, resolve_performance_config()
        )

        assert data.quality_gates == []
        assert data.groups[0]["name"] == "devs"
        gate_step = _step(results, "Extract quality gates")
        assert gate_step.status is StepStatus.FAILED
        assert _step(results, "Extract groups").status is StepStatus.SUCCESS

    async def test_portfolios_unsupported_is_nonfatal(self, source_client):
        source_client.get_portfolios.side_effect = ResourceNotFoundError("no views")
        results = RunResult()

        data = await extract_server_wide_data(
            source_client, PROJECTS, results, resolve_performance_config()
        )

        assert data.portfolios == []
        assert _step(results, "Extract portfolios").status is StepStatus.FAILED
        assert _step(results, "Extract webhooks").status is StepStatus.SUCCESS

    async def test_partial_branch_extraction(self, source_client):
        source_client.get_branches.side_effect = [
            [{"name": "main"}],
            ServerError("down"),
        ]
        results = RunResult()

        data = await extract_server_wide_data(
            source_client, PROJECTS, results, resolve_performance_config()
        )

        assert len(data.project_branches) == 1
        assert _step(results, "Extract project branches").detail == (
            "branches for 1/2 projects"
        )

    async def test_project_listing_failure_is_fatal(self, mock_source_client):
        mock_source_client.list_all_projects.side_effect = AuthenticationError("bad token")
        results = RunResult()

        with pytest.raises(AuthenticationError):
            await extract_all_projects(mock_source_client, results)

        assert _step(results, "Extract projects").status is StepStatus.FAILED


@pytest.mark.asyncio
class TestExtractors:
    """Test individual extractor normalisation."""

    async def test_profiles_keep_failed_backup_as_none(self, mock_source_client):
        mock_source_client.get_quality_profiles.return_value = [
            {"key": "k1", "name": "Team", "language": "java", "parentKey": "k0"},
            {"key": "k2", "name": "Sonar way", "language": "java", "isBuiltIn": True},
        ]
        mock_source_client.get_quality_profile_backup.side_effect = [
            ServerError("down"),
            "<profile/>",
        ]
        mock_source_client.get_quality_profile_permissions.return_value = {
            "users": [],
            "groups": [{"name": "devs"}],
        }

        profiles = await extractors.extract_quality_profiles(mock_source_client)

        assert profiles[0]["backup_xml"] is None
        assert profiles[0]["parent_key"] == "k0"
        assert profiles[1]["backup_xml"] == "<profile/>"
        # Built-in profiles carry no edit permissions
        assert profiles[1]["permissions"] == {"users": [], "groups": []}
        mock_source_client.get_quality_profile_permissions.assert_awaited_once()

    async def test_project_settings_drop_inherited(self, mock_source_client):
        mock_source_client.get_project_settings.return_value = [
            {"key": "sonar.exclusions", "value": "gen/**"},
            {"key": "sonar.global", "value": "x", "inherited": True},
        ]

        settings = await extractors.extract_project_settings(mock_source_client, "p1")

        assert settings == [{"key": "sonar.exclusions", "value": "gen/**", "values": []}]

    async def test_new_code_types_mapped(self, mock_source_client):
        mock_source_client.get_new_code_periods.return_value = [
            {"projectKey": "p1", "type": "NUMBER_OF_DAYS", "value": "30"},
            {"projectKey": "p1", "branchKey": "dev", "type": "REFERENCE_BRANCH",
             "value": "main"},
        ]

        periods = await extractors.extract_new_code_periods(mock_source_client, "p1")

        assert [p["type"] for p in periods] == ["days", "reference_branch"]
        assert periods[1]["branch_key"] == "dev"

    async def test_bindings_skip_failed_projects(self, mock_source_client):
        mock_source_client.get_project_binding.side_effect = [
            {"alm": "github", "key": "gh", "repository": "acme/p1"},
            ServerError("down"),
        ]

        bindings = await extractors.extract_all_project_bindings(
            mock_source_client, PROJECTS, concurrency=1
        )

        assert list(bindings) == ["p1"]
        assert bindings["p1"]["repository"] == "acme/p1"

    async def test_hotspot_details_failure_keeps_hotspot(self, mock_source_client):
        mock_source_client.get_hotspots.return_value = [{"key": "h1"}, {"key": "h2"}]
        mock_source_client.get_hotspot_details.side_effect = [
            {"rule": {"key": "java:S2068"}, "comment": [{"markdown": "ok"}]},
            ServerError("down"),
        ]

        hotspots = await extractors.extract_hotspots(mock_source_client, "p1", concurrency=1)

        assert hotspots[0]["rule_key"] == "java:S2068"
        assert hotspots[0]["comments"] == [{"markdown": "ok"}]
        assert hotspots[1] == {"key": "h2", "comments": []}
