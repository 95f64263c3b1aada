"""Shared pytest fixtures for the migration tool tests."""

from unittest.mock import Mock

import pytest

from sonar_migrate.clients.enterprise import EnterpriseClient
from sonar_migrate.clients.sonarcloud import SonarCloudClient
from sonar_migrate.clients.sonarqube import SonarQubeClient
from sonar_migrate.config import (
    Config,
    OrganizationConfig,
    RateLimitConfig,
    SonarCloudConfig,
    SonarQubeConfig,
)


@pytest.fixture
def sonarqube_config():
    """Create a test SonarQube configuration."""
    return SonarQubeConfig(url="https://sonarqube.example.com", token="sq-token")


@pytest.fixture
def org_config():
    """Create a test SonarCloud organization configuration."""
    return OrganizationConfig(key="org-a", token="sc-token")


@pytest.fixture
def fast_rate_limit():
    """Rate limit settings that retry without sleeping."""
    return RateLimitConfig(max_retries=2, base_delay=0.0)


@pytest.fixture
def temp_output_dir(tmp_path):
    """Create a temporary output directory."""
    output_dir = tmp_path / "migration-output"
    output_dir.mkdir()
    return output_dir


@pytest.fixture
def config(sonarqube_config, org_config, temp_output_dir):
    """Create a complete test configuration with a single organization."""
    return Config(
        sonarqube=sonarqube_config,
        sonarcloud=SonarCloudConfig(organizations=[org_config]),
        output_dir=temp_output_dir,
    )


@pytest.fixture
def mock_source_client():
    """Create a mock SonarQube client; every API coroutine is an AsyncMock."""
    client = Mock(spec=SonarQubeClient)
    client.get_quality_gates.return_value = []
    client.get_quality_profiles.return_value = []
    client.get_groups.return_value = []
    client.get_global_permissions.return_value = []
    client.get_project_permissions.return_value = []
    client.get_issue_changelog.return_value = []
    return client


@pytest.fixture
def mock_dest_client():
    """Create a mock SonarCloud client bound to ``org-a``."""
    client = Mock(spec=SonarCloudClient)
    client.organization = "org-a"
    client.search_issues.return_value = []
    client.search_hotspots.return_value = []
    return client


@pytest.fixture
def mock_enterprise_client():
    """Create a mock enterprise client with an enterprise and no portfolios."""
    client = Mock(spec=EnterpriseClient)
    client.resolve_enterprise_id.return_value = "ent-1"
    client.list_portfolios.return_value = []
    client.create_portfolio.return_value = {"id": "lookup-1"}
    client.get_selectable_organizations.return_value = []
    client.get_selectable_projects.return_value = []
    return client
