"""Unit tests for enterprise portfolio migration."""

import pytest

from sonar_migrate.clients.exceptions import ServerError
from sonar_migrate.resources.portfolios import (
    LOOKUP_PORTFOLIO_PREFIX,
    build_project_uuid_map,
    migrate_portfolios,
    resolve_portfolio_projects,
)

UUID_MAP = {
    "p1": {"id": "u1", "branchId": "b1"},
    "org-a_p2": {"id": "u2", "branchId": "b2"},
    "p3": {"id": "u3", "branchId": None},
}


def _portfolio(name, members, selection_mode="MANUAL"):
    return {
        "key": name.lower(),
        "name": name,
        "description": f"{name} portfolio",
        "selection_mode": selection_mode,
        "projects": [{"key": k} for k in members],
    }


@pytest.fixture
def enterprise_client(mock_enterprise_client):
    """Enterprise client whose lookup portfolio sees one organization."""
    mock_enterprise_client.get_selectable_organizations.return_value = [
        {"id": "o1", "name": "org-a"}
    ]
    mock_enterprise_client.get_selectable_projects.return_value = [
        {"projectKey": "p1", "id": "u1", "branchId": "b1"},
        {"projectKey": "org-a_p2", "id": "u2", "branchId": "b2"},
    ]
    return mock_enterprise_client


class TestResolvePortfolioProjects:
    """Test member resolution."""

    def test_members_go_through_key_mapping(self):
        portfolio = _portfolio("Core", ["p1", "p2"])

        resolved = resolve_portfolio_projects(
            portfolio, {"p1": "p1", "p2": "org-a_p2"}, UUID_MAP
        )

        assert resolved == [{"id": "u1", "branchId": "b1"}, {"id": "u2", "branchId": "b2"}]

    def test_unmapped_member_falls_back_to_own_key(self):
        resolved = resolve_portfolio_projects(_portfolio("Core", ["p3"]), {}, UUID_MAP)

        assert resolved == [{"id": "u3", "branchId": None}]

    def test_unresolvable_members_dropped(self):
        resolved = resolve_portfolio_projects(
            _portfolio("Core", ["p1", "ghost"]), {}, UUID_MAP
        )

        assert resolved == [{"id": "u1", "branchId": "b1"}]

    def test_all_projects_mode_selects_everything(self):
        resolved = resolve_portfolio_projects(
            _portfolio("Everything", [], selection_mode="REST"), {}, UUID_MAP
        )

        assert {r["id"] for r in resolved} == {"u1", "u2", "u3"}


@pytest.mark.asyncio
class TestBuildProjectUuidMap:
    """Test the lookup portfolio technique."""

    async def test_lookup_portfolio_created_and_deleted(self, enterprise_client):
        uuid_map = await build_project_uuid_map(enterprise_client, "ent-1")

        assert uuid_map == {
            "p1": {"id": "u1", "branchId": "b1"},
            "org-a_p2": {"id": "u2", "branchId": "b2"},
        }
        create_kwargs = enterprise_client.create_portfolio.await_args.kwargs
        assert create_kwargs["name"].startswith(LOOKUP_PORTFOLIO_PREFIX)
        assert create_kwargs["enterprise_id"] == "ent-1"
        enterprise_client.delete_portfolio.assert_awaited_once_with("lookup-1")

    async def test_lookup_portfolio_deleted_when_enumeration_fails(self, enterprise_client):
        enterprise_client.get_selectable_projects.side_effect = ServerError("down")

        with pytest.raises(ServerError):
            await build_project_uuid_map(enterprise_client, "ent-1")

        enterprise_client.delete_portfolio.assert_awaited_once_with("lookup-1")


@pytest.mark.asyncio
class TestMigratePortfolios:
    """Test create, update and skip decisions."""

    async def test_new_portfolio_created(self, enterprise_client):
        stats = await migrate_portfolios(
            enterprise_client, "acme", [_portfolio("Core", ["p1"])], {"p1": "p1"}
        )

        assert stats.created == 1
        assert stats.migrated == 1
        # First call is the lookup portfolio
        create = enterprise_client.create_portfolio.await_args_list[1].kwargs
        assert create["name"] == "Core"
        assert create["projects"] == [{"id": "u1", "branchId": "b1"}]

    async def test_existing_portfolio_updated(self, enterprise_client):
        enterprise_client.list_portfolios.return_value = [
            {"id": "pf-9", "name": "Core", "projects": []}
        ]

        stats = await migrate_portfolios(
            enterprise_client, "acme", [_portfolio("Core", ["p2"])], {"p2": "org-a_p2"}
        )

        assert stats.updated == 1
        assert stats.created == 0
        args = enterprise_client.update_portfolio.await_args
        assert args.args[0] == "pf-9"
        assert args.kwargs["projects"] == [{"id": "u2", "branchId": "b2"}]

    async def test_existing_empty_portfolio_with_nothing_to_add_skipped(
        self, enterprise_client
    ):
        enterprise_client.list_portfolios.return_value = [
            {"id": "pf-9", "name": "Core", "projects": []}
        ]

        stats = await migrate_portfolios(
            enterprise_client, "acme", [_portfolio("Core", ["ghost"])], {}
        )

        assert stats.skipped == 1
        enterprise_client.update_portfolio.assert_not_awaited()

    async def test_partial_resolution_still_creates(self, enterprise_client):
        stats = await migrate_portfolios(
            enterprise_client, "acme", [_portfolio("Core", ["p1", "ghost"])], {}
        )

        assert stats.created == 1
        create = enterprise_client.create_portfolio.await_args_list[1].kwargs
        assert create["projects"] == [{"id": "u1", "branchId": "b1"}]

    async def test_one_failure_does_not_stop_others(self, enterprise_client):
        enterprise_client.create_portfolio.side_effect = [
            {"id": "lookup-1"},
            ServerError("boom"),
            {"id": "pf-2"},
        ]

        stats = await migrate_portfolios(
            enterprise_client,
            "acme",
            [_portfolio("First", ["p1"]), _portfolio("Second", ["p1"])],
            {},
        )

        assert stats.failed == 1
        assert stats.created == 1
        assert stats.describe() == "1 created, 0 updated, 0 skipped, 1 failed"

    async def test_malformed_existing_portfolio_does_not_stop_others(
        self, enterprise_client
    ):
        enterprise_client.list_portfolios.return_value = [
            {"name": "First", "projects": [{"id": "x"}]}
        ]

        stats = await migrate_portfolios(
            enterprise_client,
            "acme",
            [_portfolio("First", ["p1"]), _portfolio("Second", ["p1"])],
            {},
        )

        assert stats.failed == 1
        assert stats.created == 1
        enterprise_client.update_portfolio.assert_not_awaited()
        assert enterprise_client.create_portfolio.await_args.kwargs["name"] == "Second"

    async def test_uuid_map_failure_propagates(self, enterprise_client):
        enterprise_client.get_selectable_organizations.side_effect = ServerError("down")

        with pytest.raises(ServerError):
            await migrate_portfolios(
                enterprise_client, "acme", [_portfolio("Core", ["p1"])], {}
            )

        enterprise_client.delete_portfolio.assert_awaited_once_with("lookup-1")

    async def test_no_portfolios_makes_no_calls(self, enterprise_client):
        stats = await migrate_portfolios(enterprise_client, "acme", [], {})

        assert stats.migrated == 0
        enterprise_client.resolve_enterprise_id.assert_not_awaited()
