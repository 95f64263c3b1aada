"""Unit tests for destination project key resolution."""

from unittest.mock import AsyncMock, Mock

import pytest

from sonar_migrate.pipeline.project_migration import resolve_project_key


def _checker(**answer):
    checker = Mock()
    checker.is_project_key_taken_globally = AsyncMock(return_value=answer)
    return checker


@pytest.mark.asyncio
class TestResolveProjectKey:
    """Test project key collision handling."""

    async def test_free_key_kept(self):
        checker = _checker(taken=False, owner=None)

        key, warning = await resolve_project_key("p1", "org-a", checker)

        assert key == "p1"
        assert warning is None

    async def test_key_owned_by_same_org_kept(self):
        checker = _checker(taken=True, owner="org-a")

        key, warning = await resolve_project_key("p1", "org-a", checker)

        assert key == "p1"
        assert warning is None

    async def test_key_owned_by_other_org_prefixed(self):
        checker = _checker(taken=True, owner="org-b")

        key, warning = await resolve_project_key("p1", "org-a", checker)

        assert key == "org-a_p1"
        assert warning == {"sq_key": "p1", "sc_key": "org-a_p1", "owner": "org-b"}

    async def test_unknown_owner_prefixed(self):
        checker = _checker(taken=True, owner="unknown")

        key, _ = await resolve_project_key("p1", "org-a", checker)

        assert key == "org-a_p1"

    async def test_resolution_is_stable_across_runs(self):
        """A re-run against the same destination state picks the same key."""
        checker = _checker(taken=True, owner="org-b")

        first = await resolve_project_key("p1", "org-a", checker)
        second = await resolve_project_key("p1", "org-a", checker)

        assert first == second
        # Each run asks the destination again instead of caching
        assert checker.is_project_key_taken_globally.await_count == 2
