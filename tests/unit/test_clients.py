"""Unit tests for the HTTP clients, driven through httpx.MockTransport."""

import base64
import json

import httpx
import pytest

from sonar_migrate.clients.enterprise import EnterpriseClient, enterprise_base_url
from sonar_migrate.clients.exceptions import (
    AuthenticationError,
    ClientError,
    RateLimitError,
    ResourceNotFoundError,
    ServerError,
    error_for_status,
    parse_error_messages,
)
from sonar_migrate.clients.sonarcloud import UNKNOWN_OWNER, SonarCloudClient
from sonar_migrate.clients.sonarqube import SonarQubeClient
from sonar_migrate.config import RateLimitConfig


class RecordingHandler:
    """MockTransport handler replaying canned responses and recording requests."""

    def __init__(self, *responses: httpx.Response) -> None:
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        canned = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        # The last response repeats, so hand out a fresh copy each time
        return httpx.Response(
            canned.status_code, headers=canned.headers, content=canned.content
        )


def _sonarqube(handler, sonarqube_config, rate_limit=None) -> SonarQubeClient:
    return SonarQubeClient(
        sonarqube_config,
        rate_limit=rate_limit or RateLimitConfig(max_retries=2, base_delay=0.0),
        transport=httpx.MockTransport(handler),
    )


def _sonarcloud(handler, org_config, rate_limit=None) -> SonarCloudClient:
    return SonarCloudClient(
        org_config,
        rate_limit=rate_limit or RateLimitConfig(max_retries=2, base_delay=0.0),
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
class TestBaseClientBehaviour:
    """Test auth, error mapping, retries and pagination."""

    async def test_basic_auth_uses_token_as_user(self, sonarqube_config):
        handler = RecordingHandler(httpx.Response(200, json={"status": "UP", "version": "9.9"}))

        async with _sonarqube(handler, sonarqube_config) as client:
            status = await client.test_connection()

        assert status["version"] == "9.9"
        expected = base64.b64encode(b"sq-token:").decode()
        assert handler.requests[0].headers["Authorization"] == f"Basic {expected}"
        assert handler.requests[0].url.path == "/api/system/status"

    async def test_bearer_auth_and_organization_param(self, org_config):
        handler = RecordingHandler(httpx.Response(200, json={}))

        async with _sonarcloud(handler, org_config) as client:
            await client.create_quality_gate("Strict")

        request = handler.requests[0]
        assert request.headers["Authorization"] == "Bearer sc-token"
        assert request.method == "POST"
        assert request.url.params["organization"] == "org-a"
        assert request.url.params["name"] == "Strict"

    async def test_none_params_dropped_and_booleans_rendered(self, org_config):
        handler = RecordingHandler(httpx.Response(204))

        async with _sonarcloud(handler, org_config) as client:
            await client.set_github_binding("p1", "gh", "acme/p1", monorepo=True)
            await client.set_new_code_period("p1", "days", "30")

        assert handler.requests[0].url.params["monorepo"] == "true"
        assert "branch" not in handler.requests[1].url.params

    async def test_error_body_folded_into_message(self, org_config):
        handler = RecordingHandler(
            httpx.Response(400, json={"errors": [{"msg": "Group 'devs' already exists"}]})
        )

        async with _sonarcloud(handler, org_config) as client:
            with pytest.raises(ClientError) as exc_info:
                await client.create_group("devs")

        assert "already exists" in str(exc_info.value)
        assert exc_info.value.error_messages == ["Group 'devs' already exists"]
        assert exc_info.value.mentions("ALREADY EXISTS")
        assert exc_info.value.status_code == 400
        assert len(handler.requests) == 1

    async def test_status_codes_map_to_exceptions(self, sonarqube_config):
        async with _sonarqube(
            RecordingHandler(httpx.Response(401)), sonarqube_config
        ) as client:
            with pytest.raises(AuthenticationError):
                await client.get_groups()

        async with _sonarqube(
            RecordingHandler(httpx.Response(404)), sonarqube_config
        ) as client:
            with pytest.raises(ResourceNotFoundError):
                await client.get_system_info()

    async def test_server_error_retried(self, sonarqube_config):
        handler = RecordingHandler(
            httpx.Response(503),
            httpx.Response(200, json={"qualitygates": [{"name": "Sonar way"}]}),
        )

        async with _sonarqube(handler, sonarqube_config) as client:
            gates = await client.get_quality_gates()

        assert gates == [{"name": "Sonar way"}]
        assert len(handler.requests) == 2

    async def test_rate_limit_retried(self, sonarqube_config):
        handler = RecordingHandler(
            httpx.Response(429, headers={"Retry-After": "0"}),
            httpx.Response(200, json={"webhooks": []}),
        )

        async with _sonarqube(handler, sonarqube_config) as client:
            assert await client.get_webhooks() == []

        assert len(handler.requests) == 2

    async def test_retries_exhausted(self, sonarqube_config):
        handler = RecordingHandler(httpx.Response(500))
        rate_limit = RateLimitConfig(max_retries=1, base_delay=0.0)

        async with _sonarqube(handler, sonarqube_config, rate_limit) as client:
            with pytest.raises(ServerError):
                await client.get_webhooks()

        assert len(handler.requests) == 2

    async def test_pagination_collects_all_pages(self, sonarqube_config):
        handler = RecordingHandler(
            httpx.Response(
                200,
                json={"components": [{"key": "a"}, {"key": "b"}], "paging": {"total": 3}},
            ),
            httpx.Response(200, json={"components": [{"key": "c"}], "paging": {"total": 3}}),
        )

        async with _sonarqube(handler, sonarqube_config) as client:
            items = await client.get_paginated("/api/projects/search", "components", page_size=2)

        assert [i["key"] for i in items] == ["a", "b", "c"]
        assert [r.url.params["p"] for r in handler.requests] == ["1", "2"]


@pytest.mark.asyncio
class TestSonarQubeClient:
    """Test SonarQube specific lookups."""

    async def test_missing_binding_is_none(self, sonarqube_config):
        async with _sonarqube(
            RecordingHandler(httpx.Response(404)), sonarqube_config
        ) as client:
            assert await client.get_project_binding("p1") is None

    async def test_new_code_periods_combine_project_and_branches(self, sonarqube_config):
        handler = RecordingHandler(
            httpx.Response(200, json={"type": "NUMBER_OF_DAYS", "value": "30"}),
            httpx.Response(
                200,
                json={
                    "newCodePeriods": [
                        {"branchKey": "main", "type": "PREVIOUS_VERSION", "inherited": True}
                    ]
                },
            ),
        )

        async with _sonarqube(handler, sonarqube_config) as client:
            periods = await client.get_new_code_periods("p1")

        assert len(periods) == 2
        assert periods[0]["type"] == "NUMBER_OF_DAYS"
        assert all(p["projectKey"] == "p1" for p in periods)

    async def test_profile_backup_returned_as_text(self, sonarqube_config):
        handler = RecordingHandler(httpx.Response(200, text="<profile/>"))

        async with _sonarqube(handler, sonarqube_config) as client:
            backup = await client.get_quality_profile_backup("java", "Custom")

        assert backup == "<profile/>"
        assert handler.requests[0].url.params["qualityProfile"] == "Custom"


@pytest.mark.asyncio
class TestSonarCloudClient:
    """Test SonarCloud specific lookups."""

    async def test_key_free_on_404(self, org_config):
        async with _sonarcloud(RecordingHandler(httpx.Response(404)), org_config) as client:
            assert await client.is_project_key_taken_globally("p1") == {
                "taken": False,
                "owner": None,
            }

    async def test_key_taken_reports_owner(self, org_config):
        handler = RecordingHandler(
            httpx.Response(200, json={"component": {"key": "p1", "organization": "org-b"}})
        )

        async with _sonarcloud(handler, org_config) as client:
            result = await client.is_project_key_taken_globally("p1")

        assert result == {"taken": True, "owner": "org-b"}

    async def test_key_lookup_error_treated_as_taken(self, org_config):
        rate_limit = RateLimitConfig(max_retries=0, base_delay=0.0)

        async with _sonarcloud(
            RecordingHandler(httpx.Response(500)), org_config, rate_limit
        ) as client:
            result = await client.is_project_key_taken_globally("p1")

        assert result == {"taken": True, "owner": UNKNOWN_OWNER}

    async def test_connection_requires_visible_organization(self, org_config):
        async with _sonarcloud(
            RecordingHandler(httpx.Response(200, json={"organizations": []})), org_config
        ) as client:
            with pytest.raises(ResourceNotFoundError):
                await client.test_connection()

    async def test_restore_profile_is_multipart(self, org_config):
        handler = RecordingHandler(httpx.Response(200, json={"profile": {"key": "x"}}))

        async with _sonarcloud(handler, org_config) as client:
            await client.restore_quality_profile("<profile><name>A</name></profile>")

        request = handler.requests[0]
        assert request.headers["Content-Type"].startswith("multipart/form-data")
        body = request.content
        assert b"<profile><name>A</name></profile>" in body
        assert b"org-a" in body


@pytest.mark.asyncio
class TestEnterpriseClient:
    """Test the enterprise portfolio client."""

    async def test_base_url_derived_from_org_url(self):
        assert enterprise_base_url("https://sonarcloud.io/") == (
            "https://api.sonarcloud.io/enterprises"
        )

    async def test_resolve_enterprise_id(self, org_config):
        handler = RecordingHandler(httpx.Response(200, json=[{"id": "ent-1", "key": "acme"}]))

        async with EnterpriseClient(
            org_config, transport=httpx.MockTransport(handler)
        ) as client:
            assert await client.resolve_enterprise_id("acme") == "ent-1"

        assert handler.requests[0].url.host == "api.sonarcloud.io"
        assert handler.requests[0].url.params["enterpriseKey"] == "acme"

    async def test_unknown_enterprise(self, org_config):
        handler = RecordingHandler(httpx.Response(200, json=[]))

        async with EnterpriseClient(
            org_config, transport=httpx.MockTransport(handler)
        ) as client:
            with pytest.raises(ResourceNotFoundError):
                await client.resolve_enterprise_id("acme")

    async def test_page_index_pagination(self, org_config):
        handler = RecordingHandler(
            httpx.Response(200, json={"portfolios": [{"id": "1"}], "page": {"total": 2}}),
            httpx.Response(200, json={"portfolios": [{"id": "2"}], "page": {"total": 2}}),
        )

        async with EnterpriseClient(
            org_config, transport=httpx.MockTransport(handler)
        ) as client:
            portfolios = await client.list_portfolios("ent-1")

        assert [p["id"] for p in portfolios] == ["1", "2"]
        assert [r.url.params["pageIndex"] for r in handler.requests] == ["1", "2"]

    async def test_update_portfolio_uses_patch(self, org_config):
        handler = RecordingHandler(httpx.Response(200, json={"id": "p-1"}))

        async with EnterpriseClient(
            org_config, transport=httpx.MockTransport(handler)
        ) as client:
            await client.update_portfolio("p-1", name="Core", projects=[{"id": "u1"}])

        request = handler.requests[0]
        assert request.method == "PATCH"
        assert request.url.path.endswith("/portfolios/p-1")
        assert json.loads(request.content)["projects"] == [{"id": "u1"}]


class TestErrorModel:
    """Test parsing of Sonar error bodies into typed errors."""

    def test_errors_list_parsed(self):
        body = {"errors": [{"msg": "Name is empty"}, {"msg": ""}, {"msg": "Key is invalid"}]}

        assert parse_error_messages(body) == ["Name is empty", "Key is invalid"]

    def test_enterprise_message_parsed(self):
        assert parse_error_messages({"message": "Enterprise not found"}) == [
            "Enterprise not found"
        ]
        assert parse_error_messages(["not", "a", "dict"]) == []

    def test_status_selects_error_class(self):
        error = error_for_status(404, ["Component key 'p1' not found"], response_text="{}")

        assert isinstance(error, ResourceNotFoundError)
        assert str(error).startswith("Not found: Component key 'p1' not found")
        assert "Response:" not in str(error)

    def test_rate_limit_keeps_retry_after(self):
        error = error_for_status(429, [], retry_after=7)

        assert isinstance(error, RateLimitError)
        assert error.retry_after == 7
        assert error.error_messages == []

    def test_unparsed_body_shown_as_preview(self):
        error = error_for_status(502, [], response_text="<html>" + "x" * 300)

        assert isinstance(error, ServerError)
        assert "Response: <html>" in str(error)
        assert str(error).endswith("...")
