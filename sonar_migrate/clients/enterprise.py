"""Client for the SonarCloud enterprise-level portfolio API."""

from typing import Any
from urllib.parse import urlparse

import httpx

from sonar_migrate.clients.base import BaseAPIClient
from sonar_migrate.clients.exceptions import ResourceNotFoundError
from sonar_migrate.config import OrganizationConfig, RateLimitConfig

ENTERPRISE_PAGE_SIZE = 50


def enterprise_base_url(org_url: str) -> str:
    """Derive the enterprise API root from an organization URL.

    ``https://sonarcloud.io`` becomes ``https://api.sonarcloud.io/enterprises``.
    """
    parsed = urlparse(org_url)
    return f"{parsed.scheme}://api.{parsed.netloc}/enterprises"


class EnterpriseClient(BaseAPIClient):
    """Portfolio operations that live above individual organizations.

    Uses Bearer auth and a different host than the organization API. All list
    endpoints page with ``pageIndex``/``pageSize`` and report ``page.total``.
    """

    def __init__(
        self,
        org_config: OrganizationConfig,
        rate_limit: RateLimitConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the enterprise client.

        Args:
            org_config: Organization whose URL and token grant enterprise access.
            rate_limit: Retry and throttling settings.
            transport: Optional httpx transport for tests.
        """
        super().__init__(
            enterprise_base_url(str(org_config.url)),
            rate_limit=rate_limit,
            transport=transport,
        )
        self._token = org_config.token

    def _get_auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._token}"}

    async def _get_all_pages(
        self, path: str, items_key: str, params: dict[str, Any]
    ) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        page_index = 1
        while True:
            body = await self.get(
                path,
                {**params, "pageSize": ENTERPRISE_PAGE_SIZE, "pageIndex": page_index},
            )
            page_items = body.get(items_key, []) or []
            items.extend(page_items)
            total = (body.get("page") or {}).get("total", 0)
            if len(items) >= total or not page_items:
                break
            page_index += 1
        return items

    async def resolve_enterprise_id(self, enterprise_key: str) -> str:
        """Resolve an enterprise key to its id.

        Raises:
            ResourceNotFoundError: If no enterprise has that key.
        """
        body = await self.get("/enterprises", {"enterpriseKey": enterprise_key})
        if not isinstance(body, list) or not body:
            raise ResourceNotFoundError(f"Enterprise not found: {enterprise_key}")
        enterprise_id = body[0]["id"]
        self._logger.info(
            "Resolved enterprise", enterprise_key=enterprise_key, enterprise_id=enterprise_id
        )
        return enterprise_id

    async def list_portfolios(self, enterprise_id: str) -> list[dict[str, Any]]:
        return await self._get_all_pages(
            "/portfolios", "portfolios", {"enterpriseId": enterprise_id}
        )

    async def create_portfolio(
        self,
        name: str,
        enterprise_id: str,
        description: str = "",
        projects: list[dict[str, Any]] | None = None,
        selection: str = "projects",
    ) -> dict[str, Any]:
        self._logger.info("Creating enterprise portfolio", portfolio=name)
        return await self.post(
            "/portfolios",
            json_data={
                "name": name,
                "enterpriseId": enterprise_id,
                "description": description,
                "selection": selection,
                "projects": projects or [],
                "tags": [],
                "organizationIds": [],
            },
        )

    async def update_portfolio(
        self,
        portfolio_id: str,
        name: str,
        description: str = "",
        projects: list[dict[str, Any]] | None = None,
        selection: str = "projects",
    ) -> dict[str, Any]:
        self._logger.info(
            "Updating enterprise portfolio", portfolio=name, portfolio_id=portfolio_id
        )
        return await self.patch(
            f"/portfolios/{portfolio_id}",
            json_data={
                "name": name,
                "description": description,
                "selection": selection,
                "projects": projects or [],
                "tags": [],
                "organizationIds": [],
            },
        )

    async def delete_portfolio(self, portfolio_id: str) -> None:
        await self.delete(f"/portfolios/{portfolio_id}")

    async def get_selectable_organizations(
        self, portfolio_id: str
    ) -> list[dict[str, Any]]:
        return await self._get_all_pages(
            "/portfolio-organizations", "organizations", {"portfolioId": portfolio_id}
        )

    async def get_selectable_projects(
        self, portfolio_id: str, organization_id: str
    ) -> list[dict[str, Any]]:
        return await self._get_all_pages(
            "/portfolio-projects",
            "projects",
            {"portfolioId": portfolio_id, "organizationId": organization_id},
        )
