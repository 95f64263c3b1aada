"""Base client with retry logic, error handling, and rate limiting."""

import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import httpx
import structlog
from asyncio_throttle import Throttler
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from sonar_migrate.clients.exceptions import (
    APIError,
    NetworkError,
    RateLimitError,
    ServerError,
    error_for_status,
    parse_error_messages,
)
from sonar_migrate.config import RateLimitConfig

logger = structlog.get_logger(__name__)

T = TypeVar("T")

DEFAULT_PAGE_SIZE = 500


class BaseAPIClient(ABC):
    """Abstract base class for API clients with common functionality."""

    def __init__(
        self,
        base_url: str,
        rate_limit: RateLimitConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        user_agent: str | None = None,
        auth: httpx.Auth | None = None,
    ) -> None:
        """Initialize the base API client.

        Args:
            base_url: Base URL for the API
            rate_limit: Retry, throttling and timeout settings
            transport: Optional httpx transport (tests inject a MockTransport)
            user_agent: Custom user agent string
            auth: httpx authentication applied to every request
        """
        self.base_url = base_url.rstrip("/")
        self.rate_limit = rate_limit or RateLimitConfig()

        headers = {
            "User-Agent": user_agent or self._get_default_user_agent(),
            "Accept": "application/json",
        }

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.rate_limit.timeout),
            limits=httpx.Limits(max_connections=20, max_keepalive_connections=5),
            headers=headers,
            auth=auth,
            follow_redirects=True,
            transport=transport,
        )

        self._throttler = Throttler(
            rate_limit=self.rate_limit.requests_per_minute, period=60
        )

        # Request tracking for logging and debugging
        self._request_count = 0
        self._error_count = 0
        self._last_request_time: float | None = None

        self._logger = logger.bind(
            client_type=self.__class__.__name__,
            base_url=self.base_url,
        )

    async def __aenter__(self) -> "BaseAPIClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    async def close(self) -> None:
        """Close the HTTP client and cleanup resources."""
        if self._client:
            await self._client.aclose()

    @abstractmethod
    def _get_auth_headers(self) -> dict[str, str]:
        """Get authentication headers for requests.

        Returns:
            Dictionary of authentication headers
        """
        pass

    def _get_default_user_agent(self) -> str:
        """Get default user agent string."""
        from sonar_migrate import __version__

        return f"sonar-migrate/{__version__}"

    async def _make_request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json_data: Any = None,
        files: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Make an HTTP request with rate limiting and error handling.

        Args:
            method: HTTP method (GET, POST, PATCH, DELETE, etc.)
            path: API endpoint path (relative to base URL)
            params: Query parameters
            json_data: JSON request body
            files: Multipart file parts
            data: Form fields (sent alongside files)

        Returns:
            HTTP response object

        Raises:
            APIError: If the request fails
        """
        async with self._throttler:
            url = f"{self.base_url}/{path.lstrip('/')}"
            self._request_count += 1
            self._last_request_time = time.time()
            request_id = f"req_{self._request_count}"

            self._logger.debug(
                "Making API request",
                request_id=request_id,
                method=method,
                url=url,
                params=params,
            )

            try:
                response = await self._client.request(
                    method=method,
                    url=url,
                    params=_clean_params(params),
                    json=json_data,
                    files=files,
                    data=data,
                    headers=self._get_auth_headers(),
                )
            except httpx.RequestError as e:
                self._error_count += 1
                self._logger.error(
                    "Network error during API request",
                    request_id=request_id,
                    error=str(e),
                )
                raise NetworkError(f"Network error: {e}") from e

            self._logger.debug(
                "API request completed",
                request_id=request_id,
                status_code=response.status_code,
                response_size=len(response.content),
            )

            if response.is_success:
                return response

            self._error_count += 1
            raise self._error_for(response)

    def _error_for(self, response: httpx.Response) -> APIError:
        """Build the typed error for a non-2xx response."""
        retry_after = None
        if response.status_code == 429:
            retry_after = self._get_retry_after(response)
        return error_for_status(
            response.status_code,
            _extract_error_messages(response),
            response_text=response.text,
            retry_after=retry_after,
        )

    def _get_retry_after(self, response: httpx.Response) -> int | None:
        """Extract retry-after value from response headers.

        Args:
            response: HTTP response

        Returns:
            Retry-after value in seconds, or None if not present
        """
        retry_after = response.headers.get("Retry-After")
        if retry_after:
            try:
                return int(retry_after)
            except ValueError:
                pass
        return None

    async def with_retry(
        self,
        operation_name: str,
        operation: Callable[[], Awaitable[T]],
    ) -> T:
        """Execute an operation with automatic retry logic.

        Retries on server errors, network errors and rate limiting. Other
        errors propagate immediately.

        Args:
            operation_name: Name of the operation for logging
            operation: Callable returning a fresh awaitable per attempt

        Returns:
            Result of the operation

        Raises:
            APIError: If the operation fails after all retries
        """
        backoff = wait_exponential(
            multiplier=self.rate_limit.base_delay,
            min=self.rate_limit.base_delay,
            max=60,
        )

        def wait(retry_state: RetryCallState) -> float:
            # Honour Retry-After on 429 before falling back to exponential backoff
            error = retry_state.outcome.exception() if retry_state.outcome else None
            if isinstance(error, RateLimitError) and error.retry_after:
                self._logger.info(
                    "Rate limit hit, waiting before retry",
                    operation=operation_name,
                    retry_after=error.retry_after,
                )
                return float(error.retry_after)
            return backoff(retry_state)

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.rate_limit.max_retries + 1),
                wait=wait,
                retry=retry_if_exception_type(
                    (ServerError, NetworkError, RateLimitError)
                ),
                reraise=True,
            ):
                with attempt:
                    if attempt.retry_state.attempt_number > 1:
                        self._logger.warning(
                            "Retrying operation",
                            operation=operation_name,
                            attempt_number=attempt.retry_state.attempt_number,
                        )
                    return await operation()
        except APIError as e:
            self._logger.debug(
                "Operation failed",
                operation=operation_name,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

    async def request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json_data: Any = None,
        files: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Make a request through the retry wrapper."""
        return await self.with_retry(
            f"{method} {path}",
            lambda: self._make_request(
                method,
                path,
                params=params,
                json_data=json_data,
                files=files,
                data=data,
            ),
        )

    async def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """Make a GET request and return the decoded JSON body."""
        response = await self.request("GET", path, params=params)
        return response.json() if response.content else {}

    async def get_text(self, path: str, params: dict[str, Any] | None = None) -> str:
        """Make a GET request and return the raw response text."""
        response = await self.request("GET", path, params=params)
        return response.text

    async def post(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        json_data: Any = None,
        files: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
    ) -> Any:
        """Make a POST request and return the decoded JSON body (or {})."""
        response = await self.request(
            "POST", path, params=params, json_data=json_data, files=files, data=data
        )
        return _json_or_empty(response)

    async def patch(self, path: str, json_data: Any = None) -> Any:
        """Make a PATCH request and return the decoded JSON body (or {})."""
        response = await self.request("PATCH", path, json_data=json_data)
        return _json_or_empty(response)

    async def delete(self, path: str, params: dict[str, Any] | None = None) -> None:
        """Make a DELETE request."""
        await self.request("DELETE", path, params=params)

    async def get_paginated(
        self,
        path: str,
        items_key: str,
        params: dict[str, Any] | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> list[dict[str, Any]]:
        """Collect every page of a ``p``/``ps`` paginated Web API endpoint.

        Args:
            path: API endpoint path
            items_key: Response key holding the page items
            params: Extra query parameters
            page_size: Items per page

        Returns:
            All items across pages.
        """
        items: list[dict[str, Any]] = []
        page = 1
        while True:
            body = await self.get(
                path, params={**(params or {}), "p": page, "ps": page_size}
            )
            page_items = body.get(items_key, []) or []
            items.extend(page_items)

            total = (body.get("paging") or {}).get("total", 0)
            if page * page_size >= total or len(page_items) < page_size:
                break
            page += 1
        return items

    def get_stats(self) -> dict[str, Any]:
        """Get client statistics.

        Returns:
            Dictionary with request and error counts
        """
        return {
            "request_count": self._request_count,
            "error_count": self._error_count,
            "last_request_time": self._last_request_time,
        }


def _clean_params(params: dict[str, Any] | None) -> dict[str, Any] | None:
    """Drop None values and render booleans the way the Web API expects."""
    if params is None:
        return None
    cleaned = {}
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, bool):
            value = "true" if value else "false"
        cleaned[key] = value
    return cleaned


def _extract_error_messages(response: httpx.Response) -> list[str]:
    """Pull the server-reported messages out of an error body."""
    try:
        body = response.json()
    except ValueError:
        return []
    return parse_error_messages(body)


def _json_or_empty(response: httpx.Response) -> Any:
    if not response.content:
        return {}
    try:
        return response.json()
    except ValueError:
        return {}
