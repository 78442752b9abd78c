"""
Async Graph API client with pagination and safety enforcement.
One logical read per call; failures surface to the caller without retry.
"""

from __future__ import annotations

import logging
from typing import Any, AsyncGenerator, Optional

import httpx

from ..config import (
    GRAPH_BASE_URL,
    GRAPH_API_VERSION,
    DEFAULT_PAGE_SIZE,
    MAX_PAGES_PER_ENDPOINT,
    REQUEST_TIMEOUT_SECONDS,
    CONNECT_TIMEOUT_SECONDS,
)
from ..safety.guardian import SafetyGuardian, SafetyViolation

logger = logging.getLogger("m365_license_audit.graph")


class GraphAPIError(Exception):
    """Raised when Graph API returns an error status."""
    def __init__(self, status_code: int, message: str, url: str):
        self.status_code = status_code
        self.url = url
        self.message = message
        super().__init__(f"Graph API Error {status_code} for {url}: {message}")

    @property
    def is_permission_error(self) -> bool:
        return self.status_code in (401, 403)


class GraphClient:
    """
    Async Microsoft Graph API client.
    Features:
      - Safety-validated requests (read-only enforcement)
      - Automatic pagination with @odata.nextLink
      - Streaming generator for large result sets

    Throttling and transient errors are not retried: this is an operator-run
    tool and a failed fetch ends the run.
    """

    def __init__(
        self,
        access_token: str,
        guardian: SafetyGuardian,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.access_token = access_token
        self.guardian = guardian
        self._transport = transport
        self._request_count = 0
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(REQUEST_TIMEOUT_SECONDS, connect=CONNECT_TIMEOUT_SECONDS),
            headers={
                "Authorization": f"Bearer {self.access_token}",
                "Accept": "application/json",
            },
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args):
        await self.aclose()

    async def aclose(self):
        if self._client:
            await self._client.aclose()
            self._client = None

    def _build_url(self, endpoint: str) -> str:
        """Build full Graph URL from relative endpoint."""
        if endpoint.startswith("http"):
            return endpoint
        endpoint = endpoint.lstrip("/")
        return f"{GRAPH_BASE_URL}/{GRAPH_API_VERSION}/{endpoint}"

    async def get_all_pages(
        self,
        endpoint: str,
        params: Optional[dict] = None,
        skip_top: bool = False,
    ) -> list[dict]:
        """
        Fetch all pages of a paginated endpoint into a list.
        Set skip_top=True for endpoints that don't support $top.
        """
        items = []
        async for item in self.get_all_pages_stream(endpoint, params, skip_top=skip_top):
            items.append(item)
        return items

    async def get_all_pages_stream(
        self,
        endpoint: str,
        params: Optional[dict] = None,
        skip_top: bool = False,
    ) -> AsyncGenerator[dict, None]:
        """
        Stream all pages of a paginated endpoint as an async generator.
        Yields one item at a time, in server order.
        """
        params = dict(params or {})
        if not skip_top and "$top" not in params:
            params["$top"] = str(DEFAULT_PAGE_SIZE)

        url: Optional[str] = self._build_url(endpoint)
        request_params: Optional[dict] = params
        pages = 0

        while url and pages < MAX_PAGES_PER_ENDPOINT:
            self.guardian.validate_request("GET", url)
            data = await self._execute("GET", url, params=request_params)

            for item in data.get("value", []):
                yield item

            # nextLink already carries the query string
            url = data.get("@odata.nextLink")
            request_params = None
            pages += 1

        if url and pages >= MAX_PAGES_PER_ENDPOINT:
            logger.warning(
                f"Pagination safety cap reached ({MAX_PAGES_PER_ENDPOINT} pages) "
                f"for endpoint: {endpoint}"
            )

    async def _execute(
        self,
        method: str,
        url: str,
        params: Optional[dict] = None,
    ) -> dict[str, Any]:
        """Execute a request and decode the JSON body, raising on any error status."""
        if not self._client:
            raise RuntimeError("GraphClient not initialized. Use 'async with' context.")
        if method != "GET":
            raise SafetyViolation(f"Unsupported method at raw level: {method}")

        response = await self._client.get(url, params=params)
        self._request_count += 1

        if response.status_code == 200:
            if not response.content or not response.content.strip():
                return {"value": []}
            try:
                data = response.json()
            except ValueError:
                raise GraphAPIError(response.status_code, "Invalid JSON response", url)
            if not isinstance(data, dict):
                raise GraphAPIError(response.status_code, "Unexpected response shape", url)
            return data

        error_msg = _error_message(response)
        if response.status_code in (401, 403):
            logger.warning(f"{response.status_code} on {url} — {error_msg}")
        raise GraphAPIError(response.status_code, error_msg, url)

    def get_stats(self) -> dict:
        """Return client statistics."""
        return {"total_requests": self._request_count}


def _error_message(response: httpx.Response) -> str:
    """Pull the Graph error message out of a failed response."""
    try:
        body = response.json() if response.content else {}
    except ValueError:
        return response.text[:200]
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return error["message"]
    return response.text[:200]
