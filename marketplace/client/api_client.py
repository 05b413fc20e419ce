"""
HTTP client for marketplace services.

Thin JSON wrapper over httpx that attaches the bearer token and turns every
transport failure or non-2xx response into a CollaboratorError.
"""
import logging
from typing import Any, Optional

import httpx

from marketplace.config import settings
from marketplace.core.exceptions import CollaboratorError

logger = logging.getLogger(__name__)


class ApiClient:

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = settings.HTTP_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            base_url: Service root, e.g. http://gateway:8080/api/v1/cart
            token: Bearer token sent with every request
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (ASGI app, mock) instead of the network
        """
        self.base_url = base_url.rstrip("/")
        self._token = token
        self._http_client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def close(self) -> None:
        """Close HTTP client"""
        await self._http_client.aclose()

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def _headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    @staticmethod
    def _error_detail(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text or f"HTTP {response.status_code}"

        if isinstance(body, dict):
            for key in ("detail", "error", "message"):
                if body.get(key):
                    return str(body[key])
        return f"HTTP {response.status_code}"

    async def request(
        self,
        method: str,
        path: str,
        body: Optional[dict] = None,
        params: Optional[dict] = None,
    ) -> Any:
        url = f"{self.base_url}{path}"

        try:
            response = await self._http_client.request(
                method=method,
                url=url,
                headers=self._headers(),
                json=body,
                params=params,
            )
        except httpx.TimeoutException as e:
            logger.error(f"Request timed out: {method} {url}")
            raise CollaboratorError(f"Request timed out: {method} {path}") from e
        except httpx.HTTPError as e:
            logger.error(f"Request failed: {method} {url}: {e}")
            raise CollaboratorError(f"Network error: {e}") from e

        if response.status_code >= 400:
            detail = self._error_detail(response)
            logger.error(f"Request failed: {response.status_code} - {detail}")
            raise CollaboratorError(detail, upstream_status=response.status_code)

        if response.status_code == 204 or not response.content:
            return {}

        try:
            return response.json()
        except ValueError as e:
            raise CollaboratorError(f"Invalid JSON from {method} {path}") from e

    async def get(self, path: str, params: Optional[dict] = None) -> Any:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, body: Optional[dict] = None) -> Any:
        return await self.request("POST", path, body=body)

    async def put(self, path: str, body: Optional[dict] = None) -> Any:
        return await self.request("PUT", path, body=body)

    async def delete(self, path: str) -> Any:
        return await self.request("DELETE", path)
