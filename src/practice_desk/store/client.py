"""Async client for the hosted store's REST and RPC surface."""

import asyncio
from collections.abc import Iterable
from typing import Any

import httpx
import structlog

from practice_desk.config import get_settings
from practice_desk.store.errors import (
    AuthenticationError,
    ConfigurationError,
    RateLimitError,
    StoreError,
)

logger = structlog.get_logger(__name__)

Row = dict[str, Any]


def in_filter(values: Iterable[str]) -> str:
    """Filter value matching any of ``values``."""
    return f"in.({','.join(values)})"


def eq_filter(value: Any) -> str:
    return f"eq.{value}"


class StoreClient:
    """Table and RPC access authenticated with the project API key."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
    ):
        settings = get_settings()
        url = base_url or settings.store_url
        if api_key is None and settings.store_key is not None:
            api_key = settings.store_key.get_secret_value()
        if not url or not api_key:
            raise ConfigurationError("Store URL and key must be configured")

        self.base_url = url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout if timeout is not None else settings.store_timeout
        self._max_retries = (
            max_retries if max_retries is not None else settings.store_max_retries
        )
        self._client: httpx.AsyncClient | None = None
        self._logger = logger.bind(component="store_client")

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self._timeout),
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "StoreClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def _get_headers(self, prefer: str | None = None) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "apikey": self._api_key,
            "Authorization": f"Bearer {self._api_key}",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: Any = None,
        prefer: str | None = None,
        retry_count: int = 0,
    ) -> Any:
        """Make a request with retry logic for transport failures."""
        client = await self._get_client()

        try:
            response = await client.request(
                method=method,
                url=path,
                params=params,
                json=json,
                headers=self._get_headers(prefer),
            )

            if response.status_code in (401, 403):
                raise AuthenticationError(
                    "Store rejected the API key", status_code=response.status_code
                )

            if response.status_code == 429:
                retry_after = int(response.headers.get("Retry-After", "60"))
                raise RateLimitError(
                    f"Rate limited, retry after {retry_after}s",
                    status_code=429,
                    details={"retry_after": retry_after},
                )

            if response.status_code >= 400:
                try:
                    error_detail = response.json() if response.content else {}
                except ValueError:
                    error_detail = {
                        "raw": response.text[:500] if response.text else "empty response"
                    }
                self._logger.warning(
                    "store_request_failed",
                    method=method,
                    path=path,
                    status_code=response.status_code,
                )
                raise StoreError(
                    f"Store error: {response.status_code}",
                    status_code=response.status_code,
                    details=error_detail,
                )

            return response.json() if response.content else None

        except httpx.RequestError as e:
            if retry_count < self._max_retries:
                await asyncio.sleep(2**retry_count)  # Exponential backoff
                return await self._request(
                    method, path, params, json, prefer, retry_count + 1
                )
            raise StoreError(f"Request failed: {e}") from e

    # === Tables ===

    async def select(
        self,
        table: str,
        filters: dict[str, str] | None = None,
        order: str | None = None,
        columns: str = "*",
    ) -> list[Row]:
        """Select rows; ``filters`` map column names to operator expressions."""
        params: dict[str, Any] = {"select": columns}
        params.update(filters or {})
        if order:
            params["order"] = order
        data = await self._request("GET", f"/rest/v1/{table}", params=params)
        return list(data or [])

    async def insert(self, table: str, rows: list[Row]) -> list[Row]:
        data = await self._request(
            "POST", f"/rest/v1/{table}", json=rows, prefer="return=representation"
        )
        return list(data or [])

    async def upsert(
        self, table: str, rows: list[Row], on_conflict: str = "id"
    ) -> list[Row]:
        """Insert or merge rows keyed by ``on_conflict``."""
        if not rows:
            return []
        data = await self._request(
            "POST",
            f"/rest/v1/{table}",
            params={"on_conflict": on_conflict},
            json=rows,
            prefer="resolution=merge-duplicates,return=representation",
        )
        return list(data or [])

    async def update(self, table: str, filters: dict[str, str], values: Row) -> list[Row]:
        data = await self._request(
            "PATCH",
            f"/rest/v1/{table}",
            params=filters,
            json=values,
            prefer="return=representation",
        )
        return list(data or [])

    async def delete(self, table: str, filters: dict[str, str]) -> None:
        if not filters:
            raise StoreError("Refusing to delete without a filter", details={"table": table})
        await self._request("DELETE", f"/rest/v1/{table}", params=filters)

    # === Stored procedures ===

    async def rpc(self, function: str, args: Row | None = None) -> Any:
        """Call a stored procedure and return its result."""
        self._logger.debug("rpc_called", function=function)
        return await self._request("POST", f"/rest/v1/rpc/{function}", json=args or {})
