"""HTTP client for the Routescan explorer API (Etherscan-compatible and REST)."""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

import httpx

from evm_mcp.chains import ChainConfig, routescan_base
from evm_mcp.config import EvmConfig, default_config
from evm_mcp.metrics import default_metrics
from evm_mcp.upstream.errors import (
    UpstreamHTTPError,
    UpstreamResponseError,
    UpstreamUnreachableError,
)

logger = logging.getLogger(__name__)

API_KEY_PARAM = "apiKey"
REDACTED = "***"

QueryValue = str | int | float | bool


def _stringify(value: QueryValue) -> str:
    # Match query-string conventions of the explorer (lower-case booleans).
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def redact_endpoint(url: httpx.URL) -> str:
    """Render a URL for callers with any API key value masked."""
    if API_KEY_PARAM not in url.params:
        return str(url)
    return str(url.copy_set_param(API_KEY_PARAM, REDACTED))


class RoutescanClient:
    """Async client for one Routescan deployment, shared across chains."""

    def __init__(
        self,
        config: EvmConfig | None = None,
        *,
        async_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.config = config or default_config
        self._client: Optional[httpx.AsyncClient] = async_client
        self._owns_client = async_client is None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.config.timeout)
            self._owns_client = True
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def build_url(
        self,
        chain: ChainConfig,
        path: str,
        params: Optional[Mapping[str, QueryValue]] = None,
        *,
        api_key: Optional[str] = None,
    ) -> httpx.URL:
        query: Dict[str, str] = {k: _stringify(v) for k, v in (params or {}).items()}
        key = api_key if api_key is not None else self.config.routescan_api_key
        if key:
            query[API_KEY_PARAM] = key
        base = routescan_base(chain, self.config)
        return httpx.URL(f"{base}/{path.lstrip('/')}", params=query)

    async def _fetch(self, url: httpx.URL) -> Dict[str, Any]:
        client = await self._get_client()
        endpoint = redact_endpoint(url)
        try:
            response = await client.get(url)
        except httpx.RequestError as exc:
            logger.warning("Routescan unreachable for %s", url.path)
            default_metrics.record_upstream("routescan", success=False)
            raise UpstreamUnreachableError("Routescan unreachable") from exc

        try:
            body: Any = response.json()
        except ValueError:
            default_metrics.record_upstream("routescan", success=False)
            if response.status_code >= 400:
                raise UpstreamHTTPError(
                    f"Routescan HTTP error {response.status_code}",
                    status_code=response.status_code,
                )
            raise UpstreamResponseError(
                "Unexpected response from Routescan.", status_code=response.status_code
            )

        # Explorer error payloads are JSON and are passed through verbatim.
        default_metrics.record_upstream("routescan", success=response.status_code < 400)
        return {"endpoint": endpoint, "result": body}

    async def etherscan(
        self,
        chain: ChainConfig,
        module: str,
        action: str,
        params: Optional[Mapping[str, QueryValue]] = None,
        *,
        api_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Query the Etherscan-compatible ``/etherscan`` endpoint."""
        query: Dict[str, QueryValue] = {"module": module, "action": action}
        query.update(params or {})
        url = self.build_url(chain, "etherscan", query, api_key=api_key)
        return await self._fetch(url)

    async def get(
        self,
        chain: ChainConfig,
        path: str,
        query: Optional[Mapping[str, QueryValue]] = None,
        *,
        api_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        """GET an arbitrary relative path under the chain's API base."""
        url = self.build_url(chain, path, query, api_key=api_key)
        return await self._fetch(url)
