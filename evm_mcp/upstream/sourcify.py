"""HTTP client for the Sourcify contract verification backend."""

from __future__ import annotations

import logging
from typing import Any, List, Optional, Tuple

import httpx

from evm_mcp.config import EvmConfig, default_config
from evm_mcp.metrics import default_metrics
from evm_mcp.upstream.errors import UpstreamHTTPError, UpstreamUnreachableError

logger = logging.getLogger(__name__)

# (field name, (filename, content, content type)) as accepted by httpx ``files=``
UploadFile = Tuple[str, Tuple[str, bytes, str]]


class SourcifyClient:
    def __init__(
        self,
        config: EvmConfig | None = None,
        *,
        async_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.config = config or default_config
        self._client: Optional[httpx.AsyncClient] = async_client
        self._owns_client = async_client is None

    @property
    def base_url(self) -> str:
        return self.config.sourcify_url.rstrip("/")

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.config.timeout)
            self._owns_client = True
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            if response.status_code >= 400:
                default_metrics.record_upstream("sourcify", success=False)
                raise UpstreamHTTPError(
                    f"Sourcify HTTP error {response.status_code}",
                    status_code=response.status_code,
                )
            # Sourcify answers some requests with an empty body.
            return {}

    async def verify(
        self,
        *,
        address: str,
        chain_id: int,
        files: List[UploadFile],
    ) -> Any:
        """Submit metadata and sources for verification."""
        data = {"address": address, "chain": str(chain_id)}
        client = await self._get_client()
        try:
            response = await client.post(f"{self.base_url}/verify", data=data, files=files)
        except httpx.RequestError as exc:
            logger.warning("Sourcify unreachable for verify of %s", address)
            default_metrics.record_upstream("sourcify", success=False)
            raise UpstreamUnreachableError("Sourcify unreachable") from exc
        result = self._decode(response)
        default_metrics.record_upstream("sourcify", success=response.status_code < 400)
        return result

    async def check_all_by_addresses(self, *, address: str, chain_id: int) -> Any:
        """Return the verification status of an address on a chain."""
        client = await self._get_client()
        try:
            response = await client.get(
                f"{self.base_url}/check-all-by-addresses",
                params={"addresses": address, "chainIds": str(chain_id)},
            )
        except httpx.RequestError as exc:
            logger.warning("Sourcify unreachable for status of %s", address)
            default_metrics.record_upstream("sourcify", success=False)
            raise UpstreamUnreachableError("Sourcify unreachable") from exc
        result = self._decode(response)
        default_metrics.record_upstream("sourcify", success=response.status_code < 400)
        return result
