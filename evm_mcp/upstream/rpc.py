"""
Thin JSON-RPC client for EVM nodes.

Each method maps to one ``eth_*`` call and returns the raw ``result`` field.
Transport and protocol failures are raised as ``UpstreamError`` subclasses
that the tool layer turns into inline error messages.
"""

from __future__ import annotations

import itertools
import logging
from typing import Any, Dict, List, Optional

import httpx

from evm_mcp.chains import ChainConfig, build_rpc_url
from evm_mcp.config import EvmConfig, default_config
from evm_mcp.metrics import default_metrics
from evm_mcp.upstream.errors import (
    RpcError,
    UpstreamHTTPError,
    UpstreamResponseError,
    UpstreamUnreachableError,
)

logger = logging.getLogger(__name__)


class JsonRpcClient:
    """Async JSON-RPC 2.0 client bound to a single node URL."""

    def __init__(
        self,
        url: str,
        *,
        timeout: float = default_config.timeout,
        async_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self._client: Optional[httpx.AsyncClient] = async_client
        self._owns_client = async_client is None
        self._ids = itertools.count(1)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
            self._owns_client = True
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def request(self, method: str, params: Optional[List[Any]] = None) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params or [],
        }
        client = await self._get_client()
        try:
            response = await client.post(self.url, json=payload)
        except httpx.RequestError as exc:
            logger.warning("RPC node unreachable for method %s", method)
            default_metrics.record_upstream("rpc", success=False)
            raise UpstreamUnreachableError("RPC node unreachable") from exc

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.status_code >= 400 and not isinstance(body, dict):
            default_metrics.record_upstream("rpc", success=False)
            raise UpstreamHTTPError(
                f"RPC HTTP error {response.status_code}", status_code=response.status_code
            )
        if not isinstance(body, dict):
            default_metrics.record_upstream("rpc", success=False)
            raise UpstreamResponseError(
                "Unexpected response from RPC node.", status_code=response.status_code
            )

        error = body.get("error")
        if error:
            default_metrics.record_upstream("rpc", success=False)
            if isinstance(error, dict):
                raise RpcError(
                    str(error.get("message") or "RPC error"),
                    code=error.get("code"),
                    status_code=response.status_code,
                )
            raise RpcError(str(error), status_code=response.status_code)

        default_metrics.record_upstream("rpc", success=True)
        return body.get("result")

    async def get_balance(self, address: str, block: str = "latest") -> Any:
        return await self.request("eth_getBalance", [address, block])

    async def get_code(self, address: str, block: str = "latest") -> Any:
        return await self.request("eth_getCode", [address, block])

    async def gas_price(self) -> Any:
        return await self.request("eth_gasPrice")

    async def max_priority_fee(self) -> Any:
        return await self.request("eth_maxPriorityFeePerGas")

    async def get_logs(self, log_filter: Dict[str, Any]) -> Any:
        return await self.request("eth_getLogs", [log_filter])

    async def call(self, call_params: Dict[str, Any], block: str = "latest") -> Any:
        return await self.request("eth_call", [call_params, block])

    async def block_number(self) -> Any:
        return await self.request("eth_blockNumber")

    async def get_block_by_number(self, block: str, full_transactions: bool = False) -> Any:
        return await self.request("eth_getBlockByNumber", [block, full_transactions])

    async def get_transaction(self, tx_hash: str) -> Any:
        return await self.request("eth_getTransactionByHash", [tx_hash])

    async def get_transaction_receipt(self, tx_hash: str) -> Any:
        return await self.request("eth_getTransactionReceipt", [tx_hash])

    async def get_storage_at(self, address: str, slot: str, block: str = "latest") -> Any:
        return await self.request("eth_getStorageAt", [address, slot, block])

    async def estimate_gas(self, tx: Dict[str, Any]) -> Any:
        return await self.request("eth_estimateGas", [tx])

    async def get_transaction_count(self, address: str, block: str = "pending") -> Any:
        return await self.request("eth_getTransactionCount", [address, block])

    async def send_raw_transaction(self, raw_tx: str) -> Any:
        return await self.request("eth_sendRawTransaction", [raw_tx])


class RpcClientCache:
    """
    Process-wide mapping of chain key to a live JSON-RPC client.

    Clients are created on first use and kept until ``aclose`` (server
    shutdown); there is no eviction.
    """

    def __init__(self, config: EvmConfig | None = None) -> None:
        self.config = config or default_config
        self._clients: Dict[str, JsonRpcClient] = {}

    def get(self, chain: ChainConfig) -> JsonRpcClient:
        client = self._clients.get(chain.key)
        if client is None:
            url = build_rpc_url(chain, self.config)
            client = JsonRpcClient(url, timeout=self.config.timeout)
            self._clients[chain.key] = client
        return client

    def __contains__(self, chain_key: object) -> bool:
        return chain_key in self._clients

    def __len__(self) -> int:
        return len(self._clients)

    async def aclose(self) -> None:
        for client in self._clients.values():
            await client.aclose()
        self._clients.clear()
