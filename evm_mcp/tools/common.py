"""Plumbing shared by the chain and explorer tools."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Dict, Optional, Tuple

from evm_mcp.chains import ChainConfig, get_chain, public_rpc_endpoint
from evm_mcp.config import EvmConfig
from evm_mcp.upstream import RpcClientCache
from evm_mcp.upstream.errors import UpstreamError

logger = logging.getLogger(__name__)


def connect(
    chain: Optional[str],
    *,
    client: Any = None,
    rpc_clients: RpcClientCache,
) -> Tuple[ChainConfig, Any]:
    """
    Resolve the chain and its JSON-RPC client.

    Raises UnsupportedChainError or RpcNotConfiguredError; an explicit
    ``client`` bypasses the shared cache.
    """
    chain_cfg = get_chain(chain)
    rpc = client if client is not None else rpc_clients.get(chain_cfg)
    return chain_cfg, rpc


def rpc_info(rpc: Any, config: EvmConfig) -> Dict[str, Optional[str]]:
    url = getattr(rpc, "url", None)
    return {"endpoint": public_rpc_endpoint(url, config) if url else None}


async def cross_check(call: Awaitable[Dict[str, Any]]) -> Dict[str, Any]:
    """Await an explorer call; failures are reported inline instead of raised."""
    try:
        return await call
    except UpstreamError as exc:
        logger.info("Explorer cross-check failed", extra={"error": str(exc)})
        return {"endpoint": None, "result": {"error": str(exc)}}


async def with_cross_check(
    primary: Awaitable[Any],
    explorer_call: Awaitable[Dict[str, Any]],
) -> Tuple[Any, Dict[str, Any]]:
    """Run the primary call and the explorer cross-check concurrently, waiting for both."""
    result, routescan = await asyncio.gather(
        primary, cross_check(explorer_call), return_exceptions=True
    )
    if isinstance(result, BaseException):
        raise result
    if isinstance(routescan, BaseException):
        raise routescan
    return result, routescan


async def optional_call(call: Awaitable[Any]) -> Any:
    """Await an upstream call, mapping upstream failures to None."""
    try:
        return await call
    except UpstreamError:
        return None
