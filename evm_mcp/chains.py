"""Supported chains and endpoint helpers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from evm_mcp.config import EvmConfig, default_config


class UnsupportedChainError(ValueError):
    """Raised when a chain key is not in the supported table."""


class RpcNotConfiguredError(RuntimeError):
    """Raised when no RPC URL can be built for a chain."""


@dataclass(slots=True, frozen=True)
class ChainConfig:
    key: str
    name: str
    symbol: str
    decimals: int
    chain_id: int
    # QuickNode network segment; None means the bare endpoint host (Ethereum mainnet).
    network: Optional[str]
    routescan_network: str = "mainnet"


CHAINS: Dict[str, ChainConfig] = {
    "plasma": ChainConfig(
        key="plasma",
        name="Plasma",
        symbol="XPL",
        decimals=18,
        chain_id=9745,
        network="plasma-mainnet",
    ),
    "ethereum": ChainConfig(
        key="ethereum",
        name="Ethereum",
        symbol="ETH",
        decimals=18,
        chain_id=1,
        network=None,
    ),
}

# Public explorer front-ends, exposed as an MCP resource.
BLOCK_EXPLORERS: Dict[str, str] = {
    "ethereum": "https://etherscan.io",
    "plasma": "https://plasmascan.to",
}


def get_supported_chains() -> List[str]:
    return list(CHAINS.keys())


def unsupported_chain_message() -> str:
    return f"Unsupported chain. Use one of: {', '.join(get_supported_chains())}"


def get_chain(chain: Optional[str]) -> ChainConfig:
    """Look up a chain by key, raising UnsupportedChainError for unknown keys."""
    if not isinstance(chain, str) or chain not in CHAINS:
        raise UnsupportedChainError(unsupported_chain_message())
    return CHAINS[chain]


def build_rpc_url(chain: ChainConfig, config: EvmConfig = default_config) -> str:
    """
    Resolve the JSON-RPC URL for a chain.

    An explicit override wins; otherwise the QuickNode URL is assembled from the
    endpoint name and token id.
    """
    override = config.rpc_overrides.get(chain.key)
    if override:
        return override
    if not config.qn_endpoint_name or not config.qn_token_id:
        raise RpcNotConfiguredError("RPC endpoint not configured")
    host = config.qn_endpoint_name
    if chain.network:
        host = f"{host}.{chain.network}"
    return f"https://{host}.quiknode.pro/{config.qn_token_id}/"


def public_rpc_endpoint(url: str, config: EvmConfig = default_config) -> str:
    """RPC URL as shown to callers, with the QuickNode token masked."""
    if config.qn_token_id and config.qn_token_id in url:
        return url.replace(config.qn_token_id, "***")
    return url


def routescan_base(chain: ChainConfig, config: EvmConfig = default_config) -> str:
    base = config.routescan_url.rstrip("/")
    return f"{base}/{chain.routescan_network}/evm/{chain.chain_id}"


def supported_chains_summary() -> Dict[str, Dict[str, Any]]:
    return {
        key: {
            "network": chain.network or "mainnet",
            "name": chain.name,
            "symbol": chain.symbol,
            "decimals": chain.decimals,
            "chainId": chain.chain_id,
        }
        for key, chain in CHAINS.items()
    }
