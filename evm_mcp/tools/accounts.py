"""Account state tools: native balance and deployed code."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from evm_mcp.chains import RpcNotConfiguredError, UnsupportedChainError
from evm_mcp.config import DEFAULT_CHAIN, EvmConfig, default_config
from evm_mcp.upstream import RpcClientCache, default_routescan, default_rpc_clients
from evm_mcp.upstream.errors import UpstreamError
from evm_mcp.tools.common import connect, rpc_info, with_cross_check
from evm_mcp.tools.formatting import format_units, hex_to_int
from evm_mcp.tools.validators import is_valid_address

logger = logging.getLogger(__name__)

INVALID_ADDRESS = "Invalid Ethereum address format"


async def get_balance(
    address: str,
    *,
    chain: Optional[str] = DEFAULT_CHAIN,
    client: Any = None,
    explorer=default_routescan,
    rpc_clients: RpcClientCache = default_rpc_clients,
    config: EvmConfig = default_config,
) -> Dict[str, Any]:
    """
    Native balance of an address, cross-checked against the explorer.

    Args:
        address: 0x-prefixed account address.
        chain: Supported chain key.
        client: JSON-RPC client (override for testing).

    Returns:
        Balance in wei and in native units, or an error dict.
    """
    if not is_valid_address(address):
        return {"error": INVALID_ADDRESS}
    try:
        chain_cfg, rpc = connect(chain, client=client, rpc_clients=rpc_clients)
    except (UnsupportedChainError, RpcNotConfiguredError) as exc:
        return {"error": str(exc)}

    try:
        raw_balance, routescan = await with_cross_check(
            rpc.get_balance(address),
            explorer.etherscan(chain_cfg, "account", "balance", {"address": address, "tag": "latest"}),
        )
        balance_wei = hex_to_int(raw_balance) or 0
    except (UpstreamError, ValueError) as exc:
        return {"error": f"Failed to get balance: {exc}"}
    except Exception:
        logger.exception("Unexpected error fetching balance for %s", address)
        return {"error": "Unexpected error while retrieving balance."}

    return {
        "address": address,
        "chain": chain_cfg.name,
        "balanceWei": str(balance_wei),
        "balanceFormatted": f"{format_units(balance_wei, chain_cfg.decimals)} {chain_cfg.symbol}",
        "symbol": chain_cfg.symbol,
        "decimals": chain_cfg.decimals,
        "rpc": rpc_info(rpc, config),
        "routescan": routescan,
    }


async def get_code(
    address: str,
    *,
    chain: Optional[str] = DEFAULT_CHAIN,
    client: Any = None,
    explorer=default_routescan,
    rpc_clients: RpcClientCache = default_rpc_clients,
    config: EvmConfig = default_config,
) -> Dict[str, Any]:
    """Deployed bytecode at an address; empty code means an externally owned account."""
    if not is_valid_address(address):
        return {"error": INVALID_ADDRESS}
    try:
        chain_cfg, rpc = connect(chain, client=client, rpc_clients=rpc_clients)
    except (UnsupportedChainError, RpcNotConfiguredError) as exc:
        return {"error": str(exc)}

    try:
        code, routescan = await with_cross_check(
            rpc.get_code(address),
            explorer.etherscan(chain_cfg, "contract", "getsourcecode", {"address": address}),
        )
    except UpstreamError as exc:
        return {"error": f"Failed to get code: {exc}"}
    except Exception:
        logger.exception("Unexpected error fetching code for %s", address)
        return {"error": "Unexpected error while retrieving code."}

    bytecode = code if isinstance(code, str) and code else "0x"
    return {
        "address": address,
        "chain": chain_cfg.name,
        "isContract": bytecode not in ("0x", "0x0"),
        "bytecodeSize": max(len(bytecode) - 2, 0) // 2,
        "bytecode": bytecode,
        "rpc": rpc_info(rpc, config),
        "routescan": routescan,
    }
