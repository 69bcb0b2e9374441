"""Chain head and fee tools."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from eth_utils import to_hex

from evm_mcp.chains import RpcNotConfiguredError, UnsupportedChainError
from evm_mcp.config import DEFAULT_CHAIN, EvmConfig, default_config
from evm_mcp.kb.indexer import utc_now_iso
from evm_mcp.upstream import RpcClientCache, default_routescan, default_rpc_clients
from evm_mcp.upstream.errors import UpstreamError, UpstreamResponseError
from evm_mcp.tools.common import connect, rpc_info, with_cross_check
from evm_mcp.tools.formatting import format_gwei, hex_to_int, iso_timestamp, quantity_str

logger = logging.getLogger(__name__)


async def get_gas_price(
    *,
    chain: Optional[str] = DEFAULT_CHAIN,
    client: Any = None,
    explorer=default_routescan,
    rpc_clients: RpcClientCache = default_rpc_clients,
    config: EvmConfig = default_config,
) -> Dict[str, Any]:
    """Current gas price in wei and Gwei, with the explorer gas oracle."""
    try:
        chain_cfg, rpc = connect(chain, client=client, rpc_clients=rpc_clients)
    except (UnsupportedChainError, RpcNotConfiguredError) as exc:
        return {"error": str(exc)}

    try:
        raw_price, routescan = await with_cross_check(
            rpc.gas_price(),
            explorer.etherscan(chain_cfg, "gastracker", "gasoracle"),
        )
        price_wei = hex_to_int(raw_price) or 0
    except (UpstreamError, ValueError) as exc:
        return {"error": f"Failed to get gas price: {exc}"}
    except Exception:
        logger.exception("Unexpected error fetching gas price on %s", chain_cfg.key)
        return {"error": "Unexpected error while retrieving gas price."}

    return {
        "chain": chain_cfg.name,
        "gasPriceWei": str(price_wei),
        "gasPriceGwei": format_gwei(price_wei),
        "timestamp": utc_now_iso(),
        "rpc": rpc_info(rpc, config),
        "routescan": routescan,
    }


async def _latest_block(rpc: Any) -> Dict[str, Any]:
    number = hex_to_int(await rpc.block_number())
    if number is None:
        raise UpstreamResponseError("RPC node returned no block number")
    block = await rpc.get_block_by_number(to_hex(number))
    if not isinstance(block, dict):
        raise UpstreamResponseError(f"Block {number} not found")
    block["_number"] = number
    return block


async def get_block_number(
    *,
    chain: Optional[str] = DEFAULT_CHAIN,
    client: Any = None,
    explorer=default_routescan,
    rpc_clients: RpcClientCache = default_rpc_clients,
    config: EvmConfig = default_config,
) -> Dict[str, Any]:
    """Latest block number plus a summary of that block."""
    try:
        chain_cfg, rpc = connect(chain, client=client, rpc_clients=rpc_clients)
    except (UnsupportedChainError, RpcNotConfiguredError) as exc:
        return {"error": str(exc)}

    try:
        block, routescan = await with_cross_check(
            _latest_block(rpc),
            explorer.etherscan(chain_cfg, "proxy", "eth_blockNumber"),
        )
        timestamp = hex_to_int(block.get("timestamp")) or 0
        summary = {
            "chain": chain_cfg.name,
            "blockNumber": str(block["_number"]),
            "blockHash": block.get("hash"),
            "timestamp": iso_timestamp(timestamp),
            "timestampUnix": str(timestamp),
            "gasLimit": quantity_str(block.get("gasLimit")),
            "gasUsed": quantity_str(block.get("gasUsed")),
            "baseFeePerGas": quantity_str(block.get("baseFeePerGas")),
            "difficulty": quantity_str(block.get("difficulty")),
            "totalDifficulty": quantity_str(block.get("totalDifficulty")),
            "size": quantity_str(block.get("size")),
            "transactionCount": len(block.get("transactions") or []),
        }
    except (UpstreamError, ValueError) as exc:
        return {"error": f"Failed to get block number: {exc}"}
    except Exception:
        logger.exception("Unexpected error fetching latest block on %s", chain_cfg.key)
        return {"error": "Unexpected error while retrieving block data."}

    summary["rpc"] = rpc_info(rpc, config)
    summary["routescan"] = routescan
    return summary
