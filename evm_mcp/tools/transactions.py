"""Transaction lookup by hash."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional, Tuple

from evm_mcp.chains import ChainConfig, RpcNotConfiguredError, UnsupportedChainError
from evm_mcp.config import DEFAULT_CHAIN, EvmConfig, default_config
from evm_mcp.upstream import RpcClientCache, default_routescan, default_rpc_clients
from evm_mcp.upstream.errors import UpstreamError, UpstreamResponseError
from evm_mcp.tools.common import connect, optional_call, rpc_info, with_cross_check
from evm_mcp.tools.formatting import TX_TYPES, format_units, hex_to_int, quantity_str
from evm_mcp.tools.validators import is_valid_hash

logger = logging.getLogger(__name__)


def receipt_status(receipt: Dict[str, Any]) -> str:
    return "success" if hex_to_int(receipt.get("status")) == 1 else "reverted"


def _format_receipt(receipt: Dict[str, Any]) -> Dict[str, Any]:
    logs = receipt.get("logs") or []
    return {
        "status": receipt_status(receipt),
        "gasUsed": quantity_str(receipt.get("gasUsed")),
        "effectiveGasPrice": quantity_str(receipt.get("effectiveGasPrice")),
        "cumulativeGasUsed": quantity_str(receipt.get("cumulativeGasUsed")),
        "logsBloom": receipt.get("logsBloom"),
        "logs": [
            {
                "address": log.get("address"),
                "topics": log.get("topics") or [],
                "data": log.get("data"),
                "logIndex": hex_to_int(log.get("logIndex")),
            }
            for log in logs
            if isinstance(log, dict)
        ],
        "contractAddress": receipt.get("contractAddress"),
        "type": TX_TYPES.get(receipt.get("type"), receipt.get("type")),
    }


def _format_transaction(tx: Dict[str, Any], chain_cfg: ChainConfig) -> Dict[str, Any]:
    value = hex_to_int(tx.get("value")) or 0
    return {
        "chain": chain_cfg.name,
        "hash": tx.get("hash"),
        "from": tx.get("from"),
        "to": tx.get("to"),
        "value": str(value),
        "valueFormatted": f"{format_units(value, chain_cfg.decimals)} {chain_cfg.symbol}",
        "gas": quantity_str(tx.get("gas")),
        "gasPrice": quantity_str(tx.get("gasPrice")),
        "maxFeePerGas": quantity_str(tx.get("maxFeePerGas")),
        "maxPriorityFeePerGas": quantity_str(tx.get("maxPriorityFeePerGas")),
        "nonce": hex_to_int(tx.get("nonce")),
        "data": tx.get("input"),
        "blockNumber": quantity_str(tx.get("blockNumber")),
        "blockHash": tx.get("blockHash"),
        "transactionIndex": hex_to_int(tx.get("transactionIndex")),
        "type": TX_TYPES.get(tx.get("type"), tx.get("type")),
    }


async def _fetch_with_receipt(rpc: Any, tx_hash: str) -> Tuple[Dict[str, Any], Optional[Dict[str, Any]]]:
    # A receipt that cannot be fetched is treated as "not yet mined".
    tx, receipt = await asyncio.gather(
        rpc.get_transaction(tx_hash),
        optional_call(rpc.get_transaction_receipt(tx_hash)),
    )
    if not isinstance(tx, dict):
        raise UpstreamResponseError(f"Transaction {tx_hash} not found")
    return tx, receipt if isinstance(receipt, dict) else None


async def get_transaction(
    tx_hash: str,
    *,
    chain: Optional[str] = DEFAULT_CHAIN,
    client: Any = None,
    explorer=default_routescan,
    rpc_clients: RpcClientCache = default_rpc_clients,
    config: EvmConfig = default_config,
) -> Dict[str, Any]:
    """
    Transaction details and, once mined, its receipt.

    ``status`` is ``pending`` while no receipt exists, otherwise ``success`` or
    ``failed`` from the receipt status.
    """
    if not is_valid_hash(tx_hash):
        return {"error": "Invalid transaction hash format"}
    try:
        chain_cfg, rpc = connect(chain, client=client, rpc_clients=rpc_clients)
    except (UnsupportedChainError, RpcNotConfiguredError) as exc:
        return {"error": str(exc)}

    try:
        (tx, receipt), routescan = await with_cross_check(
            _fetch_with_receipt(rpc, tx_hash),
            explorer.etherscan(chain_cfg, "proxy", "eth_getTransactionByHash", {"txhash": tx_hash}),
        )
        result = _format_transaction(tx, chain_cfg)
        if receipt is None:
            result["status"] = "pending"
        else:
            formatted_receipt = _format_receipt(receipt)
            result["status"] = "success" if formatted_receipt["status"] == "success" else "failed"
            result["receipt"] = formatted_receipt
    except (UpstreamError, ValueError) as exc:
        return {"error": f"Failed to get transaction: {exc}"}
    except Exception:
        logger.exception("Unexpected error fetching transaction %s", tx_hash)
        return {"error": "Unexpected error while retrieving transaction."}

    result["rpc"] = rpc_info(rpc, config)
    result["routescan"] = routescan
    return result
