"""Event log queries."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Union

from evm_mcp.chains import RpcNotConfiguredError, UnsupportedChainError
from evm_mcp.config import DEFAULT_CHAIN, EvmConfig, default_config
from evm_mcp.upstream import RpcClientCache, default_routescan, default_rpc_clients
from evm_mcp.upstream.errors import UpstreamError
from evm_mcp.tools.common import connect, rpc_info, with_cross_check
from evm_mcp.tools.formatting import hex_to_int, quantity_str
from evm_mcp.tools.validators import is_valid_address, is_valid_hash, normalize_block

logger = logging.getLogger(__name__)

BlockParam = Union[str, int]
Topic = Optional[Union[str, List[str]]]


def _valid_topics(topics: Any) -> bool:
    if not isinstance(topics, list):
        return False
    for topic in topics:
        if topic is None or is_valid_hash(topic):
            continue
        if isinstance(topic, list) and topic and all(is_valid_hash(item) for item in topic):
            continue
        return False
    return True


def _explorer_params(
    address: Optional[str],
    from_block: BlockParam,
    to_block: BlockParam,
    topics: Optional[List[Topic]],
    block_hash: Optional[str],
) -> Dict[str, Any]:
    params: Dict[str, Any] = {"fromBlock": from_block, "toBlock": to_block}
    if address:
        params["address"] = address
    # The explorer takes positional topics as topic0..topicN; alternatives are comma-joined.
    for index, topic in enumerate(topics or []):
        if isinstance(topic, str):
            params[f"topic{index}"] = topic
        elif isinstance(topic, list):
            params[f"topic{index}"] = ",".join(topic)
    if block_hash:
        params["blockhash"] = block_hash
    return params


def _format_log(log: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "address": log.get("address"),
        "topics": log.get("topics") or [],
        "data": log.get("data"),
        "blockNumber": quantity_str(log.get("blockNumber")),
        "blockHash": log.get("blockHash"),
        "transactionHash": log.get("transactionHash"),
        "transactionIndex": hex_to_int(log.get("transactionIndex")),
        "logIndex": hex_to_int(log.get("logIndex")),
        "removed": bool(log.get("removed", False)),
    }


async def get_logs(
    *,
    address: Optional[str] = None,
    from_block: BlockParam = "latest",
    to_block: BlockParam = "latest",
    topics: Optional[List[Topic]] = None,
    block_hash: Optional[str] = None,
    chain: Optional[str] = DEFAULT_CHAIN,
    client: Any = None,
    explorer=default_routescan,
    rpc_clients: RpcClientCache = default_rpc_clients,
    config: EvmConfig = default_config,
) -> Dict[str, Any]:
    """
    Event logs matching a filter.

    Block bounds accept a tag, a non-negative integer or a hex number. When
    ``block_hash`` is given it replaces the block range.
    """
    if address is not None and not is_valid_address(address):
        return {"error": "Invalid Ethereum address format"}
    rpc_from = normalize_block(from_block)
    rpc_to = normalize_block(to_block)
    if rpc_from is None or rpc_to is None:
        return {"error": "Invalid block parameter; use a block tag, integer or hex number."}
    if topics is not None and not _valid_topics(topics):
        return {"error": "Invalid topics; each entry must be a 32-byte hex string, null or a list of them."}
    if block_hash is not None and not is_valid_hash(block_hash):
        return {"error": "Invalid block hash format"}
    try:
        chain_cfg, rpc = connect(chain, client=client, rpc_clients=rpc_clients)
    except (UnsupportedChainError, RpcNotConfiguredError) as exc:
        return {"error": str(exc)}

    log_filter: Dict[str, Any] = {}
    if address:
        log_filter["address"] = address
    if block_hash:
        log_filter["blockHash"] = block_hash
    else:
        log_filter["fromBlock"] = rpc_from
        log_filter["toBlock"] = rpc_to
    if topics:
        log_filter["topics"] = topics

    try:
        raw_logs, routescan = await with_cross_check(
            rpc.get_logs(log_filter),
            explorer.etherscan(
                chain_cfg,
                "logs",
                "getLogs",
                _explorer_params(address, from_block, to_block, topics, block_hash),
            ),
        )
        logs = [_format_log(log) for log in raw_logs or [] if isinstance(log, dict)]
    except (UpstreamError, ValueError) as exc:
        return {"error": f"Failed to get logs: {exc}"}
    except Exception:
        logger.exception("Unexpected error fetching logs on %s", chain_cfg.key)
        return {"error": "Unexpected error while retrieving logs."}

    return {
        "chain": chain_cfg.name,
        "filter": {
            "address": address,
            "fromBlock": str(from_block),
            "toBlock": str(to_block),
            "topics": topics,
            "blockHash": block_hash,
        },
        "logsCount": len(logs),
        "logs": logs,
        "rpc": rpc_info(rpc, config),
        "routescan": routescan,
    }
