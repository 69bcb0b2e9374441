"""
JSON-RPC tool surface for MCP clients.

Maps MCP tool names to the implementations in ``evm_mcp.tools``. Argument
names are snake_case; camelCase spellings are accepted and converted before
dispatch. Caller must handle authentication to the HTTP server hosting this
adapter.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

from evm_mcp.chains import get_supported_chains
from evm_mcp.config import DEFAULT_CHAIN, default_config
from evm_mcp.tools import (
    account_multi_token_transfers,
    account_nft_transfers,
    account_token_balance,
    account_token_transfers,
    account_txlist,
    account_txlist_internal,
    call_contract,
    deploy_contract,
    etherscan_query,
    explorer_get,
    get_balance,
    get_block_number,
    get_code,
    get_gas_price,
    get_logs,
    get_transaction,
    inspect_proxy,
    kb_get,
    kb_search,
    kb_status,
    kb_sync_source,
    kb_update_all,
    list_addresses,
    verify_contract,
)
from evm_mcp.tools.validators import TX_HASH_REGEX

logger = logging.getLogger(__name__)

ADDRESS_PATTERN = r"^0x[0-9a-fA-F]{40}$"
HEX_PATTERN = r"^0x[0-9a-fA-F]*$"
TX_HASH_PATTERN = TX_HASH_REGEX.pattern

CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])([A-Z])")
# Names that are Python keywords or too generic for a kwarg.
PARAM_ALIASES = {"from": "from_address", "hash": "tx_hash", "txHash": "tx_hash"}


def _address(description: str = "0x-prefixed address") -> Dict[str, Any]:
    return {"type": "string", "description": description, "pattern": ADDRESS_PATTERN}


def _chain() -> Dict[str, Any]:
    return {
        "type": "string",
        "enum": get_supported_chains(),
        "description": f"Chain key (default {DEFAULT_CHAIN})",
    }


def _quantity(description: str) -> Dict[str, Any]:
    return {
        "oneOf": [
            {"type": "string", "pattern": r"^(0x[0-9a-fA-F]+|[0-9]+)$"},
            {"type": "integer", "minimum": 0},
        ],
        "description": description,
    }


def _block(description: str) -> Dict[str, Any]:
    return {
        "oneOf": [
            {"type": "string", "description": "Block tag or hex number"},
            {"type": "integer", "minimum": 0},
        ],
        "description": description,
    }


def _limit_schema(max_value: int, *, description: str = "Optional max items") -> Dict[str, Any]:
    return {
        "type": "integer",
        "minimum": 1,
        "maximum": max_value,
        "description": f"{description} (1-{max_value})",
    }


def _object(properties: Dict[str, Any], required: Optional[List[str]] = None) -> Dict[str, Any]:
    return {
        "type": "object",
        "properties": properties,
        "required": required or [],
        "additionalProperties": False,
    }


EXPLORER_COMMON: Dict[str, Any] = {
    "format": {"type": "string", "enum": ["raw", "normalized"], "description": "Output format (default raw)"},
    "api_key": {"type": "string", "description": "Routescan API key (optional)"},
    "chain": _chain(),
}

ACCOUNT_RANGE: Dict[str, Any] = {
    "startblock": {"type": "integer", "minimum": 0},
    "endblock": {"type": "integer", "minimum": 0},
    "page": {"type": "integer", "minimum": 1},
    "offset": _limit_schema(default_config.max_account_page_size, description="Rows per page"),
    "sort": {"type": "string", "enum": ["asc", "desc"]},
}

QUERY_VALUES: Dict[str, Any] = {
    "type": "object",
    "additionalProperties": {"type": ["string", "number", "boolean"]},
}


ToolCallable = Callable[..., Awaitable[Any]] | Callable[..., Any]


@dataclass(slots=True)
class ToolDefinition:
    name: str
    description: str
    input_schema: Dict[str, Any]
    callable: ToolCallable


def _tool(name: str, description: str, input_schema: Dict[str, Any], callable: ToolCallable) -> ToolDefinition:
    return ToolDefinition(name=name, description=description, input_schema=input_schema, callable=callable)


_TOOLS: List[ToolDefinition] = [
    _tool(
        "eth_getBalance",
        "Get the native token balance of an address, with a Routescan cross-check.",
        _object({"address": _address(), "chain": _chain()}, ["address"]),
        get_balance,
    ),
    _tool(
        "eth_getCode",
        "Get the bytecode at an address and report whether it is a contract.",
        _object({"address": _address(), "chain": _chain()}, ["address"]),
        get_code,
    ),
    _tool(
        "eth_gasPrice",
        "Get the current gas price in wei and Gwei.",
        _object({"chain": _chain()}),
        get_gas_price,
    ),
    _tool(
        "eth_blockNumber",
        "Get the latest block number with its timestamp and gas usage.",
        _object({"chain": _chain()}),
        get_block_number,
    ),
    _tool(
        "eth_getLogs",
        "Fetch event logs by address, block range or block hash, and topics.",
        _object(
            {
                "address": _address("Emitting contract (optional)"),
                "from_block": _block("Start block (default latest)"),
                "to_block": _block("End block (default latest)"),
                "topics": {
                    "type": "array",
                    "maxItems": 4,
                    "items": {
                        "oneOf": [
                            {"type": "null"},
                            {"type": "string", "pattern": TX_HASH_PATTERN},
                            {"type": "array", "items": {"type": "string", "pattern": TX_HASH_PATTERN}},
                        ]
                    },
                },
                "block_hash": {"type": "string", "pattern": TX_HASH_PATTERN, "description": "Replaces the block range"},
                "chain": _chain(),
            }
        ),
        get_logs,
    ),
    _tool(
        "eth_call",
        "Execute a read-only contract call.",
        _object(
            {
                "to": _address("Contract address"),
                "data": {"type": "string", "pattern": HEX_PATTERN, "description": "ABI-encoded calldata"},
                "from_address": _address("Caller address (optional)"),
                "gas": _quantity("Gas limit (optional)"),
                "gas_price": _quantity("Gas price in wei (optional)"),
                "value": _quantity("Value in wei (optional)"),
                "block": _block("Block tag or number (default latest)"),
                "chain": _chain(),
            },
            ["to", "data"],
        ),
        call_contract,
    ),
    _tool(
        "eth_getTransactionByHash",
        "Get a transaction and its receipt by hash.",
        _object(
            {"tx_hash": {"type": "string", "pattern": TX_HASH_PATTERN}, "chain": _chain()},
            ["tx_hash"],
        ),
        get_transaction,
    ),
    _tool(
        "proxy_inspect",
        "Read EIP-1967 implementation, admin and beacon slots of a contract.",
        _object({"address": _address(), "chain": _chain()}, ["address"]),
        inspect_proxy,
    ),
    _tool(
        "contract_verify",
        "Submit a deployed contract to Sourcify for verification.",
        _object(
            {
                "address": _address(),
                "metadata_json": {"type": "string", "description": "Compiler metadata JSON"},
                "sources": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {"path": {"type": "string"}, "content": {"type": "string"}},
                        "required": ["path", "content"],
                    },
                },
                "chain": _chain(),
            },
            ["address"],
        ),
        verify_contract,
    ),
    _tool(
        "contract_deploy",
        "Deploy a contract with the server's deployer key and wait for the receipt.",
        _object(
            {
                "bytecode": {"type": "string", "pattern": HEX_PATTERN},
                "abi": {"type": "array", "items": {"type": "object"}},
                "args": {"type": "array"},
                "value": _quantity("Value in wei (optional)"),
                "max_fee_per_gas": _quantity("EIP-1559 max fee in wei (optional)"),
                "max_priority_fee_per_gas": _quantity("EIP-1559 priority fee in wei (optional)"),
                "gas": _quantity("Gas limit (optional, estimated when absent)"),
                "nonce": {"type": "integer", "minimum": 0},
                "chain": _chain(),
            },
            ["bytecode", "abi"],
        ),
        deploy_contract,
    ),
    _tool(
        "routescan_addresses",
        "List addresses known to the Routescan explorer.",
        _object(
            {
                "limit": _limit_schema(default_config.max_routescan_addresses),
                "cursor": {"type": "string", "description": "Pagination cursor from a previous page"},
                **EXPLORER_COMMON,
            }
        ),
        list_addresses,
    ),
    _tool(
        "routescan_etherscan",
        "Run an Etherscan-compatible module/action query through Routescan.",
        _object(
            {
                "module": {"type": "string"},
                "action": {"type": "string"},
                "params": QUERY_VALUES,
                **EXPLORER_COMMON,
            },
            ["module", "action"],
        ),
        etherscan_query,
    ),
    _tool(
        "routescan_get",
        "GET any relative Routescan path for the chain.",
        _object(
            {
                "path": {"type": "string", "description": "Relative path without query string"},
                "query": QUERY_VALUES,
                **EXPLORER_COMMON,
            },
            ["path"],
        ),
        explorer_get,
    ),
    _tool(
        "routescan_account_txlist",
        "Normal transactions of an address.",
        _object({"address": _address(), **ACCOUNT_RANGE, **EXPLORER_COMMON}, ["address"]),
        account_txlist,
    ),
    _tool(
        "routescan_account_txlistinternal",
        "Internal transactions of an address.",
        _object({"address": _address(), **ACCOUNT_RANGE, **EXPLORER_COMMON}, ["address"]),
        account_txlist_internal,
    ),
    _tool(
        "routescan_account_tokentx",
        "ERC-20 transfers of an address.",
        _object(
            {"address": _address(), "contract_address": _address("Token contract (optional)"), **ACCOUNT_RANGE, **EXPLORER_COMMON},
            ["address"],
        ),
        account_token_transfers,
    ),
    _tool(
        "routescan_account_tokennfttx",
        "ERC-721 transfers of an address.",
        _object(
            {"address": _address(), "contract_address": _address("Collection contract (optional)"), **ACCOUNT_RANGE, **EXPLORER_COMMON},
            ["address"],
        ),
        account_nft_transfers,
    ),
    _tool(
        "routescan_account_token1155tx",
        "ERC-1155 transfers of an address.",
        _object(
            {
                "address": _address(),
                "contract_address": _address("Token contract (optional)"),
                "token_id": {"type": ["string", "integer"], "description": "Token id filter (optional)"},
                **ACCOUNT_RANGE,
                **EXPLORER_COMMON,
            },
            ["address"],
        ),
        account_multi_token_transfers,
    ),
    _tool(
        "routescan_account_tokenbalance",
        "ERC-20 balance of an address for one token contract.",
        _object(
            {
                "address": _address(),
                "contract_address": _address("Token contract"),
                "tag": {"type": "string", "description": "Block tag (default latest)"},
                "decimals": {"type": "integer", "minimum": 0, "maximum": 36},
                **EXPLORER_COMMON,
            },
            ["address", "contract_address"],
        ),
        account_token_balance,
    ),
    _tool(
        "kb_sync_source",
        "Index a local directory or ZIP archive into the knowledge base.",
        _object(
            {
                "source_id": {"type": "string", "description": "Source id (derived when absent)"},
                "local_dir": {"type": "string"},
                "zip_url": {"type": "string"},
                "zip_base64": {"type": "string"},
                "zip_path_prefix": {"type": "string"},
                "include_exts": {"type": "array", "items": {"type": "string"}},
                "tags": {"type": "array", "items": {"type": "string"}},
                "max_files": {"type": "integer", "minimum": 1},
            }
        ),
        kb_sync_source,
    ),
    _tool(
        "kb_search",
        "Keyword search over indexed knowledge base chunks.",
        _object(
            {
                "query": {"type": "string", "minLength": 1},
                "top_k": _limit_schema(default_config.max_kb_results, description="Max results"),
                "source_ids": {"type": "array", "items": {"type": "string"}},
                "path_prefix": {"type": "string"},
            },
            ["query"],
        ),
        kb_search,
    ),
    _tool(
        "kb_get",
        "Fetch a chunk by id, or a file by source id and path.",
        _object(
            {
                "chunk_id": {"type": "string"},
                "source_id": {"type": "string"},
                "path": {"type": "string"},
                "include_text": {"type": "boolean"},
            }
        ),
        kb_get,
    ),
    _tool(
        "kb_status",
        "List knowledge base sources with file and chunk counts.",
        _object({}),
        kb_status,
    ),
    _tool(
        "kb_update_all",
        "Re-sync every registered knowledge base source.",
        _object({}),
        kb_update_all,
    ),
]

TOOL_REGISTRY: Dict[str, ToolDefinition] = {tool.name: tool for tool in _TOOLS}


def list_tools() -> List[Dict[str, Any]]:
    """Return a simple list of available tools."""
    return [
        {
            "name": tool.name,
            "description": tool.description,
            "inputSchema": tool.input_schema,
        }
        for tool in TOOL_REGISTRY.values()
    ]


def _to_snake(key: str) -> str:
    return CAMEL_BOUNDARY.sub(lambda match: "_" + match.group(1).lower(), key)


def normalize_params(tool: ToolDefinition, params: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Map argument names onto schema properties; None when any name is unknown."""
    allowed = tool.input_schema.get("properties", {})
    normalized: Dict[str, Any] = {}
    for key, value in params.items():
        name = key if key in allowed else PARAM_ALIASES.get(key) or _to_snake(key)
        if name not in allowed:
            return None
        normalized[name] = value
    return normalized


async def call_tool(tool_name: str, params: Optional[Dict[str, Any]] = None) -> Any:
    """Dispatch to a tool by name."""
    params = params or {}
    tool = TOOL_REGISTRY.get(tool_name)
    if tool is None:
        return {"error": f"Unknown tool: {tool_name}"}

    # Only schema arguments reach the callable; client and config overrides stay internal.
    kwargs = normalize_params(tool, params)
    if kwargs is None:
        return {"error": "Invalid parameters."}
    try:
        result = tool.callable(**kwargs)
        if isinstance(result, Awaitable):
            return await result  # type: ignore[return-value]
        return result
    except TypeError:
        return {"error": "Invalid parameters."}
    except Exception:
        logger.exception("Unexpected error calling tool", extra={"tool": tool_name})
        return {"error": "Unexpected error while calling tool."}
