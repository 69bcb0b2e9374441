"""Routescan explorer tools: generic queries and typed account actions."""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional, Union

from evm_mcp.chains import ChainConfig, UnsupportedChainError, get_chain
from evm_mcp.config import DEFAULT_CHAIN, EvmConfig, default_config
from evm_mcp.upstream import default_routescan
from evm_mcp.upstream.errors import UpstreamError
from evm_mcp.tools.formatting import ROW_NORMALIZERS, normalize_rows, normalize_token_balance
from evm_mcp.tools.validators import (
    EXPLORER_PATH_REGEX,
    OUTPUT_FORMATS,
    SORT_ORDERS,
    clamp_limit,
    is_int_in_range,
    is_valid_address,
)

logger = logging.getLogger(__name__)

DEFAULT_START_BLOCK = 0
DEFAULT_END_BLOCK = 99999999

QueryValue = Union[str, int, float, bool]


def _check_common(chain: Optional[str], fmt: str, api_key: Optional[str]) -> ChainConfig:
    if fmt not in OUTPUT_FORMATS:
        raise ValueError("format must be 'raw' or 'normalized'")
    if api_key is not None and not isinstance(api_key, str):
        raise ValueError("apiKey must be a string")
    return get_chain(chain)


def _valid_query(values: Any) -> bool:
    if values is None:
        return True
    if not isinstance(values, Mapping):
        return False
    return all(
        isinstance(key, str) and isinstance(value, (str, int, float, bool))
        for key, value in values.items()
    )


async def list_addresses(
    *,
    limit: Optional[int] = None,
    cursor: Optional[str] = None,
    format: str = "raw",
    api_key: Optional[str] = None,
    chain: Optional[str] = DEFAULT_CHAIN,
    client=default_routescan,
    config: EvmConfig = default_config,
) -> Dict[str, Any]:
    """Page through addresses known to the explorer."""
    try:
        chain_cfg = _check_common(chain, format, api_key)
    except (UnsupportedChainError, ValueError) as exc:
        return {"error": str(exc)}
    effective_limit = clamp_limit(
        limit,
        default=config.default_routescan_addresses,
        max_value=config.max_routescan_addresses,
    )
    query: Dict[str, QueryValue] = {"limit": effective_limit}
    if cursor:
        query["cursor"] = cursor

    try:
        response = await client.get(chain_cfg, "addresses", query, api_key=api_key)
    except UpstreamError as exc:
        return {"error": f"Routescan request failed: {exc}"}
    except Exception:
        logger.exception("Unexpected error listing explorer addresses")
        return {"error": "Unexpected error while querying Routescan."}

    payload = response["result"]
    if format == "normalized":
        raw_items = payload.get("items") if isinstance(payload, dict) else None
        items = [
            {
                "address": item.get("address") or item.get("addr"),
                "firstSeen": item.get("firstSeen"),
                "lastSeen": item.get("lastSeen"),
            }
            for item in (raw_items if isinstance(raw_items, list) else [])
            if isinstance(item, dict)
        ]
        return {
            "chain": chain_cfg.key,
            "endpoint": response["endpoint"],
            "format": format,
            "count": len(items),
            "items": items,
            "raw": payload,
        }
    return {
        "chain": chain_cfg.key,
        "endpoint": response["endpoint"],
        "limit": effective_limit,
        "cursor": cursor or None,
        "result": payload,
        "format": format,
    }


async def etherscan_query(
    module: str,
    action: str,
    *,
    params: Optional[Dict[str, QueryValue]] = None,
    format: str = "raw",
    api_key: Optional[str] = None,
    chain: Optional[str] = DEFAULT_CHAIN,
    client=default_routescan,
) -> Dict[str, Any]:
    """
    Generic Etherscan-compatible query.

    With ``format="normalized"`` the account actions txlist, txlistinternal,
    tokentx, tokennfttx, token1155tx and tokenbalance are normalized when
    ``params`` carries an ``address``; anything else is returned raw.
    """
    if not isinstance(module, str) or not module or not isinstance(action, str) or not action:
        return {"error": "module and action are required"}
    if not _valid_query(params):
        return {"error": "params must map names to string, number or boolean values"}
    try:
        chain_cfg = _check_common(chain, format, api_key)
    except (UnsupportedChainError, ValueError) as exc:
        return {"error": str(exc)}
    extra = dict(params or {})

    try:
        response = await client.etherscan(chain_cfg, module, action, extra, api_key=api_key)
    except UpstreamError as exc:
        return {"error": f"Routescan request failed: {exc}"}
    except Exception:
        logger.exception("Unexpected error querying explorer %s/%s", module, action)
        return {"error": "Unexpected error while querying Routescan."}

    payload = response["result"]
    base = {
        "chain": chain_cfg.key,
        "endpoint": response["endpoint"],
        "module": module,
        "action": action,
        "params": extra,
        "format": format,
    }
    address = extra.get("address")
    if format == "normalized" and module == "account" and isinstance(address, str):
        if action in ROW_NORMALIZERS:
            items = normalize_rows(action, payload, address)
            return {**base, "count": len(items), "items": items, "raw": payload}
        if action == "tokenbalance":
            decimals = extra.get("decimals")
            if isinstance(decimals, bool) or not isinstance(decimals, int):
                decimals = None
            return {**base, "balance": normalize_token_balance(payload, decimals), "rawResult": payload}
    return {**base, "result": payload}


async def explorer_get(
    path: str,
    *,
    query: Optional[Dict[str, QueryValue]] = None,
    format: str = "raw",
    api_key: Optional[str] = None,
    chain: Optional[str] = DEFAULT_CHAIN,
    client=default_routescan,
) -> Dict[str, Any]:
    """GET a relative path under the chain's explorer API base."""
    if not isinstance(path, str) or not EXPLORER_PATH_REGEX.fullmatch(path):
        return {"error": "Path must be a relative path without query string"}
    if not _valid_query(query):
        return {"error": "query must map names to string, number or boolean values"}
    try:
        chain_cfg = _check_common(chain, format, api_key)
    except (UnsupportedChainError, ValueError) as exc:
        return {"error": str(exc)}

    try:
        response = await client.get(chain_cfg, path, dict(query or {}), api_key=api_key)
    except UpstreamError as exc:
        return {"error": f"Routescan request failed: {exc}"}
    except Exception:
        logger.exception("Unexpected error fetching explorer path %s", path)
        return {"error": "Unexpected error while querying Routescan."}

    result = {
        "chain": chain_cfg.key,
        "endpoint": response["endpoint"],
        "result": response["result"],
        "format": format,
    }
    if format == "normalized" and path.lstrip("/").startswith("etherscan"):
        result["note"] = "For normalization, prefer routescan_etherscan with module/action."
    return result


def _range_query(
    address: str,
    *,
    startblock: int,
    endblock: int,
    page: int,
    offset: Optional[int],
    sort: str,
    config: EvmConfig,
) -> Dict[str, QueryValue]:
    if not is_valid_address(address):
        raise ValueError("Invalid address")
    if not is_int_in_range(startblock, minimum=0) or not is_int_in_range(endblock, minimum=0):
        raise ValueError("startblock and endblock must be non-negative integers")
    if not is_int_in_range(page, minimum=1):
        raise ValueError("page must be a positive integer")
    if sort not in SORT_ORDERS:
        raise ValueError("sort must be 'asc' or 'desc'")
    return {
        "address": address,
        "startblock": startblock,
        "endblock": endblock,
        "page": page,
        "offset": clamp_limit(
            offset,
            default=config.default_account_page_size,
            max_value=config.max_account_page_size,
        ),
        "sort": sort,
    }


async def _account_action(
    action: str,
    address: str,
    query: Dict[str, QueryValue],
    *,
    chain_cfg: ChainConfig,
    format: str,
    api_key: Optional[str],
    client,
    echo: Dict[str, Any],
) -> Dict[str, Any]:
    try:
        response = await client.etherscan(chain_cfg, "account", action, query, api_key=api_key)
    except UpstreamError as exc:
        return {"error": f"Routescan request failed: {exc}"}
    except Exception:
        logger.exception("Unexpected error querying account/%s", action)
        return {"error": "Unexpected error while querying Routescan."}

    payload = response["result"]
    result: Dict[str, Any] = {"chain": chain_cfg.key, "address": address, **echo, "endpoint": response["endpoint"]}
    if format == "normalized":
        items = normalize_rows(action, payload, address)
        result.update({"format": format, "count": len(items), "items": items, "raw": payload})
    else:
        result.update({"result": payload, "format": format})
    return result


async def account_txlist(
    address: str,
    *,
    startblock: int = DEFAULT_START_BLOCK,
    endblock: int = DEFAULT_END_BLOCK,
    page: int = 1,
    offset: Optional[int] = None,
    sort: str = "desc",
    format: str = "raw",
    api_key: Optional[str] = None,
    chain: Optional[str] = DEFAULT_CHAIN,
    client=default_routescan,
    config: EvmConfig = default_config,
) -> Dict[str, Any]:
    """Normal transactions of an address."""
    try:
        chain_cfg = _check_common(chain, format, api_key)
        query = _range_query(
            address, startblock=startblock, endblock=endblock, page=page, offset=offset, sort=sort, config=config
        )
    except (UnsupportedChainError, ValueError) as exc:
        return {"error": str(exc)}
    return await _account_action(
        "txlist", address, query, chain_cfg=chain_cfg, format=format, api_key=api_key, client=client, echo={}
    )


async def account_txlist_internal(
    address: str,
    *,
    startblock: int = DEFAULT_START_BLOCK,
    endblock: int = DEFAULT_END_BLOCK,
    page: int = 1,
    offset: Optional[int] = None,
    sort: str = "desc",
    format: str = "raw",
    api_key: Optional[str] = None,
    chain: Optional[str] = DEFAULT_CHAIN,
    client=default_routescan,
    config: EvmConfig = default_config,
) -> Dict[str, Any]:
    """Internal (trace) transactions of an address."""
    try:
        chain_cfg = _check_common(chain, format, api_key)
        query = _range_query(
            address, startblock=startblock, endblock=endblock, page=page, offset=offset, sort=sort, config=config
        )
    except (UnsupportedChainError, ValueError) as exc:
        return {"error": str(exc)}
    return await _account_action(
        "txlistinternal", address, query, chain_cfg=chain_cfg, format=format, api_key=api_key, client=client, echo={}
    )


async def _token_transfers(
    action: str,
    address: str,
    *,
    contract_address: Optional[str],
    token_id: Optional[Union[str, int]],
    startblock: int,
    endblock: int,
    page: int,
    offset: Optional[int],
    sort: str,
    format: str,
    api_key: Optional[str],
    chain: Optional[str],
    client,
    config: EvmConfig,
) -> Dict[str, Any]:
    try:
        chain_cfg = _check_common(chain, format, api_key)
        query = _range_query(
            address, startblock=startblock, endblock=endblock, page=page, offset=offset, sort=sort, config=config
        )
        if contract_address is not None and not is_valid_address(contract_address):
            raise ValueError("Invalid contract address")
    except (UnsupportedChainError, ValueError) as exc:
        return {"error": str(exc)}
    if contract_address:
        query["contractaddress"] = contract_address
    echo: Dict[str, Any] = {"contractAddress": contract_address or None}
    if action == "token1155tx":
        if token_id is not None:
            query["tokenid"] = token_id
        echo["tokenId"] = token_id
    return await _account_action(
        action, address, query, chain_cfg=chain_cfg, format=format, api_key=api_key, client=client, echo=echo
    )


async def account_token_transfers(
    address: str,
    *,
    contract_address: Optional[str] = None,
    startblock: int = DEFAULT_START_BLOCK,
    endblock: int = DEFAULT_END_BLOCK,
    page: int = 1,
    offset: Optional[int] = None,
    sort: str = "desc",
    format: str = "raw",
    api_key: Optional[str] = None,
    chain: Optional[str] = DEFAULT_CHAIN,
    client=default_routescan,
    config: EvmConfig = default_config,
) -> Dict[str, Any]:
    """ERC-20 transfers of an address, optionally for one token contract."""
    return await _token_transfers(
        "tokentx",
        address,
        contract_address=contract_address,
        token_id=None,
        startblock=startblock,
        endblock=endblock,
        page=page,
        offset=offset,
        sort=sort,
        format=format,
        api_key=api_key,
        chain=chain,
        client=client,
        config=config,
    )


async def account_nft_transfers(
    address: str,
    *,
    contract_address: Optional[str] = None,
    startblock: int = DEFAULT_START_BLOCK,
    endblock: int = DEFAULT_END_BLOCK,
    page: int = 1,
    offset: Optional[int] = None,
    sort: str = "desc",
    format: str = "raw",
    api_key: Optional[str] = None,
    chain: Optional[str] = DEFAULT_CHAIN,
    client=default_routescan,
    config: EvmConfig = default_config,
) -> Dict[str, Any]:
    """ERC-721 transfers of an address."""
    return await _token_transfers(
        "tokennfttx",
        address,
        contract_address=contract_address,
        token_id=None,
        startblock=startblock,
        endblock=endblock,
        page=page,
        offset=offset,
        sort=sort,
        format=format,
        api_key=api_key,
        chain=chain,
        client=client,
        config=config,
    )


async def account_multi_token_transfers(
    address: str,
    *,
    contract_address: Optional[str] = None,
    token_id: Optional[Union[str, int]] = None,
    startblock: int = DEFAULT_START_BLOCK,
    endblock: int = DEFAULT_END_BLOCK,
    page: int = 1,
    offset: Optional[int] = None,
    sort: str = "desc",
    format: str = "raw",
    api_key: Optional[str] = None,
    chain: Optional[str] = DEFAULT_CHAIN,
    client=default_routescan,
    config: EvmConfig = default_config,
) -> Dict[str, Any]:
    """ERC-1155 transfers of an address, optionally for one token id."""
    return await _token_transfers(
        "token1155tx",
        address,
        contract_address=contract_address,
        token_id=token_id,
        startblock=startblock,
        endblock=endblock,
        page=page,
        offset=offset,
        sort=sort,
        format=format,
        api_key=api_key,
        chain=chain,
        client=client,
        config=config,
    )


async def account_token_balance(
    address: str,
    contract_address: str,
    *,
    tag: str = "latest",
    decimals: Optional[int] = None,
    format: str = "raw",
    api_key: Optional[str] = None,
    chain: Optional[str] = DEFAULT_CHAIN,
    client=default_routescan,
) -> Dict[str, Any]:
    """ERC-20 balance of an address; ``decimals`` enables a formatted amount."""
    if not is_valid_address(address):
        return {"error": "Invalid address"}
    if not is_valid_address(contract_address):
        return {"error": "Invalid contract address"}
    if decimals is not None and not is_int_in_range(decimals, minimum=0, maximum=36):
        return {"error": "decimals must be an integer between 0 and 36"}
    if not isinstance(tag, str) or not tag:
        return {"error": "tag must be a non-empty string"}
    try:
        chain_cfg = _check_common(chain, format, api_key)
    except (UnsupportedChainError, ValueError) as exc:
        return {"error": str(exc)}

    query: Dict[str, QueryValue] = {"address": address, "contractaddress": contract_address, "tag": tag}
    try:
        response = await client.etherscan(chain_cfg, "account", "tokenbalance", query, api_key=api_key)
    except UpstreamError as exc:
        return {"error": f"Routescan request failed: {exc}"}
    except Exception:
        logger.exception("Unexpected error querying token balance for %s", address)
        return {"error": "Unexpected error while querying Routescan."}

    payload = response["result"]
    result: Dict[str, Any] = {
        "chain": chain_cfg.key,
        "address": address,
        "contractAddress": contract_address,
        "endpoint": response["endpoint"],
        "format": format,
    }
    if format == "normalized":
        result.update({"balance": normalize_token_balance(payload, decimals), "rawResult": payload})
    else:
        result["result"] = payload
    return result
