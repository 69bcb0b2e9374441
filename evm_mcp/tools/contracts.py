"""Read-only contract tools: eth_call and EIP-1967 proxy inspection."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional, Union

from evm_mcp.chains import RpcNotConfiguredError, UnsupportedChainError
from evm_mcp.config import DEFAULT_CHAIN, EvmConfig, default_config
from evm_mcp.upstream import RpcClientCache, default_routescan, default_rpc_clients
from evm_mcp.upstream.errors import UpstreamError
from evm_mcp.tools.common import connect, rpc_info, with_cross_check
from evm_mcp.tools.formatting import slot_to_address
from evm_mcp.tools.validators import is_hex_data, is_valid_address, normalize_block, normalize_quantity

logger = logging.getLogger(__name__)

# EIP-1967 storage slots
IMPLEMENTATION_SLOT = "0x360894a13ba1a3210667c828492db98dca3e2076cc3735a920a3ca505d382bbc"
ADMIN_SLOT = "0xb53127684a568b3173ae13b9f8a6016e243e63b6e8ee1178d6a717850b5d6103"
BEACON_SLOT = "0xa3f0ad74e5423aebfd80d3ef4346578335a9a72aeaee59ff6cb3582b35133d50"

Quantity = Union[int, str]


async def call_contract(
    to: str,
    data: str,
    *,
    from_address: Optional[str] = None,
    gas: Optional[Quantity] = None,
    gas_price: Optional[Quantity] = None,
    value: Optional[Quantity] = None,
    block: Union[str, int] = "latest",
    chain: Optional[str] = DEFAULT_CHAIN,
    client: Any = None,
    explorer=default_routescan,
    rpc_clients: RpcClientCache = default_rpc_clients,
    config: EvmConfig = default_config,
) -> Dict[str, Any]:
    """Execute a read-only call against a contract and return the raw result."""
    if not is_valid_address(to) or (from_address is not None and not is_valid_address(from_address)):
        return {"error": "Invalid Ethereum address format"}
    if not is_hex_data(data):
        return {"error": "Data must be a hex string starting with 0x"}
    rpc_block = normalize_block(block)
    if rpc_block is None:
        return {"error": "Invalid block parameter; use a block tag, integer or hex number."}

    call_params: Dict[str, Any] = {"to": to, "data": data}
    explorer_params: Dict[str, Any] = {"to": to, "data": data, "tag": rpc_block}
    if from_address:
        call_params["from"] = from_address
        explorer_params["from"] = from_address
    for key, raw, allow_zero in (("gas", gas, False), ("gasPrice", gas_price, True), ("value", value, True)):
        if raw is None:
            continue
        quantity = normalize_quantity(raw, allow_zero=allow_zero)
        if quantity is None:
            return {"error": f"Invalid {key}; use a non-negative integer or hex number."}
        call_params[key] = quantity
        explorer_params[key] = quantity

    try:
        chain_cfg, rpc = connect(chain, client=client, rpc_clients=rpc_clients)
    except (UnsupportedChainError, RpcNotConfiguredError) as exc:
        return {"error": str(exc)}

    try:
        result, routescan = await with_cross_check(
            rpc.call(call_params, rpc_block),
            explorer.etherscan(chain_cfg, "proxy", "eth_call", explorer_params),
        )
    except UpstreamError as exc:
        return {"error": f"Failed to call contract: {exc}"}
    except Exception:
        logger.exception("Unexpected error calling %s", to)
        return {"error": "Unexpected error while calling contract."}

    return {
        "chain": chain_cfg.name,
        "to": to,
        "data": data,
        "result": result,
        "callParams": {
            "from": from_address,
            "gas": None if gas is None else str(gas),
            "gasPrice": None if gas_price is None else str(gas_price),
            "value": None if value is None else str(value),
            "blockNumber": str(block),
        },
        "rpc": rpc_info(rpc, config),
        "routescan": routescan,
    }


async def inspect_proxy(
    address: str,
    *,
    chain: Optional[str] = DEFAULT_CHAIN,
    client: Any = None,
    rpc_clients: RpcClientCache = default_rpc_clients,
) -> Dict[str, Any]:
    """
    Read the EIP-1967 implementation, admin and beacon slots of a contract.

    ``isProxy`` is true when an implementation or a beacon is set.
    """
    if not is_valid_address(address):
        return {"error": "Invalid address"}
    try:
        _, rpc = connect(chain, client=client, rpc_clients=rpc_clients)
    except (UnsupportedChainError, RpcNotConfiguredError) as exc:
        return {"error": str(exc)}

    try:
        impl_raw, admin_raw, beacon_raw = await asyncio.gather(
            rpc.get_storage_at(address, IMPLEMENTATION_SLOT),
            rpc.get_storage_at(address, ADMIN_SLOT),
            rpc.get_storage_at(address, BEACON_SLOT),
        )
        implementation = slot_to_address(impl_raw)
        admin = slot_to_address(admin_raw)
        beacon = slot_to_address(beacon_raw)
    except (UpstreamError, ValueError) as exc:
        return {"error": f"Proxy inspection failed: {exc}"}
    except Exception:
        logger.exception("Unexpected error inspecting proxy %s", address)
        return {"error": "Unexpected error while inspecting proxy."}

    return {
        "isProxy": bool(implementation or beacon),
        "implementation": implementation,
        "admin": admin,
        "beacon": beacon,
    }
