"""
Contract verification (Sourcify) and deployment (signed raw transactions).

Deployment signs locally with the key from ``DEPLOYER_PRIVATE_KEY`` and submits
through ``eth_sendRawTransaction``; the key never leaves this module and is
never logged or returned.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence

from eth_abi import encode as abi_encode
from eth_abi.exceptions import EncodingError
from eth_account import Account
from eth_utils import to_hex

from evm_mcp.chains import RpcNotConfiguredError, UnsupportedChainError, get_chain
from evm_mcp.config import DEFAULT_CHAIN, EvmConfig, default_config, load_deployer_key
from evm_mcp.upstream import RpcClientCache, default_rpc_clients, default_sourcify
from evm_mcp.upstream.errors import UpstreamError
from evm_mcp.tools.common import connect
from evm_mcp.tools.formatting import hex_to_int
from evm_mcp.tools.transactions import receipt_status
from evm_mcp.tools.validators import is_hex_quantity, is_valid_address

logger = logging.getLogger(__name__)

BYTECODE_ERROR = "bytecode must be a non-empty 0x-prefixed hex string"


def _build_files(metadata_json: Optional[str], sources: Optional[Sequence[Dict[str, str]]]) -> List[Any]:
    files: List[Any] = []
    if metadata_json:
        files.append(("files", ("metadata.json", metadata_json.encode("utf-8"), "application/json")))
    for source in sources or []:
        files.append(("files", (source["path"], source["content"].encode("utf-8"), "text/plain")))
    return files


def _valid_sources(sources: Any) -> bool:
    if not isinstance(sources, list):
        return False
    return all(
        isinstance(item, dict) and isinstance(item.get("path"), str) and isinstance(item.get("content"), str)
        for item in sources
    )


async def verify_contract(
    address: str,
    *,
    metadata_json: Optional[str] = None,
    sources: Optional[List[Dict[str, str]]] = None,
    chain: Optional[str] = DEFAULT_CHAIN,
    client=default_sourcify,
) -> Dict[str, Any]:
    """
    Submit contract metadata and/or sources to Sourcify, then report its status.

    Args:
        address: Deployed contract address.
        metadata_json: Solidity compiler metadata as a JSON string.
        sources: ``[{"path": ..., "content": ...}]`` source files.
        client: Sourcify client (override for testing).
    """
    if not is_valid_address(address):
        return {"error": "Invalid address"}
    if sources is not None and not _valid_sources(sources):
        return {"error": "sources must be a list of {path, content} objects"}
    if not metadata_json and not sources:
        return {"error": "Provide metadataJson or sources"}
    try:
        chain_cfg = get_chain(chain)
    except UnsupportedChainError as exc:
        return {"error": str(exc)}

    try:
        verify_result = await client.verify(
            address=address,
            chain_id=chain_cfg.chain_id,
            files=_build_files(metadata_json, sources),
        )
        status = await client.check_all_by_addresses(address=address, chain_id=chain_cfg.chain_id)
    except UpstreamError as exc:
        return {"error": f"Verification failed: {exc}"}
    except Exception:
        logger.exception("Unexpected error verifying %s", address)
        return {"error": "Unexpected error during verification."}

    return {"backend": "sourcify", "verifyResult": verify_result, "status": status}


def _abi_type(param: Dict[str, Any]) -> str:
    """Canonical ABI type string, expanding tuples from their components."""
    kind = str(param.get("type", ""))
    if kind.startswith("tuple"):
        inner = ",".join(_abi_type(component) for component in param.get("components") or [])
        return f"({inner}){kind[len('tuple'):]}"
    return kind


def encode_deploy_data(bytecode: str, abi: List[Dict[str, Any]], args: Sequence[Any]) -> str:
    """Append ABI-encoded constructor arguments to the creation bytecode."""
    constructor = next(
        (item for item in abi if isinstance(item, dict) and item.get("type") == "constructor"),
        None,
    )
    inputs = (constructor or {}).get("inputs") or []
    if len(inputs) != len(args):
        raise ValueError(f"constructor expects {len(inputs)} argument(s), got {len(args)}")
    if not inputs:
        return bytecode
    encoded = abi_encode([_abi_type(param) for param in inputs], list(args))
    return bytecode + encoded.hex()


async def _wait_for_receipt(rpc: Any, tx_hash: str, config: EvmConfig) -> Optional[Dict[str, Any]]:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + config.receipt_timeout
    while True:
        receipt = await rpc.get_transaction_receipt(tx_hash)
        if isinstance(receipt, dict):
            return receipt
        if loop.time() >= deadline:
            return None
        await asyncio.sleep(config.receipt_poll_interval)


async def _build_transaction(
    rpc: Any,
    *,
    sender: str,
    data: str,
    chain_id: int,
    value: Optional[str],
    gas: Optional[str],
    nonce: Optional[int],
    max_fee_per_gas: Optional[str],
    max_priority_fee_per_gas: Optional[str],
) -> Dict[str, Any]:
    tx: Dict[str, Any] = {"data": data, "value": hex_to_int(value) or 0, "chainId": chain_id}
    if nonce is None:
        nonce = hex_to_int(await rpc.get_transaction_count(sender, "pending"))
    tx["nonce"] = nonce
    if gas is not None:
        tx["gas"] = hex_to_int(gas)
    else:
        estimate_request = {"from": sender, "data": data}
        if value is not None:
            estimate_request["value"] = value
        tx["gas"] = hex_to_int(await rpc.estimate_gas(estimate_request))

    if max_fee_per_gas is not None:
        tx["type"] = 2
        tx["maxFeePerGas"] = hex_to_int(max_fee_per_gas)
        priority = max_priority_fee_per_gas or await rpc.max_priority_fee()
        tx["maxPriorityFeePerGas"] = hex_to_int(priority)
    else:
        tx["gasPrice"] = hex_to_int(await rpc.gas_price())
    return tx


async def deploy_contract(
    bytecode: str,
    abi: List[Dict[str, Any]],
    *,
    args: Optional[List[Any]] = None,
    value: Optional[str] = None,
    max_fee_per_gas: Optional[str] = None,
    max_priority_fee_per_gas: Optional[str] = None,
    gas: Optional[str] = None,
    nonce: Optional[int] = None,
    chain: Optional[str] = DEFAULT_CHAIN,
    client: Any = None,
    rpc_clients: RpcClientCache = default_rpc_clients,
    config: EvmConfig = default_config,
) -> Dict[str, Any]:
    """
    Deploy a contract and wait for its receipt.

    Fees follow EIP-1559 when ``max_fee_per_gas`` is given (priority fee from
    the argument or ``eth_maxPriorityFeePerGas``), otherwise a legacy
    ``gasPrice`` from the node is used.
    """
    if not is_hex_quantity(bytecode):
        return {"error": BYTECODE_ERROR}
    if not isinstance(abi, list):
        return {"error": "abi must be a list"}
    for label, raw in (
        ("value", value),
        ("maxFeePerGas", max_fee_per_gas),
        ("maxPriorityFeePerGas", max_priority_fee_per_gas),
        ("gas", gas),
    ):
        if raw is not None and not is_hex_quantity(raw):
            return {"error": f"{label} must be a 0x-prefixed hex quantity"}
    if max_priority_fee_per_gas is not None and max_fee_per_gas is None:
        return {"error": "maxPriorityFeePerGas requires maxFeePerGas"}
    if nonce is not None and (isinstance(nonce, bool) or not isinstance(nonce, int) or nonce < 0):
        return {"error": "nonce must be a non-negative integer"}

    private_key = load_deployer_key()
    if not private_key:
        return {"error": "Deployment failed: DEPLOYER_PRIVATE_KEY not set"}
    try:
        account = Account.from_key(private_key)
    except (ValueError, TypeError):
        return {"error": "Deployment failed: invalid deployer private key"}

    try:
        chain_cfg, rpc = connect(chain, client=client, rpc_clients=rpc_clients)
    except (UnsupportedChainError, RpcNotConfiguredError) as exc:
        return {"error": str(exc)}

    try:
        data = encode_deploy_data(bytecode, abi, args or [])
    except (ValueError, TypeError, EncodingError) as exc:
        return {"error": f"Deployment failed: {exc}"}

    try:
        tx = await _build_transaction(
            rpc,
            sender=account.address,
            data=data,
            chain_id=chain_cfg.chain_id,
            value=value,
            gas=gas,
            nonce=nonce,
            max_fee_per_gas=max_fee_per_gas,
            max_priority_fee_per_gas=max_priority_fee_per_gas,
        )
        signed = account.sign_transaction(tx)
        tx_hash = await rpc.send_raw_transaction(to_hex(signed.raw_transaction))
    except (UpstreamError, ValueError, TypeError) as exc:
        return {"error": f"Deployment failed: {exc}"}
    except Exception:
        logger.exception("Unexpected error deploying contract on %s", chain_cfg.key)
        return {"error": "Unexpected error during deployment."}

    # Broadcast already happened; every failure from here on keeps the hash.
    logger.info("Deployment submitted", extra={"tool": "contract_deploy", "tx_hash": tx_hash})
    try:
        receipt = await _wait_for_receipt(rpc, tx_hash, config)
    except UpstreamError as exc:
        return {"error": f"Deployment failed: {exc}", "txHash": tx_hash}
    except Exception:
        logger.exception("Unexpected error waiting for deployment receipt on %s", chain_cfg.key)
        return {"error": "Unexpected error during deployment.", "txHash": tx_hash}

    if receipt is None:
        return {
            "error": f"Deployment failed: no receipt after {config.receipt_timeout:g}s",
            "txHash": tx_hash,
        }
    gas_used = hex_to_int(receipt.get("gasUsed"))
    return {
        "txHash": tx_hash,
        "contractAddress": receipt.get("contractAddress"),
        "status": receipt_status(receipt),
        "gasUsed": str(gas_used) if gas_used is not None else None,
    }
