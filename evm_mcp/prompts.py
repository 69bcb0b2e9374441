"""
Prompt templates exposed over MCP.

Every prompt defaults to the Plasma chain and tells the model to stay on it
unless the user names another network.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional

from evm_mcp.chains import get_supported_chains, unsupported_chain_message
from evm_mcp.config import DEFAULT_CHAIN
from evm_mcp.tools.validators import is_valid_address, is_valid_hash

NETWORK_POLICY = (
    "By default it is going to be on Plasma chain.\n"
    "Do not use Polygon, BSC, Base, or any other network unless the user explicitly "
    "specifies it. If unspecified, always assume Plasma mainnet."
)


class PromptNotFoundError(KeyError):
    """Raised when a prompt name is not registered."""


class PromptArgumentError(ValueError):
    """Raised when prompt arguments are missing or malformed."""


@dataclass(slots=True, frozen=True)
class PromptArgument:
    name: str
    description: str
    required: bool = False
    kind: str = "text"  # text, address, hash


@dataclass(slots=True, frozen=True)
class PromptDefinition:
    name: str
    description: str
    arguments: List[PromptArgument]
    render: Callable[[Mapping[str, str]], str]


def _chain_arg() -> PromptArgument:
    return PromptArgument("chain", f"Chain key (default {DEFAULT_CHAIN})")


def _check_wallet(args: Mapping[str, str]) -> str:
    return f"""Please analyze this wallet address: {args['address']} on {args['chain']} chain.

{NETWORK_POLICY}

First, use the eth_getBalance tool to check the wallet's balance.
Next, use the eth_getCode tool to see whether it is a regular wallet or a contract.

Then summarize:
1. The wallet's address
2. The chain it's on
3. Its balance in the native token
4. Whether it's an externally owned account or a contract
5. Anything notable about the balance (empty, significant funds, etc.)

Be concise but informative."""


def _check_contract(args: Mapping[str, str]) -> str:
    return f"""Please analyze this contract address: {args['address']} on {args['chain']} chain.

{NETWORK_POLICY}

Use eth_getCode to confirm the address holds contract code and note the bytecode size.
Use proxy_inspect to see whether it is an EIP-1967 proxy.
Use eth_getBalance to check whether the contract holds native tokens.

Summarize:
1. Whether it is a contract
2. Its size in bytes and proxy status
3. Any native balance it holds
4. What these findings suggest (active contract, abandoned contract, etc.)"""


def _gas_analysis(args: Mapping[str, str]) -> str:
    return f"""Please analyze the current gas prices on the {args['chain']} chain.

{NETWORK_POLICY}

Use the eth_gasPrice tool to get the current gas price, and read the
evm://docs/gas-reference resource for typical price bands.

Report:
1. The current gas price in Gwei
2. What this means for transaction costs
3. Whether it is low, medium or high
4. A recommendation (wait or proceed)"""


def _transaction_lookup(args: Mapping[str, str]) -> str:
    return f"""Please look up and analyze this transaction: {args['hash']} on {args['chain']} chain.

{NETWORK_POLICY}

Use the eth_getTransactionByHash tool to get the transaction and its receipt.

Summarize:
1. Status (pending, success or failed)
2. From and to addresses
3. Value transferred
4. Gas used and gas price
5. Emitted logs or created contract, if any"""


def _block_info(args: Mapping[str, str]) -> str:
    return f"""Please get the current block information for the {args['chain']} chain.

{NETWORK_POLICY}

Use the eth_blockNumber tool to retrieve the latest block.

Provide the block number, its timestamp and gas usage, and a short note on
what they say about chain activity."""


def _cross_check_wallet(args: Mapping[str, str]) -> str:
    return f"""Cross-check this wallet on {args['chain']}: {args['address']}.

Steps:
- Use eth_getBalance for the RPC balance (its routescan field carries the explorer view).
- Use routescan_etherscan with module=account, action=balance for the explorer balance.
- If the values differ, explain likely causes (indexing lag, pending state, block tag).
Give both values and your conclusion."""


def _cross_check_transaction(args: Mapping[str, str]) -> str:
    return f"""Cross-check this transaction on {args['chain']}: {args['hash']}.

Steps:
- Use eth_getTransactionByHash for the RPC view, including the receipt when mined.
- Use routescan_etherscan with module=proxy, action=eth_getTransactionByHash.
- Compare status, gas, value and logs. Call out differences and likely causes.
Answer with a short comparison table."""


def _routescan_explore(args: Mapping[str, str]) -> str:
    hints = ""
    if args.get("module"):
        hints += f" (module={args['module']})"
    if args.get("action"):
        hints += f" (action={args['action']})"
    return f"""Explore chain data via Routescan on {args['chain']}.

Suggestions:
- To browse addresses, call routescan_addresses with a limit.
- For Etherscan-style queries, call routescan_etherscan with module/action{hints}.
- For other endpoints, call routescan_get with a relative path and query params.
Return a brief summary and include raw JSON snippets when useful."""


def _routescan_logs(args: Mapping[str, str]) -> str:
    target = f" for {args['address']}" if args.get("address") else ""
    return f"""Get recent logs{target} on {args['chain']} using both:
- eth_getLogs (RPC)
- routescan_etherscan (module=logs, action=getLogs)
Compare counts and sample a couple of entries. Note any differences."""


def _routescan_contract(args: Mapping[str, str]) -> str:
    return f"""For {args['address']} on {args['chain']}:
- Use eth_getCode to determine whether it is a contract.
- Use routescan_etherscan (module=contract, action=getsourcecode) for explorer metadata.
- If verified sources are missing and you have metadata or sources, consider contract_verify.
Summarize findings and next steps."""


def _wallet_activity(args: Mapping[str, str]) -> str:
    return f"""Analyze recent activity for {args['address']} on {args['chain']}:
- Call routescan_account_txlist for normal transactions (sort=desc, offset=25, format=normalized).
- Call routescan_account_txlistinternal for internal transactions (sort=desc, offset=25).
- Summarize counts, most recent actions, counterparties and notable patterns."""


def _token_balance(args: Mapping[str, str]) -> str:
    return f"""Get the ERC-20 balance of {args['address']} on {args['chain']}:
- Use routescan_account_tokenbalance with contract_address={args['contractAddress']}.
- If decimals or symbol are needed, use eth_call on the token or routescan_etherscan
  (module=contract, action=getsourcecode).
- Present the raw balance and a human-readable amount when decimals are known."""


TRANSFER_TOOLS = {
    "erc20": "routescan_account_tokentx",
    "erc721": "routescan_account_tokennfttx",
    "erc1155": "routescan_account_token1155tx",
}


def _token_transfers(args: Mapping[str, str]) -> str:
    kind = (args.get("type") or "erc20").lower()
    if kind not in TRANSFER_TOOLS:
        raise PromptArgumentError("type must be one of: erc20, erc721, erc1155")
    contract = args.get("contractAddress")
    filter_hint = f" with contract_address={contract}" if contract else ""
    return f"""Get recent {kind.upper()} transfers for {args['address']} on {args['chain']}:
- Use {TRANSFER_TOOLS[kind]}{filter_hint} and format=normalized.
- Summarize transfer counts, top tokens or collections, and the largest transfers."""


def _kb_research(args: Mapping[str, str]) -> str:
    return f"""Research this question with the local knowledge base: {args['question']}

- Call kb_status to see which sources are indexed.
- Call kb_search with a few focused keyword queries.
- Use kb_get on the most relevant chunk ids (or source id + path) to read full context.
Answer with citations of the form <sourceId>:<path>:<startLine>-<endLine>."""


def _definitions() -> List[PromptDefinition]:
    address = PromptArgument("address", "0x-prefixed address", required=True, kind="address")
    tx_hash = PromptArgument("hash", "Transaction hash", required=True, kind="hash")
    return [
        PromptDefinition("check-wallet", "Guide for analyzing a wallet's balance and context", [address, _chain_arg()], _check_wallet),
        PromptDefinition("check-contract", "Prompt contract code introspection and analysis", [address, _chain_arg()], _check_contract),
        PromptDefinition("gas-analysis", "Analyze gas price and evaluate timing", [_chain_arg()], _gas_analysis),
        PromptDefinition("transaction-lookup", "Look up and analyze a transaction by its hash", [tx_hash, _chain_arg()], _transaction_lookup),
        PromptDefinition("block-info", "Get current block information for a chain", [_chain_arg()], _block_info),
        PromptDefinition("cross-check-wallet", "Compare balance via RPC and Routescan", [address, _chain_arg()], _cross_check_wallet),
        PromptDefinition("cross-check-transaction", "Compare transaction details via RPC and Routescan", [tx_hash, _chain_arg()], _cross_check_transaction),
        PromptDefinition(
            "routescan-explore",
            "Use Routescan explorer APIs to browse data",
            [_chain_arg(), PromptArgument("module", "Etherscan module"), PromptArgument("action", "Etherscan action")],
            _routescan_explore,
        ),
        PromptDefinition(
            "routescan-logs",
            "Fetch logs from both RPC and Routescan",
            [_chain_arg(), PromptArgument("address", "Emitting contract", kind="address")],
            _routescan_logs,
        ),
        PromptDefinition("routescan-contract", "Inspect contract via Routescan and verify status", [address, _chain_arg()], _routescan_contract),
        PromptDefinition("wallet-activity", "Summarize recent wallet activity using Routescan tx lists", [address, _chain_arg()], _wallet_activity),
        PromptDefinition(
            "token-balance",
            "Check ERC-20 token balance via Routescan",
            [address, PromptArgument("contractAddress", "Token contract", required=True, kind="address"), _chain_arg()],
            _token_balance,
        ),
        PromptDefinition(
            "token-transfers",
            "Fetch recent token transfers for an address via Routescan",
            [
                address,
                PromptArgument("contractAddress", "Token contract", kind="address"),
                _chain_arg(),
                PromptArgument("type", "erc20, erc721 or erc1155 (default erc20)"),
            ],
            _token_transfers,
        ),
        PromptDefinition(
            "kb-research",
            "Answer a question from the local knowledge base with citations",
            [PromptArgument("question", "What to research", required=True)],
            _kb_research,
        ),
    ]


PROMPTS: Dict[str, PromptDefinition] = {prompt.name: prompt for prompt in _definitions()}


def list_prompts() -> List[Dict[str, object]]:
    return [
        {
            "name": prompt.name,
            "description": prompt.description,
            "arguments": [
                {"name": arg.name, "description": arg.description, "required": arg.required}
                for arg in prompt.arguments
            ],
        }
        for prompt in PROMPTS.values()
    ]


def _resolve_arguments(prompt: PromptDefinition, supplied: Mapping[str, object]) -> Dict[str, str]:
    resolved: Dict[str, str] = {}
    for arg in prompt.arguments:
        value = supplied.get(arg.name)
        if value is None or value == "":
            if arg.required:
                raise PromptArgumentError(f"Missing required argument: {arg.name}")
            continue
        if not isinstance(value, str):
            raise PromptArgumentError(f"Argument {arg.name} must be a string")
        if arg.kind == "address" and not is_valid_address(value):
            raise PromptArgumentError("Invalid Ethereum address format")
        if arg.kind == "hash" and not is_valid_hash(value):
            raise PromptArgumentError("Invalid transaction hash format")
        resolved[arg.name] = value
    if any(arg.name == "chain" for arg in prompt.arguments):
        chain = resolved.setdefault("chain", DEFAULT_CHAIN)
        if chain not in get_supported_chains():
            raise PromptArgumentError(unsupported_chain_message())
    return resolved


def get_prompt(name: str, arguments: Optional[Mapping[str, object]] = None) -> Dict[str, object]:
    """Render a prompt into MCP ``prompts/get`` form."""
    prompt = PROMPTS.get(name)
    if prompt is None:
        raise PromptNotFoundError(name)
    resolved = _resolve_arguments(prompt, arguments or {})
    return {
        "description": prompt.description,
        "messages": [
            {"role": "user", "content": {"type": "text", "text": prompt.render(resolved)}}
        ],
    }
