"""LLM-facing tool implementations."""

from .accounts import get_balance, get_code
from .blocks import get_block_number, get_gas_price
from .contracts import call_contract, inspect_proxy
from .deployment import deploy_contract, verify_contract
from .explorer import (
    account_multi_token_transfers,
    account_nft_transfers,
    account_token_balance,
    account_token_transfers,
    account_txlist,
    account_txlist_internal,
    etherscan_query,
    explorer_get,
    list_addresses,
)
from .knowledge import kb_get, kb_search, kb_status, kb_sync_source, kb_update_all
from .logs import get_logs
from .transactions import get_transaction

__all__ = [
    "get_balance",
    "get_code",
    "get_gas_price",
    "get_block_number",
    "get_logs",
    "call_contract",
    "get_transaction",
    "inspect_proxy",
    "verify_contract",
    "deploy_contract",
    "list_addresses",
    "etherscan_query",
    "explorer_get",
    "account_txlist",
    "account_txlist_internal",
    "account_token_transfers",
    "account_nft_transfers",
    "account_multi_token_transfers",
    "account_token_balance",
    "kb_sync_source",
    "kb_search",
    "kb_get",
    "kb_status",
    "kb_update_all",
]
