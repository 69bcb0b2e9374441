"""
Configuration helpers for the EVM MCP server.

This module centralizes RPC endpoint settings, explorer/verification URLs,
API key loading, default timeouts, knowledge-base location and safety limits.
No secrets are stored in the repository; keys are read from the environment.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

# QuickNode endpoint parts used to build per-chain RPC URLs
QN_ENDPOINT_NAME_ENV_VAR = "QN_ENDPOINT_NAME"
QN_TOKEN_ID_ENV_VAR = "QN_TOKEN_ID"
RPC_OVERRIDES_ENV_VAR = "EVM_RPC_OVERRIDES"

DEFAULT_SOURCIFY_URL = "https://sourcify.dev/server"
DEFAULT_ROUTESCAN_URL = "https://api.routescan.io/v2/network"
DEFAULT_CHAIN = "plasma"

# Private key for contract_deploy; read lazily and never stored on the config.
DEPLOYER_KEY_ENV_VAR = "DEPLOYER_PRIVATE_KEY"


def _load_float(env_var: str, default: float) -> float:
    raw_value = os.getenv(env_var)
    if raw_value:
        try:
            return float(raw_value)
        except ValueError:
            return default
    return default


def _load_timeout() -> float:
    return _load_float("EVM_MCP_HTTP_TIMEOUT", 15.0)


def _parse_rpc_overrides(raw: Optional[str]) -> Dict[str, str]:
    """Parse ``chain=url,chain=url`` pairs; malformed pairs are ignored."""
    overrides: Dict[str, str] = {}
    if not raw:
        return overrides
    for pair in raw.split(","):
        chain, sep, url = pair.partition("=")
        chain = chain.strip()
        url = url.strip()
        if not sep or not chain or not url:
            continue
        overrides[chain] = url
    return overrides


DEFAULT_TIMEOUT = _load_timeout()

# Safety limits
DEFAULT_KB_SEARCH_RESULTS = 10
MAX_KB_SEARCH_RESULTS = 50
KB_SNIPPET_CHARS = 400
DEFAULT_ROUTESCAN_ADDRESSES = 25
MAX_ROUTESCAN_ADDRESSES = 100
DEFAULT_ACCOUNT_PAGE_SIZE = 25
MAX_ACCOUNT_PAGE_SIZE = 10000
DEFAULT_RATE_LIMIT_QPS = 5
DEFAULT_RECEIPT_TIMEOUT = _load_float("EVM_MCP_RECEIPT_TIMEOUT", 120.0)
DEFAULT_RECEIPT_POLL_INTERVAL = _load_float("EVM_MCP_RECEIPT_POLL_INTERVAL", 2.0)
LOG_LEVEL = os.getenv("EVM_MCP_LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("EVM_MCP_LOG_FORMAT", "json")  # json or plain


def load_deployer_key() -> Optional[str]:
    """
    Return the deployer private key from the environment, if set.

    The key is never logged or returned to callers.
    """
    value = os.getenv(DEPLOYER_KEY_ENV_VAR)
    if value:
        return value.strip()
    return None


def _default_kb_root() -> Path:
    return Path(os.getenv("EVM_MCP_KB_ROOT", ".kb")).resolve()


@dataclass(slots=True)
class EvmConfig:
    """Runtime configuration for upstream access and tool limits."""

    qn_endpoint_name: Optional[str] = os.getenv(QN_ENDPOINT_NAME_ENV_VAR)
    qn_token_id: Optional[str] = os.getenv(QN_TOKEN_ID_ENV_VAR)
    rpc_overrides: Dict[str, str] = field(
        default_factory=lambda: _parse_rpc_overrides(os.getenv(RPC_OVERRIDES_ENV_VAR))
    )
    default_chain: str = DEFAULT_CHAIN
    timeout: float = DEFAULT_TIMEOUT
    routescan_url: str = os.getenv("ROUTESCAN_URL", DEFAULT_ROUTESCAN_URL)
    routescan_api_key: Optional[str] = os.getenv("ROUTESCAN_API_KEY") or None
    sourcify_url: str = os.getenv("SOURCIFY_URL", DEFAULT_SOURCIFY_URL)
    github_token: Optional[str] = os.getenv("GITHUB_TOKEN") or None
    kb_root: Path = field(default_factory=_default_kb_root)
    default_kb_results: int = DEFAULT_KB_SEARCH_RESULTS
    max_kb_results: int = MAX_KB_SEARCH_RESULTS
    kb_snippet_chars: int = KB_SNIPPET_CHARS
    default_routescan_addresses: int = DEFAULT_ROUTESCAN_ADDRESSES
    max_routescan_addresses: int = MAX_ROUTESCAN_ADDRESSES
    default_account_page_size: int = DEFAULT_ACCOUNT_PAGE_SIZE
    max_account_page_size: int = MAX_ACCOUNT_PAGE_SIZE
    receipt_timeout: float = DEFAULT_RECEIPT_TIMEOUT
    receipt_poll_interval: float = DEFAULT_RECEIPT_POLL_INTERVAL
    rate_limit_qps: float = _load_float("EVM_MCP_RATE_LIMIT_QPS", DEFAULT_RATE_LIMIT_QPS)
    log_level: str = LOG_LEVEL
    log_format: str = LOG_FORMAT
    per_tool_rate_limits: Dict[str, float] = field(default_factory=dict)


default_config = EvmConfig()
