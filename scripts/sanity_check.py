"""Minimal live sanity checks for the EVM MCP tools."""

from __future__ import annotations

import asyncio
import os
import sys

REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)

from evm_mcp.config import DEFAULT_CHAIN  # noqa: E402
from evm_mcp.tools import (  # noqa: E402
    account_txlist,
    get_balance,
    get_block_number,
    get_code,
    get_gas_price,
    kb_status,
)
from evm_mcp.upstream import aclose_all  # noqa: E402

SAMPLE_CHAIN = os.getenv("EVM_SAMPLE_CHAIN", DEFAULT_CHAIN)
# Zero address by default; override with a funded account for a more useful run.
SAMPLE_ADDRESS = os.getenv("EVM_SAMPLE_ADDRESS", "0x0000000000000000000000000000000000000000")
# Opt-in to Routescan account listing (slower, may need an API key).
RUN_EXPLORER = os.getenv("RUN_EXPLORER_SANITY", "false").lower() in {"1", "true", "yes"}


async def main() -> None:
    try:
        print("Block number:", await get_block_number(chain=SAMPLE_CHAIN))
        print("Gas price:", await get_gas_price(chain=SAMPLE_CHAIN))
        print("Balance:", await get_balance(SAMPLE_ADDRESS, chain=SAMPLE_CHAIN))
        print("Code:", await get_code(SAMPLE_ADDRESS, chain=SAMPLE_CHAIN))
        if RUN_EXPLORER:
            print("Tx list (5):", await account_txlist(SAMPLE_ADDRESS, offset=5, chain=SAMPLE_CHAIN, format="normalized"))
        print("KB status:", await kb_status())
    finally:
        await aclose_all()


if __name__ == "__main__":
    asyncio.run(main())
