"""Shared validation helpers for EVM MCP tools."""

from __future__ import annotations

import re
from typing import Any, Optional

from eth_utils import is_checksum_address, is_hex_address, to_hex

TX_HASH_REGEX = re.compile(r"^0x[0-9a-fA-F]{64}$")
HEX_DATA_REGEX = re.compile(r"^0x[0-9a-fA-F]*$")
HEX_QUANTITY_REGEX = re.compile(r"^0x[0-9a-fA-F]+$")
# Relative explorer path, no query string or traversal characters.
EXPLORER_PATH_REGEX = re.compile(r"^/?[a-zA-Z0-9_\-/]*$")

BLOCK_TAGS = frozenset({"earliest", "latest", "pending", "safe", "finalized"})
SORT_ORDERS = frozenset({"asc", "desc"})
OUTPUT_FORMATS = frozenset({"raw", "normalized"})


def is_valid_address(address: Optional[str]) -> bool:
    """Hex address check; mixed-case input must carry a valid EIP-55 checksum."""
    if not address or not isinstance(address, str):
        return False
    if not address.startswith("0x") or not is_hex_address(address):
        return False
    body = address[2:]
    if body in (body.lower(), body.upper()):
        return True
    return bool(is_checksum_address(address))


def is_valid_hash(value: Optional[str]) -> bool:
    """32-byte 0x-prefixed hex (transaction hashes, block hashes, topics)."""
    return isinstance(value, str) and bool(TX_HASH_REGEX.fullmatch(value))


def is_hex_data(value: Optional[str]) -> bool:
    return isinstance(value, str) and bool(HEX_DATA_REGEX.fullmatch(value))


def is_hex_quantity(value: Any) -> bool:
    return isinstance(value, str) and bool(HEX_QUANTITY_REGEX.fullmatch(value))


def normalize_block(value: Any) -> Optional[str]:
    """
    Return a JSON-RPC block parameter for a tag, non-negative int or hex string.

    Returns None when the value is none of those.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return to_hex(value) if value >= 0 else None
    if isinstance(value, str):
        if value in BLOCK_TAGS:
            return value
        if is_hex_quantity(value):
            return to_hex(int(value, 16))
    return None


def normalize_quantity(value: Any, *, allow_zero: bool = True) -> Optional[str]:
    """Return a hex quantity for an int or hex string, or None when invalid."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        if value < 0 or (value == 0 and not allow_zero):
            return None
        return to_hex(value)
    if is_hex_quantity(value):
        parsed = int(value, 16)
        if parsed == 0 and not allow_zero:
            return None
        return to_hex(parsed)
    return None


def clamp_limit(value: Optional[int], *, default: int, max_value: int) -> int:
    """Clamp limit/offset-style integers to configured bounds."""
    if value is None:
        return default
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    if parsed < 1:
        return default
    return min(parsed, max_value)


def is_int_in_range(value: Any, *, minimum: int, maximum: Optional[int] = None) -> bool:
    if isinstance(value, bool) or not isinstance(value, int):
        return False
    if value < minimum:
        return False
    return maximum is None or value <= maximum
