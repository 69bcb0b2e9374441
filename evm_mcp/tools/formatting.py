"""
Conversions between raw JSON-RPC / explorer values and caller-facing fields.

Explorer rows (Etherscan-compatible ``account`` actions) are normalized into a
common shape with ISO timestamps, formatted amounts and a transfer direction
relative to the queried address.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

from eth_utils import to_int

ETHER_DECIMALS = 18
GWEI = Decimal(10**9)

# JSON-RPC transaction type byte to its common name.
TX_TYPES = {
    "0x0": "legacy",
    "0x1": "eip2930",
    "0x2": "eip1559",
    "0x3": "eip4844",
    "0x4": "eip7702",
}


def hex_to_int(value: Any) -> Optional[int]:
    """Parse a hex quantity (ints pass through); None stays None."""
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError("Malformed quantity in upstream response")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.startswith(("0x", "0X")):
        try:
            return to_int(hexstr=value)
        except ValueError as exc:
            raise ValueError("Malformed quantity in upstream response") from exc
    raise ValueError("Malformed quantity in upstream response")


def quantity_str(value: Any) -> Optional[str]:
    parsed = hex_to_int(value)
    return str(parsed) if parsed is not None else None


def format_units(value: int, decimals: int) -> str:
    """Render an integer amount with ``decimals`` places, trimming trailing zeros."""
    negative = value < 0
    digits = str(abs(value))
    if decimals > 0:
        digits = digits.rjust(decimals + 1, "0")
        integer, fraction = digits[:-decimals], digits[-decimals:].rstrip("0")
    else:
        integer, fraction = digits, ""
    rendered = f"{integer}.{fraction}" if fraction else integer
    return f"-{rendered}" if negative else rendered


def format_ether(value: int) -> str:
    return format_units(value, ETHER_DECIMALS)


def format_gwei(wei: int) -> str:
    return str((Decimal(wei) / GWEI).quantize(Decimal("0.01")))


def iso_timestamp(seconds: int) -> str:
    moment = datetime.fromtimestamp(seconds, tz=timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _parse_int(value: Any) -> Optional[int]:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        return int(str(value), 0) if str(value).startswith("0x") else int(str(value))
    except ValueError:
        return None


def _row_timestamp(row: Dict[str, Any]) -> Optional[str]:
    seconds = _parse_int(row.get("timeStamp"))
    if seconds is None:
        return None
    try:
        return iso_timestamp(seconds)
    except (OverflowError, OSError, ValueError):
        return None


def _formatted_amount(raw: Any, decimals: int) -> Optional[str]:
    amount = _parse_int(raw if raw not in (None, "") else 0)
    if amount is None:
        return None
    return format_units(amount, decimals)


def _str_or_none(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def direction(row: Dict[str, Any], address: str) -> Optional[str]:
    """``out`` when the address sent the row, ``in`` when it received it."""
    needle = address.lower()
    sender = row.get("from")
    receiver = row.get("to")
    if isinstance(sender, str) and sender.lower() == needle:
        return "out"
    if isinstance(receiver, str) and receiver.lower() == needle:
        return "in"
    return None


def normalize_tx(row: Dict[str, Any], address: str) -> Dict[str, Any]:
    status = row.get("txreceipt_status")
    return {
        "hash": row.get("hash"),
        "blockNumber": _str_or_none(row.get("blockNumber")),
        "timestamp": _row_timestamp(row),
        "from": row.get("from"),
        "to": row.get("to"),
        "valueWei": str(row.get("value") or "0"),
        "valueFormatted": _formatted_amount(row.get("value"), ETHER_DECIMALS),
        "gas": _str_or_none(row.get("gas")),
        "gasPrice": _str_or_none(row.get("gasPrice")),
        "nonce": _parse_int(row.get("nonce")),
        "status": "success" if status == "1" else ("failed" if status == "0" else None),
        "direction": direction(row, address),
    }


def normalize_internal_tx(row: Dict[str, Any], address: str) -> Dict[str, Any]:
    return {
        "hash": row.get("hash"),
        "blockNumber": _str_or_none(row.get("blockNumber")),
        "timestamp": _row_timestamp(row),
        "from": row.get("from"),
        "to": row.get("to"),
        "valueWei": str(row.get("value") or "0"),
        "valueFormatted": _formatted_amount(row.get("value"), ETHER_DECIMALS),
        "traceId": row.get("traceId"),
        "type": row.get("type"),
        "contractAddress": row.get("contractAddress") or None,
        "isError": row.get("isError") == "1",
        "direction": direction(row, address),
    }


def _token(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "address": row.get("contractAddress"),
        "symbol": row.get("tokenSymbol"),
        "name": row.get("tokenName"),
    }


def normalize_token_transfer(row: Dict[str, Any], address: str) -> Dict[str, Any]:
    decimals = _parse_int(row.get("tokenDecimal")) or 0
    token = _token(row)
    token["decimals"] = decimals
    return {
        "txHash": row.get("hash"),
        "blockNumber": _str_or_none(row.get("blockNumber")),
        "timestamp": _row_timestamp(row),
        "token": token,
        "from": row.get("from"),
        "to": row.get("to"),
        "amount": {
            "raw": str(row.get("value") or "0"),
            "formatted": _formatted_amount(row.get("value"), decimals),
        },
        "direction": direction(row, address),
    }


def normalize_nft_transfer(row: Dict[str, Any], address: str) -> Dict[str, Any]:
    return {
        "txHash": row.get("hash"),
        "blockNumber": _str_or_none(row.get("blockNumber")),
        "timestamp": _row_timestamp(row),
        "token": _token(row),
        "from": row.get("from"),
        "to": row.get("to"),
        "tokenId": row.get("tokenID", row.get("tokenId")),
        "amount": {"raw": "1", "formatted": "1"},
        "direction": direction(row, address),
    }


def normalize_multi_token_transfer(row: Dict[str, Any], address: str) -> Dict[str, Any]:
    amount = str(row.get("tokenValue") or row.get("value") or "0")
    return {
        "txHash": row.get("hash"),
        "blockNumber": _str_or_none(row.get("blockNumber")),
        "timestamp": _row_timestamp(row),
        "token": _token(row),
        "from": row.get("from"),
        "to": row.get("to"),
        "tokenId": row.get("tokenID", row.get("tokenId")),
        "amount": {"raw": amount, "formatted": amount},
        "direction": direction(row, address),
    }


ROW_NORMALIZERS: Dict[str, Callable[[Dict[str, Any], str], Dict[str, Any]]] = {
    "txlist": normalize_tx,
    "txlistinternal": normalize_internal_tx,
    "tokentx": normalize_token_transfer,
    "tokennfttx": normalize_nft_transfer,
    "token1155tx": normalize_multi_token_transfer,
}


def normalize_rows(action: str, payload: Any, address: str) -> List[Dict[str, Any]]:
    """Normalize the ``result`` list of an account action; non-list results give []."""
    normalizer = ROW_NORMALIZERS[action]
    rows = payload.get("result") if isinstance(payload, dict) else None
    if not isinstance(rows, list):
        return []
    return [normalizer(row, address) for row in rows if isinstance(row, dict)]


def normalize_token_balance(payload: Any, decimals: Optional[int]) -> Dict[str, Any]:
    raw = payload.get("result") if isinstance(payload, dict) else None
    formatted = None
    if raw is not None and decimals is not None:
        formatted = _formatted_amount(raw, decimals)
    return {"raw": raw, "formatted": formatted, "decimals": decimals}


def slot_to_address(value: Any) -> Optional[str]:
    """Lower-case address held in the low 20 bytes of a storage word; zero is None."""
    if not isinstance(value, str) or not value:
        return None
    clean = value[2:] if value.startswith(("0x", "0X")) else value
    clean = clean.rjust(64, "0")
    address = f"0x{clean[-40:]}".lower()
    if int(address, 16) == 0:
        return None
    return address
