"""
Ethereum JSON-RPC payload parsers.

Converts raw hex-encoded RPC results (block headers, head and log notifications)
into canonical models with proper type conversion and error handling.
"""

from typing import Any, Optional

from ..errors import MalformedDataError
from .models import BlockHeader

WEI_PER_GWEI = 10 ** 9


def parse_quantity(value: Any, field_name: str = "quantity") -> int:
    """
    Parse a JSON-RPC QUANTITY (0x-prefixed hex) into an int.

    Plain ints are passed through so test doubles can skip hex encoding.

    Raises:
        MalformedDataError: If the value is not a valid quantity
    """
    if isinstance(value, bool):
        raise MalformedDataError(f"Invalid {field_name}: {value!r}", raw_data=str(value),
                                 expected_format="0x-prefixed hex")
    if isinstance(value, int):
        return value
    if not isinstance(value, str) or not value.startswith("0x"):
        raise MalformedDataError(f"Invalid {field_name}: {value!r}", raw_data=str(value),
                                 expected_format="0x-prefixed hex")
    try:
        return int(value, 16)
    except ValueError as e:
        raise MalformedDataError(f"Invalid {field_name}: {value!r}", raw_data=value,
                                 expected_format="0x-prefixed hex") from e


def wei_to_gwei(wei: Optional[int]) -> float:
    """Convert a wei amount to gwei, treating a missing value as zero."""
    if wei is None:
        return 0.0
    return wei / WEI_PER_GWEI


def parse_block_header(payload: Optional[dict[str, Any]]) -> BlockHeader:
    """
    Parse an eth_getBlockByNumber result into a BlockHeader.

    Args:
        payload: JSON-RPC result object (None when the node has no such block)

    Raises:
        MalformedDataError: If the payload is missing or malformed
    """
    if not payload:
        raise MalformedDataError("Empty block header payload", expected_format="block object")

    if "number" not in payload or "timestamp" not in payload:
        raise MalformedDataError(
            "Block header missing number or timestamp",
            raw_data=str(payload)[:200],
            expected_format="block object"
        )

    base_fee = payload.get("baseFeePerGas")

    return BlockHeader(
        number=parse_quantity(payload["number"], "number"),
        timestamp=parse_quantity(payload["timestamp"], "timestamp"),
        base_fee_per_gas=parse_quantity(base_fee, "baseFeePerGas") if base_fee is not None else None,
    )


def parse_head_notification(params: dict[str, Any]) -> int:
    """
    Extract the block height from an eth_subscription newHeads notification.

    Raises:
        MalformedDataError: If the notification carries no block number
    """
    result = params.get("result") if isinstance(params, dict) else None
    if not isinstance(result, dict) or "number" not in result:
        raise MalformedDataError(
            "Head notification missing block number",
            raw_data=str(params)[:200],
            expected_format="newHeads result"
        )
    return parse_quantity(result["number"], "number")


def parse_log_notification(params: dict[str, Any]) -> dict[str, Any]:
    """
    Extract the log object from an eth_subscription logs notification.

    Raises:
        MalformedDataError: If the notification carries no log object with data
    """
    result = params.get("result") if isinstance(params, dict) else None
    if not isinstance(result, dict) or "data" not in result:
        raise MalformedDataError(
            "Log notification missing data",
            raw_data=str(params)[:200],
            expected_format="log object"
        )
    return result


def decode_hex_bytes(value: Any) -> bytes:
    """
    Decode a 0x-prefixed DATA string (eth_call result) into bytes.

    Raises:
        MalformedDataError: If the value is not valid hex data
    """
    if not isinstance(value, str) or not value.startswith("0x"):
        raise MalformedDataError(f"Invalid call result: {value!r}", raw_data=str(value)[:200],
                                 expected_format="0x-prefixed hex data")
    try:
        return bytes.fromhex(value[2:])
    except ValueError as e:
        raise MalformedDataError(f"Invalid call result: {value!r}", raw_data=value[:200],
                                 expected_format="0x-prefixed hex data") from e
