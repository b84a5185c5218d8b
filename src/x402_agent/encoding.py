"""
Encoding utilities for x402 payment headers
"""

import base64
import binascii
import json
from typing import Any, TypeVar

from x402_agent.exceptions import PaymentHeaderDecodeError

T = TypeVar("T")


def encode_base64(data: str | bytes) -> str:
    """Encode data to base64"""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return base64.b64encode(data).decode("utf-8")


def decode_base64(data: str) -> str:
    """Decode strict base64 to string"""
    return base64.b64decode(data, validate=True).decode("utf-8")


def encode_payment_payload(payload: Any) -> str:
    """Encode payment payload to base64 for the X-PAYMENT header"""
    if hasattr(payload, "model_dump"):
        data = payload.model_dump(by_alias=True)
    elif isinstance(payload, dict):
        data = {
            key: value.model_dump(by_alias=True) if hasattr(value, "model_dump") else value
            for key, value in payload.items()
        }
    else:
        data = payload
    return encode_base64(json.dumps(data, separators=(",", ":")))


def decode_payment_payload(encoded: str, model_class: type[T] | None = None) -> T | dict[str, Any]:
    """
    Decode a base64 JSON header value.

    Raises:
        PaymentHeaderDecodeError: If the value is not base64 or not JSON
    """
    try:
        data = json.loads(decode_base64(encoded))
    except (binascii.Error, UnicodeDecodeError, ValueError) as e:
        raise PaymentHeaderDecodeError(f"Invalid payment header: {e}") from e
    if model_class is not None:
        if not isinstance(data, dict):
            raise PaymentHeaderDecodeError("Invalid payment header: expected a JSON object")
        return model_class(**data)
    return data


def bytes_to_hex(data: bytes, prefix: bool = True) -> str:
    """Convert bytes to hex string"""
    hex_str = data.hex()
    return f"0x{hex_str}" if prefix else hex_str


def hex_to_bytes(hex_str: str) -> bytes:
    """Convert hex string to bytes"""
    if hex_str.startswith("0x"):
        hex_str = hex_str[2:]
    return bytes.fromhex(hex_str)
