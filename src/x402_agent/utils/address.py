"""
Format checks for EVM addresses and fixed-size hex values
"""

import re

_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")


def is_evm_address(value: object) -> bool:
    """Return True for ``0x`` followed by exactly 40 hex characters"""
    return isinstance(value, str) and bool(_ADDRESS_RE.match(value))


def is_hex_bytes(value: object, num_bytes: int) -> bool:
    """Return True for ``0x`` followed by exactly ``2 * num_bytes`` hex characters"""
    if not isinstance(value, str) or not value.startswith("0x"):
        return False
    body = value[2:]
    return len(body) == num_bytes * 2 and all(c in "0123456789abcdefABCDEF" for c in body)


def is_tx_hash(value: object) -> bool:
    return is_hex_bytes(value, 32)
