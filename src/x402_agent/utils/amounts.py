"""
Conversions between decimal USDC strings and atomic units.

USDC uses 6 decimal places (1 USDC = 1,000,000 atomic units). Digits beyond the
token precision are truncated, never rounded.
"""

import re

from x402_agent.exceptions import ValidationError

USDC_DECIMALS = 6

_DECIMAL_RE = re.compile(r"^\d+(\.\d+)?$")
_ATOMIC_RE = re.compile(r"^\d+$")


def decimal_to_atomic(amount: str, decimals: int = USDC_DECIMALS) -> str:
    """Convert a decimal string (e.g. ``"0.025"``) into atomic units (``"25000"``)"""
    if not amount:
        raise ValidationError("Amount is required")

    normalized = amount.strip()
    if not _DECIMAL_RE.match(normalized):
        raise ValidationError(f"Invalid decimal amount: {amount}")

    whole, _, fraction = normalized.partition(".")
    padded_fraction = (fraction + "0" * decimals)[:decimals]
    return str(int(whole + padded_fraction))


def atomic_to_decimal(amount: str, decimals: int = USDC_DECIMALS) -> str:
    """Convert atomic units (e.g. ``"25000"``) into a decimal string (``"0.025"``)"""
    if not _ATOMIC_RE.match(amount or ""):
        raise ValidationError(f"Invalid atomic amount: {amount}")

    value = amount.rjust(decimals + 1, "0")
    whole = _strip_leading_zeros(value[:-decimals] if decimals else value)
    fraction = value[-decimals:].rstrip("0") if decimals else ""
    return f"{whole}.{fraction}" if fraction else whole


def format_usdc(atomic_amount: str) -> str:
    """Format atomic units as a human-readable USDC string"""
    return f"{atomic_to_decimal(atomic_amount)} USDC"


def is_positive_amount(amount: str | None) -> bool:
    """Return True if *amount* is a well-formed decimal greater than zero"""
    if not amount or not _DECIMAL_RE.match(amount.strip()):
        return False
    return int(decimal_to_atomic(amount)) > 0


def _strip_leading_zeros(value: str) -> str:
    return value.lstrip("0") or "0"
