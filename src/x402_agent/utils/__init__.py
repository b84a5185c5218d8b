"""
Utility functions for x402 agents
"""

from x402_agent.utils.address import is_evm_address, is_hex_bytes, is_tx_hash
from x402_agent.utils.amounts import (
    USDC_DECIMALS,
    atomic_to_decimal,
    decimal_to_atomic,
    format_usdc,
    is_positive_amount,
)
from x402_agent.utils.retry import RetryState, is_retryable_error, retry_with_backoff
from x402_agent.utils.truncate import (
    DEFAULT_MAX_CHARS,
    TruncateResult,
    serialized_size,
    truncate_response,
)

__all__ = [
    "USDC_DECIMALS",
    "decimal_to_atomic",
    "atomic_to_decimal",
    "format_usdc",
    "is_positive_amount",
    "is_evm_address",
    "is_hex_bytes",
    "is_tx_hash",
    "RetryState",
    "is_retryable_error",
    "retry_with_backoff",
    "DEFAULT_MAX_CHARS",
    "TruncateResult",
    "serialized_size",
    "truncate_response",
]
