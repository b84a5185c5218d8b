"""
Settlement relays
"""

from x402_agent.relay.base import (
    AuthorizationParams,
    SignatureParts,
    TransactionRelay,
    TransactionResult,
    parse_signature,
    submit_with_fallback,
    validate_authorization_params,
)
from x402_agent.relay.direct import DirectRelay
from x402_agent.relay.validator import ValidatorRelay

__all__ = [
    "AuthorizationParams",
    "SignatureParts",
    "TransactionRelay",
    "TransactionResult",
    "parse_signature",
    "submit_with_fallback",
    "validate_authorization_params",
    "DirectRelay",
    "ValidatorRelay",
]
