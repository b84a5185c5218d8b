"""
EIP-712 authorization building
"""

from x402_agent.signing.eip712 import (
    DEFAULT_DOMAIN_NAME,
    DEFAULT_DOMAIN_VERSION,
    Eip712Domain,
    TransferAuthorizationMessage,
    build_authorization_message,
    build_domain,
    build_typed_data,
    create_validity_window,
    generate_nonce,
    typed_data_to_json,
)

__all__ = [
    "DEFAULT_DOMAIN_NAME",
    "DEFAULT_DOMAIN_VERSION",
    "Eip712Domain",
    "TransferAuthorizationMessage",
    "build_authorization_message",
    "build_domain",
    "build_typed_data",
    "create_validity_window",
    "generate_nonce",
    "typed_data_to_json",
]
