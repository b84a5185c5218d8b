"""
EIP-712 typed data construction for USDC transferWithAuthorization.

Pure functions, no I/O. The nonce generator is the only source of entropy.
"""

import secrets
import time
from dataclasses import dataclass
from typing import Any, Optional

from x402_agent.abi import (
    EIP712_DOMAIN_TYPE,
    TRANSFER_WITH_AUTHORIZATION_PRIMARY_TYPE,
    TRANSFER_WITH_AUTHORIZATION_TYPES,
)
from x402_agent.encoding import hex_to_bytes
from x402_agent.types import TransferAuthorization

DEFAULT_DOMAIN_NAME = "USD Coin"
DEFAULT_DOMAIN_VERSION = "2"

# validAfter is backdated to tolerate clock skew between agent and verifier
CLOCK_SKEW_SECONDS = 60


@dataclass(frozen=True)
class Eip712Domain:
    name: str
    version: str
    chain_id: int
    verifying_contract: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "chainId": self.chain_id,
            "verifyingContract": self.verifying_contract,
        }


@dataclass(frozen=True)
class TransferAuthorizationMessage:
    """EIP-3009 TransferWithAuthorization message with integer fields"""

    from_address: str
    to: str
    value: int
    valid_after: int
    valid_before: int
    nonce: str

    def to_dict(self) -> dict[str, Any]:
        """Message dict in the form expected by the typed-data encoder"""
        return {
            "from": self.from_address,
            "to": self.to,
            "value": self.value,
            "validAfter": self.valid_after,
            "validBefore": self.valid_before,
            "nonce": hex_to_bytes(self.nonce),
        }

    def to_authorization(self) -> TransferAuthorization:
        """String-encoded form carried inside the payment payload"""
        return TransferAuthorization(
            **{
                "from": self.from_address,
                "to": self.to,
                "value": str(self.value),
                "validAfter": str(self.valid_after),
                "validBefore": str(self.valid_before),
                "nonce": self.nonce,
            }
        )


def build_domain(
    chain_id: int,
    verifying_contract: str,
    name: Optional[str] = None,
    version: Optional[str] = None,
) -> Eip712Domain:
    """Build the EIP-712 domain, defaulting to the USDC name and version"""
    return Eip712Domain(
        name=name or DEFAULT_DOMAIN_NAME,
        version=version or DEFAULT_DOMAIN_VERSION,
        chain_id=int(chain_id),
        verifying_contract=verifying_contract,
    )


def generate_nonce() -> str:
    """Generate a random 32-byte nonce (0x-prefixed hex)"""
    return "0x" + secrets.token_hex(32)


def create_validity_window(
    max_timeout_seconds: int,
    now: Optional[int] = None,
) -> tuple[int, int]:
    """Create (validAfter, validBefore) timestamps around *now*"""
    if now is None:
        now = int(time.time())
    return now - CLOCK_SKEW_SECONDS, now + int(max_timeout_seconds)


def build_authorization_message(
    from_address: str,
    to: str,
    value: str | int,
    valid_after: str | int,
    valid_before: str | int,
    nonce: Optional[str] = None,
) -> TransferAuthorizationMessage:
    """
    Build a TransferWithAuthorization message.

    A fresh nonce is generated when none is supplied.
    """
    return TransferAuthorizationMessage(
        from_address=from_address,
        to=to,
        value=int(value),
        valid_after=int(valid_after),
        valid_before=int(valid_before),
        nonce=nonce if nonce is not None else generate_nonce(),
    )


def build_typed_data(
    domain: Eip712Domain,
    message: TransferAuthorizationMessage,
) -> dict[str, Any]:
    """Assemble the full typed-data structure handed to a signer"""
    return {
        "types": {"EIP712Domain": EIP712_DOMAIN_TYPE, **TRANSFER_WITH_AUTHORIZATION_TYPES},
        "domain": domain.to_dict(),
        "primaryType": TRANSFER_WITH_AUTHORIZATION_PRIMARY_TYPE,
        "message": message.to_dict(),
    }


def typed_data_to_json(typed_data: dict[str, Any]) -> dict[str, Any]:
    """JSON-safe copy of typed data for remote signers (ints and bytes as strings)"""
    message = {key: _json_value(value) for key, value in typed_data["message"].items()}
    return {**typed_data, "message": message}


def _json_value(value: Any) -> Any:
    if isinstance(value, bytes):
        return "0x" + value.hex()
    if isinstance(value, int):
        return str(value)
    return value
