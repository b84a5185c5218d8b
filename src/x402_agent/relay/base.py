"""
Settlement relay interface and shared helpers
"""

import logging
from dataclasses import dataclass
from typing import Optional, Protocol, Sequence, runtime_checkable

from x402_agent.encoding import hex_to_bytes
from x402_agent.exceptions import RelayNotAvailableError, ValidationError
from x402_agent.types import PaymentPayload
from x402_agent.utils.address import is_evm_address, is_hex_bytes

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthorizationParams:
    """Signed transferWithAuthorization ready for submission"""

    from_address: str
    to: str
    value: int
    valid_after: int
    valid_before: int
    nonce: str
    signature: str

    @classmethod
    def from_payload(cls, payload: PaymentPayload) -> "AuthorizationParams":
        auth = payload.payload.authorization
        return cls(
            from_address=auth.from_address,
            to=auth.to,
            value=int(auth.value),
            valid_after=int(auth.valid_after),
            valid_before=int(auth.valid_before),
            nonce=auth.nonce,
            signature=payload.payload.signature,
        )


@dataclass
class TransactionResult:
    tx_hash: str
    confirmed: bool
    block_number: Optional[int] = None
    gas_used: Optional[int] = None


@dataclass(frozen=True)
class SignatureParts:
    v: int
    r: str
    s: str

    @property
    def r_bytes(self) -> bytes:
        return hex_to_bytes(self.r)

    @property
    def s_bytes(self) -> bytes:
        return hex_to_bytes(self.s)


def parse_signature(signature: str) -> SignatureParts:
    """
    Split a 65-byte signature into r (32), s (32) and v (1).

    v values of 0/1 are normalized to 27/28.
    """
    if not is_hex_bytes(signature, 65):
        raise ValidationError("Invalid signature format: must be 65 bytes hex")
    sig = signature[2:]
    v = int(sig[128:130], 16)
    if v < 27:
        v += 27
    return SignatureParts(v=v, r="0x" + sig[:64], s="0x" + sig[64:128])


def validate_authorization_params(params: AuthorizationParams) -> None:
    """
    Check address, signature and nonce formats.

    Raises:
        ValidationError: On the first malformed field
    """
    if not is_evm_address(params.from_address):
        raise ValidationError(f"Invalid from address: {params.from_address}")
    if not is_evm_address(params.to):
        raise ValidationError(f"Invalid to address: {params.to}")
    if not is_hex_bytes(params.signature, 65):
        raise ValidationError("Invalid signature format: must be 65 bytes hex")
    if not is_hex_bytes(params.nonce, 32):
        raise ValidationError("Invalid nonce format: must be 32 bytes hex")
    if params.value < 0:
        raise ValidationError(f"Invalid value: {params.value}")


@runtime_checkable
class TransactionRelay(Protocol):
    """Submits signed authorizations for on-chain execution"""

    relay_type: str

    async def submit_authorization(self, params: AuthorizationParams) -> TransactionResult: ...

    async def is_available(self) -> bool: ...


async def submit_with_fallback(
    relays: Sequence[TransactionRelay],
    params: AuthorizationParams,
) -> TransactionResult:
    """
    Submit through the first available relay, in the order given.

    Raises:
        ValidationError: If params are malformed (checked before any relay is contacted)
        RelayNotAvailableError: If no relay is available
        RelaySubmissionError: If the selected relay fails to submit
    """
    validate_authorization_params(params)

    for relay in relays:
        if await relay.is_available():
            logger.info(f"Submitting authorization via {relay.relay_type} relay")
            return await relay.submit_authorization(params)
        logger.warning(f"{relay.relay_type} relay unavailable, trying next")

    raise RelayNotAvailableError("any", "No settlement relay is available")
