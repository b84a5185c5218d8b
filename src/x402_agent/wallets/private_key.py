"""
PrivateKeyWallet - in-memory key wallet for automated agents
"""

import logging
import os
from typing import Any, Optional

from eth_account import Account
from eth_account.messages import encode_typed_data

from x402_agent.exceptions import (
    SignatureCreationError,
    WalletNotAvailableError,
    WalletNotConnectedError,
)
from x402_agent.signing.eip712 import (
    Eip712Domain,
    TransferAuthorizationMessage,
    build_typed_data,
)

logger = logging.getLogger(__name__)

PRIVATE_KEY_ENV = "WALLET_PRIVATE_KEY"


class PrivateKeyWallet:
    """Wallet that signs locally with a raw private key"""

    def __init__(self, private_key: Optional[str] = None) -> None:
        self._configured_key = private_key
        self._account: Any = None

    async def connect(self, private_key: Optional[str] = None) -> None:
        """
        Load the key from the argument, the constructor or ``WALLET_PRIVATE_KEY``.

        Raises:
            WalletNotAvailableError: If no usable key is found
        """
        key = private_key or self._configured_key or os.environ.get(PRIVATE_KEY_ENV)
        if not key:
            raise WalletNotAvailableError(
                f"Private key required. Set {PRIVATE_KEY_ENV} or pass it to connect()"
            )
        if not key.startswith("0x"):
            key = "0x" + key

        try:
            self._account = Account.from_key(key)
        except Exception as e:
            raise WalletNotAvailableError(f"Invalid private key: {e}") from e

        logger.info(f"Private key wallet connected: {self._account.address}")

    async def disconnect(self) -> None:
        self._account = None

    async def is_connected(self) -> bool:
        return self._account is not None

    async def get_address(self) -> str:
        if self._account is None:
            raise WalletNotConnectedError()
        return self._account.address

    async def sign_typed_data(
        self,
        domain: Eip712Domain,
        message: TransferAuthorizationMessage,
    ) -> str:
        """Sign EIP-712 typed data."""
        if self._account is None:
            raise WalletNotConnectedError()

        try:
            encoded = encode_typed_data(full_message=build_typed_data(domain, message))
            signed = self._account.sign_message(encoded)
        except Exception as e:
            raise SignatureCreationError(f"Failed to sign typed data: {e}") from e

        signature = signed.signature.hex()
        return signature if signature.startswith("0x") else "0x" + signature
