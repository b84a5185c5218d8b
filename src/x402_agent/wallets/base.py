"""
Wallet capability interface
"""

from typing import Protocol, runtime_checkable

from x402_agent.signing.eip712 import Eip712Domain, TransferAuthorizationMessage


@runtime_checkable
class WalletProvider(Protocol):
    """
    Anything that can hold an address and sign TransferWithAuthorization data.

    ``sign_typed_data`` distinguishes three failures:
    WalletNotConnectedError (connect, then sign again), UserRejectedError
    (terminal) and WalletTransportError (retryable).
    """

    async def get_address(self) -> str:
        """Return the connected address; raises WalletNotConnectedError otherwise"""
        ...

    async def sign_typed_data(
        self,
        domain: Eip712Domain,
        message: TransferAuthorizationMessage,
    ) -> str:
        """Return a 0x-prefixed 65-byte signature"""
        ...

    async def is_connected(self) -> bool: ...

    async def connect(self) -> None: ...

    async def disconnect(self) -> None: ...
