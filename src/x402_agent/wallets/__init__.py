"""
Wallet providers
"""

from x402_agent.wallets.base import WalletProvider
from x402_agent.wallets.private_key import PrivateKeyWallet
from x402_agent.wallets.remote_session import (
    HttpSessionTransport,
    Pairing,
    RemoteSessionWallet,
    Session,
    SessionTransport,
)

__all__ = [
    "WalletProvider",
    "PrivateKeyWallet",
    "RemoteSessionWallet",
    "SessionTransport",
    "HttpSessionTransport",
    "Pairing",
    "Session",
]
