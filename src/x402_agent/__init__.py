"""
x402-agent - Payment client for autonomous agents

Handles 402 challenges, EIP-3009 transfer authorizations, prepaid credits and
settlement relays against an x402 payment gateway.
"""

__version__ = "0.1.0"

from x402_agent.clients import PaymentOrchestrator, PaymentState
from x402_agent.config import NetworkConfig, Settings, load_settings
from x402_agent.exceptions import (
    ConfigurationError,
    DepositFailedError,
    GatewayHTTPError,
    InsufficientCreditError,
    NoPaymentMethodError,
    PaymentError,
    PaymentHeaderDecodeError,
    RelayError,
    RelayNotAvailableError,
    RelaySubmissionError,
    SessionTimeoutError,
    SettlementFailedError,
    SignatureCreationError,
    SignatureError,
    TransportError,
    TransportTimeoutError,
    UnsupportedNetworkError,
    UserRejectedError,
    ValidationError,
    WalletError,
    WalletNotAvailableError,
    WalletNotConnectedError,
    WalletTransportError,
    X402Error,
)
from x402_agent.gateway import GatewayClient
from x402_agent.types import (
    CreditBalance,
    PaymentPayload,
    PaymentRequired,
    PaymentRequirement,
    PaymentResult,
    QueryOutcome,
)
from x402_agent.wallets import PrivateKeyWallet, RemoteSessionWallet, WalletProvider

__all__ = [
    "__version__",
    # Orchestration
    "PaymentOrchestrator",
    "PaymentState",
    "GatewayClient",
    # Config
    "NetworkConfig",
    "Settings",
    "load_settings",
    # Wallets
    "WalletProvider",
    "PrivateKeyWallet",
    "RemoteSessionWallet",
    # Types
    "PaymentRequirement",
    "PaymentRequired",
    "PaymentPayload",
    "CreditBalance",
    "PaymentResult",
    "QueryOutcome",
    # Exceptions
    "X402Error",
    "ValidationError",
    "PaymentHeaderDecodeError",
    "ConfigurationError",
    "UnsupportedNetworkError",
    "WalletError",
    "WalletNotConnectedError",
    "WalletNotAvailableError",
    "UserRejectedError",
    "WalletTransportError",
    "SessionTimeoutError",
    "SignatureError",
    "SignatureCreationError",
    "TransportError",
    "TransportTimeoutError",
    "GatewayHTTPError",
    "PaymentError",
    "SettlementFailedError",
    "InsufficientCreditError",
    "DepositFailedError",
    "NoPaymentMethodError",
    "RelayError",
    "RelaySubmissionError",
    "RelayNotAvailableError",
]
