"""
x402 agent exception hierarchy
"""

from typing import Any


class X402Error(Exception):
    """x402 base exception"""

    pass


class ValidationError(X402Error):
    """Bad caller input, never retried"""

    pass


class PaymentHeaderDecodeError(ValidationError):
    """Payment header is not base64-encoded JSON"""

    pass


class ConfigurationError(X402Error):
    """Configuration-related error"""

    pass


class UnsupportedNetworkError(ConfigurationError):
    """Unsupported network or chain"""

    pass


class WalletError(X402Error):
    """Wallet-related error"""

    pass


class WalletNotConnectedError(WalletError):
    """Wallet operation attempted without a connection"""

    def __init__(self, message: str = "Wallet is not connected"):
        super().__init__(message)


class WalletNotAvailableError(WalletError):
    """No wallet provider could be set up"""

    def __init__(self, message: str = "No wallet provider available"):
        super().__init__(message)


class UserRejectedError(WalletError):
    """User rejected a wallet request"""

    def __init__(self, message: str = "User rejected the request", code: int | None = None):
        self.code = code
        super().__init__(message)


class WalletTransportError(WalletError):
    """Transport to a remote wallet failed"""

    pass


class SessionTimeoutError(WalletError):
    """Remote wallet session was not approved in time"""

    def __init__(self, message: str = "Wallet session connection timed out"):
        super().__init__(message)


class SignatureError(X402Error):
    """Signature-related error"""

    pass


class SignatureCreationError(SignatureError):
    """Signature creation failed"""

    pass


class TransportError(X402Error):
    """Network failure talking to the gateway or a relay"""

    def __init__(self, message: str, endpoint: str | None = None):
        self.endpoint = endpoint
        super().__init__(message)


class TransportTimeoutError(TransportError):
    """Request did not complete within its timeout"""

    pass


class GatewayHTTPError(X402Error):
    """Gateway answered with a non-402 error status"""

    def __init__(
        self,
        status_code: int,
        error_body: dict[str, Any] | None = None,
        method: str | None = None,
        endpoint: str | None = None,
    ):
        self.status_code = status_code
        self.error_body = error_body or {}
        self.method = method
        self.endpoint = endpoint
        detail = self.error_body.get("error") or self.error_body.get("message") or status_code
        super().__init__(f"Gateway request failed: {detail}")


class PaymentError(X402Error):
    """Payment flow error"""

    pass


class SettlementFailedError(PaymentError):
    """Gateway still demanded payment after a signed payment was sent"""

    pass


class InsufficientCreditError(PaymentError):
    """Prepaid balance too low"""

    def __init__(self, minimum_required: str, message: str | None = None):
        self.minimum_required = minimum_required
        super().__init__(message or f"Insufficient credit: {minimum_required} USDC required")


class DepositFailedError(PaymentError):
    """Credit deposit did not complete"""

    pass


class NoPaymentMethodError(PaymentError):
    """402 challenge offered no usable payment requirement"""

    def __init__(self, message: str = "No payment method available"):
        super().__init__(message)


class RelayError(X402Error):
    """Settlement relay error"""

    def __init__(self, message: str, relay_type: str):
        self.relay_type = relay_type
        super().__init__(message)


class RelaySubmissionError(RelayError):
    """Relay failed to submit an authorization"""

    def __init__(self, message: str, relay_type: str, cause: BaseException | None = None):
        self.cause = cause
        super().__init__(message, relay_type)


class RelayNotAvailableError(RelayError):
    """Relay is not reachable"""

    def __init__(self, relay_type: str, message: str | None = None):
        super().__init__(message or f"{relay_type} relay is not available", relay_type)
