"""
PaymentOrchestrator - drives the x402 payment flow for an agent.

Each public operation runs a short-lived ``PaymentAttempt`` through these states:

    IDLE -> REQUEST_SENT -> SETTLED | CHALLENGE_RECEIVED
    CHALLENGE_RECEIVED -> INSUFFICIENT_CREDIT | AUTHORIZING
    AUTHORIZING -> SIGNED -> RETRY_SENT -> SETTLED | SETTLEMENT_FAILED
    INSUFFICIENT_CREDIT -> AUTO_DEPOSITING -> SETTLED | DEPOSIT_FAILED

Failures never cross the public boundary as exceptions: every operation returns
an outcome model with ``success``, ``error`` and a ``reason`` tag.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TypeVar

from pydantic import ValidationError as ModelValidationError

from x402_agent.config import NetworkConfig, Settings
from x402_agent.encoding import encode_payment_payload
from x402_agent.exceptions import (
    ConfigurationError,
    DepositFailedError,
    GatewayHTTPError,
    InsufficientCreditError,
    NoPaymentMethodError,
    PaymentError,
    PaymentHeaderDecodeError,
    RelayError,
    SessionTimeoutError,
    SettlementFailedError,
    SignatureError,
    TransportError,
    TransportTimeoutError,
    UserRejectedError,
    ValidationError,
    WalletError,
    WalletNotAvailableError,
    WalletNotConnectedError,
    WalletTransportError,
    X402Error,
)
from x402_agent.gateway.client import GatewayClient
from x402_agent.relay import DirectRelay, TransactionRelay, ValidatorRelay
from x402_agent.signing.eip712 import (
    Eip712Domain,
    TransferAuthorizationMessage,
    build_authorization_message,
    build_domain,
    create_validity_window,
)
from x402_agent.types import (
    X402_VERSION,
    CatalogOutcome,
    CreditBalanceOutcome,
    DepositInfo,
    DepositOutcome,
    DepositResult,
    FailureReason,
    GatewayResponse,
    InsufficientCreditChallenge,
    Outcome,
    PaymentChallenge,
    PaymentPayload,
    PaymentPayloadData,
    PaymentRequired,
    PaymentRequirement,
    PaymentResult,
    ProviderSummary,
    ProviderType,
    QueryOutcome,
    QueryResult,
    SettlementReceipt,
)
from x402_agent.utils.address import is_tx_hash
from x402_agent.utils.amounts import decimal_to_atomic, format_usdc, is_positive_amount
from x402_agent.utils.retry import retry_with_backoff
from x402_agent.utils.truncate import DEFAULT_MAX_CHARS, MIN_MAX_CHARS, truncate_response
from x402_agent.wallets.base import WalletProvider

logger = logging.getLogger(__name__)

OutcomeT = TypeVar("OutcomeT", bound=Outcome)

SendFn = Callable[[Optional[str]], Awaitable[GatewayResponse]]

USER_REJECTED_MESSAGE = "User rejected the payment request"


class PaymentState(str, Enum):
    IDLE = "idle"
    REQUEST_SENT = "request_sent"
    SETTLED = "settled"
    CHALLENGE_RECEIVED = "challenge_received"
    INSUFFICIENT_CREDIT = "insufficient_credit"
    AUTO_DEPOSITING = "auto_depositing"
    DEPOSIT_FAILED = "deposit_failed"
    AUTHORIZING = "authorizing"
    SIGNED = "signed"
    RETRY_SENT = "retry_sent"
    SETTLEMENT_FAILED = "settlement_failed"


@dataclass
class PaymentAttempt:
    """Request-scoped state for one logical operation"""

    operation: str
    state: PaymentState = PaymentState.IDLE
    agent_wallet: Optional[str] = None
    signatures: int = 0
    cost_atomic: Optional[int] = None
    deposit: Optional[DepositInfo] = None
    history: list[PaymentState] = field(default_factory=list)

    def transition(self, state: PaymentState) -> None:
        logger.info(f"[{self.operation}] {self.state.value} -> {state.value}")
        self.history.append(self.state)
        self.state = state


def failure_reason(error: BaseException) -> FailureReason:
    """Map an internal exception to the outcome reason tag"""
    if isinstance(error, UserRejectedError):
        return "user_rejected"
    if isinstance(error, (SessionTimeoutError, TransportTimeoutError)):
        return "timeout"
    if isinstance(error, (WalletNotConnectedError, WalletNotAvailableError)):
        return "wallet_not_connected"
    if isinstance(error, (WalletTransportError, TransportError, RelayError)):
        return "transport"
    if isinstance(error, WalletError):
        return "wallet_not_connected"
    if isinstance(error, (ValidationError, ConfigurationError, SignatureError)):
        return "validation"
    if isinstance(error, GatewayHTTPError):
        return "gateway"
    if isinstance(error, SettlementFailedError):
        return "settlement_failed"
    if isinstance(error, InsufficientCreditError):
        return "insufficient_credit"
    if isinstance(error, DepositFailedError):
        return "deposit_failed"
    if isinstance(error, NoPaymentMethodError):
        return "no_payment_method"
    if isinstance(error, PaymentError):
        return "gateway"
    return "unexpected_response"


def validate_select_query(publisher_id: str, sql: str) -> Optional[str]:
    if not publisher_id:
        return "publisher_id is required"
    if not sql or not sql.strip():
        return "sql is required"
    if not sql.strip().upper().startswith("SELECT"):
        return "Only SELECT queries are allowed"
    return None


class PaymentOrchestrator:
    """
    Pays for gateway resources on behalf of an agent.

    Holds no per-call mutable state, so concurrent operations on one
    orchestrator are independent; each builds its own nonce and attempt.
    """

    def __init__(
        self,
        wallet: WalletProvider,
        gateway: GatewayClient,
        max_response_chars: int = DEFAULT_MAX_CHARS,
        retry_max_attempts: int = 3,
        retry_base_delay: float = 1.0,
        query_timeout: Optional[float] = None,
        deposit_wallet: Optional[str] = None,
    ) -> None:
        if max_response_chars < MIN_MAX_CHARS:
            raise ConfigurationError(f"max_response_chars must be at least {MIN_MAX_CHARS}")
        self._wallet = wallet
        self._gateway = gateway
        self._max_response_chars = max_response_chars
        self._retry_max_attempts = retry_max_attempts
        self._retry_base_delay = retry_base_delay
        self._query_timeout = query_timeout
        self._deposit_wallet = deposit_wallet

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        wallet: Optional[WalletProvider] = None,
    ) -> "PaymentOrchestrator":
        """Build an orchestrator, gateway client and (unless given) wallet from settings"""
        gateway = GatewayClient(
            settings.gateway_url,
            timeout=settings.request_timeout_seconds,
            retry_max_attempts=settings.retry_max_attempts,
            retry_base_delay=settings.retry_base_delay_seconds,
        )
        return cls(
            wallet=wallet if wallet is not None else create_wallet(settings),
            gateway=gateway,
            max_response_chars=settings.max_response_chars,
            retry_max_attempts=settings.retry_max_attempts,
            retry_base_delay=settings.retry_base_delay_seconds,
            query_timeout=settings.request_timeout_seconds,
            deposit_wallet=settings.gateway_deposit_wallet,
        )

    @property
    def wallet(self) -> WalletProvider:
        return self._wallet

    @property
    def gateway(self) -> GatewayClient:
        return self._gateway

    async def close(self) -> None:
        """Close the gateway client and, where it holds one, the wallet's transport"""
        await self._gateway.close()
        close_wallet = getattr(self._wallet, "close", None)
        if close_wallet is not None:
            await close_wallet()

    # ------------------------------------------------------------------
    # Paid operations
    # ------------------------------------------------------------------

    async def pay_for_query(self, provider_id: str, request: dict[str, Any]) -> PaymentResult:
        """
        Call an upstream API through the gateway, paying if challenged.

        Args:
            provider_id: Catalog id of the API provider
            request: ``{method?, path, body?, headers?}`` forwarded upstream

        Returns:
            PaymentResult with the (possibly truncated) response data
        """
        if not provider_id:
            return _invalid(PaymentResult, "provider_id is required")
        if not request:
            return _invalid(PaymentResult, "request is required")
        if not request.get("path"):
            return _invalid(PaymentResult, "request.path is required")

        attempt = PaymentAttempt("pay_for_query")
        try:
            await self._ensure_wallet(attempt)

            async def send(payment: Optional[str]) -> GatewayResponse:
                return await self._gateway.proxy_request(
                    provider_id, attempt.agent_wallet, request, payment=payment
                )

            result = await self._execute(attempt, send)
        except (X402Error, ModelValidationError) as e:
            return self._failure(PaymentResult, e)

        receipt = self._decode_receipt(result.payment_response_header)
        truncated = truncate_response(result.data, self._max_response_chars)
        return PaymentResult(
            success=True,
            data=truncated.data,
            cost=format_usdc(str(attempt.cost_atomic)) if attempt.cost_atomic is not None else None,
            tx_hash=receipt.transaction_hash if receipt else None,
            truncated=truncated.truncated or None,
            original_size_bytes=truncated.original_size,
        )

    async def query_database(self, publisher_id: str, sql: str) -> QueryOutcome:
        """
        Run a paid SELECT against a database publisher.

        Prepaid publishers that report insufficient credit get one automatic
        deposit of the minimum required amount, then one re-issue of the query.
        """
        error = validate_select_query(publisher_id, sql)
        if error:
            return _invalid(QueryOutcome, error)

        attempt = PaymentAttempt("query_database")
        try:
            await self._ensure_wallet(attempt)

            async def send(payment: Optional[str]) -> GatewayResponse:
                return await self._gateway.query_database(
                    publisher_id,
                    attempt.agent_wallet,
                    sql,
                    payment=payment,
                    timeout=self._query_timeout,
                )

            result = await self._execute(attempt, send, allow_credit_deposit=True)
            if not isinstance(result.data, dict):
                return QueryOutcome(
                    success=False,
                    error="No data returned from gateway",
                    reason="unexpected_response",
                )
            query = QueryResult(**result.data)
        except (X402Error, ModelValidationError) as e:
            return self._failure(QueryOutcome, e)

        tx_hash = query.settlement.transaction_hash if query.settlement else None
        if tx_hash is None:
            receipt = self._decode_receipt(result.payment_response_header)
            tx_hash = receipt.transaction_hash if receipt else None

        truncated = truncate_response(query.rows, self._max_response_chars)
        return QueryOutcome(
            success=True,
            rows=truncated.data,
            row_count=query.row_count,
            estimated_cost=query.estimated_cost,
            actual_cost=query.actual_cost,
            execution_time=query.execution_time,
            tx_hash=tx_hash,
            truncated=truncated.truncated or None,
            original_size_bytes=truncated.original_size,
            deposit_info=attempt.deposit,
        )

    async def deposit_credits(self, amount: str) -> DepositOutcome:
        """Deposit *amount* USDC into the prepaid credit balance"""
        if not is_positive_amount(amount):
            return _invalid(DepositOutcome, "amount must be a positive decimal number")

        attempt = PaymentAttempt("deposit_credits")
        try:
            await self._ensure_wallet(attempt)
            return await self._deposit(attempt, amount)
        except (X402Error, ModelValidationError) as e:
            return self._failure(DepositOutcome, e)

    async def confirm_deposit(self, tx_hash: str, amount: str) -> CreditBalanceOutcome:
        """Credit a deposit already settled on-chain"""
        if not tx_hash:
            return _invalid(CreditBalanceOutcome, "txHash is required")
        if not is_tx_hash(tx_hash):
            return _invalid(
                CreditBalanceOutcome,
                "txHash must be a valid transaction hash (0x followed by 64 hex characters)",
            )
        if not is_positive_amount(amount):
            return _invalid(CreditBalanceOutcome, "amount must be a positive decimal number")

        attempt = PaymentAttempt("confirm_deposit")
        try:
            await self._ensure_wallet(attempt)
            balance = await self._gateway.confirm_deposit(attempt.agent_wallet, tx_hash, amount)
        except (X402Error, ModelValidationError) as e:
            return self._failure(CreditBalanceOutcome, e)
        return _balance_outcome(balance)

    async def check_credit_balance(self) -> CreditBalanceOutcome:
        attempt = PaymentAttempt("check_credit_balance")
        try:
            await self._ensure_wallet(attempt)
            balance = await self._gateway.get_credit_balance(attempt.agent_wallet)
        except (X402Error, ModelValidationError) as e:
            return self._failure(CreditBalanceOutcome, e)
        return _balance_outcome(balance)

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    async def list_providers(
        self,
        category: Optional[str] = None,
        provider_type: Optional[ProviderType] = None,
    ) -> CatalogOutcome:
        try:
            providers = await self._gateway.list_providers(category, provider_type)
        except (X402Error, ModelValidationError) as e:
            return self._failure(CatalogOutcome, e)
        return CatalogOutcome(
            success=True,
            providers=[ProviderSummary.from_provider(p) for p in providers],
        )

    async def get_provider_details(self, provider_id: str) -> CatalogOutcome:
        if not provider_id:
            return _invalid(CatalogOutcome, "provider_id is required")
        try:
            provider = await self._gateway.get_provider(provider_id)
        except (X402Error, ModelValidationError) as e:
            return self._failure(CatalogOutcome, e)
        return CatalogOutcome(success=True, provider=provider)

    async def get_provider_pricing(self, provider_id: str) -> CatalogOutcome:
        if not provider_id:
            return _invalid(CatalogOutcome, "provider_id is required")
        try:
            pricing = await self._gateway.get_provider_pricing(provider_id)
        except (X402Error, ModelValidationError) as e:
            return self._failure(CatalogOutcome, e)
        return CatalogOutcome(success=True, pricing=pricing)

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    async def _execute(
        self,
        attempt: PaymentAttempt,
        send: SendFn,
        allow_credit_deposit: bool = False,
        expected_amount: Optional[str] = None,
        expected_pay_to: Optional[str] = None,
    ) -> GatewayResponse:
        """Run one request through challenge, authorization and retry"""
        attempt.transition(PaymentState.REQUEST_SENT)
        result = await self._with_retry(lambda: send(None))
        if result.status != 402:
            attempt.transition(PaymentState.SETTLED)
            return result

        attempt.transition(PaymentState.CHALLENGE_RECEIVED)
        challenge = result.payment_required

        if isinstance(challenge, InsufficientCreditChallenge):
            if not allow_credit_deposit:
                raise InsufficientCreditError(challenge.minimum_required, challenge.error)
            attempt.transition(PaymentState.INSUFFICIENT_CREDIT)
            await self._auto_deposit(attempt, challenge)

            retried = await self._with_retry(lambda: send(None))
            if retried.status == 402:
                attempt.transition(PaymentState.DEPOSIT_FAILED)
                message = _challenge_error(retried.payment_required)
                raise InsufficientCreditError(
                    challenge.minimum_required,
                    message or "Query failed after deposit - insufficient balance",
                )
            attempt.transition(PaymentState.SETTLED)
            return retried

        attempt.transition(PaymentState.AUTHORIZING)
        header = await self._authorize(attempt, challenge, expected_amount, expected_pay_to)
        attempt.transition(PaymentState.SIGNED)

        attempt.transition(PaymentState.RETRY_SENT)
        # transport retries resend the same signed header
        paid = await self._with_retry(lambda: send(header))
        if paid.status == 402:
            attempt.transition(PaymentState.SETTLEMENT_FAILED)
            raise SettlementFailedError(
                _challenge_error(paid.payment_required) or "Payment settlement failed"
            )

        attempt.transition(PaymentState.SETTLED)
        return paid

    async def _authorize(
        self,
        attempt: PaymentAttempt,
        challenge: Optional[PaymentRequired],
        expected_amount: Optional[str],
        expected_pay_to: Optional[str] = None,
    ) -> str:
        """Sign the requirement(s) and return the encoded X-PAYMENT value"""
        if challenge is None or not challenge.accepts:
            raise NoPaymentMethodError()

        if challenge.split_payment:
            legs: dict[str, PaymentRequirement] = {}
            for requirement in challenge.accepts:
                leg = requirement.extra.leg if requirement.extra else None
                if leg and leg not in legs:
                    legs[leg] = requirement
            if len(legs) < 2:
                raise NoPaymentMethodError("Two-leg charge is missing a payment leg")

            logger.info(f"Signing two-leg charge: {', '.join(legs)}")
            payloads = {
                leg: await self._build_payment_payload(attempt, requirement)
                for leg, requirement in legs.items()
            }
            attempt.cost_atomic = sum(int(r.max_amount_required) for r in legs.values())
            return encode_payment_payload(payloads)

        requirement = challenge.accepts[0]
        if expected_amount is not None and requirement.max_amount_required != expected_amount:
            raise DepositFailedError(
                f"Gateway requested {requirement.max_amount_required} atomic units, "
                f"expected {expected_amount}"
            )
        if expected_pay_to is not None and requirement.pay_to.lower() != expected_pay_to.lower():
            raise DepositFailedError(
                f"Gateway asked for payment to {requirement.pay_to}, "
                f"expected deposit wallet {expected_pay_to}"
            )

        payload = await self._build_payment_payload(attempt, requirement)
        attempt.cost_atomic = int(requirement.max_amount_required)
        return encode_payment_payload(payload)

    async def _build_payment_payload(
        self,
        attempt: PaymentAttempt,
        requirement: PaymentRequirement,
    ) -> PaymentPayload:
        eip712 = requirement.extra.eip712 if requirement.extra else None
        domain = build_domain(
            chain_id=eip712.chain_id if eip712 else NetworkConfig.DEFAULT_CHAIN_ID,
            verifying_contract=eip712.verifying_contract if eip712 else requirement.asset,
            name=eip712.name if eip712 else None,
            version=eip712.version if eip712 else None,
        )
        valid_after, valid_before = create_validity_window(requirement.max_timeout_seconds)
        message = build_authorization_message(
            from_address=attempt.agent_wallet,
            to=requirement.pay_to,
            value=requirement.max_amount_required,
            valid_after=valid_after,
            valid_before=valid_before,
        )

        logger.debug(
            "Signing TransferWithAuthorization: from=%s, to=%s, value=%s, asset=%s",
            message.from_address,
            message.to,
            message.value,
            requirement.asset,
        )
        signature = await self._sign(domain, message)
        attempt.signatures += 1

        return PaymentPayload(
            x402_version=X402_VERSION,
            scheme=requirement.scheme,
            network=requirement.network,
            payload=PaymentPayloadData(
                signature=signature,
                authorization=message.to_authorization(),
            ),
        )

    async def _sign(self, domain: Eip712Domain, message: TransferAuthorizationMessage) -> str:
        """Sign, reconnecting once on a dropped wallet and retrying transport faults"""

        async def sign_once() -> str:
            try:
                return await self._wallet.sign_typed_data(domain, message)
            except WalletNotConnectedError:
                logger.info("Wallet not connected, reconnecting before signing")
                await self._wallet.connect()
                return await self._wallet.sign_typed_data(domain, message)

        return await retry_with_backoff(
            sign_once,
            max_attempts=self._retry_max_attempts,
            base_delay=self._retry_base_delay,
            should_retry=lambda e, _attempt: isinstance(e, WalletTransportError),
        )

    async def _auto_deposit(
        self,
        attempt: PaymentAttempt,
        challenge: InsufficientCreditChallenge,
    ) -> None:
        attempt.transition(PaymentState.AUTO_DEPOSITING)
        logger.info(f"Insufficient credit, depositing {challenge.minimum_required} USDC")

        deposit_attempt = PaymentAttempt("auto_deposit", agent_wallet=attempt.agent_wallet)
        try:
            outcome = await self._deposit(deposit_attempt, challenge.minimum_required)
        except UserRejectedError:
            raise
        except X402Error as e:
            attempt.transition(PaymentState.DEPOSIT_FAILED)
            raise DepositFailedError(
                f"Auto-deposit failed: {e}. "
                f"You need {challenge.minimum_required} USDC to use this publisher."
            ) from e

        attempt.signatures += deposit_attempt.signatures
        attempt.deposit = DepositInfo(deposited=outcome.deposited, tx_hash=outcome.tx_hash)

    async def _deposit(self, attempt: PaymentAttempt, amount: str) -> DepositOutcome:
        expected = decimal_to_atomic(amount)

        async def send(payment: Optional[str]) -> GatewayResponse:
            return await self._gateway.deposit_credits(amount, attempt.agent_wallet, payment=payment)

        result = await self._execute(
            attempt, send, expected_amount=expected, expected_pay_to=self._deposit_wallet
        )
        if not isinstance(result.data, dict):
            raise DepositFailedError("Deposit failed: no response data")

        deposit = DepositResult(**result.data)
        tx_hash = deposit.transaction
        if tx_hash is None:
            receipt = self._decode_receipt(result.payment_response_header)
            tx_hash = receipt.transaction_hash if receipt else None

        return DepositOutcome(
            success=True,
            deposited=deposit.deposited,
            balance=deposit.balance,
            tx_hash=tx_hash,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _ensure_wallet(self, attempt: PaymentAttempt) -> None:
        if attempt.agent_wallet is not None:
            return
        if not await self._wallet.is_connected():
            await self._wallet.connect()
        attempt.agent_wallet = await self._wallet.get_address()

    async def _with_retry(self, operation: Callable[[], Awaitable[GatewayResponse]]) -> GatewayResponse:
        return await retry_with_backoff(
            operation,
            max_attempts=self._retry_max_attempts,
            base_delay=self._retry_base_delay,
        )

    def _decode_receipt(self, header: Optional[str]) -> Optional[SettlementReceipt]:
        if not header:
            return None
        try:
            return self._gateway.decode_payment_response(header)
        except (PaymentHeaderDecodeError, ModelValidationError) as e:
            logger.warning(f"Could not decode settlement header: {e}")
            return None

    def _failure(self, outcome_cls: type[OutcomeT], error: BaseException) -> OutcomeT:
        reason = failure_reason(error)
        message = USER_REJECTED_MESSAGE if reason == "user_rejected" else str(error)
        logger.warning(f"Operation failed ({reason}): {message}")
        return outcome_cls(success=False, error=message, reason=reason)


def create_wallet(settings: Settings) -> WalletProvider:
    """Build the wallet selected by ``WALLET_TYPE``"""
    if settings.wallet_type == "remote_session":
        from x402_agent.wallets.remote_session import HttpSessionTransport, RemoteSessionWallet

        return RemoteSessionWallet(
            HttpSessionTransport(settings.session_bridge_url), chain_id=settings.chain_id
        )

    from x402_agent.wallets.private_key import PrivateKeyWallet

    return PrivateKeyWallet(settings.wallet_private_key)


def create_relays(settings: Settings) -> list[TransactionRelay]:
    """
    Build settlement relays in ``submit_with_fallback`` order.

    The direct RPC relay needs ``WALLET_PRIVATE_KEY`` to pay gas, so it is only
    included when a key is configured; the validator network relay is always last.
    """
    relays: list[TransactionRelay] = []
    if settings.wallet_private_key:
        relays.append(
            DirectRelay(
                settings.base_rpc_url,
                chain_id=settings.chain_id,
                private_key=settings.wallet_private_key,
            )
        )
    relays.append(
        ValidatorRelay(
            settings.relay_endpoint,
            timeout=settings.request_timeout_seconds,
            chain_id=settings.chain_id,
        )
    )
    return relays


def _invalid(outcome_cls: type[OutcomeT], message: str) -> OutcomeT:
    return outcome_cls(success=False, error=message, reason="validation")


def _challenge_error(challenge: Optional[PaymentChallenge]) -> Optional[str]:
    return challenge.error if challenge is not None else None


def _balance_outcome(balance: Any) -> CreditBalanceOutcome:
    return CreditBalanceOutcome(
        success=True,
        wallet=balance.agent_wallet,
        balance=balance.balance,
        reserved=balance.reserved,
        available=balance.available,
    )
