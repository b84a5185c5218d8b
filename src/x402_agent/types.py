"""
Type definitions for the x402 gateway protocol
"""

import re
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

X402_VERSION = 1

ProviderType = Literal["database", "api", "both"]


class Eip712DomainConfig(BaseModel):
    """Typed-data domain descriptor advertised by the gateway"""

    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = None
    version: Optional[str] = None
    chain_id: int = Field(alias="chainId")
    verifying_contract: str = Field(alias="verifyingContract")


class PaymentRequirementExtra(BaseModel):
    """Extra information in a payment requirement"""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    payment_request_id: Optional[str] = Field(None, alias="paymentRequestId")
    estimated_cost: Optional[str] = Field(None, alias="estimatedCost")
    eip712: Optional[Eip712DomainConfig] = None
    leg: Optional[str] = None


class PaymentRequirement(BaseModel):
    """One accepted payment method offered by the gateway"""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    scheme: str
    network: str
    max_amount_required: str = Field(alias="maxAmountRequired")
    asset: str
    pay_to: str = Field(alias="payTo")
    resource: Optional[str] = None
    description: str = ""
    mime_type: Optional[str] = Field(None, alias="mimeType")
    output_schema: Optional[dict[str, Any]] = Field(None, alias="outputSchema")
    max_timeout_seconds: int = Field(alias="maxTimeoutSeconds")
    extra: Optional[PaymentRequirementExtra] = None

    @field_validator("max_amount_required")
    @classmethod
    def _check_atomic_amount(cls, value: str) -> str:
        if not re.fullmatch(r"\d+", value):
            raise ValueError(f"must be a whole number of atomic units, got {value!r}")
        return value


class PaymentRequired(BaseModel):
    """Payment required response (402)"""

    model_config = ConfigDict(populate_by_name=True)

    x402_version: int = Field(alias="x402Version")
    error: Optional[str] = None
    accepts: list[PaymentRequirement] = Field(default_factory=list)
    split_payment: bool = Field(False, alias="splitPayment")


class InsufficientCreditChallenge(BaseModel):
    """402 body returned when the prepaid balance is too low"""

    model_config = ConfigDict(populate_by_name=True)

    error: str
    minimum_required: str = Field(alias="minimumRequired")
    deposit_endpoint: str = Field(alias="depositEndpoint")


PaymentChallenge = Union[PaymentRequired, InsufficientCreditChallenge]


def is_insufficient_credit_error(body: Any) -> bool:
    """Return True if *body* has the insufficient-credit shape"""
    if not isinstance(body, dict):
        return False
    return all(
        isinstance(body.get(key), str) for key in ("error", "minimumRequired", "depositEndpoint")
    )


def parse_payment_challenge(body: Any) -> PaymentChallenge:
    """Parse a 402 body into the matching challenge model"""
    if is_insufficient_credit_error(body):
        return InsufficientCreditChallenge(**body)
    fields = dict(body) if isinstance(body, dict) else {}
    fields.setdefault("x402Version", X402_VERSION)
    return PaymentRequired(**fields)


class TransferAuthorization(BaseModel):
    """String-encoded TransferWithAuthorization message"""

    model_config = ConfigDict(populate_by_name=True)

    from_address: str = Field(alias="from")
    to: str
    value: str
    valid_after: str = Field(alias="validAfter")
    valid_before: str = Field(alias="validBefore")
    nonce: str


class PaymentPayloadData(BaseModel):
    """Signed authorization"""

    signature: str
    authorization: TransferAuthorization


class PaymentPayload(BaseModel):
    """Payment payload sent in the X-PAYMENT header"""

    model_config = ConfigDict(populate_by_name=True)

    x402_version: int = Field(X402_VERSION, alias="x402Version")
    scheme: str
    network: str
    payload: PaymentPayloadData


class SettlementReceipt(BaseModel):
    """Decoded X-PAYMENT-RESPONSE header"""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    success: Optional[bool] = None
    transaction: Optional[str] = None
    tx_hash: Optional[str] = Field(None, alias="txHash")
    network: Optional[str] = None
    error_reason: Optional[str] = Field(None, alias="errorReason")

    @property
    def transaction_hash(self) -> Optional[str]:
        return self.transaction or self.tx_hash


class CreditBalance(BaseModel):
    """Prepaid credit snapshot; the gateway is the authority"""

    model_config = ConfigDict(populate_by_name=True)

    agent_wallet: str = Field(alias="agentWallet")
    balance: str
    reserved: str
    available: str


class Provider(BaseModel):
    """Catalog entry"""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str
    name: str
    resource_name: Optional[str] = Field(None, alias="resourceName")
    resource_description: Optional[str] = Field(None, alias="resourceDescription")
    provider_type: Optional[ProviderType] = Field(None, alias="providerType")
    price_per_call: Optional[str] = Field(None, alias="pricePerCall")
    categories: Optional[list[str]] = None
    upstream_api_url: Optional[str] = Field(None, alias="upstreamApiUrl")


class ProviderSummary(BaseModel):
    """Compact catalog entry"""

    id: str
    name: str
    type: Optional[ProviderType] = None
    categories: Optional[list[str]] = None
    description: Optional[str] = None

    @classmethod
    def from_provider(cls, provider: Provider) -> "ProviderSummary":
        return cls(
            id=provider.id,
            name=provider.name,
            type=provider.provider_type,
            categories=provider.categories,
            description=provider.resource_description,
        )


class ProviderPricing(BaseModel):
    """Row-based pricing configuration"""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    provider_id: str = Field(alias="providerId")
    base_price_per_1000_rows: float = Field(alias="basePricePer1000Rows")
    markup_multiplier: float = Field(alias="markupMultiplier")
    created_at: Optional[str] = Field(None, alias="createdAt")
    updated_at: Optional[str] = Field(None, alias="updatedAt")


class QueryResult(BaseModel):
    """Result body of /api/query"""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    rows: list[Any] = Field(default_factory=list)
    row_count: Optional[int] = Field(None, alias="rowCount")
    estimated_cost: Optional[str] = Field(None, alias="estimatedCost")
    actual_cost: Optional[str] = Field(None, alias="actualCost")
    execution_time: Optional[float] = Field(None, alias="executionTime")
    settlement: Optional[SettlementReceipt] = None


class DepositResult(BaseModel):
    """Result body of /api/credits/deposit"""

    model_config = ConfigDict(populate_by_name=True)

    deposited: Optional[str] = None
    balance: Optional[CreditBalance] = None
    transaction: Optional[str] = None


class GatewayResponse(BaseModel):
    """Outcome of a single gateway exchange"""

    model_config = ConfigDict(populate_by_name=True)

    status: int
    data: Any = None
    payment_required: Optional[PaymentChallenge] = Field(None, alias="paymentRequired")
    payment_response_header: Optional[str] = Field(None, alias="paymentResponseHeader")


# ---------------------------------------------------------------------------
# Outcome values returned across the orchestrator boundary
# ---------------------------------------------------------------------------

FailureReason = Literal[
    "validation",
    "wallet_not_connected",
    "user_rejected",
    "timeout",
    "transport",
    "gateway",
    "settlement_failed",
    "insufficient_credit",
    "deposit_failed",
    "no_payment_method",
    "unexpected_response",
]


class Outcome(BaseModel):
    """Base outcome: success flag plus an optional tagged failure"""

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    error: Optional[str] = None
    reason: Optional[FailureReason] = None


class DepositInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    deposited: Optional[str] = None
    tx_hash: Optional[str] = Field(None, alias="txHash")


class PaymentResult(Outcome):
    """Result of a paid API call"""

    data: Any = None
    cost: Optional[str] = None
    tx_hash: Optional[str] = Field(None, alias="txHash")
    truncated: Optional[bool] = None
    original_size_bytes: Optional[int] = Field(None, alias="originalSizeBytes")


class QueryOutcome(Outcome):
    """Result of a paid database query"""

    rows: Optional[list[Any]] = None
    row_count: Optional[int] = Field(None, alias="rowCount")
    estimated_cost: Optional[str] = Field(None, alias="estimatedCost")
    actual_cost: Optional[str] = Field(None, alias="actualCost")
    execution_time: Optional[float] = Field(None, alias="executionTime")
    tx_hash: Optional[str] = Field(None, alias="txHash")
    truncated: Optional[bool] = None
    original_size_bytes: Optional[int] = Field(None, alias="originalSizeBytes")
    deposit_info: Optional[DepositInfo] = Field(None, alias="depositInfo")


class DepositOutcome(Outcome):
    """Result of a credit deposit"""

    deposited: Optional[str] = None
    balance: Optional[CreditBalance] = None
    tx_hash: Optional[str] = Field(None, alias="txHash")


class CreditBalanceOutcome(Outcome):
    """Result of a balance read or deposit confirmation"""

    wallet: Optional[str] = None
    balance: Optional[str] = None
    reserved: Optional[str] = None
    available: Optional[str] = None


class CatalogOutcome(Outcome):
    """Result of a discovery call"""

    providers: Optional[list[ProviderSummary]] = None
    provider: Optional[Provider] = None
    pricing: Optional[ProviderPricing] = None
