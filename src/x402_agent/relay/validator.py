"""
ValidatorRelay - submits authorizations through a validator relay network
"""

import logging
from typing import Any

import httpx

from x402_agent.config import NetworkConfig
from x402_agent.exceptions import RelayNotAvailableError, RelaySubmissionError
from x402_agent.relay.base import (
    AuthorizationParams,
    TransactionResult,
    parse_signature,
    validate_authorization_params,
)

logger = logging.getLogger(__name__)

RELAY_TYPE = "validator"

HEALTH_CHECK_TIMEOUT = 5.0


class ValidatorRelay:
    """Relay that posts signed authorizations to a validator network endpoint"""

    relay_type = RELAY_TYPE

    def __init__(
        self,
        endpoint: str = NetworkConfig.DEFAULT_RELAY_ENDPOINT,
        timeout: float = 30.0,
        chain_id: int = NetworkConfig.DEFAULT_CHAIN_ID,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.endpoint = endpoint.rstrip("/")
        self.chain_id = chain_id
        self.usdc_contract = NetworkConfig.get_usdc_address(chain_id)
        self._timeout = timeout
        self._transport = transport
        self._http_client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client"""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                base_url=self.endpoint,
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client"""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def is_available(self) -> bool:
        """Ping ``/health`` with a short timeout of its own"""
        client = await self._get_client()
        try:
            response = await client.get("/health", timeout=HEALTH_CHECK_TIMEOUT)
        except httpx.HTTPError as e:
            logger.warning(f"Validator relay health check failed: {e}")
            return False
        return response.is_success

    def build_relay_request(self, params: AuthorizationParams) -> dict[str, Any]:
        sig = parse_signature(params.signature)
        return {
            "chainId": self.chain_id,
            "contract": self.usdc_contract,
            "method": "transferWithAuthorization",
            "params": {
                "from": params.from_address,
                "to": params.to,
                "value": str(params.value),
                "validAfter": str(params.valid_after),
                "validBefore": str(params.valid_before),
                "nonce": params.nonce,
                "v": sig.v,
                "r": sig.r,
                "s": sig.s,
            },
        }

    async def submit_authorization(self, params: AuthorizationParams) -> TransactionResult:
        """
        Submit via the validator network.

        Raises:
            ValidationError: If params are malformed, before any network call
            RelayNotAvailableError: If the health check fails
            RelaySubmissionError: If the relay rejects or fails the submission
        """
        validate_authorization_params(params)

        if not await self.is_available():
            raise RelayNotAvailableError(
                RELAY_TYPE, "Validator relay is not currently available"
            )

        client = await self._get_client()
        try:
            response = await client.post("/relay", json=self.build_relay_request(params))
        except httpx.HTTPError as e:
            raise RelaySubmissionError(f"Validator relay failed: {e}", RELAY_TYPE, cause=e) from e

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if not response.is_success:
            detail = body.get("error") or response.reason_phrase
            raise RelaySubmissionError(f"Validator relay failed: {detail}", RELAY_TYPE)

        if not body.get("success") or not body.get("txHash"):
            detail = body.get("error") or "No transaction hash returned"
            raise RelaySubmissionError(f"Validator relay failed: {detail}", RELAY_TYPE)

        logger.info(f"Validator relay accepted authorization: {body['txHash']}")
        return TransactionResult(tx_hash=body["txHash"], confirmed=True)
