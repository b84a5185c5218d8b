"""
GatewayClient - HTTP transport for the x402 gateway challenge/response exchange
"""

import asyncio
import logging
from typing import Any, Optional
from urllib.parse import quote

import httpx
from pydantic import ValidationError as ModelValidationError

from x402_agent.config import NetworkConfig
from x402_agent.encoding import decode_payment_payload, encode_payment_payload
from x402_agent.exceptions import (
    GatewayHTTPError,
    TransportError,
    TransportTimeoutError,
)
from x402_agent.types import (
    CreditBalance,
    GatewayResponse,
    Provider,
    ProviderPricing,
    ProviderType,
    SettlementReceipt,
    parse_payment_challenge,
)
from x402_agent.utils.retry import retry_with_backoff

logger = logging.getLogger(__name__)

PAYMENT_HEADER = "X-PAYMENT"
PAYMENT_RESPONSE_HEADER = "X-PAYMENT-RESPONSE"

QUERY_ENDPOINT = "/api/query"
PROXY_ENDPOINT = "/api/proxy"
DEPOSIT_ENDPOINT = "/api/credits/deposit"
CONFIRM_DEPOSIT_ENDPOINT = "/api/credits/confirm-deposit"


class GatewayClient:
    """
    Client for the x402 payment gateway.

    A 402 answer is returned as a normal ``GatewayResponse`` carrying the parsed
    challenge. Other non-2xx answers raise ``GatewayHTTPError``; network faults
    raise ``TransportError`` and timeouts ``TransportTimeoutError``.
    """

    def __init__(
        self,
        base_url: str = NetworkConfig.DEFAULT_GATEWAY_URL,
        headers: dict[str, str] | None = None,
        timeout: float = 60.0,
        retry_max_attempts: int = 3,
        retry_base_delay: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize gateway client.

        Args:
            base_url: Gateway base URL
            headers: Extra HTTP headers sent on every request
            timeout: Default per-request timeout in seconds
            retry_max_attempts: Attempts for idempotent GET requests
            retry_base_delay: First backoff delay for GET retries
            transport: Optional httpx transport (used by tests)
        """
        self._base_url = base_url.rstrip("/")
        self._headers = headers or {}
        self._timeout = timeout
        self._retry_max_attempts = retry_max_attempts
        self._retry_base_delay = retry_base_delay
        self._transport = transport
        self._http_client: httpx.AsyncClient | None = None

    @property
    def base_url(self) -> str:
        return self._base_url

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client"""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                base_url=self._base_url,
                headers=self._headers,
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client"""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    # ------------------------------------------------------------------
    # Challenge/response exchange
    # ------------------------------------------------------------------

    async def send(
        self,
        endpoint: str,
        body: dict[str, Any],
        payment: Any = None,
        timeout: Optional[float] = None,
    ) -> GatewayResponse:
        """
        POST *body* to *endpoint*, optionally with a payment header.

        Args:
            endpoint: Gateway path, e.g. ``/api/query``
            body: JSON request body
            payment: Already-encoded header value, a PaymentPayload, or a
                ``{leg: PaymentPayload}`` mapping
            timeout: Overall timeout for this call; the in-flight request is
                cancelled when it expires

        Returns:
            GatewayResponse with either ``data`` (2xx) or ``payment_required`` (402)
        """
        headers = {"Content-Type": "application/json"}
        if payment is not None:
            headers[PAYMENT_HEADER] = (
                payment if isinstance(payment, str) else encode_payment_payload(payment)
            )

        effective_timeout = timeout if timeout is not None else self._timeout
        logger.info(f"POST {endpoint} (payment={'yes' if payment is not None else 'no'})")

        client = await self._get_client()
        try:
            response = await asyncio.wait_for(
                client.post(endpoint, json=body, headers=headers),
                timeout=effective_timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise TransportTimeoutError(
                f"Request to {endpoint} timed out after {effective_timeout}s", endpoint
            ) from e
        except httpx.TransportError as e:
            raise TransportError(f"Request to {endpoint} failed: {e}", endpoint) from e

        logger.info(f"Received response: status={response.status_code}")

        if response.status_code == 402:
            body_json = _json_or_none(response)
            try:
                challenge = parse_payment_challenge(body_json)
            except ModelValidationError as e:
                logger.error(f"Malformed 402 body from {endpoint}: {e}")
                raise GatewayHTTPError(
                    402,
                    {"error": "Malformed payment challenge"},
                    method="POST",
                    endpoint=endpoint,
                ) from e
            return GatewayResponse(status=402, payment_required=challenge)

        if not response.is_success:
            raise GatewayHTTPError(
                response.status_code,
                _error_body(response),
                method="POST",
                endpoint=endpoint,
            )

        return GatewayResponse(
            status=response.status_code,
            data=_json_or_none(response),
            payment_response_header=response.headers.get(PAYMENT_RESPONSE_HEADER),
        )

    async def query_database(
        self,
        publisher_id: str,
        agent_wallet: str,
        sql: str,
        payment: Any = None,
        timeout: Optional[float] = None,
    ) -> GatewayResponse:
        """Submit a SQL query to a database publisher"""
        body = {"publisherId": publisher_id, "agentWallet": agent_wallet, "sql": sql}
        return await self.send(QUERY_ENDPOINT, body, payment=payment, timeout=timeout)

    async def proxy_request(
        self,
        provider_id: str,
        agent_wallet: str,
        request: dict[str, Any],
        payment: Any = None,
    ) -> GatewayResponse:
        """Forward an API call to an upstream provider through the gateway"""
        body = {
            "providerId": provider_id,
            "agentWallet": agent_wallet,
            "request": {
                "method": request.get("method") or "GET",
                "path": request["path"],
                "body": request.get("body"),
                "headers": request.get("headers"),
            },
        }
        return await self.send(PROXY_ENDPOINT, body, payment=payment)

    async def deposit_credits(
        self,
        amount: str,
        agent_wallet: str,
        payment: Any = None,
    ) -> GatewayResponse:
        """Request a prepaid credit deposit of *amount* USDC"""
        body = {"amount": amount, "agentWallet": agent_wallet}
        return await self.send(DEPOSIT_ENDPOINT, body, payment=payment)

    async def confirm_deposit(self, agent_wallet: str, tx_hash: str, amount: str) -> CreditBalance:
        """Credit a deposit that was already settled on-chain"""
        body = {"agentWallet": agent_wallet, "txHash": tx_hash, "amount": amount}
        result = await self.send(CONFIRM_DEPOSIT_ENDPOINT, body)
        if result.status == 402 or not isinstance(result.data, dict):
            raise GatewayHTTPError(
                result.status,
                {"error": "Unexpected response to deposit confirmation"},
                method="POST",
                endpoint=CONFIRM_DEPOSIT_ENDPOINT,
            )
        return CreditBalance(**result.data)

    # ------------------------------------------------------------------
    # Discovery and balance reads
    # ------------------------------------------------------------------

    async def get_credit_balance(self, wallet: str) -> CreditBalance:
        data = await self._get_object(f"/api/credits/{quote(wallet, safe='')}")
        return CreditBalance(**data)

    async def list_providers(
        self,
        category: Optional[str] = None,
        provider_type: Optional[ProviderType] = None,
    ) -> list[Provider]:
        params = {}
        if category:
            params["category"] = category
        if provider_type:
            params["type"] = provider_type
        path = "/api/catalog"
        data = await self._get_object(path, params=params or None)
        items = data.get("providers", [])
        if not isinstance(items, list) or not all(isinstance(item, dict) for item in items):
            raise _malformed(path, "Catalog providers must be a list of objects")
        return [Provider(**item) for item in items]

    async def get_provider(self, provider_id: str) -> Provider:
        data = await self._get_object(f"/api/catalog/{quote(provider_id, safe='')}")
        return Provider(**data)

    async def get_provider_pricing(self, provider_id: str) -> ProviderPricing:
        path = f"/api/catalog/{quote(provider_id, safe='')}/pricing"
        data = await self._get_object(path)
        pricing = data.get("pricing", data)
        if not isinstance(pricing, dict):
            raise _malformed(path, "Provider pricing must be an object")
        return ProviderPricing(**pricing)

    def decode_payment_response(self, header: str) -> SettlementReceipt:
        """
        Decode an X-PAYMENT-RESPONSE header.

        Raises:
            PaymentHeaderDecodeError: If the header is not base64-encoded JSON
        """
        return decode_payment_payload(header, SettlementReceipt)

    async def _get(self, path: str, params: dict[str, str] | None = None) -> Any:
        """GET with retry on transient failures"""
        return await retry_with_backoff(
            lambda: self._get_once(path, params),
            max_attempts=self._retry_max_attempts,
            base_delay=self._retry_base_delay,
        )

    async def _get_object(self, path: str, params: dict[str, str] | None = None) -> dict[str, Any]:
        """GET a JSON object body"""
        data = await self._get(path, params)
        if not isinstance(data, dict):
            raise _malformed(path, f"Expected a JSON object, got {type(data).__name__}")
        return data

    async def _get_once(self, path: str, params: dict[str, str] | None) -> Any:
        client = await self._get_client()
        try:
            response = await client.get(path, params=params)
        except httpx.TimeoutException as e:
            raise TransportTimeoutError(f"Request to {path} timed out", path) from e
        except httpx.TransportError as e:
            raise TransportError(f"Request to {path} failed: {e}", path) from e

        if not response.is_success:
            raise GatewayHTTPError(
                response.status_code,
                _error_body(response),
                method="GET",
                endpoint=path,
            )
        data = _json_or_none(response)
        if data is None:
            raise GatewayHTTPError(
                response.status_code,
                {"error": "Gateway returned an empty or non-JSON body"},
                method="GET",
                endpoint=path,
            )
        return data


def _malformed(path: str, message: str) -> GatewayHTTPError:
    logger.error(f"Malformed body from {path}: {message}")
    return GatewayHTTPError(200, {"error": message}, method="GET", endpoint=path)


def _json_or_none(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        logger.warning(f"Non-JSON response body: {response.text[:200]}")
        return None


def _error_body(response: httpx.Response) -> dict[str, Any]:
    body = _json_or_none(response)
    if isinstance(body, dict):
        return body
    return {"error": response.text[:500] or "Unknown error"}
