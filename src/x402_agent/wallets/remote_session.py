"""
RemoteSessionWallet - signs through a paired remote wallet (e.g. a mobile app).

Pairing produces a URI the user approves out of band. Every signature request
is forwarded to the remote wallet and may wait on the user, so both pairing and
signing are bounded by timeouts.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

import httpx

from x402_agent.exceptions import (
    SessionTimeoutError,
    UserRejectedError,
    WalletError,
    WalletNotAvailableError,
    WalletNotConnectedError,
    WalletTransportError,
)
from x402_agent.signing.eip712 import (
    Eip712Domain,
    TransferAuthorizationMessage,
    build_typed_data,
    typed_data_to_json,
)

logger = logging.getLogger(__name__)

SIGN_TYPED_DATA_METHOD = "eth_signTypedData_v4"

# Remote error codes that mean the user declined
USER_REJECTED_CODES = (4001, 5000)


@dataclass
class Pairing:
    id: str
    uri: str


@dataclass
class Session:
    topic: str
    accounts: list[str] = field(default_factory=list)


class SessionTransport(Protocol):
    """Channel to the remote wallet"""

    async def create_pairing(self, chain_id: int, methods: list[str]) -> Pairing: ...

    async def wait_for_approval(self, pairing_id: str) -> Session: ...

    async def request(self, topic: str, chain_id: str, method: str, params: list[Any]) -> Any: ...

    async def disconnect(self, topic: str) -> None: ...


def raise_for_remote_error(error: Any) -> None:
    """Map a remote ``{code, message}`` error object to a wallet exception"""
    if not error:
        return
    if isinstance(error, dict):
        code = error.get("code")
        message = error.get("message") or "Remote wallet request failed"
    else:
        code, message = None, str(error)

    if code in USER_REJECTED_CODES:
        raise UserRejectedError(message, code=code)
    raise WalletError(f"Remote wallet error ({code}): {message}")


class HttpSessionTransport:
    """
    SessionTransport over an HTTP signing bridge.

    Endpoints:
        POST   /pairings                   -> {id, uri}
        GET    /pairings/{id}              -> {status, session?}
        POST   /sessions/{topic}/requests  -> {result} | {error: {code, message}}
        DELETE /sessions/{topic}
    """

    def __init__(
        self,
        base_url: str,
        headers: dict[str, str] | None = None,
        poll_interval: float = 2.0,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._headers = headers or {}
        self._poll_interval = poll_interval
        self._timeout = timeout
        self._transport = transport
        self._http_client: httpx.AsyncClient | None = None

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

    async def create_pairing(self, chain_id: int, methods: list[str]) -> Pairing:
        body = {
            "chainId": f"eip155:{chain_id}",
            "methods": methods,
            "events": ["accountsChanged", "chainChanged"],
        }
        data = await self._call("POST", "/pairings", json=body)
        if not data.get("uri") or not data.get("id"):
            raise WalletNotAvailableError("Failed to generate pairing URI")
        return Pairing(id=data["id"], uri=data["uri"])

    async def wait_for_approval(self, pairing_id: str) -> Session:
        """Poll the pairing until the user approves or rejects it"""
        while True:
            data = await self._call("GET", f"/pairings/{pairing_id}")
            status = data.get("status")
            if status == "approved":
                session = data.get("session") or {}
                return Session(topic=session["topic"], accounts=list(session.get("accounts", [])))
            if status == "rejected":
                raise UserRejectedError("User rejected the pairing")
            logger.debug(f"Pairing {pairing_id} status: {status}")
            await asyncio.sleep(self._poll_interval)

    async def request(self, topic: str, chain_id: str, method: str, params: list[Any]) -> Any:
        body = {"chainId": chain_id, "method": method, "params": params}
        data = await self._call("POST", f"/sessions/{topic}/requests", json=body)
        raise_for_remote_error(data.get("error"))
        return data.get("result")

    async def disconnect(self, topic: str) -> None:
        await self._call("DELETE", f"/sessions/{topic}")

    async def _call(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        client = await self._get_client()
        try:
            response = await client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise WalletTransportError(f"Session bridge unreachable: {e}") from e

        if response.status_code == 404 and path.startswith("/sessions/"):
            raise WalletNotConnectedError("Wallet session expired")
        if response.status_code >= 500:
            raise WalletTransportError(f"Session bridge error: HTTP {response.status_code}")
        if response.status_code >= 400:
            raise WalletError(f"Session bridge rejected request: HTTP {response.status_code}")

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise WalletTransportError(f"Invalid session bridge response: {e}") from e


class RemoteSessionWallet:
    """Wallet that forwards signing to a paired remote wallet"""

    def __init__(
        self,
        transport: SessionTransport,
        chain_id: int = 8453,
        connect_timeout: float = 120.0,
        request_timeout: float = 300.0,
    ) -> None:
        self._transport = transport
        self._chain_id = chain_id
        self._connect_timeout = connect_timeout
        self._request_timeout = request_timeout
        self._session: Optional[Session] = None
        self.pairing_uri: Optional[str] = None

    @property
    def session_topic(self) -> Optional[str]:
        return self._session.topic if self._session else None

    async def connect(self) -> None:
        """
        Pair with the remote wallet and wait for approval.

        Raises:
            SessionTimeoutError: If approval does not arrive within connect_timeout
            UserRejectedError: If the user declines the pairing
        """
        if self._session is not None:
            return

        pairing = await self._transport.create_pairing(self._chain_id, [SIGN_TYPED_DATA_METHOD])
        self.pairing_uri = pairing.uri
        logger.info(f"Waiting for wallet approval, pairing URI: {pairing.uri}")

        try:
            session = await asyncio.wait_for(
                self._transport.wait_for_approval(pairing.id),
                timeout=self._connect_timeout,
            )
        except asyncio.TimeoutError:
            raise SessionTimeoutError(
                f"Wallet session not approved within {self._connect_timeout:.0f}s"
            )

        self._session = session
        logger.info(f"Remote wallet session established: topic={session.topic}")

    async def disconnect(self) -> None:
        if self._session is not None:
            try:
                await self._transport.disconnect(self._session.topic)
            except WalletError as e:
                logger.warning(f"Failed to close wallet session: {e}")
        self._session = None

    async def close(self) -> None:
        """Release the session transport's resources"""
        close = getattr(self._transport, "close", None)
        if close is not None:
            await close()

    async def is_connected(self) -> bool:
        return self._session is not None

    async def get_address(self) -> str:
        if self._session is None:
            raise WalletNotConnectedError()

        prefix = f"eip155:{self._chain_id}:"
        for account in self._session.accounts:
            if account.startswith(prefix):
                return account[len(prefix) :]
        raise WalletNotConnectedError("No account found for configured chain")

    async def sign_typed_data(
        self,
        domain: Eip712Domain,
        message: TransferAuthorizationMessage,
    ) -> str:
        """
        Ask the remote wallet for an ``eth_signTypedData_v4`` signature.

        Raises:
            WalletNotConnectedError: If there is no session
            UserRejectedError: If the user declines
            SessionTimeoutError: If the user does not answer within request_timeout
            WalletTransportError: If the bridge cannot be reached
        """
        if self._session is None:
            raise WalletNotConnectedError()

        address = await self.get_address()
        typed_data = typed_data_to_json(build_typed_data(domain, message))

        logger.info("Requesting signature from remote wallet")
        try:
            signature = await asyncio.wait_for(
                self._transport.request(
                    self._session.topic,
                    f"eip155:{self._chain_id}",
                    SIGN_TYPED_DATA_METHOD,
                    [address, json.dumps(typed_data)],
                ),
                timeout=self._request_timeout,
            )
        except asyncio.TimeoutError:
            raise SessionTimeoutError(
                f"Signature request not answered within {self._request_timeout:.0f}s"
            )
        except WalletNotConnectedError:
            self._session = None
            raise

        if not isinstance(signature, str) or not signature:
            raise WalletError("Remote wallet returned no signature")
        return signature if signature.startswith("0x") else "0x" + signature
