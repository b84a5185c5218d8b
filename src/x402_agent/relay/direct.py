"""
DirectRelay - submits transferWithAuthorization straight to the chain over RPC
"""

import asyncio
import logging
from typing import Any, Optional

from eth_abi import encode
from eth_account import Account
from eth_utils import keccak, to_checksum_address

from x402_agent.abi import (
    TRANSFER_WITH_AUTHORIZATION_ABI,
    TRANSFER_WITH_AUTHORIZATION_SIGNATURE,
)
from x402_agent.config import NetworkConfig
from x402_agent.encoding import bytes_to_hex, hex_to_bytes
from x402_agent.exceptions import (
    ConfigurationError,
    RelaySubmissionError,
    UnsupportedNetworkError,
)
from x402_agent.relay.base import (
    AuthorizationParams,
    TransactionResult,
    parse_signature,
    validate_authorization_params,
)

logger = logging.getLogger(__name__)

RELAY_TYPE = "direct"

_ARG_TYPES = [
    "address",
    "address",
    "uint256",
    "uint256",
    "uint256",
    "bytes32",
    "uint8",
    "bytes32",
    "bytes32",
]


class DirectRelay:
    """
    Relay that talks to an RPC endpoint directly.

    Every submission is simulated with ``eth_call`` first. Without a submitter
    key the relay stops after the simulation.
    """

    relay_type = RELAY_TYPE

    def __init__(
        self,
        rpc_url: str,
        chain_id: int = NetworkConfig.DEFAULT_CHAIN_ID,
        private_key: Optional[str] = None,
        health_timeout: float = 5.0,
        receipt_timeout: int = 120,
    ) -> None:
        if not rpc_url:
            raise ConfigurationError("rpc_url is required for DirectRelay")
        try:
            self.usdc_contract = NetworkConfig.get_usdc_address(chain_id)
        except UnsupportedNetworkError as e:
            raise ConfigurationError(str(e)) from e

        if private_key and not private_key.startswith("0x"):
            private_key = "0x" + private_key

        self.rpc_url = rpc_url
        self.chain_id = chain_id
        self._private_key = private_key
        self._health_timeout = health_timeout
        self._receipt_timeout = receipt_timeout
        self._web3: Any = None

    def _get_web3(self) -> Any:
        """Lazy initialize async web3 client"""
        if self._web3 is None:
            from web3 import AsyncHTTPProvider, AsyncWeb3

            self._web3 = AsyncWeb3(AsyncHTTPProvider(self.rpc_url))
        return self._web3

    async def is_available(self) -> bool:
        """Return True if the RPC endpoint answers with the expected chain id"""
        w3 = self._get_web3()
        try:
            chain_id = await asyncio.wait_for(w3.eth.chain_id, timeout=self._health_timeout)
        except Exception as e:
            logger.warning(f"RPC endpoint unavailable: {e}")
            return False
        if chain_id != self.chain_id:
            logger.warning(f"RPC endpoint serves chain {chain_id}, expected {self.chain_id}")
            return False
        return True

    def build_call_data(self, params: AuthorizationParams) -> str:
        """ABI-encode a transferWithAuthorization call"""
        sig = parse_signature(params.signature)
        selector = keccak(text=TRANSFER_WITH_AUTHORIZATION_SIGNATURE)[:4]
        args = encode(
            _ARG_TYPES,
            [
                to_checksum_address(params.from_address),
                to_checksum_address(params.to),
                params.value,
                params.valid_after,
                params.valid_before,
                hex_to_bytes(params.nonce),
                sig.v,
                sig.r_bytes,
                sig.s_bytes,
            ],
        )
        return bytes_to_hex(selector + args)

    async def submit_authorization(self, params: AuthorizationParams) -> TransactionResult:
        """
        Simulate, then (with a submitter key) send the transaction.

        Raises:
            ValidationError: If params are malformed, before any network call
            RelaySubmissionError: If simulation or submission fails, or no key is set
        """
        validate_authorization_params(params)
        call_data = self.build_call_data(params)
        w3 = self._get_web3()

        try:
            await w3.eth.call({"to": self.usdc_contract, "data": call_data})
        except Exception as e:
            raise RelaySubmissionError(
                f"Failed to submit authorization: {e}", RELAY_TYPE, cause=e
            ) from e

        if not self._private_key:
            raise RelaySubmissionError(
                "Simulation succeeded but no submitter key is configured", RELAY_TYPE
            )

        try:
            return await self._send(w3, params)
        except RelaySubmissionError:
            raise
        except Exception as e:
            raise RelaySubmissionError(
                f"Failed to submit authorization: {e}", RELAY_TYPE, cause=e
            ) from e

    async def _send(self, w3: Any, params: AuthorizationParams) -> TransactionResult:
        account = Account.from_key(self._private_key)
        sig = parse_signature(params.signature)

        contract = w3.eth.contract(
            address=to_checksum_address(self.usdc_contract),
            abi=TRANSFER_WITH_AUTHORIZATION_ABI,
        )
        tx = await contract.functions.transferWithAuthorization(
            to_checksum_address(params.from_address),
            to_checksum_address(params.to),
            params.value,
            params.valid_after,
            params.valid_before,
            hex_to_bytes(params.nonce),
            sig.v,
            sig.r_bytes,
            sig.s_bytes,
        ).build_transaction(
            {
                "from": account.address,
                "nonce": await w3.eth.get_transaction_count(account.address),
                "chainId": self.chain_id,
            }
        )

        signed_tx = account.sign_transaction(tx)
        tx_hash = await w3.eth.send_raw_transaction(signed_tx.raw_transaction)
        tx_hash_hex = _hex(tx_hash)
        logger.info(f"transferWithAuthorization sent: {tx_hash_hex}")

        receipt = await w3.eth.wait_for_transaction_receipt(
            tx_hash, timeout=self._receipt_timeout
        )
        if receipt["status"] != 1:
            raise RelaySubmissionError(f"Transaction reverted: {tx_hash_hex}", RELAY_TYPE)

        return TransactionResult(
            tx_hash=tx_hash_hex,
            confirmed=True,
            block_number=receipt["blockNumber"],
            gas_used=receipt["gasUsed"],
        )


def _hex(value: Any) -> str:
    text = value.hex() if isinstance(value, (bytes, bytearray)) else str(value)
    return text if text.startswith("0x") else "0x" + text
