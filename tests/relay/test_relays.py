"""
Tests for settlement relays
"""

import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from eth_abi import decode
from eth_utils import keccak

from x402_agent.abi import TRANSFER_WITH_AUTHORIZATION_SIGNATURE
from x402_agent.exceptions import (
    ConfigurationError,
    RelayNotAvailableError,
    RelaySubmissionError,
    ValidationError,
)
from x402_agent.relay import (
    AuthorizationParams,
    DirectRelay,
    TransactionResult,
    ValidatorRelay,
    parse_signature,
    submit_with_fallback,
)
from x402_agent.types import PaymentPayload

TEST_PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
TEST_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
PAYEE_ADDRESS = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
USDC_ADDRESS = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"
NONCE = "0x" + "11" * 32
SIGNATURE = "0x" + "aa" * 32 + "bb" * 32 + "1c"


@pytest.fixture
def params():
    return AuthorizationParams(
        from_address=TEST_ADDRESS,
        to=PAYEE_ADDRESS,
        value=1000000,
        valid_after=1700000000,
        valid_before=1700000300,
        nonce=NONCE,
        signature=SIGNATURE,
    )


def replace(params, **changes):
    fields = {**params.__dict__, **changes}
    return AuthorizationParams(**fields)


class TestParseSignature:
    def test_splits_parts(self):
        sig = parse_signature(SIGNATURE)
        assert sig.r == "0x" + "aa" * 32
        assert sig.s == "0x" + "bb" * 32
        assert sig.v == 28

    @pytest.mark.parametrize("v_byte, expected", [("00", 27), ("01", 28), ("1b", 27)])
    def test_normalizes_v(self, v_byte, expected):
        assert parse_signature("0x" + "cd" * 64 + v_byte).v == expected

    def test_rejects_short_signature(self):
        with pytest.raises(ValidationError):
            parse_signature("0x" + "cd" * 64)


class TestAuthorizationParams:
    def test_from_payload(self):
        payload = PaymentPayload(
            scheme="exact",
            network="base",
            payload={
                "signature": SIGNATURE,
                "authorization": {
                    "from": TEST_ADDRESS,
                    "to": PAYEE_ADDRESS,
                    "value": "5000000",
                    "validAfter": "10",
                    "validBefore": "20",
                    "nonce": NONCE,
                },
            },
        )
        params = AuthorizationParams.from_payload(payload)
        assert params.value == 5000000
        assert params.valid_before == 20
        assert params.signature == SIGNATURE


class TestValidatorRelay:
    @pytest.mark.anyio
    async def test_submits_relay_request(self, params):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/health":
                return httpx.Response(200, json={"status": "ok"})
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"success": True, "txHash": "0x" + "12" * 32})

        relay = ValidatorRelay("https://relay.test", transport=httpx.MockTransport(handler))
        result = await relay.submit_authorization(params)
        await relay.close()

        assert result == TransactionResult(tx_hash="0x" + "12" * 32, confirmed=True)
        body = seen["body"]
        assert body["chainId"] == 8453
        assert body["contract"] == USDC_ADDRESS
        assert body["method"] == "transferWithAuthorization"
        assert body["params"]["value"] == "1000000"
        assert body["params"]["v"] == 28
        assert body["params"]["r"] == "0x" + "aa" * 32

    @pytest.mark.anyio
    async def test_invalid_params_fail_before_network(self, params):
        handler = MagicMock()
        relay = ValidatorRelay("https://relay.test", transport=httpx.MockTransport(handler))

        with pytest.raises(ValidationError):
            await relay.submit_authorization(replace(params, from_address="0x1234"))
        handler.assert_not_called()

    @pytest.mark.anyio
    async def test_unavailable(self, params):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503)

        relay = ValidatorRelay("https://relay.test", transport=httpx.MockTransport(handler))
        assert not await relay.is_available()
        with pytest.raises(RelayNotAvailableError):
            await relay.submit_authorization(params)

    @pytest.mark.anyio
    async def test_rejected_submission(self, params):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/health":
                return httpx.Response(200)
            return httpx.Response(200, json={"success": False, "error": "nonce already used"})

        relay = ValidatorRelay("https://relay.test", transport=httpx.MockTransport(handler))
        with pytest.raises(RelaySubmissionError, match="nonce already used"):
            await relay.submit_authorization(params)


def _mock_web3():
    w3 = MagicMock()
    w3.eth.call = AsyncMock(return_value=b"")
    w3.eth.get_transaction_count = AsyncMock(return_value=0)
    w3.eth.send_raw_transaction = AsyncMock(return_value=bytes.fromhex("34" * 32))
    w3.eth.wait_for_transaction_receipt = AsyncMock(
        return_value={"status": 1, "blockNumber": 42, "gasUsed": 60000}
    )
    function_call = w3.eth.contract.return_value.functions.transferWithAuthorization.return_value
    function_call.build_transaction = AsyncMock(
        return_value={
            "to": USDC_ADDRESS,
            "value": 0,
            "gas": 100000,
            "gasPrice": 1000000000,
            "nonce": 0,
            "chainId": 8453,
            "data": "0x",
        }
    )
    return w3


class TestDirectRelay:
    def test_requires_rpc_url(self):
        with pytest.raises(ConfigurationError):
            DirectRelay("")

    def test_rejects_unknown_chain(self):
        with pytest.raises(ConfigurationError):
            DirectRelay("https://rpc.test", chain_id=1)

    def test_build_call_data(self, params):
        data = DirectRelay("https://rpc.test").build_call_data(params)
        raw = bytes.fromhex(data[2:])

        assert raw[:4] == keccak(text=TRANSFER_WITH_AUTHORIZATION_SIGNATURE)[:4]
        assert data.startswith("0xe3ee160e")
        decoded = decode(
            ["address", "address", "uint256", "uint256", "uint256", "bytes32", "uint8", "bytes32", "bytes32"],
            raw[4:],
        )
        assert decoded[0].lower() == TEST_ADDRESS.lower()
        assert decoded[2] == 1000000
        assert decoded[6] == 28

    @pytest.mark.anyio
    async def test_is_available_checks_chain(self):
        async def chain_id():
            return 84532

        relay = DirectRelay("https://rpc.test")
        relay._web3 = MagicMock()
        relay._web3.eth.chain_id = chain_id()
        assert not await relay.is_available()

    @pytest.mark.anyio
    async def test_simulation_without_key(self, params):
        relay = DirectRelay("https://rpc.test")
        relay._web3 = _mock_web3()

        with pytest.raises(RelaySubmissionError, match="no submitter key"):
            await relay.submit_authorization(params)
        relay._web3.eth.call.assert_awaited_once()
        relay._web3.eth.send_raw_transaction.assert_not_awaited()

    @pytest.mark.anyio
    async def test_simulation_revert(self, params):
        relay = DirectRelay("https://rpc.test", private_key=TEST_PRIVATE_KEY)
        relay._web3 = _mock_web3()
        revert = ValueError("execution reverted: FiatTokenV2: invalid signature")
        relay._web3.eth.call.side_effect = revert

        with pytest.raises(RelaySubmissionError) as exc_info:
            await relay.submit_authorization(params)
        assert exc_info.value.cause is revert

    @pytest.mark.anyio
    async def test_submits_transaction(self, params):
        relay = DirectRelay("https://rpc.test", private_key=TEST_PRIVATE_KEY)
        relay._web3 = _mock_web3()

        result = await relay.submit_authorization(params)

        assert result.tx_hash == "0x" + "34" * 32
        assert result.confirmed
        assert result.block_number == 42
        relay._web3.eth.send_raw_transaction.assert_awaited_once()

    @pytest.mark.anyio
    async def test_reverted_transaction(self, params):
        relay = DirectRelay("https://rpc.test", private_key=TEST_PRIVATE_KEY)
        relay._web3 = _mock_web3()
        relay._web3.eth.wait_for_transaction_receipt.return_value = {
            "status": 0,
            "blockNumber": 42,
            "gasUsed": 60000,
        }

        with pytest.raises(RelaySubmissionError, match="reverted"):
            await relay.submit_authorization(params)

    @pytest.mark.anyio
    async def test_invalid_nonce_fails_before_network(self, params):
        relay = DirectRelay("https://rpc.test")
        relay._web3 = _mock_web3()

        with pytest.raises(ValidationError):
            await relay.submit_authorization(replace(params, nonce="0x1234"))
        relay._web3.eth.call.assert_not_awaited()


class TestSubmitWithFallback:
    def _relay(self, relay_type, available, result=None):
        relay = MagicMock()
        relay.relay_type = relay_type
        relay.is_available = AsyncMock(return_value=available)
        relay.submit_authorization = AsyncMock(return_value=result)
        return relay

    @pytest.mark.anyio
    async def test_uses_first_available(self, params):
        expected = TransactionResult(tx_hash="0x" + "56" * 32, confirmed=True)
        first = self._relay("validator", False)
        second = self._relay("direct", True, expected)

        assert await submit_with_fallback([first, second], params) == expected
        first.submit_authorization.assert_not_awaited()

    @pytest.mark.anyio
    async def test_none_available(self, params):
        with pytest.raises(RelayNotAvailableError):
            await submit_with_fallback([self._relay("validator", False)], params)

    @pytest.mark.anyio
    async def test_validates_before_contacting_relays(self, params):
        relay = self._relay("validator", True)
        with pytest.raises(ValidationError):
            await submit_with_fallback([relay], replace(params, signature="0xdead"))
        relay.is_available.assert_not_awaited()
