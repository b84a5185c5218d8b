"""
Pytest configuration and fixtures
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from x402_agent.types import PaymentRequirement

# Well-known development key; never funded on a real network
TEST_PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
TEST_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
PAYEE_ADDRESS = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
USDC_ADDRESS = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"
MOCK_SIGNATURE = "0x" + "ab" * 64 + "1b"


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def test_private_key():
    return TEST_PRIVATE_KEY


@pytest.fixture
def payment_requirement():
    return PaymentRequirement(
        scheme="exact",
        network="base",
        maxAmountRequired="1000000",
        asset=USDC_ADDRESS,
        payTo=PAYEE_ADDRESS,
        resource="/api/query",
        description="Query payment",
        maxTimeoutSeconds=300,
        extra={
            "paymentRequestId": "req-1",
            "eip712": {
                "name": "USD Coin",
                "version": "2",
                "chainId": 8453,
                "verifyingContract": USDC_ADDRESS,
            },
        },
    )


@pytest.fixture
def mock_wallet():
    wallet = MagicMock()
    wallet.is_connected = AsyncMock(return_value=True)
    wallet.connect = AsyncMock()
    wallet.disconnect = AsyncMock()
    wallet.close = AsyncMock()
    wallet.get_address = AsyncMock(return_value=TEST_ADDRESS)
    wallet.sign_typed_data = AsyncMock(return_value=MOCK_SIGNATURE)
    return wallet
