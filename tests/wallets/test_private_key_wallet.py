"""
Tests for PrivateKeyWallet
"""

import pytest
from eth_account import Account
from eth_account.messages import encode_typed_data

from x402_agent.exceptions import WalletNotAvailableError, WalletNotConnectedError
from x402_agent.signing.eip712 import build_authorization_message, build_domain, build_typed_data
from x402_agent.wallets import PrivateKeyWallet, WalletProvider

TEST_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
PAYEE_ADDRESS = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
USDC_ADDRESS = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"


class TestConnect:
    @pytest.mark.anyio
    async def test_connect_with_key(self, test_private_key):
        wallet = PrivateKeyWallet()
        await wallet.connect(test_private_key)

        assert await wallet.is_connected()
        assert await wallet.get_address() == TEST_ADDRESS

    @pytest.mark.anyio
    async def test_key_without_prefix(self, test_private_key):
        wallet = PrivateKeyWallet(test_private_key[2:])
        await wallet.connect()
        assert await wallet.get_address() == TEST_ADDRESS

    @pytest.mark.anyio
    async def test_key_from_environment(self, monkeypatch, test_private_key):
        monkeypatch.setenv("WALLET_PRIVATE_KEY", test_private_key)
        wallet = PrivateKeyWallet()
        await wallet.connect()
        assert await wallet.get_address() == TEST_ADDRESS

    @pytest.mark.anyio
    async def test_missing_key(self, monkeypatch):
        monkeypatch.delenv("WALLET_PRIVATE_KEY", raising=False)
        with pytest.raises(WalletNotAvailableError):
            await PrivateKeyWallet().connect()

    @pytest.mark.anyio
    async def test_invalid_key(self):
        with pytest.raises(WalletNotAvailableError):
            await PrivateKeyWallet().connect("0xnothex")

    @pytest.mark.anyio
    async def test_disconnect(self, test_private_key):
        wallet = PrivateKeyWallet(test_private_key)
        await wallet.connect()
        await wallet.disconnect()

        assert not await wallet.is_connected()
        with pytest.raises(WalletNotConnectedError):
            await wallet.get_address()


class TestSignTypedData:
    @pytest.mark.anyio
    async def test_requires_connection(self):
        domain = build_domain(8453, USDC_ADDRESS)
        message = build_authorization_message(TEST_ADDRESS, PAYEE_ADDRESS, "1", 0, 100)

        with pytest.raises(WalletNotConnectedError):
            await PrivateKeyWallet().sign_typed_data(domain, message)

    @pytest.mark.anyio
    async def test_signature_recovers_address(self, test_private_key):
        wallet = PrivateKeyWallet(test_private_key)
        await wallet.connect()

        domain = build_domain(8453, USDC_ADDRESS)
        message = build_authorization_message(TEST_ADDRESS, PAYEE_ADDRESS, "1000000", 0, 2**40)
        signature = await wallet.sign_typed_data(domain, message)

        assert signature.startswith("0x")
        assert len(signature) == 132
        encoded = encode_typed_data(full_message=build_typed_data(domain, message))
        assert Account.recover_message(encoded, signature=signature) == TEST_ADDRESS


def test_satisfies_wallet_protocol():
    assert isinstance(PrivateKeyWallet(), WalletProvider)
