"""
Tests for settings and network configuration
"""

import pytest

from x402_agent.config import NetworkConfig, Settings, load_settings
from x402_agent.exceptions import ConfigurationError, UnsupportedNetworkError


class TestNetworkConfig:
    @pytest.mark.parametrize(
        "network, chain_id",
        [("base", 8453), ("base-sepolia", 84532), ("eip155:8453", 8453), ("eip155:10", 10)],
    )
    def test_get_chain_id(self, network, chain_id):
        assert NetworkConfig.get_chain_id(network) == chain_id

    def test_unknown_network(self):
        with pytest.raises(UnsupportedNetworkError):
            NetworkConfig.get_chain_id("solana")

    def test_usdc_address(self):
        assert NetworkConfig.get_usdc_address(8453) == "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"
        with pytest.raises(UnsupportedNetworkError):
            NetworkConfig.get_usdc_address(1)

    def test_rpc_url(self):
        assert NetworkConfig.get_rpc_url(84532) == "https://sepolia.base.org"
        assert NetworkConfig.get_rpc_url(1) is None


class TestLoadSettings:
    def test_defaults(self):
        settings = load_settings(env_file=None, environ={})

        assert settings == Settings()
        assert settings.gateway_url == "https://x402.serendb.com"
        assert settings.retry_max_attempts == 3
        assert settings.max_response_chars == 32000

    def test_reads_environment(self):
        settings = load_settings(
            env_file=None,
            environ={
                "X402_GATEWAY_URL": "https://gw.test/",
                "WALLET_PRIVATE_KEY": "0xabc",
                "LOG_LEVEL": "DEBUG",
                "RETRY_MAX_ATTEMPTS": "5",
                "MAX_RESPONSE_CHARS": "1000",
                "BASE_RPC_URL": "",
                "CHAIN_ID": "84532",
            },
        )

        assert settings.gateway_url == "https://gw.test"
        assert settings.wallet_private_key == "0xabc"
        assert settings.log_level == "debug"
        assert settings.retry_max_attempts == 5
        assert settings.max_response_chars == 1000
        assert settings.base_rpc_url == "https://mainnet.base.org"
        assert settings.chain_id == 84532

    def test_environment_overrides_env_file(self, tmp_path):
        env_file = tmp_path / ".env.local"
        env_file.write_text(
            "X402_GATEWAY_URL=https://file.test\nRELAY_ENDPOINT=https://relay.file.test\n"
        )

        settings = load_settings(
            env_file=str(env_file),
            environ={"X402_GATEWAY_URL": "https://env.test"},
        )

        assert settings.gateway_url == "https://env.test"
        assert settings.relay_endpoint == "https://relay.file.test"

    def test_missing_env_file_is_ignored(self, tmp_path):
        settings = load_settings(env_file=str(tmp_path / "absent"), environ={})
        assert settings.wallet_type == "private_key"

    @pytest.mark.parametrize(
        "environ",
        [
            {"X402_GATEWAY_URL": "ftp://gw.test"},
            {"GATEWAY_DEPOSIT_WALLET": "0x1234"},
            {"RETRY_MAX_ATTEMPTS": "0"},
            {"MAX_RESPONSE_CHARS": "50"},
            {"CHAIN_ID": "1"},
            {"RETRY_MAX_ATTEMPTS": "many"},
            {"WALLET_TYPE": "hardware"},
            {"WALLET_TYPE": "remote_session"},
            {"LOG_LEVEL": "verbose"},
        ],
    )
    def test_invalid_values(self, environ):
        with pytest.raises(ConfigurationError):
            load_settings(env_file=None, environ=environ)

    def test_remote_session_wallet(self):
        settings = load_settings(
            env_file=None,
            environ={"WALLET_TYPE": "remote_session", "SESSION_BRIDGE_URL": "https://bridge.test"},
        )
        assert settings.session_bridge_url == "https://bridge.test"
