"""
x402 agent configuration

Network constants plus environment-driven settings.
"""

import os
import re
from pathlib import Path
from typing import Dict, Literal, Mapping, Optional

from dotenv import dotenv_values
from pydantic import BaseModel, field_validator, model_validator

from x402_agent.exceptions import ConfigurationError, UnsupportedNetworkError


class NetworkConfig:
    """Network configuration for chain IDs, USDC contracts and endpoints"""

    BASE_MAINNET = "base"
    BASE_SEPOLIA = "base-sepolia"

    DEFAULT_CHAIN_ID = 8453

    CHAIN_IDS: Dict[str, int] = {
        "base": 8453,
        "base-mainnet": 8453,
        "base-sepolia": 84532,
        "eip155:8453": 8453,
        "eip155:84532": 84532,
    }

    USDC_CONTRACTS: Dict[int, str] = {
        8453: "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",
        84532: "0x036CbD53842c5426634e7929541eC2318f3dCF7e",
    }

    RPC_URLS: Dict[int, str] = {
        8453: "https://mainnet.base.org",
        84532: "https://sepolia.base.org",
    }

    DEFAULT_GATEWAY_URL = "https://x402.serendb.com"
    DEFAULT_RELAY_ENDPOINT = "https://relay.palomachain.com"

    @classmethod
    def get_chain_id(cls, network: str) -> int:
        """Get chain ID for a network identifier

        Raises:
            UnsupportedNetworkError: If network is not supported
        """
        if network.startswith("eip155:"):
            try:
                return int(network.split(":", 1)[1])
            except (ValueError, IndexError):
                raise UnsupportedNetworkError(f"Invalid EVM network: {network}")

        chain_id = cls.CHAIN_IDS.get(network)
        if chain_id is None:
            raise UnsupportedNetworkError(f"Unsupported network: {network}")
        return chain_id

    @classmethod
    def get_usdc_address(cls, chain_id: int) -> str:
        address = cls.USDC_CONTRACTS.get(chain_id)
        if address is None:
            raise UnsupportedNetworkError(f"Unsupported chainId: {chain_id}")
        return address

    @classmethod
    def get_rpc_url(cls, chain_id: int) -> str | None:
        return cls.RPC_URLS.get(chain_id)


_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")

# Leaves room for the truncation marker plus a few rows
MIN_RESPONSE_CHARS = 200

WalletType = Literal["private_key", "remote_session"]
LogLevel = Literal["debug", "info", "warning", "error"]


class Settings(BaseModel):
    """Runtime settings resolved from the environment"""

    gateway_url: str = NetworkConfig.DEFAULT_GATEWAY_URL
    wallet_type: WalletType = "private_key"
    wallet_private_key: Optional[str] = None
    session_bridge_url: Optional[str] = None
    gateway_deposit_wallet: Optional[str] = None
    base_rpc_url: str = NetworkConfig.RPC_URLS[8453]
    relay_endpoint: str = NetworkConfig.DEFAULT_RELAY_ENDPOINT
    chain_id: int = NetworkConfig.DEFAULT_CHAIN_ID
    log_level: LogLevel = "info"
    request_timeout_seconds: float = 60.0
    retry_max_attempts: int = 3
    retry_base_delay_seconds: float = 1.0
    max_response_chars: int = 32000

    @field_validator("gateway_url", "base_rpc_url", "relay_endpoint", "session_bridge_url")
    @classmethod
    def _check_url(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.startswith(("http://", "https://")):
            raise ValueError(f"not an http(s) URL: {value}")
        return value.rstrip("/") if value else value

    @field_validator("gateway_deposit_wallet")
    @classmethod
    def _check_address(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not _ADDRESS_RE.match(value):
            raise ValueError(f"not a 0x-prefixed 20-byte address: {value}")
        return value

    @field_validator("chain_id")
    @classmethod
    def _check_chain(cls, value: int) -> int:
        if value not in NetworkConfig.USDC_CONTRACTS:
            raise ValueError(f"unsupported chain id: {value}")
        return value

    @field_validator("retry_max_attempts")
    @classmethod
    def _check_positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be at least 1")
        return value

    @field_validator("max_response_chars")
    @classmethod
    def _check_response_budget(cls, value: int) -> int:
        if value < MIN_RESPONSE_CHARS:
            raise ValueError(f"must be at least {MIN_RESPONSE_CHARS}")
        return value

    @model_validator(mode="after")
    def _check_wallet(self) -> "Settings":
        if self.wallet_type == "remote_session" and not self.session_bridge_url:
            raise ValueError("SESSION_BRIDGE_URL required when WALLET_TYPE=remote_session")
        return self


_ENV_FIELDS = {
    "X402_GATEWAY_URL": "gateway_url",
    "WALLET_TYPE": "wallet_type",
    "WALLET_PRIVATE_KEY": "wallet_private_key",
    "SESSION_BRIDGE_URL": "session_bridge_url",
    "GATEWAY_DEPOSIT_WALLET": "gateway_deposit_wallet",
    "BASE_RPC_URL": "base_rpc_url",
    "RELAY_ENDPOINT": "relay_endpoint",
    "CHAIN_ID": "chain_id",
    "LOG_LEVEL": "log_level",
    "REQUEST_TIMEOUT_SECONDS": "request_timeout_seconds",
    "RETRY_MAX_ATTEMPTS": "retry_max_attempts",
    "RETRY_BASE_DELAY_SECONDS": "retry_base_delay_seconds",
    "MAX_RESPONSE_CHARS": "max_response_chars",
}


def load_settings(
    env_file: str | None = ".env.local",
    environ: Mapping[str, str] | None = None,
) -> Settings:
    """
    Build Settings from an optional dotenv file and the process environment.

    Values already present in ``environ`` (default :data:`os.environ`) win over
    the file. Empty strings are treated as unset.

    Raises:
        ConfigurationError: If any value fails validation
    """
    merged: Dict[str, str] = {}
    if env_file is not None and Path(env_file).exists():
        merged.update({k: v for k, v in dotenv_values(env_file).items() if v is not None})
    merged.update(environ if environ is not None else os.environ)

    fields = {
        field: merged[key].strip()
        for key, field in _ENV_FIELDS.items()
        if merged.get(key, "").strip()
    }
    if "log_level" in fields:
        fields["log_level"] = fields["log_level"].lower()

    try:
        return Settings(**fields)
    except ValueError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e
