"""
x402 gateway client
"""

from x402_agent.gateway.client import (
    PAYMENT_HEADER,
    PAYMENT_RESPONSE_HEADER,
    GatewayClient,
)

__all__ = ["GatewayClient", "PAYMENT_HEADER", "PAYMENT_RESPONSE_HEADER"]
