"""
x402 agent payment clients
"""

from x402_agent.clients.payment_client import (
    PaymentAttempt,
    PaymentOrchestrator,
    PaymentState,
    create_relays,
    create_wallet,
    failure_reason,
)

__all__ = [
    "PaymentOrchestrator",
    "PaymentAttempt",
    "PaymentState",
    "create_relays",
    "create_wallet",
    "failure_reason",
]
