import asyncio
import json
import sys
from pathlib import Path

from dotenv import load_dotenv

from x402_agent import PaymentOrchestrator, load_settings
from x402_agent.logging_config import setup_logging

load_dotenv(Path(__file__).parent.parent / ".env")

PUBLISHER_ID = sys.argv[1] if len(sys.argv) > 1 else ""
SQL = sys.argv[2] if len(sys.argv) > 2 else "SELECT 1"


async def main():
    settings = load_settings()
    setup_logging(settings.log_level)

    if not PUBLISHER_ID:
        print("usage: query_database.py <publisher-id> [sql]")
        return

    orchestrator = PaymentOrchestrator.from_settings(settings)
    try:
        print(f"Gateway: {settings.gateway_url}")
        balance = await orchestrator.check_credit_balance()
        if balance.success:
            print(f"Wallet {balance.wallet}: {balance.available} USDC available")

        result = await orchestrator.query_database(PUBLISHER_ID, SQL)
        if not result.success:
            print(f"\nQuery failed ({result.reason}): {result.error}")
            return

        print(f"\nRows: {result.row_count}  cost: {result.actual_cost}  tx: {result.tx_hash}")
        if result.deposit_info:
            print(f"Auto-deposited {result.deposit_info.deposited} USDC")
        if result.truncated:
            print(f"Response truncated from {result.original_size_bytes} chars")
        print(json.dumps(result.rows, indent=2))
    finally:
        await orchestrator.close()


if __name__ == "__main__":
    asyncio.run(main())
