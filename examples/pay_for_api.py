import asyncio
import json
import sys
from pathlib import Path

from dotenv import load_dotenv

from x402_agent import PaymentOrchestrator, load_settings
from x402_agent.logging_config import setup_logging

load_dotenv(Path(__file__).parent.parent / ".env")


async def main():
    settings = load_settings()
    setup_logging(settings.log_level)
    orchestrator = PaymentOrchestrator.from_settings(settings)

    try:
        catalog = await orchestrator.list_providers(provider_type="api")
        if not catalog.success:
            print(f"Catalog unavailable: {catalog.error}")
            return
        for provider in catalog.providers:
            print(f"  {provider.id:<24} {provider.name}")

        if len(sys.argv) < 3:
            print("\nusage: pay_for_api.py <provider-id> <path>")
            return

        provider_id, path = sys.argv[1], sys.argv[2]
        result = await orchestrator.pay_for_query(provider_id, {"method": "GET", "path": path})
        if not result.success:
            print(f"\nRequest failed ({result.reason}): {result.error}")
            return

        print(f"\nPaid {result.cost or 'nothing'} (tx: {result.tx_hash})")
        print(json.dumps(result.data, indent=2))
    finally:
        await orchestrator.close()


if __name__ == "__main__":
    asyncio.run(main())
