"""
Manual end-to-end check of the configured provider chain.

Runs a connection test, prints the provider status table and performs a
sample content analysis. Uses real providers unless TARS_CONFIG points at a
stub configuration, e.g.:

    TARS_CONFIG=config/settings.stub.json python scripts/test_providers.py
"""

from __future__ import annotations

import asyncio

from tars.client import TarsClient
from tars.config import load_settings
from tars.core.errors import ConfigurationError

SAMPLE_CONTENT = "This is a test document about AI and machine learning innovations."


async def run() -> int:
    print("Testing TARS multi-provider system...\n")

    try:
        settings = load_settings()
    except ConfigurationError as exc:
        print(f"Configuration error: {exc.error.message}")
        return 1

    client = TarsClient.from_settings(settings)
    try:
        print("1. Testing connection...")
        test_result = await client.test_connection()
        marker = "OK " if test_result["success"] else "ERR"
        print(f"   [{marker}] {test_result['message']} via {test_result['provider']}")

        print("\n2. Provider status:")
        for provider in client.get_provider_status().values():
            response_time = provider["responseTime"] if provider["responseTime"] is not None else "N/A"
            print(f"   {provider['name']}: {provider['status']} ({response_time}ms)")

        print("\n3. Testing content analysis...")
        result = await client.analyze_content(SAMPLE_CONTENT, "technical")
        if result.error:
            print(f"   [ERR] {result.text}")
            return 1

        print(f"   [OK ] Analysis complete via {result.provider}")
        print(f"   Tokens used: {result.usage.total_tokens}")
        print(f"   Response preview: {result.text[:200]}...")
        return 0
    finally:
        await client.aclose()


def main() -> int:
    return asyncio.run(run())


if __name__ == "__main__":
    raise SystemExit(main())
