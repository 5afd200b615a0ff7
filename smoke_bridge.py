#!/usr/bin/env python3
"""
Smoke checks against a running bridge.

Checks:
1. Health check
2. Origin guard (403 without origin, 401 without client header)
3. Model listing
4. Streaming chat (capability model, or remote endpoint with --remote)

Usage:
    python smoke_bridge.py [--model FAMILY] [--remote http://localhost:1234]
"""

import argparse
import asyncio
import os
import sys

import httpx

BRIDGE_URL = f"http://127.0.0.1:{os.getenv('BRIDGE_PORT', '3210')}"
ORIGIN = "chrome-extension://nggfpdadfepkbpjfnpcihagbnnfpeian"
HEADERS = {"Origin": ORIGIN, "X-Copilot-Bridge-Client": "chrome-extension"}


async def check_health():
    """Check health endpoint."""
    print("\n=== Checking Health ===")

    async with httpx.AsyncClient() as client:
        try:
            resp = await client.get(f"{BRIDGE_URL}/health")
            resp.raise_for_status()
            data = resp.json()
            print(f"Status: {data.get('status')}")
            print(f"Version: {data.get('version')}")
            return True
        except httpx.HTTPError as e:
            print(f"Health check failed: {e}")
            return False


async def check_origin_guard():
    print("\n=== Checking Origin Guard ===")

    async with httpx.AsyncClient() as client:
        try:
            no_origin = await client.get(f"{BRIDGE_URL}/models")
            no_header = await client.get(f"{BRIDGE_URL}/models", headers={"Origin": ORIGIN})
            print(f"Without origin: {no_origin.status_code} (expected 403)")
            print(f"Without client header: {no_header.status_code} (expected 401)")
            return no_origin.status_code == 403 and no_header.status_code == 401
        except httpx.HTTPError as e:
            print(f"Origin guard check failed: {e}")
            return False


async def check_models():
    """Check models endpoint."""
    print("\n=== Checking Models ===")

    async with httpx.AsyncClient() as client:
        try:
            resp = await client.get(f"{BRIDGE_URL}/models", headers=HEADERS)
            resp.raise_for_status()
            models = resp.json()
            print(f"Found {len(models)} models:")
            for m in models[:5]:
                print(f"  - [{m.get('provider')}] {m.get('name')}")
            return True
        except httpx.HTTPError as e:
            print(f"Models check failed: {e}")
            return False


async def check_streaming_chat(model: str, remote: str = None):
    """Check streaming chat."""
    print("\n=== Checking Streaming Chat ===")

    if remote:
        settings = {"provider": "lm-studio", "lmStudio": {"endpoint": remote, "model": ""}}
    else:
        settings = {"provider": "copilot", "copilot": {"model": model}}

    async with httpx.AsyncClient(timeout=120.0) as client:
        try:
            async with client.stream(
                "POST",
                f"{BRIDGE_URL}/chat",
                headers=HEADERS,
                json={
                    "settings": settings,
                    "messages": [{"role": "user", "content": "Count from 1 to 5."}],
                    "pageContent": "",
                },
            ) as resp:
                resp.raise_for_status()

                chunks = 0
                async for text in resp.aiter_text():
                    chunks += 1
                    print(text, end="", flush=True)

                print()
                print(f"Total chunks: {chunks}")
                return chunks > 0
        except httpx.HTTPError as e:
            print(f"Streaming check failed: {e}")
            return False


async def main():
    parser = argparse.ArgumentParser(description="Smoke-check a running bridge")
    parser.add_argument("--model", default="llama3", help="Capability model family")
    parser.add_argument("--remote", help="Use the remote endpoint at this URL instead")
    args = parser.parse_args()

    print("=" * 60)
    print("Browser Bridge Smoke Checks")
    print("=" * 60)
    print(f"Target: {BRIDGE_URL}")

    results = {}

    results["health"] = await check_health()

    if not results["health"]:
        print("\nBridge not running. Start with: python -m browser_bridge.main")
        sys.exit(1)

    results["origin_guard"] = await check_origin_guard()
    results["models"] = await check_models()
    results["streaming"] = await check_streaming_chat(args.model, args.remote)

    # Summary
    print("\n" + "=" * 60)
    print("Results:")
    print("=" * 60)
    for check, passed in results.items():
        status = "PASS" if passed else "FAIL"
        print(f"  {check}: {status}")

    all_passed = all(results.values())
    print("=" * 60)
    print(f"Overall: {'ALL PASSED' if all_passed else 'SOME FAILED'}")

    sys.exit(0 if all_passed else 1)


if __name__ == "__main__":
    asyncio.run(main())
