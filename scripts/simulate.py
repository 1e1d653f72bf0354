"""
Order Flow Simulation Script

Plays both sides of the system against a running API:
    - a fake order executor connected to /ws/executor
    - concurrent clients creating and executing orders

A share of the generated orders is deliberately broken (unbalanced
quantities or unknown names) to exercise the rejection paths.

Run from project root: python scripts/simulate.py
"""

import argparse
import asyncio
import contextlib
import json
import os
import random
import sys
import time
from datetime import datetime
from typing import Any

import httpx
import websockets

# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Configuration
API_BASE_URL = os.getenv("API_BASE_URL", "http://localhost:8001")
WS_URL = API_BASE_URL.replace("http", "ws", 1) + "/ws/executor"
EXECUTOR_TOKEN = os.getenv("EXECUTOR_TOKEN", "change-me")
USER_ID = os.getenv("SIMULATION_USER_ID", "1")
TOTAL_ORDERS = 50

# Must match the demo catalog seeded in development mode
FOODS = ["bread", "water", "apple", "pasta"]
PLACES = ["table1", "table2", "table3", "kitchen"]


# =============================================================================
# PAYLOADS
# =============================================================================

def split_quantity(total: int, parts: int) -> list[int]:
    """Split ``total`` into ``parts`` positive integers."""
    cuts = sorted(random.sample(range(1, total), parts - 1)) if parts > 1 else []
    bounds = [0] + cuts + [total]
    return [b - a for a, b in zip(bounds, bounds[1:])]


def generate_order_payload(kind: str = "valid") -> dict[str, Any]:
    """
    Generate a payload for POST /api/orders.

    Args:
        kind: "valid", "mismatch" or "unknown"
    """
    total = random.randint(2, 8)
    foods = random.sample(FOODS, k=random.randint(1, 2))
    places = random.sample(PLACES, k=random.randint(1, 2))

    payload = {
        "foods": [
            {"name": name, "quantity": qty, "withdrawal_order": i}
            for i, (name, qty) in enumerate(zip(foods, split_quantity(total, len(foods))))
        ],
        "places": [
            {"name": name, "quantity_to_deliver": qty}
            for name, qty in zip(places, split_quantity(total, len(places)))
        ],
    }

    if kind == "mismatch":
        payload["places"][0]["quantity_to_deliver"] += 1
    elif kind == "unknown":
        payload["foods"][-1]["name"] = "caviar"

    return payload


# =============================================================================
# FAKE EXECUTOR
# =============================================================================

async def run_executor(failure_rate: float, ready: asyncio.Event, stats: dict[str, int]) -> None:
    """Accept execute messages and report RUNNING then COMPLETED/FAILED."""
    headers = {"x-executor-token": EXECUTOR_TOKEN}

    async with websockets.connect(WS_URL, additional_headers=headers) as ws:
        hello = json.loads(await ws.recv())
        print(f"🤖 Executor connected (channel: {hello.get('channel')})")
        ready.set()

        async for raw in ws:
            message = json.loads(raw)

            if message.get("type") != "execute_order":
                if message.get("success") is False:
                    print(f"   ⚠️ Executor report refused: {message.get('detail')}")
                continue

            order_uuid = message["order_uuid"]
            stats["received"] += 1

            await ws.send(json.dumps({"type": "order_status", "order_uuid": order_uuid, "status": "running"}))
            await asyncio.sleep(random.uniform(0.05, 0.2))

            final = "failed" if random.random() < failure_rate else "completed"
            stats[final] += 1
            await ws.send(json.dumps({"type": "order_status", "order_uuid": order_uuid, "status": final}))


# =============================================================================
# CLIENTS
# =============================================================================

async def place_and_execute(client: httpx.AsyncClient, order_num: int, kind: str) -> dict[str, Any]:
    """Create one order and, if accepted, ask for its execution."""
    start_time = time.time()

    try:
        response = await client.post(
            f"{API_BASE_URL}/api/orders",
            json=generate_order_payload(kind),
            headers={"x-user-id": USER_ID},
            timeout=30.0,
        )

        if response.status_code != 201:
            return {
                "order_num": order_num,
                "kind": kind,
                "created": False,
                "error": response.json().get("error", response.text[:100]),
                "time": round(time.time() - start_time, 3),
            }

        order_uuid = response.json()["order_uuid"]
        execute = await client.post(f"{API_BASE_URL}/api/orders/{order_uuid}/execute", timeout=30.0)

        return {
            "order_num": order_num,
            "kind": kind,
            "created": True,
            "executed": execute.status_code == 200,
            "order_uuid": order_uuid,
            "time": round(time.time() - start_time, 3),
        }
    except httpx.HTTPError as e:
        return {
            "order_num": order_num,
            "kind": kind,
            "created": False,
            "error": str(e)[:100],
            "time": round(time.time() - start_time, 3),
        }


# =============================================================================
# MAIN SIMULATION RUNNER
# =============================================================================

async def run_simulation(num_orders: int = TOTAL_ORDERS, broken_rate: float = 0.2, failure_rate: float = 0.1) -> dict[str, Any]:
    print("=" * 70)
    print("🔥 ORDER FLOW SIMULATION")
    print("=" * 70)
    print(f"📋 Total Orders: {num_orders}")
    print(f"🎯 Target: {API_BASE_URL}")
    print(f"⏰ Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    stats = {"received": 0, "completed": 0, "failed": 0}
    ready = asyncio.Event()
    executor = asyncio.create_task(run_executor(failure_rate, ready, stats))
    await asyncio.wait_for(ready.wait(), timeout=10)

    kinds = [
        random.choice(["mismatch", "unknown"]) if random.random() < broken_rate else "valid"
        for _ in range(num_orders)
    ]

    start_time = time.time()
    async with httpx.AsyncClient() as client:
        results = await asyncio.gather(*[
            place_and_execute(client, i + 1, kind) for i, kind in enumerate(kinds)
        ])

    # Let the executor finish reporting
    await asyncio.sleep(1.0)
    executor.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await executor
    total_time = round(time.time() - start_time, 2)

    created = [r for r in results if r["created"]]
    rejected = [r for r in results if not r["created"]]
    wrongly_accepted = [r for r in created if r["kind"] != "valid"]
    wrongly_rejected = [r for r in rejected if r["kind"] == "valid"]

    print("\n" + "=" * 70)
    print("📊 SIMULATION RESULTS")
    print("=" * 70)
    print(f"\n✅ Created: {len(created)}/{num_orders}")
    print(f"🚫 Rejected: {len(rejected)}/{num_orders}")
    print(f"▶️  Executed: {len([r for r in created if r.get('executed')])}")
    print(f"🤖 Executor: {stats['received']} received, {stats['completed']} completed, {stats['failed']} failed")
    print(f"⏱️  Total Time: {total_time}s")

    if wrongly_accepted or wrongly_rejected:
        print("\n❌ Unexpected outcomes:")
        for r in (wrongly_accepted + wrongly_rejected)[:5]:
            print(f"   Order #{r['order_num']} [{r['kind']}]: {r.get('error', 'accepted')}")
    else:
        print("\n✅ Every broken order was rejected and every valid order accepted")

    print("=" * 70)

    return {
        "total": num_orders,
        "created": len(created),
        "rejected": len(rejected),
        "executor": stats,
        "total_time": total_time,
    }


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Order Flow Simulation Script")
    parser.add_argument("--orders", type=int, default=TOTAL_ORDERS, help="Number of orders")
    parser.add_argument("--broken-rate", type=float, default=0.2, help="Share of invalid orders")
    parser.add_argument("--failure-rate", type=float, default=0.1, help="Share of executions that fail")
    args = parser.parse_args()

    asyncio.run(run_simulation(args.orders, args.broken_rate, args.failure_rate))
