"""
Rush Hour Simulation Script

Fires concurrent orders at one table set and walks each order through the
kitchen lifecycle, to exercise occupancy tracking and webhook fan-out
under load.

Run from project root:
    python scripts/simulate.py --table T1_ID --table T2_ID --organization ORG_ID

Author: Khalil Bannouri
Version: 4.0.0
"""

import argparse
import asyncio
import random
import sys
import time
from datetime import datetime
from typing import Any, Optional

import httpx

# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Configuration
API_BASE_URL = "http://localhost:8001"
TOTAL_ORDERS = 50

CUSTOMER_NAMES = ["Ana", "Ben", "Chloe", "Dario", "Elif", "Farah", "Goran", "Hana", "Ivo", "Jun"]
MENU_ITEMS = [
    {"name": "Pizza Margherita", "price": 14.99},
    {"name": "Pepperoni Pizza", "price": 16.99},
    {"name": "Caesar Salad", "price": 8.99},
    {"name": "Garlic Bread", "price": 5.99},
    {"name": "Pasta Carbonara", "price": 13.99},
    {"name": "Tiramisu", "price": 7.99},
    {"name": "Sparkling Water", "price": 3.49},
]
KITCHEN_FLOW = ["preparing", "ready", "served"]


def generate_random_items() -> list[dict]:
    """Generate random order items."""
    items = []
    for _ in range(random.randint(1, 4)):
        item = random.choice(MENU_ITEMS).copy()
        item["quantity"] = random.randint(1, 3)
        items.append(item)
    return items


def generate_order_payload(table_id: str, session_id: str) -> dict[str, Any]:
    return {
        "table_id": table_id,
        "session_id": session_id,
        "customer_name": random.choice(CUSTOMER_NAMES),
        "customer_notes": random.choice([None, "No onions", "Extra napkins", "Birthday!"]),
        "items": generate_random_items(),
    }


# =============================================================================
# ORDER FLOW
# =============================================================================

async def run_order(
    client: httpx.AsyncClient,
    order_num: int,
    table_id: str,
    cancel_rate: float,
) -> dict[str, Any]:
    """Create one order, then advance it through the kitchen or cancel it."""
    start_time = time.time()
    result: dict[str, Any] = {"order_num": order_num, "success": False, "table_id": table_id}

    try:
        response = await client.post(
            "/orders",
            json=generate_order_payload(table_id, f"sim_{order_num}"),
        )
        if response.status_code != 201:
            result["error"] = response.text[:100]
            return result

        order = response.json()["order"]
        result["order_number"] = order["order_number"]
        result["total"] = order["total_amount"]

        flow = KITCHEN_FLOW
        if random.random() < cancel_rate:
            flow = KITCHEN_FLOW[:random.randint(0, 2)] + ["cancelled"]

        for status in flow:
            await asyncio.sleep(random.uniform(0.05, 0.3))
            response = await client.patch(f"/orders/{order['id']}", json={"status": status})
            if response.status_code != 200:
                result["error"] = f"{status}: {response.text[:80]}"
                return result

        result["success"] = True
        result["final_status"] = flow[-1]
        return result

    except httpx.HTTPError as e:
        result["error"] = str(e)[:100]
        return result

    finally:
        result["time"] = round(time.time() - start_time, 3)


# =============================================================================
# MAIN SIMULATION RUNNER
# =============================================================================

async def run_simulation(
    table_ids: list[str],
    organization_id: Optional[str] = None,
    num_orders: int = TOTAL_ORDERS,
    cancel_rate: float = 0.2,
) -> dict[str, Any]:
    print("=" * 70)
    print("🔥 RUSH HOUR SIMULATION")
    print("=" * 70)
    print(f"📋 Total Orders: {num_orders}")
    print(f"🍽️  Tables: {len(table_ids)}")
    print(f"🎯 Target: {API_BASE_URL}")
    print(f"⏰ Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    start_time = time.time()

    async with httpx.AsyncClient(base_url=API_BASE_URL, timeout=30.0) as client:
        tasks = [
            run_order(client, i + 1, random.choice(table_ids), cancel_rate)
            for i in range(num_orders)
        ]
        results = await asyncio.gather(*tasks)

        summary = None
        if organization_id:
            response = await client.get(
                "/dashboard/summary", params={"organization_id": organization_id}
            )
            if response.status_code == 200:
                summary = response.json()

    total_time = round(time.time() - start_time, 2)

    successful = [r for r in results if r["success"]]
    failed = [r for r in results if not r["success"]]
    served = [r for r in successful if r.get("final_status") == "served"]

    print("\n" + "=" * 70)
    print("📊 SIMULATION RESULTS")
    print("=" * 70)
    print(f"\n✅ Completed flows: {len(successful)}/{num_orders}")
    print(f"   Served: {len(served)}  Cancelled: {len(successful) - len(served)}")
    print(f"❌ Failed flows: {len(failed)}/{num_orders}")
    print(f"⏱️  Total Time: {total_time}s")

    if successful:
        avg_time = round(sum(r["time"] for r in successful) / len(successful), 3)
        revenue = sum(r.get("total", 0) for r in served)
        print(f"\n📈 Average flow time: {avg_time}s")
        print(f"   💰 Served revenue: {revenue:.2f}")

    if failed:
        print("\n⚠️  Failed flows (showing first 5):")
        for f in failed[:5]:
            print(f"   Order #{f['order_num']} on {f['table_id']}: {f.get('error', 'Unknown error')}")

    if summary:
        print("\n🧾 Dashboard summary:")
        for key in ("total_orders", "active_orders", "today_orders", "today_revenue", "occupied_tables"):
            print(f"   {key}: {summary.get(key)}")
        if summary.get("active_orders") == 0 and summary.get("occupied_tables"):
            print("   ⚠️  Tables still occupied with no active orders")

    print("=" * 70)

    return {
        "total": num_orders,
        "successful": len(successful),
        "failed": len(failed),
        "total_time": total_time,
        "results": results,
    }


async def preflight() -> bool:
    """Check the API is up before firing traffic."""
    async with httpx.AsyncClient(base_url=API_BASE_URL, timeout=10.0) as client:
        try:
            response = await client.get("/health")
        except httpx.HTTPError as e:
            print(f"❌ API unreachable: {e}")
            return False

    if response.status_code != 200:
        print(f"❌ Health check failed: {response.text[:100]}")
        return False

    data = response.json()
    print(f"✅ Status: {data.get('status')}")
    print(f"   Database: {data.get('database')}")
    print(f"   Webhooks: {data.get('webhook_backend')}")
    return True


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Rush Hour Simulation Script")
    parser.add_argument("--table", action="append", required=True, help="Table id (repeatable)")
    parser.add_argument("--organization", help="Organization id for the closing summary")
    parser.add_argument("--orders", type=int, default=TOTAL_ORDERS, help="Number of orders")
    parser.add_argument("--cancel-rate", type=float, default=0.2, help="Share of orders to cancel")
    parser.add_argument("--url", default=API_BASE_URL, help="API base URL")
    args = parser.parse_args()

    API_BASE_URL = args.url

    if not asyncio.run(preflight()):
        sys.exit(1)

    asyncio.run(run_simulation(args.table, args.organization, args.orders, args.cancel_rate))
