"""
Concurrency Simulation Script

Creates a restaurant with one menu item and fires many concurrent orders
at it. With a stock of S and N single-unit orders, exactly min(N, S)
orders must succeed and the rest must be refused with 409.
Run from project root with the API up: python scripts/simulate.py

Version: 1.0.0
"""

import argparse
import asyncio
import os
import random
import sys
import time
from datetime import datetime
from typing import Any

import httpx

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from order_management.core.config import get_settings  # noqa: E402

# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

API_BASE_URL = get_settings().api_base_url
TOTAL_ORDERS = 50
INITIAL_STOCK = 10

FIRST_NAMES = ["John", "Jane", "Mike", "Sarah", "Tom", "Emma", "David", "Lisa", "Chris", "Amy"]
LAST_NAMES = ["Smith", "Johnson", "Williams", "Brown", "Jones", "Garcia", "Miller", "Davis"]
STREETS = ["Main St", "Broadway", "5th Avenue", "Park Ave", "Madison Ave", "Lexington Ave"]


def generate_random_customer() -> dict[str, str]:
    """Generate random customer info."""
    return {
        "customer_name": f"{random.choice(FIRST_NAMES)} {random.choice(LAST_NAMES)}",
        "customer_phone": f"555-{random.randint(100, 999)}-{random.randint(1000, 9999)}",
        "delivery_address": f"{random.randint(1, 999)} {random.choice(STREETS)}",
    }


async def seed_menu_item(client: httpx.AsyncClient, stock: int) -> tuple[int, int]:
    """Create a restaurant open around the clock and one menu item."""
    suffix = datetime.now().strftime("%H%M%S%f")
    response = await client.post(
        f"{API_BASE_URL}/api/restaurants",
        json={
            "name": f"Simulation Kitchen {suffix}",
            "address": "1 Load Test Lane",
            "phone": "555-000-0000",
            "opening_time": "00:00:00",
            "closing_time": "00:00:00",
        },
    )
    response.raise_for_status()
    restaurant_id = response.json()["id"]

    response = await client.post(
        f"{API_BASE_URL}/api/restaurants/{restaurant_id}/menu-items",
        json={"name": "Pizza Margherita", "price": "14.99", "stock_quantity": stock},
    )
    response.raise_for_status()
    return restaurant_id, response.json()["id"]


async def send_order(
    client: httpx.AsyncClient,
    order_num: int,
    restaurant_id: int,
    menu_item_id: int,
) -> dict[str, Any]:
    """Place a single-unit order and record the outcome."""
    payload = {
        "restaurant_id": restaurant_id,
        "items": [{"menu_item_id": menu_item_id, "quantity": 1}],
        **generate_random_customer(),
    }
    start_time = time.time()

    try:
        response = await client.post(f"{API_BASE_URL}/api/orders", json=payload, timeout=30.0)
    except httpx.HTTPError as e:
        return {
            "order_num": order_num,
            "status": None,
            "error": str(e)[:100],
            "time": round(time.time() - start_time, 3),
        }

    result = {
        "order_num": order_num,
        "status": response.status_code,
        "time": round(time.time() - start_time, 3),
    }
    if response.status_code == 201:
        result["order_number"] = response.json()["order_number"]
    else:
        result["error"] = response.json().get("error", response.text[:100])
    return result


async def run_simulation(num_orders: int = TOTAL_ORDERS, stock: int = INITIAL_STOCK) -> bool:
    print("=" * 70)
    print("🔥 CONCURRENCY SIMULATION - ONE ITEM, MANY ORDERS")
    print("=" * 70)
    print(f"📋 Total Orders: {num_orders}")
    print(f"📦 Initial Stock: {stock}")
    print(f"🎯 Target: {API_BASE_URL}")
    print(f"⏰ Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    async with httpx.AsyncClient() as client:
        restaurant_id, menu_item_id = await seed_menu_item(client, stock)
        print(f"\n🍕 Seeded restaurant #{restaurant_id}, menu item #{menu_item_id}")

        print("\n🚀 Firing orders...\n")
        start_time = time.time()
        results = await asyncio.gather(*(
            send_order(client, i + 1, restaurant_id, menu_item_id)
            for i in range(num_orders)
        ))
        total_time = round(time.time() - start_time, 2)

        response = await client.get(f"{API_BASE_URL}/api/menu-items/{menu_item_id}")
        final_stock = response.json()["stock_quantity"]

    placed = [r for r in results if r["status"] == 201]
    refused = [r for r in results if r["status"] == 409]
    failed = [r for r in results if r["status"] not in (201, 409)]
    expected = min(num_orders, stock)

    print("\n" + "=" * 70)
    print("📊 SIMULATION RESULTS")
    print("=" * 70)
    print(f"\n✅ Placed: {len(placed)} (expected {expected})")
    print(f"🚫 Refused (409): {len(refused)}")
    print(f"❌ Errors: {len(failed)}")
    print(f"📦 Final Stock: {final_stock} (expected {stock - expected})")
    print(f"⏱️  Total Time: {total_time}s")

    if placed:
        avg_time = round(sum(r["time"] for r in placed) / len(placed), 3)
        print(f"\n📈 Average Response: {avg_time}s")

    if failed:
        print("\n⚠️  Error Details (showing first 5):")
        for f in failed[:5]:
            print(f"   Order #{f['order_num']}: {f.get('error', 'Unknown error')}")

    ok = len(placed) == expected and final_stock == stock - expected and not failed
    print("\n" + "=" * 70)
    print("✅ NO OVERSELLING" if ok else "❌ STOCK ACCOUNTING MISMATCH")
    print(f"   Next: python scripts/verify.py --menu-item {menu_item_id} --initial-stock {stock}")
    print("=" * 70)
    return ok


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Concurrency Simulation Script")
    parser.add_argument("--orders", type=int, default=TOTAL_ORDERS, help="Number of orders")
    parser.add_argument("--stock", type=int, default=INITIAL_STOCK, help="Initial stock")
    args = parser.parse_args()

    success = asyncio.run(run_simulation(num_orders=args.orders, stock=args.stock))
    sys.exit(0 if success else 1)
