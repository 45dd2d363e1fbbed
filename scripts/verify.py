"""
Stock Verification Script

Checks that a menu item's stock plus the quantities held by its live
(not cancelled) orders equals the stock it started with.
Run from project root: python scripts/verify.py --menu-item 1 --initial-stock 10

Version: 1.0.0
"""

import argparse
import os
import sys
from datetime import datetime

import httpx

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from order_management.core.config import get_settings  # noqa: E402

API_BASE_URL = get_settings().api_base_url
PAGE_SIZE = 100


def fetch_orders(client: httpx.Client, restaurant_id: int) -> list[dict]:
    """Fetch every order of a restaurant, page by page."""
    orders, skip = [], 0
    while True:
        response = client.get(
            f"{API_BASE_URL}/api/orders",
            params={"restaurant_id": restaurant_id, "skip": skip, "limit": PAGE_SIZE},
        )
        response.raise_for_status()
        page = response.json()
        orders.extend(page["orders"])
        skip += PAGE_SIZE
        if skip >= page["total"]:
            return orders


def verify_stock(menu_item_id: int, initial_stock: int) -> bool:
    print("=" * 60)
    print("🔍 STOCK VERIFICATION REPORT")
    print("=" * 60)
    print(f"⏰ Timestamp: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print(f"🎯 Target: {API_BASE_URL}")
    print("=" * 60)

    with httpx.Client(timeout=30.0) as client:
        response = client.get(f"{API_BASE_URL}/api/menu-items/{menu_item_id}")
        if response.status_code == 404:
            print(f"\n❌ Menu item #{menu_item_id} not found!")
            return False
        response.raise_for_status()
        item = response.json()
        orders = fetch_orders(client, item["restaurant_id"])

    live = [o for o in orders if o["status"] != "CANCELLED"]
    held = sum(
        line["quantity"]
        for order in live
        for line in order["items"]
        if line["menu_item_id"] == menu_item_id
    )
    numbers = [o["order_number"] for o in orders]

    print(f"\n📊 STATISTICS:")
    print(f"   Item: {item['name']} (#{menu_item_id})")
    print(f"   Orders: {len(orders)} ({len(orders) - len(live)} cancelled)")
    print(f"   Units held by live orders: {held}")
    print(f"   Current stock: {item['stock_quantity']}")

    duplicates = len(numbers) - len(set(numbers))
    if duplicates:
        print(f"\n⚠️ {duplicates} duplicate order numbers found!")
    else:
        print("\n✅ No duplicate order numbers")

    balanced = item["stock_quantity"] + held == initial_stock
    if balanced:
        print(f"✅ Stock + held = {initial_stock}")
    else:
        print(f"❌ Stock + held = {item['stock_quantity'] + held}, expected {initial_stock}")

    print("\n" + "=" * 60)
    print("✅ VERIFICATION COMPLETE")
    print("=" * 60)
    return balanced and not duplicates


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Stock Verification Script")
    parser.add_argument("--menu-item", type=int, required=True, help="Menu item id")
    parser.add_argument("--initial-stock", type=int, required=True, help="Starting stock")
    args = parser.parse_args()

    sys.exit(0 if verify_stock(args.menu_item, args.initial_stock) else 1)
