"""
Print Queue Load Simulation

Fires a burst of concurrent receipt enqueues at the API, then drains the
queue through the process-queue endpoint, to test that every receipt is
printed exactly once under load.
Run from project root: python scripts/simulate.py

Author: Khalil Bannouri
Version: 1.0.0
"""

import asyncio
import sys
import os
import random
import time
import argparse
from datetime import datetime, timezone
from typing import Any

import httpx
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Configuration
API_BASE_URL = os.getenv("PRINT_API_URL", "http://localhost:8001")
SECRET = os.getenv("PRINT_PROCESSOR_SECRET") or os.getenv("WEBHOOK_SECRET", "")
TOTAL_ORDERS = 30

# Sample data for random orders
FIRST_NAMES = ["Adaeze", "Tunde", "Chioma", "Emeka", "Ngozi", "Bola", "Ifeanyi", "Funke", "Kunle", "Amaka"]
LAST_NAMES = ["Okafor", "Adeyemi", "Eze", "Balogun", "Nwosu", "Olawale", "Obi", "Bello", "Uche", "Adebayo"]
STREETS = ["Admiralty Way", "Awolowo Road", "Adeola Odeku St", "Allen Avenue", "Bode Thomas St"]
CITIES = ["Lekki", "Ikoyi", "Victoria Island", "Ikeja", "Surulere"]
MENU_ITEMS = [
    {"item_name": "Jollof Rice", "unit_price": "1500.00"},
    {"item_name": "Fried Rice", "unit_price": "1600.00"},
    {"item_name": "Pounded Yam & Egusi", "unit_price": "2500.00"},
    {"item_name": "Suya Platter", "unit_price": "3000.00"},
    {"item_name": "Moi Moi", "unit_price": "500.00"},
    {"item_name": "Dodo (Fried Plantain)", "unit_price": "600.00"},
    {"item_name": "Chapman", "unit_price": "1200.00"},
    {"item_name": "Zobo", "unit_price": "700.00"},
]
ADDONS = [{"name": "Extra Chicken", "price": "800.00"}, {"name": "Coleslaw", "price": "300.00"}]


def auth_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {SECRET}"}


def generate_random_items() -> list[dict]:
    """Generate random order items."""
    items = []
    for _ in range(random.randint(1, 4)):
        item = random.choice(MENU_ITEMS).copy()
        item["quantity"] = random.randint(1, 3)
        if random.random() < 0.3:
            item["selected_addons"] = [random.choice(ADDONS)]
        if random.random() < 0.2:
            item["special_instructions"] = random.choice(["No pepper", "Extra spicy", "Well done"])
        items.append(item)
    return items


def generate_order_payload(order_num: int) -> dict[str, Any]:
    """Generate payload for /api/print/jobs."""
    delivery = random.random() < 0.6
    order = {
        "order_number": f"SIM-{datetime.now():%Y%m%d}-{order_num:04d}",
        "created_at": datetime.now(timezone.utc).isoformat(),
        "order_type": "delivery" if delivery else "carryout",
        "customer_name": f"{random.choice(FIRST_NAMES)} {random.choice(LAST_NAMES)}",
        "customer_phone": f"080{random.randint(10000000, 99999999)}",
        "items": generate_random_items(),
        "special_instructions": random.choice([None, "Extra napkins", "Call on arrival"]),
        "delivery_fee": "1000.00" if delivery else "0",
        "payment_status": random.choice(["success", "pending"]),
    }
    if delivery:
        order["delivery_address"] = f"{random.randint(1, 99)} {random.choice(STREETS)}"
        order["delivery_city"] = random.choice(CITIES)
    return {"order_id": f"sim-{order_num}", "order": order}


async def enqueue_order(client: httpx.AsyncClient, order_num: int) -> dict[str, Any]:
    """Enqueue one receipt."""
    start_time = time.time()
    try:
        response = await client.post(
            f"{API_BASE_URL}/api/print/jobs",
            json=generate_order_payload(order_num),
            headers=auth_headers(),
            timeout=30.0,
        )
        elapsed = round(time.time() - start_time, 3)
        if response.status_code == 201:
            return {"order_num": order_num, "success": True, "job_id": response.json()["id"], "time": elapsed}
        return {"order_num": order_num, "success": False, "error": response.text[:100], "time": elapsed}
    except httpx.HTTPError as e:
        elapsed = round(time.time() - start_time, 3)
        return {"order_num": order_num, "success": False, "error": str(e)[:100], "time": elapsed}


async def drain_queue(client: httpx.AsyncClient, max_rounds: int) -> dict[str, int]:
    """Call process-queue until nothing is pending or the round limit hits."""
    totals = {"processed": 0, "succeeded": 0, "failed": 0, "skipped": 0}
    for round_num in range(1, max_rounds + 1):
        response = await client.post(
            f"{API_BASE_URL}/api/print/process-queue",
            headers=auth_headers(),
            timeout=120.0,
        )
        if response.status_code != 200:
            print(f"   ❌ Round {round_num}: {response.status_code} {response.text[:100]}")
            break

        result = response.json()["result"]
        for key in totals:
            totals[key] += result.get(key, 0)
        print(
            f"   🖨️  Round {round_num}: {result['processed']} processed, "
            f"{result['succeeded']} printed, {result['failed']} failed"
        )

        status = (await client.get(
            f"{API_BASE_URL}/api/print/queue-status", headers=auth_headers()
        )).json()
        if not status["pending"]:
            break
    return totals


# =============================================================================
# MAIN SIMULATION RUNNER
# =============================================================================

async def run_simulation(num_orders: int = TOTAL_ORDERS, max_rounds: int = 20) -> dict[str, Any]:
    print("=" * 70)
    print("🔥 PRINT QUEUE SIMULATION")
    print("=" * 70)
    print(f"📋 Total Orders: {num_orders}")
    print(f"🎯 Target: {API_BASE_URL}")
    print(f"⏰ Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    start_time = time.time()

    async with httpx.AsyncClient() as client:
        print("\n🚀 Enqueueing receipts...\n")
        results = await asyncio.gather(*[enqueue_order(client, i + 1) for i in range(num_orders)])
        queued = [r for r in results if r["success"]]
        print(f"   ✅ Queued: {len(queued)}/{num_orders}")

        print("\n🧾 Draining queue...\n")
        totals = await drain_queue(client, max_rounds)

        status = (await client.get(
            f"{API_BASE_URL}/api/print/queue-status", headers=auth_headers()
        )).json()

    total_time = round(time.time() - start_time, 2)

    print("\n" + "=" * 70)
    print("📊 SIMULATION RESULTS")
    print("=" * 70)
    print(f"\n✅ Printed: {totals['succeeded']}")
    print(f"❌ Failed: {totals['failed']}")
    print(f"⏭️  Skipped: {totals['skipped']}")
    print(f"⏱️  Total Time: {total_time}s")
    print(f"\n📦 Queue: {status['pending']} pending, {status['in_progress']} in progress, "
          f"{status['printed']} printed, {status['failed']} failed")

    failed = [r for r in results if not r["success"]]
    if failed:
        print("\n⚠️  Enqueue failures (showing first 5):")
        for f in failed[:5]:
            print(f"   Order #{f['order_num']}: {f.get('error', 'Unknown error')}")
    print("=" * 70)

    return {"queued": len(queued), "total_time": total_time, **totals}


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Print Queue Load Simulation")
    parser.add_argument("--orders", type=int, default=TOTAL_ORDERS, help="Number of receipts")
    parser.add_argument("--rounds", type=int, default=20, help="Max process-queue calls")
    args = parser.parse_args()

    if not SECRET:
        print("❌ PRINT_PROCESSOR_SECRET or WEBHOOK_SECRET environment variable required")
        sys.exit(1)

    asyncio.run(run_simulation(num_orders=args.orders, max_rounds=args.rounds))
