import argparse
import asyncio
import sys
from decimal import Decimal
from pathlib import Path

"""
Seed demo data (bars, inventory items, store stock).

This script can be run from either:
- backend/: `python scripts/seed_demo_data.py`
- repo root: `python backend/scripts/seed_demo_data.py`

Re-running is safe for bars and items; stock is only credited when the store
row for an item is still empty, unless --top-up is given.
"""

# Allow running from repo root by ensuring `backend/` is on sys.path
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from sqlalchemy import func, select

from core.config import settings
from db.database import Database, unit_of_work
from db.inventory.item import InventoryItem
from db.location import BAR, Location
from db.migrations import ensure_store_location
from services import ledger, stock


BARS = ["Main Bar", "Pool Bar", "Rooftop"]

# name, unit, category, cost per unit, min level, store quantity
ITEMS = [
    ("Beefeater Gin 700ml", "bottle", "Spirits", Decimal("78.00"), 4, 24),
    ("Bacardi Carta Blanca 700ml", "bottle", "Spirits", Decimal("69.00"), 4, 24),
    ("Smirnoff Vodka 700ml", "bottle", "Spirits", Decimal("59.00"), 4, 30),
    ("Campari 700ml", "bottle", "Liqueurs", Decimal("72.00"), 2, 12),
    ("Cointreau 700ml", "bottle", "Liqueurs", Decimal("110.00"), 2, 10),
    ("Goldstar 330ml", "can", "Beer", Decimal("4.50"), 48, 240),
    ("Tonic Water 200ml", "bottle", "Mixers", Decimal("2.20"), 24, 120),
    ("Limes", "pcs", "Garnish", Decimal("0.60"), 30, 200),
]


async def get_or_create_bar(session, name: str) -> Location:
    result = await session.execute(select(Location).where(func.lower(Location.name) == name.lower()))
    bar = result.scalar_one_or_none()
    if bar:
        return bar
    bar = Location(name=name, kind=BAR, is_active=True)
    session.add(bar)
    await session.flush()
    return bar


async def get_or_create_item(session, name, unit, category, cost, min_level) -> InventoryItem:
    result = await session.execute(select(InventoryItem).where(func.lower(InventoryItem.name) == name.lower()))
    item = result.scalar_one_or_none()
    if item:
        return item
    item = InventoryItem(
        name=name,
        unit=unit,
        category=category,
        cost_per_unit=cost,
        min_stock_level=min_level,
        is_active=True,
    )
    session.add(item)
    await session.flush()
    return item


async def seed(database_url: str, top_up: bool) -> None:
    database = Database(database_url).open()
    try:
        await database.create_all()
        store = await ensure_store_location(database, settings.store_location_name)

        async with database.session() as session:
            async with unit_of_work(session):
                for name in BARS:
                    bar = await get_or_create_bar(session, name)
                    print(f"bar: {bar.name}")

                meta = ledger.MovementMeta(reference_type="seed", notes="Demo data")
                for (name, unit, category, cost, min_level, qty) in ITEMS:
                    item = await get_or_create_item(session, name, unit, category, cost, min_level)
                    on_hand = await ledger.get_stock(session, store.id, item.id)
                    if on_hand and not top_up:
                        print(f"skip {item.name}: store already has {on_hand}")
                        continue
                    mv = await stock.credit(session, store.id, item.id, qty, meta)
                    print(f"{item.name}: store {mv.previous_stock} -> {mv.new_stock}")
    finally:
        await database.dispose()


if __name__ == "__main__":
    p = argparse.ArgumentParser()
    p.add_argument("--database-url", default=settings.database_url)
    p.add_argument("--top-up", action="store_true", help="Credit store stock even when it is not empty")
    args = p.parse_args()

    asyncio.run(seed(args.database_url, args.top_up))
