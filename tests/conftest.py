import uuid
from decimal import Decimal

import pytest
import pytest_asyncio

from core.caller import capability_for
from db.database import Database, unit_of_work
from db.inventory.item import InventoryItem
from db.location import BAR, Location
from db.migrations import ensure_store_location
from services import ledger, stock


@pytest_asyncio.fixture
async def database(tmp_path):
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'stock.db'}").open()
    await db.create_all()
    await ensure_store_location(db, "Main Store")
    yield db
    await db.dispose()


@pytest_asyncio.fixture
async def session(database):
    async with database.session() as s:
        yield s


@pytest_asyncio.fixture
async def store_id(database):
    async with database.session() as s:
        store = await ledger.get_store(s)
        store_id = store.id
        await s.rollback()
    return store_id


@pytest.fixture
def make_bar(database):
    async def _make(name: str = "Main Bar") -> uuid.UUID:
        async with database.session() as s:
            async with unit_of_work(s):
                bar = Location(name=name, kind=BAR, is_active=True)
                s.add(bar)
        return bar.id

    return _make


@pytest.fixture
def make_item(database):
    async def _make(name: str = "Heineken", min_stock_level: int = 0, unit: str = "bottle") -> uuid.UUID:
        async with database.session() as s:
            async with unit_of_work(s):
                item = InventoryItem(
                    name=name,
                    unit=unit,
                    category="Beer",
                    cost_per_unit=Decimal("4.50"),
                    min_stock_level=min_stock_level,
                    is_active=True,
                )
                s.add(item)
        return item.id

    return _make


@pytest.fixture
def put_stock(database):
    async def _put(location_id, item_id, quantity: int) -> None:
        async with database.session() as s:
            async with unit_of_work(s):
                await stock.credit(s, location_id, item_id, quantity, ledger.MovementMeta(notes="test setup"))

    return _put


@pytest.fixture
def stock_at(database):
    """Read current stock in a short session of its own."""

    async def _read(location_id, item_id) -> int:
        async with database.session() as s:
            qty = await ledger.get_stock(s, location_id, item_id)
            await s.rollback()
        return qty

    return _read


@pytest.fixture
def manager():
    return capability_for(uuid.uuid4(), "manager")


@pytest.fixture
def cashier_for():
    def _cashier(bar_id):
        return capability_for(uuid.uuid4(), "cashier", bar_id)

    return _cashier
