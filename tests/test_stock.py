import asyncio

import pytest
from sqlalchemy import func, select

from core.errors import InsufficientStock, InvalidQuantity, NotFound
from db.database import unit_of_work
from db.inventory.movement import ADJUSTMENT, IN, OUT, StockMovement
from services import ledger, stock


async def test_credit_creates_row_on_first_movement(session, make_bar, make_item, stock_at) -> None:
    bar_id = await make_bar()
    item_id = await make_item()

    async with unit_of_work(session):
        mv = await stock.credit(session, bar_id, item_id, 12)

    assert mv.movement_type == IN
    assert (mv.previous_stock, mv.new_stock, mv.quantity) == (0, 12, 12)
    assert await stock_at(bar_id, item_id) == 12


async def test_missing_row_reads_as_zero(session, make_bar, make_item) -> None:
    bar_id = await make_bar()
    item_id = await make_item()
    assert await ledger.get_stock(session, bar_id, item_id) == 0


async def test_debit_refuses_to_go_negative(session, make_bar, make_item, put_stock, stock_at) -> None:
    bar_id = await make_bar()
    item_id = await make_item()
    await put_stock(bar_id, item_id, 3)

    with pytest.raises(InsufficientStock) as exc:
        async with unit_of_work(session):
            await stock.debit(session, bar_id, item_id, 5)

    assert exc.value.available == 3
    assert exc.value.requested == 5
    assert await stock_at(bar_id, item_id) == 3


async def test_debit_to_exactly_zero(session, make_bar, make_item, put_stock, stock_at) -> None:
    bar_id = await make_bar()
    item_id = await make_item()
    await put_stock(bar_id, item_id, 4)

    async with unit_of_work(session):
        mv = await stock.debit(session, bar_id, item_id, 4)

    assert (mv.movement_type, mv.previous_stock, mv.new_stock) == (OUT, 4, 0)
    assert await stock_at(bar_id, item_id) == 0


async def test_debit_without_row_reports_zero_available(session, make_bar, make_item) -> None:
    bar_id = await make_bar()
    item_id = await make_item()

    with pytest.raises(InsufficientStock) as exc:
        async with unit_of_work(session):
            await stock.debit(session, bar_id, item_id, 1)
    assert exc.value.available == 0


@pytest.mark.parametrize("qty", [0, -2, 1.5, True])
async def test_non_positive_or_fractional_quantities_are_rejected(session, make_bar, make_item, qty) -> None:
    bar_id = await make_bar()
    item_id = await make_item()
    with pytest.raises(InvalidQuantity):
        async with unit_of_work(session):
            await stock.credit(session, bar_id, item_id, qty)


async def test_adjust_records_absolute_difference(session, make_bar, make_item, put_stock, stock_at) -> None:
    bar_id = await make_bar()
    item_id = await make_item()
    await put_stock(bar_id, item_id, 10)

    async with unit_of_work(session):
        down = await stock.adjust(session, bar_id, item_id, 7)
    async with unit_of_work(session):
        up = await stock.adjust(session, bar_id, item_id, 9)

    assert (down.movement_type, down.quantity, down.previous_stock, down.new_stock) == (ADJUSTMENT, 3, 10, 7)
    assert (up.quantity, up.previous_stock, up.new_stock) == (2, 7, 9)
    assert await stock_at(bar_id, item_id) == 9


async def test_adjust_to_negative_is_rejected(session, make_bar, make_item) -> None:
    bar_id = await make_bar()
    item_id = await make_item()
    with pytest.raises(InvalidQuantity):
        async with unit_of_work(session):
            await stock.adjust(session, bar_id, item_id, -1)


async def test_unknown_item_and_location(session, make_bar, make_item) -> None:
    bar_id = await make_bar()
    item_id = await make_item()
    with pytest.raises(NotFound):
        async with unit_of_work(session):
            await stock.credit(session, bar_id, bar_id, 1)
    with pytest.raises(NotFound):
        async with unit_of_work(session):
            await stock.credit(session, "nowhere", item_id, 1)


async def test_store_alias_resolves(session, store_id, make_item, stock_at) -> None:
    item_id = await make_item()
    async with unit_of_work(session):
        mv = await stock.credit(session, "store", item_id, 50)
    assert mv.location_id == store_id
    assert await stock_at(store_id, item_id) == 50


async def test_implicit_rows_get_default_min_level(session, make_bar, make_item) -> None:
    bar_id = await make_bar()
    plain = await make_item("Limes")
    with_level = await make_item("Tonic", min_stock_level=12)

    async with unit_of_work(session):
        await stock.credit(session, bar_id, plain, 1)
        await stock.credit(session, bar_id, with_level, 1)

    plain_row = await ledger.read_stock_row(session, bar_id, plain)
    level_row = await ledger.read_stock_row(session, bar_id, with_level)
    assert plain_row.min_stock_level == 5
    assert level_row.min_stock_level == 12


async def test_low_stock_listing(session, make_bar, make_item, put_stock) -> None:
    bar_id = await make_bar()
    low = await make_item("Gin", min_stock_level=4)
    fine = await make_item("Vodka", min_stock_level=4)
    await put_stock(bar_id, low, 4)
    await put_stock(bar_id, fine, 20)

    rows = await ledger.list_location_stock(session, bar_id, low_stock_only=True)
    assert [r["name"] for r in rows] == ["Gin"]
    assert rows[0]["is_low"] is True


async def test_set_min_stock_level(session, make_bar, make_item) -> None:
    bar_id = await make_bar()
    item_id = await make_item()
    async with unit_of_work(session):
        level = await stock.set_min_stock_level(session, bar_id, item_id, 8)
    assert level == 8
    assert (await ledger.read_stock_row(session, bar_id, item_id)).min_stock_level == 8

    with pytest.raises(InvalidQuantity):
        async with unit_of_work(session):
            await stock.set_min_stock_level(session, bar_id, item_id, -1)


async def test_movements_reconstruct_current_stock(session, make_bar, make_item, stock_at) -> None:
    bar_id = await make_bar()
    item_id = await make_item()

    async with unit_of_work(session):
        await stock.credit(session, bar_id, item_id, 10)
        await stock.debit(session, bar_id, item_id, 4)
        await stock.adjust(session, bar_id, item_id, 3)
        await stock.credit(session, bar_id, item_id, 2)

    movements = await ledger.list_movements(session, item_id=item_id, location=bar_id)
    movements.sort(key=lambda m: (m.created_at, m.new_stock))
    assert [m.previous_stock for m in movements[1:]] == [m.new_stock for m in movements[:-1]]
    assert movements[-1].new_stock == 5
    await session.rollback()
    assert await stock_at(bar_id, item_id) == 5


async def test_concurrent_debits_cannot_oversell(database, make_bar, make_item, put_stock, stock_at) -> None:
    bar_id = await make_bar()
    item_id = await make_item()
    await put_stock(bar_id, item_id, 10)

    async def take(qty):
        async with database.session() as s:
            async with unit_of_work(s):
                return await stock.debit(s, bar_id, item_id, qty)

    outcomes = await asyncio.gather(take(6), take(5), return_exceptions=True)
    won = [o for o in outcomes if isinstance(o, StockMovement)]
    lost = [o for o in outcomes if isinstance(o, InsufficientStock)]

    assert len(won) == 1 and len(lost) == 1
    assert lost[0].available == 10 - won[0].quantity
    assert await stock_at(bar_id, item_id) == 10 - won[0].quantity

    async with database.session() as s:
        count = (
            await s.execute(
                select(func.count()).select_from(StockMovement).where(StockMovement.movement_type == OUT)
            )
        ).scalar_one()
        await s.rollback()
    assert count == 1
