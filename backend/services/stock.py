"""
Stock mutator: the only code that writes location_stock.

Each primitive runs inside the caller's unit of work and performs its
read-compute-write on the (location, item) row as a single statement:

- credit: INSERT .. ON CONFLICT DO UPDATE SET current_stock = current_stock + q
- debit:  UPDATE .. SET current_stock = current_stock - q WHERE current_stock >= q
- adjust: compare-and-swap on the row version, retried a bounded number of times

so two concurrent writers on the same row can never both compute from the
same previous value. Every successful primitive appends one StockMovement.
"""

import logging
import uuid
from typing import Optional
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.errors import ConcurrencyConflict, InsufficientStock, InvalidQuantity
from db.database import utcnow
from db.inventory.item import InventoryItem
from db.inventory.movement import ADJUSTMENT, IN, OUT, TRANSFER_IN, TRANSFER_OUT, StockMovement
from db.inventory.stock import LocationStock
from services.ledger import (
    LocationRef,
    MovementMeta,
    append_movement,
    read_stock_row,
    require_item,
    resolve_location,
)

logger = logging.getLogger(__name__)

_NO_META = MovementMeta()


def _positive(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidQuantity(quantity)
    return quantity


async def _insert_for(session: AsyncSession):
    conn = await session.connection()
    if conn.dialect.name == "sqlite":
        return sqlite_insert
    return pg_insert


def _default_min_level(item: InventoryItem) -> int:
    return int(item.min_stock_level) if item.min_stock_level else settings.default_min_stock_level


def _where_row(location_id: UUID, item_id: UUID):
    stock_tbl = LocationStock.__table__
    return (stock_tbl.c.location_id == location_id, stock_tbl.c.inventory_item_id == item_id)


async def _ensure_row(session: AsyncSession, location_id: UUID, item: InventoryItem) -> None:
    stock_tbl = LocationStock.__table__
    insert = await _insert_for(session)
    await session.execute(
        insert(stock_tbl)
        .values(
            id=uuid.uuid4(),
            location_id=location_id,
            inventory_item_id=item.id,
            current_stock=0,
            min_stock_level=_default_min_level(item),
            is_active=True,
            version=0,
            updated_at=utcnow(),
        )
        .on_conflict_do_nothing(index_elements=[stock_tbl.c.location_id, stock_tbl.c.inventory_item_id])
    )


async def credit(
    session: AsyncSession,
    location: LocationRef,
    item_id: UUID,
    quantity: int,
    meta: MovementMeta = _NO_META,
    *,
    movement_type: str = IN,
) -> StockMovement:
    """Increase stock; creates the location row on first movement into it."""
    if movement_type not in (IN, TRANSFER_IN):
        raise ValueError(f"credit cannot record a {movement_type!r} movement")
    qty = _positive(quantity)
    loc = await resolve_location(session, location)
    item = await require_item(session, item_id)

    stock_tbl = LocationStock.__table__
    insert = await _insert_for(session)
    now = utcnow()
    upsert = (
        insert(stock_tbl)
        .values(
            id=uuid.uuid4(),
            location_id=loc.id,
            inventory_item_id=item.id,
            current_stock=qty,
            min_stock_level=_default_min_level(item),
            is_active=True,
            version=1,
            updated_at=now,
        )
        .on_conflict_do_update(
            index_elements=[stock_tbl.c.location_id, stock_tbl.c.inventory_item_id],
            set_={
                "current_stock": stock_tbl.c.current_stock + qty,
                "version": stock_tbl.c.version + 1,
                "updated_at": now,
            },
        )
        .returning(stock_tbl.c.current_stock)
    )
    new_stock = int((await session.execute(upsert)).scalar_one())

    logger.debug("credit %s x%s at %s -> %s", item.name, qty, loc.name, new_stock)
    return await append_movement(
        session,
        location_id=loc.id,
        item_id=item.id,
        movement_type=movement_type,
        quantity=qty,
        previous_stock=new_stock - qty,
        new_stock=new_stock,
        meta=meta,
    )


async def debit(
    session: AsyncSession,
    location: LocationRef,
    item_id: UUID,
    quantity: int,
    meta: MovementMeta = _NO_META,
    *,
    movement_type: str = OUT,
) -> StockMovement:
    """Decrease stock, or raise InsufficientStock and leave it untouched."""
    if movement_type not in (OUT, TRANSFER_OUT):
        raise ValueError(f"debit cannot record a {movement_type!r} movement")
    qty = _positive(quantity)
    loc = await resolve_location(session, location)
    item = await require_item(session, item_id)

    stock_tbl = LocationStock.__table__
    res = await session.execute(
        update(stock_tbl)
        .where(*_where_row(loc.id, item.id))
        .where(stock_tbl.c.current_stock >= qty)
        .values(
            current_stock=stock_tbl.c.current_stock - qty,
            version=stock_tbl.c.version + 1,
            updated_at=utcnow(),
        )
        .returning(stock_tbl.c.current_stock)
    )
    new_stock = res.scalar_one_or_none()
    if new_stock is None:
        row = await read_stock_row(session, loc.id, item.id)
        available = row.current_stock if row else 0
        logger.warning(
            "Refused debit of %s x%s at %s: only %s available", item.name, qty, loc.name, available
        )
        raise InsufficientStock(
            available=available,
            requested=qty,
            inventory_item_id=item.id,
            location_id=loc.id,
            item_name=item.name,
        )

    new_stock = int(new_stock)
    logger.debug("debit %s x%s at %s -> %s", item.name, qty, loc.name, new_stock)
    return await append_movement(
        session,
        location_id=loc.id,
        item_id=item.id,
        movement_type=movement_type,
        quantity=qty,
        previous_stock=new_stock + qty,
        new_stock=new_stock,
        meta=meta,
    )


async def adjust(
    session: AsyncSession,
    location: LocationRef,
    item_id: UUID,
    new_quantity: int,
    meta: MovementMeta = _NO_META,
) -> StockMovement:
    """Set stock to an absolute value (stock count); records |new - previous|."""
    if isinstance(new_quantity, bool) or not isinstance(new_quantity, int) or new_quantity < 0:
        raise InvalidQuantity(new_quantity, f"stock cannot be set to {new_quantity}")
    loc = await resolve_location(session, location)
    item = await require_item(session, item_id)
    await _ensure_row(session, loc.id, item)

    stock_tbl = LocationStock.__table__
    for attempt in range(1, settings.stock_retry_limit + 1):
        row = await read_stock_row(session, loc.id, item.id)
        res = await session.execute(
            update(stock_tbl)
            .where(*_where_row(loc.id, item.id))
            .where(stock_tbl.c.version == row.version)
            .values(current_stock=new_quantity, version=row.version + 1, updated_at=utcnow())
            .returning(stock_tbl.c.current_stock)
        )
        if res.scalar_one_or_none() is not None:
            return await append_movement(
                session,
                location_id=loc.id,
                item_id=item.id,
                movement_type=ADJUSTMENT,
                quantity=abs(new_quantity - row.current_stock),
                previous_stock=row.current_stock,
                new_stock=new_quantity,
                meta=meta,
            )
        logger.info("Adjustment of %s at %s lost a race (attempt %s)", item.name, loc.name, attempt)

    raise ConcurrencyConflict(f"Stock of {item.name} at {loc.name} kept changing; try again")


async def set_min_stock_level(
    session: AsyncSession,
    location: LocationRef,
    item_id: UUID,
    min_stock_level: int,
) -> Optional[int]:
    if isinstance(min_stock_level, bool) or not isinstance(min_stock_level, int) or min_stock_level < 0:
        raise InvalidQuantity(min_stock_level, "min_stock_level must be >= 0")
    loc = await resolve_location(session, location)
    item = await require_item(session, item_id)
    await _ensure_row(session, loc.id, item)

    stock_tbl = LocationStock.__table__
    res = await session.execute(
        update(stock_tbl)
        .where(*_where_row(loc.id, item.id))
        .values(min_stock_level=min_stock_level, updated_at=utcnow())
        .returning(stock_tbl.c.min_stock_level)
    )
    return res.scalar_one_or_none()
