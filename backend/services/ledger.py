"""
Ledger store: current stock per (location, item) and the movement history.

Writers (append_movement, and the location_stock statements in services.stock)
are only meant to run inside a stock mutator primitive; everything else here
is a read.
"""

from dataclasses import dataclass
from typing import List, Optional, Union
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import NotFound
from db.inventory.item import InventoryItem
from db.inventory.movement import ADJUSTMENT, IN, MOVEMENT_TYPES, OUT, TRANSFER_IN, TRANSFER_OUT, StockMovement
from db.inventory.stock import LocationStock
from db.location import STORE, Location

STORE_ALIAS = "store"

LocationRef = Union[Location, UUID, str]

_SIGN = {IN: 1, TRANSFER_IN: 1, OUT: -1, TRANSFER_OUT: -1}


@dataclass(frozen=True)
class MovementMeta:
    actor_id: Optional[UUID] = None
    reference_type: Optional[str] = None
    reference_id: Optional[str] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class StockRow:
    current_stock: int
    version: int
    min_stock_level: int


async def get_store(session: AsyncSession) -> Location:
    res = await session.execute(select(Location).where(Location.kind == STORE))
    store = res.scalars().first()
    if store is None:
        raise NotFound("Location", STORE_ALIAS)
    return store


async def resolve_location(session: AsyncSession, ref: LocationRef) -> Location:
    """Accept a Location, its id, or the alias "store"."""
    if isinstance(ref, Location):
        return ref
    if isinstance(ref, str):
        if ref.strip().lower() == STORE_ALIAS:
            return await get_store(session)
        try:
            ref = UUID(ref.strip())
        except ValueError:
            raise NotFound("Location", ref)
    res = await session.execute(select(Location).where(Location.id == ref))
    loc = res.scalar_one_or_none()
    if loc is None:
        raise NotFound("Location", ref)
    return loc


async def require_item(session: AsyncSession, item_id: UUID) -> InventoryItem:
    res = await session.execute(select(InventoryItem).where(InventoryItem.id == item_id))
    item = res.scalar_one_or_none()
    if item is None:
        raise NotFound("Inventory item", item_id)
    return item


async def read_stock_row(session: AsyncSession, location_id: UUID, item_id: UUID) -> Optional[StockRow]:
    stock_tbl = LocationStock.__table__
    row = (
        await session.execute(
            select(stock_tbl.c.current_stock, stock_tbl.c.version, stock_tbl.c.min_stock_level).where(
                stock_tbl.c.location_id == location_id,
                stock_tbl.c.inventory_item_id == item_id,
            )
        )
    ).first()
    if row is None:
        return None
    return StockRow(int(row.current_stock), int(row.version), int(row.min_stock_level))


async def get_stock(session: AsyncSession, location: LocationRef, item_id: UUID) -> int:
    loc = await resolve_location(session, location)
    await require_item(session, item_id)
    row = await read_stock_row(session, loc.id, item_id)
    return row.current_stock if row else 0


async def append_movement(
    session: AsyncSession,
    *,
    location_id: UUID,
    item_id: UUID,
    movement_type: str,
    quantity: int,
    previous_stock: int,
    new_stock: int,
    meta: MovementMeta,
) -> StockMovement:
    if movement_type not in MOVEMENT_TYPES:
        raise ValueError(f"unknown movement type {movement_type!r}")
    if movement_type == ADJUSTMENT:
        consistent = abs(new_stock - previous_stock) == quantity
    else:
        consistent = new_stock - previous_stock == _SIGN[movement_type] * quantity
    if not consistent or new_stock < 0:
        raise ValueError(
            f"inconsistent {movement_type} movement: {previous_stock} -> {new_stock} for quantity {quantity}"
        )

    mv = StockMovement(
        location_id=location_id,
        inventory_item_id=item_id,
        movement_type=movement_type,
        quantity=quantity,
        previous_stock=previous_stock,
        new_stock=new_stock,
        reference_type=meta.reference_type,
        reference_id=meta.reference_id,
        notes=meta.notes,
        created_by=meta.actor_id,
    )
    session.add(mv)
    await session.flush()
    return mv


async def find_movement(
    session: AsyncSession,
    *,
    reference_type: str,
    reference_id: str,
    item_id: UUID,
    movement_type: str,
    location_id: Optional[UUID] = None,
) -> Optional[StockMovement]:
    stmt = select(StockMovement).where(
        StockMovement.reference_type == reference_type,
        StockMovement.reference_id == reference_id,
        StockMovement.inventory_item_id == item_id,
        StockMovement.movement_type == movement_type,
    )
    if location_id is not None:
        stmt = stmt.where(StockMovement.location_id == location_id)
    res = await session.execute(stmt.order_by(StockMovement.created_at).limit(1))
    return res.scalars().first()


async def list_movements(
    session: AsyncSession,
    *,
    item_id: Optional[UUID] = None,
    location: Optional[LocationRef] = None,
    reference_type: Optional[str] = None,
    reference_id: Optional[str] = None,
    limit: int = 200,
) -> List[StockMovement]:
    stmt = select(StockMovement)
    if item_id:
        stmt = stmt.where(StockMovement.inventory_item_id == item_id)
    if location is not None:
        loc = await resolve_location(session, location)
        stmt = stmt.where(StockMovement.location_id == loc.id)
    if reference_type:
        stmt = stmt.where(StockMovement.reference_type == reference_type)
    if reference_id:
        stmt = stmt.where(StockMovement.reference_id == reference_id)
    stmt = stmt.order_by(StockMovement.created_at.desc(), StockMovement.id).limit(limit)
    res = await session.execute(stmt)
    return list(res.scalars().all())


async def list_location_stock(
    session: AsyncSession,
    location: LocationRef,
    *,
    low_stock_only: bool = False,
) -> List[dict]:
    """Stock rows at one location with item details, for dashboards and low-stock alerts."""
    loc = await resolve_location(session, location)
    stmt = (
        select(LocationStock, InventoryItem)
        .join(InventoryItem, LocationStock.inventory_item_id == InventoryItem.id)
        .where(LocationStock.location_id == loc.id)
        .where(LocationStock.is_active == True)  # noqa: E712
    )
    if low_stock_only:
        stmt = stmt.where(LocationStock.current_stock <= LocationStock.min_stock_level)
    stmt = stmt.order_by(func.lower(InventoryItem.name).asc())

    res = await session.execute(stmt)
    out = []
    for (st, it) in res.all():
        out.append(
            {
                "location_id": loc.id,
                "inventory_item_id": it.id,
                "name": it.name,
                "unit": it.unit,
                "category": it.category,
                "current_stock": int(st.current_stock),
                "min_stock_level": int(st.min_stock_level),
                "is_low": int(st.current_stock) <= int(st.min_stock_level),
                "updated_at": st.updated_at,
            }
        )
    return out
