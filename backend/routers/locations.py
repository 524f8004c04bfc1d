import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.caller import CallerCapability, current_caller
from core.errors import InventoryError, to_http_exception
from db.database import get_async_session
from db.location import BAR, Location
from schemas.inventory import LocationStockOut
from schemas.locations import BarCreate, BarUpdate, LocationRead
from services import ledger

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=List[LocationRead])
async def list_locations(
    include_inactive: bool = False,
    db: AsyncSession = Depends(get_async_session),
):
    stmt = select(Location)
    if not include_inactive:
        stmt = stmt.where(Location.is_active == True)  # noqa: E712
    res = await db.execute(stmt.order_by(Location.kind.desc(), func.lower(Location.name)))
    return [LocationRead(**loc.to_schema) for loc in res.scalars().all()]


@router.post("", response_model=LocationRead, status_code=status.HTTP_201_CREATED)
async def create_bar(
    payload: BarCreate,
    caller: CallerCapability = Depends(current_caller),
    db: AsyncSession = Depends(get_async_session),
):
    if not caller.is_privileged:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed")

    name = (payload.name or "").strip()
    if not name:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="name is required")
    existing = await db.execute(select(Location).where(func.lower(Location.name) == name.lower()))
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Location already exists")

    bar = Location(name=name, kind=BAR, description=payload.description, is_active=True)
    db.add(bar)
    await db.commit()
    logger.info("Created bar %s (%s)", bar.name, bar.id)
    return LocationRead(**bar.to_schema)


@router.patch("/{ref}", response_model=LocationRead)
async def update_location(
    ref: str,
    payload: BarUpdate,
    caller: CallerCapability = Depends(current_caller),
    db: AsyncSession = Depends(get_async_session),
):
    if not caller.is_privileged:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed")
    try:
        loc = await ledger.resolve_location(db, ref)
    except InventoryError as e:
        raise to_http_exception(e)

    if payload.name is not None:
        name = payload.name.strip()
        if not name:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="name cannot be empty")
        loc.name = name
    if payload.description is not None:
        loc.description = payload.description
    if payload.is_active is not None:
        if loc.is_store and not payload.is_active:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="The store cannot be deactivated")
        loc.is_active = payload.is_active
    await db.commit()
    return LocationRead(**loc.to_schema)


@router.get("/{ref}/stock", response_model=List[LocationStockOut])
async def list_stock(
    ref: str,
    low_stock: bool = False,
    db: AsyncSession = Depends(get_async_session),
):
    """Current stock at a location; `low_stock=true` keeps rows at or below their minimum."""
    try:
        rows = await ledger.list_location_stock(db, ref, low_stock_only=low_stock)
    except InventoryError as e:
        raise to_http_exception(e)
    return [LocationStockOut(**r) for r in rows]
