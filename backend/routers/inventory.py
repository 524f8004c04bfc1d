import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.caller import CallerCapability, current_caller
from core.errors import InventoryError, to_http_exception
from db.database import get_async_session, unit_of_work
from db.inventory.item import InventoryItem as InventoryItemModel
from schemas.inventory import (
    BatchReportOut,
    BatchRequest,
    BatchResultOut,
    InventoryItemCreate,
    InventoryItemOut,
    MinStockLevelUpdate,
    StockImportRequest,
    StockMovementCreate,
    StockMovementOut,
    StockOut,
)
from services import batch, ledger, stock

logger = logging.getLogger(__name__)

router = APIRouter()


def _require_privileged(caller: CallerCapability) -> None:
    if not caller.is_privileged:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed")


def _batch_report(results: List[batch.BatchResult]) -> BatchReportOut:
    out = []
    for r in results:
        entry = r.entry
        out.append(
            BatchResultOut(
                ok=r.ok,
                row=r.row,
                location=str(entry.location) if entry else None,
                inventory_item_id=entry.inventory_item_id if entry else None,
                quantity=entry.quantity if entry else None,
                type=entry.type if entry else None,
                movement_id=r.movement_id,
                new_stock=r.new_stock,
                error=r.error,
            )
        )
    succeeded = sum(1 for r in results if r.ok)
    return BatchReportOut(succeeded=succeeded, failed=len(results) - succeeded, results=out)


@router.get("/items", response_model=List[InventoryItemOut])
async def list_inventory_items(
    q: Optional[str] = None,
    category: Optional[str] = None,
    active_only: bool = False,
    db: AsyncSession = Depends(get_async_session),
):
    stmt = select(InventoryItemModel)
    if q:
        qq = f"%{q.strip().lower()}%"
        stmt = stmt.where(func.lower(InventoryItemModel.name).like(qq))
    if category:
        stmt = stmt.where(InventoryItemModel.category == category)
    if active_only:
        stmt = stmt.where(InventoryItemModel.is_active == True)  # noqa: E712
    res = await db.execute(stmt.order_by(func.lower(InventoryItemModel.name).asc()))
    return [InventoryItemOut(**it.to_schema) for it in res.scalars().all()]


@router.post("/items", response_model=InventoryItemOut, status_code=status.HTTP_201_CREATED)
async def create_inventory_item(
    payload: InventoryItemCreate,
    caller: CallerCapability = Depends(current_caller),
    db: AsyncSession = Depends(get_async_session),
):
    _require_privileged(caller)

    existing = await db.execute(
        select(InventoryItemModel).where(func.lower(InventoryItemModel.name) == payload.name.lower())
    )
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Inventory item already exists")

    model = InventoryItemModel(
        name=payload.name,
        unit=payload.unit,
        category=payload.category,
        cost_per_unit=payload.cost_per_unit,
        min_stock_level=payload.min_stock_level,
        is_active=True,
    )
    db.add(model)
    await db.commit()
    return InventoryItemOut(**model.to_schema)


@router.get("/items/{item_id}", response_model=InventoryItemOut)
async def get_inventory_item(
    item_id: UUID,
    db: AsyncSession = Depends(get_async_session),
):
    try:
        it = await ledger.require_item(db, item_id)
    except InventoryError as e:
        raise to_http_exception(e)
    return InventoryItemOut(**it.to_schema)


@router.get("/stock/{location}/{item_id}", response_model=StockOut)
async def get_stock(
    location: str,
    item_id: UUID,
    db: AsyncSession = Depends(get_async_session),
):
    try:
        loc = await ledger.resolve_location(db, location)
        item = await ledger.require_item(db, item_id)
        row = await ledger.read_stock_row(db, loc.id, item.id)
    except InventoryError as e:
        raise to_http_exception(e)
    return StockOut(
        location_id=loc.id,
        inventory_item_id=item.id,
        current_stock=row.current_stock if row else 0,
        min_stock_level=row.min_stock_level if row else int(item.min_stock_level or 0),
    )


@router.patch("/stock/{location}/{item_id}/min-level", response_model=dict)
async def update_min_stock_level(
    location: str,
    item_id: UUID,
    payload: MinStockLevelUpdate,
    caller: CallerCapability = Depends(current_caller),
    db: AsyncSession = Depends(get_async_session),
):
    _require_privileged(caller)
    try:
        async with unit_of_work(db):
            level = await stock.set_min_stock_level(db, location, item_id, payload.min_stock_level)
    except InventoryError as e:
        raise to_http_exception(e)
    return {"inventory_item_id": item_id, "min_stock_level": level}


@router.post("/movements", response_model=StockMovementOut, status_code=status.HTTP_201_CREATED)
async def create_movement(
    payload: StockMovementCreate,
    caller: CallerCapability = Depends(current_caller),
    db: AsyncSession = Depends(get_async_session),
):
    """
    Record one manual stock change at a location.

    - in/out are relative quantities; out fails with 409 when stock would go below 0.
    - adjustment sets the counted total. Transfers between locations go through /transfers.
    """
    _require_privileged(caller)

    entry = batch.BatchEntry(
        location=payload.location,
        inventory_item_id=payload.inventory_item_id,
        quantity=payload.quantity,
        type=payload.movement_type,
        notes=payload.notes,
    )
    meta = ledger.MovementMeta(actor_id=caller.actor_id, reference_type="manual", notes=payload.notes)
    try:
        async with unit_of_work(db):
            mv = await batch.apply_entry(db, entry, meta)
        return StockMovementOut(**mv.to_schema)
    except InventoryError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("[inventory] create_movement failed")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to create movement: {e}")


@router.get("/movements", response_model=List[StockMovementOut])
async def list_movements(
    inventory_item_id: Optional[UUID] = None,
    location: Optional[str] = None,
    reference_type: Optional[str] = None,
    reference_id: Optional[str] = None,
    limit: int = Query(200, ge=1, le=1000),
    db: AsyncSession = Depends(get_async_session),
):
    try:
        rows = await ledger.list_movements(
            db,
            item_id=inventory_item_id,
            location=location,
            reference_type=reference_type,
            reference_id=reference_id,
            limit=limit,
        )
    except InventoryError as e:
        raise to_http_exception(e)
    return [StockMovementOut(**mv.to_schema) for mv in rows]


@router.post("/batch", response_model=BatchReportOut)
async def apply_batch(
    payload: BatchRequest,
    caller: CallerCapability = Depends(current_caller),
    db: AsyncSession = Depends(get_async_session),
):
    _require_privileged(caller)
    entries = [
        batch.BatchEntry(
            location=e.location,
            inventory_item_id=e.inventory_item_id,
            quantity=e.quantity,
            type=e.type,
            notes=e.notes,
        )
        for e in payload.entries
    ]
    try:
        results = await batch.apply_batch(db, entries, caller.actor_id)
    except Exception as e:
        logger.exception("[inventory] apply_batch failed")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to apply batch: {e}")
    return _batch_report(results)


@router.post("/import", response_model=BatchReportOut)
async def import_stock(
    payload: StockImportRequest,
    caller: CallerCapability = Depends(current_caller),
    db: AsyncSession = Depends(get_async_session),
):
    """Bulk stock import from CSV text (columns: name, quantity, optional type)."""
    _require_privileged(caller)
    try:
        loc = await ledger.resolve_location(db, payload.location)
        results = await batch.import_stock_csv(db, loc, payload.csv, caller.actor_id)
    except InventoryError as e:
        raise to_http_exception(e)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        logger.exception("[inventory] import_stock failed")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to import stock: {e}")
    return _batch_report(results)
