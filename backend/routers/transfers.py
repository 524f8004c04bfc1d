import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from core.caller import CallerCapability, current_caller
from core.errors import InventoryError, to_http_exception
from db.database import get_async_session
from schemas.transfers import BatchTransferCreate, TransferCreate, TransferOut, TransferRespond
from services import transfers as transfer_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=TransferOut, status_code=status.HTTP_201_CREATED)
async def create_transfer(
    payload: TransferCreate,
    caller: CallerCapability = Depends(current_caller),
    db: AsyncSession = Depends(get_async_session),
):
    """
    Move stock of one item between two locations.

    Managers complete the transfer immediately. A cashier can only send from their own
    bar; the stock leaves the bar now and the transfer waits for the destination to respond.
    """
    try:
        transfer = await transfer_service.request_transfer(
            db,
            caller,
            source=payload.source,
            destination=payload.destination,
            inventory_item_id=payload.inventory_item_id,
            quantity=payload.quantity,
            notes=payload.notes,
        )
        return TransferOut(**transfer.to_schema)
    except InventoryError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("[transfers] create_transfer failed")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to create transfer: {e}")


@router.post("/batch", response_model=List[TransferOut], status_code=status.HTTP_201_CREATED)
async def create_batch_transfer(
    payload: BatchTransferCreate,
    caller: CallerCapability = Depends(current_caller),
    db: AsyncSession = Depends(get_async_session),
):
    lines = [transfer_service.TransferLine(l.inventory_item_id, l.quantity) for l in payload.items]
    try:
        created = await transfer_service.request_batch_transfer(
            db,
            caller,
            source=payload.source,
            destination=payload.destination,
            lines=lines,
            notes=payload.notes,
        )
        return [TransferOut(**t.to_schema) for t in created]
    except InventoryError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("[transfers] create_batch_transfer failed")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to create transfers: {e}")


@router.post("/{transfer_id}/respond", response_model=TransferOut)
async def respond_to_transfer(
    transfer_id: UUID,
    payload: TransferRespond,
    caller: CallerCapability = Depends(current_caller),
    db: AsyncSession = Depends(get_async_session),
):
    try:
        transfer = await transfer_service.respond(db, caller, transfer_id, payload.decision, payload.notes)
        return TransferOut(**transfer.to_schema)
    except InventoryError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("[transfers] respond failed transfer_id=%s", transfer_id)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to respond to transfer: {e}")


@router.get("", response_model=List[TransferOut])
async def list_transfers(
    location: Optional[str] = None,
    status_filter: Optional[str] = Query(None, alias="status"),
    incoming_only: bool = False,
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_async_session),
):
    try:
        rows = await transfer_service.list_transfers(
            db,
            location=location,
            status=status_filter,
            incoming_only=incoming_only,
            limit=limit,
        )
    except InventoryError as e:
        raise to_http_exception(e)
    return [TransferOut(**t.to_schema) for t in rows]


@router.get("/{transfer_id}", response_model=TransferOut)
async def get_transfer(
    transfer_id: UUID,
    db: AsyncSession = Depends(get_async_session),
):
    try:
        transfer = await transfer_service.get_transfer(db, transfer_id)
    except InventoryError as e:
        raise to_http_exception(e)
    return TransferOut(**transfer.to_schema)
