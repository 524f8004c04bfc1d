import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from core.caller import CallerCapability, current_caller
from core.errors import InventoryError, NotAuthorized, to_http_exception
from db.database import get_async_session
from schemas.inventory import StockMovementOut
from schemas.sales import (
    CartDeductionOut,
    CartDeductionRequest,
    CartLineIn,
    CartValidateRequest,
    CartValidationOut,
    InsufficientLineOut,
)
from services import sales
from services.ledger import resolve_location

logger = logging.getLogger(__name__)

router = APIRouter()


def _cart_lines(lines: List[CartLineIn]) -> List[sales.CartLine]:
    return [
        sales.CartLine(
            inventory_item_id=l.inventory_item_id,
            quantity=l.quantity,
            track_inventory=l.track_inventory,
            name=l.name,
        )
        for l in lines
    ]


@router.post("/validate", response_model=CartValidationOut)
async def validate_cart(
    payload: CartValidateRequest,
    db: AsyncSession = Depends(get_async_session),
):
    """Advisory stock check for a cart; the deduction itself re-checks."""
    try:
        result = await sales.validate_cart(db, payload.bar, _cart_lines(payload.lines))
    except InventoryError as e:
        raise to_http_exception(e)
    return CartValidationOut(
        valid=result.valid,
        insufficient_lines=[
            InsufficientLineOut(
                inventory_item_id=s.inventory_item_id,
                name=s.name,
                requested=s.requested,
                available=s.available,
            )
            for s in result.insufficient_lines
        ],
    )


@router.post("/orders/{order_id}/deduct", response_model=CartDeductionOut)
async def deduct_order(
    order_id: str,
    payload: CartDeductionRequest,
    caller: CallerCapability = Depends(current_caller),
    db: AsyncSession = Depends(get_async_session),
):
    """
    Debit an order's tracked items at the bar. Safe to retry with the same order id.
    Returns 409 with the short item when stock is insufficient; nothing is deducted then.
    """
    try:
        bar = await resolve_location(db, payload.bar)
        if not caller.can_act_for(bar.id):
            raise NotAuthorized(f"Caller cannot sell from {bar.name}")
        result = await sales.apply_cart_deduction(
            db, order_id, bar, _cart_lines(payload.lines), actor_id=caller.actor_id
        )
        return CartDeductionOut(
            order_id=result.order_id,
            applied=[StockMovementOut(**mv.to_schema) for mv in result.applied],
            skipped=result.skipped,
        )
    except InventoryError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("[sales] deduct_order failed order_id=%s", order_id)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to deduct stock: {e}")
