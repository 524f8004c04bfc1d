"""
Sale-time stock deduction.

validate_cart is an advisory read used while the cart is being built; the
authoritative check is the debit itself inside apply_cart_deduction, which
runs the whole order in one unit of work keyed by the order id.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.errors import ConcurrencyConflict, InvalidQuantity
from db.database import unit_of_work
from db.inventory.movement import OUT, StockMovement
from db.location import Location
from services import stock
from services.ledger import (
    LocationRef,
    MovementMeta,
    find_movement,
    read_stock_row,
    require_item,
    resolve_location,
)

logger = logging.getLogger(__name__)

REFERENCE_TYPE = "order"


@dataclass(frozen=True)
class CartLine:
    inventory_item_id: Optional[UUID]
    quantity: int
    track_inventory: bool = True
    name: Optional[str] = None

    @property
    def is_tracked(self) -> bool:
        return self.track_inventory and self.inventory_item_id is not None


@dataclass(frozen=True)
class InsufficientLine:
    inventory_item_id: UUID
    name: str
    requested: int
    available: int


@dataclass
class CartValidation:
    valid: bool
    insufficient_lines: List[InsufficientLine] = field(default_factory=list)


@dataclass
class DeductionResult:
    order_id: str
    applied: List[StockMovement] = field(default_factory=list)
    skipped: List[UUID] = field(default_factory=list)


def _tracked_totals(lines: Sequence[CartLine]) -> "OrderedDict[UUID, Tuple[int, Optional[str]]]":
    """Sum quantities per tracked item, keeping the cart's order."""
    totals: Dict[UUID, Tuple[int, Optional[str]]] = OrderedDict()
    for line in lines:
        if isinstance(line.quantity, bool) or not isinstance(line.quantity, int) or line.quantity <= 0:
            raise InvalidQuantity(line.quantity)
        if not line.is_tracked:
            continue
        qty, name = totals.get(line.inventory_item_id, (0, line.name))
        totals[line.inventory_item_id] = (qty + line.quantity, name or line.name)
    return totals


async def validate_cart(session: AsyncSession, bar: LocationRef, lines: Sequence[CartLine]) -> CartValidation:
    loc = await resolve_location(session, bar)
    short: List[InsufficientLine] = []
    for item_id, (qty, name) in _tracked_totals(lines).items():
        item = await require_item(session, item_id)
        row = await read_stock_row(session, loc.id, item.id)
        available = row.current_stock if row else 0
        if qty > available:
            short.append(InsufficientLine(item.id, name or item.name, qty, available))
    return CartValidation(valid=not short, insufficient_lines=short)


async def _deduct_once(
    session: AsyncSession,
    order_ref: str,
    bar: LocationRef,
    totals: "OrderedDict[UUID, Tuple[int, Optional[str]]]",
    actor_id: Optional[UUID],
) -> DeductionResult:
    result = DeductionResult(order_id=order_ref)
    async with unit_of_work(session):
        loc = await resolve_location(session, bar)
        meta = MovementMeta(
            actor_id=actor_id,
            reference_type=REFERENCE_TYPE,
            reference_id=order_ref,
            notes=f"Order {order_ref}",
        )
        for item_id, (qty, _name) in totals.items():
            already = await find_movement(
                session,
                reference_type=REFERENCE_TYPE,
                reference_id=order_ref,
                item_id=item_id,
                movement_type=OUT,
            )
            if already is not None:
                if already.location_id != loc.id:
                    logger.warning(
                        "Order %s already deducted item %s at another location; not deducting at %s",
                        order_ref, item_id, loc.name,
                    )
                result.skipped.append(item_id)
                continue
            result.applied.append(await stock.debit(session, loc, item_id, qty, meta))
    return result


async def apply_cart_deduction(
    session: AsyncSession,
    order_id,
    bar: LocationRef,
    lines: Sequence[CartLine],
    actor_id: Optional[UUID] = None,
) -> DeductionResult:
    """
    Debit every tracked item of an order at `bar`, at most once per order.

    Either all tracked items are debited or none is: the first InsufficientStock
    rolls the whole order back and propagates, and the order must not be
    considered placed. Items already deducted for this order id are skipped,
    even when the repeat names a different bar.
    """
    order_ref = str(order_id)
    totals = _tracked_totals(lines)
    # A rollback expires loaded instances; retry by id.
    if isinstance(bar, Location):
        bar = bar.id

    for attempt in range(1, settings.stock_retry_limit + 1):
        try:
            result = await _deduct_once(session, order_ref, bar, totals, actor_id)
        except IntegrityError:
            # Another request for the same order committed its movements first.
            logger.info("Order %s deduction collided with a concurrent retry (attempt %s)", order_ref, attempt)
            continue
        logger.info(
            "Order %s: deducted %s item(s), %s already deducted",
            order_ref, len(result.applied), len(result.skipped),
        )
        return result

    raise ConcurrencyConflict(f"Stock deduction for order {order_ref} kept colliding; try again")
