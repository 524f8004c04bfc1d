"""
Transfer workflow.

A transfer moves stock of one item between two locations:

- privileged caller: source is debited and destination credited at once, the
  transfer is created directly as `completed`;
- anyone else (a cashier bound to the source bar): the source is debited now,
  so the stock stops being sellable there, and the transfer waits as `pending`
  until the destination accepts (credit destination) or rejects (credit the
  source back).

Every step runs in one unit of work together with the stock it moves.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import List, Optional, Sequence
from uuid import UUID

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.caller import CallerCapability
from core.errors import InvalidTransferState, NotAuthorized, NotFound
from db.database import unit_of_work, utcnow
from db.inventory.movement import TRANSFER_IN, TRANSFER_OUT
from db.inventory.transfer import ACCEPTED, COMPLETED, PENDING, REJECTED, TRANSFER_STATUSES, Transfer
from db.location import Location
from services import stock
from services.ledger import LocationRef, MovementMeta, require_item, resolve_location

logger = logging.getLogger(__name__)

ACCEPT = "accept"
REJECT = "reject"

REFERENCE_TYPE = "transfer"


@dataclass(frozen=True)
class TransferLine:
    inventory_item_id: UUID
    quantity: int


def _check_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidTransferState(f"quantity must be > 0 (got {quantity})")
    return quantity


def _meta(caller: CallerCapability, transfer_id: UUID, notes: Optional[str]) -> MovementMeta:
    return MovementMeta(
        actor_id=caller.actor_id,
        reference_type=REFERENCE_TYPE,
        reference_id=str(transfer_id),
        notes=notes,
    )


async def _open_transfer(
    session: AsyncSession,
    caller: CallerCapability,
    src: Location,
    dst: Location,
    line: TransferLine,
    notes: Optional[str],
) -> Transfer:
    qty = _check_quantity(line.quantity)
    item = await require_item(session, line.inventory_item_id)

    transfer = Transfer(
        id=uuid.uuid4(),
        source_location_id=src.id,
        destination_location_id=dst.id,
        inventory_item_id=item.id,
        quantity=qty,
        status=PENDING,
        requested_by=caller.actor_id,
        notes=notes,
    )
    meta = _meta(caller, transfer.id, notes)

    # Debit first: if the source is short, nothing else happens.
    await stock.debit(session, src, item.id, qty, meta, movement_type=TRANSFER_OUT)

    if caller.can_complete_transfers_immediately:
        await stock.credit(session, dst, item.id, qty, meta, movement_type=TRANSFER_IN)
        transfer.status = COMPLETED
        transfer.approved_by = caller.actor_id
        transfer.completed_at = utcnow()

    session.add(transfer)
    await session.flush()
    logger.info(
        "Transfer %s: %s x%s %s -> %s (%s)",
        transfer.id, item.name, qty, src.name, dst.name, transfer.status,
    )
    return transfer


async def _resolve_pair(
    session: AsyncSession,
    caller: CallerCapability,
    source: LocationRef,
    destination: LocationRef,
):
    src = await resolve_location(session, source)
    dst = await resolve_location(session, destination)
    if src.id == dst.id:
        raise InvalidTransferState("Source and destination must be different")
    if not caller.can_complete_transfers_immediately and not caller.is_bound_to(src.id):
        raise NotAuthorized(f"Caller may only send transfers from their own bar, not from {src.name}")
    return src, dst


async def request_transfer(
    session: AsyncSession,
    caller: CallerCapability,
    *,
    source: LocationRef,
    destination: LocationRef,
    inventory_item_id: UUID,
    quantity: int,
    notes: Optional[str] = None,
) -> Transfer:
    _check_quantity(quantity)
    async with unit_of_work(session):
        src, dst = await _resolve_pair(session, caller, source, destination)
        transfer = await _open_transfer(
            session, caller, src, dst, TransferLine(inventory_item_id, quantity), notes
        )
    return transfer


async def request_batch_transfer(
    session: AsyncSession,
    caller: CallerCapability,
    *,
    source: LocationRef,
    destination: LocationRef,
    lines: Sequence[TransferLine],
    notes: Optional[str] = None,
) -> List[Transfer]:
    """Several items between the same two locations; all of them move or none does."""
    if not lines:
        raise InvalidTransferState("No items selected")
    for line in lines:
        _check_quantity(line.quantity)
    notes = notes or f"Batch transfer: {len(lines)} items"

    async with unit_of_work(session):
        src, dst = await _resolve_pair(session, caller, source, destination)
        transfers = [await _open_transfer(session, caller, src, dst, line, notes) for line in lines]
    return transfers


async def get_transfer(session: AsyncSession, transfer_id: UUID) -> Transfer:
    res = await session.execute(select(Transfer).where(Transfer.id == transfer_id))
    transfer = res.scalar_one_or_none()
    if transfer is None:
        raise NotFound("Transfer", transfer_id)
    return transfer


async def respond(
    session: AsyncSession,
    caller: CallerCapability,
    transfer_id: UUID,
    decision: str,
    notes: Optional[str] = None,
) -> Transfer:
    """Accept or reject a pending transfer; any later response fails."""
    if decision not in (ACCEPT, REJECT):
        raise InvalidTransferState(f"Unknown decision {decision!r}; expected 'accept' or 'reject'")

    async with unit_of_work(session):
        transfer = await get_transfer(session, transfer_id)
        if not caller.can_act_for(transfer.destination_location_id):
            raise NotAuthorized("Only the receiving bar or a manager can respond to this transfer")

        new_status = ACCEPTED if decision == ACCEPT else REJECTED
        # Conditional on `pending`: of two racing responders only one matches a row.
        res = await session.execute(
            update(Transfer)
            .where(Transfer.id == transfer.id, Transfer.status == PENDING)
            .values(status=new_status, approved_by=caller.actor_id, completed_at=utcnow())
            .returning(Transfer.id)
            .execution_options(synchronize_session="fetch")
        )
        if res.scalar_one_or_none() is None:
            current = (
                await session.execute(select(Transfer.status).where(Transfer.id == transfer.id))
            ).scalar_one()
            raise InvalidTransferState(
                f"Transfer {transfer.id} is already {current}",
                transfer_id=transfer.id,
                current_status=current,
            )

        # Accept delivers to the destination; reject returns the stock to the sender.
        target = transfer.destination_location_id if decision == ACCEPT else transfer.source_location_id
        await stock.credit(
            session,
            target,
            transfer.inventory_item_id,
            int(transfer.quantity),
            _meta(caller, transfer.id, notes),
            movement_type=TRANSFER_IN,
        )

    logger.info("Transfer %s %s by %s", transfer.id, new_status, caller.actor_id)
    return transfer


async def list_transfers(
    session: AsyncSession,
    *,
    location: Optional[LocationRef] = None,
    status: Optional[str] = None,
    incoming_only: bool = False,
    limit: int = 100,
) -> List[Transfer]:
    stmt = select(Transfer)
    if location is not None:
        loc = await resolve_location(session, location)
        if incoming_only:
            stmt = stmt.where(Transfer.destination_location_id == loc.id)
        else:
            stmt = stmt.where(
                or_(Transfer.source_location_id == loc.id, Transfer.destination_location_id == loc.id)
            )
    if status:
        if status not in TRANSFER_STATUSES:
            raise InvalidTransferState(f"Unknown transfer status {status!r}")
        stmt = stmt.where(Transfer.status == status)
    stmt = stmt.order_by(Transfer.created_at.desc(), Transfer.id).limit(limit)
    res = await session.execute(stmt)
    return list(res.scalars().all())
