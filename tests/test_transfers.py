import asyncio
import uuid

import pytest

from core.errors import InsufficientStock, InvalidTransferState, NotAuthorized
from db.database import unit_of_work
from db.inventory.movement import TRANSFER_IN, TRANSFER_OUT
from db.inventory.transfer import ACCEPTED, COMPLETED, PENDING, REJECTED, Transfer
from services import ledger
from services import transfers as transfer_service
from services.transfers import ACCEPT, REJECT, TransferLine


async def test_cashier_transfer_waits_and_reject_returns_stock(
    session, make_bar, make_item, put_stock, stock_at, cashier_for
) -> None:
    bar_1 = await make_bar("Bar 1")
    bar_2 = await make_bar("Bar 2")
    item_id = await make_item("Heineken")
    await put_stock(bar_1, item_id, 10)

    transfer = await transfer_service.request_transfer(
        session, cashier_for(bar_1), source=bar_1, destination=bar_2, inventory_item_id=item_id, quantity=10
    )
    assert transfer.status == PENDING
    assert await stock_at(bar_1, item_id) == 0
    assert await stock_at(bar_2, item_id) == 0

    rejected = await transfer_service.respond(session, cashier_for(bar_2), transfer.id, REJECT)
    assert rejected.status == REJECTED
    assert await stock_at(bar_1, item_id) == 10
    assert await stock_at(bar_2, item_id) == 0


async def test_pending_transfer_accept_credits_destination(
    session, make_bar, make_item, put_stock, stock_at, cashier_for
) -> None:
    bar_1 = await make_bar("Bar 1")
    bar_2 = await make_bar("Bar 2")
    item_id = await make_item()
    await put_stock(bar_1, item_id, 8)

    transfer = await transfer_service.request_transfer(
        session, cashier_for(bar_1), source=bar_1, destination=bar_2, inventory_item_id=item_id, quantity=3
    )
    accepted = await transfer_service.respond(session, cashier_for(bar_2), transfer.id, ACCEPT)

    assert accepted.status == ACCEPTED
    assert accepted.completed_at is not None
    assert await stock_at(bar_1, item_id) == 5
    assert await stock_at(bar_2, item_id) == 3

    movements = await ledger.list_movements(session, reference_type="transfer", reference_id=str(transfer.id))
    assert sorted(m.movement_type for m in movements) == [TRANSFER_IN, TRANSFER_OUT]


async def test_privileged_transfer_completes_immediately(
    session, store_id, make_bar, make_item, put_stock, stock_at, manager
) -> None:
    bar_a = await make_bar("Bar A")
    item_id = await make_item()
    await put_stock(store_id, item_id, 50)

    transfer = await transfer_service.request_transfer(
        session, manager, source="store", destination=bar_a, inventory_item_id=item_id, quantity=20
    )

    assert transfer.status == COMPLETED
    assert transfer.approved_by == manager.actor_id
    assert await stock_at(store_id, item_id) == 30
    assert await stock_at(bar_a, item_id) == 20


async def test_second_response_fails_and_moves_nothing(
    session, make_bar, make_item, put_stock, stock_at, cashier_for
) -> None:
    bar_1 = await make_bar("Bar 1")
    bar_2 = await make_bar("Bar 2")
    item_id = await make_item()
    await put_stock(bar_1, item_id, 6)

    transfer = await transfer_service.request_transfer(
        session, cashier_for(bar_1), source=bar_1, destination=bar_2, inventory_item_id=item_id, quantity=6
    )
    receiver = cashier_for(bar_2)
    await transfer_service.respond(session, receiver, transfer.id, ACCEPT)

    with pytest.raises(InvalidTransferState) as exc:
        await transfer_service.respond(session, receiver, transfer.id, REJECT)
    assert exc.value.current_status == ACCEPTED

    assert await stock_at(bar_1, item_id) == 0
    assert await stock_at(bar_2, item_id) == 6


async def test_completed_transfer_cannot_be_responded_to(
    session, store_id, make_bar, make_item, put_stock, manager
) -> None:
    bar_a = await make_bar("Bar A")
    item_id = await make_item()
    await put_stock(store_id, item_id, 5)

    transfer = await transfer_service.request_transfer(
        session, manager, source=store_id, destination=bar_a, inventory_item_id=item_id, quantity=5
    )
    with pytest.raises(InvalidTransferState):
        await transfer_service.respond(session, manager, transfer.id, REJECT)


async def test_concurrent_responses_apply_once(
    database, make_bar, make_item, put_stock, stock_at, cashier_for
) -> None:
    bar_1 = await make_bar("Bar 1")
    bar_2 = await make_bar("Bar 2")
    item_id = await make_item()
    await put_stock(bar_1, item_id, 4)

    async with database.session() as s:
        transfer = await transfer_service.request_transfer(
            s, cashier_for(bar_1), source=bar_1, destination=bar_2, inventory_item_id=item_id, quantity=4
        )
    receiver = cashier_for(bar_2)

    async def answer(decision):
        async with database.session() as s:
            return await transfer_service.respond(s, receiver, transfer.id, decision)

    outcomes = await asyncio.gather(answer(ACCEPT), answer(REJECT), return_exceptions=True)
    assert sum(isinstance(o, Transfer) for o in outcomes) == 1
    assert sum(isinstance(o, InvalidTransferState) for o in outcomes) == 1
    assert await stock_at(bar_1, item_id) + await stock_at(bar_2, item_id) == 4


async def test_short_source_creates_no_transfer(
    session, make_bar, make_item, put_stock, stock_at, cashier_for
) -> None:
    bar_1 = await make_bar("Bar 1")
    bar_2 = await make_bar("Bar 2")
    item_id = await make_item()
    await put_stock(bar_1, item_id, 2)

    with pytest.raises(InsufficientStock):
        await transfer_service.request_transfer(
            session, cashier_for(bar_1), source=bar_1, destination=bar_2, inventory_item_id=item_id, quantity=3
        )
    assert await transfer_service.list_transfers(session) == []
    await session.rollback()
    assert await stock_at(bar_1, item_id) == 2


async def test_cashier_cannot_send_from_another_bar(session, make_bar, make_item, put_stock, cashier_for) -> None:
    bar_1 = await make_bar("Bar 1")
    bar_2 = await make_bar("Bar 2")
    item_id = await make_item()
    await put_stock(bar_1, item_id, 5)

    with pytest.raises(NotAuthorized):
        await transfer_service.request_transfer(
            session, cashier_for(bar_2), source=bar_1, destination=bar_2, inventory_item_id=item_id, quantity=1
        )


async def test_only_destination_can_respond(session, make_bar, make_item, put_stock, cashier_for) -> None:
    bar_1 = await make_bar("Bar 1")
    bar_2 = await make_bar("Bar 2")
    item_id = await make_item()
    await put_stock(bar_1, item_id, 5)

    transfer = await transfer_service.request_transfer(
        session, cashier_for(bar_1), source=bar_1, destination=bar_2, inventory_item_id=item_id, quantity=1
    )
    with pytest.raises(NotAuthorized):
        await transfer_service.respond(session, cashier_for(bar_1), transfer.id, ACCEPT)


async def test_same_location_and_bad_quantity(session, make_bar, make_item, manager) -> None:
    bar_1 = await make_bar("Bar 1")
    bar_2 = await make_bar("Bar 2")
    item_id = await make_item()

    with pytest.raises(InvalidTransferState):
        await transfer_service.request_transfer(
            session, manager, source=bar_1, destination=bar_1, inventory_item_id=item_id, quantity=1
        )
    with pytest.raises(InvalidTransferState):
        await transfer_service.request_transfer(
            session, manager, source=bar_1, destination=bar_2, inventory_item_id=item_id, quantity=0
        )


async def test_unknown_decision_is_rejected(session, manager) -> None:
    with pytest.raises(InvalidTransferState):
        await transfer_service.respond(session, manager, uuid.uuid4(), "maybe")


async def test_batch_transfer_is_all_or_nothing(
    session, store_id, make_bar, make_item, put_stock, stock_at, manager
) -> None:
    bar_a = await make_bar("Bar A")
    gin = await make_item("Gin")
    rum = await make_item("Rum")
    await put_stock(store_id, gin, 10)
    await put_stock(store_id, rum, 1)

    with pytest.raises(InsufficientStock):
        await transfer_service.request_batch_transfer(
            session, manager, source="store", destination=bar_a,
            lines=[TransferLine(gin, 4), TransferLine(rum, 2)],
        )
    await session.rollback()
    assert await stock_at(store_id, gin) == 10
    assert await stock_at(bar_a, gin) == 0

    created = await transfer_service.request_batch_transfer(
        session, manager, source="store", destination=bar_a,
        lines=[TransferLine(gin, 4), TransferLine(rum, 1)],
    )
    assert [t.status for t in created] == [COMPLETED, COMPLETED]
    assert created[0].notes == "Batch transfer: 2 items"
    assert await stock_at(bar_a, gin) == 4
    assert await stock_at(bar_a, rum) == 1


async def test_empty_batch_transfer(session, make_bar, manager) -> None:
    bar_a = await make_bar("Bar A")
    with pytest.raises(InvalidTransferState):
        await transfer_service.request_batch_transfer(session, manager, source="store", destination=bar_a, lines=[])


async def test_list_incoming_pending(session, make_bar, make_item, put_stock, cashier_for) -> None:
    bar_1 = await make_bar("Bar 1")
    bar_2 = await make_bar("Bar 2")
    item_id = await make_item()
    await put_stock(bar_1, item_id, 5)

    transfer = await transfer_service.request_transfer(
        session, cashier_for(bar_1), source=bar_1, destination=bar_2, inventory_item_id=item_id, quantity=2
    )

    incoming = await transfer_service.list_transfers(session, location=bar_2, status=PENDING, incoming_only=True)
    assert [t.id for t in incoming] == [transfer.id]
    assert await transfer_service.list_transfers(session, location=bar_1, incoming_only=True) == []
