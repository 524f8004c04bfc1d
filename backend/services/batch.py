"""
Batch and bulk stock operations.

Entries are applied one unit of work each: a bad row is reported and the rest
carry on, so a long import is never all-or-nothing. CSV parsing is kept pure
(text in, rows out) and its errors use the same per-row result shape as stock
errors.
"""

import csv
import io
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import InventoryError
from db.database import unit_of_work
from db.inventory.item import InventoryItem
from db.inventory.movement import ADJUSTMENT, IN, OUT
from db.location import Location
from services import stock
from services.ledger import LocationRef, MovementMeta

logger = logging.getLogger(__name__)

ENTRY_TYPES = (IN, OUT, ADJUSTMENT)


@dataclass(frozen=True)
class BatchEntry:
    location: LocationRef
    inventory_item_id: UUID
    quantity: int
    type: str = IN
    notes: Optional[str] = None
    cost_per_unit: Optional[Decimal] = None


@dataclass
class BatchResult:
    entry: Optional[BatchEntry]
    ok: bool
    error: Optional[dict] = None
    movement_id: Optional[UUID] = None
    new_stock: Optional[int] = None
    row: Optional[int] = None


@dataclass(frozen=True)
class ParsedRow:
    row: int
    name: str
    quantity: Optional[int]
    type: str = IN
    inventory_item_id: Optional[UUID] = None
    error: Optional[str] = None
    cost_per_unit: Optional[Decimal] = None

    @property
    def valid(self) -> bool:
        return self.error is None


async def _apply_stock(session: AsyncSession, entry: BatchEntry, meta: MovementMeta):
    if entry.type == IN:
        return await stock.credit(session, entry.location, entry.inventory_item_id, entry.quantity, meta)
    if entry.type == OUT:
        return await stock.debit(session, entry.location, entry.inventory_item_id, entry.quantity, meta)
    if entry.type == ADJUSTMENT:
        return await stock.adjust(session, entry.location, entry.inventory_item_id, entry.quantity, meta)
    raise ValueError(f"Unknown entry type {entry.type!r}")


async def apply_entry(session: AsyncSession, entry: BatchEntry, meta: MovementMeta):
    """Apply one entry; a cost_per_unit on it updates the catalog item in the same transaction."""
    mv = await _apply_stock(session, entry, meta)
    if entry.cost_per_unit is not None:
        await session.execute(
            update(InventoryItem)
            .where(InventoryItem.id == entry.inventory_item_id)
            .values(cost_per_unit=entry.cost_per_unit)
            .execution_options(synchronize_session="fetch")
        )
    return mv


async def apply_batch(
    session: AsyncSession,
    entries: Sequence[BatchEntry],
    actor_id: Optional[UUID] = None,
    *,
    reference_type: str = "manual",
) -> List[BatchResult]:
    results: List[BatchResult] = []
    for entry in entries:
        meta = MovementMeta(actor_id=actor_id, reference_type=reference_type, notes=entry.notes)
        try:
            async with unit_of_work(session):
                mv = await apply_entry(session, entry, meta)
        except InventoryError as e:
            results.append(BatchResult(entry=entry, ok=False, error=e.to_detail()))
            continue
        except ValueError as e:
            results.append(BatchResult(entry=entry, ok=False, error={"error": "InvalidEntry", "message": str(e)}))
            continue
        results.append(BatchResult(entry=entry, ok=True, movement_id=mv.id, new_stock=int(mv.new_stock)))

    failed = sum(1 for r in results if not r.ok)
    logger.info("Batch of %s entries applied, %s failed", len(results), failed)
    return results


def _parse_quantity(raw: str) -> Optional[int]:
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    if not value.is_integer():
        return None
    return int(value)


def _parse_cost(raw: str) -> Optional[Decimal]:
    try:
        value = Decimal(raw)
    except InvalidOperation:
        return None
    if not value.is_finite() or value < 0:
        return None
    return value


def parse_stock_csv(text: str, items_by_name: Dict[str, UUID]) -> List[ParsedRow]:
    """
    Parse a stock import CSV.

    Required columns: name, quantity. Optional: type (in|out|adjustment,
    default in), cost_per_unit (updates the item's cost when the row applies).
    Other columns (category, selling_price) are accepted and ignored.
    `items_by_name` maps lower-cased item names to ids.
    Rows with an empty name or quantity are skipped.
    """
    reader = csv.DictReader(io.StringIO((text or "").lstrip("\ufeff")))
    headers = [h.strip().lower() for h in (reader.fieldnames or [])]
    if "name" not in headers or "quantity" not in headers:
        raise ValueError("CSV must have 'name' and 'quantity' columns")
    reader.fieldnames = headers

    rows: List[ParsedRow] = []
    for raw in reader:
        row_no = reader.line_num
        name = (raw.get("name") or "").strip()
        quantity_raw = (raw.get("quantity") or "").strip()
        if not name or not quantity_raw:
            continue
        entry_type = (raw.get("type") or IN).strip().lower() or IN
        quantity = _parse_quantity(quantity_raw)
        item_id = items_by_name.get(name.lower())
        cost_raw = (raw.get("cost_per_unit") or "").strip()
        cost = _parse_cost(cost_raw) if cost_raw else None

        error = None
        if item_id is None:
            error = "Item not found in inventory"
        elif entry_type not in ENTRY_TYPES:
            error = f"Unknown type '{entry_type}'"
        elif quantity is None:
            error = "Quantity must be a whole number"
        elif quantity < 0 or (quantity == 0 and entry_type != ADJUSTMENT):
            error = "Quantity must be greater than 0"
        elif cost_raw and cost is None:
            error = "Cost per unit must be a number >= 0"
        rows.append(ParsedRow(row_no, name, quantity, entry_type, item_id, error, cost))
    return rows


async def import_stock_csv(
    session: AsyncSession,
    location: LocationRef,
    text: str,
    actor_id: Optional[UUID] = None,
) -> List[BatchResult]:
    res = await session.execute(select(func.lower(InventoryItem.name), InventoryItem.id))
    items_by_name = {name: item_id for (name, item_id) in res.all()}
    parsed = parse_stock_csv(text, items_by_name)
    if isinstance(location, Location):
        # rows that fail roll back and expire loaded instances
        location = location.id

    results: List[BatchResult] = []
    for prow in parsed:
        if not prow.valid:
            results.append(
                BatchResult(entry=None, ok=False, row=prow.row, error={"error": "InvalidRow", "message": prow.error, "name": prow.name})
            )
            continue
        entry = BatchEntry(
            location=location,
            inventory_item_id=prow.inventory_item_id,
            quantity=prow.quantity,
            type=prow.type,
            notes=f"CSV import row {prow.row}",
            cost_per_unit=prow.cost_per_unit,
        )
        (outcome,) = await apply_batch(session, [entry], actor_id, reference_type="import")
        outcome.row = prow.row
        results.append(outcome)
    return results
