from datetime import datetime
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, field_validator


MovementType = Literal["in", "out", "adjustment", "transfer_out", "transfer_in"]
EntryType = Literal["in", "out", "adjustment"]


def _strip_nullable(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    v = v.strip()
    return v or None


class InventoryItemCreate(BaseModel):
    name: str
    unit: str = "pcs"
    category: Optional[str] = None
    cost_per_unit: Optional[float] = None
    min_stock_level: int = 0

    @field_validator("name", "unit")
    @classmethod
    def _strip_required(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("field is required")
        return v

    @field_validator("category")
    @classmethod
    def _strip_category(cls, v: Optional[str]) -> Optional[str]:
        return _strip_nullable(v)

    @field_validator("min_stock_level")
    @classmethod
    def _min_level(cls, v: int) -> int:
        if v < 0:
            raise ValueError("min_stock_level must be >= 0")
        return v


class InventoryItemOut(BaseModel):
    id: UUID
    name: str
    unit: str
    category: Optional[str] = None
    cost_per_unit: Optional[float] = None
    min_stock_level: int
    is_active: bool


class StockOut(BaseModel):
    location_id: UUID
    inventory_item_id: UUID
    current_stock: int
    min_stock_level: int


class LocationStockOut(BaseModel):
    location_id: UUID
    inventory_item_id: UUID
    name: str
    unit: str
    category: Optional[str] = None
    current_stock: int
    min_stock_level: int
    is_low: bool
    updated_at: Optional[datetime] = None


class MinStockLevelUpdate(BaseModel):
    min_stock_level: int


class StockMovementCreate(BaseModel):
    """One manual stock change: `in` and `out` are relative, `adjustment` is the counted total."""

    location: str = "store"
    inventory_item_id: UUID
    movement_type: EntryType
    quantity: int
    notes: Optional[str] = None

    @field_validator("notes")
    @classmethod
    def _strip_notes(cls, v: Optional[str]) -> Optional[str]:
        return _strip_nullable(v)


class StockMovementOut(BaseModel):
    id: UUID
    inventory_item_id: UUID
    location_id: UUID
    movement_type: MovementType
    quantity: int
    previous_stock: int
    new_stock: int
    reference_type: Optional[str] = None
    reference_id: Optional[str] = None
    notes: Optional[str] = None
    created_by: Optional[UUID] = None
    created_at: Optional[datetime] = None


class BatchEntryIn(BaseModel):
    location: str = "store"
    inventory_item_id: UUID
    quantity: int
    type: EntryType = "in"
    notes: Optional[str] = None


class BatchRequest(BaseModel):
    entries: List[BatchEntryIn]

    @field_validator("entries")
    @classmethod
    def _non_empty(cls, v: List[BatchEntryIn]) -> List[BatchEntryIn]:
        if not v:
            raise ValueError("entries must not be empty")
        return v


class StockImportRequest(BaseModel):
    location: str = "store"
    csv: str


class BatchResultOut(BaseModel):
    ok: bool
    row: Optional[int] = None
    location: Optional[str] = None
    inventory_item_id: Optional[UUID] = None
    quantity: Optional[int] = None
    type: Optional[EntryType] = None
    movement_id: Optional[UUID] = None
    new_stock: Optional[int] = None
    error: Optional[dict] = None


class BatchReportOut(BaseModel):
    succeeded: int
    failed: int
    results: List[BatchResultOut]
