from datetime import datetime
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, field_validator, model_validator


TransferStatus = Literal["pending", "accepted", "rejected", "completed"]


class TransferCreate(BaseModel):
    source: str
    destination: str
    inventory_item_id: UUID
    quantity: int
    notes: Optional[str] = None

    @field_validator("source", "destination")
    @classmethod
    def _strip_required(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("field is required")
        return v


class BatchTransferLine(BaseModel):
    inventory_item_id: UUID
    quantity: int


class BatchTransferCreate(BaseModel):
    source: str
    destination: str
    items: List[BatchTransferLine]
    notes: Optional[str] = None

    @model_validator(mode="after")
    def _unique_items(self):
        ids = [line.inventory_item_id for line in self.items]
        if len(ids) != len(set(ids)):
            raise ValueError("each item may appear only once per batch transfer")
        return self


class TransferRespond(BaseModel):
    decision: Literal["accept", "reject"]
    notes: Optional[str] = None


class TransferOut(BaseModel):
    id: UUID
    source_location_id: UUID
    destination_location_id: UUID
    inventory_item_id: UUID
    quantity: int
    status: TransferStatus
    requested_by: Optional[UUID] = None
    approved_by: Optional[UUID] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
