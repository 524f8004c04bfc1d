from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, field_validator

from schemas.inventory import StockMovementOut


class CartLineIn(BaseModel):
    inventory_item_id: Optional[UUID] = None
    quantity: int
    track_inventory: bool = True
    name: Optional[str] = None

    @field_validator("quantity")
    @classmethod
    def _quantity_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("quantity must be > 0")
        return v


class CartValidateRequest(BaseModel):
    bar: str
    lines: List[CartLineIn]


class InsufficientLineOut(BaseModel):
    inventory_item_id: UUID
    name: str
    requested: int
    available: int


class CartValidationOut(BaseModel):
    valid: bool
    insufficient_lines: List[InsufficientLineOut]


class CartDeductionRequest(BaseModel):
    bar: str
    lines: List[CartLineIn]


class CartDeductionOut(BaseModel):
    order_id: str
    applied: List[StockMovementOut]
    skipped: List[UUID]
