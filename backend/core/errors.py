"""
Inventory engine errors.

Every failure the engine reports on purpose derives from InventoryError and
knows its HTTP status and a structured detail, so routers can hand it to the
client with the item/quantity context staff need to fix a cart or transfer.
"""

from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import HTTPException, status


class InventoryError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_detail(self) -> Dict[str, Any]:
        return {"error": type(self).__name__, "message": self.message}


class InsufficientStock(InventoryError):
    status_code = status.HTTP_409_CONFLICT

    def __init__(
        self,
        *,
        available: int,
        requested: int,
        inventory_item_id: Optional[UUID] = None,
        location_id: Optional[UUID] = None,
        item_name: Optional[str] = None,
    ):
        label = item_name or (str(inventory_item_id) if inventory_item_id else "item")
        super().__init__(f"Insufficient stock for {label}. Available={available} requested={requested}")
        self.available = available
        self.requested = requested
        self.inventory_item_id = inventory_item_id
        self.location_id = location_id
        self.item_name = item_name

    def to_detail(self) -> Dict[str, Any]:
        out = super().to_detail()
        out.update(
            {
                "available": self.available,
                "requested": self.requested,
                "inventory_item_id": str(self.inventory_item_id) if self.inventory_item_id else None,
                "location_id": str(self.location_id) if self.location_id else None,
            }
        )
        return out


class InvalidTransferState(InventoryError):
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, message: str, *, transfer_id: Optional[UUID] = None, current_status: Optional[str] = None):
        super().__init__(message)
        self.transfer_id = transfer_id
        self.current_status = current_status

    def to_detail(self) -> Dict[str, Any]:
        out = super().to_detail()
        out["transfer_id"] = str(self.transfer_id) if self.transfer_id else None
        out["status"] = self.current_status
        return out


class InvalidQuantity(InventoryError):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, quantity, message: Optional[str] = None):
        super().__init__(message or f"quantity must be > 0 (got {quantity})")
        self.quantity = quantity


class NotFound(InventoryError):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, kind: str, ref: Any):
        super().__init__(f"{kind} not found: {ref}")
        self.kind = kind
        self.ref = ref


class NotAuthorized(InventoryError):
    status_code = status.HTTP_403_FORBIDDEN


class ConcurrencyConflict(InventoryError):
    """Optimistic retries ran out; the caller may try again."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def to_detail(self) -> Dict[str, Any]:
        out = super().to_detail()
        out["retryable"] = True
        return out


def to_http_exception(exc: InventoryError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.to_detail())
