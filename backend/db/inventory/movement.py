import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from ..database import Base, utcnow

IN = "in"
OUT = "out"
ADJUSTMENT = "adjustment"
TRANSFER_OUT = "transfer_out"
TRANSFER_IN = "transfer_in"

MOVEMENT_TYPES = (IN, OUT, ADJUSTMENT, TRANSFER_OUT, TRANSFER_IN)


class StockMovement(Base):
    """Append-only: rows are inserted by the stock mutator and never updated."""

    __tablename__ = "stock_movements"
    __table_args__ = (
        # A referenced movement (order line, transfer leg) can only be written once.
        UniqueConstraint(
            "reference_type",
            "reference_id",
            "inventory_item_id",
            "location_id",
            "movement_type",
            name="ux_stock_movements_reference",
        ),
        # An order deducts each item once, whichever bar it is sent to.
        Index(
            "ux_stock_movements_order_item",
            "reference_id",
            "inventory_item_id",
            unique=True,
            postgresql_where=text("reference_type = 'order' AND movement_type = 'out'"),
            sqlite_where=text("reference_type = 'order' AND movement_type = 'out'"),
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    inventory_item_id = Column(
        UUID(as_uuid=True),
        ForeignKey("inventory_items.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    location_id = Column(
        UUID(as_uuid=True),
        ForeignKey("locations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    movement_type = Column(Text, nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    previous_stock = Column(Integer, nullable=False)
    new_stock = Column(Integer, nullable=False)

    reference_type = Column(Text, nullable=True)  # 'order' | 'transfer' | 'import' | 'manual'
    reference_id = Column(String, nullable=True, index=True)
    notes = Column(Text, nullable=True)

    created_by = Column(UUID(as_uuid=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now(), index=True)

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "inventory_item_id": self.inventory_item_id,
            "location_id": self.location_id,
            "movement_type": self.movement_type,
            "quantity": int(self.quantity),
            "previous_stock": int(self.previous_stock),
            "new_stock": int(self.new_stock),
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": self.created_at,
        }
