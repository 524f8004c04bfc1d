import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..database import Base, utcnow

PENDING = "pending"
ACCEPTED = "accepted"
REJECTED = "rejected"
COMPLETED = "completed"

TRANSFER_STATUSES = (PENDING, ACCEPTED, REJECTED, COMPLETED)


class Transfer(Base):
    __tablename__ = "transfers"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_transfers_quantity_positive"),
        CheckConstraint("source_location_id <> destination_location_id", name="ck_transfers_distinct_locations"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    source_location_id = Column(
        UUID(as_uuid=True), ForeignKey("locations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    destination_location_id = Column(
        UUID(as_uuid=True), ForeignKey("locations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    inventory_item_id = Column(
        UUID(as_uuid=True), ForeignKey("inventory_items.id", ondelete="CASCADE"), nullable=False, index=True
    )
    quantity = Column(Integer, nullable=False)

    status = Column(Text, nullable=False, default=PENDING, index=True)  # pending|accepted|rejected|completed
    requested_by = Column(UUID(as_uuid=True), nullable=True)
    approved_by = Column(UUID(as_uuid=True), nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now(), index=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    source_location = relationship("Location", foreign_keys=[source_location_id])
    destination_location = relationship("Location", foreign_keys=[destination_location_id])
    inventory_item = relationship("InventoryItem")

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "source_location_id": self.source_location_id,
            "destination_location_id": self.destination_location_id,
            "inventory_item_id": self.inventory_item_id,
            "quantity": int(self.quantity),
            "status": self.status,
            "requested_by": self.requested_by,
            "approved_by": self.approved_by,
            "notes": self.notes,
            "created_at": self.created_at,
            "completed_at": self.completed_at,
        }
