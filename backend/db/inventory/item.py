import uuid

from sqlalchemy import Boolean, Column, DateTime, Integer, Numeric, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..database import Base, utcnow


class InventoryItem(Base):
    __tablename__ = "inventory_items"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    name = Column(String, nullable=False, unique=True, index=True)
    unit = Column(Text, nullable=False, default="pcs")  # 'pcs' | 'bottle' | ...
    category = Column(Text, nullable=True, index=True)
    cost_per_unit = Column(Numeric, nullable=True)
    min_stock_level = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())

    stocks = relationship("LocationStock", back_populates="inventory_item", cascade="all, delete-orphan")

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "name": self.name,
            "unit": self.unit,
            "category": self.category,
            "cost_per_unit": float(self.cost_per_unit) if self.cost_per_unit is not None else None,
            "min_stock_level": int(self.min_stock_level or 0),
            "is_active": bool(self.is_active),
        }
