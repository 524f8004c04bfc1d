import uuid

from sqlalchemy import Boolean, Column, DateTime, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from .database import Base, utcnow

STORE = "STORE"
BAR = "BAR"


class Location(Base):
    """Where stock is held: the single central store or one of the bars."""

    __tablename__ = "locations"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False, unique=True, index=True)
    kind = Column(Text, nullable=False, default=BAR, index=True)  # 'STORE' | 'BAR'
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())

    @property
    def is_store(self) -> bool:
        return self.kind == STORE

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "name": self.name,
            "kind": self.kind,
            "description": self.description,
            "is_active": bool(self.is_active),
        }
