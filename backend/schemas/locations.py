from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel


class LocationRead(BaseModel):
    id: UUID
    name: str
    kind: Literal["STORE", "BAR"]
    description: Optional[str] = None
    is_active: bool


class BarCreate(BaseModel):
    name: str
    description: Optional[str] = None


class BarUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None
