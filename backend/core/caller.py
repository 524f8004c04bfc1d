"""
Caller identity.

Authentication happens upstream; requests reach this service with the staff
member already resolved into headers. The role string is interpreted exactly
once, here, into a CallerCapability that the services consume.
"""

from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from fastapi import Header, HTTPException, status

from core.config import settings


@dataclass(frozen=True)
class CallerCapability:
    actor_id: UUID
    role: Optional[str] = None
    bar_id: Optional[UUID] = None
    can_complete_transfers_immediately: bool = False

    @property
    def is_privileged(self) -> bool:
        return self.can_complete_transfers_immediately

    def is_bound_to(self, location_id: UUID) -> bool:
        return self.bar_id is not None and self.bar_id == location_id

    def can_act_for(self, location_id: UUID) -> bool:
        return self.can_complete_transfers_immediately or self.is_bound_to(location_id)


def capability_for(actor_id: UUID, role: Optional[str], bar_id: Optional[UUID] = None) -> CallerCapability:
    role_norm = (role or "").strip().lower() or None
    privileged = role_norm is not None and role_norm in {r.lower() for r in settings.privileged_roles}
    return CallerCapability(
        actor_id=actor_id,
        role=role_norm,
        bar_id=bar_id,
        can_complete_transfers_immediately=privileged,
    )


def _parse_uuid(value: Optional[str], header: str) -> Optional[UUID]:
    if value is None or not value.strip():
        return None
    try:
        return UUID(value.strip())
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"{header} must be a UUID")


async def current_caller(
    x_actor_id: Optional[str] = Header(None),
    x_actor_role: Optional[str] = Header(None),
    x_actor_bar_id: Optional[str] = Header(None),
) -> CallerCapability:
    actor_id = _parse_uuid(x_actor_id, "X-Actor-Id")
    if actor_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing caller identity")
    return capability_for(actor_id, x_actor_role, _parse_uuid(x_actor_bar_id, "X-Actor-Bar-Id"))
