"""Permission management schemas."""

from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field


class EffectivePermissionsResponse(BaseModel):
    user_id: UUID
    hospital_id: UUID
    roles: list[str]
    permissions: list[str]


class PermissionOverrideRequest(BaseModel):
    permission: str = Field(..., min_length=1, max_length=100)
    effect: Literal["grant", "deny"] | None = None  # None removes the override
    global_scope: bool = False  # True targets every hospital


class PermissionOverrideResponse(BaseModel):
    user_id: UUID
    permission: str
    effect: str | None
    hospital_id: UUID | None
