"""Authentication-related Pydantic schemas."""

from uuid import UUID

from pydantic import BaseModel

from facility_api.db.enums import RoleCode


class TokenPayload(BaseModel):
    """Decoded JWT payload structure."""
    sub: UUID  # user_id
    hospital_id: UUID
    token_version: int


class UserSession(BaseModel):
    """
    Full session context for authenticated requests.

    Returned by the get_current_session dependency. `roles` is the
    canonical role set for the active hospital.
    """
    user_id: UUID
    hospital_id: UUID
    roles: frozenset[RoleCode]
    email: str
    display_name: str
