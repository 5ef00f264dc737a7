"""Permission endpoints: effective permissions and per-user overrides."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from facility_api.core.deps import (
    get_current_session,
    get_db,
    require_csrf_header,
    require_permission,
)
from facility_api.core.permissions import get_all_permissions, is_valid_permission
from facility_api.db.models import User
from facility_api.schemas.auth import UserSession
from facility_api.schemas.permission import (
    EffectivePermissionsResponse,
    PermissionOverrideRequest,
    PermissionOverrideResponse,
)
from facility_api.services import membership_service, permission_service

router = APIRouter(tags=["permissions"])


# =============================================================================
# Current user
# =============================================================================

@router.get("/me/permissions", response_model=EffectivePermissionsResponse)
def get_my_permissions(
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Effective permissions in the session's hospital."""
    return EffectivePermissionsResponse(
        user_id=session.user_id,
        hospital_id=session.hospital_id,
        roles=sorted(role.value for role in session.roles),
        permissions=permission_service.get_effective_permissions(
            db, session.user_id, session.hospital_id
        ),
    )


@router.get("/settings/permissions/available")
def list_available_permissions(
    session: UserSession = Depends(require_permission("permissions.manage")),
):
    return [
        {"key": p.key, "label": p.label, "description": p.description, "category": p.category}
        for p in get_all_permissions()
    ]


# =============================================================================
# Overrides
# =============================================================================

@router.put(
    "/settings/permissions/users/{user_id}/overrides",
    response_model=PermissionOverrideResponse,
    dependencies=[Depends(require_csrf_header)],
)
def set_user_override(
    user_id: UUID,
    data: PermissionOverrideRequest,
    session: UserSession = Depends(require_permission("permissions.manage")),
    db: Session = Depends(get_db),
):
    """
    Grant, deny, or clear one permission for a user.

    Scoped to the session's hospital unless global_scope is set, which
    requires the global admin role.
    """
    if db.get(User, user_id) is None:
        raise HTTPException(status_code=404, detail="User not found")
    if data.global_scope and not any(r.value == "global_admin" for r in session.roles):
        raise HTTPException(status_code=403, detail="Only global admins can set global overrides")
    if not data.global_scope and not membership_service.has_hospital_access(
        db, user_id, session.hospital_id
    ):
        raise HTTPException(status_code=404, detail="User not found in this hospital")

    if not is_valid_permission(data.permission):
        raise HTTPException(status_code=400, detail=f"Invalid permission: {data.permission}")

    # Escalation check
    if data.effect == "grant":
        actor_permissions = set(permission_service.get_effective_permissions(
            db, session.user_id, session.hospital_id
        ))
        if not permission_service.can_grant_permission(
            actor_permissions, data.permission, [r.value for r in session.roles]
        ):
            raise HTTPException(
                status_code=403,
                detail=f"Cannot grant permission '{data.permission}' - you don't have it",
            )

    hospital_id = None if data.global_scope else session.hospital_id
    try:
        permission_service.set_user_override(
            db,
            hospital_id=hospital_id,
            target_user_id=user_id,
            actor_user_id=session.user_id,
            permission=data.permission,
            effect=data.effect,
        )
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))
    db.commit()

    return PermissionOverrideResponse(
        user_id=user_id,
        permission=data.permission,
        effect=data.effect,
        hospital_id=hospital_id,
    )
