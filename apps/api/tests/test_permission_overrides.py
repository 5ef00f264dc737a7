"""
Permission override management tests (service + endpoints).
"""

import uuid

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.schema import CreateTable

from facility_api.db.enums import RoleCode
from facility_api.db.models import RolePermission, UserPermissionOverride, UserRole
from facility_api.services import permission_service

KEY = "work_orders.final_approve"


# =============================================================================
# Service
# =============================================================================

def test_set_grant_then_remove(db, hospital, make_user):
    admin = make_user(RoleCode.HOSPITAL_ADMIN)
    target = make_user(RoleCode.TECHNICIAN)

    row = permission_service.set_user_override(db, hospital.id, target.id, admin.id, KEY, "grant")
    db.commit()
    assert row.effect == "grant"
    assert permission_service.check_permission(db, target.id, hospital.id, KEY)

    # Update in place
    permission_service.set_user_override(db, hospital.id, target.id, admin.id, KEY, "deny")
    db.commit()
    assert db.query(UserPermissionOverride).count() == 1
    assert not permission_service.check_permission(db, target.id, hospital.id, KEY)

    removed = permission_service.set_user_override(db, hospital.id, target.id, admin.id, KEY, None)
    db.commit()
    assert removed is None
    assert db.query(UserPermissionOverride).count() == 0


def test_self_modification_blocked(db, hospital, make_user):
    admin = make_user(RoleCode.HOSPITAL_ADMIN)
    with pytest.raises(ValueError):
        permission_service.set_user_override(db, hospital.id, admin.id, admin.id, KEY, "grant")


@pytest.mark.parametrize(
    "permission,effect",
    [("work_orders.teleport", "grant"), (KEY, "allow")],
)
def test_invalid_override_rejected(db, hospital, make_user, permission, effect):
    admin = make_user(RoleCode.HOSPITAL_ADMIN)
    target = make_user(RoleCode.TECHNICIAN)
    with pytest.raises(ValueError):
        permission_service.set_user_override(
            db, hospital.id, target.id, admin.id, permission, effect
        )


def test_global_deny_is_a_kill_switch(db, hospital, make_user):
    admin = make_user(RoleCode.GLOBAL_ADMIN, global_role=True)
    target = make_user(RoleCode.MAINTENANCE_MANAGER)

    permission_service.set_user_override(db, hospital.id, target.id, admin.id, KEY, "grant")
    permission_service.set_user_override(db, None, target.id, admin.id, KEY, "deny")
    db.commit()

    assert not permission_service.check_permission(db, target.id, hospital.id, KEY)


# =============================================================================
# Endpoints
# =============================================================================

@pytest.mark.asyncio
async def test_me_permissions(client, login, make_user):
    technician = make_user(RoleCode.TECHNICIAN)
    login(client, technician)

    response = await client.get("/me/permissions")
    assert response.status_code == 200
    data = response.json()
    assert data["roles"] == ["technician"]
    assert "work_orders.start_work" in data["permissions"]
    assert KEY not in data["permissions"]


@pytest.mark.asyncio
async def test_admin_sets_override(client, login, db, hospital, make_user):
    admin = make_user(RoleCode.HOSPITAL_ADMIN)
    target = make_user(RoleCode.TECHNICIAN)
    login(client, admin)

    response = await client.put(
        f"/settings/permissions/users/{target.id}/overrides",
        json={"permission": KEY, "effect": "grant"},
    )
    assert response.status_code == 200
    assert response.json()["hospital_id"] == str(hospital.id)
    assert permission_service.check_permission(db, target.id, hospital.id, KEY)


@pytest.mark.asyncio
async def test_override_requires_manage_permission(client, login, make_user):
    supervisor = make_user(RoleCode.SUPERVISOR)
    target = make_user(RoleCode.TECHNICIAN)
    login(client, supervisor)

    response = await client.put(
        f"/settings/permissions/users/{target.id}/overrides",
        json={"permission": KEY, "effect": "grant"},
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_global_override_requires_global_admin(client, login, make_user):
    admin = make_user(RoleCode.HOSPITAL_ADMIN)
    target = make_user(RoleCode.TECHNICIAN)
    login(client, admin)

    response = await client.put(
        f"/settings/permissions/users/{target.id}/overrides",
        json={"permission": KEY, "effect": "deny", "global_scope": True},
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_invalid_permission_is_bad_request(client, login, make_user):
    admin = make_user(RoleCode.HOSPITAL_ADMIN)
    target = make_user(RoleCode.TECHNICIAN)
    login(client, admin)

    response = await client.put(
        f"/settings/permissions/users/{target.id}/overrides",
        json={"permission": "work_orders.teleport", "effect": "grant"},
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_target_outside_hospital_not_found(client, login, make_user, other_hospital):
    admin = make_user(RoleCode.HOSPITAL_ADMIN)
    stranger = make_user(RoleCode.TECHNICIAN, hospital_id=other_hospital.id)
    login(client, admin)

    response = await client.put(
        f"/settings/permissions/users/{stranger.id}/overrides",
        json={"permission": KEY, "effect": "grant"},
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_available_permissions_listed(client, login, make_user):
    admin = make_user(RoleCode.HOSPITAL_ADMIN)
    login(client, admin)

    response = await client.get("/settings/permissions/available")
    assert response.status_code == 200
    keys = {p["key"] for p in response.json()}
    assert KEY in keys
    assert "permissions.manage" in keys


# =============================================================================
# Escalation
# =============================================================================

def test_can_grant_only_held_permissions():
    held = {"work_orders.view", "work_orders.start_work", "permissions.manage"}

    assert permission_service.can_grant_permission(held, "work_orders.start_work", ["technician"])
    assert not permission_service.can_grant_permission(held, KEY, ["technician"])


def test_admin_only_permission_needs_admin_role():
    held = {"permissions.manage"}

    assert not permission_service.can_grant_permission(held, "permissions.manage", ["technician"])
    assert permission_service.can_grant_permission(held, "permissions.manage", ["hospital_admin"])
    assert permission_service.can_grant_permission(set(), "permissions.manage", ["global_admin"])


@pytest.fixture
def delegate(db, hospital, make_user):
    """Technician who was handed permissions.manage and nothing else."""
    admin = make_user(RoleCode.HOSPITAL_ADMIN)
    technician = make_user(RoleCode.TECHNICIAN)
    permission_service.set_user_override(
        db, hospital.id, technician.id, admin.id, "permissions.manage", "grant"
    )
    db.commit()
    return technician


@pytest.mark.asyncio
async def test_delegate_cannot_grant_permission_they_lack(client, login, db, hospital, make_user, delegate):
    target = make_user(RoleCode.TECHNICIAN)
    login(client, delegate)

    response = await client.put(
        f"/settings/permissions/users/{target.id}/overrides",
        json={"permission": KEY, "effect": "grant"},
    )
    assert response.status_code == 403
    assert not permission_service.check_permission(db, target.id, hospital.id, KEY)


@pytest.mark.asyncio
async def test_delegate_cannot_pass_on_manage_permission(client, login, db, hospital, make_user, delegate):
    target = make_user(RoleCode.TECHNICIAN)
    login(client, delegate)

    response = await client.put(
        f"/settings/permissions/users/{target.id}/overrides",
        json={"permission": "permissions.manage", "effect": "grant"},
    )
    assert response.status_code == 403
    assert not permission_service.check_permission(db, target.id, hospital.id, "permissions.manage")


@pytest.mark.asyncio
async def test_delegate_grants_held_permission(client, login, db, hospital, make_user, delegate):
    target = make_user(RoleCode.REPORTER)
    login(client, delegate)

    response = await client.put(
        f"/settings/permissions/users/{target.id}/overrides",
        json={"permission": "work_orders.start_work", "effect": "grant"},
    )
    assert response.status_code == 200
    assert permission_service.check_permission(db, target.id, hospital.id, "work_orders.start_work")


@pytest.mark.asyncio
async def test_delegate_may_still_deny(client, login, db, hospital, make_user, delegate):
    target = make_user(RoleCode.MAINTENANCE_MANAGER)
    login(client, delegate)

    response = await client.put(
        f"/settings/permissions/users/{target.id}/overrides",
        json={"permission": KEY, "effect": "deny"},
    )
    assert response.status_code == 200
    assert not permission_service.check_permission(db, target.id, hospital.id, KEY)


@pytest.mark.asyncio
async def test_unknown_user_not_found_for_global_override(client, login, make_user):
    admin = make_user(RoleCode.GLOBAL_ADMIN, global_role=True)
    login(client, admin)

    response = await client.put(
        f"/settings/permissions/users/{uuid.uuid4()}/overrides",
        json={"permission": KEY, "effect": "deny", "global_scope": True},
    )
    assert response.status_code == 404


# =============================================================================
# Schema
# =============================================================================

@pytest.mark.parametrize(
    "model,constraint_name",
    [
        (UserPermissionOverride, "uq_user_permission_override"),
        (RolePermission, "uq_role_permission"),
        (UserRole, "uq_user_role_scope"),
    ],
)
def test_global_scope_rows_are_unique_on_postgres(model, constraint_name):
    # hospital_id NULL is the global scope, so NULLs must collide
    ddl = str(CreateTable(model.__table__).compile(dialect=postgresql.dialect()))
    line = next(part for part in ddl.splitlines() if constraint_name in part)
    assert "NULLS NOT DISTINCT" in line
