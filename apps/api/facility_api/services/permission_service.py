"""Permission service: effective permissions with per-hospital overrides.

Resolution order for a key in hospital H (first match wins):

    1. hospital deny  (override scoped to H)   -> False
    2. global deny    (override with no scope) -> False
    3. hospital grant (override scoped to H)   -> True
    4. global grant                            -> True
    5. base set from the user's roles in H

A global deny is a kill-switch: no hospital-scoped grant bypasses it.
Overrides scoped to another hospital never apply to H.

Base set: role defaults (core/permissions.py) adjusted by RolePermission rows,
global rows first, then rows for H. Global admin always has everything.
"""

import logging
import uuid
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from facility_api.core.permissions import (
    PERMISSION_REGISTRY,
    get_role_default_permissions,
    is_admin_only,
    is_valid_permission,
)
from facility_api.core.role_config import normalize_role_code
from facility_api.db.enums import OverrideEffect, RoleCode
from facility_api.db.models import RolePermission, UserPermissionOverride
from facility_api.services import membership_service

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OverrideRule:
    permission_key: str
    effect: OverrideEffect
    hospital_id: uuid.UUID | None = None


# =============================================================================
# Loaders
# =============================================================================

def get_base_permissions(
    db: Session,
    user_id: uuid.UUID,
    hospital_id: uuid.UUID | None,
) -> frozenset[str]:
    """Union of the permissions implied by each role the user holds in the hospital."""
    role_codes = membership_service.get_role_codes(db, user_id, hospital_id)

    resolved: list[tuple[str, RoleCode]] = []
    for code in role_codes:
        role = normalize_role_code(code)
        if role is not None:
            resolved.append((code, role))

    if any(role == RoleCode.GLOBAL_ADMIN for _, role in resolved):
        return frozenset(PERMISSION_REGISTRY)
    if not resolved:
        return frozenset()

    lookup_codes = {code for code, _ in resolved} | {role.value for _, role in resolved}
    query = select(RolePermission).where(RolePermission.role_code.in_(lookup_codes))
    if hospital_id is None:
        query = query.where(RolePermission.hospital_id.is_(None))
    else:
        query = query.where(
            or_(RolePermission.hospital_id.is_(None), RolePermission.hospital_id == hospital_id)
        )
    rows = db.execute(query).scalars().all()
    # Global adjustments first so hospital rows win
    rows = sorted(rows, key=lambda rp: rp.hospital_id is not None)

    effective: set[str] = set()
    for code, role in resolved:
        perms = get_role_default_permissions(role.value).copy()
        for rp in rows:
            if rp.role_code not in (code, role.value):
                continue
            if rp.allowed:
                perms.add(rp.permission_key)
            else:
                perms.discard(rp.permission_key)
        effective |= perms
    return frozenset(effective)


def get_user_overrides(db: Session, user_id: uuid.UUID) -> list[OverrideRule]:
    """All grant/deny overrides for a user, every scope."""
    rows = db.execute(
        select(UserPermissionOverride).where(UserPermissionOverride.user_id == user_id)
    ).scalars().all()
    return [
        OverrideRule(
            permission_key=row.permission_key,
            effect=OverrideEffect(row.effect),
            hospital_id=row.hospital_id,
        )
        for row in rows
    ]


# =============================================================================
# Resolution
# =============================================================================

def resolve_permission(
    key: str,
    hospital_id: uuid.UUID | None,
    overrides: Iterable[OverrideRule],
    base: Iterable[str],
) -> bool:
    """Apply override precedence to a single key."""
    hospital_rules = set()
    global_rules = set()
    for rule in overrides:
        if rule.permission_key != key:
            continue
        if rule.hospital_id is None:
            global_rules.add(rule.effect)
        elif hospital_id is not None and rule.hospital_id == hospital_id:
            hospital_rules.add(rule.effect)

    if OverrideEffect.DENY in hospital_rules:
        return False
    if OverrideEffect.DENY in global_rules:
        return False
    if OverrideEffect.GRANT in hospital_rules:
        return True
    if OverrideEffect.GRANT in global_rules:
        return True
    return key in base


BaseLoader = Callable[[Session, uuid.UUID, uuid.UUID | None], frozenset[str]]
OverrideLoader = Callable[[Session, uuid.UUID], list[OverrideRule]]


class PermissionResolver:
    """
    Per-request permission checker for one user.

    Base sets are cached per hospital and overrides once per user until
    refetch(). If a loader fails, `error` is set and every check answers
    False until a refetch succeeds.
    """

    def __init__(
        self,
        db: Session,
        user_id: uuid.UUID,
        hospital_id: uuid.UUID | None = None,
        *,
        base_loader: BaseLoader = get_base_permissions,
        override_loader: OverrideLoader = get_user_overrides,
    ):
        self.db = db
        self.user_id = user_id
        self.hospital_id = hospital_id
        self._base_loader = base_loader
        self._override_loader = override_loader
        self._base_cache: dict[uuid.UUID | None, frozenset[str]] = {}
        self._overrides: list[OverrideRule] | None = None
        self.error: Exception | None = None

    def refetch(self) -> None:
        """Drop cached state; the next check reloads from the database."""
        self._base_cache.clear()
        self._overrides = None
        self.error = None

    def _load(self, hospital_id: uuid.UUID | None) -> tuple[list[OverrideRule], frozenset[str]]:
        if self._overrides is None:
            self._overrides = self._override_loader(self.db, self.user_id)
        if hospital_id not in self._base_cache:
            self._base_cache[hospital_id] = self._base_loader(self.db, self.user_id, hospital_id)
        return self._overrides, self._base_cache[hospital_id]

    def has_permission(self, key: str, hospital_id: uuid.UUID | None = None) -> bool:
        if self.error is not None:
            return False
        scope = hospital_id or self.hospital_id
        try:
            overrides, base = self._load(scope)
        except Exception as e:
            logger.warning(
                "permission_load_failed",
                extra={"user_id": str(self.user_id), "hospital_id": str(scope)},
                exc_info=True,
            )
            self.error = e
            return False
        return resolve_permission(key, scope, overrides, base)

    def has_any_permission(self, keys: Iterable[str], hospital_id: uuid.UUID | None = None) -> bool:
        return any(self.has_permission(k, hospital_id) for k in keys)

    def has_all_permissions(self, keys: Iterable[str], hospital_id: uuid.UUID | None = None) -> bool:
        return all(self.has_permission(k, hospital_id) for k in keys)

    def effective_permissions(self, hospital_id: uuid.UUID | None = None) -> frozenset[str]:
        """Every registered key the user holds in the hospital."""
        return frozenset(k for k in PERMISSION_REGISTRY if self.has_permission(k, hospital_id))


def get_effective_permissions(
    db: Session,
    user_id: uuid.UUID,
    hospital_id: uuid.UUID | None,
) -> list[str]:
    """Sorted effective permission keys (for display)."""
    return sorted(PermissionResolver(db, user_id, hospital_id).effective_permissions())


def check_permission(
    db: Session,
    user_id: uuid.UUID,
    hospital_id: uuid.UUID | None,
    permission: str,
) -> bool:
    """Check if user has a specific permission."""
    return PermissionResolver(db, user_id, hospital_id).has_permission(permission)


def get_users_with_permission(
    db: Session,
    hospital_id: uuid.UUID,
    permission: str,
) -> list[uuid.UUID]:
    """Users in the hospital whose effective permissions include the key."""
    candidates = membership_service.get_hospital_user_ids(db, hospital_id)
    granted = db.execute(
        select(UserPermissionOverride.user_id).where(
            UserPermissionOverride.permission_key == permission,
            UserPermissionOverride.effect == OverrideEffect.GRANT.value,
            or_(
                UserPermissionOverride.hospital_id.is_(None),
                UserPermissionOverride.hospital_id == hospital_id,
            ),
        )
    ).scalars().all()
    candidates |= set(granted)
    return sorted(
        (uid for uid in candidates if check_permission(db, uid, hospital_id, permission)),
        key=str,
    )


# =============================================================================
# Permission Modification
# =============================================================================

def can_grant_permission(
    actor_permissions: set[str],
    target_permission: str,
    actor_roles: Iterable[str],
) -> bool:
    """
    Check if actor can grant a permission.

    Rules:
    1. Admin-only permissions can only be granted by hospital or global admins
    2. Actor must have the permission themselves to grant it
    """
    if is_admin_only(target_permission):
        return any(
            normalize_role_code(role) in (RoleCode.HOSPITAL_ADMIN, RoleCode.GLOBAL_ADMIN)
            for role in actor_roles
        )

    return target_permission in actor_permissions


def set_user_override(
    db: Session,
    hospital_id: uuid.UUID | None,
    target_user_id: uuid.UUID,
    actor_user_id: uuid.UUID,
    permission: str,
    effect: str | None,  # 'grant', 'deny', or None to remove
) -> UserPermissionOverride | None:
    """
    Set or remove a user permission override.

    hospital_id None targets the global scope. Caller commits.

    Raises:
        ValueError: unknown permission or effect, or self-modification
    """
    if not is_valid_permission(permission):
        raise ValueError(f"Invalid permission: {permission}")
    if effect is not None and effect not in (OverrideEffect.GRANT.value, OverrideEffect.DENY.value):
        raise ValueError(f"Invalid override effect: {effect}")

    # Self-modification prevention
    if target_user_id == actor_user_id:
        raise ValueError("Cannot modify your own permissions")

    query = select(UserPermissionOverride).where(
        UserPermissionOverride.user_id == target_user_id,
        UserPermissionOverride.permission_key == permission,
    )
    if hospital_id is None:
        query = query.where(UserPermissionOverride.hospital_id.is_(None))
    else:
        query = query.where(UserPermissionOverride.hospital_id == hospital_id)
    existing = db.execute(query).scalar_one_or_none()

    before_value = existing.effect if existing else None
    result = existing
    if effect is None:
        if existing:
            db.delete(existing)
        result = None
    elif existing:
        existing.effect = effect
    else:
        result = UserPermissionOverride(
            user_id=target_user_id,
            permission_key=permission,
            effect=effect,
            hospital_id=hospital_id,
        )
        db.add(result)
    db.flush()

    logger.info(
        "permission_override_changed",
        extra={
            "actor_user_id": str(actor_user_id),
            "target_user_id": str(target_user_id),
            "hospital_id": str(hospital_id) if hospital_id else None,
            "permission": permission,
            "before": before_value,
            "after": effect,
        },
    )
    return result
