"""Hospitals, users, roles, and permission overrides."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from facility_api.db.base import Base
from facility_api.db.models._common import utcnow


class Hospital(Base):
    """Tenant. Every work order, team, and location belongs to exactly one."""

    __tablename__ = "hospitals"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    code: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(200), nullable=False)
    token_version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)


class UserRole(Base):
    """
    Standard role held by a user.

    hospital_id NULL means the role applies in every hospital.
    """

    __tablename__ = "user_roles"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "role", "hospital_id",
            name="uq_user_role_scope",
            postgresql_nulls_not_distinct=True,
        ),
        Index("idx_user_roles_user", "user_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    role: Mapped[str] = mapped_column(String(50), nullable=False)
    hospital_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("hospitals.id", ondelete="CASCADE"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)


class CustomUserRole(Base):
    """Hospital-defined role code (normalized to a standard role before use)."""

    __tablename__ = "custom_user_roles"
    __table_args__ = (
        UniqueConstraint("user_id", "role_code", "hospital_id", name="uq_custom_user_role"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    hospital_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("hospitals.id", ondelete="CASCADE"), nullable=False
    )
    role_code: Mapped[str] = mapped_column(String(50), nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)


class RolePermission(Base):
    """
    Adjustment to a role's default permissions.

    hospital_id NULL applies everywhere; hospital rows are applied after
    global rows.
    """

    __tablename__ = "role_permissions"
    __table_args__ = (
        UniqueConstraint(
            "role_code", "permission_key", "hospital_id",
            name="uq_role_permission",
            postgresql_nulls_not_distinct=True,
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    role_code: Mapped[str] = mapped_column(String(50), nullable=False)
    permission_key: Mapped[str] = mapped_column(String(100), nullable=False)
    hospital_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("hospitals.id", ondelete="CASCADE"), nullable=True
    )
    allowed: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class UserPermissionOverride(Base):
    """
    Per-user grant/deny of a single permission.

    hospital_id NULL is a global override.
    """

    __tablename__ = "user_permission_overrides"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "permission_key", "hospital_id",
            name="uq_user_permission_override",
            postgresql_nulls_not_distinct=True,
        ),
        CheckConstraint("effect IN ('grant', 'deny')", name="ck_override_effect"),
        Index("idx_user_permission_overrides_user", "user_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    permission_key: Mapped[str] = mapped_column(String(100), nullable=False)
    effect: Mapped[str] = mapped_column(String(10), nullable=False)
    hospital_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("hospitals.id", ondelete="CASCADE"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)
