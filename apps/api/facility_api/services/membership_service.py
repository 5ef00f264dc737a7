"""Membership service - hospital roles, team membership, and building supervision lookups.

Relationship lookups used for authorization fail closed: a failed query is
logged and answered with False / empty.
"""

import logging
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from facility_api.core.role_config import normalize_role_codes
from facility_api.db.enums import RoleCode
from facility_api.db.models import (
    BuildingSupervisor,
    CustomUserRole,
    TeamMember,
    UserRole,
)

logger = logging.getLogger(__name__)


def get_role_codes(db: Session, user_id: UUID, hospital_id: UUID | None) -> list[str]:
    """
    Raw role codes held by a user in a hospital.

    Includes global standard roles (hospital_id NULL) and, when a hospital is
    given, that hospital's standard and custom roles. Codes are not normalized.
    """
    query = select(UserRole.role).where(UserRole.user_id == user_id)
    if hospital_id is None:
        query = query.where(UserRole.hospital_id.is_(None))
    else:
        query = query.where(
            or_(UserRole.hospital_id.is_(None), UserRole.hospital_id == hospital_id)
        )
    codes = list(db.execute(query).scalars().all())

    if hospital_id is not None:
        custom = db.execute(
            select(CustomUserRole.role_code).where(
                CustomUserRole.user_id == user_id,
                CustomUserRole.hospital_id == hospital_id,
            )
        ).scalars().all()
        codes.extend(custom)
    return codes


def get_user_roles(db: Session, user_id: UUID, hospital_id: UUID | None) -> frozenset[RoleCode]:
    """Canonical role set for a user in a hospital."""
    return normalize_role_codes(get_role_codes(db, user_id, hospital_id))


def has_hospital_access(db: Session, user_id: UUID, hospital_id: UUID) -> bool:
    """True if the user holds any role that applies in the hospital."""
    return bool(get_role_codes(db, user_id, hospital_id))


def get_hospital_user_ids(db: Session, hospital_id: UUID) -> set[UUID]:
    """Users holding a role in the hospital (global roles included)."""
    standard = db.execute(
        select(UserRole.user_id).where(
            or_(UserRole.hospital_id.is_(None), UserRole.hospital_id == hospital_id)
        )
    ).scalars().all()
    custom = db.execute(
        select(CustomUserRole.user_id).where(CustomUserRole.hospital_id == hospital_id)
    ).scalars().all()
    return set(standard) | set(custom)


# =============================================================================
# Relationship lookups (fail closed)
# =============================================================================

def is_team_member(db: Session, team_id: UUID | None, user_id: UUID) -> bool:
    """True if user belongs to the team. False on missing team or lookup failure."""
    if team_id is None:
        return False
    try:
        row = db.execute(
            select(TeamMember.id).where(
                TeamMember.team_id == team_id,
                TeamMember.user_id == user_id,
            )
        ).first()
    except SQLAlchemyError:
        logger.warning("team_membership_lookup_failed", exc_info=True)
        db.rollback()
        return False
    return row is not None


def is_building_supervisor(db: Session, building_id: UUID | None, user_id: UUID) -> bool:
    """True if user is registered as supervisor of the building."""
    if building_id is None:
        return False
    try:
        row = db.execute(
            select(BuildingSupervisor.id).where(
                BuildingSupervisor.building_id == building_id,
                BuildingSupervisor.user_id == user_id,
            )
        ).first()
    except SQLAlchemyError:
        logger.warning("building_supervisor_lookup_failed", exc_info=True)
        db.rollback()
        return False
    return row is not None


def get_team_member_ids(db: Session, team_id: UUID | None) -> list[UUID]:
    if team_id is None:
        return []
    return list(
        db.execute(select(TeamMember.user_id).where(TeamMember.team_id == team_id))
        .scalars()
        .all()
    )
