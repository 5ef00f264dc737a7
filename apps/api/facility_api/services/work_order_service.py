"""Work order service: creation, lookup, listing, and the operations log."""

import logging
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from facility_api.core.errors import DependencyError, ValidationError
from facility_api.core.structured_logging import build_log_context
from facility_api.db.enums import WorkOrderEvent, WorkOrderStatus
from facility_api.db.models import (
    Hospital,
    IssueTypeRoute,
    Team,
    TeamMember,
    WorkOrder,
    WorkOrderUpdate,
)
from facility_api.schemas.work_order import WorkOrderCreate
from facility_api.services import location_service, notification_service

logger = logging.getLogger(__name__)

CODE_RETRY_ATTEMPTS = 3


# =============================================================================
# Code generation
# =============================================================================

def code_prefix(hospital_code: str, now: datetime) -> str:
    return f"WO-{hospital_code.upper()}-{now:%y%m%d}-"


def next_work_order_code(db: Session, hospital: Hospital, now: datetime) -> str:
    """Next sequential code for the hospital and day, e.g. WO-KFH-250114-0007."""
    prefix = code_prefix(hospital.code, now)
    codes = db.execute(
        select(WorkOrder.code).where(
            WorkOrder.hospital_id == hospital.id,
            WorkOrder.code.like(f"{prefix}%"),
        )
    ).scalars().all()

    highest = 0
    for code in codes:
        suffix = code[len(prefix):]
        if suffix.isdigit():
            highest = max(highest, int(suffix))
    return f"{prefix}{highest + 1:04d}"


# =============================================================================
# Team resolution
# =============================================================================

def resolve_team(
    db: Session,
    hospital_id: UUID,
    issue_type: str,
    team_id: UUID | None = None,
) -> UUID | None:
    """
    Explicit team if given (must be an active team of the hospital), otherwise
    the team routed for the issue type, otherwise None.
    """
    if team_id is not None:
        team = db.get(Team, team_id)
        if team is None or team.hospital_id != hospital_id or not team.is_active:
            raise ValidationError("Team not found")
        return team.id

    route = db.execute(
        select(IssueTypeRoute).where(
            IssueTypeRoute.hospital_id == hospital_id,
            IssueTypeRoute.issue_type == issue_type,
        )
    ).scalar_one_or_none()
    return route.team_id if route else None


# =============================================================================
# Create
# =============================================================================

def create_work_order(
    db: Session,
    hospital_id: UUID,
    reporter_id: UUID,
    data: WorkOrderCreate,
) -> WorkOrder:
    """
    Create a work order.

    Status is `assigned` when a team is resolved, `pending` otherwise.
    Notifies the team; notification failure does not fail creation.
    """
    hospital = db.get(Hospital, hospital_id)
    if hospital is None:
        raise ValidationError("Hospital not found")
    if not data.issue_type.strip() or not data.description.strip():
        raise ValidationError("Issue type and description are required")

    location = location_service.resolve_location(
        db,
        hospital_id,
        building_id=data.building_id,
        floor_id=data.floor_id,
        department_id=data.department_id,
        room_id=data.room_id,
    )
    team_id = resolve_team(db, hospital_id, data.issue_type, data.assigned_team_id)

    work_order: WorkOrder | None = None
    for attempt in range(CODE_RETRY_ATTEMPTS):
        now = datetime.now(timezone.utc)
        work_order = WorkOrder(
            hospital_id=hospital_id,
            code=next_work_order_code(db, hospital, now),
            issue_type=data.issue_type.strip(),
            description=data.description.strip(),
            priority=data.priority.value,
            urgency=data.urgency,
            status=(WorkOrderStatus.ASSIGNED if team_id else WorkOrderStatus.PENDING).value,
            building_id=location.building_id,
            floor_id=location.floor_id,
            department_id=location.department_id,
            room_id=location.room_id,
            asset_id=data.asset_id,
            company_id=data.company_id,
            reported_at=now,
            reported_by=reporter_id,
            assigned_team_id=team_id,
            assigned_at=now if team_id else None,
        )
        db.add(work_order)
        try:
            db.commit()
            break
        except IntegrityError:
            # Code taken by a concurrent insert; retry with the next sequence
            db.rollback()
            logger.info(
                "work_order_code_collision",
                extra=build_log_context(hospital_id=hospital_id) | {"attempt": attempt + 1},
            )
    else:
        raise DependencyError("Could not allocate a work order code")

    db.refresh(work_order)
    logger.info(
        "work_order_created",
        extra=build_log_context(
            user_id=reporter_id, hospital_id=hospital_id, work_order_id=work_order.id
        ),
    )

    if team_id:
        try:
            notification_service.dispatch_work_order_event(
                db, work_order, WorkOrderEvent.NEW_WORK_ORDER, actor_user_id=reporter_id
            )
        except Exception:
            logger.warning(
                "work_order_notification_failed",
                extra=build_log_context(hospital_id=hospital_id, work_order_id=work_order.id),
                exc_info=True,
            )
    return work_order


# =============================================================================
# Read
# =============================================================================

def get_work_order(db: Session, hospital_id: UUID, work_order_id: UUID) -> WorkOrder | None:
    """Get a work order scoped to the hospital."""
    return db.execute(
        select(WorkOrder).where(
            WorkOrder.id == work_order_id,
            WorkOrder.hospital_id == hospital_id,
        )
    ).scalar_one_or_none()


def list_work_orders(
    db: Session,
    hospital_id: UUID,
    user_id: UUID,
    *,
    can_view_all: bool,
    status: WorkOrderStatus | None = None,
    team_id: UUID | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[WorkOrder]:
    """
    List work orders in the hospital.

    Without view_all, only work orders the user reported or whose team the
    user belongs to.
    """
    query = select(WorkOrder).where(WorkOrder.hospital_id == hospital_id)
    if not can_view_all:
        user_teams = select(TeamMember.team_id).where(TeamMember.user_id == user_id)
        query = query.where(
            or_(
                WorkOrder.reported_by == user_id,
                WorkOrder.assigned_team_id.in_(user_teams),
            )
        )
    if status is not None:
        query = query.where(WorkOrder.status == status.value)
    if team_id is not None:
        query = query.where(WorkOrder.assigned_team_id == team_id)
    query = query.order_by(WorkOrder.reported_at.desc()).limit(limit).offset(offset)
    return list(db.execute(query).scalars().all())


def list_updates(db: Session, work_order_id: UUID) -> list[WorkOrderUpdate]:
    """Operations log for a work order, oldest first."""
    return list(
        db.execute(
            select(WorkOrderUpdate)
            .where(WorkOrderUpdate.work_order_id == work_order_id)
            .order_by(WorkOrderUpdate.created_at)
        )
        .scalars()
        .all()
    )
