"""Work order lifecycle actions.

Every action runs the same sequence:

1. validate input (before any database access)
2. load the work order scoped to the caller's hospital
3. check the current status is a source state of the action
4. build the caller's AccessContext and authorize()
5. apply a conditional UPDATE keyed on the observed status; zero rows
   means someone else moved the work order first
6. commit, then notify (best-effort, never rolls back the transition)
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from facility_api.core.config import settings
from facility_api.core.errors import (
    AuthorizationError,
    DependencyError,
    PreconditionError,
    ValidationError,
    WorkOrderNotFoundError,
)
from facility_api.core.policies import ActionState, authorize, compute_action_state
from facility_api.core.structured_logging import build_log_context
from facility_api.core.work_order_workflow import (
    SOURCE_STATUSES,
    AccessContext,
    WorkOrderSnapshot,
    is_auto_close_due,
    next_status,
    reject_stage_for,
)
from facility_api.db.enums import (
    RejectStage,
    RoleCode,
    WorkOrderAction,
    WorkOrderEvent,
    WorkOrderStatus,
    WorkOrderUpdateType,
)
from facility_api.db.models import Team, WorkOrder, WorkOrderUpdate
from facility_api.services import membership_service, notification_service
from facility_api.services.permission_service import PermissionResolver

logger = logging.getLogger(__name__)

A = WorkOrderAction
S = WorkOrderStatus


def _now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Input helpers
# =============================================================================

def _require_text(value: str | None, message: str) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationError(message)
    return text


def _optional_text(value: str | None) -> str | None:
    text = (value or "").strip()
    return text or None


# =============================================================================
# Loading
# =============================================================================

def _load_work_order(db: Session, hospital_id: UUID, work_order_id: UUID) -> WorkOrder:
    try:
        work_order = db.execute(
            select(WorkOrder).where(
                WorkOrder.id == work_order_id,
                WorkOrder.hospital_id == hospital_id,
            )
        ).scalar_one_or_none()
    except SQLAlchemyError as e:
        db.rollback()
        raise DependencyError("Failed to load work order") from e
    if work_order is None:
        raise WorkOrderNotFoundError(f"Work order {work_order_id} not found")
    return work_order


def load_access_context(
    db: Session,
    work_order: WorkOrder,
    user_id: UUID,
    *,
    roles: frozenset[RoleCode] | None = None,
    resolver: PermissionResolver | None = None,
) -> AccessContext:
    """
    Resolve the caller's relationship to a work order.

    Team and building lookups fail closed to False.

    Raises:
        DependencyError: roles or permissions could not be loaded
    """
    hospital_id = work_order.hospital_id
    if roles is None:
        try:
            roles = membership_service.get_user_roles(db, user_id, hospital_id)
        except SQLAlchemyError as e:
            db.rollback()
            raise DependencyError("Failed to load roles") from e

    resolver = resolver or PermissionResolver(db, user_id, hospital_id)
    permissions = resolver.effective_permissions(hospital_id)
    if resolver.error is not None:
        raise DependencyError("Failed to load permissions") from resolver.error

    return AccessContext(
        user_id=user_id,
        roles=roles,
        permissions=permissions,
        is_team_member=membership_service.is_team_member(db, work_order.assigned_team_id, user_id),
        is_assigned_to_building=membership_service.is_building_supervisor(
            db, work_order.building_id, user_id
        ),
        is_reporter=work_order.reported_by is not None and work_order.reported_by == user_id,
    )


def get_action_state(
    db: Session,
    hospital_id: UUID,
    user_id: UUID,
    work_order_id: UUID,
) -> tuple[WorkOrder, ActionState]:
    """Allowed actions for the caller on one work order."""
    work_order = _load_work_order(db, hospital_id, work_order_id)
    ctx = load_access_context(db, work_order, user_id)
    return work_order, compute_action_state(WorkOrderSnapshot.from_model(work_order), ctx)


# =============================================================================
# Transition core
# =============================================================================

@dataclass(frozen=True)
class LogEntry:
    update_type: WorkOrderUpdateType
    message: str


ValuesBuilder = Callable[[WorkOrder, S, datetime], dict[str, Any]]


def _apply_guarded(
    db: Session,
    work_order: WorkOrder,
    expected: S,
    values: dict[str, Any],
    extra_conditions: tuple = (),
) -> None:
    """Conditional UPDATE keyed on the expected status. Caller commits."""
    result = db.execute(
        update(WorkOrder)
        .where(
            WorkOrder.id == work_order.id,
            WorkOrder.hospital_id == work_order.hospital_id,
            WorkOrder.status == expected.value,
            *extra_conditions,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        raise PreconditionError("Work order was changed by someone else. Please refresh.")


def _notify(db: Session, work_order: WorkOrder, event: WorkOrderEvent, user_id: UUID | None) -> None:
    try:
        notification_service.dispatch_work_order_event(db, work_order, event, actor_user_id=user_id)
    except Exception:
        logger.warning(
            "work_order_notification_failed",
            extra=build_log_context(
                user_id=user_id,
                hospital_id=work_order.hospital_id,
                work_order_id=work_order.id,
                action=event.value,
            ),
            exc_info=True,
        )


def _perform(
    db: Session,
    *,
    action: WorkOrderAction,
    hospital_id: UUID,
    user_id: UUID,
    work_order_id: UUID,
    build_values: ValuesBuilder,
    event: WorkOrderEvent | None,
    log_entry: LogEntry | None = None,
    extra_conditions: tuple = (),
    prepare: Callable[[WorkOrder, S], None] | None = None,
) -> WorkOrder:
    work_order = _load_work_order(db, hospital_id, work_order_id)
    current = S(work_order.status)
    if current not in SOURCE_STATUSES[action]:
        raise PreconditionError(
            f"Cannot {action.value} a work order in status {current.value}. Please refresh."
        )

    ctx = load_access_context(db, work_order, user_id)
    if not authorize(action, WorkOrderSnapshot.from_model(work_order), ctx):
        raise AuthorizationError(f"Not allowed to {action.value} this work order")

    if prepare is not None:
        prepare(work_order, current)

    now = _now()
    target = next_status(action, current)
    values = {"status": target.value, **build_values(work_order, current, now)}

    try:
        _apply_guarded(db, work_order, current, values, extra_conditions)
        if log_entry is not None:
            db.add(
                WorkOrderUpdate(
                    work_order_id=work_order.id,
                    user_id=user_id,
                    update_type=log_entry.update_type.value,
                    message=log_entry.message,
                    created_at=now,
                )
            )
        db.commit()
    except PreconditionError:
        raise
    except SQLAlchemyError as e:
        db.rollback()
        raise DependencyError(f"Failed to {action.value} work order") from e

    db.refresh(work_order)
    logger.info(
        "work_order_transition_applied",
        extra=build_log_context(
            user_id=user_id,
            hospital_id=hospital_id,
            work_order_id=work_order.id,
            action=action.value,
        )
        | {"from_status": current.value, "to_status": target.value},
    )

    if event is not None:
        _notify(db, work_order, event, user_id)
    return work_order


# =============================================================================
# Technician
# =============================================================================

def start_work(
    db: Session, hospital_id: UUID, user_id: UUID, work_order_id: UUID
) -> WorkOrder:
    """assigned -> in_progress"""
    return _perform(
        db,
        action=A.START,
        hospital_id=hospital_id,
        user_id=user_id,
        work_order_id=work_order_id,
        build_values=lambda wo, _, now: {
            "start_time": now,
            "assigned_to": wo.assigned_to or user_id,
        },
        event=WorkOrderEvent.WORK_STARTED,
    )


def complete_work(
    db: Session, hospital_id: UUID, user_id: UUID, work_order_id: UUID, notes: str | None = None
) -> WorkOrder:
    """in_progress -> pending_supervisor_approval"""
    notes = _optional_text(notes)
    return _perform(
        db,
        action=A.COMPLETE,
        hospital_id=hospital_id,
        user_id=user_id,
        work_order_id=work_order_id,
        build_values=lambda wo, _, now: {"end_time": now, "technician_notes": notes},
        event=WorkOrderEvent.WORK_COMPLETED,
    )


# =============================================================================
# Approvals
# =============================================================================

def approve_as_supervisor(
    db: Session, hospital_id: UUID, user_id: UUID, work_order_id: UUID, notes: str | None = None
) -> WorkOrder:
    """pending_supervisor_approval -> pending_engineer_review"""
    notes = _optional_text(notes)
    return _perform(
        db,
        action=A.APPROVE,
        hospital_id=hospital_id,
        user_id=user_id,
        work_order_id=work_order_id,
        build_values=lambda wo, _, now: {
            "supervisor_approved_at": now,
            "supervisor_approved_by": user_id,
            "supervisor_notes": notes,
        },
        event=WorkOrderEvent.SUPERVISOR_APPROVED,
    )


def review_as_engineer(
    db: Session, hospital_id: UUID, user_id: UUID, work_order_id: UUID, notes: str | None = None
) -> WorkOrder:
    """pending_engineer_review -> pending_reporter_closure (starts the auto-close clock)"""
    notes = _optional_text(notes)
    return _perform(
        db,
        action=A.REVIEW,
        hospital_id=hospital_id,
        user_id=user_id,
        work_order_id=work_order_id,
        build_values=lambda wo, _, now: {
            "reviewed_at": now,
            "reviewed_by": user_id,
            "engineer_notes": notes,
            "pending_closure_since": now,
        },
        event=WorkOrderEvent.ENGINEER_APPROVED,
    )


def close_as_reporter(
    db: Session, hospital_id: UUID, user_id: UUID, work_order_id: UUID, notes: str | None = None
) -> WorkOrder:
    """pending_reporter_closure -> completed"""
    notes = _optional_text(notes)
    return _perform(
        db,
        action=A.CLOSE,
        hospital_id=hospital_id,
        user_id=user_id,
        work_order_id=work_order_id,
        build_values=lambda wo, _, now: {
            "customer_reviewed_at": now,
            "customer_reviewed_by": user_id,
            "reporter_notes": notes,
        },
        event=WorkOrderEvent.CUSTOMER_REVIEWED,
    )


def final_approve(
    db: Session, hospital_id: UUID, user_id: UUID, work_order_id: UUID, notes: str | None = None
) -> WorkOrder:
    """completed | auto_closed -> completed, maintenance manager sign-off"""
    notes = _optional_text(notes)
    return _perform(
        db,
        action=A.FINAL_APPROVE,
        hospital_id=hospital_id,
        user_id=user_id,
        work_order_id=work_order_id,
        build_values=lambda wo, _, now: {
            "maintenance_manager_approved_at": now,
            "maintenance_manager_approved_by": user_id,
            "maintenance_manager_notes": notes or wo.maintenance_manager_notes,
        },
        event=WorkOrderEvent.FINAL_APPROVED,
        extra_conditions=(WorkOrder.maintenance_manager_approved_at.is_(None),),
    )


def add_manager_notes(
    db: Session, hospital_id: UUID, user_id: UUID, work_order_id: UUID, notes: str | None
) -> WorkOrder:
    """Record maintenance manager notes without changing status."""
    notes = _require_text(notes, "Notes are required")
    return _perform(
        db,
        action=A.ADD_MANAGER_NOTES,
        hospital_id=hospital_id,
        user_id=user_id,
        work_order_id=work_order_id,
        build_values=lambda wo, _, now: {"maintenance_manager_notes": notes},
        event=WorkOrderEvent.MANAGER_NOTES_ADDED,
        extra_conditions=(WorkOrder.maintenance_manager_approved_at.is_(None),),
    )


# =============================================================================
# Rejection
# =============================================================================

# Fields cleared when a work order steps back to an earlier stage.
_REJECT_CLEARS: dict[RejectStage, tuple[str, ...]] = {
    RejectStage.TECHNICIAN: (),
    RejectStage.SUPERVISOR: ("end_time", "technician_notes"),
    RejectStage.ENGINEER: ("supervisor_approved_at", "supervisor_approved_by", "supervisor_notes"),
    RejectStage.REPORTER: ("reviewed_at", "reviewed_by", "engineer_notes", "pending_closure_since"),
}


def reject(
    db: Session,
    hospital_id: UUID,
    user_id: UUID,
    work_order_id: UUID,
    notes: str | None,
    reject_stage: RejectStage | str | None = None,
) -> WorkOrder:
    """
    Send the work order back one stage.

    Destination and stage are derived from the current status. A
    reject_stage supplied by the caller is only checked for agreement.
    """
    notes = _require_text(notes, "A reason is required to reject")
    hint: RejectStage | None = None
    if reject_stage:
        try:
            hint = RejectStage(reject_stage)
        except ValueError:
            raise ValidationError(f"Unknown reject stage: {reject_stage}")

    def check_stage(work_order: WorkOrder, current: S) -> None:
        if hint is not None and hint != reject_stage_for(current):
            raise ValidationError(
                f"Reject stage '{hint.value}' does not match the work order's current stage"
            )

    def build(work_order: WorkOrder, current: S, now: datetime) -> dict[str, Any]:
        stage = reject_stage_for(current)
        values: dict[str, Any] = {
            "rejection_reason": notes,
            "rejection_stage": stage.value,
            "rejected_at": now,
            "rejected_by": user_id,
        }
        for field_name in _REJECT_CLEARS[stage]:
            values[field_name] = None
        return values

    return _perform(
        db,
        action=A.REJECT,
        hospital_id=hospital_id,
        user_id=user_id,
        work_order_id=work_order_id,
        build_values=build,
        event=WorkOrderEvent.REJECTED,
        prepare=check_stage,
    )


# =============================================================================
# Dispatch
# =============================================================================

def reassign(
    db: Session,
    hospital_id: UUID,
    user_id: UUID,
    work_order_id: UUID,
    team_id: UUID | None,
    reason: str | None,
    new_issue_type: str | None = None,
) -> WorkOrder:
    """Move the work order to another team (status becomes assigned)."""
    if team_id is None:
        raise ValidationError("A target team is required")
    reason = _require_text(reason, "A reason is required to reassign")
    new_issue_type = _optional_text(new_issue_type)

    def check_team(work_order: WorkOrder, current: S) -> None:
        team = db.get(Team, team_id)
        if team is None or team.hospital_id != hospital_id or not team.is_active:
            raise ValidationError("Team not found")

    def build(work_order: WorkOrder, current: S, now: datetime) -> dict[str, Any]:
        values: dict[str, Any] = {
            "assigned_team_id": team_id,
            "assigned_to": None,
            "assigned_at": now,
            "start_time": None,
            "end_time": None,
            "reassignment_count": WorkOrder.reassignment_count + 1,
            "last_reassigned_at": now,
            "last_reassigned_by": user_id,
            "reassignment_reason": reason,
        }
        if new_issue_type and new_issue_type != work_order.issue_type:
            values.update(
                issue_type=new_issue_type,
                original_issue_type=work_order.original_issue_type or work_order.issue_type,
                is_redirected=True,
                redirected_to=team_id,
                redirected_by=user_id,
                redirect_reason=reason,
            )
        return values

    return _perform(
        db,
        action=A.REASSIGN,
        hospital_id=hospital_id,
        user_id=user_id,
        work_order_id=work_order_id,
        build_values=build,
        event=WorkOrderEvent.REASSIGNED,
        log_entry=LogEntry(WorkOrderUpdateType.NOTE, f"Reassigned: {reason}"),
        prepare=check_team,
    )


def return_to_pending(
    db: Session, hospital_id: UUID, user_id: UUID, work_order_id: UUID, notes: str | None
) -> WorkOrder:
    """rejected_by_technician -> pending, clearing the team for redistribution."""
    notes = _require_text(notes, "A reason is required to return the work order")
    return _perform(
        db,
        action=A.RETURN_TO_PENDING,
        hospital_id=hospital_id,
        user_id=user_id,
        work_order_id=work_order_id,
        build_values=lambda wo, _, now: {
            "assigned_team_id": None,
            "assigned_to": None,
            "assigned_at": None,
            "start_time": None,
        },
        event=WorkOrderEvent.RETURNED_TO_PENDING,
        log_entry=LogEntry(WorkOrderUpdateType.NOTE, f"Returned to pending: {notes}"),
    )


def cancel_work_order(
    db: Session, hospital_id: UUID, user_id: UUID, work_order_id: UUID, notes: str | None
) -> WorkOrder:
    """rejected_by_technician -> cancelled (terminal)"""
    notes = _require_text(notes, "A reason is required to cancel")
    return _perform(
        db,
        action=A.CANCEL,
        hospital_id=hospital_id,
        user_id=user_id,
        work_order_id=work_order_id,
        build_values=lambda wo, _, now: {
            "cancelled_at": now,
            "cancelled_by": user_id,
            "cancellation_reason": notes,
        },
        event=WorkOrderEvent.CANCELLED,
    )


def add_update(
    db: Session,
    hospital_id: UUID,
    user_id: UUID,
    work_order_id: UUID,
    message: str | None,
    update_type: WorkOrderUpdateType | str = WorkOrderUpdateType.NOTE,
) -> WorkOrder:
    """Append to the operations log. Status unchanged."""
    message = _require_text(message, "Update message is required")
    try:
        kind = WorkOrderUpdateType(update_type)
    except ValueError:
        raise ValidationError(f"Unknown update type: {update_type}")
    return _perform(
        db,
        action=A.UPDATE,
        hospital_id=hospital_id,
        user_id=user_id,
        work_order_id=work_order_id,
        build_values=lambda wo, _, now: {"updated_at": now},
        event=WorkOrderEvent.UPDATE_ADDED,
        log_entry=LogEntry(kind, message),
    )


# =============================================================================
# Scheduled
# =============================================================================

def auto_close_overdue(
    db: Session,
    now: datetime | None = None,
    after_hours: int | None = None,
) -> tuple[int, int]:
    """
    Auto-close work orders left awaiting reporter closure too long.

    System action: no caller authorization, same conditional update.
    Returns (checked, closed).
    """
    now = now or _now()
    after_hours = settings.AUTO_CLOSE_AFTER_HOURS if after_hours is None else after_hours

    candidates = db.execute(
        select(WorkOrder).where(
            WorkOrder.status == S.PENDING_REPORTER_CLOSURE.value,
            WorkOrder.pending_closure_since.is_not(None),
        )
    ).scalars().all()

    closed = 0
    for work_order in candidates:
        if not is_auto_close_due(WorkOrderSnapshot.from_model(work_order), now, after_hours):
            continue
        try:
            _apply_guarded(
                db,
                work_order,
                S.PENDING_REPORTER_CLOSURE,
                {"status": S.AUTO_CLOSED.value, "auto_closed_at": now},
            )
            db.commit()
        except PreconditionError:
            # Reporter acted between the scan and the update
            continue
        db.refresh(work_order)
        closed += 1
        logger.info(
            "work_order_auto_closed",
            extra=build_log_context(
                hospital_id=work_order.hospital_id, work_order_id=work_order.id
            ),
        )
        _notify(db, work_order, WorkOrderEvent.AUTO_CLOSED, None)

    return len(candidates), closed
