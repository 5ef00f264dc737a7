"""Work order lifecycle state machine.

Pure functions over already-loaded data: no database access, no I/O.
Relationship facts (team membership, building supervision) are resolved at
the data-loading boundary (services/membership_service.py) and passed in via
AccessContext.

Transition graph:

    pending -> assigned -> in_progress -> pending_supervisor_approval
      -> pending_engineer_review -> pending_reporter_closure -> completed

    pending_reporter_closure -> auto_closed      (scheduled sweep)
    assigned | in_progress   -> rejected_by_technician
    rejected_by_technician   -> assigned | pending | cancelled

Approval-stage rejections step back exactly one stage.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from uuid import UUID

from facility_api.db.enums import (
    RejectStage,
    RoleCode,
    WorkOrderAction,
    WorkOrderStatus,
)

S = WorkOrderStatus
A = WorkOrderAction


# =============================================================================
# Transition table
# =============================================================================

# Forward transitions with a single source state.
FORWARD_TRANSITIONS: dict[WorkOrderAction, tuple[WorkOrderStatus, WorkOrderStatus]] = {
    A.START: (S.ASSIGNED, S.IN_PROGRESS),
    A.COMPLETE: (S.IN_PROGRESS, S.PENDING_SUPERVISOR_APPROVAL),
    A.APPROVE: (S.PENDING_SUPERVISOR_APPROVAL, S.PENDING_ENGINEER_REVIEW),
    A.REVIEW: (S.PENDING_ENGINEER_REVIEW, S.PENDING_REPORTER_CLOSURE),
    A.CLOSE: (S.PENDING_REPORTER_CLOSURE, S.COMPLETED),
    A.RETURN_TO_PENDING: (S.REJECTED_BY_TECHNICIAN, S.PENDING),
    A.CANCEL: (S.REJECTED_BY_TECHNICIAN, S.CANCELLED),
}

# Reject steps back one stage; destination and stage come from current status only.
REJECT_TRANSITIONS: dict[WorkOrderStatus, tuple[WorkOrderStatus, RejectStage]] = {
    S.ASSIGNED: (S.REJECTED_BY_TECHNICIAN, RejectStage.TECHNICIAN),
    S.IN_PROGRESS: (S.REJECTED_BY_TECHNICIAN, RejectStage.TECHNICIAN),
    S.PENDING_SUPERVISOR_APPROVAL: (S.ASSIGNED, RejectStage.SUPERVISOR),
    S.PENDING_ENGINEER_REVIEW: (S.PENDING_SUPERVISOR_APPROVAL, RejectStage.ENGINEER),
    S.PENDING_REPORTER_CLOSURE: (S.PENDING_ENGINEER_REVIEW, RejectStage.REPORTER),
}

REASSIGNABLE_STATUSES = frozenset(
    {S.PENDING, S.ASSIGNED, S.IN_PROGRESS, S.REJECTED_BY_TECHNICIAN}
)
UPDATABLE_STATUSES = frozenset({S.PENDING, S.ASSIGNED, S.IN_PROGRESS})
FINAL_APPROVABLE_STATUSES = frozenset({S.COMPLETED, S.AUTO_CLOSED})
AUTO_CLOSABLE_STATUS = S.PENDING_REPORTER_CLOSURE

# Source states per action (used for precondition checks before authorization).
SOURCE_STATUSES: dict[WorkOrderAction, frozenset[WorkOrderStatus]] = {
    **{action: frozenset({src}) for action, (src, _) in FORWARD_TRANSITIONS.items()},
    A.REJECT: frozenset(REJECT_TRANSITIONS),
    A.REASSIGN: REASSIGNABLE_STATUSES,
    A.UPDATE: UPDATABLE_STATUSES,
    A.FINAL_APPROVE: FINAL_APPROVABLE_STATUSES,
    A.ADD_MANAGER_NOTES: frozenset(s for s in WorkOrderStatus if s != S.CANCELLED),
}


class InvalidTransition(Exception):
    """Action is not legal from the work order's current status."""

    pass


# =============================================================================
# Inputs
# =============================================================================

@dataclass(frozen=True)
class WorkOrderSnapshot:
    """The fields of a work order the workflow rules read."""
    id: UUID
    hospital_id: UUID
    status: WorkOrderStatus
    reported_by: UUID | None = None
    assigned_team_id: UUID | None = None
    building_id: UUID | None = None
    customer_reviewed_at: datetime | None = None
    maintenance_manager_approved_at: datetime | None = None
    pending_closure_since: datetime | None = None

    @classmethod
    def from_model(cls, work_order) -> "WorkOrderSnapshot":
        return cls(
            id=work_order.id,
            hospital_id=work_order.hospital_id,
            status=WorkOrderStatus(work_order.status),
            reported_by=work_order.reported_by,
            assigned_team_id=work_order.assigned_team_id,
            building_id=work_order.building_id,
            customer_reviewed_at=work_order.customer_reviewed_at,
            maintenance_manager_approved_at=work_order.maintenance_manager_approved_at,
            pending_closure_since=work_order.pending_closure_since,
        )


@dataclass(frozen=True)
class AccessContext:
    """Caller's relationship to one work order, resolved before evaluation."""
    user_id: UUID
    roles: frozenset[RoleCode] = frozenset()
    permissions: frozenset[str] = frozenset()
    is_team_member: bool = False
    is_assigned_to_building: bool = False
    is_reporter: bool = False

    def has_role(self, role: RoleCode) -> bool:
        return role in self.roles

    def has_permission(self, key: str) -> bool:
        return key in self.permissions


# =============================================================================
# Capability bag
# =============================================================================

@dataclass(frozen=True)
class WorkflowCapabilities:
    """State-machine eligibility per action, before role config and permission gates."""
    start: bool = False
    complete: bool = False
    approve: bool = False
    review: bool = False
    close: bool = False
    reject: bool = False
    reassign: bool = False
    update: bool = False
    cancel: bool = False
    return_to_pending: bool = False
    # Side flags
    is_rejected_by_technician: bool = False
    is_team_member: bool = False
    is_assigned_to_building: bool = False


def can_reject(work_order: WorkOrderSnapshot, ctx: AccessContext) -> bool:
    """Stage-appropriate rejection rights."""
    status = work_order.status
    if status in (S.ASSIGNED, S.IN_PROGRESS):
        return ctx.is_team_member
    if status == S.PENDING_SUPERVISOR_APPROVAL:
        return ctx.is_team_member or ctx.is_assigned_to_building
    if status == S.PENDING_ENGINEER_REVIEW:
        return ctx.is_team_member or ctx.has_role(RoleCode.ENGINEER)
    if status == S.PENDING_REPORTER_CLOSURE:
        return ctx.is_reporter
    return False


def compute_capabilities(
    work_order: WorkOrderSnapshot, ctx: AccessContext
) -> WorkflowCapabilities:
    """Evaluate every lifecycle flag independently for this caller."""
    status = work_order.status
    rejected = status == S.REJECTED_BY_TECHNICIAN
    return WorkflowCapabilities(
        start=status == S.ASSIGNED and ctx.is_team_member,
        complete=status == S.IN_PROGRESS and ctx.is_team_member,
        approve=status == S.PENDING_SUPERVISOR_APPROVAL
        and (ctx.is_team_member or ctx.is_assigned_to_building),
        review=status == S.PENDING_ENGINEER_REVIEW and ctx.has_role(RoleCode.ENGINEER),
        close=status == S.PENDING_REPORTER_CLOSURE and ctx.is_reporter,
        reject=can_reject(work_order, ctx),
        reassign=status in REASSIGNABLE_STATUSES
        and (
            rejected
            or ctx.has_permission("work_orders.approve")
            or ctx.has_permission("work_orders.manage")
        ),
        update=ctx.is_team_member
        and work_order.assigned_team_id is not None
        and status in UPDATABLE_STATUSES,
        cancel=rejected,
        return_to_pending=rejected,
        is_rejected_by_technician=rejected,
        is_team_member=ctx.is_team_member,
        is_assigned_to_building=ctx.is_assigned_to_building,
    )


def can_final_approve(work_order: WorkOrderSnapshot, ctx: AccessContext) -> bool:
    """Manager sign-off: permission driven, after reporter review or auto-close."""
    if not ctx.has_permission("work_orders.final_approve"):
        return False
    if work_order.maintenance_manager_approved_at is not None:
        return False
    if work_order.status == S.AUTO_CLOSED:
        return True
    return work_order.status == S.COMPLETED and work_order.customer_reviewed_at is not None


def can_add_manager_notes(work_order: WorkOrderSnapshot, ctx: AccessContext) -> bool:
    return (
        ctx.has_permission("work_orders.final_approve")
        and work_order.status != S.CANCELLED
        and work_order.maintenance_manager_approved_at is None
    )


# =============================================================================
# Next status
# =============================================================================

def next_status(
    action: WorkOrderAction,
    current: WorkOrderStatus,
) -> WorkOrderStatus:
    """
    Target status of an action from the given status.

    Actions that do not change status return the current status.

    Raises:
        InvalidTransition: action is not legal from current
    """
    if current not in SOURCE_STATUSES.get(action, frozenset()):
        raise InvalidTransition(f"Cannot {action.value} a work order in status {current.value}")
    if action in FORWARD_TRANSITIONS:
        return FORWARD_TRANSITIONS[action][1]
    if action == A.REJECT:
        return REJECT_TRANSITIONS[current][0]
    if action == A.REASSIGN:
        return S.ASSIGNED
    if action == A.FINAL_APPROVE:
        return S.COMPLETED
    return current


def reject_stage_for(current: WorkOrderStatus) -> RejectStage:
    """Rejection stage implied by the current status."""
    if current not in REJECT_TRANSITIONS:
        raise InvalidTransition(f"Cannot reject a work order in status {current.value}")
    return REJECT_TRANSITIONS[current][1]


def is_auto_close_due(
    work_order: WorkOrderSnapshot,
    now: datetime,
    after_hours: int,
) -> bool:
    """True once a work order has waited on the reporter longer than after_hours."""
    if work_order.status != AUTO_CLOSABLE_STATUS or work_order.pending_closure_since is None:
        return False
    since = work_order.pending_closure_since
    if since.tzinfo is None:
        since = since.replace(tzinfo=timezone.utc)
    return now - since >= timedelta(hours=after_hours)


@dataclass(frozen=True)
class TransitionPlan:
    """Allowed action with the status it leads to."""
    action: WorkOrderAction
    next_status: WorkOrderStatus
