"""Work order action policies and the single authorization entry point.

An action is allowed only when all three sources agree:

1. workflow eligibility (core/work_order_workflow.py)
2. the role config toggle for the caller's primary role (core/role_config.py)
3. the caller's effective permission (services/permission_service.py)

Per action:

    start              can.start             start_work           work_orders.start_work
    complete           can.complete          complete_work        work_orders.complete_work
    approve            can.approve           approve              work_orders.approve
    review             can.review            review_as_engineer   work_orders.review_as_engineer
    close              can.close             -                    -
    reject             can.reject            reject               work_orders.reject
    reassign           can.reassign          reassign             work_orders.reassign
    update             can.update            update               work_orders.update
    cancel             can.cancel            cancel               work_orders.cancel
    return_to_pending  can.return_to_pending reassign             work_orders.reassign
    final_approve      can_final_approve     final_approve        work_orders.final_approve
    add_manager_notes  can_add_manager_notes -                    work_orders.final_approve

Reporter actions (close, reject at reporter closure) are authorized by the
reporter's identity alone.
"""

from dataclasses import dataclass

from facility_api.core.role_config import RoleConfig, get_role_config
from facility_api.core.work_order_workflow import (
    AccessContext,
    TransitionPlan,
    WorkflowCapabilities,
    WorkOrderSnapshot,
    can_add_manager_notes,
    can_final_approve,
    compute_capabilities,
    next_status,
)
from facility_api.db.enums import WorkOrderAction, WorkOrderStatus

A = WorkOrderAction


@dataclass(frozen=True)
class ActionPolicy:
    """Role toggle + permission gating one work order action."""

    role_toggle: str | None
    permission: str | None


POLICIES: dict[WorkOrderAction, ActionPolicy] = {
    A.START: ActionPolicy("start_work", "work_orders.start_work"),
    A.COMPLETE: ActionPolicy("complete_work", "work_orders.complete_work"),
    A.APPROVE: ActionPolicy("approve", "work_orders.approve"),
    A.REVIEW: ActionPolicy("review_as_engineer", "work_orders.review_as_engineer"),
    A.CLOSE: ActionPolicy(None, None),
    A.REJECT: ActionPolicy("reject", "work_orders.reject"),
    A.REASSIGN: ActionPolicy("reassign", "work_orders.reassign"),
    A.UPDATE: ActionPolicy("update", "work_orders.update"),
    A.CANCEL: ActionPolicy("cancel", "work_orders.cancel"),
    A.RETURN_TO_PENDING: ActionPolicy("reassign", "work_orders.reassign"),
    A.FINAL_APPROVE: ActionPolicy("final_approve", "work_orders.final_approve"),
    A.ADD_MANAGER_NOTES: ActionPolicy(None, "work_orders.final_approve"),
}


def get_policy(action: WorkOrderAction) -> ActionPolicy:
    """Fetch an action policy or raise KeyError."""
    return POLICIES[action]


def _workflow_allows(
    action: WorkOrderAction,
    work_order: WorkOrderSnapshot,
    ctx: AccessContext,
    can: WorkflowCapabilities,
) -> bool:
    if action == A.FINAL_APPROVE:
        return can_final_approve(work_order, ctx)
    if action == A.ADD_MANAGER_NOTES:
        return can_add_manager_notes(work_order, ctx)
    return bool(getattr(can, action.value))


def _is_reporter_action(action: WorkOrderAction, work_order: WorkOrderSnapshot) -> bool:
    return action == A.CLOSE or (
        action == A.REJECT and work_order.status == WorkOrderStatus.PENDING_REPORTER_CLOSURE
    )


def authorize(
    action: WorkOrderAction,
    work_order: WorkOrderSnapshot,
    ctx: AccessContext,
    role_config: RoleConfig | None = None,
    capabilities: WorkflowCapabilities | None = None,
) -> bool:
    """Return True only if workflow, role config, and permissions all allow the action."""
    can = capabilities or compute_capabilities(work_order, ctx)
    if not _workflow_allows(action, work_order, ctx, can):
        return False
    if _is_reporter_action(action, work_order):
        return ctx.is_reporter

    policy = get_policy(action)
    config = role_config or get_role_config(role.value for role in ctx.roles)
    if policy.role_toggle and not getattr(config.modules.work_orders, policy.role_toggle):
        return False
    if policy.permission and not ctx.has_permission(policy.permission):
        return False
    return True


@dataclass(frozen=True)
class ActionState:
    """Gated capability bag returned to clients."""

    can: dict[str, bool]
    transitions: list[TransitionPlan]
    is_rejected_by_technician: bool
    is_team_member: bool
    is_assigned_to_building: bool
    is_reporter: bool


def compute_action_state(
    work_order: WorkOrderSnapshot,
    ctx: AccessContext,
    role_config: RoleConfig | None = None,
) -> ActionState:
    """Evaluate authorize() for every action and collect the allowed transitions."""
    config = role_config or get_role_config(role.value for role in ctx.roles)
    can = compute_capabilities(work_order, ctx)

    flags: dict[str, bool] = {}
    transitions: list[TransitionPlan] = []
    for action in WorkOrderAction:
        allowed = authorize(action, work_order, ctx, config, can)
        flags[action.value] = allowed
        if allowed:
            transitions.append(
                TransitionPlan(action=action, next_status=next_status(action, work_order.status))
            )

    return ActionState(
        can=flags,
        transitions=transitions,
        is_rejected_by_technician=can.is_rejected_by_technician,
        is_team_member=can.is_team_member,
        is_assigned_to_building=can.is_assigned_to_building,
        is_reporter=ctx.is_reporter,
    )
