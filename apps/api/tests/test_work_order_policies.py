"""
Authorization facade tests: workflow x role config x permissions.
"""

import uuid
from datetime import datetime, timezone

from facility_api.core.permissions import get_role_default_permissions
from facility_api.core.policies import POLICIES, authorize, compute_action_state, get_policy
from facility_api.core.work_order_workflow import AccessContext, WorkOrderSnapshot
from facility_api.db.enums import RoleCode, WorkOrderAction, WorkOrderStatus

S = WorkOrderStatus
A = WorkOrderAction

REPORTER = uuid.uuid4()


def _wo(status: S, **fields) -> WorkOrderSnapshot:
    values = dict(
        id=uuid.uuid4(),
        hospital_id=uuid.uuid4(),
        status=status,
        reported_by=REPORTER,
        assigned_team_id=uuid.uuid4(),
        building_id=uuid.uuid4(),
    )
    values.update(fields)
    return WorkOrderSnapshot(**values)


def _as(role: RoleCode, permissions: set[str] | None = None, **fields) -> AccessContext:
    perms = get_role_default_permissions(role.value) if permissions is None else permissions
    return AccessContext(
        user_id=fields.pop("user_id", uuid.uuid4()),
        roles=frozenset({role}),
        permissions=frozenset(perms),
        **fields,
    )


def test_every_action_has_a_policy():
    assert set(POLICIES) == set(WorkOrderAction)
    assert get_policy(A.RETURN_TO_PENDING).role_toggle == "reassign"


def test_technician_on_team_can_start():
    assert authorize(A.START, _wo(S.ASSIGNED), _as(RoleCode.TECHNICIAN, is_team_member=True))


def test_missing_permission_blocks_eligible_action():
    ctx = _as(RoleCode.TECHNICIAN, permissions=set(), is_team_member=True)
    assert not authorize(A.START, _wo(S.ASSIGNED), ctx)


def test_role_toggle_blocks_eligible_action():
    # Reporter on the team with the permission granted still lacks the start_work toggle
    ctx = _as(RoleCode.REPORTER, permissions={"work_orders.start_work"}, is_team_member=True)
    assert not authorize(A.START, _wo(S.ASSIGNED), ctx)


def test_building_supervisor_approve_and_reject():
    ctx = _as(RoleCode.SUPERVISOR, is_assigned_to_building=True)
    state = compute_action_state(_wo(S.PENDING_SUPERVISOR_APPROVAL), ctx)
    assert state.can["approve"] is True
    assert state.can["reject"] is True
    assert state.can["start"] is False
    assert {t.action for t in state.transitions} == {A.APPROVE, A.REJECT}
    next_by_action = {t.action: t.next_status for t in state.transitions}
    assert next_by_action[A.APPROVE] == S.PENDING_ENGINEER_REVIEW
    assert next_by_action[A.REJECT] == S.ASSIGNED


def test_reporter_close_needs_only_identity():
    ctx = AccessContext(user_id=REPORTER, is_reporter=True)
    work_order = _wo(S.PENDING_REPORTER_CLOSURE)
    assert authorize(A.CLOSE, work_order, ctx)
    assert authorize(A.REJECT, work_order, ctx)


def test_admin_cannot_close_for_reporter():
    ctx = _as(RoleCode.HOSPITAL_ADMIN)
    assert not authorize(A.CLOSE, _wo(S.PENDING_REPORTER_CLOSURE), ctx)


def test_final_approve_is_permission_driven():
    work_order = _wo(S.AUTO_CLOSED)
    assert authorize(A.FINAL_APPROVE, work_order, _as(RoleCode.MAINTENANCE_MANAGER))
    assert not authorize(A.FINAL_APPROVE, work_order, _as(RoleCode.SUPERVISOR))


def test_final_approve_only_once():
    work_order = _wo(S.COMPLETED, maintenance_manager_approved_at=datetime.now(timezone.utc))
    assert not authorize(A.FINAL_APPROVE, work_order, _as(RoleCode.MAINTENANCE_MANAGER))
    assert not authorize(A.ADD_MANAGER_NOTES, work_order, _as(RoleCode.MAINTENANCE_MANAGER))


def test_rejected_by_technician_actions_for_supervisor():
    state = compute_action_state(
        _wo(S.REJECTED_BY_TECHNICIAN), _as(RoleCode.SUPERVISOR, is_assigned_to_building=True)
    )
    allowed = {action for action, ok in state.can.items() if ok}
    assert allowed == {"cancel", "return_to_pending", "reassign"}
    assert state.is_rejected_by_technician is True


def test_technician_cannot_cancel_rejected():
    state = compute_action_state(
        _wo(S.REJECTED_BY_TECHNICIAN), _as(RoleCode.TECHNICIAN, is_team_member=True)
    )
    assert state.can["cancel"] is False
    assert state.can["return_to_pending"] is False
    assert state.can["reassign"] is False


def test_action_state_covers_every_action():
    state = compute_action_state(_wo(S.PENDING), _as(RoleCode.REPORTER))
    assert set(state.can) == {a.value for a in WorkOrderAction}
    assert state.transitions == []
