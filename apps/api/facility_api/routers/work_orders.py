"""Work order API endpoints: creation, lookup, and lifecycle actions."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from facility_api.core.config import settings
from facility_api.core.deps import (
    get_current_session,
    get_db,
    require_csrf_header,
    require_permission,
)
from facility_api.core.errors import (
    AuthorizationError,
    DependencyError,
    PreconditionError,
    ValidationError,
    WorkOrderActionError,
    WorkOrderNotFoundError,
)
from facility_api.core.rate_limit import limiter
from facility_api.db.enums import WorkOrderStatus
from facility_api.schemas.auth import UserSession
from facility_api.schemas.work_order import (
    ActionNotes,
    ActionStateResponse,
    ReassignRequest,
    RejectRequest,
    TransitionRead,
    WorkOrderCreate,
    WorkOrderRead,
    WorkOrderUpdateCreate,
    WorkOrderUpdateRead,
)
from facility_api.services import (
    membership_service,
    permission_service,
    work_order_action_service,
    work_order_service,
)

router = APIRouter(prefix="/work-orders", tags=["work-orders"])


def _to_http(e: WorkOrderActionError) -> HTTPException:
    """Map a work order service error to an HTTP error."""
    if isinstance(e, WorkOrderNotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, AuthorizationError):
        return HTTPException(status_code=403, detail=str(e))
    if isinstance(e, PreconditionError):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, ValidationError):
        return HTTPException(status_code=422, detail=str(e))
    if isinstance(e, DependencyError):
        return HTTPException(status_code=503, detail="Temporarily unavailable, please retry")
    return HTTPException(status_code=400, detail=str(e))


def _can_view(db: Session, session: UserSession, work_order) -> bool:
    if permission_service.check_permission(
        db, session.user_id, session.hospital_id, "work_orders.view_all"
    ):
        return True
    if work_order.reported_by == session.user_id:
        return True
    return membership_service.is_team_member(db, work_order.assigned_team_id, session.user_id)


def _get_visible(db: Session, session: UserSession, work_order_id: UUID):
    work_order = work_order_service.get_work_order(db, session.hospital_id, work_order_id)
    if not work_order or not _can_view(db, session, work_order):
        raise HTTPException(status_code=404, detail="Work order not found")
    return work_order


# =============================================================================
# Create / Read
# =============================================================================

@router.post(
    "",
    response_model=WorkOrderRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_csrf_header)],
)
@limiter.limit(f"{settings.RATE_LIMIT_API}/minute")
def create_work_order(
    request: Request,
    data: WorkOrderCreate,
    session: UserSession = Depends(require_permission("work_orders.create")),
    db: Session = Depends(get_db),
):
    """Report a new issue. Routed to a team when one is resolved."""
    try:
        return work_order_service.create_work_order(
            db, session.hospital_id, session.user_id, data
        )
    except WorkOrderActionError as e:
        raise _to_http(e)


@router.get("", response_model=list[WorkOrderRead])
def list_work_orders(
    status_filter: WorkOrderStatus | None = None,
    team_id: UUID | None = None,
    limit: int = 50,
    offset: int = 0,
    session: UserSession = Depends(require_permission("work_orders.view")),
    db: Session = Depends(get_db),
):
    can_view_all = permission_service.check_permission(
        db, session.user_id, session.hospital_id, "work_orders.view_all"
    )
    return work_order_service.list_work_orders(
        db,
        session.hospital_id,
        session.user_id,
        can_view_all=can_view_all,
        status=status_filter,
        team_id=team_id,
        limit=min(max(limit, 1), 200),
        offset=max(offset, 0),
    )


@router.get("/{work_order_id}", response_model=WorkOrderRead)
def get_work_order(
    work_order_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    return _get_visible(db, session, work_order_id)


@router.get("/{work_order_id}/actions", response_model=ActionStateResponse)
def get_work_order_actions(
    work_order_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Actions the current user may take on this work order right now."""
    _get_visible(db, session, work_order_id)
    try:
        work_order, state = work_order_action_service.get_action_state(
            db, session.hospital_id, session.user_id, work_order_id
        )
    except WorkOrderActionError as e:
        raise _to_http(e)
    return ActionStateResponse(
        work_order_id=work_order.id,
        status=WorkOrderStatus(work_order.status),
        can=state.can,
        transitions=[
            TransitionRead(action=t.action.value, next_status=t.next_status)
            for t in state.transitions
        ],
        is_rejected_by_technician=state.is_rejected_by_technician,
        is_team_member=state.is_team_member,
        is_assigned_to_building=state.is_assigned_to_building,
        is_reporter=state.is_reporter,
    )


@router.get("/{work_order_id}/updates", response_model=list[WorkOrderUpdateRead])
def list_work_order_updates(
    work_order_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    work_order = _get_visible(db, session, work_order_id)
    return work_order_service.list_updates(db, work_order.id)


# =============================================================================
# Lifecycle actions
# =============================================================================

@router.post(
    "/{work_order_id}/start",
    response_model=WorkOrderRead,
    dependencies=[Depends(require_csrf_header)],
)
def start_work(
    work_order_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    _get_visible(db, session, work_order_id)
    try:
        return work_order_action_service.start_work(
            db, session.hospital_id, session.user_id, work_order_id
        )
    except WorkOrderActionError as e:
        raise _to_http(e)


@router.post(
    "/{work_order_id}/complete",
    response_model=WorkOrderRead,
    dependencies=[Depends(require_csrf_header)],
)
def complete_work(
    work_order_id: UUID,
    data: ActionNotes,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    _get_visible(db, session, work_order_id)
    try:
        return work_order_action_service.complete_work(
            db, session.hospital_id, session.user_id, work_order_id, data.notes
        )
    except WorkOrderActionError as e:
        raise _to_http(e)


@router.post(
    "/{work_order_id}/approve",
    response_model=WorkOrderRead,
    dependencies=[Depends(require_csrf_header)],
)
def approve_as_supervisor(
    work_order_id: UUID,
    data: ActionNotes,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    _get_visible(db, session, work_order_id)
    try:
        return work_order_action_service.approve_as_supervisor(
            db, session.hospital_id, session.user_id, work_order_id, data.notes
        )
    except WorkOrderActionError as e:
        raise _to_http(e)


@router.post(
    "/{work_order_id}/review",
    response_model=WorkOrderRead,
    dependencies=[Depends(require_csrf_header)],
)
def review_as_engineer(
    work_order_id: UUID,
    data: ActionNotes,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    _get_visible(db, session, work_order_id)
    try:
        return work_order_action_service.review_as_engineer(
            db, session.hospital_id, session.user_id, work_order_id, data.notes
        )
    except WorkOrderActionError as e:
        raise _to_http(e)


@router.post(
    "/{work_order_id}/close",
    response_model=WorkOrderRead,
    dependencies=[Depends(require_csrf_header)],
)
def close_as_reporter(
    work_order_id: UUID,
    data: ActionNotes,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    _get_visible(db, session, work_order_id)
    try:
        return work_order_action_service.close_as_reporter(
            db, session.hospital_id, session.user_id, work_order_id, data.notes
        )
    except WorkOrderActionError as e:
        raise _to_http(e)


@router.post(
    "/{work_order_id}/final-approve",
    response_model=WorkOrderRead,
    dependencies=[Depends(require_csrf_header)],
)
def final_approve(
    work_order_id: UUID,
    data: ActionNotes,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    _get_visible(db, session, work_order_id)
    try:
        return work_order_action_service.final_approve(
            db, session.hospital_id, session.user_id, work_order_id, data.notes
        )
    except WorkOrderActionError as e:
        raise _to_http(e)


@router.post(
    "/{work_order_id}/manager-notes",
    response_model=WorkOrderRead,
    dependencies=[Depends(require_csrf_header)],
)
def add_manager_notes(
    work_order_id: UUID,
    data: ActionNotes,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    _get_visible(db, session, work_order_id)
    try:
        return work_order_action_service.add_manager_notes(
            db, session.hospital_id, session.user_id, work_order_id, data.notes
        )
    except WorkOrderActionError as e:
        raise _to_http(e)


@router.post(
    "/{work_order_id}/reject",
    response_model=WorkOrderRead,
    dependencies=[Depends(require_csrf_header)],
)
def reject_work_order(
    work_order_id: UUID,
    data: RejectRequest,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Send the work order back one stage. The reason is required."""
    _get_visible(db, session, work_order_id)
    try:
        return work_order_action_service.reject(
            db,
            session.hospital_id,
            session.user_id,
            work_order_id,
            data.notes,
            reject_stage=data.reject_stage,
        )
    except WorkOrderActionError as e:
        raise _to_http(e)


@router.post(
    "/{work_order_id}/reassign",
    response_model=WorkOrderRead,
    dependencies=[Depends(require_csrf_header)],
)
def reassign_work_order(
    work_order_id: UUID,
    data: ReassignRequest,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    _get_visible(db, session, work_order_id)
    try:
        return work_order_action_service.reassign(
            db,
            session.hospital_id,
            session.user_id,
            work_order_id,
            data.team_id,
            data.reason,
            new_issue_type=data.new_issue_type,
        )
    except WorkOrderActionError as e:
        raise _to_http(e)


@router.post(
    "/{work_order_id}/return-to-pending",
    response_model=WorkOrderRead,
    dependencies=[Depends(require_csrf_header)],
)
def return_to_pending(
    work_order_id: UUID,
    data: ActionNotes,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    _get_visible(db, session, work_order_id)
    try:
        return work_order_action_service.return_to_pending(
            db, session.hospital_id, session.user_id, work_order_id, data.notes
        )
    except WorkOrderActionError as e:
        raise _to_http(e)


@router.post(
    "/{work_order_id}/cancel",
    response_model=WorkOrderRead,
    dependencies=[Depends(require_csrf_header)],
)
def cancel_work_order(
    work_order_id: UUID,
    data: ActionNotes,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    _get_visible(db, session, work_order_id)
    try:
        return work_order_action_service.cancel_work_order(
            db, session.hospital_id, session.user_id, work_order_id, data.notes
        )
    except WorkOrderActionError as e:
        raise _to_http(e)


@router.post(
    "/{work_order_id}/updates",
    response_model=WorkOrderRead,
    dependencies=[Depends(require_csrf_header)],
)
def add_work_order_update(
    work_order_id: UUID,
    data: WorkOrderUpdateCreate,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Post a progress note, delay, or issue to the operations log."""
    _get_visible(db, session, work_order_id)
    try:
        return work_order_action_service.add_update(
            db,
            session.hospital_id,
            session.user_id,
            work_order_id,
            data.message,
            update_type=data.update_type,
        )
    except WorkOrderActionError as e:
        raise _to_http(e)
