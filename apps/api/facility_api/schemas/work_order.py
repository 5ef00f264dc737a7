"""Work order request/response schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from facility_api.db.enums import (
    RejectStage,
    WorkOrderPriority,
    WorkOrderStatus,
    WorkOrderUpdateType,
)


class WorkOrderCreate(BaseModel):
    issue_type: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=5000)
    priority: WorkOrderPriority = WorkOrderPriority.MEDIUM
    urgency: str | None = Field(None, max_length=50)
    building_id: UUID | None = None
    floor_id: UUID | None = None
    department_id: UUID | None = None
    room_id: UUID | None = None
    asset_id: UUID | None = None
    company_id: UUID | None = None
    assigned_team_id: UUID | None = None


class WorkOrderRead(BaseModel):
    id: UUID
    hospital_id: UUID
    code: str
    issue_type: str
    description: str
    priority: WorkOrderPriority
    urgency: str | None
    status: WorkOrderStatus

    building_id: UUID | None
    floor_id: UUID | None
    department_id: UUID | None
    room_id: UUID | None
    asset_id: UUID | None
    company_id: UUID | None

    reported_at: datetime
    reported_by: UUID | None
    assigned_team_id: UUID | None
    assigned_to: UUID | None
    assigned_at: datetime | None

    start_time: datetime | None
    end_time: datetime | None
    technician_notes: str | None
    supervisor_approved_at: datetime | None
    supervisor_approved_by: UUID | None
    supervisor_notes: str | None
    reviewed_at: datetime | None
    reviewed_by: UUID | None
    engineer_notes: str | None
    pending_closure_since: datetime | None
    customer_reviewed_at: datetime | None
    customer_reviewed_by: UUID | None
    reporter_notes: str | None
    auto_closed_at: datetime | None
    maintenance_manager_approved_at: datetime | None
    maintenance_manager_approved_by: UUID | None
    maintenance_manager_notes: str | None

    rejection_reason: str | None
    rejection_stage: RejectStage | None
    rejected_at: datetime | None
    rejected_by: UUID | None
    is_redirected: bool
    redirected_to: UUID | None
    redirect_reason: str | None
    original_issue_type: str | None
    reassignment_count: int
    last_reassigned_at: datetime | None
    reassignment_reason: str | None

    cancelled_at: datetime | None
    cancellation_reason: str | None

    model_config = {"from_attributes": True}


class ActionNotes(BaseModel):
    """Body for actions that take optional or required notes."""
    notes: str | None = Field(None, max_length=5000)


class RejectRequest(BaseModel):
    notes: str = Field("", max_length=5000)
    reject_stage: RejectStage | None = None  # Hint; must match the current stage


class ReassignRequest(BaseModel):
    team_id: UUID
    reason: str = Field("", max_length=5000)
    new_issue_type: str | None = Field(None, max_length=100)


class WorkOrderUpdateCreate(BaseModel):
    update_type: WorkOrderUpdateType = WorkOrderUpdateType.NOTE
    message: str = Field("", max_length=5000)


class WorkOrderUpdateRead(BaseModel):
    id: UUID
    work_order_id: UUID
    user_id: UUID | None
    update_type: WorkOrderUpdateType
    message: str
    created_at: datetime

    model_config = {"from_attributes": True}


class TransitionRead(BaseModel):
    action: str
    next_status: WorkOrderStatus


class ActionStateResponse(BaseModel):
    """Allowed actions for the current user on one work order."""
    work_order_id: UUID
    status: WorkOrderStatus
    can: dict[str, bool]
    transitions: list[TransitionRead]
    is_rejected_by_technician: bool
    is_team_member: bool
    is_assigned_to_building: bool
    is_reporter: bool


class AutoCloseResponse(BaseModel):
    checked: int
    closed: int
