"""Work orders and their operations log."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from facility_api.db.base import Base
from facility_api.db.enums import WorkOrderPriority, WorkOrderStatus
from facility_api.db.models._common import utcnow


def _user_fk(nullable: bool = True):
    return mapped_column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=nullable)


class WorkOrder(Base):
    """
    Maintenance request moving through the multi-stage approval workflow.

    Status changes are applied with a conditional UPDATE keyed on the
    expected current status (see work_order_action_service).
    """

    __tablename__ = "work_orders"
    __table_args__ = (
        UniqueConstraint("hospital_id", "code", name="uq_work_orders_hospital_code"),
        Index("idx_work_orders_hospital_status", "hospital_id", "status"),
        Index("idx_work_orders_team", "assigned_team_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    hospital_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("hospitals.id", ondelete="CASCADE"), nullable=False
    )
    code: Mapped[str] = mapped_column(String(40), nullable=False)

    # Classification
    issue_type: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    priority: Mapped[str] = mapped_column(
        String(20), default=WorkOrderPriority.MEDIUM.value, nullable=False
    )
    urgency: Mapped[str | None] = mapped_column(String(50), nullable=True)
    status: Mapped[str] = mapped_column(
        String(40), default=WorkOrderStatus.PENDING.value, nullable=False
    )

    # Location
    building_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("buildings.id", ondelete="SET NULL"), nullable=True
    )
    floor_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("floors.id", ondelete="SET NULL"), nullable=True
    )
    department_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("departments.id", ondelete="SET NULL"), nullable=True
    )
    room_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("rooms.id", ondelete="SET NULL"), nullable=True
    )

    # Relations
    asset_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    company_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)

    # Reporting and assignment
    reported_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    reported_by: Mapped[uuid.UUID | None] = _user_fk()
    assigned_team_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("teams.id", ondelete="SET NULL"), nullable=True
    )
    assigned_to: Mapped[uuid.UUID | None] = _user_fk()
    assigned_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Technician
    start_time: Mapped[datetime | None] = mapped_column(nullable=True)
    end_time: Mapped[datetime | None] = mapped_column(nullable=True)
    technician_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Supervisor
    supervisor_approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    supervisor_approved_by: Mapped[uuid.UUID | None] = _user_fk()
    supervisor_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Engineer
    reviewed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    reviewed_by: Mapped[uuid.UUID | None] = _user_fk()
    engineer_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Reporter
    pending_closure_since: Mapped[datetime | None] = mapped_column(nullable=True)
    customer_reviewed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    customer_reviewed_by: Mapped[uuid.UUID | None] = _user_fk()
    reporter_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    auto_closed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Maintenance manager
    maintenance_manager_approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    maintenance_manager_approved_by: Mapped[uuid.UUID | None] = _user_fk()
    maintenance_manager_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Rejection
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejection_stage: Mapped[str | None] = mapped_column(String(20), nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(nullable=True)
    rejected_by: Mapped[uuid.UUID | None] = _user_fk()

    # Redirect (issue type corrected on reassignment)
    is_redirected: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    redirected_to: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("teams.id", ondelete="SET NULL"), nullable=True
    )
    redirected_by: Mapped[uuid.UUID | None] = _user_fk()
    redirect_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    original_issue_type: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Reassignment bookkeeping
    reassignment_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_reassigned_at: Mapped[datetime | None] = mapped_column(nullable=True)
    last_reassigned_by: Mapped[uuid.UUID | None] = _user_fk()
    reassignment_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Cancellation
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancelled_by: Mapped[uuid.UUID | None] = _user_fk()
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)


class WorkOrderUpdate(Base):
    """Operations log entry (progress note, delay, issue) on a work order."""

    __tablename__ = "work_order_updates"
    __table_args__ = (Index("idx_work_order_updates_wo", "work_order_id", "created_at"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    work_order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("work_orders.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID | None] = _user_fk()
    update_type: Mapped[str] = mapped_column(String(20), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
