"""Work order lifecycle enums."""

from enum import Enum


class WorkOrderStatus(str, Enum):
    """Work order lifecycle states."""

    PENDING = "pending"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    PENDING_SUPERVISOR_APPROVAL = "pending_supervisor_approval"
    PENDING_ENGINEER_REVIEW = "pending_engineer_review"
    PENDING_REPORTER_CLOSURE = "pending_reporter_closure"
    COMPLETED = "completed"
    AUTO_CLOSED = "auto_closed"
    CANCELLED = "cancelled"
    REJECTED_BY_TECHNICIAN = "rejected_by_technician"


class WorkOrderPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class RejectStage(str, Enum):
    """Stage at which a work order was rejected."""

    TECHNICIAN = "technician"
    SUPERVISOR = "supervisor"
    ENGINEER = "engineer"
    REPORTER = "reporter"


class WorkOrderAction(str, Enum):
    """Lifecycle actions a caller can invoke on a work order."""

    START = "start"
    COMPLETE = "complete"
    APPROVE = "approve"
    REVIEW = "review"
    CLOSE = "close"
    REJECT = "reject"
    REASSIGN = "reassign"
    UPDATE = "update"
    CANCEL = "cancel"
    RETURN_TO_PENDING = "return_to_pending"
    FINAL_APPROVE = "final_approve"
    ADD_MANAGER_NOTES = "add_manager_notes"


class WorkOrderUpdateType(str, Enum):
    """Entry types in the work order operations log."""

    NOTE = "note"
    DELAY = "delay"
    PROGRESS = "progress"
    ISSUE = "issue"
