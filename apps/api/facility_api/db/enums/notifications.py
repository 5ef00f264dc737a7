"""Notification-related enums."""

from enum import Enum


class WorkOrderEvent(str, Enum):
    """Lifecycle events that produce notifications."""

    NEW_WORK_ORDER = "new_work_order"
    WORK_STARTED = "work_started"
    WORK_COMPLETED = "work_completed"
    SUPERVISOR_APPROVED = "supervisor_approved"
    ENGINEER_APPROVED = "engineer_approved"
    CUSTOMER_REVIEWED = "customer_reviewed"
    FINAL_APPROVED = "final_approved"
    REJECTED = "rejected"
    REASSIGNED = "reassigned"
    RETURNED_TO_PENDING = "returned_to_pending"
    CANCELLED = "cancelled"
    AUTO_CLOSED = "auto_closed"
    MANAGER_NOTES_ADDED = "manager_notes_added"
    UPDATE_ADDED = "update_added"
