"""Work order action errors.

Routers translate these to HTTP status codes; see routers/work_orders.py.
"""


class WorkOrderActionError(Exception):
    """Base exception for work order action errors."""

    pass


class WorkOrderNotFoundError(WorkOrderActionError):
    """Work order not found in the caller's hospital."""

    pass


class AuthorizationError(WorkOrderActionError):
    """Caller is not allowed to perform the action on this work order."""

    pass


class PreconditionError(WorkOrderActionError):
    """Work order is no longer in the expected state. Refresh and retry."""

    pass


class ValidationError(WorkOrderActionError):
    """Request input is missing or invalid."""

    pass


class DependencyError(WorkOrderActionError):
    """Identity, permission, or persistence lookup failed."""

    pass


class NotificationError(WorkOrderActionError):
    """Notification dispatch failed. Never fails the transition."""

    pass
