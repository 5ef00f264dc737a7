"""SQLAlchemy ORM models."""

from facility_api.db.models.auth import (
    CustomUserRole,
    Hospital,
    RolePermission,
    User,
    UserPermissionOverride,
    UserRole,
)
from facility_api.db.models.facilities import Building, Department, Floor, Room
from facility_api.db.models.notifications import Notification
from facility_api.db.models.teams import BuildingSupervisor, IssueTypeRoute, Team, TeamMember
from facility_api.db.models.work_orders import WorkOrder, WorkOrderUpdate

__all__ = [
    "Building",
    "BuildingSupervisor",
    "CustomUserRole",
    "Department",
    "Floor",
    "Hospital",
    "IssueTypeRoute",
    "Notification",
    "Room",
    "RolePermission",
    "Team",
    "TeamMember",
    "User",
    "UserPermissionOverride",
    "UserRole",
    "WorkOrder",
    "WorkOrderUpdate",
]
