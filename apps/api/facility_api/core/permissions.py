"""Permission registry with metadata for UI and validation.

All permissions are defined here with labels, descriptions, and categories.

Precedence (see services/permission_service.PermissionResolver):
hospital deny > global deny > hospital grant > global grant > role defaults
Global admin role: always has all permissions.
"""

from dataclasses import dataclass
from enum import Enum

from facility_api.db.enums import RoleCode


@dataclass(frozen=True)
class PermissionDef:
    """Permission definition with metadata."""
    key: str
    label: str
    description: str
    category: str
    admin_only: bool = False  # Grantable only by hospital and global admins


class PermissionCategory(str, Enum):
    """Permission categories for UI grouping."""
    WORK_ORDERS = "Work Orders"
    TEAMS = "Teams"
    SETTINGS = "Settings"


# =============================================================================
# Permission Registry
# =============================================================================

PERMISSION_REGISTRY: dict[str, PermissionDef] = {
    "work_orders.view": PermissionDef(
        "work_orders.view", "View Work Orders",
        "See work orders reported by or assigned to the user", PermissionCategory.WORK_ORDERS
    ),
    "work_orders.view_all": PermissionDef(
        "work_orders.view_all", "View All Work Orders",
        "See every work order in the hospital", PermissionCategory.WORK_ORDERS
    ),
    "work_orders.create": PermissionDef(
        "work_orders.create", "Create Work Orders",
        "Report new maintenance issues", PermissionCategory.WORK_ORDERS
    ),
    "work_orders.start_work": PermissionDef(
        "work_orders.start_work", "Start Work",
        "Begin work on an assigned work order", PermissionCategory.WORK_ORDERS
    ),
    "work_orders.complete_work": PermissionDef(
        "work_orders.complete_work", "Complete Work",
        "Submit finished work for supervisor approval", PermissionCategory.WORK_ORDERS
    ),
    "work_orders.approve": PermissionDef(
        "work_orders.approve", "Supervisor Approval",
        "Approve completed work as supervisor", PermissionCategory.WORK_ORDERS
    ),
    "work_orders.review_as_engineer": PermissionDef(
        "work_orders.review_as_engineer", "Engineer Review",
        "Review supervisor-approved work", PermissionCategory.WORK_ORDERS
    ),
    "work_orders.final_approve": PermissionDef(
        "work_orders.final_approve", "Final Approval",
        "Maintenance manager sign-off and manager notes", PermissionCategory.WORK_ORDERS
    ),
    "work_orders.reject": PermissionDef(
        "work_orders.reject", "Reject Work Orders",
        "Send a work order back one stage", PermissionCategory.WORK_ORDERS
    ),
    "work_orders.reassign": PermissionDef(
        "work_orders.reassign", "Reassign Work Orders",
        "Move a work order to another team", PermissionCategory.WORK_ORDERS
    ),
    "work_orders.update": PermissionDef(
        "work_orders.update", "Add Updates",
        "Post progress notes, delays, and issues", PermissionCategory.WORK_ORDERS
    ),
    "work_orders.cancel": PermissionDef(
        "work_orders.cancel", "Cancel Work Orders",
        "Cancel a work order rejected by the technician", PermissionCategory.WORK_ORDERS
    ),
    "work_orders.manage": PermissionDef(
        "work_orders.manage", "Manage Work Orders",
        "Dispatch, reassign, and oversee all work orders", PermissionCategory.WORK_ORDERS
    ),
    "teams.manage": PermissionDef(
        "teams.manage", "Manage Teams",
        "Create teams and edit membership", PermissionCategory.TEAMS
    ),
    "permissions.manage": PermissionDef(
        "permissions.manage", "Manage Permissions",
        "Grant and deny permissions for other users", PermissionCategory.SETTINGS,
        admin_only=True
    ),
}


# =============================================================================
# Default Role Permissions
# =============================================================================

# Which permissions each role has by default (before overrides)
ROLE_DEFAULTS: dict[str, set[str]] = {
    RoleCode.REPORTER.value: {
        "work_orders.view",
        "work_orders.create",
    },
    RoleCode.TECHNICIAN.value: {
        "work_orders.view",
        "work_orders.create",
        "work_orders.start_work",
        "work_orders.complete_work",
        "work_orders.reject",
        "work_orders.update",
    },
    RoleCode.SUPERVISOR.value: {
        "work_orders.view",
        "work_orders.view_all",
        "work_orders.create",
        "work_orders.start_work",
        "work_orders.complete_work",
        "work_orders.approve",
        "work_orders.reject",
        "work_orders.reassign",
        "work_orders.update",
        "work_orders.cancel",
    },
    RoleCode.ENGINEER.value: {
        "work_orders.view",
        "work_orders.view_all",
        "work_orders.create",
        "work_orders.review_as_engineer",
        "work_orders.reject",
        "work_orders.reassign",
        "work_orders.update",
    },
    RoleCode.MAINTENANCE_MANAGER.value: {
        "work_orders.view",
        "work_orders.view_all",
        "work_orders.create",
        "work_orders.approve",
        "work_orders.review_as_engineer",
        "work_orders.final_approve",
        "work_orders.reject",
        "work_orders.reassign",
        "work_orders.update",
        "work_orders.cancel",
        "work_orders.manage",
        "teams.manage",
    },
    RoleCode.FACILITY_MANAGER.value: {
        "work_orders.view",
        "work_orders.view_all",
        "work_orders.create",
        "work_orders.approve",
        "work_orders.final_approve",
        "work_orders.reject",
        "work_orders.reassign",
        "work_orders.update",
        "work_orders.manage",
    },
    RoleCode.HOSPITAL_ADMIN.value: set(PERMISSION_REGISTRY.keys()),
    RoleCode.GLOBAL_ADMIN.value: set(PERMISSION_REGISTRY.keys()),  # All permissions
}


# =============================================================================
# Helper Functions
# =============================================================================

def get_all_permissions() -> list[PermissionDef]:
    """Get all permissions sorted by category."""
    return sorted(PERMISSION_REGISTRY.values(), key=lambda p: (p.category, p.key))


def is_valid_permission(key: str) -> bool:
    """Check if permission key exists."""
    return key in PERMISSION_REGISTRY


def is_admin_only(key: str) -> bool:
    """Check if permission can only be granted by admins."""
    perm = PERMISSION_REGISTRY.get(key)
    return perm.admin_only if perm else False


def get_role_default_permissions(role: str) -> set[str]:
    """Get default permissions for a role."""
    return ROLE_DEFAULTS.get(role, set())
