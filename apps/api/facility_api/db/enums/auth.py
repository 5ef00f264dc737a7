"""Auth-related enums."""

from enum import Enum


class RoleCode(str, Enum):
    """
    Standard hospital role codes.

    - GLOBAL_ADMIN: Platform owner (every hospital, every permission)
    - HOSPITAL_ADMIN: Tenant admin for one hospital
    - FACILITY_MANAGER: Oversees work orders, final approval
    - MAINTENANCE_MANAGER: Runs maintenance teams, final approval
    - ENGINEER: Technical review of completed work
    - SUPERVISOR: Team/building supervisor, first approval stage
    - TECHNICIAN: Executes work orders
    - REPORTER: Staff member who reports issues
    """

    GLOBAL_ADMIN = "global_admin"
    HOSPITAL_ADMIN = "hospital_admin"
    FACILITY_MANAGER = "facility_manager"
    MAINTENANCE_MANAGER = "maintenance_manager"
    ENGINEER = "engineer"
    SUPERVISOR = "supervisor"
    TECHNICIAN = "technician"
    REPORTER = "reporter"

    @classmethod
    def has_value(cls, value: str) -> bool:
        """Check if value is a valid role."""
        return value in cls._value2member_map_


# Highest privilege first. Used when a single role has to speak for a user.
ROLE_PRIORITY: tuple[RoleCode, ...] = (
    RoleCode.GLOBAL_ADMIN,
    RoleCode.HOSPITAL_ADMIN,
    RoleCode.FACILITY_MANAGER,
    RoleCode.MAINTENANCE_MANAGER,
    RoleCode.ENGINEER,
    RoleCode.SUPERVISOR,
    RoleCode.TECHNICIAN,
    RoleCode.REPORTER,
)
