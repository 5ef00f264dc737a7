"""Static role capability table for the work order module.

The table says which lifecycle actions a role may *see*. It is a visibility
hint only; every action is re-checked against the workflow rules in
core/work_order_workflow.py.

Lookup picks the single highest-priority role the user holds (see
ROLE_PRIORITY). Configs are never merged across roles.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from facility_api.db.enums import ROLE_PRIORITY, RoleCode

logger = logging.getLogger(__name__)


# Hospital-defined and legacy codes that map onto a standard role.
ROLE_ALIASES: dict[str, RoleCode] = {
    "eng": RoleCode.ENGINEER,
    "platform_owner": RoleCode.GLOBAL_ADMIN,
    "tenant_admin": RoleCode.HOSPITAL_ADMIN,
    "admin": RoleCode.HOSPITAL_ADMIN,
    "maint_manager": RoleCode.MAINTENANCE_MANAGER,
    "senior_technician": RoleCode.TECHNICIAN,
    "tech": RoleCode.TECHNICIAN,
}


@dataclass(frozen=True)
class WorkOrderModuleConfig:
    view: bool = False
    view_all: bool = False
    create: bool = False
    start_work: bool = False
    complete_work: bool = False
    approve: bool = False
    review_as_engineer: bool = False
    final_approve: bool = False
    reject: bool = False
    reassign: bool = False
    update: bool = False
    cancel: bool = False
    reopen: bool = False


@dataclass(frozen=True)
class RoleModules:
    """Per-module capability tables. Work orders is the only module today."""
    work_orders: WorkOrderModuleConfig = field(default_factory=WorkOrderModuleConfig)


@dataclass(frozen=True)
class RoleConfig:
    role: RoleCode | None = None
    modules: RoleModules = field(default_factory=RoleModules)


_ALL_ENABLED = WorkOrderModuleConfig(
    view=True,
    view_all=True,
    create=True,
    start_work=True,
    complete_work=True,
    approve=True,
    review_as_engineer=True,
    final_approve=True,
    reject=True,
    reassign=True,
    update=True,
    cancel=True,
    reopen=True,
)

WORK_ORDER_MODULE_CONFIG: dict[RoleCode, WorkOrderModuleConfig] = {
    RoleCode.GLOBAL_ADMIN: _ALL_ENABLED,
    RoleCode.HOSPITAL_ADMIN: _ALL_ENABLED,
    RoleCode.FACILITY_MANAGER: WorkOrderModuleConfig(
        view=True,
        view_all=True,
        create=True,
        approve=True,
        final_approve=True,
        reject=True,
        reassign=True,
        update=True,
    ),
    RoleCode.MAINTENANCE_MANAGER: WorkOrderModuleConfig(
        view=True,
        view_all=True,
        create=True,
        approve=True,
        review_as_engineer=True,
        final_approve=True,
        reject=True,
        reassign=True,
        update=True,
        cancel=True,
        reopen=True,
    ),
    RoleCode.ENGINEER: WorkOrderModuleConfig(
        view=True,
        view_all=True,
        create=True,
        review_as_engineer=True,
        reject=True,
        reassign=True,
        update=True,
    ),
    RoleCode.SUPERVISOR: WorkOrderModuleConfig(
        view=True,
        view_all=True,
        create=True,
        start_work=True,
        complete_work=True,
        approve=True,
        reject=True,
        reassign=True,
        update=True,
        cancel=True,
    ),
    RoleCode.TECHNICIAN: WorkOrderModuleConfig(
        view=True,
        create=True,
        start_work=True,
        complete_work=True,
        reject=True,
        update=True,
    ),
    RoleCode.REPORTER: WorkOrderModuleConfig(
        view=True,
        create=True,
    ),
}


def normalize_role_code(code: str) -> RoleCode | None:
    """Map a raw role code onto a standard role, or None if unknown."""
    value = code.strip().lower()
    if RoleCode.has_value(value):
        return RoleCode(value)
    return ROLE_ALIASES.get(value)


def normalize_role_codes(codes: Iterable[str]) -> frozenset[RoleCode]:
    """Resolve raw standard and custom codes into a canonical role set."""
    roles: set[RoleCode] = set()
    for code in codes:
        role = normalize_role_code(code)
        if role is None:
            logger.debug("unknown_role_code_ignored", extra={"role_code": code})
            continue
        roles.add(role)
    return frozenset(roles)


def primary_role(roles: Iterable[RoleCode]) -> RoleCode | None:
    """Highest-priority role in the set."""
    held = set(roles)
    for role in ROLE_PRIORITY:
        if role in held:
            return role
    return None


def get_role_config(role_codes: Iterable[str]) -> RoleConfig:
    """
    Return the work order capability table for a set of role codes.

    Deterministic, no I/O. Unknown codes are ignored; an empty or fully
    unknown set yields the all-disabled config.
    """
    role = primary_role(normalize_role_codes(role_codes))
    if role is None:
        return RoleConfig()
    return RoleConfig(role=role, modules=RoleModules(work_orders=WORK_ORDER_MODULE_CONFIG[role]))
