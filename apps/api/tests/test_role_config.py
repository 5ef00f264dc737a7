"""
Role config table tests.

Tests cover:
- Single highest-priority role wins (no merging)
- Alias normalization for custom and legacy codes
- Unknown and empty sets yield the all-disabled config
"""

from facility_api.core.role_config import (
    RoleConfig,
    RoleModules,
    WorkOrderModuleConfig,
    get_role_config,
    normalize_role_code,
    normalize_role_codes,
    primary_role,
)
from facility_api.db.enums import RoleCode


def test_technician_config():
    config = get_role_config(["technician"])
    assert config.role == RoleCode.TECHNICIAN
    assert isinstance(config.modules, RoleModules)
    assert config.modules.work_orders.start_work is True
    assert config.modules.work_orders.complete_work is True
    assert config.modules.work_orders.approve is False
    assert config.modules.work_orders.final_approve is False


def test_highest_priority_role_wins_without_merging():
    # Engineer outranks technician, so start_work from technician is not merged in
    config = get_role_config(["technician", "engineer"])
    assert config.role == RoleCode.ENGINEER
    assert config.modules.work_orders.review_as_engineer is True
    assert config.modules.work_orders.start_work is False


def test_admin_roles_enable_everything():
    for code in ("global_admin", "hospital_admin"):
        config = get_role_config([code])
        assert all(vars(config.modules.work_orders).values())


def test_aliases_resolve_to_standard_roles():
    assert normalize_role_code("eng") == RoleCode.ENGINEER
    assert normalize_role_code("tech") == RoleCode.TECHNICIAN
    assert normalize_role_code("senior_technician") == RoleCode.TECHNICIAN
    assert normalize_role_code("maint_manager") == RoleCode.MAINTENANCE_MANAGER
    assert normalize_role_code("tenant_admin") == RoleCode.HOSPITAL_ADMIN
    assert normalize_role_code("platform_owner") == RoleCode.GLOBAL_ADMIN
    assert normalize_role_code("  Supervisor ") == RoleCode.SUPERVISOR


def test_alias_config_matches_standard_role():
    assert get_role_config(["eng"]) == get_role_config(["engineer"])


def test_unknown_codes_are_ignored():
    assert normalize_role_codes(["janitor", "reporter"]) == frozenset({RoleCode.REPORTER})
    config = get_role_config(["janitor"])
    assert config == RoleConfig()
    assert config.modules == RoleModules()
    assert config.modules.work_orders == WorkOrderModuleConfig()


def test_empty_role_set_disables_everything():
    config = get_role_config([])
    assert config.role is None
    assert not any(vars(config.modules.work_orders).values())


def test_primary_role_ordering():
    assert primary_role({RoleCode.REPORTER, RoleCode.SUPERVISOR}) == RoleCode.SUPERVISOR
    assert primary_role({RoleCode.FACILITY_MANAGER, RoleCode.MAINTENANCE_MANAGER}) == (
        RoleCode.FACILITY_MANAGER
    )
    assert primary_role(set()) is None


def test_lookup_is_deterministic():
    codes = ["reporter", "supervisor", "tech"]
    assert get_role_config(codes) == get_role_config(list(reversed(codes)))
