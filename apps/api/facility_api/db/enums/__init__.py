"""Enum definitions for application constants."""

from facility_api.db.enums.auth import ROLE_PRIORITY, RoleCode
from facility_api.db.enums.notifications import WorkOrderEvent
from facility_api.db.enums.permissions import OverrideEffect
from facility_api.db.enums.work_orders import (
    RejectStage,
    WorkOrderAction,
    WorkOrderPriority,
    WorkOrderStatus,
    WorkOrderUpdateType,
)

__all__ = [
    "ROLE_PRIORITY",
    "OverrideEffect",
    "RejectStage",
    "RoleCode",
    "WorkOrderAction",
    "WorkOrderEvent",
    "WorkOrderPriority",
    "WorkOrderStatus",
    "WorkOrderUpdateType",
]
