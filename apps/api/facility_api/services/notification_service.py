"""
Notification Service - work order event notifications.

Resolves recipients per lifecycle event and writes in-app notification rows.
Email/push delivery is handed off to an external dispatcher and only logged
here. Callers treat every failure as non-fatal.
"""

import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from facility_api.core.errors import NotificationError
from facility_api.db.enums import RejectStage, WorkOrderEvent
from facility_api.db.models import Notification, WorkOrder
from facility_api.services import membership_service, permission_service

logger = logging.getLogger(__name__)

E = WorkOrderEvent

EVENT_TITLES: dict[WorkOrderEvent, str] = {
    E.NEW_WORK_ORDER: "New work order",
    E.WORK_STARTED: "Work started",
    E.WORK_COMPLETED: "Work completed, awaiting supervisor approval",
    E.SUPERVISOR_APPROVED: "Supervisor approved, awaiting engineer review",
    E.ENGINEER_APPROVED: "Work reviewed, please confirm closure",
    E.CUSTOMER_REVIEWED: "Reporter closed the work order",
    E.FINAL_APPROVED: "Work order final approved",
    E.REJECTED: "Work order rejected",
    E.REASSIGNED: "Work order reassigned to your team",
    E.RETURNED_TO_PENDING: "Work order returned for distribution",
    E.CANCELLED: "Work order cancelled",
    E.AUTO_CLOSED: "Work order auto-closed",
    E.MANAGER_NOTES_ADDED: "Manager notes added",
    E.UPDATE_ADDED: "Progress update",
}

# Recipient groups per event: "team", "reporter", or a permission key.
EVENT_RECIPIENTS: dict[WorkOrderEvent, tuple[str, ...]] = {
    E.NEW_WORK_ORDER: ("team",),
    E.WORK_STARTED: ("reporter", "work_orders.approve"),
    E.WORK_COMPLETED: ("work_orders.approve",),
    E.SUPERVISOR_APPROVED: ("work_orders.review_as_engineer",),
    E.ENGINEER_APPROVED: ("reporter",),
    E.CUSTOMER_REVIEWED: ("team", "work_orders.final_approve"),
    E.FINAL_APPROVED: ("reporter", "team"),
    E.REASSIGNED: ("team",),
    E.RETURNED_TO_PENDING: ("work_orders.manage",),
    E.CANCELLED: ("reporter",),
    E.AUTO_CLOSED: ("reporter", "work_orders.final_approve"),
    E.MANAGER_NOTES_ADDED: ("team",),
    E.UPDATE_ADDED: ("reporter",),
}

# Rejections go to whoever acts on the stage the work order returns to.
REJECTION_RECIPIENTS: dict[RejectStage, tuple[str, ...]] = {
    RejectStage.TECHNICIAN: ("work_orders.approve",),
    RejectStage.SUPERVISOR: ("team",),
    RejectStage.ENGINEER: ("work_orders.approve",),
    RejectStage.REPORTER: ("work_orders.review_as_engineer",),
}


def resolve_recipients(
    db: Session,
    work_order: WorkOrder,
    event: WorkOrderEvent,
    actor_user_id: UUID | None = None,
) -> list[UUID]:
    """User ids to notify for an event, actor excluded, in stable order."""
    if event == E.REJECTED:
        stage = RejectStage(work_order.rejection_stage) if work_order.rejection_stage else None
        groups = REJECTION_RECIPIENTS.get(stage, ()) if stage else ()
    else:
        groups = EVENT_RECIPIENTS.get(event, ())

    recipients: list[UUID] = []
    for group in groups:
        if group == "team":
            ids = membership_service.get_team_member_ids(db, work_order.assigned_team_id)
        elif group == "reporter":
            ids = [work_order.reported_by] if work_order.reported_by else []
        else:
            ids = permission_service.get_users_with_permission(db, work_order.hospital_id, group)
        for user_id in ids:
            if user_id != actor_user_id and user_id not in recipients:
                recipients.append(user_id)
    return recipients


def create_notification(
    db: Session,
    hospital_id: UUID,
    user_id: UUID,
    event: WorkOrderEvent,
    title: str,
    body: str | None = None,
    work_order_id: UUID | None = None,
) -> Notification:
    """Add an in-app notification row (caller commits)."""
    notification = Notification(
        hospital_id=hospital_id,
        user_id=user_id,
        work_order_id=work_order_id,
        event_type=event.value,
        title=title,
        body=body,
    )
    db.add(notification)
    return notification


def dispatch_work_order_event(
    db: Session,
    work_order: WorkOrder,
    event: WorkOrderEvent,
    actor_user_id: UUID | None = None,
) -> list[Notification]:
    """
    Notify the recipients of a work order event.

    Raises:
        NotificationError: recipient lookup or write failed
    """
    try:
        recipients = resolve_recipients(db, work_order, event, actor_user_id)
        title = f"{work_order.code}: {EVENT_TITLES[event]}"
        body = work_order.rejection_reason if event == E.REJECTED else None
        created = [
            create_notification(
                db,
                hospital_id=work_order.hospital_id,
                user_id=user_id,
                event=event,
                title=title,
                body=body,
                work_order_id=work_order.id,
            )
            for user_id in recipients
        ]
        db.commit()
    except Exception as e:
        db.rollback()
        raise NotificationError(f"Failed to dispatch {event.value} for {work_order.code}") from e

    logger.info(
        "work_order_notification_dispatched",
        extra={
            "work_order_id": str(work_order.id),
            "hospital_id": str(work_order.hospital_id),
            "event": event.value,
            "recipients": len(created),
        },
    )
    return created


def get_notifications(
    db: Session,
    user_id: UUID,
    hospital_id: UUID,
    unread_only: bool = False,
    limit: int = 50,
) -> list[Notification]:
    query = select(Notification).where(
        Notification.user_id == user_id,
        Notification.hospital_id == hospital_id,
    )
    if unread_only:
        query = query.where(Notification.read_at.is_(None))
    query = query.order_by(Notification.created_at.desc()).limit(limit)
    return list(db.execute(query).scalars().all())
