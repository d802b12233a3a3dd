"""
Outbox consumer turning assignment events into in-app notifications.

Edge transitions only ever write ``AssignmentEvent`` rows. This module drains
them, so a failed delivery never rolls back the transition that produced it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from sqlalchemy import update
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from taskflow.db.session import AsyncSessionLocal
from taskflow.models.assignment_event import AssignmentEvent, AssignmentEventType
from taskflow.models.notification import Notification, NotificationType
from taskflow.services import organizations as organizations_service
from taskflow.services import user_notifications
from taskflow.services.realtime import broadcast_event

logger = logging.getLogger(__name__)

DISPATCH_BATCH_SIZE = 100

Notifier = Callable[..., Awaitable[Any]]


@dataclass(frozen=True)
class PendingEvent:
    id: int
    organization_id: int
    task_id: int
    type: str
    payload: dict[str, Any]


async def notify(
    session: AsyncSession,
    *,
    user_id: int,
    notification_type: NotificationType,
    payload: dict[str, Any],
    organization_id: Optional[int] = None,
) -> Notification:
    return await user_notifications.create_notification(
        session,
        user_id=user_id,
        notification_type=notification_type,
        data=payload,
        organization_id=organization_id,
    )


def event_recipients(event: PendingEvent) -> list[tuple[int, NotificationType]]:
    """Who hears about an event. Nobody is notified about their own action."""
    payload = event.payload
    actor_id = payload.get("assigned_by_id")
    user_id = payload.get("user_id")
    recipients: list[tuple[int, NotificationType]] = []

    if event.type == AssignmentEventType.created.value:
        if user_id is not None and user_id != actor_id:
            recipients.append((user_id, NotificationType.task_request))
    elif event.type == AssignmentEventType.accepted.value:
        if actor_id is not None and actor_id != user_id:
            recipients.append((actor_id, NotificationType.task_accepted))
    elif event.type == AssignmentEventType.declined.value:
        if actor_id is not None and actor_id != user_id:
            recipients.append((actor_id, NotificationType.task_declined))
    elif event.type == AssignmentEventType.reassigned.value:
        # The outgoing edge's assigner hears about the hand-off like a decline
        targets = (payload.get("to_user_id"), payload.get("from_user_id"), payload.get("previous_assigned_by_id"))
        notified: set[int] = set()
        for target in targets:
            if target is None or target == actor_id or target in notified:
                continue
            notified.add(target)
            recipients.append((target, NotificationType.task_reassigned))
    elif event.type == AssignmentEventType.reminder.value:
        if user_id is not None:
            recipients.append((user_id, NotificationType.task_request_reminder))
    return recipients


async def _notification_payload(session: AsyncSession, event: PendingEvent) -> dict[str, Any]:
    payload = dict(event.payload)
    payload["event"] = event.type
    names = await organizations_service.display_names(
        session,
        [payload.get("assigned_by_id"), payload.get("user_id")],
    )
    if payload.get("assigned_by_id") in names:
        payload["actor_name"] = names[payload["assigned_by_id"]]
    if payload.get("user_id") in names:
        payload["user_name"] = names[payload["user_id"]]
    return payload


async def _pending_events(session: AsyncSession, limit: int) -> list[PendingEvent]:
    stmt = (
        select(AssignmentEvent)
        .where(AssignmentEvent.processed_at.is_(None))
        .order_by(AssignmentEvent.created_at.asc(), AssignmentEvent.id.asc())
        .limit(limit)
    )
    result = await session.exec(stmt)
    return [
        PendingEvent(
            id=event.id,
            organization_id=event.organization_id,
            task_id=event.task_id,
            type=event.type,
            payload=dict(event.payload or {}),
        )
        for event in result.all()
    ]


async def dispatch_pending_events(
    session: AsyncSession,
    *,
    notifier: Notifier = notify,
    now: Optional[datetime] = None,
    limit: int = DISPATCH_BATCH_SIZE,
) -> int:
    """
    Drain unprocessed outbox rows oldest first.

    Each event is delivered in its own transaction and marked processed
    whether or not delivery succeeded.

    Returns:
        Number of events consumed
    """
    now = now or datetime.now(timezone.utc)
    events = await _pending_events(session, limit)
    for event in events:
        delivered: list[int] = []
        try:
            data = await _notification_payload(session, event)
            for user_id, notification_type in event_recipients(event):
                await notifier(
                    session,
                    user_id=user_id,
                    notification_type=notification_type,
                    payload=data,
                    organization_id=event.organization_id,
                )
                delivered.append(user_id)
            await session.commit()
        except Exception:
            logger.exception("Failed to deliver notifications for assignment event %s", event.id)
            await session.rollback()
            delivered = []
        await session.exec(
            update(AssignmentEvent)
            .where(AssignmentEvent.id == event.id)
            .values(processed_at=now)
            .execution_options(synchronize_session=False)
        )
        await session.commit()
        for user_id in delivered:
            await broadcast_event(
                "notification",
                "created",
                {"user_id": user_id, "task_id": event.task_id, "event": event.type},
                organization_id=event.organization_id,
            )
    return len(events)


async def process_assignment_events() -> None:
    async with AsyncSessionLocal() as session:
        count = await dispatch_pending_events(session)
    if count:
        logger.info("assignment-events: dispatched %d event(s)", count)
    else:
        logger.debug("assignment-events: outbox empty")
