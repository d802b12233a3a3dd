"""Unit tests for the assignment event consumer."""

import logging

import pytest
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from taskflow.models.assignment_event import AssignmentEvent, AssignmentEventType
from taskflow.models.notification import Notification, NotificationType
from taskflow.models.organization import MemberRole
from taskflow.models.task import AssignmentStatus, TaskAssignment
from taskflow.services import assignments as assignments_service
from taskflow.services import notifications as notifications_service
from taskflow.services import user_notifications
from tests.factories import create_member, create_organization, create_task


async def _setup(session: AsyncSession):
    organization = await create_organization(session)
    alice = await create_member(session, organization, role=MemberRole.manager, full_name="Alice")
    bob = await create_member(session, organization, full_name="Bob")
    task = await create_task(session, organization, creator=alice, title="Quarterly report", is_draft=True)
    task = await assignments_service.publish_task(
        session,
        task=task,
        actor_id=alice.id,
        assignee_ids=[bob.id],
    )
    return organization, alice, bob, task


async def _notifications(session: AsyncSession, user_id: int) -> list[Notification]:
    result = await session.exec(
        select(Notification).where(Notification.user_id == user_id).order_by(Notification.id.asc())
    )
    return list(result.all())


async def _unprocessed(session: AsyncSession) -> int:
    result = await session.exec(
        select(AssignmentEvent.id)
        .where(AssignmentEvent.processed_at.is_(None))
        .execution_options(populate_existing=True)
    )
    return len(result.all())


@pytest.mark.unit
@pytest.mark.service
async def test_publish_event_becomes_task_request(session: AsyncSession):
    _, alice, bob, task = await _setup(session)

    dispatched = await notifications_service.dispatch_pending_events(session)

    assert dispatched == 1
    assert await _unprocessed(session) == 0
    [notification] = await _notifications(session, bob.id)
    assert notification.type == NotificationType.task_request
    assert notification.data["task_id"] == task.id
    assert notification.data["task_title"] == "Quarterly report"
    assert notification.data["actor_name"] == "Alice"
    assert await _notifications(session, alice.id) == []


@pytest.mark.unit
@pytest.mark.service
async def test_decline_notifies_assigner(session: AsyncSession):
    _, alice, bob, task = await _setup(session)
    await notifications_service.dispatch_pending_events(session)

    await assignments_service.decline_assignment(session, task_id=task.id, user_id=bob.id, reason="overloaded")
    await notifications_service.dispatch_pending_events(session)

    [notification] = await _notifications(session, alice.id)
    assert notification.type == NotificationType.task_declined
    assert notification.data["reason"] == "overloaded"
    assert notification.data["user_name"] == "Bob"


@pytest.mark.unit
@pytest.mark.service
async def test_double_accept_notifies_once(session: AsyncSession):
    _, alice, bob, task = await _setup(session)

    await assignments_service.accept_assignment(session, task_id=task.id, user_id=bob.id)
    await assignments_service.accept_assignment(session, task_id=task.id, user_id=bob.id)
    await notifications_service.dispatch_pending_events(session)

    accepted = [n for n in await _notifications(session, alice.id) if n.type == NotificationType.task_accepted]
    assert len(accepted) == 1


@pytest.mark.unit
@pytest.mark.service
async def test_failed_delivery_keeps_transition_and_marks_event(session: AsyncSession, caplog):
    _, _, bob, task = await _setup(session)
    # Rolling back a failed delivery expires loaded instances
    bob_id, task_id = bob.id, task.id

    async def broken_notifier(*args, **kwargs):
        raise RuntimeError("push gateway down")

    with caplog.at_level(logging.ERROR, logger="taskflow.services.notifications"):
        dispatched = await notifications_service.dispatch_pending_events(session, notifier=broken_notifier)

    assert dispatched == 1
    assert await _unprocessed(session) == 0
    assert await _notifications(session, bob_id) == []
    assert "Failed to deliver notifications" in caplog.text
    result = await session.exec(select(TaskAssignment).where(TaskAssignment.task_id == task_id))
    assert result.one().status == AssignmentStatus.pending


@pytest.mark.unit
@pytest.mark.service
async def test_handing_off_a_request_notifies_the_assigner(session: AsyncSession):
    organization, alice, bob, task = await _setup(session)
    carol = await create_member(session, organization, full_name="Carol")
    alice_id, bob_id, carol_id = alice.id, bob.id, carol.id
    await notifications_service.dispatch_pending_events(session)

    await assignments_service.reassign_task(
        session,
        task_id=task.id,
        actor_id=bob_id,
        from_user_id=bob_id,
        to_user_id=carol_id,
        reason="out next week",
    )
    await notifications_service.dispatch_pending_events(session)

    [to_alice] = await _notifications(session, alice_id)
    assert to_alice.type == NotificationType.task_reassigned
    assert to_alice.data["reason"] == "out next week"
    [to_carol] = await _notifications(session, carol_id)
    assert to_carol.type == NotificationType.task_reassigned
    assert [n.type for n in await _notifications(session, bob_id)] == [NotificationType.task_request]


@pytest.mark.unit
def test_reassignment_recipients_include_previous_assigner_once():
    event = notifications_service.PendingEvent(
        id=1,
        organization_id=1,
        task_id=1,
        type=AssignmentEventType.reassigned.value,
        payload={"from_user_id": 2, "to_user_id": 3, "assigned_by_id": 4, "previous_assigned_by_id": 3},
    )

    assert notifications_service.event_recipients(event) == [
        (3, NotificationType.task_reassigned),
        (2, NotificationType.task_reassigned),
    ]


@pytest.mark.unit
def test_reassignment_recipients_skip_the_actor():
    event = notifications_service.PendingEvent(
        id=1,
        organization_id=1,
        task_id=1,
        type=AssignmentEventType.reassigned.value,
        payload={"from_user_id": 2, "to_user_id": 3, "assigned_by_id": 3},
    )

    assert notifications_service.event_recipients(event) == [(2, NotificationType.task_reassigned)]


@pytest.mark.unit
def test_self_accept_produces_no_recipients():
    event = notifications_service.PendingEvent(
        id=1,
        organization_id=1,
        task_id=1,
        type=AssignmentEventType.accepted.value,
        payload={"user_id": 4, "assigned_by_id": 4},
    )

    assert notifications_service.event_recipients(event) == []


@pytest.mark.unit
@pytest.mark.service
async def test_mark_read_and_unread_count(session: AsyncSession):
    organization, _, bob, _ = await _setup(session)
    await notifications_service.dispatch_pending_events(session)

    notifications, unread = await user_notifications.list_notifications(
        session,
        user_id=bob.id,
        organization_id=organization.id,
    )
    assert unread == 1

    await user_notifications.mark_notification_read(session, user_id=bob.id, notification_id=notifications[0].id)

    assert await user_notifications.unread_count(session, user_id=bob.id) == 0
