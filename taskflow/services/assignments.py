"""
Assignment edge lifecycle.

Each (task, user) edge moves ``pending -> accepted`` or is removed after a
decline. Transitions out of ``pending`` are conditional updates, so when two
callers race the first commit wins and the loser re-reads the edge to decide
between a no-op, ``ConflictError`` and ``NotFoundError``.

Every transition writes an ``AssignmentEvent`` outbox row in the same
transaction; notifications are produced later by
``taskflow.services.notifications.dispatch_pending_events``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Optional

from sqlalchemy import delete, or_, update
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from taskflow.core.config import settings
from taskflow.core.exceptions import ConflictError, NotFoundError, ValidationError
from taskflow.db.session import AsyncSessionLocal
from taskflow.models.assignment_event import AssignmentEvent, AssignmentEventType
from taskflow.models.task import AssignmentStatus, Task, TaskAssignment
from taskflow.services import organizations as organizations_service
from taskflow.services.tasks import get_task

logger = logging.getLogger(__name__)


def _dedupe(user_ids: Iterable[int]) -> list[int]:
    seen: list[int] = []
    for user_id in user_ids:
        if user_id not in seen:
            seen.append(user_id)
    return seen


def _require_reason(reason: Optional[str], message: str) -> str:
    cleaned = (reason or "").strip()
    if not cleaned:
        raise ValidationError(message)
    return cleaned


async def _enqueue_event(
    session: AsyncSession,
    *,
    task: Task,
    event_type: AssignmentEventType,
    payload: dict[str, Any],
    now: datetime,
) -> AssignmentEvent:
    event = AssignmentEvent(
        organization_id=task.organization_id,
        task_id=task.id,
        type=event_type.value,
        payload={"task_id": task.id, "task_title": task.title, **payload},
        created_at=now,
    )
    session.add(event)
    return event


async def get_assignment(session: AsyncSession, *, task_id: int, user_id: int) -> TaskAssignment | None:
    stmt = (
        select(TaskAssignment)
        .where(TaskAssignment.task_id == task_id, TaskAssignment.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    result = await session.exec(stmt)
    return result.one_or_none()


async def _leave_pending(
    session: AsyncSession,
    *,
    task_id: int,
    user_id: int,
    values: dict[str, Any],
) -> bool:
    """Conditionally move a pending edge; False when it was no longer pending."""
    stmt = (
        update(TaskAssignment)
        .where(
            TaskAssignment.task_id == task_id,
            TaskAssignment.user_id == user_id,
            TaskAssignment.status == AssignmentStatus.pending,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = await session.exec(stmt)
    return bool(result.rowcount)


async def _delete_edge(session: AsyncSession, *, task_id: int, user_id: int) -> None:
    await session.exec(
        delete(TaskAssignment).where(
            TaskAssignment.task_id == task_id,
            TaskAssignment.user_id == user_id,
        )
    )


async def publish_task(
    session: AsyncSession,
    *,
    task: Task,
    actor_id: int,
    assignee_ids: Iterable[int],
    now: Optional[datetime] = None,
) -> Task:
    """
    Publish a task and open one edge per assignee.

    The acting user's own edge is accepted immediately; all other edges start
    pending and emit an ``assignment_created`` event. Users that already hold
    an edge on the task are skipped.

    Args:
        session: Database session
        task: The task to publish (draft or already published)
        actor_id: The publishing user
        assignee_ids: Candidate assignees, duplicates ignored

    Returns:
        The published task

    Raises:
        NotFoundError: An assignee is not a member of the task's organization
    """
    now = now or datetime.now(timezone.utc)
    ids = _dedupe(assignee_ids)
    members = await organizations_service.member_ids(
        session,
        organization_id=task.organization_id,
        user_ids=ids,
    )
    missing = [user_id for user_id in ids if user_id not in members]
    if missing:
        raise NotFoundError(f"User {missing[0]} is not a member of this organization")

    result = await session.exec(select(TaskAssignment.user_id).where(TaskAssignment.task_id == task.id))
    existing = set(result.all())

    task.is_draft = False
    task.updated_at = now
    for user_id in ids:
        if user_id in existing:
            continue
        is_self = user_id == actor_id
        session.add(
            TaskAssignment(
                task_id=task.id,
                user_id=user_id,
                assigned_by_id=actor_id,
                status=AssignmentStatus.accepted if is_self else AssignmentStatus.pending,
                created_at=now,
                accepted_at=now if is_self else None,
            )
        )
        if not is_self:
            await _enqueue_event(
                session,
                task=task,
                event_type=AssignmentEventType.created,
                payload={"user_id": user_id, "assigned_by_id": actor_id},
                now=now,
            )
    if task.assigned_user_id is None and ids:
        task.assigned_user_id = ids[0]
    session.add(task)
    await session.commit()
    await session.refresh(task)
    return task


async def accept_assignment(
    session: AsyncSession,
    *,
    task_id: int,
    user_id: int,
    organization_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> TaskAssignment:
    """Accept a pending edge. Accepting an already accepted edge is a no-op."""
    now = now or datetime.now(timezone.utc)
    task = await get_task(session, task_id, organization_id=organization_id)
    accepted = await _leave_pending(
        session,
        task_id=task.id,
        user_id=user_id,
        values={"status": AssignmentStatus.accepted, "accepted_at": now},
    )
    if not accepted:
        assignment = await get_assignment(session, task_id=task.id, user_id=user_id)
        if assignment is None:
            raise NotFoundError("Assignment not found")
        if assignment.status == AssignmentStatus.accepted:
            return assignment
        raise ConflictError("Assignment is no longer pending")

    assignment = await get_assignment(session, task_id=task.id, user_id=user_id)
    await _enqueue_event(
        session,
        task=task,
        event_type=AssignmentEventType.accepted,
        payload={"user_id": user_id, "assigned_by_id": assignment.assigned_by_id},
        now=now,
    )
    await session.commit()
    return assignment


async def decline_assignment(
    session: AsyncSession,
    *,
    task_id: int,
    user_id: int,
    reason: Optional[str],
    organization_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> None:
    """Decline a pending edge; the assigner is notified and the edge is removed."""
    cleaned = _require_reason(reason, "A reason is required to decline an assignment")
    now = now or datetime.now(timezone.utc)
    task = await get_task(session, task_id, organization_id=organization_id)
    assignment = await get_assignment(session, task_id=task.id, user_id=user_id)
    if assignment is None:
        raise NotFoundError("Assignment not found")
    assigned_by_id = assignment.assigned_by_id

    declined = await _leave_pending(
        session,
        task_id=task.id,
        user_id=user_id,
        values={"status": AssignmentStatus.declined, "decline_reason": cleaned},
    )
    if not declined:
        raise ConflictError("Assignment is no longer pending")

    await _enqueue_event(
        session,
        task=task,
        event_type=AssignmentEventType.declined,
        payload={"user_id": user_id, "assigned_by_id": assigned_by_id, "reason": cleaned},
        now=now,
    )
    await _delete_edge(session, task_id=task.id, user_id=user_id)
    if task.assigned_user_id == user_id:
        task.assigned_user_id = None
    task.updated_at = now
    session.add(task)
    await session.commit()


async def reassign_task(
    session: AsyncSession,
    *,
    task_id: int,
    actor_id: int,
    to_user_id: int,
    reason: Optional[str],
    from_user_id: Optional[int] = None,
    organization_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> TaskAssignment:
    """
    Hand a task from one assignee to another.

    The outgoing user is ``from_user_id`` or, when unset, the primary assignee.
    Their pending edge is declined and removed exactly like
    ``decline_assignment``; an accepted edge is terminal and fails with
    ``ConflictError``. The new edge starts pending unless the acting user
    reassigned to themselves. Whoever assigned the outgoing edge is recorded
    on the event (the task creator when there was no edge) so they hear about
    the hand-off.

    Raises:
        ValidationError: Missing reason, same source and target, target not a
            member or already holding an edge on the task
        ConflictError: The outgoing edge is no longer pending
        NotFoundError: The task or the outgoing assignee does not exist
    """
    cleaned = _require_reason(reason, "A reason is required to reassign a task")
    if from_user_id is not None and from_user_id == to_user_id:
        raise ValidationError("Cannot reassign a task to the same user")
    now = now or datetime.now(timezone.utc)
    task = await get_task(session, task_id, organization_id=organization_id)

    outgoing_user_id = from_user_id if from_user_id is not None else task.assigned_user_id
    if outgoing_user_id == to_user_id:
        raise ValidationError("Cannot reassign a task to the same user")

    membership = await organizations_service.get_membership(
        session,
        organization_id=task.organization_id,
        user_id=to_user_id,
    )
    if membership is None:
        raise ValidationError("Reassignment target is not a member of this organization")
    if await get_assignment(session, task_id=task.id, user_id=to_user_id) is not None:
        raise ValidationError("Reassignment target is already assigned to this task")

    previous_assigned_by_id = task.created_by_id
    if outgoing_user_id is not None:
        outgoing = await get_assignment(session, task_id=task.id, user_id=outgoing_user_id)
        if outgoing is not None:
            if outgoing.assigned_by_id is not None:
                previous_assigned_by_id = outgoing.assigned_by_id
            moved = await _leave_pending(
                session,
                task_id=task.id,
                user_id=outgoing_user_id,
                values={"status": AssignmentStatus.declined, "reassignment_reason": cleaned},
            )
            if not moved:
                raise ConflictError("Assignment is no longer pending")
            await _delete_edge(session, task_id=task.id, user_id=outgoing_user_id)
        elif task.assigned_user_id != outgoing_user_id:
            raise NotFoundError("Assignment not found")

    is_self = to_user_id == actor_id
    assignment = TaskAssignment(
        task_id=task.id,
        user_id=to_user_id,
        assigned_by_id=actor_id,
        status=AssignmentStatus.accepted if is_self else AssignmentStatus.pending,
        reassignment_reason=cleaned,
        created_at=now,
        accepted_at=now if is_self else None,
    )
    session.add(assignment)
    if task.assigned_user_id in (None, outgoing_user_id):
        task.assigned_user_id = to_user_id
    task.updated_at = now
    session.add(task)
    await _enqueue_event(
        session,
        task=task,
        event_type=AssignmentEventType.reassigned,
        payload={
            "from_user_id": outgoing_user_id,
            "to_user_id": to_user_id,
            "assigned_by_id": actor_id,
            "previous_assigned_by_id": previous_assigned_by_id,
            "status": assignment.status.value,
            "reason": cleaned,
        },
        now=now,
    )
    await session.commit()
    await session.refresh(assignment)
    return assignment


async def unassign_user(
    session: AsyncSession,
    *,
    task_id: int,
    user_id: int,
    organization_id: Optional[int] = None,
) -> Task:
    """Remove a user from a task without any approval step."""
    task = await get_task(session, task_id, organization_id=organization_id)
    await _delete_edge(session, task_id=task.id, user_id=user_id)
    if task.assigned_user_id == user_id:
        task.assigned_user_id = None
    task.updated_at = datetime.now(timezone.utc)
    session.add(task)
    await session.commit()
    await session.refresh(task)
    return task


async def send_pending_reminders(
    session: AsyncSession,
    *,
    now: Optional[datetime] = None,
    after_minutes: Optional[int] = None,
) -> int:
    """Emit a reminder event for each pending edge left unanswered past the window."""
    now = now or datetime.now(timezone.utc)
    minutes = settings.PENDING_REMINDER_AFTER_MINUTES if after_minutes is None else after_minutes
    cutoff = now - timedelta(minutes=minutes)
    stmt = (
        select(TaskAssignment, Task)
        .join(Task, Task.id == TaskAssignment.task_id)
        .where(
            TaskAssignment.status == AssignmentStatus.pending,
            TaskAssignment.created_at <= cutoff,
            or_(
                TaskAssignment.last_reminder_at.is_(None),
                TaskAssignment.last_reminder_at <= cutoff,
            ),
            Task.deleted_at.is_(None),
        )
        .order_by(TaskAssignment.created_at.asc(), TaskAssignment.id.asc())
    )
    result = await session.exec(stmt)
    rows = result.all()
    for assignment, task in rows:
        await _enqueue_event(
            session,
            task=task,
            event_type=AssignmentEventType.reminder,
            payload={"user_id": assignment.user_id, "assigned_by_id": assignment.assigned_by_id},
            now=now,
        )
        assignment.last_reminder_at = now
        session.add(assignment)
    if rows:
        await session.commit()
    return len(rows)


async def process_pending_reminders() -> None:
    async with AsyncSessionLocal() as session:
        count = await send_pending_reminders(session)
    if count:
        logger.info("pending-reminders: queued %d reminder(s)", count)
    else:
        logger.debug("pending-reminders: no stale requests")
