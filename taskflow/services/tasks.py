from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from sqlalchemy import delete, update
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from taskflow.core.config import settings
from taskflow.core.exceptions import NotFoundError
from taskflow.db.session import AsyncSessionLocal
from taskflow.models.task import AssignmentStatus, CategoryKind, Task, TaskAssignment, TaskStatus
from taskflow.schemas.task import TaskCreate, TaskUpdate
from taskflow.services.visibility import on_board, visible_to_user

logger = logging.getLogger(__name__)


def _normalize_category(value: Optional[str]) -> str:
    cleaned = (value or "").strip().lower()
    return cleaned or CategoryKind.general.value


def _apply_status(task: Task, status: TaskStatus, now: datetime) -> None:
    previous = task.status
    task.status = status
    if status == TaskStatus.complete and previous != TaskStatus.complete:
        task.completed_at = now
    elif status != TaskStatus.complete:
        task.completed_at = None


async def create_task(
    session: AsyncSession,
    *,
    organization_id: int,
    creator_id: int,
    task_in: TaskCreate,
    is_draft: Optional[bool] = None,
) -> Task:
    now = datetime.now(timezone.utc)
    task = Task(
        organization_id=organization_id,
        project_id=task_in.project_id,
        title=task_in.title,
        description=task_in.description,
        priority=task_in.priority,
        category=_normalize_category(task_in.category),
        due_date=task_in.due_date,
        created_by_id=creator_id,
        is_draft=task_in.is_draft if is_draft is None else is_draft,
        created_at=now,
        updated_at=now,
    )
    _apply_status(task, task_in.status, now)
    session.add(task)
    await session.commit()
    await session.refresh(task)
    return task


async def get_task(
    session: AsyncSession,
    task_id: int,
    *,
    organization_id: Optional[int] = None,
    include_deleted: bool = False,
) -> Task:
    stmt = select(Task).where(Task.id == task_id)
    if organization_id is not None:
        stmt = stmt.where(Task.organization_id == organization_id)
    if not include_deleted:
        stmt = stmt.where(Task.deleted_at.is_(None))
    result = await session.exec(stmt.execution_options(populate_existing=True))
    task = result.one_or_none()
    if not task:
        raise NotFoundError("Task not found")
    return task


async def update_task(session: AsyncSession, task: Task, task_in: TaskUpdate) -> Task:
    now = datetime.now(timezone.utc)
    update_data = task_in.model_dump(exclude_unset=True)
    status = update_data.pop("status", None)
    if "category" in update_data:
        update_data["category"] = _normalize_category(update_data["category"])
    for field, value in update_data.items():
        setattr(task, field, value)
    if status is not None:
        _apply_status(task, status, now)
    task.updated_at = now
    session.add(task)
    await session.commit()
    await session.refresh(task)
    return task


async def soft_delete_task(session: AsyncSession, task: Task) -> Task:
    now = datetime.now(timezone.utc)
    task.deleted_at = now
    task.updated_at = now
    session.add(task)
    await session.commit()
    await session.refresh(task)
    return task


async def restore_task(session: AsyncSession, task: Task) -> Task:
    if task.deleted_at is None:
        return task
    task.deleted_at = None
    task.updated_at = datetime.now(timezone.utc)
    session.add(task)
    await session.commit()
    await session.refresh(task)
    return task


async def list_deleted_tasks(session: AsyncSession, *, organization_id: int) -> list[Task]:
    stmt = (
        select(Task)
        .where(Task.organization_id == organization_id, Task.deleted_at.is_not(None))
        .order_by(Task.deleted_at.desc(), Task.id.desc())
    )
    result = await session.exec(stmt)
    return list(result.all())


async def list_drafts(session: AsyncSession, *, organization_id: int, creator_id: int) -> list[Task]:
    stmt = (
        select(Task)
        .where(
            Task.organization_id == organization_id,
            Task.created_by_id == creator_id,
            Task.is_draft.is_(True),
            Task.deleted_at.is_(None),
        )
        .order_by(Task.created_at.desc(), Task.id.desc())
    )
    result = await session.exec(stmt)
    return list(result.all())


async def list_board_tasks(
    session: AsyncSession,
    *,
    organization_id: int,
    user_id: int,
    status: Optional[TaskStatus] = None,
    category: Optional[str] = None,
) -> list[Task]:
    stmt = select(Task).where(
        Task.organization_id == organization_id,
        on_board(),
        visible_to_user(user_id),
    )
    if status is not None:
        stmt = stmt.where(Task.status == status)
    if category is not None:
        stmt = stmt.where(Task.category == _normalize_category(category))
    stmt = stmt.order_by(Task.created_at.desc(), Task.id.desc())
    result = await session.exec(stmt)
    return list(result.all())


async def list_pending_requests(session: AsyncSession, *, organization_id: int, user_id: int) -> list[Task]:
    stmt = (
        select(Task)
        .join(TaskAssignment, TaskAssignment.task_id == Task.id)
        .where(
            Task.organization_id == organization_id,
            Task.deleted_at.is_(None),
            TaskAssignment.user_id == user_id,
            TaskAssignment.status == AssignmentStatus.pending,
        )
        .order_by(TaskAssignment.created_at.desc(), Task.id.desc())
    )
    result = await session.exec(stmt)
    return list(result.all())


async def list_assignments(session: AsyncSession, task_ids: Iterable[int]) -> dict[int, list[TaskAssignment]]:
    ids = tuple(task_ids)
    grouped: dict[int, list[TaskAssignment]] = {task_id: [] for task_id in ids}
    if not ids:
        return grouped
    stmt = (
        select(TaskAssignment)
        .where(TaskAssignment.task_id.in_(ids))
        .order_by(TaskAssignment.created_at.asc(), TaskAssignment.id.asc())
        .execution_options(populate_existing=True)
    )
    result = await session.exec(stmt)
    for assignment in result.all():
        grouped.setdefault(assignment.task_id, []).append(assignment)
    return grouped


async def purge_deleted_tasks(
    session: AsyncSession,
    *,
    now: Optional[datetime] = None,
    retention_days: Optional[int] = None,
) -> int:
    """Physically remove tasks that have sat in the recycle bin past retention."""
    now = now or datetime.now(timezone.utc)
    days = settings.SOFT_DELETE_RETENTION_DAYS if retention_days is None else retention_days
    cutoff = now - timedelta(days=days)

    result = await session.exec(
        select(Task.id).where(Task.deleted_at.is_not(None), Task.deleted_at <= cutoff)
    )
    task_ids = list(result.all())
    if not task_ids:
        return 0
    # Edges go first; SQLite does not enforce ON DELETE CASCADE by default
    await session.exec(delete(TaskAssignment).where(TaskAssignment.task_id.in_(task_ids)))
    await session.exec(delete(Task).where(Task.id.in_(task_ids)))
    await session.commit()
    return len(task_ids)


async def archive_completed_tasks(
    session: AsyncSession,
    *,
    now: Optional[datetime] = None,
    archive_after_days: Optional[int] = None,
) -> int:
    now = now or datetime.now(timezone.utc)
    days = settings.ARCHIVE_AFTER_DAYS if archive_after_days is None else archive_after_days
    cutoff = now - timedelta(days=days)
    stmt = (
        update(Task)
        .where(
            Task.status == TaskStatus.complete,
            Task.completed_at.is_not(None),
            Task.completed_at <= cutoff,
            Task.archived_at.is_(None),
        )
        .values(archived_at=now)
        .execution_options(synchronize_session=False)
    )
    result = await session.exec(stmt)
    await session.commit()
    return result.rowcount or 0


async def process_task_retention() -> None:
    async with AsyncSessionLocal() as session:
        purged = await purge_deleted_tasks(session)
        archived = await archive_completed_tasks(session)
    if purged or archived:
        logger.info("task-retention: purged %d task(s), archived %d task(s)", purged, archived)
    else:
        logger.debug("task-retention: nothing to purge or archive")
