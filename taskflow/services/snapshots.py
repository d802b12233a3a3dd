"""
Snapshot loading and the per-organization snapshot cache.

Snapshots are always recomputed in full from a fresh fetch. The cache only
remembers the last result together with the invalidation token it was
computed under; any mutation bumps the token so stale results are never served.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.exc import DBAPIError
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from taskflow.core.config import settings
from taskflow.core.exceptions import TransientFault
from taskflow.db.session import AsyncSessionLocal
from taskflow.models.task import Task, TaskAssignment
from taskflow.schemas.taskflow import TaskflowSnapshot
from taskflow.services import capacity as capacity_service
from taskflow.services import organizations as organizations_service
from taskflow.services.realtime import broadcast_event
from taskflow.services.risk import TaskflowDataset, TeamMember, build_snapshot, empty_snapshot

logger = logging.getLogger(__name__)


class SnapshotCache:
    def __init__(self) -> None:
        self._tokens: dict[int, int] = {}
        self._entries: dict[int, tuple[int, TaskflowSnapshot]] = {}

    def token(self, organization_id: int) -> int:
        return self._tokens.get(organization_id, 0)

    def invalidate(self, organization_id: int) -> int:
        token = self.token(organization_id) + 1
        self._tokens[organization_id] = token
        self._entries.pop(organization_id, None)
        return token

    def get(self, organization_id: int) -> Optional[TaskflowSnapshot]:
        entry = self._entries.get(organization_id)
        if entry is None or entry[0] != self.token(organization_id):
            return None
        return entry[1]

    def store(self, organization_id: int, snapshot: TaskflowSnapshot, token: int) -> bool:
        """Keep ``snapshot`` unless the organization was invalidated since ``token`` was read."""
        if token != self.token(organization_id):
            return False
        self._entries[organization_id] = (token, snapshot)
        return True

    def clear(self) -> None:
        self._tokens.clear()
        self._entries.clear()


snapshot_cache = SnapshotCache()


async def load_dataset(session: AsyncSession, organization_id: int) -> TaskflowDataset:
    """Fetch everything one snapshot needs. Store failures raise ``TransientFault``."""
    try:
        members = await organizations_service.list_members(session, organization_id=organization_id)
        working_hours = await capacity_service.list_working_hours(session, organization_id=organization_id)
        task_result = await session.exec(
            select(Task)
            .where(
                Task.organization_id == organization_id,
                Task.deleted_at.is_(None),
                Task.archived_at.is_(None),
                Task.is_draft.is_(False),
            )
            .order_by(Task.id.asc())
        )
        tasks = list(task_result.all())
        assignments: list[TaskAssignment] = []
        if tasks:
            assignment_result = await session.exec(
                select(TaskAssignment)
                .where(TaskAssignment.task_id.in_([task.id for task in tasks]))
                .order_by(TaskAssignment.id.asc())
            )
            assignments = list(assignment_result.all())
        display_names = {user.id: user.display_name for _, user in members}
        missing = {task.assigned_user_id for task in tasks if task.assigned_user_id is not None} - display_names.keys()
        if missing:
            display_names.update(await organizations_service.display_names(session, missing))
    except (DBAPIError, OSError) as exc:
        await session.rollback()
        raise TransientFault(f"Could not load tasks for organization {organization_id}") from exc

    return TaskflowDataset(
        organization_id=organization_id,
        members=[
            TeamMember(
                user_id=membership.user_id,
                full_name=user.display_name,
                role=getattr(membership.role, "value", membership.role),
                job_role=membership.job_role,
            )
            for membership, user in members
        ],
        tasks=tasks,
        assignments=assignments,
        working_hours=working_hours,
        display_names=display_names,
    )


async def _compute(
    session: AsyncSession,
    organization_id: int,
    now: datetime,
) -> tuple[TaskflowSnapshot, bool]:
    try:
        dataset = await load_dataset(session, organization_id)
    except TransientFault as exc:
        logger.warning("Snapshot for organization %s unavailable: %s", organization_id, exc.detail)
        return empty_snapshot(organization_id, now), False
    return build_snapshot(dataset, now, default_weekly_hours=settings.DEFAULT_WEEKLY_HOURS), True


async def compute_snapshot(
    session: AsyncSession,
    organization_id: int,
    *,
    now: Optional[datetime] = None,
) -> TaskflowSnapshot:
    """Recompute a snapshot; an unreachable store yields an empty one instead of an error."""
    snapshot, _ = await _compute(session, organization_id, now or datetime.now(timezone.utc))
    return snapshot


async def get_snapshot(
    session: AsyncSession,
    organization_id: int,
    *,
    cache: SnapshotCache = snapshot_cache,
) -> TaskflowSnapshot:
    cached = cache.get(organization_id)
    if cached is not None:
        return cached
    token = cache.token(organization_id)
    snapshot, ok = await _compute(session, organization_id, datetime.now(timezone.utc))
    if ok:
        cache.store(organization_id, snapshot, token)
    return snapshot


async def refresh_snapshot(
    organization_id: int,
    *,
    cache: SnapshotCache = snapshot_cache,
) -> TaskflowSnapshot:
    token = cache.token(organization_id)
    async with AsyncSessionLocal() as session:
        snapshot, ok = await _compute(session, organization_id, datetime.now(timezone.utc))
    if ok and cache.store(organization_id, snapshot, token):
        await broadcast_event(
            "taskflow",
            "refreshed",
            {
                "organization_id": organization_id,
                "generated_at": snapshot.generated_at.isoformat(),
                "summary": snapshot.summary.model_dump(),
            },
            organization_id=organization_id,
        )
    return snapshot


def invalidate_organization(organization_id: int, *, cache: SnapshotCache = snapshot_cache) -> None:
    cache.invalidate(organization_id)


async def refresh_all_snapshots() -> None:
    async with AsyncSessionLocal() as session:
        organization_ids = await organizations_service.list_organization_ids(session)
    if not organization_ids:
        logger.debug("snapshot-refresh: no organizations")
        return
    # Tenants share no state, so they can be recomputed side by side
    results = await asyncio.gather(
        *(refresh_snapshot(organization_id) for organization_id in organization_ids),
        return_exceptions=True,
    )
    failed = 0
    for organization_id, result in zip(organization_ids, results):
        if isinstance(result, Exception):
            failed += 1
            logger.error(
                "snapshot-refresh: organization %s failed",
                organization_id,
                exc_info=(type(result), result, result.__traceback__),
            )
    logger.debug(
        "snapshot-refresh: refreshed %d organization(s), %d failed",
        len(organization_ids) - failed,
        failed,
    )
