"""
Unit tests for snapshot loading and caching.

Tests the business logic in taskflow.services.snapshots including:
- Dataset loading per organization
- Fault handling when the store is unreachable
- Cache invalidation tokens
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel.ext.asyncio.session import AsyncSession

from taskflow.models.task import AssignmentStatus, TaskPriority, TaskStatus
from taskflow.schemas.taskflow import TaskflowSnapshot
from taskflow.services import snapshots as snapshots_service
from tests.factories import (
    create_assignment,
    create_member,
    create_organization,
    create_task,
    create_working_hours,
)


@pytest.mark.unit
@pytest.mark.service
async def test_compute_snapshot_reads_only_live_tasks(session: AsyncSession):
    now = datetime.now(timezone.utc)
    organization = await create_organization(session)
    other = await create_organization(session)
    alice = await create_member(session, organization, full_name="Alice")
    bob = await create_member(session, organization, full_name="Bob")
    await create_working_hours(session, organization, bob, saturday_hours=8, sunday_hours=8)

    live = await create_task(session, organization, creator=alice, assigned_user_id=alice.id)
    shared = await create_task(session, organization, creator=alice, status=TaskStatus.in_progress)
    await create_assignment(session, shared, bob, status=AssignmentStatus.accepted)
    await create_task(session, organization, creator=alice, title="Draft", is_draft=True)
    await create_task(session, organization, creator=alice, title="Gone", deleted_at=now)
    await create_task(session, other, title="Elsewhere", priority=TaskPriority.high)

    snapshot = await snapshots_service.compute_snapshot(session, organization.id, now=now)

    assert {task.id for task in snapshot.ranked_tasks} == {live.id, shared.id}
    workloads = {member.user_id: member for member in snapshot.workloads}
    assert workloads[alice.id].todo_tasks == 1
    assert workloads[bob.id].in_progress_tasks == 1
    assert workloads[alice.id].weekly_hours == 40
    assert workloads[bob.id].weekly_hours == 56
    ranked = {task.id: task for task in snapshot.ranked_tasks}
    assert ranked[live.id].assigned_user_name == "Alice"
    assert ranked[shared.id].assignee_ids == [bob.id]


@pytest.mark.unit
@pytest.mark.service
async def test_store_fault_yields_empty_snapshot(session: AsyncSession, monkeypatch, caplog):
    organization = await create_organization(session)
    await create_member(session, organization)
    # The failed fetch rolls the session back and expires loaded instances
    organization_id = organization.id

    async def unreachable(*args, **kwargs):
        raise OperationalError("SELECT 1", {}, ConnectionError("connection refused"))

    monkeypatch.setattr(snapshots_service.organizations_service, "list_members", unreachable)

    snapshot = await snapshots_service.get_snapshot(session, organization_id)

    assert snapshot.organization_id == organization_id
    assert snapshot.workloads == []
    assert snapshot.ranked_tasks == []
    assert snapshots_service.snapshot_cache.get(organization_id) is None
    assert "unavailable" in caplog.text


@pytest.mark.unit
@pytest.mark.service
async def test_get_snapshot_caches_until_invalidated(session: AsyncSession):
    organization = await create_organization(session)
    alice = await create_member(session, organization)

    first = await snapshots_service.get_snapshot(session, organization.id)
    await create_task(session, organization, creator=alice, assigned_user_id=alice.id)
    cached = await snapshots_service.get_snapshot(session, organization.id)

    assert cached is first
    assert cached.ranked_tasks == []

    snapshots_service.invalidate_organization(organization.id)
    fresh = await snapshots_service.get_snapshot(session, organization.id)

    assert len(fresh.ranked_tasks) == 1


@pytest.mark.unit
@pytest.mark.service
async def test_refresh_snapshot_stores_result(session: AsyncSession, session_factory, monkeypatch):
    monkeypatch.setattr(snapshots_service, "AsyncSessionLocal", session_factory)
    organization = await create_organization(session)
    await create_member(session, organization)

    snapshot = await snapshots_service.refresh_snapshot(organization.id)

    assert snapshots_service.snapshot_cache.get(organization.id) is snapshot


@pytest.mark.unit
def test_cache_rejects_results_computed_before_invalidation():
    cache = snapshots_service.SnapshotCache()
    now = datetime.now(timezone.utc)
    stale = TaskflowSnapshot(organization_id=1, generated_at=now, average_completion_days=3)
    current = TaskflowSnapshot(organization_id=1, generated_at=now + timedelta(seconds=1), average_completion_days=3)

    token = cache.token(1)
    cache.invalidate(1)

    assert cache.store(1, stale, token) is False
    assert cache.get(1) is None
    assert cache.store(1, current, cache.token(1)) is True
    assert cache.get(1) is current
    assert cache.get(2) is None


@pytest.mark.unit
@pytest.mark.service
async def test_refresh_all_snapshots_isolates_tenant_failures(
    session: AsyncSession,
    session_factory,
    monkeypatch,
    caplog,
):
    monkeypatch.setattr(snapshots_service, "AsyncSessionLocal", session_factory)
    broken = await create_organization(session, name="Broken")
    healthy = await create_organization(session, name="Healthy")
    broken_id, healthy_id = broken.id, healthy.id
    refreshed: list[int] = []

    async def refresh(organization_id: int, **kwargs):
        if organization_id == broken_id:
            raise RuntimeError("broadcast failed")
        refreshed.append(organization_id)

    monkeypatch.setattr(snapshots_service, "refresh_snapshot", refresh)

    with caplog.at_level("DEBUG", logger="taskflow.services.snapshots"):
        await snapshots_service.refresh_all_snapshots()

    assert refreshed == [healthy_id]
    assert f"organization {broken_id} failed" in caplog.text
    assert "refreshed 1 organization(s), 1 failed" in caplog.text
