"""
Integration tests for the workload and alert endpoints at /api/v1/taskflow.
"""

from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient
from sqlmodel.ext.asyncio.session import AsyncSession

from taskflow.models.organization import MemberRole
from taskflow.models.task import TaskPriority
from tests.factories import create_member, create_organization, create_task, member_headers


@pytest.mark.integration
async def test_snapshot_and_alerts(client: AsyncClient, session: AsyncSession):
    organization = await create_organization(session)
    alice = await create_member(session, organization, full_name="Alice")
    yesterday = datetime.now(timezone.utc).date() - timedelta(days=1)
    overdue = await create_task(
        session,
        organization,
        creator=alice,
        title="Renew certificate",
        assigned_user_id=alice.id,
        due_date=yesterday,
    )
    unassigned = await create_task(session, organization, creator=alice, priority=TaskPriority.high)
    headers = member_headers(organization, alice)

    snapshot = await client.get("/api/v1/taskflow/snapshot", headers=headers)

    assert snapshot.status_code == 200
    data = snapshot.json()
    assert data["organization_id"] == organization.id
    assert data["ranked_tasks"][0]["id"] == overdue.id
    assert data["ranked_tasks"][0]["risk_level"] == "critical"
    assert data["ranked_tasks"][0]["risk_reason"] == "Task is overdue"
    assert data["workloads"][0]["full_name"] == "Alice"

    alerts = await client.get("/api/v1/taskflow/alerts", headers=headers)
    ids = [alert["id"] for alert in alerts.json()]
    assert ids[0] == "workload-summary"
    assert f"overdue-{overdue.id}" in ids
    assert f"unassigned-{unassigned.id}" in ids


@pytest.mark.integration
async def test_mutation_invalidates_cached_snapshot(client: AsyncClient, session: AsyncSession):
    organization = await create_organization(session)
    alice = await create_member(session, organization)
    headers = member_headers(organization, alice)

    before = await client.get("/api/v1/taskflow/snapshot", headers=headers)
    assert before.json()["ranked_tasks"] == []

    created = await client.post("/api/v1/tasks/", headers=headers, json={"title": "New work"})
    assert created.status_code == 201

    after = await client.get("/api/v1/taskflow/snapshot", headers=headers)
    assert [task["title"] for task in after.json()["ranked_tasks"]] == ["New work"]


@pytest.mark.integration
async def test_capacity_read_and_update(client: AsyncClient, session: AsyncSession):
    organization = await create_organization(session)
    alice = await create_member(session, organization, role=MemberRole.admin)
    bob = await create_member(session, organization)

    listing = await client.get("/api/v1/taskflow/capacity", headers=member_headers(organization, bob))
    assert {member["weekly_hours"] for member in listing.json()} == {40}

    updated = await client.put(
        f"/api/v1/taskflow/capacity/{bob.id}",
        headers=member_headers(organization, alice),
        json={"monday_hours": 0, "tuesday_hours": 4},
    )
    assert updated.status_code == 200
    assert updated.json()["weekly_hours"] == 28
    assert updated.json()["is_default"] is False

    forbidden = await client.put(
        f"/api/v1/taskflow/capacity/{alice.id}",
        headers=member_headers(organization, bob),
        json={"monday_hours": 1},
    )
    assert forbidden.status_code == 403

    invalid = await client.put(
        f"/api/v1/taskflow/capacity/{bob.id}",
        headers=member_headers(organization, bob),
        json={"monday_hours": -2},
    )
    assert invalid.status_code == 422
