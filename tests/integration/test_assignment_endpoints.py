"""
Integration tests for assignment endpoints.

Tests /api/v1/tasks/{id}/assignments including:
- Accepting (idempotently) and declining requests
- Reassigning and unassigning
- Error mapping for validation, missing edges and conflicts
"""

import pytest
from httpx import AsyncClient
from sqlmodel.ext.asyncio.session import AsyncSession

from taskflow.models.organization import MemberRole
from taskflow.models.task import AssignmentStatus
from taskflow.services import notifications as notifications_service
from tests.factories import create_assignment, create_member, create_organization, create_task, member_headers


async def _requested(session: AsyncSession):
    organization = await create_organization(session)
    alice = await create_member(session, organization, role=MemberRole.manager, full_name="Alice")
    bob = await create_member(session, organization, full_name="Bob")
    carol = await create_member(session, organization, full_name="Carol")
    task = await create_task(session, organization, creator=alice, assigned_user_id=bob.id)
    await create_assignment(session, task, bob, assigned_by=alice)
    return organization, alice, bob, carol, task


@pytest.mark.integration
async def test_accept_twice_succeeds(client: AsyncClient, session: AsyncSession):
    organization, _, bob, _, task = await _requested(session)
    headers = member_headers(organization, bob)

    first = await client.post(f"/api/v1/tasks/{task.id}/assignments/accept", headers=headers)
    second = await client.post(f"/api/v1/tasks/{task.id}/assignments/accept", headers=headers)

    assert first.status_code == 200
    assert second.status_code == 200
    assert second.json()["status"] == "accepted"
    board = await client.get("/api/v1/tasks/", headers=headers)
    assert [item["id"] for item in board.json()] == [task.id]


@pytest.mark.integration
async def test_decline_requires_reason(client: AsyncClient, session: AsyncSession):
    organization, _, bob, _, task = await _requested(session)

    response = await client.post(
        f"/api/v1/tasks/{task.id}/assignments/decline",
        headers=member_headers(organization, bob),
        json={"reason": ""},
    )

    assert response.status_code == 422
    assert response.json()["detail"] == "A reason is required to decline an assignment"


@pytest.mark.integration
async def test_decline_notifies_assigner(client: AsyncClient, session: AsyncSession):
    organization, alice, bob, _, task = await _requested(session)

    response = await client.post(
        f"/api/v1/tasks/{task.id}/assignments/decline",
        headers=member_headers(organization, bob),
        json={"reason": "overloaded"},
    )
    assert response.status_code == 204

    await notifications_service.dispatch_pending_events(session)
    inbox = await client.get("/api/v1/notifications/", headers=member_headers(organization, alice))
    assert inbox.json()["unread_count"] == 1
    assert inbox.json()["notifications"][0]["type"] == "task_declined"
    requests = await client.get("/api/v1/tasks/requests", headers=member_headers(organization, bob))
    assert requests.json() == []


@pytest.mark.integration
async def test_accept_without_request_is_404(client: AsyncClient, session: AsyncSession):
    organization, _, _, carol, task = await _requested(session)

    response = await client.post(
        f"/api/v1/tasks/{task.id}/assignments/accept",
        headers=member_headers(organization, carol),
    )

    assert response.status_code == 404


@pytest.mark.integration
async def test_reassign_after_accept_conflicts(client: AsyncClient, session: AsyncSession):
    organization, alice, bob, carol, task = await _requested(session)
    await client.post(f"/api/v1/tasks/{task.id}/assignments/accept", headers=member_headers(organization, bob))

    response = await client.post(
        f"/api/v1/tasks/{task.id}/assignments/reassign",
        headers=member_headers(organization, alice),
        json={"from_user_id": bob.id, "to_user_id": carol.id, "reason": "rebalancing"},
    )

    assert response.status_code == 409


@pytest.mark.integration
async def test_reassign_pending_request(client: AsyncClient, session: AsyncSession):
    organization, alice, bob, carol, task = await _requested(session)

    response = await client.post(
        f"/api/v1/tasks/{task.id}/assignments/reassign",
        headers=member_headers(organization, alice),
        json={"from_user_id": bob.id, "to_user_id": carol.id, "reason": "Bob is out"},
    )

    assert response.status_code == 200
    assert response.json()["user_id"] == carol.id
    assert response.json()["status"] == AssignmentStatus.pending.value
    carol_requests = await client.get("/api/v1/tasks/requests", headers=member_headers(organization, carol))
    assert [item["id"] for item in carol_requests.json()] == [task.id]


@pytest.mark.integration
async def test_unassign(client: AsyncClient, session: AsyncSession):
    organization, alice, bob, _, task = await _requested(session)

    response = await client.delete(
        f"/api/v1/tasks/{task.id}/assignments/{bob.id}",
        headers=member_headers(organization, alice),
    )

    assert response.status_code == 204
    refreshed = await client.get(f"/api/v1/tasks/{task.id}", headers=member_headers(organization, alice))
    assert refreshed.json()["assigned_user_id"] is None
    assert refreshed.json()["assignments"] == []


@pytest.mark.integration
async def test_unassign_someone_else_requires_permission(client: AsyncClient, session: AsyncSession):
    organization, _, bob, carol, task = await _requested(session)

    response = await client.delete(
        f"/api/v1/tasks/{task.id}/assignments/{bob.id}",
        headers=member_headers(organization, carol),
    )

    assert response.status_code == 403


@pytest.mark.integration
async def test_reassign_someone_else_requires_permission(client: AsyncClient, session: AsyncSession):
    organization, _, bob, carol, task = await _requested(session)

    response = await client.post(
        f"/api/v1/tasks/{task.id}/assignments/reassign",
        headers=member_headers(organization, carol),
        json={"from_user_id": bob.id, "to_user_id": carol.id, "reason": "mine now"},
    )

    assert response.status_code == 403
    bob_requests = await client.get("/api/v1/tasks/requests", headers=member_headers(organization, bob))
    assert [item["id"] for item in bob_requests.json()] == [task.id]
    carol_board = await client.get("/api/v1/tasks/", headers=member_headers(organization, carol))
    assert carol_board.json() == []


@pytest.mark.integration
async def test_reassign_primary_without_source_requires_permission(client: AsyncClient, session: AsyncSession):
    organization, _, _, carol, task = await _requested(session)

    response = await client.post(
        f"/api/v1/tasks/{task.id}/assignments/reassign",
        headers=member_headers(organization, carol),
        json={"to_user_id": carol.id, "reason": "mine now"},
    )

    assert response.status_code == 403


@pytest.mark.integration
async def test_assignee_can_hand_off_own_request(client: AsyncClient, session: AsyncSession):
    organization, alice, bob, carol, task = await _requested(session)

    response = await client.post(
        f"/api/v1/tasks/{task.id}/assignments/reassign",
        headers=member_headers(organization, bob),
        json={"from_user_id": bob.id, "to_user_id": carol.id, "reason": "out next week"},
    )

    assert response.status_code == 200
    assert response.json()["user_id"] == carol.id
    assert response.json()["status"] == AssignmentStatus.pending.value

    await notifications_service.dispatch_pending_events(session)
    inbox = await client.get("/api/v1/notifications/", headers=member_headers(organization, alice))
    assert [item["type"] for item in inbox.json()["notifications"]] == ["task_reassigned"]
    assert inbox.json()["notifications"][0]["organization_id"] == organization.id
