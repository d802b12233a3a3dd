"""Integration tests for the notification inbox endpoints."""

import pytest
from httpx import AsyncClient
from sqlmodel.ext.asyncio.session import AsyncSession

from taskflow.models.notification import NotificationType
from taskflow.services import user_notifications
from tests.factories import create_member, create_organization, member_headers


@pytest.mark.integration
async def test_inbox_read_flow(client: AsyncClient, session: AsyncSession):
    organization = await create_organization(session)
    bob = await create_member(session, organization)
    for task_id in (1, 2):
        await user_notifications.create_notification(
            session,
            user_id=bob.id,
            organization_id=organization.id,
            notification_type=NotificationType.task_request,
            data={"task_id": task_id},
        )
    await session.commit()
    headers = member_headers(organization, bob)

    inbox = await client.get("/api/v1/notifications/", headers=headers)
    assert inbox.json()["unread_count"] == 2

    first_id = inbox.json()["notifications"][0]["id"]
    read = await client.post(f"/api/v1/notifications/{first_id}/read", headers=headers)
    assert read.status_code == 200
    assert read.json()["read_at"] is not None

    count = await client.get("/api/v1/notifications/unread-count", headers=headers)
    assert count.json()["unread_count"] == 1

    cleared = await client.post("/api/v1/notifications/read-all", headers=headers)
    assert cleared.json()["unread_count"] == 0


@pytest.mark.integration
async def test_reading_unknown_notification_is_404(client: AsyncClient, session: AsyncSession):
    organization = await create_organization(session)
    bob = await create_member(session, organization)

    response = await client.post("/api/v1/notifications/12345/read", headers=member_headers(organization, bob))

    assert response.status_code == 404
