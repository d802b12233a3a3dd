from fastapi import APIRouter, Query

from taskflow.api.deps import MemberContextDep, SessionDep
from taskflow.schemas.notification import (
    NotificationCountResponse,
    NotificationListResponse,
    NotificationRead,
)
from taskflow.services import user_notifications as notifications_service

router = APIRouter()


@router.get("/", response_model=NotificationListResponse)
async def list_notifications(
    session: SessionDep,
    context: MemberContextDep,
    limit: int = Query(default=20, ge=1, le=100),
) -> NotificationListResponse:
    notifications, unread_count = await notifications_service.list_notifications(
        session,
        user_id=context.user_id,
        organization_id=context.organization_id,
        limit=limit,
    )
    return NotificationListResponse(notifications=notifications, unread_count=unread_count)


@router.get("/unread-count", response_model=NotificationCountResponse)
async def unread_notifications_count(session: SessionDep, context: MemberContextDep) -> NotificationCountResponse:
    count = await notifications_service.unread_count(
        session,
        user_id=context.user_id,
        organization_id=context.organization_id,
    )
    return NotificationCountResponse(unread_count=count)


@router.post("/{notification_id}/read", response_model=NotificationRead)
async def mark_notification_read(
    notification_id: int,
    session: SessionDep,
    context: MemberContextDep,
) -> NotificationRead:
    return await notifications_service.mark_notification_read(
        session,
        user_id=context.user_id,
        notification_id=notification_id,
    )


@router.post("/read-all", response_model=NotificationCountResponse)
async def mark_all_notifications_read(session: SessionDep, context: MemberContextDep) -> NotificationCountResponse:
    await notifications_service.mark_all_notifications_read(
        session,
        user_id=context.user_id,
        organization_id=context.organization_id,
    )
    count = await notifications_service.unread_count(
        session,
        user_id=context.user_id,
        organization_id=context.organization_id,
    )
    return NotificationCountResponse(unread_count=count)
