from datetime import datetime, timezone
from typing import Mapping, Optional

from sqlalchemy import func, update
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from taskflow.core.exceptions import NotFoundError
from taskflow.models.notification import Notification, NotificationType


async def create_notification(
    session: AsyncSession,
    *,
    user_id: int,
    notification_type: NotificationType,
    data: Mapping[str, object],
    organization_id: Optional[int] = None,
) -> Notification:
    notification = Notification(
        user_id=user_id,
        organization_id=organization_id,
        type=notification_type,
        data=dict(data),
    )
    session.add(notification)
    await session.flush()
    return notification


def _scoped(stmt, *, user_id: int, organization_id: Optional[int]):
    stmt = stmt.where(Notification.user_id == user_id)
    if organization_id is not None:
        stmt = stmt.where(Notification.organization_id == organization_id)
    return stmt


async def list_notifications(
    session: AsyncSession,
    *,
    user_id: int,
    organization_id: Optional[int] = None,
    limit: int = 50,
) -> tuple[list[Notification], int]:
    stmt = _scoped(select(Notification), user_id=user_id, organization_id=organization_id)
    stmt = stmt.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit)
    result = await session.exec(stmt)
    notifications = list(result.all())
    return notifications, await unread_count(session, user_id=user_id, organization_id=organization_id)


async def mark_notification_read(
    session: AsyncSession,
    *,
    user_id: int,
    notification_id: int,
) -> Notification:
    stmt = select(Notification).where(
        Notification.id == notification_id,
        Notification.user_id == user_id,
    )
    result = await session.exec(stmt)
    notification = result.one_or_none()
    if notification is None:
        raise NotFoundError("Notification not found")
    if notification.read_at is None:
        notification.read_at = datetime.now(timezone.utc)
        session.add(notification)
        await session.commit()
        await session.refresh(notification)
    return notification


async def mark_all_notifications_read(
    session: AsyncSession,
    *,
    user_id: int,
    organization_id: Optional[int] = None,
) -> int:
    now = datetime.now(timezone.utc)
    stmt = update(Notification).where(Notification.user_id == user_id, Notification.read_at.is_(None))
    if organization_id is not None:
        stmt = stmt.where(Notification.organization_id == organization_id)
    result = await session.exec(stmt.values(read_at=now).execution_options(synchronize_session=False))
    await session.commit()
    return result.rowcount or 0


async def unread_count(session: AsyncSession, *, user_id: int, organization_id: Optional[int] = None) -> int:
    stmt = _scoped(select(func.count()).select_from(Notification), user_id=user_id, organization_id=organization_id)
    result = await session.exec(stmt.where(Notification.read_at.is_(None)))
    return result.one()
