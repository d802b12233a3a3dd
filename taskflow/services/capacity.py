from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from taskflow.core.config import settings
from taskflow.core.exceptions import NotFoundError
from taskflow.models.working_hours import WEEKDAY_FIELDS, WorkingHours
from taskflow.schemas.capacity import TeamMemberCapacity, WorkingHoursUpdate
from taskflow.services import organizations as organizations_service

WORKDAY_COUNT = 5


def default_daily_hours(weekly_hours: float) -> dict[str, float]:
    """Spread a weekly default over Monday to Friday."""
    per_day = weekly_hours / WORKDAY_COUNT
    return {name: (per_day if index < WORKDAY_COUNT else 0.0) for index, name in enumerate(WEEKDAY_FIELDS)}


async def get_working_hours(
    session: AsyncSession,
    *,
    organization_id: int,
    user_id: int,
) -> WorkingHours | None:
    stmt = select(WorkingHours).where(
        WorkingHours.organization_id == organization_id,
        WorkingHours.user_id == user_id,
    )
    result = await session.exec(stmt)
    return result.one_or_none()


async def list_working_hours(session: AsyncSession, *, organization_id: int) -> list[WorkingHours]:
    result = await session.exec(select(WorkingHours).where(WorkingHours.organization_id == organization_id))
    return list(result.all())


async def upsert_working_hours(
    session: AsyncSession,
    *,
    organization_id: int,
    user_id: int,
    hours: WorkingHoursUpdate,
) -> WorkingHours:
    membership = await organizations_service.get_membership(
        session,
        organization_id=organization_id,
        user_id=user_id,
    )
    if membership is None:
        raise NotFoundError("Member not found")

    record = await get_working_hours(session, organization_id=organization_id, user_id=user_id)
    if record is None:
        record = WorkingHours(organization_id=organization_id, user_id=user_id)
    for field, value in hours.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(record, field, value)
    record.updated_at = datetime.now(timezone.utc)
    session.add(record)
    await session.commit()
    await session.refresh(record)
    return record


async def list_team_capacity(
    session: AsyncSession,
    *,
    organization_id: int,
    default_weekly_hours: Optional[float] = None,
) -> list[TeamMemberCapacity]:
    weekly_default = settings.DEFAULT_WEEKLY_HOURS if default_weekly_hours is None else default_weekly_hours
    members = await organizations_service.list_members(session, organization_id=organization_id)
    declared = {
        record.user_id: record
        for record in await list_working_hours(session, organization_id=organization_id)
    }

    capacity: list[TeamMemberCapacity] = []
    for membership, user in members:
        record = declared.get(membership.user_id)
        if record is not None:
            hours = {name: float(getattr(record, name)) for name in WEEKDAY_FIELDS}
            weekly_hours = record.weekly_hours
        else:
            hours = default_daily_hours(weekly_default)
            weekly_hours = weekly_default
        capacity.append(
            TeamMemberCapacity(
                user_id=membership.user_id,
                full_name=user.display_name,
                role=getattr(membership.role, "value", membership.role),
                job_role=membership.job_role,
                weekly_hours=weekly_hours,
                is_default=record is None,
                **hours,
            )
        )
    return capacity
