from typing import List

from fastapi import APIRouter, BackgroundTasks, HTTPException, status

from taskflow.api.deps import MemberContextDep, SessionDep, schedule_snapshot_refresh
from taskflow.models.organization import MemberRole
from taskflow.schemas.capacity import TeamMemberCapacity, WorkingHoursUpdate
from taskflow.schemas.taskflow import Alert, TaskflowSnapshot
from taskflow.services import capacity as capacity_service
from taskflow.services import snapshots as snapshots_service
from taskflow.services.alerts import generate_alerts

router = APIRouter()


@router.get("/snapshot", response_model=TaskflowSnapshot)
async def read_snapshot(session: SessionDep, context: MemberContextDep) -> TaskflowSnapshot:
    return await snapshots_service.get_snapshot(session, context.organization_id)


@router.get("/alerts", response_model=List[Alert])
async def read_alerts(session: SessionDep, context: MemberContextDep) -> List[Alert]:
    snapshot = await snapshots_service.get_snapshot(session, context.organization_id)
    return generate_alerts(snapshot)


@router.get("/capacity", response_model=List[TeamMemberCapacity])
async def read_capacity(session: SessionDep, context: MemberContextDep) -> List[TeamMemberCapacity]:
    return await capacity_service.list_team_capacity(session, organization_id=context.organization_id)


@router.put("/capacity/{user_id}", response_model=TeamMemberCapacity)
async def update_capacity(
    user_id: int,
    hours_in: WorkingHoursUpdate,
    session: SessionDep,
    context: MemberContextDep,
    background_tasks: BackgroundTasks,
) -> TeamMemberCapacity:
    if user_id != context.user_id and context.role not in (MemberRole.admin, MemberRole.manager):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Organization permission required")
    await capacity_service.upsert_working_hours(
        session,
        organization_id=context.organization_id,
        user_id=user_id,
        hours=hours_in,
    )
    schedule_snapshot_refresh(background_tasks, context.organization_id)
    capacity = await capacity_service.list_team_capacity(session, organization_id=context.organization_id)
    return next(member for member in capacity if member.user_id == user_id)
