from typing import Optional

from fastapi import APIRouter, BackgroundTasks, HTTPException, status

from taskflow.api.deps import MemberContext, MemberContextDep, SessionDep, schedule_snapshot_refresh
from taskflow.models.organization import MemberRole
from taskflow.models.task import Task
from taskflow.schemas.assignment import DeclineRequest, ReassignRequest
from taskflow.schemas.task import AssignmentRead
from taskflow.services import assignments as assignments_service
from taskflow.services import tasks as tasks_service
from taskflow.services.realtime import broadcast_event

router = APIRouter()

MANAGER_ROLES = (MemberRole.admin, MemberRole.manager)


def _ensure_can_release(task: Task, assignee_id: Optional[int], context: MemberContext) -> None:
    """Only the assignee, the task creator or a manager may move an assignee off a task."""
    if assignee_id is not None and assignee_id == context.user_id:
        return
    if task.created_by_id == context.user_id or context.role in MANAGER_ROLES:
        return
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Task access denied")


async def _assignment_changed(
    background_tasks: BackgroundTasks,
    action: str,
    payload: dict,
    organization_id: int,
) -> None:
    schedule_snapshot_refresh(background_tasks, organization_id)
    await broadcast_event("assignment", action, payload, organization_id=organization_id)


@router.post("/{task_id}/assignments/accept", response_model=AssignmentRead)
async def accept_assignment(
    task_id: int,
    session: SessionDep,
    context: MemberContextDep,
    background_tasks: BackgroundTasks,
) -> AssignmentRead:
    assignment = await assignments_service.accept_assignment(
        session,
        task_id=task_id,
        user_id=context.user_id,
        organization_id=context.organization_id,
    )
    payload = AssignmentRead.model_validate(assignment)
    await _assignment_changed(background_tasks, "accepted", payload.model_dump(mode="json"), context.organization_id)
    return payload


@router.post("/{task_id}/assignments/decline", status_code=status.HTTP_204_NO_CONTENT)
async def decline_assignment(
    task_id: int,
    decline_in: DeclineRequest,
    session: SessionDep,
    context: MemberContextDep,
    background_tasks: BackgroundTasks,
) -> None:
    await assignments_service.decline_assignment(
        session,
        task_id=task_id,
        user_id=context.user_id,
        reason=decline_in.reason,
        organization_id=context.organization_id,
    )
    await _assignment_changed(
        background_tasks,
        "declined",
        {"task_id": task_id, "user_id": context.user_id},
        context.organization_id,
    )


@router.post("/{task_id}/assignments/reassign", response_model=AssignmentRead)
async def reassign_task(
    task_id: int,
    reassign_in: ReassignRequest,
    session: SessionDep,
    context: MemberContextDep,
    background_tasks: BackgroundTasks,
) -> AssignmentRead:
    task = await tasks_service.get_task(session, task_id, organization_id=context.organization_id)
    outgoing_user_id = reassign_in.from_user_id if reassign_in.from_user_id is not None else task.assigned_user_id
    _ensure_can_release(task, outgoing_user_id, context)
    assignment = await assignments_service.reassign_task(
        session,
        task_id=task_id,
        actor_id=context.user_id,
        from_user_id=reassign_in.from_user_id,
        to_user_id=reassign_in.to_user_id,
        reason=reassign_in.reason,
        organization_id=context.organization_id,
    )
    payload = AssignmentRead.model_validate(assignment)
    await _assignment_changed(background_tasks, "reassigned", payload.model_dump(mode="json"), context.organization_id)
    return payload


@router.delete("/{task_id}/assignments/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def unassign_user(
    task_id: int,
    user_id: int,
    session: SessionDep,
    context: MemberContextDep,
    background_tasks: BackgroundTasks,
) -> None:
    task = await tasks_service.get_task(session, task_id, organization_id=context.organization_id)
    _ensure_can_release(task, user_id, context)
    await assignments_service.unassign_user(
        session,
        task_id=task_id,
        user_id=user_id,
        organization_id=context.organization_id,
    )
    await _assignment_changed(
        background_tasks,
        "unassigned",
        {"task_id": task_id, "user_id": user_id},
        context.organization_id,
    )
