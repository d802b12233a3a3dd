from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, HTTPException, Query, status

from taskflow.api.deps import MemberContext, MemberContextDep, SessionDep, schedule_snapshot_refresh
from taskflow.models.organization import MemberRole
from taskflow.models.task import AssignmentStatus, Task, TaskAssignment, TaskStatus
from taskflow.schemas.task import AssignmentRead, TaskCreate, TaskPublishRequest, TaskRead, TaskUpdate
from taskflow.services import assignments as assignments_service
from taskflow.services import tasks as tasks_service
from taskflow.services.realtime import broadcast_event

router = APIRouter()

MANAGER_ROLES = (MemberRole.admin, MemberRole.manager)


def _task_read(task: Task, assignments: List[TaskAssignment]) -> TaskRead:
    return TaskRead.model_validate(task).model_copy(
        update={"assignments": [AssignmentRead.model_validate(assignment) for assignment in assignments]}
    )


async def _task_reads(session: SessionDep, tasks: List[Task]) -> List[TaskRead]:
    grouped = await tasks_service.list_assignments(session, [task.id for task in tasks])
    return [_task_read(task, grouped.get(task.id, [])) for task in tasks]


async def _read_one(session: SessionDep, task: Task) -> TaskRead:
    return (await _task_reads(session, [task]))[0]


def _ensure_can_manage(task: Task, context: MemberContext) -> None:
    if task.created_by_id == context.user_id or context.role in MANAGER_ROLES:
        return
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the creator or a manager can do this")


async def _ensure_can_edit(session: SessionDep, task: Task, context: MemberContext) -> None:
    if task.created_by_id == context.user_id or context.role in MANAGER_ROLES:
        return
    assignment = await assignments_service.get_assignment(session, task_id=task.id, user_id=context.user_id)
    if assignment is None or assignment.status != AssignmentStatus.accepted:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Task access denied")


async def _changed(
    background_tasks: BackgroundTasks,
    action: str,
    payload: TaskRead,
    organization_id: int,
) -> None:
    schedule_snapshot_refresh(background_tasks, organization_id)
    await broadcast_event("task", action, payload.model_dump(mode="json"), organization_id=organization_id)


@router.get("/", response_model=List[TaskRead])
async def list_board(
    session: SessionDep,
    context: MemberContextDep,
    status_filter: Optional[TaskStatus] = Query(default=None, alias="status"),
    category: Optional[str] = Query(default=None),
) -> List[TaskRead]:
    tasks = await tasks_service.list_board_tasks(
        session,
        organization_id=context.organization_id,
        user_id=context.user_id,
        status=status_filter,
        category=category,
    )
    return await _task_reads(session, tasks)


@router.get("/drafts", response_model=List[TaskRead])
async def list_drafts(session: SessionDep, context: MemberContextDep) -> List[TaskRead]:
    tasks = await tasks_service.list_drafts(
        session,
        organization_id=context.organization_id,
        creator_id=context.user_id,
    )
    return await _task_reads(session, tasks)


@router.get("/requests", response_model=List[TaskRead])
async def list_requests(session: SessionDep, context: MemberContextDep) -> List[TaskRead]:
    tasks = await tasks_service.list_pending_requests(
        session,
        organization_id=context.organization_id,
        user_id=context.user_id,
    )
    return await _task_reads(session, tasks)


@router.get("/deleted", response_model=List[TaskRead])
async def list_deleted(session: SessionDep, context: MemberContextDep) -> List[TaskRead]:
    tasks = await tasks_service.list_deleted_tasks(session, organization_id=context.organization_id)
    if context.role not in MANAGER_ROLES:
        tasks = [task for task in tasks if task.created_by_id == context.user_id]
    return await _task_reads(session, tasks)


@router.post("/", response_model=TaskRead, status_code=status.HTTP_201_CREATED)
async def create_task(
    task_in: TaskCreate,
    session: SessionDep,
    context: MemberContextDep,
    background_tasks: BackgroundTasks,
) -> TaskRead:
    # Stays a draft until publishing succeeds
    publish = bool(task_in.assignee_ids) and not task_in.is_draft
    task = await tasks_service.create_task(
        session,
        organization_id=context.organization_id,
        creator_id=context.user_id,
        task_in=task_in,
        is_draft=True if publish else None,
    )
    if publish:
        task = await assignments_service.publish_task(
            session,
            task=task,
            actor_id=context.user_id,
            assignee_ids=task_in.assignee_ids,
        )
    payload = await _read_one(session, task)
    await _changed(background_tasks, "created", payload, context.organization_id)
    return payload


@router.get("/{task_id}", response_model=TaskRead)
async def read_task(task_id: int, session: SessionDep, context: MemberContextDep) -> TaskRead:
    task = await tasks_service.get_task(session, task_id, organization_id=context.organization_id)
    return await _read_one(session, task)


@router.patch("/{task_id}", response_model=TaskRead)
async def update_task(
    task_id: int,
    task_in: TaskUpdate,
    session: SessionDep,
    context: MemberContextDep,
    background_tasks: BackgroundTasks,
) -> TaskRead:
    task = await tasks_service.get_task(session, task_id, organization_id=context.organization_id)
    await _ensure_can_edit(session, task, context)
    task = await tasks_service.update_task(session, task, task_in)
    payload = await _read_one(session, task)
    await _changed(background_tasks, "updated", payload, context.organization_id)
    return payload


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(
    task_id: int,
    session: SessionDep,
    context: MemberContextDep,
    background_tasks: BackgroundTasks,
) -> None:
    task = await tasks_service.get_task(session, task_id, organization_id=context.organization_id)
    _ensure_can_manage(task, context)
    await tasks_service.soft_delete_task(session, task)
    schedule_snapshot_refresh(background_tasks, context.organization_id)
    await broadcast_event("task", "deleted", {"id": task_id}, organization_id=context.organization_id)


@router.post("/{task_id}/restore", response_model=TaskRead)
async def restore_task(
    task_id: int,
    session: SessionDep,
    context: MemberContextDep,
    background_tasks: BackgroundTasks,
) -> TaskRead:
    task = await tasks_service.get_task(
        session,
        task_id,
        organization_id=context.organization_id,
        include_deleted=True,
    )
    _ensure_can_manage(task, context)
    task = await tasks_service.restore_task(session, task)
    payload = await _read_one(session, task)
    await _changed(background_tasks, "restored", payload, context.organization_id)
    return payload


@router.post("/{task_id}/publish", response_model=TaskRead)
async def publish_task(
    task_id: int,
    publish_in: TaskPublishRequest,
    session: SessionDep,
    context: MemberContextDep,
    background_tasks: BackgroundTasks,
) -> TaskRead:
    task = await tasks_service.get_task(session, task_id, organization_id=context.organization_id)
    _ensure_can_manage(task, context)
    task = await assignments_service.publish_task(
        session,
        task=task,
        actor_id=context.user_id,
        assignee_ids=publish_in.assignee_ids,
    )
    payload = await _read_one(session, task)
    await _changed(background_tasks, "published", payload, context.organization_id)
    return payload
