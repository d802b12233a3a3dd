"""
Workload and delivery-risk engine.

Everything in this module is a pure function of a fetched dataset and a single
snapshot timestamp, so one tenant's snapshot can be recomputed at any time and
in parallel with other tenants. Database access lives in ``snapshots.py``.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
import math
from typing import Iterable, Optional

from taskflow.models.task import AssignmentStatus, CategoryKind, Task, TaskAssignment, TaskPriority, TaskStatus
from taskflow.models.working_hours import WorkingHours
from taskflow.schemas.taskflow import MemberWorkload, TaskRisk, TaskflowSnapshot, WorkloadSummary

DEFAULT_WEEKLY_HOURS = 40.0
DEFAULT_AVG_COMPLETION_DAYS = 3.0
# Assumed hours of effort per active task per day
HOURS_PER_TASK_DAY = 2
WORKLOAD_CEILING = 150
AT_CAPACITY_THRESHOLD = 100
NEAR_CAPACITY_THRESHOLD = 80

RISK_ORDER: dict[str, int] = {"critical": 0, "high": 1, "medium": 2, "low": 3}
PRIORITY_ORDER: dict[str, int] = {
    TaskPriority.high.value: 0,
    TaskPriority.medium.value: 1,
    TaskPriority.low.value: 2,
}


@dataclass
class TeamMember:
    user_id: int
    full_name: str
    role: str = "member"
    job_role: Optional[str] = None


@dataclass
class TaskflowDataset:
    """Everything one snapshot needs, fetched in a single pass."""

    organization_id: int
    members: list[TeamMember] = field(default_factory=list)
    tasks: list[Task] = field(default_factory=list)
    assignments: list[TaskAssignment] = field(default_factory=list)
    working_hours: list[WorkingHours] = field(default_factory=list)
    display_names: dict[int, str] = field(default_factory=dict)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (SQLite round-trips) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _status_value(value) -> str:
    return getattr(value, "value", value)


def average_completion_days(tasks: Iterable[Task]) -> float:
    """Mean whole days from creation to completion, at least one day per task."""
    durations: list[int] = []
    for task in tasks:
        if _status_value(task.status) != TaskStatus.complete.value or task.completed_at is None:
            continue
        elapsed = as_utc(task.completed_at) - as_utc(task.created_at)
        durations.append(max(1, elapsed.days))
    if not durations:
        return DEFAULT_AVG_COMPLETION_DAYS
    return sum(durations) / len(durations)


def estimate_workload(active_tasks: int, avg_completion_time: float, weekly_hours: float) -> int:
    if weekly_hours <= 0:
        return 0
    hours_needed = active_tasks * avg_completion_time * HOURS_PER_TASK_DAY
    return min(WORKLOAD_CEILING, round_half_up(hours_needed / weekly_hours * 100))


def accepted_assignees_by_task(assignments: Iterable[TaskAssignment]) -> dict[int, list[int]]:
    accepted: dict[int, list[int]] = {}
    for assignment in assignments:
        if _status_value(assignment.status) != AssignmentStatus.accepted.value:
            continue
        accepted.setdefault(assignment.task_id, []).append(assignment.user_id)
    return accepted


def resolve_assignee_ids(task: Task, accepted_user_ids: Iterable[int] = ()) -> list[int]:
    """Primary assignee followed by accepted edge users, de-duplicated."""
    resolved: list[int] = []
    if task.assigned_user_id is not None:
        resolved.append(task.assigned_user_id)
    for user_id in accepted_user_ids:
        if user_id not in resolved:
            resolved.append(user_id)
    return resolved


def is_unassigned_risk(task: Task, assignee_ids: list[int]) -> bool:
    """High priority, nobody on it, and not a category that is self-assigned by design."""
    if _status_value(task.priority) != TaskPriority.high.value or assignee_ids:
        return False
    return not CategoryKind.from_category(task.category).self_assigned_by_design


def days_until(due_date: date, today: date) -> int:
    return (due_date - today).days


def classify_risk(
    task: Task,
    *,
    today: date,
    avg_completion_time: float,
    assignee_ids: list[int],
    assignee_workload: Optional[MemberWorkload] = None,
) -> tuple[str, str]:
    """
    Classify one open task. Checks run from most to least urgent and the first
    match wins, because the conditions overlap.

    Args:
        task: The task to classify
        today: Snapshot date; due dates are compared at day granularity
        avg_completion_time: Team-wide average completion time in days
        assignee_ids: Resolved assignees (primary plus accepted edges)
        assignee_workload: Workload of the primary assignee, if known

    Returns:
        A ``(risk_level, risk_reason)`` pair
    """
    status = _status_value(task.status)
    priority = _status_value(task.priority)

    if task.due_date is not None:
        if task.due_date < today and status != TaskStatus.complete.value:
            return "critical", "Task is overdue"

        days_until_due = days_until(task.due_date, today)

        if days_until_due <= 1 and status == TaskStatus.todo.value:
            return "critical", "Due tomorrow but still in To Do"

        if days_until_due <= 2 and assignee_workload is not None and assignee_workload.todo_tasks >= 3:
            return "high", f"Assignee has {assignee_workload.todo_tasks} pending tasks before deadline"

        if days_until_due < avg_completion_time:
            return "high", "May not complete before deadline"

        if days_until_due <= 2:
            return "medium", "Due within 2 days"

    if is_unassigned_risk(task, assignee_ids):
        return "high", "High priority task unassigned"

    task_age = (today - as_utc(task.created_at).date()).days
    if task_age > 14 and status == TaskStatus.todo.value:
        return "medium", "Task pending for over 2 weeks"

    if priority == TaskPriority.high.value:
        return "medium", "High priority task"

    return "low", "On track"


def ranking_key(task: TaskRisk) -> tuple:
    return (
        RISK_ORDER[task.risk_level],
        PRIORITY_ORDER.get(task.priority, len(PRIORITY_ORDER)),
        task.due_date is None,
        task.due_date or date.max,
    )


def rank_tasks(tasks: Iterable[TaskRisk]) -> list[TaskRisk]:
    """Order by risk, then priority, then due date with undated tasks last.

    ``sorted`` is stable, so ties keep fetch order.
    """
    return sorted(tasks, key=ranking_key)


def _weekly_hours_by_user(
    working_hours: Iterable[WorkingHours],
) -> dict[int, float]:
    return {record.user_id: record.weekly_hours for record in working_hours}


def compute_workloads(
    dataset: TaskflowDataset,
    *,
    today: date,
    avg_completion_time: float,
    default_weekly_hours: float = DEFAULT_WEEKLY_HOURS,
) -> dict[int, MemberWorkload]:
    declared_hours = _weekly_hours_by_user(dataset.working_hours)
    workloads: dict[int, MemberWorkload] = {}
    for member in dataset.members:
        workloads[member.user_id] = MemberWorkload(
            user_id=member.user_id,
            full_name=member.full_name,
            job_role=member.job_role,
            weekly_hours=declared_hours.get(member.user_id, default_weekly_hours),
            avg_completion_time=avg_completion_time,
        )

    accepted = accepted_assignees_by_task(dataset.assignments)
    for task in dataset.tasks:
        status = _status_value(task.status)
        is_high = _status_value(task.priority) == TaskPriority.high.value
        is_overdue = task.due_date is not None and task.due_date < today
        for user_id in resolve_assignee_ids(task, accepted.get(task.id, ())):
            workload = workloads.get(user_id)
            if workload is None:
                continue
            if status == TaskStatus.complete.value:
                workload.completed_tasks += 1
                continue
            if status == TaskStatus.in_progress.value:
                workload.in_progress_tasks += 1
            else:
                workload.todo_tasks += 1
            if is_high:
                workload.high_priority_tasks += 1
            if is_overdue:
                workload.overdue_tasks += 1

    for workload in workloads.values():
        workload.estimated_workload = estimate_workload(
            workload.active_tasks,
            avg_completion_time,
            workload.weekly_hours,
        )
    return workloads


def summarize_workloads(workloads: list[MemberWorkload]) -> WorkloadSummary:
    if not workloads:
        return WorkloadSummary()
    return WorkloadSummary(
        total_team_members=len(workloads),
        total_capacity=sum(workload.weekly_hours for workload in workloads),
        total_assigned_tasks=sum(workload.active_tasks for workload in workloads),
        average_workload=round_half_up(
            sum(workload.estimated_workload for workload in workloads) / len(workloads)
        ),
        members_at_capacity=sum(1 for w in workloads if w.estimated_workload >= AT_CAPACITY_THRESHOLD),
        members_near_capacity=sum(
            1 for w in workloads if NEAR_CAPACITY_THRESHOLD <= w.estimated_workload < AT_CAPACITY_THRESHOLD
        ),
        members_under_capacity=sum(1 for w in workloads if w.estimated_workload < NEAR_CAPACITY_THRESHOLD),
    )


def build_snapshot(
    dataset: TaskflowDataset,
    now: datetime,
    *,
    default_weekly_hours: float = DEFAULT_WEEKLY_HOURS,
) -> TaskflowSnapshot:
    """Compute workloads, risk classifications and ranking for one tenant."""
    now = as_utc(now)
    today = now.date()
    avg_completion_time = average_completion_days(dataset.tasks)
    workloads = compute_workloads(
        dataset,
        today=today,
        avg_completion_time=avg_completion_time,
        default_weekly_hours=default_weekly_hours,
    )

    accepted = accepted_assignees_by_task(dataset.assignments)
    at_risk: list[TaskRisk] = []
    for task in dataset.tasks:
        if _status_value(task.status) == TaskStatus.complete.value:
            continue
        assignee_ids = resolve_assignee_ids(task, accepted.get(task.id, ()))
        primary_workload = workloads.get(task.assigned_user_id) if task.assigned_user_id is not None else None
        level, reason = classify_risk(
            task,
            today=today,
            avg_completion_time=avg_completion_time,
            assignee_ids=assignee_ids,
            assignee_workload=primary_workload,
        )
        at_risk.append(
            TaskRisk(
                id=task.id,
                title=task.title,
                description=task.description,
                status=_status_value(task.status),
                priority=_status_value(task.priority),
                category=task.category,
                due_date=task.due_date,
                created_at=as_utc(task.created_at),
                completed_at=as_utc(task.completed_at) if task.completed_at else None,
                project_id=task.project_id,
                assigned_user_id=task.assigned_user_id,
                assigned_user_name=dataset.display_names.get(task.assigned_user_id)
                if task.assigned_user_id is not None
                else None,
                assignee_ids=assignee_ids,
                risk_level=level,
                risk_reason=reason,
                predicted_completion_days=avg_completion_time,
            )
        )

    workload_list = list(workloads.values())
    return TaskflowSnapshot(
        organization_id=dataset.organization_id,
        generated_at=now,
        average_completion_days=avg_completion_time,
        workloads=workload_list,
        ranked_tasks=rank_tasks(at_risk),
        summary=summarize_workloads(workload_list),
    )


def empty_snapshot(organization_id: int, now: datetime) -> TaskflowSnapshot:
    return TaskflowSnapshot(
        organization_id=organization_id,
        generated_at=as_utc(now),
        average_completion_days=DEFAULT_AVG_COMPLETION_DAYS,
    )
