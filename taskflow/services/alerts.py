"""Projection of a taskflow snapshot into operator-facing alerts."""

from typing import Optional

from taskflow.models.task import CategoryKind, TaskPriority, TaskStatus
from taskflow.schemas.taskflow import Alert, MemberWorkload, TaskRisk, TaskflowSnapshot
from taskflow.services.risk import AT_CAPACITY_THRESHOLD, NEAR_CAPACITY_THRESHOLD, days_until

OVERLOAD_CRITICAL_THRESHOLD = 120
ON_TRACK_PREVIEW_LIMIT = 3
ON_TRACK_INDIVIDUAL_LIMIT = 3


def _plural(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


def _assignee_details(task: TaskRisk) -> str:
    return f"Assigned to {task.assigned_user_name}" if task.assigned_user_name else "Unassigned"


def _workload_details(member: MemberWorkload) -> str:
    return f"{member.estimated_workload}% workload | {member.active_tasks} active tasks"


def _is_unassigned_high_priority(task: TaskRisk) -> bool:
    if task.priority != TaskPriority.high.value or task.assignee_ids:
        return False
    return not CategoryKind.from_category(task.category).self_assigned_by_design


def _live_overview(snapshot: TaskflowSnapshot) -> list[Alert]:
    summary = snapshot.summary
    return [
        Alert(
            id="workload-summary",
            type="workload-summary",
            severity="info",
            category="live-overview",
            message="Team Capacity Overview",
            details=(
                f"{summary.total_team_members} members | "
                f"{summary.total_assigned_tasks} active tasks | "
                f"{summary.average_workload}% avg workload"
            ),
        )
    ]


def _tasks_at_risk(snapshot: TaskflowSnapshot) -> list[Alert]:
    today = snapshot.generated_at.date()
    workloads = {member.user_id: member for member in snapshot.workloads}
    alerts: list[Alert] = []

    for task in snapshot.ranked_tasks:
        if task.due_date is None or task.status == TaskStatus.complete.value:
            continue
        if task.due_date < today:
            days_overdue = (today - task.due_date).days
            alerts.append(
                Alert(
                    id=f"overdue-{task.id}",
                    type="overdue",
                    severity="critical",
                    category="tasks-at-risk",
                    message=f'"{task.title}" is {_plural(days_overdue, "day")} overdue',
                    details=_assignee_details(task),
                    task_id=task.id,
                )
            )

    for task in snapshot.ranked_tasks:
        if task.due_date is None or task.status != TaskStatus.todo.value:
            continue
        if days_until(task.due_date, today) == 1:
            alerts.append(
                Alert(
                    id=f"due-tomorrow-{task.id}",
                    type="at-risk",
                    severity="critical",
                    category="tasks-at-risk",
                    message=f'"{task.title}" is due tomorrow but still in To Do',
                    details=_assignee_details(task),
                    task_id=task.id,
                )
            )

    for task in snapshot.ranked_tasks:
        if task.due_date is None or task.assigned_user_id is None:
            continue
        member: Optional[MemberWorkload] = workloads.get(task.assigned_user_id)
        remaining = days_until(task.due_date, today)
        if member is None or not 0 < remaining <= 2 or member.todo_tasks < 3:
            continue
        alerts.append(
            Alert(
                id=f"overloaded-assignee-{task.id}",
                type="at-risk",
                severity="warning",
                category="tasks-at-risk",
                message=f'"{task.title}" at risk - assignee has heavy workload',
                details=f"{task.assigned_user_name or member.full_name} has {member.todo_tasks} tasks pending",
                task_id=task.id,
                user_id=task.assigned_user_id,
            )
        )

    for task in snapshot.ranked_tasks:
        if not _is_unassigned_high_priority(task):
            continue
        alerts.append(
            Alert(
                id=f"unassigned-{task.id}",
                type="unassigned",
                severity="warning",
                category="tasks-at-risk",
                message=f'High priority task "{task.title}" is unassigned',
                task_id=task.id,
            )
        )
    return alerts


def _capacity(snapshot: TaskflowSnapshot) -> list[Alert]:
    alerts: list[Alert] = []
    for member in snapshot.workloads:
        if member.estimated_workload < AT_CAPACITY_THRESHOLD:
            continue
        alerts.append(
            Alert(
                id=f"overload-{member.user_id}",
                type="overload",
                severity="critical" if member.estimated_workload > OVERLOAD_CRITICAL_THRESHOLD else "warning",
                category="capacity",
                message=f"{member.full_name} is at full capacity",
                details=_workload_details(member),
                user_id=member.user_id,
            )
        )
    for member in snapshot.workloads:
        if not NEAR_CAPACITY_THRESHOLD <= member.estimated_workload < AT_CAPACITY_THRESHOLD:
            continue
        alerts.append(
            Alert(
                id=f"near-capacity-{member.user_id}",
                type="near-capacity",
                severity="warning",
                category="capacity",
                message=f"{member.full_name} is approaching capacity",
                details=_workload_details(member),
                user_id=member.user_id,
            )
        )
    return alerts


def _on_track(snapshot: TaskflowSnapshot) -> list[Alert]:
    today = snapshot.generated_at.date()
    on_track = [
        task
        for task in snapshot.ranked_tasks
        if task.status == TaskStatus.in_progress.value and task.risk_level == "low"
    ]
    if not on_track:
        return []

    preview = ", ".join(task.title for task in on_track[:ON_TRACK_PREVIEW_LIMIT])
    if len(on_track) > ON_TRACK_PREVIEW_LIMIT:
        preview += f" +{len(on_track) - ON_TRACK_PREVIEW_LIMIT} more"
    alerts = [
        Alert(
            id="on-track-summary",
            type="on-track",
            severity="success",
            category="on-track",
            message=f"{_plural(len(on_track), 'task')} progressing on schedule",
            details=preview,
        )
    ]

    upcoming = [
        task
        for task in on_track
        if task.due_date is not None and 2 <= days_until(task.due_date, today) <= 7
    ]
    for task in upcoming[:ON_TRACK_INDIVIDUAL_LIMIT]:
        details = f"Due in {days_until(task.due_date, today)} days"
        if task.assigned_user_name:
            details += f" • {task.assigned_user_name}"
        alerts.append(
            Alert(
                id=f"on-track-{task.id}",
                type="on-track",
                severity="success",
                category="on-track",
                message=f'"{task.title}" is on track',
                details=details,
                task_id=task.id,
            )
        )
    return alerts


def generate_alerts(snapshot: TaskflowSnapshot) -> list[Alert]:
    """
    Build the alert list for a snapshot.

    Alerts come out grouped live-overview, tasks-at-risk, capacity, on-track.
    Ids are stable (``<kind>-<task or user id>``) and the first alert for an id
    wins, so incremental consumers can merge repeated snapshots safely.
    """
    alerts: dict[str, Alert] = {}
    for group in (_live_overview, _tasks_at_risk, _capacity, _on_track):
        for alert in group(snapshot):
            alerts.setdefault(alert.id, alert)
    return list(alerts.values())
