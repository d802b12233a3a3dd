"""
Per-user board visibility.

A task is visible to a user when the user holds an accepted edge, or when the
user created the task and it either has an accepted edge or no edges at all.
``is_task_visible`` evaluates the rule in memory; ``visible_to_user`` is the
same rule as a SQL filter for board queries.
"""

from typing import Iterable

from sqlalchemy import and_, exists, or_, select
from sqlalchemy.sql.elements import ColumnElement

from taskflow.models.task import AssignmentStatus, Task, TaskAssignment


def _status_value(value) -> str:
    return getattr(value, "value", value)


def is_task_visible(task: Task, assignments: Iterable[TaskAssignment], user_id: int) -> bool:
    edges = [assignment for assignment in assignments if assignment.task_id == task.id]
    accepted = [edge for edge in edges if _status_value(edge.status) == AssignmentStatus.accepted.value]
    if any(edge.user_id == user_id for edge in accepted):
        return True
    if task.created_by_id != user_id:
        return False
    return bool(accepted) or not edges


def visible_to_user(user_id: int) -> ColumnElement[bool]:
    accepted_by_user = exists(
        select(TaskAssignment.id).where(
            TaskAssignment.task_id == Task.id,
            TaskAssignment.user_id == user_id,
            TaskAssignment.status == AssignmentStatus.accepted,
        )
    )
    any_accepted = exists(
        select(TaskAssignment.id).where(
            TaskAssignment.task_id == Task.id,
            TaskAssignment.status == AssignmentStatus.accepted,
        )
    )
    any_edge = exists(select(TaskAssignment.id).where(TaskAssignment.task_id == Task.id))
    return or_(
        accepted_by_user,
        and_(Task.created_by_id == user_id, or_(any_accepted, ~any_edge)),
    )


def on_board() -> ColumnElement[bool]:
    return and_(
        Task.deleted_at.is_(None),
        Task.archived_at.is_(None),
        Task.is_draft.is_(False),
    )
