"""Import all models for Alembic or metadata creation."""

from taskflow.models.assignment_event import AssignmentEvent
from taskflow.models.notification import Notification
from taskflow.models.organization import Organization, OrganizationMember
from taskflow.models.task import Task, TaskAssignment
from taskflow.models.user import User
from taskflow.models.working_hours import WorkingHours

__all__ = [
    "AssignmentEvent",
    "Notification",
    "Organization",
    "OrganizationMember",
    "Task",
    "TaskAssignment",
    "User",
    "WorkingHours",
]
