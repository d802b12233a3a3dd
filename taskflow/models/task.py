from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlmodel import Enum as SQLEnum, Field, SQLModel


def _enum_values(enum_cls: type[Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class TaskStatus(str, Enum):
    todo = "todo"
    in_progress = "in-progress"
    complete = "complete"


class TaskPriority(str, Enum):
    high = "high"
    medium = "medium"
    low = "low"


class CategoryKind(str, Enum):
    """Classification of the free-form task category.

    Operational and strategic work is self-assigned by product convention, so a
    missing assignee on those tasks is expected rather than a risk signal.
    """

    operational = "operational"
    strategic = "strategic"
    general = "general"

    @classmethod
    def from_category(cls, category: str | None) -> "CategoryKind":
        normalized = (category or "").strip().lower()
        for kind in (cls.operational, cls.strategic):
            if normalized == kind.value:
                return kind
        return cls.general

    @property
    def self_assigned_by_design(self) -> bool:
        return self in (CategoryKind.operational, CategoryKind.strategic)


class AssignmentStatus(str, Enum):
    pending = "pending"
    accepted = "accepted"
    declined = "declined"


class Task(SQLModel, table=True):
    __tablename__ = "tasks"

    id: Optional[int] = Field(default=None, primary_key=True)
    organization_id: int = Field(foreign_key="organizations.id", nullable=False, index=True)
    project_id: Optional[int] = Field(default=None, index=True)
    title: str = Field(nullable=False)
    description: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    status: TaskStatus = Field(
        default=TaskStatus.todo,
        sa_column=Column(
            SQLEnum(TaskStatus, name="task_status", values_callable=_enum_values),
            nullable=False,
            server_default=TaskStatus.todo.value,
        ),
    )
    priority: TaskPriority = Field(
        default=TaskPriority.medium,
        sa_column=Column(
            SQLEnum(TaskPriority, name="task_priority", values_callable=_enum_values),
            nullable=False,
            server_default=TaskPriority.medium.value,
        ),
    )
    category: str = Field(
        default=CategoryKind.general.value,
        sa_column=Column(String(64), nullable=False, server_default=CategoryKind.general.value),
    )
    due_date: Optional[date] = Field(default=None, sa_column=Column(Date, nullable=True))
    created_by_id: Optional[int] = Field(
        default=None,
        sa_column=Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
    )
    assigned_user_id: Optional[int] = Field(
        default=None,
        sa_column=Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True),
    )
    is_draft: bool = Field(
        default=False,
        sa_column=Column(Boolean, nullable=False, server_default="false"),
    )
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    completed_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )
    deleted_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True, index=True),
    )
    archived_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )

    @property
    def category_kind(self) -> CategoryKind:
        return CategoryKind.from_category(self.category)

    @property
    def is_on_board(self) -> bool:
        return self.deleted_at is None and self.archived_at is None and not self.is_draft


class TaskAssignment(SQLModel, table=True):
    """Edge between a task and one candidate assignee with its own lifecycle."""

    __tablename__ = "task_assignments"
    __table_args__ = (UniqueConstraint("task_id", "user_id", name="uq_task_assignments_task_user"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    task_id: int = Field(
        sa_column=Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True),
    )
    user_id: int = Field(foreign_key="users.id", nullable=False, index=True)
    assigned_by_id: Optional[int] = Field(
        default=None,
        sa_column=Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
    )
    status: AssignmentStatus = Field(
        default=AssignmentStatus.pending,
        sa_column=Column(
            SQLEnum(AssignmentStatus, name="assignment_status", values_callable=_enum_values),
            nullable=False,
            server_default=AssignmentStatus.pending.value,
        ),
    )
    decline_reason: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    reassignment_reason: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    accepted_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )
    last_reminder_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )
