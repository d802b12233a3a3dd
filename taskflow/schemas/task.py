from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from taskflow.models.task import AssignmentStatus, CategoryKind, TaskPriority, TaskStatus


class TaskBase(BaseModel):
    title: str = Field(min_length=1, max_length=500)
    description: Optional[str] = None
    priority: TaskPriority = TaskPriority.medium
    category: str = CategoryKind.general.value
    due_date: Optional[date] = None
    project_id: Optional[int] = None

    @field_validator("category")
    @classmethod
    def normalize_category(cls, value: str) -> str:
        cleaned = value.strip().lower()
        return cleaned or CategoryKind.general.value


class TaskCreate(TaskBase):
    status: TaskStatus = TaskStatus.todo
    is_draft: bool = False
    assignee_ids: List[int] = Field(default_factory=list)


class TaskUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=500)
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    category: Optional[str] = None
    due_date: Optional[date] = None
    project_id: Optional[int] = None


class TaskPublishRequest(BaseModel):
    assignee_ids: List[int] = Field(default_factory=list)


class AssignmentRead(BaseModel):
    id: int
    task_id: int
    user_id: int
    assigned_by_id: Optional[int] = None
    status: AssignmentStatus
    decline_reason: Optional[str] = None
    reassignment_reason: Optional[str] = None
    created_at: datetime
    accepted_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TaskRead(TaskBase):
    id: int
    organization_id: int
    status: TaskStatus
    created_by_id: Optional[int] = None
    assigned_user_id: Optional[int] = None
    is_draft: bool
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None
    archived_at: Optional[datetime] = None
    assignments: List[AssignmentRead] = []

    class Config:
        from_attributes = True
