from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

RiskLevel = Literal["low", "medium", "high", "critical"]
AlertType = Literal["overdue", "at-risk", "overload", "near-capacity", "unassigned", "on-track", "workload-summary"]
AlertSeverity = Literal["info", "success", "warning", "critical"]
AlertCategory = Literal["live-overview", "tasks-at-risk", "capacity", "on-track"]


class MemberWorkload(BaseModel):
    """Per-member counters and estimated load derived from the open task set."""

    user_id: int
    full_name: str
    job_role: Optional[str] = None
    todo_tasks: int = 0
    in_progress_tasks: int = 0
    completed_tasks: int = 0
    high_priority_tasks: int = 0
    overdue_tasks: int = 0
    weekly_hours: float = Field(..., description="Declared weekly hours (default applies when undeclared)")
    estimated_workload: int = Field(0, description="Estimated load as a percentage of weekly hours, capped at 150")
    avg_completion_time: float = Field(..., description="Team-wide average completion time in days")

    @property
    def active_tasks(self) -> int:
        return self.todo_tasks + self.in_progress_tasks


class TaskRisk(BaseModel):
    """An open task with its risk classification."""

    id: int
    title: str
    description: Optional[str] = None
    status: str
    priority: str
    category: str
    due_date: Optional[date] = None
    created_at: datetime
    completed_at: Optional[datetime] = None
    project_id: Optional[int] = None
    assigned_user_id: Optional[int] = None
    assigned_user_name: Optional[str] = None
    assignee_ids: List[int] = Field(default_factory=list)
    risk_level: RiskLevel
    risk_reason: str
    predicted_completion_days: float


class WorkloadSummary(BaseModel):
    total_team_members: int = 0
    total_capacity: float = Field(0, description="Sum of weekly hours across members")
    total_assigned_tasks: int = 0
    average_workload: int = 0
    members_at_capacity: int = 0
    members_near_capacity: int = 0
    members_under_capacity: int = 0


class TaskflowSnapshot(BaseModel):
    """One consistent computed pass over a tenant's task graph."""

    organization_id: int
    generated_at: datetime
    average_completion_days: float
    workloads: List[MemberWorkload] = Field(default_factory=list)
    ranked_tasks: List[TaskRisk] = Field(default_factory=list)
    summary: WorkloadSummary = Field(default_factory=WorkloadSummary)


class Alert(BaseModel):
    id: str
    type: AlertType
    severity: AlertSeverity
    message: str
    details: Optional[str] = None
    task_id: Optional[int] = None
    user_id: Optional[int] = None
    category: AlertCategory
