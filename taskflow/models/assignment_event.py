from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from sqlalchemy import Column, DateTime, Integer, JSON, String
from sqlmodel import Field, SQLModel


class AssignmentEventType(str, Enum):
    created = "assignment_created"
    accepted = "assignment_accepted"
    declined = "assignment_declined"
    reassigned = "assignment_reassigned"
    reminder = "assignment_reminder"


class AssignmentEvent(SQLModel, table=True):
    """Outbox row written in the same transaction as the edge mutation it describes."""

    __tablename__ = "assignment_events"

    id: Optional[int] = Field(default=None, primary_key=True)
    organization_id: int = Field(foreign_key="organizations.id", nullable=False, index=True)
    # Plain column: the task may be purged before the event is consumed
    task_id: int = Field(sa_column=Column(Integer, nullable=False))
    type: AssignmentEventType = Field(sa_column=Column(String(64), nullable=False))
    payload: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSON, nullable=False, server_default="{}"),
    )
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    processed_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True, index=True),
    )
