from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, DateTime, Float, UniqueConstraint
from sqlmodel import Field, SQLModel

WEEKDAY_FIELDS = (
    "monday_hours",
    "tuesday_hours",
    "wednesday_hours",
    "thursday_hours",
    "friday_hours",
    "saturday_hours",
    "sunday_hours",
)


def _hours_column(default: float) -> Column:
    return Column(Float, nullable=False, server_default=str(default))


class WorkingHours(SQLModel, table=True):
    """Declared working hours per weekday for one member of one organization."""

    __tablename__ = "team_working_hours"
    __table_args__ = (UniqueConstraint("organization_id", "user_id", name="uq_working_hours_member"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    organization_id: int = Field(foreign_key="organizations.id", nullable=False, index=True)
    user_id: int = Field(foreign_key="users.id", nullable=False)
    monday_hours: float = Field(default=8, sa_column=_hours_column(8))
    tuesday_hours: float = Field(default=8, sa_column=_hours_column(8))
    wednesday_hours: float = Field(default=8, sa_column=_hours_column(8))
    thursday_hours: float = Field(default=8, sa_column=_hours_column(8))
    friday_hours: float = Field(default=8, sa_column=_hours_column(8))
    saturday_hours: float = Field(default=0, sa_column=_hours_column(0))
    sunday_hours: float = Field(default=0, sa_column=_hours_column(0))
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )

    @property
    def weekly_hours(self) -> float:
        return sum(float(getattr(self, name) or 0) for name in WEEKDAY_FIELDS)
