from typing import Optional

from pydantic import BaseModel, Field


class WorkingHoursUpdate(BaseModel):
    monday_hours: Optional[float] = Field(default=None, ge=0, le=24)
    tuesday_hours: Optional[float] = Field(default=None, ge=0, le=24)
    wednesday_hours: Optional[float] = Field(default=None, ge=0, le=24)
    thursday_hours: Optional[float] = Field(default=None, ge=0, le=24)
    friday_hours: Optional[float] = Field(default=None, ge=0, le=24)
    saturday_hours: Optional[float] = Field(default=None, ge=0, le=24)
    sunday_hours: Optional[float] = Field(default=None, ge=0, le=24)


class TeamMemberCapacity(BaseModel):
    """Declared capacity for one member; default hours apply when nothing was declared."""

    user_id: int
    full_name: str
    role: str
    job_role: Optional[str] = None
    monday_hours: float
    tuesday_hours: float
    wednesday_hours: float
    thursday_hours: float
    friday_hours: float
    saturday_hours: float
    sunday_hours: float
    weekly_hours: float
    is_default: bool = Field(..., description="True when no working-hours record exists for the member")
