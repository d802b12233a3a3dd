from typing import Optional

from pydantic import BaseModel, Field


class DeclineRequest(BaseModel):
    # Emptiness is checked by the service so it surfaces as a domain validation error
    reason: str = ""


class ReassignRequest(BaseModel):
    from_user_id: Optional[int] = None
    to_user_id: int = Field(gt=0)
    reason: str = ""
