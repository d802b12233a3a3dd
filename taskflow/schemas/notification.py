from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from taskflow.models.notification import NotificationType


class NotificationRead(BaseModel):
    """One in-app notification produced from an assignment event."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    organization_id: Optional[int] = None
    type: NotificationType
    # Event payload: task_id, task_title, event, actor_name and the user ids involved
    data: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    read_at: Optional[datetime] = None


class NotificationListResponse(BaseModel):
    notifications: List[NotificationRead]
    unread_count: int


class NotificationCountResponse(BaseModel):
    unread_count: int
