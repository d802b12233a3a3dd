from fastapi import APIRouter

from taskflow.api.v1.endpoints import assignments, events, insights, notifications, tasks

api_router = APIRouter()
api_router.include_router(tasks.router, prefix="/tasks", tags=["tasks"])
api_router.include_router(assignments.router, prefix="/tasks", tags=["assignments"])
api_router.include_router(insights.router, prefix="/taskflow", tags=["taskflow"])
api_router.include_router(notifications.router, prefix="/notifications", tags=["notifications"])
api_router.include_router(events.router, prefix="/events", tags=["events"])
