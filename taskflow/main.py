import asyncio
import logging
from contextlib import suppress

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from taskflow.api.v1.api import api_router
from taskflow.core.config import settings
from taskflow.core.exceptions import ConflictError, NotFoundError, TaskflowError, ValidationError
from taskflow.db.session import run_migrations
from taskflow.services.background_tasks import start_background_tasks

logger = logging.getLogger(__name__)

ERROR_STATUS_CODES: dict[type[TaskflowError], int] = {
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ConflictError: status.HTTP_409_CONFLICT,
}

app = FastAPI(
    title=settings.PROJECT_NAME,
    docs_url=f"{settings.API_V1_STR}/docs",
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    redoc_url=None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix=settings.API_V1_STR)


@app.exception_handler(TaskflowError)
async def taskflow_error_handler(request: Request, exc: TaskflowError) -> JSONResponse:
    status_code = next(
        (code for error_cls, code in ERROR_STATUS_CODES.items() if isinstance(exc, error_cls)),
        status.HTTP_503_SERVICE_UNAVAILABLE,
    )
    if status_code >= 500:
        logger.error("Unhandled task service fault on %s: %s", request.url.path, exc.detail)
    return JSONResponse(status_code=status_code, content={"detail": exc.detail})


@app.on_event("startup")
async def on_startup() -> None:
    if settings.RUN_MIGRATIONS_ON_STARTUP:
        await run_migrations()
    app.state.background_tasks = start_background_tasks() if settings.BACKGROUND_WORKERS_ENABLED else []


@app.on_event("shutdown")
async def on_shutdown() -> None:
    tasks = getattr(app.state, "background_tasks", [])
    for task in tasks:
        task.cancel()
    for task in tasks:
        with suppress(asyncio.CancelledError):
            await task
