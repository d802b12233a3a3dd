from __future__ import annotations

import asyncio
import logging

from taskflow.core.config import settings

logger = logging.getLogger(__name__)


async def _loop_worker(task_coro, interval: int, name: str) -> None:
    logger.info("%s worker started (interval=%ss)", name, interval)
    try:
        while True:
            try:
                await task_coro()
            except Exception:  # pragma: no cover
                logger.exception("%s worker encountered an error", name)
            await asyncio.sleep(interval)
    except asyncio.CancelledError:  # pragma: no cover
        logger.info("%s worker cancelled", name)
        raise


def start_background_tasks() -> list[asyncio.Task]:
    from taskflow.services.assignments import process_pending_reminders
    from taskflow.services.notifications import process_assignment_events
    from taskflow.services.snapshots import refresh_all_snapshots
    from taskflow.services.tasks import process_task_retention

    return [
        asyncio.create_task(
            _loop_worker(refresh_all_snapshots, settings.SNAPSHOT_REFRESH_SECONDS, "snapshot-refresh")
        ),
        asyncio.create_task(
            _loop_worker(process_assignment_events, settings.EVENT_DISPATCH_SECONDS, "assignment-events")
        ),
        asyncio.create_task(
            _loop_worker(process_pending_reminders, settings.REMINDER_POLL_SECONDS, "pending-reminders")
        ),
        asyncio.create_task(
            _loop_worker(process_task_retention, settings.RETENTION_POLL_SECONDS, "task-retention")
        ),
    ]
