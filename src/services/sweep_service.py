"""Daily sweep that auto-cancels tasks left PENDING past their assignment day."""

import logging
from datetime import datetime

from src.core import clock, db_client
from src.core.db_client import sanitize_param
from src.core.errors import ForbiddenError
from src.core.logging import span
from src.domain.notification import NotificationType
from src.domain.task import TaskState
from src.domain.user import Actor, ActorRole
from src.models.service_models import SweepSummary
from src.services import notification_service, task_service


logger = logging.getLogger(__name__)


async def find_stale_task_ids(*, today: str) -> list[str]:
    """IDs of every PENDING task assigned before ``today`` (YYYY-MM-DD)."""
    filter_query = f'current_state = "{TaskState.PENDING}" && assignment_date < "{sanitize_param(today)}"'
    records = await db_client.list_all_records(collection="tasks", filter_query=filter_query)
    return [record["id"] for record in records]


async def run_stale_sweep(*, now: datetime | None = None) -> SweepSummary:
    """Auto-cancel every stale PENDING task, one task at a time.

    Each task is cancelled and its worker notified independently; a failure is
    logged and counted without stopping the sweep. Running it again right
    after finds nothing to do.
    """
    with span("sweep_service.run_stale_sweep"):
        today = clock.local_day(now or clock.now()).isoformat()
        task_ids = await find_stale_task_ids(today=today)
        summary = SweepSummary(today=today, eligible=len(task_ids))

        for task_id in task_ids:
            try:
                task = await task_service.auto_cancel_task(task_id=task_id, today=today)
            except Exception:
                logger.error("Stale sweep failed for task", extra={"task_id": task_id}, exc_info=True)
                summary.failed_task_ids.append(task_id)
                continue

            summary.cancelled_task_ids.append(task.id)
            await notification_service.notify(NotificationType.TASK_AUTO_CANCELLED, task=task)

        if summary.eligible:
            await notification_service.announce_sweep(summary)

        logger.info(
            "Stale sweep finished",
            extra={"today": today, "eligible": summary.eligible, "cancelled": summary.succeeded, "failed": summary.failed},
        )
        return summary


async def trigger_stale_sweep(*, actor: Actor, now: datetime | None = None) -> SweepSummary:
    """Run the sweep on demand for a supervisor or administrator."""
    if actor.role not in {ActorRole.SUPERVISOR, ActorRole.ADMINISTRATOR}:
        raise ForbiddenError("Only supervisors and administrators can run the stale sweep")
    logger.info("Stale sweep triggered manually", extra={"actor_id": actor.id})
    return await run_stale_sweep(now=now)
