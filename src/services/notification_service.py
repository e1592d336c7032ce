"""Notification dispatcher: durable records plus best-effort live pushes.

Workflow operations commit their transition first and then hand the event to
``notify_later``. Delivery runs as a tracked background task, so a storage or
push failure is logged and never reaches the caller of the transition.
"""

import asyncio
import contextvars
import logging
import math
from collections.abc import Coroutine
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Any

from src.core import clock, db_client
from src.core.config import Constants, settings
from src.core.db_client import sanitize_param
from src.core.errors import ForbiddenError, InvalidInputError, NotFoundError
from src.core.logging import span
from src.domain.notification import LIVE_EVENT_NAMES, Notification, NotificationType
from src.domain.task import Task
from src.domain.user import ActorRole, Worker
from src.interface.live_channel import connection_registry
from src.models.service_models import NotificationPage, SweepSummary
from src.services import identity_service


logger = logging.getLogger(__name__)


class Audience(StrEnum):
    """Who receives each notification type."""

    WORKER = "worker"
    SUPERVISOR = "supervisor"
    ALL_SUPERVISORS = "all_supervisors"


AUDIENCES: dict[NotificationType, Audience] = {
    NotificationType.TASK_ASSIGNED: Audience.WORKER,
    NotificationType.TASK_CANCELLED: Audience.WORKER,
    NotificationType.TASK_AUTO_CANCELLED: Audience.WORKER,
    NotificationType.CHECKLIST_SUBMITTED: Audience.SUPERVISOR,
    NotificationType.CHECKLIST_APPROVED: Audience.WORKER,
    NotificationType.CHECKLIST_REJECTED: Audience.WORKER,
    NotificationType.SECONDARY_VERIFICATION_SUBMITTED: Audience.SUPERVISOR,
    NotificationType.STALE_SWEEP_COMPLETED: Audience.ALL_SUPERVISORS,
    NotificationType.WORKER_AVAILABILITY_CHANGED: Audience.WORKER,
}

# (title, message) templates, formatted with the event context
TEMPLATES: dict[NotificationType, tuple[str, str]] = {
    NotificationType.TASK_ASSIGNED: (
        "New task assigned",
        "You have been assigned a new task: {description}",
    ),
    NotificationType.TASK_CANCELLED: (
        "Task cancelled",
        "Your task '{description}' was cancelled. Reason: {reason}",
    ),
    NotificationType.TASK_AUTO_CANCELLED: (
        "Task cancelled automatically",
        "Your task '{description}' assigned for {assignment_date} was cancelled because it was not started that day.",
    ),
    NotificationType.CHECKLIST_SUBMITTED: (
        "Checklist awaiting review",
        "{worker_name} submitted the five-point checklist for '{description}'.",
    ),
    NotificationType.CHECKLIST_APPROVED: (
        "Checklist approved",
        "Your checklist for '{description}' was approved. {next_step}",
    ),
    NotificationType.CHECKLIST_REJECTED: (
        "Checklist rejected",
        "Your checklist for '{description}' was rejected. Comments: {comments}",
    ),
    NotificationType.SECONDARY_VERIFICATION_SUBMITTED: (
        "Secondary verification submitted",
        "{worker_name} uploaded the secondary verification photos for '{description}'.",
    ),
    NotificationType.STALE_SWEEP_COMPLETED: (
        "Stale tasks cancelled",
        "{cancelled} pending task(s) assigned before {today} were cancelled automatically ({failed} failed).",
    ),
    NotificationType.WORKER_AVAILABILITY_CHANGED: (
        "Availability changed",
        "{supervisor_name} marked you as {availability} for today.",
    ),
}


def render(notification_type: NotificationType, context: dict[str, Any]) -> tuple[str, str]:
    """Build the title and message for an event."""
    title, template = TEMPLATES[notification_type]
    return title, template.format(**context)


def _task_context(task: Task, extra: dict[str, Any] | None) -> dict[str, Any]:
    return {
        "task_id": task.id,
        "description": task.description,
        "assignment_date": task.assignment_date,
        "state": str(task.current_state),
        **(extra or {}),
    }


async def dispatch(
    *,
    recipient_id: str,
    notification_type: NotificationType,
    title: str,
    message: str,
    payload: dict[str, Any] | None = None,
    task_id: str | None = None,
    push: bool = True,
) -> str | None:
    """Persist a notification and push it live if the recipient is connected.

    Returns the new notification id, or None if it could not be stored.
    Failures are logged and swallowed.
    """
    with span("notification_service.dispatch"):
        try:
            record = await db_client.create_record(
                collection="notifications",
                data={
                    "recipient_id": recipient_id,
                    "type": notification_type,
                    "title": title,
                    "message": message,
                    "payload": payload or {},
                    "task_id": task_id,
                    "is_read": False,
                },
            )
        except Exception:
            logger.exception(
                "Failed to store notification",
                extra={"recipient_id": recipient_id, "type": notification_type},
            )
            return None

        notification = Notification(**record)
        if push and connection_registry.is_connected(recipient_id):
            await connection_registry.push_to_user(
                recipient_id,
                LIVE_EVENT_NAMES[notification_type],
                notification.model_dump(mode="json"),
            )

        logger.info(
            "Dispatched notification",
            extra={"notification_id": notification.id, "recipient_id": recipient_id, "type": notification_type},
        )
        return notification.id


async def _resolve_recipients(audience: Audience, task: Task | None) -> list[str]:
    if audience == Audience.ALL_SUPERVISORS:
        return await identity_service.list_active_user_ids(role=ActorRole.SUPERVISOR)
    if task is None:
        return []
    if audience == Audience.WORKER:
        worker = await identity_service.get_worker(task.worker_id)
        return [worker.user_id]
    if task.supervisor_id is None:
        logger.info("Task has no supervisor, skipping notification", extra={"task_id": task.id})
        return []
    supervisor = await identity_service.get_supervisor(task.supervisor_id)
    return [supervisor.user_id]


async def notify(
    notification_type: NotificationType,
    *,
    task: Task,
    context: dict[str, Any] | None = None,
) -> list[str]:
    """Deliver a task event to its audience now. Never raises."""
    with span("notification_service.notify"):
        try:
            event_context = _task_context(task, context)
            title, message = render(notification_type, event_context)
            recipients = await _resolve_recipients(AUDIENCES[notification_type], task)
        except Exception:
            logger.exception(
                "Failed to prepare notification",
                extra={"task_id": task.id, "type": notification_type},
            )
            return []

        ids = []
        for recipient_id in recipients:
            notification_id = await dispatch(
                recipient_id=recipient_id,
                notification_type=notification_type,
                title=title,
                message=message,
                payload=event_context,
                task_id=task.id,
            )
            if notification_id:
                ids.append(notification_id)
        return ids


# Deliveries scheduled by notify_later and not finished yet
_pending: set[asyncio.Task] = set()


def _track(coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
    # A fresh context keeps the delivery out of the caller's transaction
    delivery = asyncio.get_running_loop().create_task(coro, context=contextvars.Context())
    _pending.add(delivery)
    delivery.add_done_callback(_pending.discard)
    return delivery


def notify_later(
    notification_type: NotificationType,
    *,
    task: Task,
    context: dict[str, Any] | None = None,
) -> asyncio.Task:
    """Schedule delivery of a task event after the caller's transition committed."""
    return _track(notify(notification_type, task=task, context=context))


async def notify_worker(
    notification_type: NotificationType,
    *,
    worker: Worker,
    context: dict[str, Any] | None = None,
) -> str | None:
    """Deliver an event about a worker, not tied to any task, to that worker. Never raises."""
    with span("notification_service.notify_worker", worker_id=worker.id):
        event_context = {"worker_id": worker.id, "full_name": worker.full_name, **(context or {})}
        try:
            title, message = render(notification_type, event_context)
        except Exception:
            logger.exception(
                "Failed to prepare notification",
                extra={"worker_id": worker.id, "type": notification_type},
            )
            return None

        return await dispatch(
            recipient_id=worker.user_id,
            notification_type=notification_type,
            title=title,
            message=message,
            payload=event_context,
        )


def notify_worker_later(
    notification_type: NotificationType,
    *,
    worker: Worker,
    context: dict[str, Any] | None = None,
) -> asyncio.Task:
    return _track(notify_worker(notification_type, worker=worker, context=context))


async def flush() -> None:
    """Wait until every scheduled delivery has finished."""
    while _pending:
        await asyncio.gather(*list(_pending), return_exceptions=True)


async def announce_sweep(summary: SweepSummary) -> list[str]:
    """Record the sweep outcome for every active supervisor and broadcast it live."""
    with span("notification_service.announce_sweep"):
        context = {
            "today": summary.today,
            "cancelled": summary.succeeded,
            "failed": summary.failed,
            "cancelled_task_ids": summary.cancelled_task_ids,
        }
        title, message = render(NotificationType.STALE_SWEEP_COMPLETED, context)

        try:
            recipients = await _resolve_recipients(AUDIENCES[NotificationType.STALE_SWEEP_COMPLETED], None)
        except Exception:
            logger.exception("Failed to resolve sweep notification recipients")
            recipients = []

        ids = []
        for recipient_id in recipients:
            notification_id = await dispatch(
                recipient_id=recipient_id,
                notification_type=NotificationType.STALE_SWEEP_COMPLETED,
                title=title,
                message=message,
                payload=context,
                push=False,
            )
            if notification_id:
                ids.append(notification_id)

        await connection_registry.broadcast(
            LIVE_EVENT_NAMES[NotificationType.STALE_SWEEP_COMPLETED],
            {"title": title, "message": message, **context},
        )
        return ids


async def list_notifications(
    *,
    recipient_id: str,
    limit: int | None = None,
    page: int = 1,
    only_unread: bool = False,
) -> NotificationPage:
    """Return one page of a recipient's notifications, newest first."""
    with span("notification_service.list_notifications"):
        limit = limit if limit is not None else settings.notification_default_limit
        if not 1 <= limit <= Constants.MAX_NOTIFICATION_PAGE_SIZE:
            msg = f"limit must be between 1 and {Constants.MAX_NOTIFICATION_PAGE_SIZE}"
            raise InvalidInputError(msg)
        if page < 1:
            raise InvalidInputError("page must be 1 or greater")

        recipient_filter = f'recipient_id = "{sanitize_param(recipient_id)}"'
        unread_filter = f'{recipient_filter} && is_read = "false"'
        filter_query = unread_filter if only_unread else recipient_filter

        records = await db_client.list_records(
            collection="notifications",
            filter_query=filter_query,
            sort="id DESC",
            page=page,
            per_page=limit,
        )
        total = await db_client.count_records(collection="notifications", filter_query=filter_query)
        unread_total = await db_client.count_records(collection="notifications", filter_query=unread_filter)

        return NotificationPage(
            items=[Notification(**record) for record in records],
            total=total,
            unread_total=unread_total,
            page=page,
            limit=limit,
            total_pages=math.ceil(total / limit),
        )


async def mark_read(*, notification_id: str, caller_id: str) -> Notification:
    """Mark one notification as read. Only its recipient may do so."""
    with span("notification_service.mark_read"):
        try:
            record = await db_client.get_record(collection="notifications", record_id=notification_id)
        except db_client.RecordNotFoundError as e:
            msg = f"Notification {notification_id} not found"
            raise NotFoundError(msg) from e

        if record["recipient_id"] != caller_id:
            raise ForbiddenError("Only the recipient can mark this notification as read")

        if record["is_read"]:
            return Notification(**record)

        updated = await db_client.update_record(
            collection="notifications",
            record_id=notification_id,
            data={"is_read": True, "read_at": clock.timestamp()},
        )
        return Notification(**updated)


async def mark_all_read(*, recipient_id: str) -> int:
    """Mark every unread notification of a recipient as read and return how many changed."""
    with span("notification_service.mark_all_read"):
        count = await db_client.update_records(
            collection="notifications",
            filter_query=f'recipient_id = "{sanitize_param(recipient_id)}" && is_read = "false"',
            data={"is_read": True, "read_at": clock.timestamp()},
        )
        logger.info("Marked notifications read", extra={"recipient_id": recipient_id, "count": count})
        return count


async def purge_read_notifications(*, now: datetime | None = None) -> int:
    """Delete read notifications older than the retention window."""
    with span("notification_service.purge_read_notifications"):
        reference = now or datetime.now(UTC)
        cutoff = clock.timestamp(reference - timedelta(days=settings.notification_retention_days))
        deleted = await db_client.delete_records(
            collection="notifications",
            filter_query=f'is_read = "true" && read_at < "{cutoff}"',
        )
        logger.info("Purged read notifications", extra={"deleted": deleted, "cutoff": cutoff})
        return deleted
