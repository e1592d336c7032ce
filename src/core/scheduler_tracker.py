"""Execution tracking for scheduled jobs (stale sweep, notification purge)."""

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel

from src.core.config import Constants
from src.core.redis_client import redis_client


logger = logging.getLogger(__name__)

_STATUS_TTL_SECONDS = 86400 * 7
_DLQ_TTL_SECONDS = 86400 * 30
_MAX_ERROR_LENGTH = 500
CONSECUTIVE_FAILURE_THRESHOLD = 3


class JobStatus(BaseModel):
    """Execution history of one scheduled job."""

    job_name: str
    last_success: str | None = None
    last_failure: str | None = None
    last_error: str | None = None
    consecutive_failures: int = 0
    success_count: int = 0
    failure_count: int = 0
    currently_running: bool = False
    current_run_started: str | None = None


def _key(job_name: str, field: str) -> str:
    return f"scheduler:job:{job_name}:{field}"


class JobTracker:
    """Track job runs in Redis when available, otherwise in process memory."""

    def __init__(self) -> None:
        self._memory_storage: dict[str, dict[str, Any]] = {}
        self._dead_letter_queue: deque[tuple[str, str, str]] = deque(
            maxlen=Constants.TRACKER_DEAD_LETTER_QUEUE_MAXLEN
        )

    def _memory(self, job_name: str) -> dict[str, Any]:
        return self._memory_storage.setdefault(job_name, {})

    async def record_job_start(self, job_name: str) -> None:
        started = datetime.now(UTC).isoformat()

        if redis_client.is_available:
            await redis_client.set(_key(job_name, "current_run"), started, ttl_seconds=3600)
        else:
            self._memory(job_name)["current_run"] = started

    async def record_job_success(self, job_name: str) -> None:
        finished = datetime.now(UTC).isoformat()

        if redis_client.is_available:
            await redis_client.set(_key(job_name, "last_success"), finished, ttl_seconds=_STATUS_TTL_SECONDS)
            await redis_client.set(_key(job_name, "consecutive_failures"), "0", ttl_seconds=_STATUS_TTL_SECONDS)
            await redis_client.increment(_key(job_name, "success_count"))
            await redis_client.expire(_key(job_name, "success_count"), _STATUS_TTL_SECONDS)
            await redis_client.delete(_key(job_name, "current_run"))
            return

        data = self._memory(job_name)
        data["last_success"] = finished
        data["consecutive_failures"] = 0
        data["success_count"] = data.get("success_count", 0) + 1
        data.pop("current_run", None)

    async def record_job_failure(self, job_name: str, error: str) -> int | None:
        """Record a failed run and return the number of consecutive failures."""
        failed = datetime.now(UTC).isoformat()
        error = error[:_MAX_ERROR_LENGTH]

        if redis_client.is_available:
            await redis_client.set(_key(job_name, "last_failure"), failed, ttl_seconds=_STATUS_TTL_SECONDS)
            await redis_client.set(_key(job_name, "last_error"), error, ttl_seconds=_STATUS_TTL_SECONDS)
            consecutive_failures = await redis_client.increment(_key(job_name, "consecutive_failures"))
            await redis_client.expire(_key(job_name, "consecutive_failures"), _STATUS_TTL_SECONDS)
            await redis_client.increment(_key(job_name, "failure_count"))
            await redis_client.expire(_key(job_name, "failure_count"), _STATUS_TTL_SECONDS)
            await redis_client.delete(_key(job_name, "current_run"))
            return consecutive_failures

        data = self._memory(job_name)
        data["last_failure"] = failed
        data["last_error"] = error
        data["consecutive_failures"] = data.get("consecutive_failures", 0) + 1
        data["failure_count"] = data.get("failure_count", 0) + 1
        data.pop("current_run", None)
        return data["consecutive_failures"]

    async def get_job_status(self, job_name: str) -> JobStatus:
        if redis_client.is_available:
            fields = [
                "last_success",
                "last_failure",
                "last_error",
                "consecutive_failures",
                "success_count",
                "failure_count",
                "current_run",
            ]
            data = {field: await redis_client.get(_key(job_name, field)) for field in fields}
        else:
            data = self._memory_storage.get(job_name, {})

        return JobStatus(
            job_name=job_name,
            last_success=data.get("last_success"),
            last_failure=data.get("last_failure"),
            last_error=data.get("last_error"),
            consecutive_failures=int(data.get("consecutive_failures") or 0),
            success_count=int(data.get("success_count") or 0),
            failure_count=int(data.get("failure_count") or 0),
            currently_running=data.get("current_run") is not None,
            current_run_started=data.get("current_run"),
        )

    async def add_to_dead_letter_queue(self, job_name: str, error: str, context: str) -> None:
        """Park a persistently failing job for operator attention."""
        queued_at = datetime.now(UTC).isoformat()
        self._dead_letter_queue.append((job_name, error, context))

        logger.error(
            "Job added to dead letter queue",
            extra={"job_name": job_name, "error": error, "context": context, "timestamp": queued_at},
        )

        if redis_client.is_available:
            await redis_client.set(
                f"scheduler:dlq:{job_name}:{queued_at}",
                f"{error} | {context}",
                ttl_seconds=_DLQ_TTL_SECONDS,
            )

    def get_dead_letter_queue(self) -> list[dict[str, str]]:
        return [
            {"job_name": job_name, "error": error, "context": context}
            for job_name, error, context in self._dead_letter_queue
        ]


# Global job tracker instance
job_tracker = JobTracker()


async def retry_job_with_backoff(
    job_func: Callable[[], Awaitable[Any]],
    job_name: str,
    max_retries: int = 3,
    base_delay: float = 2.0,
) -> None:
    """Execute a scheduled job with retries and exponential backoff.

    A job that still fails after ``max_retries`` attempts is recorded as failed;
    after ``CONSECUTIVE_FAILURE_THRESHOLD`` failed runs in a row it also goes
    to the dead letter queue. Nothing is raised to the scheduler.
    """
    await job_tracker.record_job_start(job_name)

    last_error = None
    for attempt in range(max_retries):
        try:
            logger.info("Executing %s (attempt %d/%d)", job_name, attempt + 1, max_retries)
            await job_func()

            await job_tracker.record_job_success(job_name)
            logger.info("%s completed successfully", job_name)
            return
        except Exception as e:
            last_error = str(e)
            logger.error("%s failed on attempt %d/%d: %s", job_name, attempt + 1, max_retries, last_error)

            if attempt < max_retries - 1:
                delay = base_delay**attempt
                logger.info("Retrying %s in %ss", job_name, delay)
                await asyncio.sleep(delay)

    error_msg = f"Failed after {max_retries} attempts: {last_error}"
    consecutive_failures = await job_tracker.record_job_failure(job_name, error_msg)

    logger.critical(
        "%s failed after all retry attempts",
        job_name,
        extra={"error": error_msg, "consecutive_failures": consecutive_failures},
    )

    if consecutive_failures and consecutive_failures >= CONSECUTIVE_FAILURE_THRESHOLD:
        await job_tracker.add_to_dead_letter_queue(
            job_name=job_name,
            error=last_error or "Unknown error",
            context=f"Failed {consecutive_failures} consecutive times",
        )
