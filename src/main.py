"""toma5 - task authorization workflow for the five-point safety checklist."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from src.core.config import settings
from src.core.db_client import close_connection, init_db
from src.core.errors import WorkflowError
from src.core.logging import configure_logfire, instrument_fastapi
from src.core.redis_client import redis_client
from src.core.scheduler import JOB_NAMES, start_scheduler, stop_scheduler
from src.core.scheduler_tracker import job_tracker
from src.interface.api_router import router as api_router, workflow_error_handler, ws_router
from src.services import notification_service


logger = logging.getLogger(__name__)


async def check_redis_connectivity() -> None:
    """Verify Redis connectivity (optional service).

    Only checks if Redis is configured. Logs a warning if unavailable but doesn't fail.
    """
    if not redis_client.is_available:
        logger.info("startup_validation", extra={"service": "redis", "status": "disabled"})
        return

    if await redis_client.ping():
        logger.info("startup_validation", extra={"service": "redis", "status": "ok"})
    else:
        logger.warning("startup_validation", extra={"service": "redis", "status": "unavailable"})


async def validate_startup_configuration() -> None:
    """Fail fast when required credentials are missing.

    The session signing key is required. Cloudinary credentials are only
    checked at upload time, so a missing one is logged as a warning here.
    """
    logger.info("startup_validation_begin")

    try:
        settings.require_credential("session_secret_key", "Session signing")
    except ValueError as e:
        logger.error("startup_validation_failed", extra={"error": str(e)})
        print(f"\nStartup validation failed: {e}\n", file=sys.stderr)  # noqa: T201
        sys.exit(1)

    if not (settings.cloudinary_cloud_name and settings.cloudinary_api_key and settings.cloudinary_api_secret):
        logger.warning("startup_validation", extra={"service": "cloudinary", "status": "not_configured"})

    await check_redis_connectivity()
    logger.info("startup_validation_complete", extra={"status": "ok"})


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan context manager."""
    # Configure logging first so validation logs are captured
    configure_logfire()
    await validate_startup_configuration()

    await init_db()
    logger.info("Database initialized")

    start_scheduler()
    yield
    stop_scheduler()

    # Deliver notifications of transitions that already committed
    await notification_service.flush()
    await redis_client.close()
    await close_connection()


app = FastAPI(
    title="toma5",
    description="Task authorization workflow: five-point checklist and secondary verification",
    version="0.1.0",
    lifespan=lifespan,
)

# Instrument FastAPI with Logfire
instrument_fastapi(app)

app.add_exception_handler(WorkflowError, workflow_error_handler)
app.include_router(api_router)
app.include_router(ws_router)


@app.get("/health")
async def health_check() -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse(content={"status": "healthy"}, status_code=200)


@app.get("/health/scheduler")
async def scheduler_health_check() -> JSONResponse:
    """Scheduler health check endpoint with job statuses."""
    job_statuses = {job_name: await job_tracker.get_job_status(job_name) for job_name in JOB_NAMES}
    dlq = job_tracker.get_dead_letter_queue()

    has_failures = any(status.consecutive_failures > 0 for status in job_statuses.values())
    overall_status = "degraded" if has_failures else "healthy"
    if dlq:
        overall_status = "critical"

    return JSONResponse(
        content={
            "status": overall_status,
            "jobs": {name: status.model_dump() for name, status in job_statuses.items()},
            "dead_letter_queue_size": len(dlq),
            "dead_letter_queue": dlq,
        },
        status_code=200 if overall_status == "healthy" else 503,
    )
