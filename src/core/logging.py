"""Observability setup: stdlib logging routed through Pydantic Logfire.

Modules log with ``logging.getLogger(__name__)`` and structured ``extra=``
fields; the handler installed by ``configure_logfire`` forwards those records
to Logfire. Service operations wrap their work in ``span``.
"""

import logging

import logfire
from fastapi import FastAPI

from src.core.config import settings


SERVICE_NAME = "toma5"
SERVICE_VERSION = "0.1.0"


def configure_logfire() -> None:
    """Configure Logfire and attach it to the root logger.

    Nothing is sent unless ``LOGFIRE_TOKEN`` is set; records still reach the
    console either way.
    """
    logfire.configure(
        token=settings.logfire_token,
        service_name=SERVICE_NAME,
        service_version=SERVICE_VERSION,
        environment=settings.environment,
        send_to_logfire="if-token-present",
    )
    logging.basicConfig(level=settings.log_level.upper(), handlers=[logfire.LogfireLoggingHandler()], force=True)

    logging.getLogger(__name__).info(
        "Logfire configured", extra={"environment": settings.environment, "level": settings.log_level}
    )


def instrument_fastapi(app: FastAPI) -> None:
    logfire.instrument_fastapi(app)
    logging.getLogger(__name__).info("FastAPI instrumentation configured")


def span(name: str, **attributes: object) -> logfire.LogfireSpan:
    """Open a Logfire span for a service operation.

    Usage:
        with span("checklist_service.approve_checklist", checklist_id=checklist_id):
            ...
    """
    return logfire.span(name, **attributes)
