from src.services import (
    checklist_service,
    notification_service,
    sweep_service,
    task_service,
    verification_service,
)


__all__ = [
    "checklist_service",
    "notification_service",
    "sweep_service",
    "task_service",
    "verification_service",
]
