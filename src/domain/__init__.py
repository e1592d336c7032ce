"""Domain models and DTOs."""

from src.domain.checklist import Checklist, ChecklistAnswer
from src.domain.create_models import (
    AnswerInput,
    ChecklistRejection,
    ChecklistSubmission,
    PairedTaskCreate,
    SecondaryVerificationSubmission,
    TaskCancellation,
    TaskCreate,
)
from src.domain.notification import Notification, NotificationType
from src.domain.procedure import Procedure
from src.domain.task import CancelledBy, Task, TaskState
from src.domain.user import SYSTEM_ACTOR, Actor, ActorRole, Supervisor, Worker
from src.domain.verification import SecondaryVerification


__all__ = [
    "SYSTEM_ACTOR",
    "Actor",
    "ActorRole",
    "AnswerInput",
    "CancelledBy",
    "Checklist",
    "ChecklistAnswer",
    "ChecklistRejection",
    "ChecklistSubmission",
    "Notification",
    "NotificationType",
    "PairedTaskCreate",
    "Procedure",
    "SecondaryVerification",
    "SecondaryVerificationSubmission",
    "Supervisor",
    "Task",
    "TaskCancellation",
    "TaskCreate",
    "TaskState",
    "Worker",
]
