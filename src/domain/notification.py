"""Notification domain models and the closed event catalog."""

import json
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, field_validator


class NotificationType(StrEnum):
    """Every event the engine notifies about."""

    TASK_ASSIGNED = "TASK_ASSIGNED"
    TASK_CANCELLED = "TASK_CANCELLED"
    TASK_AUTO_CANCELLED = "TASK_AUTO_CANCELLED"
    CHECKLIST_SUBMITTED = "CHECKLIST_SUBMITTED"
    CHECKLIST_APPROVED = "CHECKLIST_APPROVED"
    CHECKLIST_REJECTED = "CHECKLIST_REJECTED"
    SECONDARY_VERIFICATION_SUBMITTED = "SECONDARY_VERIFICATION_SUBMITTED"
    STALE_SWEEP_COMPLETED = "STALE_SWEEP_COMPLETED"
    WORKER_AVAILABILITY_CHANGED = "WORKER_AVAILABILITY_CHANGED"


# Event name pushed over the live channel for each type
LIVE_EVENT_NAMES: dict[NotificationType, str] = {
    NotificationType.TASK_ASSIGNED: "task-assigned",
    NotificationType.TASK_CANCELLED: "task-cancelled",
    NotificationType.TASK_AUTO_CANCELLED: "task-auto-cancelled",
    NotificationType.CHECKLIST_SUBMITTED: "checklist-submitted",
    NotificationType.CHECKLIST_APPROVED: "checklist-approved",
    NotificationType.CHECKLIST_REJECTED: "checklist-rejected",
    NotificationType.SECONDARY_VERIFICATION_SUBMITTED: "secondary-verification-submitted",
    NotificationType.STALE_SWEEP_COMPLETED: "stale-sweep-completed",
    NotificationType.WORKER_AVAILABILITY_CHANGED: "availability-changed",
}


class Notification(BaseModel):
    """Notification data transfer object."""

    id: str = Field(..., description="Unique notification ID from database")
    created: str = Field(..., description="Creation timestamp (ISO format)")
    updated: str = Field(..., description="Last update timestamp (ISO format)")
    recipient_id: str = Field(..., description="Recipient user ID")
    type: NotificationType = Field(..., description="Event type")
    title: str = Field(..., description="Short title")
    message: str = Field(..., description="Human-readable message")
    payload: dict[str, Any] = Field(default_factory=dict, description="Structured event data")
    task_id: str | None = Field(default=None, description="Related task ID")
    is_read: bool = Field(default=False, description="Whether the recipient has read it")
    read_at: str | None = Field(default=None, description="Read timestamp (ISO format)")

    @field_validator("payload", mode="before")
    @classmethod
    def decode_payload(cls, v: Any) -> Any:  # noqa: ANN401
        """Payloads are stored as JSON text."""
        if isinstance(v, str):
            return json.loads(v) if v else {}
        return v
