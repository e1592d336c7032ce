"""Task domain models and enums."""

from enum import StrEnum

from pydantic import BaseModel, Field


class TaskState(StrEnum):
    """Task authorization lifecycle state."""

    PENDING = "PENDING"
    CHECKLIST_SUBMITTED = "CHECKLIST_SUBMITTED"
    UNDER_REVIEW = "UNDER_REVIEW"
    PENDING_SECONDARY_VERIFICATION = "PENDING_SECONDARY_VERIFICATION"
    READY_TO_START = "READY_TO_START"
    IN_PROGRESS = "IN_PROGRESS"
    CANCELLED = "CANCELLED"
    AUTO_CANCELLED = "AUTO_CANCELLED"


CANCELLED_STATES: frozenset[TaskState] = frozenset({TaskState.CANCELLED, TaskState.AUTO_CANCELLED})


class CancelledBy(StrEnum):
    """Kind of actor that cancelled a task."""

    WORKER = "WORKER"
    SUPERVISOR = "SUPERVISOR"
    SYSTEM = "SYSTEM"


class Task(BaseModel):
    """Task data transfer object."""

    id: str = Field(..., description="Unique task ID from database")
    created: str = Field(..., description="Creation timestamp (ISO format)")
    updated: str = Field(..., description="Last update timestamp (ISO format)")
    description: str = Field(..., description="What the work consists of")
    location: str | None = Field(default=None, description="Where the work takes place")
    assignment_date: str = Field(..., description="Day the task is assigned for (YYYY-MM-DD, local timezone)")
    current_state: TaskState = Field(default=TaskState.PENDING, description="Current lifecycle state")
    worker_id: str = Field(..., description="Assigned worker ID")
    supervisor_id: str | None = Field(default=None, description="Assigning supervisor ID")
    group_id: str | None = Field(default=None, description="Shared identifier of a paired assignment")
    created_by_worker: bool = Field(default=False, description="Whether the worker created the task")
    cancelled_by: CancelledBy | None = Field(default=None, description="Actor kind that cancelled the task")
    cancellation_reason: str | None = Field(default=None, description="Reason given for the cancellation")
    cancelled_at: str | None = Field(default=None, description="Cancellation timestamp (ISO format)")

    @property
    def is_cancelled(self) -> bool:
        return self.current_state in CANCELLED_STATES
