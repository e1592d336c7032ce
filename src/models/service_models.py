"""Pydantic models for service layer return types.

These models provide type safety at service boundaries, converting database
dictionaries into typed objects with validation.
"""

from pydantic import BaseModel, Field, computed_field

from src.domain.notification import Notification
from src.domain.task import Task


class ChecklistSummary(BaseModel):
    """Checklist fields shown alongside a task."""

    id: str
    approved: bool | None
    requires_secondary_verification: bool
    submitted_at: str
    has_secondary_verification: bool = False


class TaskDetail(BaseModel):
    """A task with its checklist summary (if a checklist was submitted)."""

    task: Task
    checklist: ChecklistSummary | None = None


class PairedTaskResult(BaseModel):
    """The two linked tasks of a paired assignment."""

    group_id: str
    tasks: list[Task]


class NotificationPage(BaseModel):
    """One page of a recipient's notifications, newest first."""

    items: list[Notification]
    total: int
    unread_total: int
    page: int
    limit: int
    total_pages: int


class SweepSummary(BaseModel):
    """Outcome of one stale-task sweep run."""

    today: str = Field(..., description="Local calendar day the sweep compared against")
    eligible: int = 0
    cancelled_task_ids: list[str] = Field(default_factory=list)
    failed_task_ids: list[str] = Field(default_factory=list)

    @computed_field
    @property
    def succeeded(self) -> int:
        return len(self.cancelled_task_ids)

    @computed_field
    @property
    def failed(self) -> int:
        return len(self.failed_task_ids)
