"""Pydantic models for incoming engine payloads.

These only enforce shapes and types. Content rules (non-empty text, step
ranges, image formats) are checked by the services after authorization and
state checks so callers see a consistent error priority.
"""

from pydantic import BaseModel, Field, StrictBool


class TaskCreate(BaseModel):
    """Payload for creating a task for one worker."""

    description: str = Field(..., description="What the work consists of")
    location: str | None = Field(default=None, description="Where the work takes place")
    worker_id: str | None = Field(default=None, description="Target worker (defaults to the calling worker)")


class PairedTaskCreate(BaseModel):
    """Payload for creating two linked tasks for two workers."""

    description: str = Field(..., description="What the work consists of")
    location: str | None = Field(default=None, description="Where the work takes place")
    worker_id_1: str = Field(..., description="First worker")
    worker_id_2: str = Field(..., description="Second worker")


class AnswerInput(BaseModel):
    """One answer of a checklist submission."""

    step: int
    question: str = ""
    answer: bool


class ChecklistSubmission(BaseModel):
    """Payload for submitting (or resubmitting) a checklist."""

    task_id: str
    answers: list[AnswerInput]
    procedure_id: str | None = None
    additional_hazards: str | None = None
    comments: str | None = None


class ChecklistRejection(BaseModel):
    comments: str = ""


class TaskCancellation(BaseModel):
    reason: str = ""


class SecondaryVerificationSubmission(BaseModel):
    """Payload carrying the two evidence images as data URIs."""

    task_id: str
    image1: str
    image2: str


class WorkerAvailabilityUpdate(BaseModel):
    available: StrictBool = Field(..., description="Whether the worker can take tasks today")
