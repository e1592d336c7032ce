"""Five-point checklist ("Toma 5") domain models."""

from pydantic import BaseModel, Field

from src.domain.verification import SecondaryVerification


class ChecklistAnswer(BaseModel):
    """One answered question of a checklist submission."""

    step: int = Field(..., description="Checklist step number")
    question: str = Field(..., description="Question text as shown to the worker")
    answer: bool = Field(..., description="Worker's yes/no answer")


class Checklist(BaseModel):
    """Checklist data transfer object."""

    id: str = Field(..., description="Unique checklist ID from database")
    created: str = Field(..., description="Creation timestamp (ISO format)")
    updated: str = Field(..., description="Last update timestamp (ISO format)")
    task_id: str = Field(..., description="Owning task ID")
    worker_id: str = Field(..., description="Submitting worker ID")
    submitted_at: str = Field(..., description="Latest submission timestamp (ISO format)")
    procedure_id: str | None = Field(default=None, description="Selected procedure ID")
    additional_hazards: str | None = Field(default=None, description="Hazards not covered by the questions")
    comments: str | None = Field(default=None, description="Worker comments")
    requires_secondary_verification: bool = Field(
        default=False,
        description="Derived from the answers on every submission",
    )
    approved: bool | None = Field(default=None, description="None = pending, True = approved, False = rejected")
    reviewed_at: str | None = Field(default=None, description="Review timestamp (ISO format)")
    reviewer_comments: str | None = Field(default=None, description="Supervisor comments from the review")
    answers: list[ChecklistAnswer] = Field(default_factory=list, description="Answers ordered by step")
    secondary_verification: SecondaryVerification | None = Field(default=None)

    @property
    def is_pending_review(self) -> bool:
        return self.approved is None
