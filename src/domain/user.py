"""Actor and personnel domain models and enums."""

from enum import StrEnum

from pydantic import BaseModel, Field


class ActorRole(StrEnum):
    """Role of the identity invoking an engine operation."""

    WORKER = "WORKER"
    SUPERVISOR = "SUPERVISOR"
    ADMINISTRATOR = "ADMINISTRATOR"
    SYSTEM = "SYSTEM"


class Actor(BaseModel):
    """Resolved, already-authenticated identity."""

    id: str = Field(..., description="User ID (or 'system' for the scheduler)")
    role: ActorRole = Field(..., description="Role of the actor")


SYSTEM_ACTOR = Actor(id="system", role=ActorRole.SYSTEM)


class Worker(BaseModel):
    """Worker data transfer object."""

    id: str = Field(..., description="Unique worker ID from database")
    user_id: str = Field(..., description="Linked user ID")
    full_name: str = Field(..., description="Display name")
    position: str | None = Field(default=None)
    shift: str | None = Field(default=None, description="Work shift")
    available_today: bool = Field(default=True, description="Whether the worker can take tasks today")
    national_id: str | None = Field(default=None, description="National ID of the linked user")
    active: bool = Field(default=True, description="Whether the linked user account is active")


class Supervisor(BaseModel):
    """Supervisor data transfer object."""

    id: str = Field(..., description="Unique supervisor ID from database")
    user_id: str = Field(..., description="Linked user ID")
    full_name: str = Field(..., description="Display name")
