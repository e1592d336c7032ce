"""Work procedure catalogue model."""

from pydantic import BaseModel, Field


class Procedure(BaseModel):
    """A documented work procedure a checklist may reference."""

    id: str = Field(..., description="Unique procedure ID from database")
    created: str = Field(..., description="Creation timestamp (ISO format)")
    updated: str = Field(..., description="Last update timestamp (ISO format)")
    name: str = Field(..., description="Procedure name")
    description: str | None = Field(default=None)
    document_url: str | None = Field(default=None, description="Link to the procedure document")
    active: bool = Field(default=True)
