"""Secondary verification ("ASST") domain model."""

from pydantic import BaseModel, Field


class SecondaryVerification(BaseModel):
    """Photographic evidence attached to an approved checklist."""

    id: str = Field(..., description="Unique verification ID from database")
    created: str = Field(..., description="Creation timestamp (ISO format)")
    updated: str = Field(..., description="Last update timestamp (ISO format)")
    checklist_id: str = Field(..., description="Owning checklist ID")
    image1_url: str = Field(..., description="URL of the first image")
    image2_url: str = Field(..., description="URL of the second image")
    uploaded_at: str = Field(..., description="Latest upload timestamp (ISO format)")
