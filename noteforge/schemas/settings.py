"""Settings schemas."""

from datetime import datetime

from pydantic import BaseModel

from noteforge.models.note import ModelTier


class ContextDocumentResponse(BaseModel):
    """Schema for the stored reference document (metadata only)."""

    filename: str
    size: int
    uploaded_at: datetime


class SettingsResponse(BaseModel):
    """Schema for runtime settings."""

    model_tier: ModelTier
    classifier_model: str
    context_document: ContextDocumentResponse | None
    ai_unavailable: bool


class SettingsUpdate(BaseModel):
    """Schema for updating runtime settings."""

    model_tier: ModelTier | None = None
