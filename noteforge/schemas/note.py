"""Note schemas."""

from datetime import datetime

from pydantic import BaseModel, Field

from noteforge.models.note import AIStatus, EventDetails, Intent, Note


class NoteCreate(BaseModel):
    """Schema for note creation."""

    content: str = Field(min_length=1)
    rag_enabled: bool = False


class NoteUpdate(BaseModel):
    """Schema for note updates."""

    content: str | None = Field(default=None, min_length=1)
    rag_enabled: bool | None = None
    headline: str | None = None
    category: str | None = None
    tags: list[str] | None = None


class NoteResponse(BaseModel):
    """Schema for note response. Embeddings are reported, not returned."""

    id: str
    content: str
    original_content: str | None
    timestamp: datetime
    ai_status: AIStatus
    category: str
    headline: str
    tags: list[str]
    intent: Intent | None
    rag_enabled: bool
    calendar_sync: bool
    event_details: EventDetails | None
    has_embedding: bool

    @classmethod
    def from_note(cls, note: Note) -> "NoteResponse":
        return cls(
            **note.model_dump(exclude={"embedding"}),
            has_embedding=note.embedding is not None,
        )


class NoteListResponse(BaseModel):
    """Schema for note list."""

    notes: list[NoteResponse]
    total: int


class ImportResponse(BaseModel):
    """Schema for import results."""

    imported: int
    skipped: int


class RefreshProgressResponse(BaseModel):
    """Schema for bulk refresh progress."""

    running: bool
    kind: str | None = None
    current: int = 0
    total: int = 0


class ActivityDay(BaseModel):
    date: str
    count: int


class ActivityResponse(BaseModel):
    """Schema for per-day activity counts."""

    days: list[ActivityDay]
    total_notes: int
