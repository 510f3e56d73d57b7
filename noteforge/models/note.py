"""Note model."""

from datetime import datetime
from enum import StrEnum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from noteforge.utils.datetime import utc_now
from noteforge.utils.vector import EMBEDDING_DIMENSIONS, coerce_embedding

# Closed category vocabulary produced by enrichment
CATEGORIES: tuple[str, ...] = (
    "Character",
    "Lore",
    "Tech",
    "Transit",
    "Mission",
    "Personal",
)
FALLBACK_CATEGORY = "Thoughts"

PLACEHOLDER_CATEGORY = "..."
PLACEHOLDER_HEADLINE = "Analyzing..."

TAG_LIBRARY: tuple[str, ...] = (
    "Work", "Personal", "Urgent", "To-Do", "Ideas", "Goals", "Project",
    "Meeting", "Finance", "Health", "Travel", "Home", "Shopping", "Tech",
    "Learning", "Reference", "Archive", "Journal", "Events", "Family",
    "Friends", "Career", "Education", "Books", "Movies", "Music", "Art",
    "Design", "Code", "Marketing", "Sales", "Legal", "Taxes", "Bills",
    "Recipes", "Fitness", "Meditation", "Hobbies", "Gaming", "News",
    "Politics", "Science", "History", "Geography", "Languages", "DIY",
    "Maintenance", "Vehicles", "Pets", "Garden", "Important", "Later",
    "Waiting", "Research", "Inspiration", "Review", "Draft", "Final",
    "Security",
)  # fmt: skip


class AIStatus(StrEnum):
    """Enrichment state of a note."""

    IDLE = "idle"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


class Intent(StrEnum):
    """What the note is for; drives export routing."""

    TASK = "task"
    REFERENCE = "reference"
    EPHEMERAL = "ephemeral"


class ModelTier(StrEnum):
    """Classifier quality/cost tier."""

    FLASH = "flash"
    PRO = "pro"


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys for export compatibility."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EventDetails(CamelModel):
    """Calendar event detected in a note."""

    title: str
    start: datetime | None = None
    end: datetime | None = None
    location: str | None = None


class Note(CamelModel):
    """A free-text note with AI-derived metadata."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    content: str
    original_content: str | None = None  # pre-reformat text, for one-step undo
    timestamp: datetime = Field(default_factory=utc_now)

    ai_status: AIStatus = AIStatus.IDLE
    category: str = FALLBACK_CATEGORY
    headline: str = ""
    tags: list[str] = Field(default_factory=list)
    intent: Intent | None = None

    embedding: list[float] | None = None
    rag_enabled: bool = False

    calendar_sync: bool = False
    event_details: EventDetails | None = None

    @field_validator("embedding", mode="before")
    @classmethod
    def _drop_malformed_embedding(cls, value: Any) -> list[float] | None:
        return coerce_embedding(value, EMBEDDING_DIMENSIONS)

    @field_validator("intent", mode="before")
    @classmethod
    def _normalize_intent(cls, value: Any) -> str | None:
        if isinstance(value, str) and value.lower() in Intent._value2member_map_:
            return value.lower()
        return None

    def to_export(self) -> dict[str, Any]:
        """Serialize to the JSON shape used by export files and snapshots."""
        return self.model_dump(mode="json", by_alias=True)
