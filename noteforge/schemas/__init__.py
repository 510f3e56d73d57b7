"""Pydantic schemas for request/response validation."""

from noteforge.schemas.note import (
    ActivityResponse,
    ImportResponse,
    NoteCreate,
    NoteListResponse,
    NoteResponse,
    NoteUpdate,
    RefreshProgressResponse,
)
from noteforge.schemas.search import SearchRequest, SearchResponse
from noteforge.schemas.settings import (
    ContextDocumentResponse,
    SettingsResponse,
    SettingsUpdate,
)

__all__ = [
    "ActivityResponse",
    "ContextDocumentResponse",
    "ImportResponse",
    "NoteCreate",
    "NoteListResponse",
    "NoteResponse",
    "NoteUpdate",
    "RefreshProgressResponse",
    "SearchRequest",
    "SearchResponse",
    "SettingsResponse",
    "SettingsUpdate",
]
