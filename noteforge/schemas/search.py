"""Search schemas."""

from pydantic import BaseModel

from noteforge.schemas.note import NoteResponse
from noteforge.services.query_engine import SearchStrategy


class SearchRequest(BaseModel):
    """Schema for a search request."""

    query: str
    debounce: bool = False


class SearchResponse(BaseModel):
    """
    Schema for search results.

    ``ids`` is the authoritative ranked result; ``notes`` mirrors it with the
    current note bodies. A superseded debounced query returns no results.
    """

    ids: list[str]
    notes: list[NoteResponse]
    strategy: SearchStrategy | None
    superseded: bool = False
