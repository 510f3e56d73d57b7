"""Service modules for business logic."""

from noteforge.services.enrichment import EnrichmentPipeline
from noteforge.services.index_sync import IndexSynchronizer
from noteforge.services.note_service import NoteService
from noteforge.services.note_store import NoteStore
from noteforge.services.query_engine import QueryEngine
from noteforge.services.search_index import SearchIndex

__all__ = [
    "EnrichmentPipeline",
    "IndexSynchronizer",
    "NoteService",
    "NoteStore",
    "QueryEngine",
    "SearchIndex",
]
