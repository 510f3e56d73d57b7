"""Search endpoints."""

from fastapi import APIRouter

from noteforge.api.deps import QueryEngineDep
from noteforge.schemas.note import NoteResponse
from noteforge.schemas.search import SearchRequest, SearchResponse

router = APIRouter(prefix="/api", tags=["search"])


@router.post("/search", response_model=SearchResponse)
async def search_notes(request: SearchRequest, query_engine: QueryEngineDep) -> SearchResponse:
    """
    Search notes with the hybrid full-text and vector index.

    With ``debounce`` set, the request waits out the idle window and is
    answered with ``superseded: true`` if a newer debounced query arrives
    first. An empty query returns every note.
    """
    if request.debounce:
        outcome = await query_engine.submit(request.query)
        if outcome is None:
            return SearchResponse(ids=[], notes=[], strategy=None, superseded=True)
    else:
        outcome = await query_engine.search(request.query)

    notes = query_engine.resolve(outcome)
    return SearchResponse(
        ids=[n.id for n in notes],
        notes=[NoteResponse.from_note(n) for n in notes],
        strategy=outcome.strategy,
    )
