"""API dependencies for dependency injection."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from noteforge.runtime import NoteForgeRuntime
from noteforge.services.enrichment import EnrichmentPipeline
from noteforge.services.note_service import NoteService
from noteforge.services.query_engine import QueryEngine


def get_runtime(request: Request) -> NoteForgeRuntime:
    """Get the runtime installed by the application lifespan."""
    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service is starting",
        )
    return runtime


RuntimeDep = Annotated[NoteForgeRuntime, Depends(get_runtime)]


def get_note_service(runtime: RuntimeDep) -> NoteService:
    return runtime.notes


NoteServiceDep = Annotated[NoteService, Depends(get_note_service)]


def get_pipeline(runtime: RuntimeDep) -> EnrichmentPipeline:
    return runtime.pipeline


PipelineDep = Annotated[EnrichmentPipeline, Depends(get_pipeline)]


def get_query_engine(runtime: RuntimeDep) -> QueryEngine:
    return runtime.query_engine


QueryEngineDep = Annotated[QueryEngine, Depends(get_query_engine)]
