"""Notes endpoints."""

import logging
from datetime import date
from typing import Annotated, Literal

from fastapi import APIRouter, File, Query, UploadFile, status
from fastapi.responses import JSONResponse

from noteforge.api.deps import NoteServiceDep, PipelineDep, RuntimeDep
from noteforge.schemas.note import (
    ActivityDay,
    ActivityResponse,
    ImportResponse,
    NoteCreate,
    NoteListResponse,
    NoteResponse,
    NoteUpdate,
    RefreshProgressResponse,
)
from noteforge.services.insights import RESURFACE_COUNT, activity_by_day, random_notes
from noteforge.utils.exceptions import (
    ClassificationFailure,
    ImportValidationError,
    NotFoundError,
    RefreshInProgressError,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["notes"])


@router.post(
    "/notes", response_model=NoteResponse, status_code=status.HTTP_202_ACCEPTED
)
async def create_note(note_data: NoteCreate, note_service: NoteServiceDep) -> NoteResponse:
    """
    Create a note.

    The note is returned immediately in the ``processing`` state and
    enriched in the background. Subscribe to ``/api/events`` or poll the
    note to see the result.
    """
    note = note_service.create_note(note_data.content, rag_enabled=note_data.rag_enabled)
    return NoteResponse.from_note(note)


@router.get("/notes", response_model=NoteListResponse)
def list_notes(
    note_service: NoteServiceDep,
    order: Annotated[Literal["recent", "category"], Query()] = "recent",
) -> NoteListResponse:
    """
    List all notes, newest first or grouped by category.
    """
    notes = note_service.list_notes(order=order)
    return NoteListResponse(
        notes=[NoteResponse.from_note(n) for n in notes],
        total=len(notes),
    )


@router.get("/notes/export")
def export_notes(note_service: NoteServiceDep) -> JSONResponse:
    """
    Download the full collection as a JSON array, embeddings included.
    """
    filename = f"note-forge-v1-{date.today().isoformat()}.json"
    return JSONResponse(
        content=note_service.export_notes(),
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/notes/random", response_model=NoteListResponse)
def resurface_notes(
    note_service: NoteServiceDep,
    count: Annotated[int, Query(ge=1, le=50)] = RESURFACE_COUNT,
) -> NoteListResponse:
    """
    Resurface a few notes picked at random.
    """
    notes = random_notes(note_service.list_notes(), count=count)
    return NoteListResponse(
        notes=[NoteResponse.from_note(n) for n in notes],
        total=len(notes),
    )


@router.post("/notes/import", response_model=ImportResponse)
async def import_notes(
    import_file: Annotated[UploadFile, File(description="note-forge JSON export")],
    note_service: NoteServiceDep,
) -> ImportResponse:
    """
    Merge notes from an export file. Notes with existing ids are skipped.
    A malformed file is rejected without importing anything.
    """
    payload = await import_file.read()
    try:
        result = note_service.import_notes(payload)
    except ImportValidationError as e:
        logger.warning(f"Rejected import {import_file.filename}: {e.detail}")
        raise e.to_http_exception()
    return ImportResponse(imported=result.imported, skipped=result.skipped)


@router.post("/notes/refresh", status_code=status.HTTP_202_ACCEPTED)
async def refresh_all_notes(runtime: RuntimeDep) -> dict:
    """
    Re-enrich every note sequentially in the background, then rebuild the
    search index. Progress is reported on ``/api/notes/refresh/progress``
    and as ``refresh-progress`` events.
    """
    if runtime.pipeline.bulk_running:
        raise RefreshInProgressError().to_http_exception()
    runtime.spawn(runtime.pipeline.refresh_all())
    return {"message": "Metadata refresh started", "total": len(runtime.store)}


@router.post("/notes/reembed", status_code=status.HTTP_202_ACCEPTED)
async def reembed_all_notes(runtime: RuntimeDep) -> dict:
    """
    Recompute every embedding sequentially in the background, then rebuild
    the search index.
    """
    if runtime.pipeline.bulk_running:
        raise RefreshInProgressError().to_http_exception()
    runtime.spawn(runtime.pipeline.reembed_all())
    return {"message": "Embedding reload started", "total": len(runtime.store)}


@router.get("/notes/refresh/progress", response_model=RefreshProgressResponse)
def refresh_progress(pipeline: PipelineDep) -> RefreshProgressResponse:
    """
    Report the position of the current or last bulk operation.
    """
    progress = pipeline.progress
    if progress is None:
        return RefreshProgressResponse(running=pipeline.bulk_running)
    return RefreshProgressResponse(
        running=pipeline.bulk_running,
        kind=progress.kind,
        current=progress.current,
        total=progress.total,
    )


@router.get("/insights/activity", response_model=ActivityResponse)
def activity(
    note_service: NoteServiceDep,
    days: Annotated[int, Query(ge=1, le=366)] = 364,
) -> ActivityResponse:
    """
    Per-day note counts over the trailing window.
    """
    notes = note_service.list_notes()
    counts = activity_by_day(notes, days=days)
    return ActivityResponse(
        days=[ActivityDay(date=d.isoformat(), count=c) for d, c in counts.items()],
        total_notes=sum(counts.values()),
    )


@router.get("/notes/{note_id}", response_model=NoteResponse)
def get_note(note_id: str, note_service: NoteServiceDep) -> NoteResponse:
    """
    Get a single note by ID.
    """
    try:
        return NoteResponse.from_note(note_service.get_note(note_id))
    except NotFoundError as e:
        raise e.to_http_exception()


@router.patch("/notes/{note_id}", response_model=NoteResponse)
async def update_note(
    note_id: str,
    update_data: NoteUpdate,
    note_service: NoteServiceDep,
) -> NoteResponse:
    """
    Update a note.

    If the content is changed, the note is re-enriched to generate a new
    category, headline, tags and embedding.
    """
    try:
        note = note_service.update_note(
            note_id,
            content=update_data.content,
            rag_enabled=update_data.rag_enabled,
            headline=update_data.headline,
            category=update_data.category,
            tags=update_data.tags,
        )
        return NoteResponse.from_note(note)
    except NotFoundError as e:
        raise e.to_http_exception()


@router.delete("/notes/{note_id}")
async def delete_note(note_id: str, note_service: NoteServiceDep) -> dict:
    """
    Delete a note. Deleting a note that no longer exists succeeds.
    """
    deleted = note_service.delete_note(note_id)
    return {"success": True, "deleted": deleted}


@router.post(
    "/notes/{note_id}/refresh",
    response_model=NoteResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def refresh_note(note_id: str, note_service: NoteServiceDep) -> NoteResponse:
    """
    Re-run enrichment for a single note.
    """
    try:
        return NoteResponse.from_note(note_service.refresh_note(note_id))
    except NotFoundError as e:
        raise e.to_http_exception()


@router.post("/notes/{note_id}/reformat", response_model=NoteResponse)
async def reformat_note(note_id: str, pipeline: PipelineDep) -> NoteResponse:
    """
    Rewrite the note in concise encyclopedic style. The previous text can be
    restored once with ``/undo``.
    """
    try:
        note = await pipeline.reformat(note_id)
    except NotFoundError as e:
        raise e.to_http_exception()
    except ClassificationFailure as e:
        raise e.to_http_exception()
    return NoteResponse.from_note(note)


@router.post("/notes/{note_id}/undo", response_model=NoteResponse)
async def undo_reformat(note_id: str, pipeline: PipelineDep) -> NoteResponse:
    """
    Restore the content from before the last reformat.
    """
    try:
        return NoteResponse.from_note(pipeline.undo_reformat(note_id))
    except NotFoundError as e:
        raise e.to_http_exception()
