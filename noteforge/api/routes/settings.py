"""Runtime settings endpoints."""

from typing import Annotated

from fastapi import APIRouter, File, UploadFile

from noteforge.api.deps import RuntimeDep
from noteforge.runtime import NoteForgeRuntime
from noteforge.schemas.settings import (
    ContextDocumentResponse,
    SettingsResponse,
    SettingsUpdate,
)
from noteforge.utils.exceptions import ContextDocumentError

router = APIRouter(prefix="/api/settings", tags=["settings"])


def _settings_response(runtime: NoteForgeRuntime) -> SettingsResponse:
    context = runtime.context
    document = None
    if context.document is not None:
        document = ContextDocumentResponse(
            filename=context.document.filename,
            size=context.document.size,
            uploaded_at=context.document.uploaded_at,
        )
    return SettingsResponse(
        model_tier=context.model_tier,
        classifier_model=runtime.classifier.model_for(context.model_tier),
        context_document=document,
        ai_unavailable=runtime.pipeline.ai_unavailable,
    )


@router.get("", response_model=SettingsResponse)
def get_settings(runtime: RuntimeDep) -> SettingsResponse:
    """
    Get the current enrichment settings.
    """
    return _settings_response(runtime)


@router.patch("", response_model=SettingsResponse)
def update_settings(update_data: SettingsUpdate, runtime: RuntimeDep) -> SettingsResponse:
    """
    Update the enrichment settings. The new model tier applies to
    enrichments started after the change.
    """
    if update_data.model_tier is not None:
        runtime.context.set_model_tier(update_data.model_tier)
    return _settings_response(runtime)


@router.put("/context", response_model=SettingsResponse)
async def upload_context_document(
    context_file: Annotated[UploadFile, File(description="UTF-8 reference document")],
    runtime: RuntimeDep,
) -> SettingsResponse:
    """
    Upload the reference document passed to the classifier for notes with
    ``rag_enabled``. Replaces any previous document.
    """
    data = await context_file.read()
    try:
        runtime.context.set_document(context_file.filename or "context.txt", data)
    except ContextDocumentError as e:
        raise e.to_http_exception()
    return _settings_response(runtime)


@router.delete("/context", response_model=SettingsResponse)
def delete_context_document(runtime: RuntimeDep) -> SettingsResponse:
    """
    Remove the reference document.
    """
    runtime.context.clear_document()
    return _settings_response(runtime)
