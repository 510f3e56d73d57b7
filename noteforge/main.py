"""note-forge API - Main Application."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from noteforge.api.routes import events_router, notes_router, search_router, settings_router
from noteforge.config import settings
from noteforge.runtime import NoteForgeRuntime
from noteforge.utils.logging import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(settings.log_level)

    # Tests install their own runtime before startup
    runtime = getattr(app.state, "runtime", None)
    if runtime is None:
        runtime = NoteForgeRuntime(settings)
        app.state.runtime = runtime

    await runtime.start()
    yield
    await runtime.stop()


app = FastAPI(
    title=settings.app_name,
    description="Note capture with background AI enrichment and hybrid search",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(events_router)
app.include_router(notes_router)
app.include_router(search_router)
app.include_router(settings_router)


@app.get("/health")
async def health_check(request: Request) -> dict:
    """
    System health check.

    Returns status of the application and its dependencies.
    """
    runtime: NoteForgeRuntime = request.app.state.runtime
    ollama_connected = await runtime.classifier.check_connection()
    index = runtime.synchronizer.index

    return {
        "status": "ok",
        "ollama_connected": ollama_connected,
        "embedding_ready": runtime.embedder.ready,
        "embedding_failed": runtime.embedder.failed,
        "index_schema": index.schema.value if index is not None else None,
        "notes": len(runtime.store),
        "ai_unavailable": runtime.pipeline.ai_unavailable,
    }
