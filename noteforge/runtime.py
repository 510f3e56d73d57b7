"""Application runtime: owns and wires every note-forge component."""

import asyncio
import logging

from noteforge.config import Settings
from noteforge.database import create_db_engine
from noteforge.models.note import AIStatus
from noteforge.services.classifier import ClassifierProvider
from noteforge.services.context import EnrichmentContext
from noteforge.services.embeddings import EmbeddingProvider
from noteforge.services.enrichment import EnrichmentPipeline
from noteforge.services.index_sync import IndexSynchronizer
from noteforge.services.note_service import NoteService
from noteforge.services.note_store import NoteStore
from noteforge.services.persistence import SnapshotStore
from noteforge.services.query_engine import QueryEngine
from noteforge.utils.events import EventManager

logger = logging.getLogger(__name__)


class NoteForgeRuntime:
    """
    Explicit context object for one note collection.

    Construction wires the components; :meth:`start` loads the snapshot,
    builds the first search index and resumes interrupted enrichment;
    :meth:`stop` tears everything down.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        persistence: SnapshotStore | None = None,
        classifier: ClassifierProvider | None = None,
        embedder: EmbeddingProvider | None = None,
    ):
        """
        Initialize the runtime.

        Args:
            settings: Application settings
            persistence: Snapshot store (defaults to ``settings.database_url``)
            classifier: Classifier provider (defaults to Ollama from settings)
            embedder: Embedding provider (defaults to sentence-transformers)
        """
        self.settings = settings
        self.events = EventManager()
        self.persistence = persistence or SnapshotStore(
            create_db_engine(settings.database_url)
        )
        self.classifier = classifier or ClassifierProvider(
            base_url=settings.ollama_url,
            models=settings.classifier_models,
            api_key=settings.ollama_api_key,
            timeout=settings.classifier_timeout,
        )
        self.embedder = embedder or EmbeddingProvider(
            model_name=settings.embedding_model,
            device=settings.embedding_device,
            dimensions=settings.embedding_dimensions,
            max_retries=settings.embedding_init_retries,
            retry_delay=settings.embedding_retry_delay,
        )
        self.context = EnrichmentContext(
            self.persistence,
            default_tier=settings.default_model_tier,
            max_document_bytes=settings.context_max_bytes,
        )
        self.store = NoteStore(self.persistence)
        self.synchronizer = IndexSynchronizer(
            self.store, dimensions=settings.embedding_dimensions, events=self.events
        )
        self.pipeline = EnrichmentPipeline(
            self.store,
            self.classifier,
            self.embedder,
            self.context,
            self.synchronizer,
            self.events,
        )
        self.notes = NoteService(self.store, self.pipeline, self.events)
        self.query_engine = QueryEngine(
            self.store,
            self.synchronizer,
            self.embedder,
            debounce=settings.search_debounce_ms / 1000,
            limit=settings.search_limit,
            similarity=settings.search_similarity_threshold,
            boost={
                "headline": settings.search_headline_boost,
                "category": settings.search_category_boost,
            },
            text_weight=settings.search_text_weight,
            vector_weight=settings.search_vector_weight,
            embedding_timeout=settings.query_embedding_timeout,
        )
        self._background: set[asyncio.Task] = set()
        self.started = False

    async def start(self) -> None:
        """Load persisted notes, build the index and resume enrichment."""
        if self.started:
            return
        notes = self.persistence.load_notes()
        self.store.import_many(notes)
        self.synchronizer.initialize()
        await self.synchronizer.sync()

        if self.settings.embedding_preload:
            self.spawn(self.embedder.initialize())

        for note in self.store.snapshot():
            if note.ai_status == AIStatus.PROCESSING:
                logger.info(f"Resuming interrupted enrichment for note {note.id}")
                self.pipeline.start(note.id)
        self.started = True
        logger.info(f"note-forge started with {len(self.store)} notes")

    def spawn(self, coro) -> asyncio.Task:
        """Run ``coro`` in the background, keeping a reference until it ends."""
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def stop(self) -> None:
        """Cancel background work and release the index and model."""
        self.query_engine.cancel_pending()
        await self.pipeline.aclose()
        for task in list(self._background):
            task.cancel()
        await asyncio.gather(*self._background, return_exceptions=True)
        self.synchronizer.close()
        await self.embedder.aclose()
        self.started = False
        logger.info("note-forge stopped")

    async def wait_idle(self) -> None:
        """Wait for enrichment, background jobs and index syncs to settle."""
        await self.pipeline.wait_idle()
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
        await self.pipeline.wait_idle()
        await self.synchronizer.wait_idle()
