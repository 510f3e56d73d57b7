"""Background enrichment of notes: classification plus embedding."""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass

from noteforge.models.note import (
    FALLBACK_CATEGORY,
    PLACEHOLDER_CATEGORY,
    AIStatus,
    Note,
)
from noteforge.services.classifier import ClassifierProvider
from noteforge.services.context import EnrichmentContext
from noteforge.services.embeddings import EmbeddingProvider
from noteforge.services.index_sync import IndexSynchronizer
from noteforge.services.note_store import NoteStore
from noteforge.utils.datetime import clock_label
from noteforge.utils.events import EventManager
from noteforge.utils.exceptions import (
    ClassificationFailure,
    NotFoundError,
    RefreshInProgressError,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[["RefreshProgress"], None]


@dataclass(frozen=True)
class RefreshProgress:
    """Position of a running bulk operation."""

    current: int
    total: int
    kind: str = "metadata"


@dataclass(frozen=True)
class RefreshSummary:
    """Outcome of a bulk operation."""

    total: int
    succeeded: int
    failed: int


class EnrichmentPipeline:
    """
    Drives each note through ``processing`` to ``completed`` or ``error``.

    Enrichment is a two-phase commit. Phase one runs synchronously in
    :meth:`start`: the note is marked ``processing`` and its content is
    copied. Phase two is a background task that classifies and embeds the
    copied content concurrently and merges the result into the store by id.
    Merges are field-level, so a stale enrichment finishing after a newer
    edit only overwrites the metadata fields it owns; the last completion
    wins.
    """

    def __init__(
        self,
        store: NoteStore,
        classifier: ClassifierProvider,
        embedder: EmbeddingProvider,
        context: EnrichmentContext,
        synchronizer: IndexSynchronizer,
        events: EventManager | None = None,
    ):
        """
        Initialize the pipeline.

        Args:
            store: Note store receiving results
            classifier: Remote metadata classifier
            embedder: Local embedding provider
            context: Model tier and reference document
            synchronizer: Index synchronizer paused during bulk operations
            events: Optional event manager for status broadcasts
        """
        self.store = store
        self.classifier = classifier
        self.embedder = embedder
        self.context = context
        self.synchronizer = synchronizer
        self.events = events or EventManager()
        self.ai_unavailable = False
        self.progress: RefreshProgress | None = None
        self._tasks: set[asyncio.Task] = set()
        self._bulk_running = False
        # Held around each enrichment while a bulk refresh runs
        self._bulk_lock = asyncio.Lock()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    @property
    def bulk_running(self) -> bool:
        return self._bulk_running

    def start(self, note_id: str) -> asyncio.Task | None:
        """
        Enter ``processing`` for a note and enrich it in the background.

        The status change is written before this returns, so it is visible
        before any remote call begins.

        Returns:
            The background task, or None if the note does not exist
        """
        note = self._enter_processing(note_id)
        if note is None:
            return None
        task = asyncio.get_running_loop().create_task(
            self._run(note.id, note.content, note.rag_enabled),
            name=f"enrich-{note.id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, note_id: str, content: str, rag_enabled: bool) -> AIStatus:
        if not self._bulk_running:
            return await self.enrich(note_id, content, rag_enabled)
        # Wait for the bulk loop's current note so classifier calls never overlap
        async with self._bulk_lock:
            return await self.enrich(note_id, content, rag_enabled)

    def _enter_processing(self, note_id: str) -> Note | None:
        note = self.store.find(note_id)
        if note is None:
            logger.warning(f"Note {note_id} not found for enrichment")
            return None
        if note.ai_status != AIStatus.PROCESSING:
            note = self.store.update(note_id, {"ai_status": AIStatus.PROCESSING})
        self.events.publish(f"note-status-{note_id}", AIStatus.PROCESSING.value)
        return note

    async def enrich(self, note_id: str, content: str, rag_enabled: bool = False) -> AIStatus:
        """
        Classify and embed ``content`` and merge the result into note ``note_id``.

        Failures never propagate: a classifier failure marks the note
        ``error`` while still committing any embedding that was produced.

        Returns:
            The terminal status written for the note
        """
        rag_context = self.context.rag_context_for(rag_enabled)
        tier = self.context.model_tier

        classify_task = asyncio.create_task(
            self.classifier.classify(content, rag_context, tier)
        )
        try:
            try:
                embedding = await self.embedder.embed(content)
            except Exception:
                logger.exception(f"Embedding raised for note {note_id}")
                embedding = None

            try:
                result = await classify_task
            except ClassificationFailure as e:
                logger.warning(f"Classification failed for note {note_id}: {e.detail}")
                self._commit_failure(note_id, embedding)
                return AIStatus.ERROR
            except Exception as e:
                logger.exception(f"Failed to enrich note {note_id}: {e}")
                self._commit_failure(note_id, embedding)
                return AIStatus.ERROR
        finally:
            if not classify_task.done():
                classify_task.cancel()

        fields: dict = {**result, "ai_status": AIStatus.COMPLETED}
        if embedding is not None:
            fields["embedding"] = embedding
        if self.store.update(note_id, fields) is None:
            logger.info(f"Note {note_id} was deleted before enrichment finished")
            return AIStatus.COMPLETED

        self.ai_unavailable = False
        self.events.publish(f"note-status-{note_id}", AIStatus.COMPLETED.value)
        logger.info(f"Successfully enriched note {note_id}")
        return AIStatus.COMPLETED

    def _commit_failure(self, note_id: str, embedding: list[float] | None) -> None:
        note = self.store.find(note_id)
        if note is None:
            return
        fields: dict = {"ai_status": AIStatus.ERROR}
        if embedding is not None:
            fields["embedding"] = embedding
        if note.category == PLACEHOLDER_CATEGORY:
            # Never classified; give it the fallback display metadata
            fields["category"] = FALLBACK_CATEGORY
            fields["headline"] = f"Note {clock_label()}"
        self.store.update(note_id, fields)

        self.ai_unavailable = True
        self.events.publish(f"note-status-{note_id}", AIStatus.ERROR.value)
        self.events.publish("ai-unavailable", "true")

    async def reformat(self, note_id: str) -> Note:
        """
        Rewrite a note's content with the classifier and re-enrich it.

        The previous content is kept in ``original_content`` for one-step
        undo.

        Raises:
            NotFoundError: If the note does not exist
            ClassificationFailure: If the rewrite call fails
        """
        note = self.store.get(note_id)
        original = note.content
        try:
            new_content = await self.classifier.reformat(
                original,
                self.context.rag_context_for(note.rag_enabled),
                self.context.model_tier,
            )
        except ClassificationFailure:
            self.ai_unavailable = True
            self.events.publish("ai-unavailable", "true")
            raise

        if new_content == original:
            return note
        updated = self.store.update(
            note_id, {"content": new_content, "original_content": original}
        )
        if updated is None:
            raise NotFoundError("Note")
        self.start(note_id)
        return self.store.get(note_id)

    def undo_reformat(self, note_id: str) -> Note:
        """
        Restore the content saved by the last reformat and clear it.

        Raises:
            NotFoundError: If the note does not exist
        """
        note = self.store.get(note_id)
        if note.original_content is None:
            return note
        self.store.update(
            note_id, {"content": note.original_content, "original_content": None}
        )
        self.start(note_id)
        return self.store.get(note_id)

    def _report(self, progress: RefreshProgress, on_progress: ProgressCallback | None) -> None:
        self.progress = progress
        self.events.publish(
            "refresh-progress", f"{progress.kind}:{progress.current}/{progress.total}"
        )
        if on_progress is not None:
            on_progress(progress)

    def _begin_bulk(self) -> None:
        if self._bulk_running:
            raise RefreshInProgressError()
        self._bulk_running = True

    async def refresh_all(self, on_progress: ProgressCallback | None = None) -> RefreshSummary:
        """
        Re-enrich every note, one at a time, then rebuild the search index.

        Notes are processed sequentially so at most one classifier call from
        this loop is in flight. A failing note is marked ``error`` and the
        loop continues.

        Raises:
            RefreshInProgressError: If another bulk operation is running
        """
        self._begin_bulk()
        notes = self.store.snapshot()
        total = len(notes)
        succeeded = failed = 0
        logger.info(f"Refreshing metadata for {total} notes")
        try:
            # Enrichments started before the refresh run unserialized; let them drain
            await self.wait_idle()
            async with self.synchronizer.bulk():
                for i, snapshot_note in enumerate(notes, start=1):
                    note = self._enter_processing(snapshot_note.id)
                    if note is not None:
                        async with self._bulk_lock:
                            status = await self.enrich(note.id, note.content, note.rag_enabled)
                        if status == AIStatus.COMPLETED:
                            succeeded += 1
                        else:
                            failed += 1
                    self._report(RefreshProgress(i, total, "metadata"), on_progress)
        finally:
            self._bulk_running = False
        logger.info(f"Metadata refresh finished: {succeeded} ok, {failed} failed")
        return RefreshSummary(total=total, succeeded=succeeded, failed=failed)

    async def reembed_all(self, on_progress: ProgressCallback | None = None) -> RefreshSummary:
        """
        Recompute every note's embedding sequentially, then rebuild the index.

        A model that failed to load earlier gets a fresh set of load
        attempts. Notes whose embedding cannot be produced keep their previous vector.

        Raises:
            RefreshInProgressError: If another bulk operation is running
        """
        self._begin_bulk()
        if self.embedder.failed:
            logger.info("Retrying embedding model load before re-embedding")
            self.embedder.reset()
        notes = self.store.snapshot()
        total = len(notes)
        succeeded = failed = 0
        logger.info(f"Re-embedding {total} notes")
        try:
            async with self.synchronizer.bulk():
                for i, snapshot_note in enumerate(notes, start=1):
                    note = self.store.find(snapshot_note.id)
                    if note is not None:
                        embedding = await self.embedder.embed(note.content)
                        if embedding is not None:
                            self.store.update(note.id, {"embedding": embedding})
                            succeeded += 1
                        else:
                            logger.warning(f"Failed to embed note {note.id}")
                            failed += 1
                    self._report(RefreshProgress(i, total, "embeddings"), on_progress)
        finally:
            self._bulk_running = False
        logger.info(f"Re-embedding finished: {succeeded} ok, {failed} failed")
        return RefreshSummary(total=total, succeeded=succeeded, failed=failed)

    async def wait_idle(self) -> None:
        """Wait until every background enrichment task has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        """Cancel outstanding enrichment tasks."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
