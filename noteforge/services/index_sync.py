"""Keeps the derived search index consistent with the note store."""

import asyncio
import logging
from contextlib import asynccontextmanager

from noteforge.models.note import Note
from noteforge.services.note_store import NoteStore
from noteforge.services.search_index import IndexDocument, IndexSchema, SearchIndex
from noteforge.utils.events import EventManager
from noteforge.utils.exceptions import DuplicateDocumentError
from noteforge.utils.vector import EMBEDDING_DIMENSIONS

logger = logging.getLogger(__name__)


class IndexSynchronizer:
    """
    Reconciles note store state into the current search index.

    Incremental syncs run whenever the store changes, except while a bulk
    operation holds :meth:`bulk`; the bulk operation ends with a full
    rebuild instead. Readers always see a fully constructed index object:
    a rebuild swaps the reference only after the new schema exists.
    """

    def __init__(
        self,
        store: NoteStore,
        dimensions: int = EMBEDDING_DIMENSIONS,
        events: EventManager | None = None,
    ):
        """
        Initialize the synchronizer.

        Args:
            store: Note store to mirror
            dimensions: Width of the vector field
            events: Optional event manager for rebuild notifications
        """
        self.store = store
        self.dimensions = dimensions
        self.events = events
        self._index: SearchIndex | None = None
        self._bulk_depth = 0
        self._sync_task: asyncio.Task | None = None
        self._dirty = False
        self._subscribed = False
        self.rebuild_count = 0

    @property
    def index(self) -> SearchIndex | None:
        """The current index, or None if no schema could be constructed."""
        return self._index

    @property
    def paused(self) -> bool:
        return self._bulk_depth > 0

    def build_index(self) -> SearchIndex | None:
        """
        Construct a fresh empty index, degrading to a lexical schema.

        Returns:
            The new index, or None if neither schema could be built
        """
        try:
            return SearchIndex.create(IndexSchema.HYBRID, self.dimensions)
        except Exception as e:
            logger.error(f"Vector index unavailable, falling back to lexical index: {e}")
        try:
            return SearchIndex.create(IndexSchema.LEXICAL, self.dimensions)
        except Exception as e:
            logger.error(f"Lexical index unavailable, search will use substring matching: {e}")
        return None

    def initialize(self) -> SearchIndex | None:
        """Build the first index and start listening for store changes."""
        self._swap(self.build_index())
        if not self._subscribed:
            self.store.subscribe(self._on_store_change)
            self._subscribed = True
        return self._index

    def close(self) -> None:
        if self._sync_task is not None and not self._sync_task.done():
            self._sync_task.cancel()
        self._swap(None)

    def _swap(self, index: SearchIndex | None) -> None:
        # Readers holding a lease on the previous index keep it open
        previous = self._index
        self._index = index
        if previous is not None:
            previous.close()

    def _on_store_change(self, _snapshot: list[Note]) -> None:
        if self.paused:
            return
        self.schedule_sync()

    def schedule_sync(self) -> None:
        """
        Request an incremental sync in the background.

        Requests that arrive while a sync is running are coalesced into one
        follow-up pass.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop (synchronous caller); apply immediately
            self.sync_now()
            return
        if self._sync_task is not None and not self._sync_task.done():
            self._dirty = True
            return
        self._sync_task = loop.create_task(self._sync_loop())

    async def _sync_loop(self) -> None:
        while True:
            self._dirty = False
            await self.sync()
            if not self._dirty:
                break

    async def wait_idle(self) -> None:
        """Wait for any scheduled sync to finish."""
        while self._sync_task is not None and not self._sync_task.done():
            await asyncio.shield(self._sync_task)

    def upsert(self, note: Note, index: SearchIndex | None = None) -> bool:
        """
        Insert a note, tolerating an id that is already indexed.

        An existing entry whose indexed values differ is replaced; an
        identical one is left alone.

        Returns:
            True if the index changed
        """
        index = index or self._index
        if index is None:
            return False
        document = IndexDocument.from_note(note)
        try:
            index.insert(document)
            return True
        except DuplicateDocumentError:
            if index.fingerprint(document.id) == document.fingerprint:
                return False
            index.replace(document)
            return True

    def sync_now(self) -> int:
        """Run one synchronous reconciliation pass against the current index."""
        index = self._index
        if index is None:
            return 0
        changed = 0
        for note in self.store.snapshot():
            if self.upsert(note, index):
                changed += 1
        changed += self._prune(index)
        return changed

    async def sync(self) -> int:
        """
        Reconcile every note into the current index.

        Yields to the event loop between notes so large collections do not
        starve other tasks. Entries for notes no longer in the store are
        pruned at the end of the pass.

        Returns:
            Number of index entries inserted, replaced or removed
        """
        index = self._index
        if index is None or self.paused:
            return 0
        changed = 0
        with index.lease():
            for note in self.store.snapshot():
                try:
                    if self.upsert(note, index):
                        changed += 1
                except Exception:
                    logger.exception(f"Failed to index note {note.id}")
                await asyncio.sleep(0)
                if index is not self._index:
                    # Rebuilt underneath us; the rebuild performs its own pass
                    return changed
            try:
                changed += self._prune(index)
            except Exception:
                logger.exception("Failed to prune search index")
        if changed:
            logger.debug(f"Index sync applied {changed} changes")
        return changed

    def _prune(self, index: SearchIndex) -> int:
        stale = index.ids() - self.store.ids()
        for doc_id in stale:
            index.remove(doc_id)
        return len(stale)

    async def rebuild(self) -> SearchIndex | None:
        """
        Discard the current index and repopulate a fresh one.

        The new index replaces the old one as soon as its schema exists;
        population happens afterwards through a normal sync.
        """
        index = self.build_index()
        self._swap(index)
        self.rebuild_count += 1
        logger.info(f"Search index rebuilt ({index.schema if index else 'unavailable'})")
        count = await self.sync()
        if self.events is not None:
            await self.events.broadcast("index-rebuilt", str(count))
        return index

    @asynccontextmanager
    async def bulk(self):
        """
        Suspend incremental syncs for the duration of a bulk operation and
        rebuild the index when the outermost bulk block exits.
        """
        self._bulk_depth += 1
        try:
            yield self
        finally:
            self._bulk_depth -= 1
            if self._bulk_depth == 0:
                await self.rebuild()
