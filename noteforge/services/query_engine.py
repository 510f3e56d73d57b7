"""Debounced hybrid search over the note index."""

import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from enum import StrEnum

from noteforge.models.note import Note
from noteforge.services.embeddings import EmbeddingProvider
from noteforge.services.index_sync import IndexSynchronizer
from noteforge.services.note_store import NoteStore

logger = logging.getLogger(__name__)


class SearchStrategy(StrEnum):
    """How a result list was produced."""

    ALL = "all"
    HYBRID = "hybrid"
    LEXICAL = "lexical"
    SUBSTRING = "substring"


@dataclass(frozen=True)
class SearchOutcome:
    """Ordered note ids for a query. Bodies are looked up by the caller."""

    query: str
    ids: list[str] = field(default_factory=list)
    strategy: SearchStrategy = SearchStrategy.ALL
    token: int = 0


class QueryEngine:
    """
    Executes user queries against the current search index.

    :meth:`submit` debounces keystrokes: each call restarts the idle timer
    and only the last query in a window runs. Every query gets a token, and
    a result is only returned if no newer query started while it ran.
    """

    def __init__(
        self,
        store: NoteStore,
        synchronizer: IndexSynchronizer,
        embedder: EmbeddingProvider,
        *,
        debounce: float = 0.3,
        limit: int = 20,
        similarity: float = 0.6,
        boost: dict[str, float] | None = None,
        text_weight: float = 0.5,
        vector_weight: float = 0.5,
        embedding_timeout: float = 5.0,
    ):
        self.store = store
        self.synchronizer = synchronizer
        self.embedder = embedder
        self.debounce = debounce
        self.limit = limit
        self.similarity = similarity
        self.boost = boost if boost is not None else {"headline": 2.0, "category": 1.5}
        self.text_weight = text_weight
        self.vector_weight = vector_weight
        self.embedding_timeout = embedding_timeout

        self._tokens = itertools.count(1)
        self._latest_token = 0
        self._timer: asyncio.Task | None = None
        self.executed = 0

    async def submit(self, query: str) -> SearchOutcome | None:
        """
        Debounced search.

        Returns:
            The outcome, or None if a newer query superseded this one either
            during the debounce window or while it was executing
        """
        token = next(self._tokens)
        self._latest_token = token
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        timer = asyncio.get_running_loop().create_task(asyncio.sleep(self.debounce))
        self._timer = timer

        try:
            await timer
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            logger.debug(f"Query '{query}' superseded during debounce")
            return None

        outcome = await self.search(query, token=token)
        if token != self._latest_token:
            logger.debug(f"Discarding stale results for '{query}'")
            return None
        return outcome

    async def search(self, query: str, token: int = 0) -> SearchOutcome:
        """
        Run a query immediately.

        An empty query bypasses the index and returns every note in store
        order. Otherwise a hybrid query is attempted, degrading to lexical
        and finally to substring matching. Ids no longer in the store are
        dropped.
        """
        if not query.strip():
            return SearchOutcome(
                query, [n.id for n in self.store.snapshot()], SearchStrategy.ALL, token
            )

        self.executed += 1
        index = self.synchronizer.index
        if index is None:
            return self._substring(query, token)

        vector = await self._query_embedding(query) if index.supports_vectors else None
        # The index may have been rebuilt while the embedding was computed
        index = self.synchronizer.index
        if index is None:
            return self._substring(query, token)
        if not index.supports_vectors:
            vector = None
        params = {
            "boost": self.boost,
            "similarity": self.similarity,
            "limit": self.limit,
            "text_weight": self.text_weight,
            "vector_weight": self.vector_weight,
        }
        with index.lease():
            try:
                hits = index.search(query, vector=vector, **params)
                strategy = SearchStrategy.HYBRID if vector is not None else SearchStrategy.LEXICAL
            except Exception as e:
                logger.warning(f"Search failed, retrying lexical-only: {e}")
                try:
                    hits = index.search(query, vector=None, **params)
                    strategy = SearchStrategy.LEXICAL
                except Exception as e:
                    logger.error(f"Lexical search failed, using substring match: {e}")
                    return self._substring(query, token)

        live = self.store.ids()
        ids = [hit.id for hit in hits if hit.id in live]
        logger.info(f"Search '{query}' ({strategy}) found {len(ids)} results")
        return SearchOutcome(query, ids, strategy, token)

    async def _query_embedding(self, query: str) -> list[float] | None:
        try:
            return await asyncio.wait_for(
                self.embedder.embed(query), timeout=self.embedding_timeout
            )
        except TimeoutError:
            logger.warning("Query embedding timed out, searching lexically")
            return None

    def _substring(self, query: str, token: int) -> SearchOutcome:
        needle = query.lower()
        ids = [n.id for n in self.store.snapshot() if needle in n.content.lower()]
        return SearchOutcome(query, ids, SearchStrategy.SUBSTRING, token)

    def resolve(self, outcome: SearchOutcome) -> list[Note]:
        """Map result ids back onto current notes, preserving result order."""
        by_id = {n.id: n for n in self.store.snapshot()}
        return [by_id[note_id] for note_id in outcome.ids if note_id in by_id]

    def cancel_pending(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
