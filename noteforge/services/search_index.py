"""Derived, rebuildable search index over note content and embeddings."""

import hashlib
import json
import logging
import re
from contextlib import contextmanager
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

import sqlite_vec
from pydantic import BaseModel, Field, field_validator
from sqlalchemy import event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlmodel import create_engine
from sqlmodel.pool import StaticPool

from noteforge.models.note import Note
from noteforge.utils.exceptions import DuplicateDocumentError, IndexUnavailableError
from noteforge.utils.vector import EMBEDDING_DIMENSIONS, coerce_embedding, serialize_vector

logger = logging.getLogger(__name__)

LEXICAL_FIELDS = ("content", "headline", "category", "tags", "intent")

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)


class IndexSchema(StrEnum):
    """Shape of an index: lexical fields plus an optional vector field."""

    HYBRID = "hybrid"
    LEXICAL = "lexical"


class IndexDocument(BaseModel):
    """A note as seen by the index. Embeddings are coerced or dropped."""

    id: str
    content: str
    headline: str = ""
    category: str = ""
    tags: list[str] = Field(default_factory=list)
    intent: str = ""
    embedding: list[float] | None = None

    @field_validator("embedding", mode="before")
    @classmethod
    def _fixed_width(cls, value: Any) -> list[float] | None:
        return coerce_embedding(value, EMBEDDING_DIMENSIONS)

    @classmethod
    def from_note(cls, note: Note) -> "IndexDocument":
        return cls(
            id=note.id,
            content=note.content,
            headline=note.headline,
            category=note.category,
            tags=note.tags,
            intent=note.intent.value if note.intent else "",
            embedding=note.embedding,
        )

    @property
    def fingerprint(self) -> str:
        """Stable digest of every indexed value."""
        payload = json.dumps(self.model_dump(), sort_keys=True)
        return hashlib.sha1(payload.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class SearchHit:
    """A ranked search result."""

    id: str
    score: float
    text_score: float = 0.0
    vector_score: float | None = None


def build_match_query(term: str) -> str | None:
    """
    Turn free text into an FTS5 MATCH expression.

    Every word becomes a quoted prefix query; words are OR-combined so
    partially matching notes still rank. Returns None when the term has no
    searchable words.
    """
    tokens = _TOKEN_RE.findall(term.lower())
    if not tokens:
        return None
    return " OR ".join(f'"{token}"*' for token in tokens)


def _load_sqlite_vec(dbapi_conn, _connection_record):
    """Load sqlite-vec extension when connection is created."""
    dbapi_conn.enable_load_extension(True)
    sqlite_vec.load(dbapi_conn)
    dbapi_conn.enable_load_extension(False)


class SearchIndex:
    """
    An isolated in-memory SQLite database holding indexed notes.

    Lexical search runs through FTS5 with per-column bm25 weights; vector
    search uses sqlite-vec's cosine distance over fixed-width float32 blobs.
    The index is never authoritative and is thrown away on rebuild.
    """

    def __init__(self, engine: Engine, schema: IndexSchema, dimensions: int):
        self.engine = engine
        self.schema = schema
        self.dimensions = dimensions
        self._leases = 0
        self._closed = False

    @classmethod
    def create(
        cls,
        schema: IndexSchema = IndexSchema.HYBRID,
        dimensions: int = EMBEDDING_DIMENSIONS,
    ) -> "SearchIndex":
        """
        Construct a fresh, empty index with the given schema.

        Raises:
            Exception: Whatever the SQLite driver raises when the schema
                cannot be built (missing FTS5, extension loading disabled)
        """
        engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        if schema is IndexSchema.HYBRID:
            event.listen(engine, "connect", _load_sqlite_vec)

        try:
            with engine.begin() as conn:
                if schema is IndexSchema.HYBRID:
                    version = conn.execute(text("SELECT vec_version()")).scalar()
                    logger.debug(f"sqlite-vec {version} loaded for search index")
                conn.execute(
                    text(
                        """
                        CREATE TABLE documents (
                            rowid INTEGER PRIMARY KEY,
                            doc_id TEXT NOT NULL UNIQUE,
                            fingerprint TEXT NOT NULL,
                            embedding BLOB
                        )
                        """
                    )
                )
                conn.execute(
                    text(
                        "CREATE VIRTUAL TABLE documents_fts USING fts5("
                        + ", ".join(LEXICAL_FIELDS)
                        + ", tokenize='unicode61 remove_diacritics 2')"
                    )
                )
        except Exception:
            engine.dispose()
            raise

        logger.info(f"Created {schema} search index")
        return cls(engine, schema, dimensions)

    @property
    def supports_vectors(self) -> bool:
        return self.schema is IndexSchema.HYBRID

    @property
    def closed(self) -> bool:
        return self._closed

    @contextmanager
    def lease(self):
        """
        Hold the index open for the duration of a read.

        A :meth:`close` issued while leases are outstanding only takes
        effect when the last lease is released.
        """
        self._leases += 1
        try:
            yield self
        finally:
            self._leases -= 1
            if self._closed and self._leases == 0:
                self.engine.dispose()

    def close(self) -> None:
        """Release the backing database once no reader holds a lease."""
        self._closed = True
        if self._leases == 0:
            self.engine.dispose()

    def count(self) -> int:
        with self.engine.connect() as conn:
            return conn.execute(text("SELECT count(*) FROM documents")).scalar_one()

    def ids(self) -> set[str]:
        with self.engine.connect() as conn:
            rows = conn.execute(text("SELECT doc_id FROM documents")).all()
        return {row.doc_id for row in rows}

    def fingerprint(self, doc_id: str) -> str | None:
        with self.engine.connect() as conn:
            return conn.execute(
                text("SELECT fingerprint FROM documents WHERE doc_id = :doc_id"),
                {"doc_id": doc_id},
            ).scalar()

    def insert(self, document: IndexDocument) -> None:
        """
        Add a document.

        Raises:
            DuplicateDocumentError: If the id is already indexed
        """
        try:
            with self.engine.begin() as conn:
                self._insert(conn, document)
        except IntegrityError as e:
            raise DuplicateDocumentError(document.id) from e

    def replace(self, document: IndexDocument) -> None:
        """Delete any existing entry for the id and insert ``document``."""
        with self.engine.begin() as conn:
            self._delete(conn, document.id)
            self._insert(conn, document)

    def remove(self, doc_id: str) -> bool:
        with self.engine.begin() as conn:
            return self._delete(conn, doc_id)

    def _insert(self, conn, document: IndexDocument) -> None:
        embedding = None
        if self.supports_vectors and document.embedding is not None:
            embedding = serialize_vector(document.embedding)

        result = conn.execute(
            text(
                """
                INSERT INTO documents (doc_id, fingerprint, embedding)
                VALUES (:doc_id, :fingerprint, :embedding)
                """
            ),
            {
                "doc_id": document.id,
                "fingerprint": document.fingerprint,
                "embedding": embedding,
            },
        )
        conn.execute(
            text(
                """
                INSERT INTO documents_fts (rowid, content, headline, category, tags, intent)
                VALUES (:rowid, :content, :headline, :category, :tags, :intent)
                """
            ),
            {
                "rowid": result.lastrowid,
                "content": document.content,
                "headline": document.headline,
                "category": document.category,
                "tags": " ".join(document.tags),
                "intent": document.intent,
            },
        )

    def _delete(self, conn, doc_id: str) -> bool:
        rowid = conn.execute(
            text("SELECT rowid FROM documents WHERE doc_id = :doc_id"),
            {"doc_id": doc_id},
        ).scalar()
        if rowid is None:
            return False
        conn.execute(text("DELETE FROM documents_fts WHERE rowid = :rowid"), {"rowid": rowid})
        conn.execute(text("DELETE FROM documents WHERE rowid = :rowid"), {"rowid": rowid})
        return True

    def search_lexical(
        self,
        term: str,
        boost: dict[str, float] | None = None,
        limit: int = 20,
    ) -> list[tuple[str, float]]:
        """
        Rank documents by bm25 with per-field weights.

        Returns:
            (doc_id, bm25 rank) pairs, best first. Ranks are negative; lower
            is better.
        """
        match = build_match_query(term)
        if match is None:
            return []
        boost = boost or {}
        weights = ", ".join(str(float(boost.get(f, 1.0))) for f in LEXICAL_FIELDS)
        sql = text(
            f"""
            SELECT d.doc_id AS doc_id, bm25(documents_fts, {weights}) AS score
            FROM documents_fts
            JOIN documents d ON d.rowid = documents_fts.rowid
            WHERE documents_fts MATCH :match
            ORDER BY score ASC
            LIMIT :limit
            """
        )
        with self.engine.connect() as conn:
            rows = conn.execute(sql, {"match": match, "limit": limit}).all()
        return [(row.doc_id, row.score) for row in rows]

    def search_vector(
        self,
        vector: list[float],
        similarity: float = 0.0,
        limit: int = 20,
    ) -> list[tuple[str, float]]:
        """
        Rank embedded documents by cosine similarity to ``vector``.

        Raises:
            IndexUnavailableError: If this index has no vector field
            ValueError: If ``vector`` does not have the index's width
        """
        if not self.supports_vectors:
            raise IndexUnavailableError("Vector search is not available on a lexical index")
        query = coerce_embedding(vector, self.dimensions)
        if query is None:
            raise ValueError(f"Query vector must have {self.dimensions} components")

        sql = text(
            """
            SELECT doc_id, 1.0 - vec_distance_cosine(embedding, :query_vec) AS similarity
            FROM documents
            WHERE embedding IS NOT NULL
              AND length(embedding) = :vec_len
            ORDER BY similarity DESC
            LIMIT :limit
            """
        )
        with self.engine.connect() as conn:
            rows = conn.execute(
                sql,
                {
                    "query_vec": serialize_vector(query),
                    "vec_len": self.dimensions * 4,
                    "limit": limit,
                },
            ).all()
        return [(row.doc_id, row.similarity) for row in rows if row.similarity >= similarity]

    def search(
        self,
        term: str,
        *,
        boost: dict[str, float] | None = None,
        vector: list[float] | None = None,
        similarity: float = 0.6,
        limit: int = 20,
        text_weight: float = 0.5,
        vector_weight: float = 0.5,
    ) -> list[SearchHit]:
        """
        Run a lexical or hybrid query.

        Lexical ranks are normalised against the best match so they fall in
        (0, 1]. With a query vector the final score is a weighted sum of the
        normalised lexical score and the cosine similarity; documents only
        found by one side get zero for the other.
        """
        pool = max(limit * 5, 100)
        lexical = self.search_lexical(term, boost=boost, limit=pool)

        text_scores: dict[str, float] = {}
        if lexical:
            best = min(rank for _, rank in lexical)
            for doc_id, rank in lexical:
                text_scores[doc_id] = rank / best if best < 0 else 1.0

        if vector is None:
            hits = [SearchHit(id=doc_id, score=s, text_score=s) for doc_id, s in text_scores.items()]
            return hits[:limit]

        vector_scores = dict(self.search_vector(vector, similarity=similarity, limit=pool))

        hits = []
        for doc_id in text_scores.keys() | vector_scores.keys():
            t = text_scores.get(doc_id, 0.0)
            v = vector_scores.get(doc_id)
            score = text_weight * t + vector_weight * (v or 0.0)
            hits.append(SearchHit(id=doc_id, score=score, text_score=t, vector_score=v))
        hits.sort(key=lambda h: (-h.score, h.id))
        return hits[:limit]
