"""Enrichment configuration: model tier and reference context document."""

import logging

from fastapi import status
from pydantic import ValidationError

from noteforge.models.context import ContextDocument
from noteforge.models.note import ModelTier
from noteforge.services.persistence import (
    CONTEXT_DOCUMENT_KEY,
    MODEL_TIER_KEY,
    SnapshotStore,
)
from noteforge.utils.exceptions import ContextDocumentError, PersistenceFailure

logger = logging.getLogger(__name__)


class EnrichmentContext:
    """
    Holds the settings every enrichment call reads.

    Values are loaded from the snapshot store on construction and written
    back on change.
    """

    def __init__(
        self,
        persistence: SnapshotStore | None = None,
        default_tier: ModelTier | str = ModelTier.FLASH,
        max_document_bytes: int = 4 * 1024 * 1024,
    ):
        self._persistence = persistence
        self.max_document_bytes = max_document_bytes
        self.model_tier = ModelTier(default_tier)
        self.document: ContextDocument | None = None
        self._load()

    def _load(self) -> None:
        if self._persistence is None:
            return
        stored_tier = self._persistence.get(MODEL_TIER_KEY)
        if stored_tier in ModelTier._value2member_map_:
            self.model_tier = ModelTier(stored_tier)

        data = self._persistence.get_json(CONTEXT_DOCUMENT_KEY)
        if data is not None:
            try:
                self.document = ContextDocument.model_validate(data)
            except ValidationError:
                logger.error("Stored context document is invalid, ignoring it")

    def set_model_tier(self, tier: ModelTier | str) -> ModelTier:
        self.model_tier = ModelTier(tier)
        if self._persistence is not None:
            try:
                self._persistence.set(MODEL_TIER_KEY, self.model_tier.value)
            except PersistenceFailure as e:
                logger.error(f"Failed to persist model tier: {e}")
        logger.info(f"Model tier set to {self.model_tier}")
        return self.model_tier

    def set_document(self, filename: str, data: bytes) -> ContextDocument:
        """
        Store a reference document.

        Raises:
            ContextDocumentError: If the document is too large or not UTF-8 text
        """
        if len(data) > self.max_document_bytes:
            limit_mb = self.max_document_bytes / (1024 * 1024)
            raise ContextDocumentError(
                f"File is too large (limit: {limit_mb:.0f}MB).",
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            )
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ContextDocumentError("Only UTF-8 text documents are supported.") from e
        if not text.strip():
            raise ContextDocumentError("Context document is empty.")

        document = ContextDocument(filename=filename, text=text)
        if self._persistence is not None:
            try:
                self._persistence.set_json(
                    CONTEXT_DOCUMENT_KEY, document.model_dump(mode="json")
                )
            except PersistenceFailure as e:
                logger.error(f"Failed to persist context document: {e}")
        self.document = document
        logger.info(f"Context document set: {filename} ({document.size} bytes)")
        return document

    def clear_document(self) -> None:
        self.document = None
        if self._persistence is not None:
            try:
                self._persistence.delete(CONTEXT_DOCUMENT_KEY)
            except PersistenceFailure as e:
                logger.error(f"Failed to clear context document: {e}")

    def rag_context_for(self, rag_enabled: bool) -> ContextDocument | None:
        """The document to pass to the classifier for a note, if any."""
        return self.document if rag_enabled else None
