"""Note service for user-facing note operations."""

import json
import logging
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from noteforge.models.note import AIStatus, Note
from noteforge.services.enrichment import EnrichmentPipeline
from noteforge.services.insights import sort_by_category
from noteforge.services.note_store import NoteStore
from noteforge.utils.events import EventManager
from noteforge.utils.exceptions import ImportValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImportResult:
    """Counts from an import."""

    imported: int
    skipped: int


class NoteService:
    """Service for note operations that combine the store and enrichment."""

    def __init__(
        self,
        store: NoteStore,
        pipeline: EnrichmentPipeline,
        events: EventManager | None = None,
    ):
        """
        Initialize the note service.

        Args:
            store: Authoritative note store
            pipeline: Enrichment pipeline for new and edited notes
            events: Optional event manager for collection broadcasts
        """
        self.store = store
        self.pipeline = pipeline
        self.events = events or EventManager()

    def create_note(self, content: str, rag_enabled: bool = False) -> Note:
        """
        Create a note and start enriching it in the background.

        Args:
            content: Note text
            rag_enabled: Whether enrichment should use the reference document

        Returns:
            The note as inserted, still ``processing``
        """
        note = self.store.create(content, rag_enabled=rag_enabled)
        self.events.publish("note-created", note.id)
        self.pipeline.start(note.id)
        return note

    def get_note(self, note_id: str) -> Note:
        """
        Get a single note by ID.

        Raises:
            NotFoundError: If note not found
        """
        return self.store.get(note_id)

    def list_notes(self, order: str = "recent") -> list[Note]:
        """
        List notes in natural (newest first) or category order.
        """
        notes = self.store.snapshot()
        if order == "category":
            return sort_by_category(notes)
        return notes

    def update_note(
        self,
        note_id: str,
        content: str | None = None,
        rag_enabled: bool | None = None,
        headline: str | None = None,
        category: str | None = None,
        tags: list[str] | None = None,
    ) -> Note:
        """
        Update a note.

        Changing the content re-enters ``processing``; any enrichment still
        running for the old content is left to finish.

        Raises:
            NotFoundError: If note not found
        """
        note = self.store.get(note_id)

        fields: dict[str, Any] = {}
        if rag_enabled is not None:
            fields["rag_enabled"] = rag_enabled
        if headline is not None:
            fields["headline"] = headline
        if category is not None:
            fields["category"] = category
        if tags is not None:
            fields["tags"] = tags
        content_changed = content is not None and content != note.content
        if content_changed:
            fields["content"] = content

        if fields:
            self.store.update(note_id, fields)
        if content_changed:
            self.pipeline.start(note_id)
        return self.store.get(note_id)

    def delete_note(self, note_id: str) -> bool:
        """
        Delete a note. Deleting a missing note is not an error.

        Returns:
            True if a note was removed
        """
        deleted = self.store.delete(note_id)
        if deleted:
            self.events.publish("note-deleted", note_id)
        return deleted

    def refresh_note(self, note_id: str) -> Note:
        """
        Re-run enrichment for one note.

        Raises:
            NotFoundError: If note not found
        """
        self.store.get(note_id)
        self.pipeline.start(note_id)
        return self.store.get(note_id)

    def export_notes(self) -> list[dict[str, Any]]:
        """Serialize the full collection for an export file."""
        return [note.to_export() for note in self.store.snapshot()]

    def import_notes(self, payload: Any) -> ImportResult:
        """
        Merge notes from an export file.

        The payload (raw JSON text/bytes or an already decoded value) must be
        an array whose every element has an ``id`` and ``content``. Any
        invalid element rejects the whole file. Notes whose id already exists
        are skipped. Notes keep the status they were exported with; those
        exported mid-enrichment are enriched again.

        Raises:
            ImportValidationError: If the payload is not a valid export
        """
        notes = parse_export(payload)
        added = self.store.import_many(notes)
        for note in added:
            if note.ai_status == AIStatus.PROCESSING:
                self.pipeline.start(note.id)
        logger.info(f"Imported {len(added)} notes, skipped {len(notes) - len(added)} existing")
        return ImportResult(imported=len(added), skipped=len(notes) - len(added))


def parse_export(payload: Any) -> list[Note]:
    """
    Validate an export payload into notes without touching any store.

    Raises:
        ImportValidationError: If the payload is malformed
    """
    if isinstance(payload, (bytes, bytearray, str)):
        try:
            payload = json.loads(payload)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ImportValidationError("Import file is not valid JSON") from e

    if not isinstance(payload, list):
        raise ImportValidationError("Import file must contain a JSON array of notes")

    notes: list[Note] = []
    for position, item in enumerate(payload):
        if not isinstance(item, dict):
            raise ImportValidationError(f"Entry {position} is not a note object")
        if not item.get("id") or not isinstance(item.get("content"), str) or not item["content"]:
            raise ImportValidationError(f"Entry {position} is missing an id or content")
        try:
            note = Note.model_validate(item)
        except ValidationError as e:
            raise ImportValidationError(f"Entry {position} is not a valid note: {e}") from e
        notes.append(note)
    return notes
