"""Authoritative in-memory note collection."""

import logging
from collections.abc import Callable, Iterable
from typing import Any

from noteforge.models.note import (
    PLACEHOLDER_CATEGORY,
    PLACEHOLDER_HEADLINE,
    AIStatus,
    Note,
)
from noteforge.services.persistence import SnapshotStore
from noteforge.utils.exceptions import NotFoundError, PersistenceFailure
from noteforge.utils.vector import coerce_embedding

logger = logging.getLogger(__name__)

ChangeListener = Callable[[list[Note]], None]

IMMUTABLE_FIELDS = frozenset({"id", "timestamp"})


class NoteStore:
    """
    Single source of truth for the note collection.

    Notes are kept most-recent-first. Every mutation replaces the affected
    note with a merged copy, writes a snapshot and then notifies listeners.
    All methods are synchronous so a mutation is never interleaved with
    another task on the event loop.
    """

    def __init__(
        self,
        persistence: SnapshotStore | None = None,
        notes: Iterable[Note] = (),
    ):
        """
        Initialize the note store.

        Args:
            persistence: Snapshot collaborator written after every mutation
            notes: Initial collection, most recent first
        """
        self._persistence = persistence
        self._notes: list[Note] = []
        self._listeners: list[ChangeListener] = []
        seen: set[str] = set()
        for note in notes:
            if note.id in seen:
                logger.warning(f"Dropping duplicate note {note.id} from initial load")
                continue
            seen.add(note.id)
            self._notes.append(note)

    def __len__(self) -> int:
        return len(self._notes)

    def __contains__(self, note_id: object) -> bool:
        return any(n.id == note_id for n in self._notes)

    def subscribe(self, listener: ChangeListener) -> None:
        """Register a callback invoked with the snapshot after each mutation."""
        self._listeners.append(listener)

    def snapshot(self) -> list[Note]:
        """Return the full current collection, most recent first."""
        return list(self._notes)

    def ids(self) -> set[str]:
        return {n.id for n in self._notes}

    def find(self, note_id: str) -> Note | None:
        for note in self._notes:
            if note.id == note_id:
                return note
        return None

    def get(self, note_id: str) -> Note:
        """
        Get a single note by ID.

        Raises:
            NotFoundError: If the note does not exist
        """
        note = self.find(note_id)
        if note is None:
            raise NotFoundError("Note")
        return note

    def create(self, content: str, rag_enabled: bool = False) -> Note:
        """
        Insert a new note in the processing state at the head of the collection.

        The caller is responsible for starting enrichment.
        """
        note = Note(
            content=content,
            rag_enabled=rag_enabled,
            ai_status=AIStatus.PROCESSING,
            category=PLACEHOLDER_CATEGORY,
            headline=PLACEHOLDER_HEADLINE,
        )
        self._notes.insert(0, note)
        logger.info(f"Created note {note.id}")
        self._commit()
        return note

    def update(self, note_id: str, fields: dict[str, Any]) -> Note | None:
        """
        Merge ``fields`` into the note with ``note_id``.

        Only the given fields change; a missing id is a no-op. A malformed or
        null embedding never replaces the stored one.

        Returns:
            The merged note, or None if the id is not present
        """
        index = self._index_of(note_id)
        if index is None:
            logger.debug(f"Ignoring update for missing note {note_id}")
            return None

        changes = {k: v for k, v in fields.items() if k not in IMMUTABLE_FIELDS}
        if "embedding" in changes and coerce_embedding(changes["embedding"]) is None:
            changes.pop("embedding")
        if not changes:
            return self._notes[index]

        current = self._notes[index]
        merged = Note.model_validate(current.model_dump() | changes)
        self._notes[index] = merged
        self._commit()
        return merged

    def delete(self, note_id: str) -> bool:
        """
        Remove a note. Deleting an absent id is allowed.

        Returns:
            True if a note was removed
        """
        index = self._index_of(note_id)
        if index is None:
            return False
        del self._notes[index]
        logger.info(f"Deleted note {note_id}")
        self._commit()
        return True

    def import_many(self, notes: Iterable[Note]) -> list[Note]:
        """
        Merge externally supplied notes, skipping ids already present.

        Imported notes are placed ahead of the existing collection in the
        order given.

        Returns:
            The notes that were actually inserted
        """
        existing = self.ids()
        added: list[Note] = []
        for note in notes:
            if note.id in existing:
                continue
            existing.add(note.id)
            added.append(note)
        if added:
            self._notes[:0] = added
            logger.info(f"Imported {len(added)} notes")
            self._commit()
        return added

    def _index_of(self, note_id: str) -> int | None:
        for i, note in enumerate(self._notes):
            if note.id == note_id:
                return i
        return None

    def _commit(self) -> None:
        snapshot = self.snapshot()
        if self._persistence is not None:
            try:
                self._persistence.save_notes(snapshot)
            except PersistenceFailure as e:
                # In-memory state stays authoritative for this session
                logger.error(f"Snapshot write failed: {e}")
        for listener in self._listeners:
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Note store listener failed")
