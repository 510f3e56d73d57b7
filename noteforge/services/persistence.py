"""Key-value snapshot persistence for the note collection."""

import json
import logging
from typing import Any

from pydantic import ValidationError
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from noteforge.database import create_db_and_tables
from noteforge.models.note import Note
from noteforge.models.snapshot import KeyValueEntry
from noteforge.utils.datetime import utc_now
from noteforge.utils.exceptions import PersistenceFailure

logger = logging.getLogger(__name__)

NOTES_KEY = "notes"
MODEL_TIER_KEY = "model_tier"
CONTEXT_DOCUMENT_KEY = "context_document"


class SnapshotStore:
    """Last-write-wins blob storage keyed by name."""

    def __init__(self, engine: Engine):
        """
        Initialize the snapshot store.

        Args:
            engine: SQLAlchemy engine for the snapshot database
        """
        self.engine = engine
        create_db_and_tables(engine)

    def get(self, key: str) -> str | None:
        """Return the raw value stored under ``key``, or None."""
        try:
            with Session(self.engine) as session:
                entry = session.get(KeyValueEntry, key)
                return entry.value if entry else None
        except SQLAlchemyError as e:
            logger.error(f"Failed to read '{key}' from snapshot store: {e}")
            return None

    def set(self, key: str, value: str) -> None:
        """
        Store ``value`` under ``key``, replacing any previous value.

        Raises:
            PersistenceFailure: If the write fails
        """
        try:
            with Session(self.engine) as session:
                entry = session.get(KeyValueEntry, key)
                if entry is None:
                    entry = KeyValueEntry(key=key, value=value)
                else:
                    entry.value = value
                    entry.updated_at = utc_now()
                session.add(entry)
                session.commit()
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Failed to write '{key}': {e}") from e

    def delete(self, key: str) -> None:
        """Remove ``key``; a missing key is not an error."""
        try:
            with Session(self.engine) as session:
                entry = session.get(KeyValueEntry, key)
                if entry is not None:
                    session.delete(entry)
                    session.commit()
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Failed to delete '{key}': {e}") from e

    def get_json(self, key: str) -> Any | None:
        raw = self.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.error(f"Stored value for '{key}' is not valid JSON, ignoring it")
            return None

    def set_json(self, key: str, value: Any) -> None:
        self.set(key, json.dumps(value))

    def load_notes(self) -> list[Note]:
        """
        Read the persisted note collection.

        A missing or unreadable snapshot yields an empty collection.
        """
        data = self.get_json(NOTES_KEY)
        if data is None:
            return []
        if not isinstance(data, list):
            logger.error("Note snapshot is not a list, starting with an empty collection")
            return []
        try:
            notes = [Note.model_validate(item) for item in data]
        except ValidationError as e:
            logger.error(f"Note snapshot failed validation, starting empty: {e}")
            return []
        logger.info(f"Loaded {len(notes)} notes from snapshot")
        return notes

    def save_notes(self, notes: list[Note]) -> None:
        """
        Persist the full note collection.

        Raises:
            PersistenceFailure: If the write fails
        """
        self.set_json(NOTES_KEY, [note.to_export() for note in notes])
