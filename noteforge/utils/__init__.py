"""Utility modules."""

from noteforge.utils.exceptions import (
    ClassificationFailure,
    ContextDocumentError,
    DuplicateDocumentError,
    EmbeddingFailure,
    ImportValidationError,
    IndexUnavailableError,
    NoteForgeException,
    NotFoundError,
    PersistenceFailure,
    RefreshInProgressError,
    ServiceError,
)

__all__ = [
    "ClassificationFailure",
    "ContextDocumentError",
    "DuplicateDocumentError",
    "EmbeddingFailure",
    "ImportValidationError",
    "IndexUnavailableError",
    "NoteForgeException",
    "NotFoundError",
    "PersistenceFailure",
    "RefreshInProgressError",
    "ServiceError",
]
