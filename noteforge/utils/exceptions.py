"""Custom exception classes."""

from fastapi import HTTPException, status


class NoteForgeException(Exception):
    """Base exception for note-forge."""

    pass


class NotFoundError(NoteForgeException):
    """Raised when a resource is not found."""

    def __init__(self, resource: str = "Resource", detail: str | None = None):
        self.detail = detail or f"{resource} not found"
        super().__init__(self.detail)

    def to_http_exception(self) -> HTTPException:
        """Convert to FastAPI HTTPException."""
        return HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=self.detail,
        )


class ServiceError(NoteForgeException):
    """Raised when external service calls fail."""

    def __init__(self, detail: str = "External service error"):
        self.detail = detail
        super().__init__(detail)

    def to_http_exception(self) -> HTTPException:
        """Convert to FastAPI HTTPException."""
        return HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=self.detail,
        )


class ClassificationFailure(ServiceError):
    """Raised when the remote classifier times out, errors or returns garbage."""

    def __init__(self, detail: str = "Classification failed"):
        super().__init__(detail)


class EmbeddingFailure(NoteForgeException):
    """Raised inside the embedding provider; never escapes ``embed``."""

    def __init__(self, detail: str = "Embedding failed"):
        self.detail = detail
        super().__init__(detail)


class PersistenceFailure(NoteForgeException):
    """Raised when a snapshot write fails."""

    def __init__(self, detail: str = "Snapshot write failed"):
        self.detail = detail
        super().__init__(detail)


class ImportValidationError(NoteForgeException):
    """Raised when an import payload is rejected."""

    def __init__(self, detail: str = "Invalid note export"):
        self.detail = detail
        super().__init__(detail)

    def to_http_exception(self) -> HTTPException:
        """Convert to FastAPI HTTPException."""
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=self.detail,
        )


class ContextDocumentError(NoteForgeException):
    """Raised when a reference context document is rejected."""

    def __init__(
        self,
        detail: str = "Invalid context document",
        status_code: int = status.HTTP_400_BAD_REQUEST,
    ):
        self.detail = detail
        self.status_code = status_code
        super().__init__(detail)

    def to_http_exception(self) -> HTTPException:
        """Convert to FastAPI HTTPException."""
        return HTTPException(status_code=self.status_code, detail=self.detail)


class RefreshInProgressError(NoteForgeException):
    """Raised when a bulk refresh is requested while one is running."""

    def __init__(self, detail: str = "A bulk refresh is already running"):
        self.detail = detail
        super().__init__(detail)

    def to_http_exception(self) -> HTTPException:
        """Convert to FastAPI HTTPException."""
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=self.detail,
        )


class DuplicateDocumentError(NoteForgeException):
    """Raised by the search index when a document id is already present."""

    def __init__(self, doc_id: str):
        self.doc_id = doc_id
        super().__init__(f"Document {doc_id} already indexed")


class IndexUnavailableError(NoteForgeException):
    """Raised when no search index schema could be constructed."""

    pass
