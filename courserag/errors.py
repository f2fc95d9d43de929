"""Error taxonomy shared by the RAG pipeline and the HTTP layer.

Each error carries the HTTP status it maps to and a public message that is
safe to return to clients. ``retryable`` marks failures that were transient
(timeouts, connection errors, 429/5xx) when the retry budget ran out.
"""


class CourseRagError(Exception):
    """Base class for all application errors."""

    status_code = 500

    def __init__(self, message: str, *, retryable: bool = False):
        super().__init__(message)
        self.message = message
        self.retryable = retryable


class ValidationError(CourseRagError):
    """Missing or malformed request field."""

    status_code = 400


class NotFoundError(CourseRagError):
    status_code = 404


class EmbeddingServiceError(CourseRagError):
    """The embedding service failed or returned unusable vectors."""

    status_code = 502


class RetrievalServiceError(CourseRagError):
    """The vector store failed (collection, upsert, search or scroll)."""

    status_code = 502


class GenerationServiceError(CourseRagError):
    """The generation model failed or is not configured."""

    status_code = 502


class InternalError(CourseRagError):
    status_code = 500
