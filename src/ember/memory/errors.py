"""Memory pipeline exceptions."""


class MemoryServiceError(Exception):
    """Base class for memory pipeline errors."""


class ValidationError(MemoryServiceError):
    """Caller supplied invalid input. Raised before any external call."""


class TransportError(MemoryServiceError):
    """An external service (model or embedding API) could not be reached.

    Transient by nature; callers may retry the whole operation.
    """

    retryable = True


class EmbeddingError(TransportError):
    """The embedding service failed or returned an unusable response."""


class ParseError(MemoryServiceError):
    """A model response could not be parsed into the expected structure."""


class StoreError(MemoryServiceError):
    """A vector store or audit log operation failed.

    ``failed`` lists ``(id, reason)`` pairs for partial batch failures.
    """

    def __init__(self, message: str, failed: list[tuple[str, str]] | None = None):
        super().__init__(message)
        self.failed: list[tuple[str, str]] = failed or []
