"""Custom exception hierarchy for the assistant knowledge base.

All application exceptions inherit from :class:`KnowledgeBaseError`, which
carries an optional ``provider_name`` so error handlers can identify which
component (e.g. "openai", "sqlite", "pymupdf") caused the failure.

The hierarchy is organized by pipeline stage:

    KnowledgeBaseError  (base -- catch-all for any knowledge-base error)
    +-- ValidationError          (upload rejected before anything is stored)
    +-- ExtractionFailure        (PDF / DOCX / text payload could not be read)
    +-- EmbeddingFailure         (embedding model failed after all retries)
    +-- StorageFailure           (document or chunk persistence failed)
    +-- RateLimitError           (provider rate-limit exceeded, transient)
    +-- ProviderUnavailableError (provider down / timed out, transient)
    +-- ConfigurationError       (startup / missing config)

The two transient classes are what the embedding client retries; every
other class is terminal for the operation that raised it.
"""


class KnowledgeBaseError(Exception):
    """Base exception for all knowledge-base errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which external service triggered the
    error.  The ``__str__`` method prefixes the provider name in brackets
    for structured log output, e.g. ``[openai] Rate limit exceeded``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Upload validation
# ---------------------------------------------------------------------------

class ValidationError(KnowledgeBaseError):
    """Raised when an upload is rejected (type, size or empty payload).

    ``status_code`` is the HTTP status the API layer should answer with:
    415 for an unsupported type, 413 for an oversized file, 400 otherwise.
    """

    def __init__(
        self,
        message: str = "Invalid upload",
        provider_name: str | None = None,
        status_code: int = 400,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self._status_code = status_code

    @property
    def status_code(self) -> int:
        return self._status_code


# ---------------------------------------------------------------------------
# Ingestion stage errors
# ---------------------------------------------------------------------------

class ExtractionFailure(KnowledgeBaseError):
    """Raised when text cannot be extracted from an uploaded payload."""

    def __init__(
        self,
        message: str = "Text extraction failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class EmbeddingFailure(KnowledgeBaseError):
    """Raised when embeddings cannot be produced.

    Either the provider returned a non-retryable error, returned malformed
    vectors, or every retry attempt was exhausted.  ``cause`` holds the last
    underlying exception when there was one.
    """

    def __init__(
        self,
        message: str = "Embedding generation failed",
        provider_name: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self._cause = cause

    @property
    def cause(self) -> BaseException | None:
        return self._cause


class StorageFailure(KnowledgeBaseError):
    """Raised when the document/chunk store cannot complete an operation."""

    def __init__(
        self,
        message: str = "Storage operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# External service / provider errors
# ---------------------------------------------------------------------------

class ProviderUnavailableError(KnowledgeBaseError):
    """Raised when an external service is unreachable, times out or returns 5xx.

    The embedding client treats this as transient and retries with backoff.
    """

    def __init__(
        self,
        message: str = "External service is unavailable",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class RateLimitError(KnowledgeBaseError):
    """Raised when an API rate limit is exceeded.

    Callers should back off exponentially before trying again.
    """

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Configuration errors
# ---------------------------------------------------------------------------

class ConfigurationError(KnowledgeBaseError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
