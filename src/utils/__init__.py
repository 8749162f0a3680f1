"""Utility modules for the knowledge-base service.

Available utility modules (all re-exported here for convenience):

- **errors** -- Domain exception hierarchy rooted at KnowledgeBaseError;
  validation, extraction, embedding and storage failures each raise their
  own subclass so callers handle them without broad ``except Exception``.
- **concurrency** -- The process-wide embedding concurrency pool and a
  semaphore-bounded ``gather`` helper.
- **logging** -- structlog setup with a dual-renderer pattern: coloured
  console output in development, structured JSON in production.
"""

# -- Domain exception hierarchy --------------------------------------------
from src.utils.errors import (
    ConfigurationError,
    EmbeddingFailure,
    ExtractionFailure,
    KnowledgeBaseError,
    ProviderUnavailableError,
    RateLimitError,
    StorageFailure,
    ValidationError,
)

# -- Async concurrency helpers ---------------------------------------------
from src.utils.concurrency import EmbeddingConcurrencyPool, throttled_gather

# -- Structured logging setup ----------------------------------------------
from src.utils.logging import configure_logging, get_logger

__all__ = [
    "ConfigurationError",
    "EmbeddingConcurrencyPool",
    "EmbeddingFailure",
    "ExtractionFailure",
    "KnowledgeBaseError",
    "ProviderUnavailableError",
    "RateLimitError",
    "StorageFailure",
    "ValidationError",
    "configure_logging",
    "get_logger",
    "throttled_gather",
]
