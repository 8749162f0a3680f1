"""OpenAI-compatible embedding provider adapter.

Wraps the ``openai`` async client to implement :class:`IEmbeddingProvider`.
Supports real OpenAI and OpenAI-compatible endpoints via a custom
``base_url`` and model name.

One call to :meth:`OpenAIEmbeddingProvider.embed` is one upstream request;
the embedding client above it decides batch sizes and retries.  SDK errors
are translated into the transient/terminal split the client understands.
"""

from __future__ import annotations

import openai
import structlog

from src.config.settings import Settings
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.utils.errors import (
    EmbeddingFailure,
    KnowledgeBaseError,
    ProviderUnavailableError,
    RateLimitError,
)

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_MODEL = "text-embedding-3-small"

# Native output dimensions of known embedding models.
_MODEL_DIMENSIONS: dict[str, int] = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
    "BAAI/bge-base-en-v1.5": 768,
    "BAAI/bge-large-en-v1.5": 1024,
}

# Models that accept a ``dimensions`` request parameter.
_RESIZABLE_PREFIX = "text-embedding-3-"


def translate_openai_error(exc: openai.APIError, provider_name: str) -> KnowledgeBaseError:
    """Map an ``openai`` SDK exception onto the knowledge-base error hierarchy.

    Rate limits, timeouts, connection errors and 5xx responses become
    transient errors; everything else (bad request, auth, model not found)
    is a terminal :class:`EmbeddingFailure`.
    """
    if isinstance(exc, openai.RateLimitError):
        return RateLimitError(message=f"Embedding rate limit: {exc}", provider_name=provider_name)
    if isinstance(exc, (openai.APIConnectionError, openai.InternalServerError)):
        return ProviderUnavailableError(
            message=f"Embedding service unavailable: {exc}",
            provider_name=provider_name,
        )
    return EmbeddingFailure(
        message=f"Embedding API error: {exc}",
        provider_name=provider_name,
        cause=exc,
    )


class OpenAIEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider backed by an OpenAI-compatible embeddings API.

    Uses ``text-embedding-3-small`` by default.  For ``text-embedding-3-*``
    models the configured ``embedding_dimensions`` is sent with each
    request, so the stored vector size is fixed by configuration.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._api_key = settings.openai_api_key

        client_kwargs: dict = {"api_key": self._api_key}
        if settings.openai_base_url:
            client_kwargs["base_url"] = settings.openai_base_url

        self._client = openai.AsyncOpenAI(**client_kwargs)
        self._model = settings.openai_embedding_model or _DEFAULT_MODEL
        self._resizable = self._model.startswith(_RESIZABLE_PREFIX)
        if self._resizable:
            self._dimension = settings.embedding_dimensions
        else:
            self._dimension = _MODEL_DIMENSIONS.get(self._model, settings.embedding_dimensions)
        self._provider_label = (
            "openai-compatible_embedding" if settings.openai_base_url else "openai_embedding"
        )

    # ------------------------------------------------------------------
    # IEmbeddingProvider implementation
    # ------------------------------------------------------------------

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Embed *texts* with a single ``embeddings.create`` request."""
        if not texts:
            return []

        request: dict = {"input": texts, "model": self._model}
        if self._resizable:
            request["dimensions"] = self._dimension

        try:
            response = await self._client.embeddings.create(**request)
        except openai.APIError as exc:
            raise translate_openai_error(exc, self.get_provider_name()) from exc

        # The API may return items out of order; ``index`` is authoritative.
        data = sorted(response.data, key=lambda item: item.index)
        logger.info(
            "openai_embedding_batch",
            model=self._model,
            provider=self._provider_label,
            batch_size=len(texts),
            tokens=response.usage.total_tokens if response.usage else None,
        )
        return [item.embedding for item in data]

    async def embed_single(self, text: str) -> list[float]:
        """Generate an embedding vector for a single text string."""
        result = await self.embed([text])
        return result[0]

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return self._provider_label

    def is_available(self) -> bool:
        """Return ``True`` if an API key is configured."""
        return bool(self._api_key)
