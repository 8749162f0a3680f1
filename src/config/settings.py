"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ────────────────────────────────────────────────
#
# Values are read from two sources, in priority order:
#
#   1. **Environment variables** -- e.g. OPENAI_API_KEY=sk-abc123
#   2. **.env file** -- key=value lines in the project root .env file
#
# Field ``openai_api_key`` maps to env var ``OPENAI_API_KEY``.  Defaults
# below apply when neither source sets a value.
# ──────────────────────────────────────────────────────────────────────
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Knowledge-base service settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # === Embedding Providers ===
    # Empty key = "not configured"; main.py then falls back to Ollama.
    openai_api_key: str = ""
    openai_base_url: str = ""  # OpenAI-compatible endpoint override
    openai_embedding_model: str = ""  # Defaults to text-embedding-3-small
    embedding_dimensions: int = 1536
    ollama_base_url: str = "http://localhost:11434"

    # === Storage ===
    database_path: str = "data/knowledge.db"

    # === Chunking ===
    chunk_target_size: int = 4000  # characters, roughly 1000 tokens
    chunk_overlap: int = 200
    chunk_boundary_tolerance: float = 0.2

    # === Embedding client ===
    embedding_batch_size: int = 100
    embedding_max_attempts: int = 4
    embedding_retry_base_delay: float = 0.5
    embedding_retry_max_delay: float = 8.0
    embedding_max_concurrency: int = 4  # process-wide, shared by all ingestions

    # === Retrieval ===
    retrieval_top_k: int = 5
    retrieval_similarity_threshold: float = 0.7
    retrieval_candidate_multiplier: int = 3
    context_max_tokens: int = 3000

    # === Uploads ===
    max_upload_bytes: int = 20 * 1024 * 1024

    # === App Config ===
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"

    def get_available_embedding_providers(self) -> list[str]:
        """Return embedding provider names that are configured, in priority order."""
        providers: list[str] = []
        if self.openai_api_key:
            providers.append("openai")
        if self.ollama_base_url:
            providers.append("ollama")
        return providers
