"""YAML configuration loader with environment variable overrides.

# ─── CONFIGURATION HIERARCHY ──────────────────────────────────────────
#
# Configuration is loaded in layers (later layers override earlier):
#
#   1. config/config.yaml  -- static defaults checked into the repo
#   2. .env file           -- local developer overrides (not committed)
#   3. Environment vars    -- set at deploy time
#
# Only values that differ from the Settings defaults are treated as
# overrides, so a tuning value written in config.yaml is not clobbered by
# an unset environment variable.
# ──────────────────────────────────────────────────────────────────────
"""

from pathlib import Path

import yaml

from src.config.settings import Settings


def load_config(path: str = "config/config.yaml", settings: Settings | None = None) -> dict:
    """Load YAML config and merge with environment-based Settings.

    Args:
        path: Path to the YAML configuration file.
        settings: Settings instance to take overrides from; a fresh one is
            built from the environment when omitted.

    Returns:
        Fully resolved configuration dictionary with the sections
        ``app``, ``embedding``, ``storage``, ``chunking``, ``retrieval``,
        ``uploads`` and ``logging``.
    """
    config_path = Path(path)
    if config_path.exists():
        with open(config_path) as f:
            yaml_config = yaml.safe_load(f) or {}
    else:
        yaml_config = {}

    if settings is None:
        settings = Settings()
    defaults = Settings.model_construct()

    def _changed(field: str) -> bool:
        return getattr(settings, field) != getattr(defaults, field)

    sections = {
        "app": {"host": "app_host", "port": "app_port", "env": "app_env"},
        "embedding": {
            "openai_base_url": "openai_base_url",
            "model": "openai_embedding_model",
            "dimensions": "embedding_dimensions",
            "ollama_base_url": "ollama_base_url",
            "batch_size": "embedding_batch_size",
            "max_attempts": "embedding_max_attempts",
            "retry_base_delay": "embedding_retry_base_delay",
            "retry_max_delay": "embedding_retry_max_delay",
            "max_concurrency": "embedding_max_concurrency",
        },
        "storage": {"database_path": "database_path"},
        "chunking": {
            "target_size": "chunk_target_size",
            "overlap": "chunk_overlap",
            "boundary_tolerance": "chunk_boundary_tolerance",
        },
        "retrieval": {
            "top_k": "retrieval_top_k",
            "similarity_threshold": "retrieval_similarity_threshold",
            "candidate_multiplier": "retrieval_candidate_multiplier",
            "context_max_tokens": "context_max_tokens",
        },
        "uploads": {"max_bytes": "max_upload_bytes"},
        "logging": {"level": "log_level"},
    }

    # Defaults first (so every key exists), then YAML, then changed env values.
    resolved: dict = {
        section: {key: getattr(defaults, field) for key, field in fields.items()}
        for section, fields in sections.items()
    }
    _deep_merge(resolved, yaml_config)
    env_overrides = {
        section: {key: getattr(settings, field) for key, field in fields.items() if _changed(field)}
        for section, fields in sections.items()
    }
    _deep_merge(resolved, env_overrides)
    resolved["embedding"]["available_providers"] = settings.get_available_embedding_providers()
    return resolved


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
