"""Build an ``EmberConfig`` from a TOML file plus environment overrides.

Precedence, lowest first: model defaults, the TOML file, environment
variables. API keys are the exception: a key written in the file wins over
``OPENAI_API_KEY`` / ``ANTHROPIC_API_KEY``.
"""

import logging
import os
import tomllib
from pathlib import Path
from typing import Any

from pydantic import SecretStr

from ember.config.models import (
    DEFAULT_CHAT_MODEL,
    PROVIDER_KEY_ENV,
    EmberConfig,
    ModelConfig,
)
from ember.config.paths import get_config_path

logger = logging.getLogger(__name__)

# (section, key, environment variable)
ENV_OVERRIDES: list[tuple[str, str, str]] = [
    ("memory", "enabled", "MEMORY_ENABLED"),
    ("memory", "similarity_threshold", "MEMORY_SIMILARITY_THRESHOLD"),
    ("memory", "retrieval_limit", "MEMORY_RETRIEVAL_LIMIT"),
    ("memory", "extraction_enabled", "MEMORY_EXTRACTION_ENABLED"),
    ("embeddings", "model", "EMBEDDING_MODEL"),
    ("embeddings", "dimensions", "EMBEDDING_DIMENSIONS"),
    ("performance", "cache_ttl", "MEMORY_CACHE_TTL"),
    ("performance", "batch_size", "MEMORY_BATCH_SIZE"),
    ("vector_store", "collection", "MEMORY_COLLECTION"),
    ("openai", "base_url", "OPENAI_BASE_URL"),
]


def find_config_file() -> Path | None:
    """First existing config file: ./config.toml, $EMBER_HOME, then /etc/ember."""
    candidates = [
        Path("config.toml"),
        get_config_path(),
        Path("/etc/ember/config.toml"),
    ]
    return next((p for p in candidates if p.is_file()), None)


def _resolve_env_secrets(config: dict[str, Any]) -> dict[str, Any]:
    """Fill provider ``api_key`` from the environment where the file left it out.

    Only provider sections that exist are touched; a missing section means
    the provider is not configured.
    """
    for provider, env_var in PROVIDER_KEY_ENV.items():
        section = config.get(provider)
        if section is None or section.get("api_key") is not None:
            continue
        if value := os.environ.get(env_var):
            section["api_key"] = SecretStr(value)
    return config


def _apply_env_overrides(config: dict[str, Any]) -> dict[str, Any]:
    """Layer environment variables over file values.

    Values stay strings; pydantic coerces them during validation. Empty
    variables are ignored. ``OPENAI_MODEL`` only replaces the default chat
    model when that model is served by OpenAI.
    """
    for section, key, env_var in ENV_OVERRIDES:
        if value := os.environ.get(env_var):
            config.setdefault(section, {})[key] = value

    if chat_model := os.environ.get("OPENAI_MODEL"):
        models = config.setdefault("models", {})
        default = models.setdefault("default", {"provider": "openai"})
        if default.get("provider") == "openai":
            default["model"] = chat_model

    return config


def load_config(path: Path | None = None) -> EmberConfig:
    """Load and validate configuration.

    Args:
        path: Explicit config file. Without one, the standard locations are
            searched and defaults are used if none exists.

    Raises:
        FileNotFoundError: If an explicit path does not exist.
        pydantic.ValidationError: If the merged values are invalid.
    """
    if path is not None:
        config_path: Path | None = Path(path).expanduser()
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        config_path = find_config_file()

    raw: dict[str, Any] = {}
    if config_path is None:
        logger.debug("config_file_not_found_using_defaults")
    else:
        raw = tomllib.loads(config_path.read_text(encoding="utf-8"))
        logger.debug("config_loaded", extra={"config.path": str(config_path)})

    return EmberConfig.model_validate(_resolve_env_secrets(_apply_env_overrides(raw)))


def get_default_config() -> EmberConfig:
    """Defaults with an OpenAI chat model, for tests and embedding callers."""
    return EmberConfig(
        models={"default": ModelConfig(provider="openai", model=DEFAULT_CHAT_MODEL)}
    )
