"""Configuration module."""

from ember.config.loader import get_default_config, load_config
from ember.config.models import (
    ConfigError,
    EmberConfig,
    EmbeddingsConfig,
    HistoryConfig,
    MemoryConfig,
    ModelConfig,
    PerformanceConfig,
    ProviderConfig,
    RetrySettings,
    VectorStoreConfig,
)
from ember.config.paths import (
    get_all_paths,
    get_config_path,
    get_database_path,
    get_ember_home,
    get_history_database_path,
)

__all__ = [
    "get_all_paths",
    "ConfigError",
    "EmberConfig",
    "EmbeddingsConfig",
    "HistoryConfig",
    "MemoryConfig",
    "ModelConfig",
    "PerformanceConfig",
    "ProviderConfig",
    "RetrySettings",
    "VectorStoreConfig",
    "get_config_path",
    "get_database_path",
    "get_default_config",
    "get_ember_home",
    "get_history_database_path",
    "load_config",
]
