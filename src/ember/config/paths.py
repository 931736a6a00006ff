"""Where ember keeps its files.

Everything lives under one home directory, ``~/.ember`` unless
``EMBER_HOME`` points elsewhere:

    config.toml
    data/memory.db     vector store
    data/history.db    audit log
    logs/YYYY-MM-DD.jsonl

Nothing here creates directories; the database and log writers do that
on first use.
"""

import os
from functools import lru_cache
from pathlib import Path

ENV_VAR = "EMBER_HOME"
DEFAULT_DIRNAME = ".ember"


@lru_cache(maxsize=1)
def get_ember_home() -> Path:
    """Resolve the home directory once per process.

    Tests that change ``EMBER_HOME`` must call ``get_ember_home.cache_clear()``.
    """
    if env_home := os.environ.get(ENV_VAR):
        return Path(env_home).expanduser().resolve()
    return Path.home() / DEFAULT_DIRNAME


def get_config_path() -> Path:
    return get_ember_home() / "config.toml"


def get_data_dir() -> Path:
    return get_ember_home() / "data"


def get_database_path() -> Path:
    return get_data_dir() / "memory.db"


def get_history_database_path() -> Path:
    return get_data_dir() / "history.db"


def get_logs_path() -> Path:
    return get_ember_home() / "logs"


def get_all_paths() -> dict[str, Path]:
    """Default locations by role, for ``ember config paths``."""
    return {
        "home": get_ember_home(),
        "config": get_config_path(),
        "database": get_database_path(),
        "history": get_history_database_path(),
        "logs": get_logs_path(),
    }
