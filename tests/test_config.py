"""Tests for configuration loading and models."""

from pathlib import Path

import pytest
from pydantic import SecretStr, ValidationError

from ember.config.loader import _resolve_env_secrets, get_default_config, load_config
from ember.config.models import (
    ConfigError,
    EmberConfig,
    EmbeddingsConfig,
    MemoryConfig,
    ModelConfig,
    ProviderConfig,
)
from ember.config.paths import (
    get_all_paths,
    get_config_path,
    get_database_path,
    get_ember_home,
)


class TestMemoryConfig:
    """Tests for MemoryConfig model."""

    def test_defaults(self):
        config = MemoryConfig()
        assert config.enabled is False
        assert config.similarity_threshold == 0.7
        assert config.retrieval_limit == 5
        assert config.extraction_enabled is True
        assert config.max_messages == 20
        assert config.min_message_length == 10
        assert config.serialize_owner_writes is False
        assert config.decider == "llm"

    @pytest.mark.parametrize(
        "field,value",
        [
            ("similarity_threshold", 1.5),
            ("similarity_threshold", -0.1),
            ("retrieval_limit", 0),
            ("decider", "magic"),
        ],
    )
    def test_rejects_out_of_range(self, field, value):
        with pytest.raises(ValidationError):
            MemoryConfig(**{field: value})

    def test_frozen(self):
        config = MemoryConfig()
        with pytest.raises(ValidationError):
            config.enabled = True  # type: ignore[misc]


class TestEmbeddingsConfig:
    def test_defaults(self):
        config = EmbeddingsConfig()
        assert config.provider == "openai"
        assert config.model == "text-embedding-3-small"
        assert config.dimensions == 1536

    def test_dimensions_must_be_positive(self):
        with pytest.raises(ValidationError):
            EmbeddingsConfig(dimensions=0)


class TestEmberConfig:
    """Tests for the root config model."""

    def test_default_model(self):
        config = get_default_config()
        assert config.default_model.provider == "openai"
        assert config.list_models() == ["default"]

    def test_requires_default_model(self):
        with pytest.raises(ValidationError, match="No default model"):
            EmberConfig(models={"fast": ModelConfig(provider="openai", model="x")})

    def test_unknown_alias(self):
        with pytest.raises(ConfigError, match="Unknown model alias 'missing'"):
            get_default_config().get_model("missing")

    def test_resolve_api_key_prefers_config(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-from-env")
        config = EmberConfig(openai=ProviderConfig(api_key=SecretStr("sk-from-file")))

        assert config.resolve_api_key().get_secret_value() == "sk-from-file"  # type: ignore[union-attr]
        assert config.resolve_embeddings_api_key().get_secret_value() == "sk-from-file"  # type: ignore[union-attr]

    def test_resolve_api_key_falls_back_to_env(self, monkeypatch):
        config = EmberConfig(
            models={"default": ModelConfig(provider="anthropic", model="claude")}
        )
        assert config.resolve_api_key() is None

        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-env")
        assert config.resolve_api_key().get_secret_value() == "sk-ant-env"  # type: ignore[union-attr]

    def test_resolve_base_url(self):
        config = EmberConfig(openai=ProviderConfig(base_url="http://localhost:8080/v1"))
        assert config.resolve_base_url("openai") == "http://localhost:8080/v1"
        assert config.resolve_base_url("anthropic") is None

    def test_storage_paths_default_under_home(self, ember_home):
        config = EmberConfig()
        assert config.vector_store.database_path == ember_home.resolve() / "data" / "memory.db"
        assert config.history.database_path == ember_home.resolve() / "data" / "history.db"
        assert config.vector_store.collection == "chatbot_memories"


class TestLoadConfig:
    """Tests for load_config."""

    def test_loads_file(self, config_file: Path):
        config = load_config(config_file)

        assert config.default_model.model == "gpt-4o-mini"
        assert config.openai is not None
        assert config.openai.api_key is not None
        assert config.embeddings.dimensions == 256
        assert config.memory.enabled is True
        assert config.memory.decider == "rules"

    def test_missing_explicit_path(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.toml")

    def test_defaults_without_any_file(self, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        config = load_config()
        assert config.default_model.model == "gpt-4o-mini"
        assert config.memory.enabled is False

    def test_finds_config_in_ember_home(self, ember_home: Path, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        ember_home.mkdir(parents=True, exist_ok=True)
        get_config_path().write_text(
            '[models.default]\nprovider = "openai"\nmodel = "gpt-4o"\n'
        )

        assert load_config().default_model.model == "gpt-4o"

    def test_env_overrides(self, config_file: Path, monkeypatch):
        monkeypatch.setenv("MEMORY_ENABLED", "false")
        monkeypatch.setenv("MEMORY_SIMILARITY_THRESHOLD", "0.85")
        monkeypatch.setenv("EMBEDDING_DIMENSIONS", "512")
        monkeypatch.setenv("MEMORY_COLLECTION", "assistant_memories")
        monkeypatch.setenv("OPENAI_MODEL", "gpt-4o")
        monkeypatch.setenv("OPENAI_BASE_URL", "http://localhost:8080/v1")

        config = load_config(config_file)

        assert config.memory.enabled is False
        assert config.memory.similarity_threshold == 0.85
        assert config.embeddings.dimensions == 512
        assert config.vector_store.collection == "assistant_memories"
        assert config.default_model.model == "gpt-4o"
        assert config.resolve_base_url("openai") == "http://localhost:8080/v1"

    def test_openai_model_does_not_touch_other_providers(self, tmp_path: Path, monkeypatch):
        path = tmp_path / "config.toml"
        path.write_text('[models.default]\nprovider = "anthropic"\nmodel = "claude"\n')
        monkeypatch.setenv("OPENAI_MODEL", "gpt-4o")

        assert load_config(path).default_model.model == "claude"

    def test_invalid_env_value_fails_validation(self, config_file: Path, monkeypatch):
        monkeypatch.setenv("MEMORY_RETRIEVAL_LIMIT", "lots")
        with pytest.raises(ValidationError):
            load_config(config_file)

    def test_resolve_env_secrets(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
        raw = _resolve_env_secrets({"openai": {}, "anthropic": {"api_key": "kept"}})

        assert raw["openai"]["api_key"].get_secret_value() == "sk-env"
        assert raw["anthropic"]["api_key"] == "kept"


class TestPaths:
    def test_home_from_env(self, ember_home: Path):
        assert get_ember_home() == ember_home.resolve()
        assert get_config_path() == get_ember_home() / "config.toml"
        assert get_database_path().name == "memory.db"
        assert set(get_all_paths()) == {"home", "config", "database", "history", "logs"}
