"""Shared test fixtures and factories."""

import json
import logging
import re
from collections.abc import AsyncGenerator, Callable
from pathlib import Path
from typing import Any

import pytest

from ember.config.models import (
    EmberConfig,
    EmbeddingsConfig,
    HistoryConfig,
    MemoryConfig,
    VectorStoreConfig,
)
from ember.config.paths import get_ember_home
from ember.db.engine import Database
from ember.llm.base import LLMProvider
from ember.llm.registry import LLMRegistry
from ember.llm.types import CompletionResponse, Message, Role, Usage
from ember.memory.decider import LLMActionDecider
from ember.memory.embeddings import EmbeddingGenerator
from ember.memory.extractor import FactExtractor
from ember.memory.history import HistoryStore
from ember.memory.service import MemoryService
from ember.memory.store import SQLiteVectorStore
from ember.memory.types import ChatMessage

TEST_DIMENSIONS = 256


@pytest.fixture(autouse=True)
def ember_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """Point EMBER_HOME at a temp dir and keep real env config out of tests."""
    home = tmp_path / "ember-home"
    monkeypatch.setenv("EMBER_HOME", str(home))
    for var in (
        "MEMORY_ENABLED",
        "MEMORY_SIMILARITY_THRESHOLD",
        "MEMORY_RETRIEVAL_LIMIT",
        "MEMORY_EXTRACTION_ENABLED",
        "EMBEDDING_MODEL",
        "EMBEDDING_DIMENSIONS",
        "MEMORY_CACHE_TTL",
        "MEMORY_BATCH_SIZE",
        "MEMORY_COLLECTION",
        "OPENAI_BASE_URL",
        "OPENAI_MODEL",
        "OPENAI_API_KEY",
        "ANTHROPIC_API_KEY",
        "EMBER_LOG_LEVEL",
    ):
        monkeypatch.delenv(var, raising=False)
    get_ember_home.cache_clear()
    yield home
    get_ember_home.cache_clear()


# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture
def config(tmp_path: Path) -> EmberConfig:
    """Enabled memory config with small test embeddings."""
    return EmberConfig(
        embeddings=EmbeddingsConfig(model="fake-embedding", dimensions=TEST_DIMENSIONS),
        memory=MemoryConfig(enabled=True),
        vector_store=VectorStoreConfig(database_path=tmp_path / "memory.db"),
        history=HistoryConfig(database_path=tmp_path / "history.db"),
    )


@pytest.fixture
def config_toml_content(tmp_path: Path) -> str:
    """Valid TOML config content."""
    return f"""
[models.default]
provider = "openai"
model = "gpt-4o-mini"

[openai]
api_key = "sk-test-abcdefghijklmnop1234"

[embeddings]
model = "fake-embedding"
dimensions = {TEST_DIMENSIONS}

[memory]
enabled = true
decider = "rules"

[vector_store]
database_path = "{tmp_path / "cli-memory.db"}"

[history]
database_path = "{tmp_path / "cli-history.db"}"
"""


@pytest.fixture
def config_file(tmp_path: Path, config_toml_content: str) -> Path:
    """Create a temporary config file."""
    config_path = tmp_path / "config.toml"
    config_path.write_text(config_toml_content)
    return config_path


# =============================================================================
# LLM Fixtures and Mocks
# =============================================================================


def extraction(*facts: str) -> str:
    """A scripted fact extraction response."""
    return json.dumps({"facts": list(facts)})


def decision(*actions: dict[str, Any]) -> str:
    """A scripted reconciliation response."""
    return json.dumps({"memory": list(actions)})


class MockLLMProvider(LLMProvider):
    """Mock LLM provider returning scripted text responses in order.

    A response may be an exception instance, which is raised instead.
    Once the script runs out, ``default_response`` is returned.
    """

    def __init__(
        self,
        responses: list[str | Exception] | None = None,
        default_response: str = "{}",
        name: str = "mock",
        stop_reason: str = "end_turn",
    ):
        self.responses = list(responses or [])
        self.stop_reason = stop_reason
        self.default_response = default_response
        self.complete_calls: list[dict[str, Any]] = []
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    @property
    def default_model(self) -> str:
        return "mock-model"

    async def complete(
        self,
        messages: list[Message],
        *,
        model: str | None = None,
        system: str | None = None,
        max_tokens: int = 1024,
        temperature: float | None = None,
        response_format: str = "text",
    ) -> CompletionResponse:
        self.complete_calls.append(
            {
                "messages": messages,
                "model": model,
                "system": system,
                "max_tokens": max_tokens,
                "temperature": temperature,
                "response_format": response_format,
            }
        )

        response = self.responses.pop(0) if self.responses else self.default_response
        if isinstance(response, Exception):
            raise response

        return CompletionResponse(
            message=Message.assistant(response),
            usage=Usage(input_tokens=100, output_tokens=50),
            stop_reason=self.stop_reason,
            model=model or "mock-model",
        )

    async def embed(
        self, texts: list[str], *, model: str | None = None
    ) -> list[list[float]]:
        raise NotImplementedError("MockLLMProvider does not embed")

    def prompt(self, index: int = -1) -> str:
        """Text of the user prompt sent in the given call."""
        return self.complete_calls[index]["messages"][0].get_text()


_TOKEN = re.compile(r"\w+")


class FakeEmbeddingProvider:
    """Deterministic bag-of-words embeddings.

    Each distinct lower-cased word gets its own dimension, so the cosine
    similarity of two texts is exactly their word overlap
    (e.g. "Name is Alice" vs "Name is Alice Smith" scores 3 / sqrt(12)).
    """

    def __init__(
        self,
        dimensions: int = TEST_DIMENSIONS,
        fail_with: Exception | None = None,
        name: str = "openai",
    ):
        self.dimensions = dimensions
        self.fail_with = fail_with
        self.embed_calls: list[list[str]] = []
        self.vocabulary: dict[str, int] = {}
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    @property
    def default_model(self) -> str:
        return "fake-embedding"

    async def complete(self, *args: Any, **kwargs: Any) -> CompletionResponse:
        raise NotImplementedError("FakeEmbeddingProvider does not complete")

    async def embed(
        self, texts: list[str], *, model: str | None = None
    ) -> list[list[float]]:
        self.embed_calls.append(list(texts))
        if self.fail_with is not None:
            raise self.fail_with
        return [self.vector(text) for text in texts]

    def vector(self, text: str) -> list[float]:
        vector = [0.0] * self.dimensions
        for token in _TOKEN.findall(text.lower()):
            index = self.vocabulary.setdefault(token, len(self.vocabulary))
            vector[index] += 1.0
        return vector


class FakeOpenAIProvider(MockLLMProvider):
    """Scripted completions and fake embeddings under the "openai" name."""

    def __init__(self, responses: list[str | Exception] | None = None):
        super().__init__(responses, name="openai")
        self.embedder = FakeEmbeddingProvider()

    async def embed(
        self, texts: list[str], *, model: str | None = None
    ) -> list[list[float]]:
        return await self.embedder.embed(texts, model=model)


@pytest.fixture
def mock_llm() -> MockLLMProvider:
    """Create a mock LLM provider."""
    return MockLLMProvider()


@pytest.fixture
def embedding_provider() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture
def registry(
    mock_llm: MockLLMProvider, embedding_provider: FakeEmbeddingProvider
) -> LLMRegistry:
    registry = LLMRegistry()
    registry.register(mock_llm)  # type: ignore[arg-type]
    registry.register(embedding_provider)  # type: ignore[arg-type]
    return registry


@pytest.fixture
def embeddings(registry: LLMRegistry) -> EmbeddingGenerator:
    return EmbeddingGenerator(
        registry, "fake-embedding", "openai", dimensions=TEST_DIMENSIONS
    )


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
async def memory_db(tmp_path: Path) -> AsyncGenerator[Database, None]:
    db = Database(database_path=tmp_path / "memory.db")
    yield db
    await db.disconnect()


@pytest.fixture
async def history_db(tmp_path: Path) -> AsyncGenerator[Database, None]:
    db = Database(database_path=tmp_path / "history.db")
    yield db
    await db.disconnect()


@pytest.fixture
async def vector_store(memory_db: Database) -> SQLiteVectorStore:
    """Create an initialized vector store on a temporary database."""
    store = SQLiteVectorStore(memory_db, dimensions=TEST_DIMENSIONS)
    await store.initialize()
    return store


@pytest.fixture
async def history_store(history_db: Database) -> HistoryStore:
    """Create an initialized audit log on a temporary database."""
    store = HistoryStore(history_db)
    await store.initialize()
    return store


# =============================================================================
# Service Fixtures
# =============================================================================


@pytest.fixture
def service_factory(
    config: EmberConfig,
    vector_store: SQLiteVectorStore,
    history_store: HistoryStore,
    embeddings: EmbeddingGenerator,
    mock_llm: MockLLMProvider,
) -> Callable[..., MemoryService]:
    """Build a MemoryService over the shared stores, optionally overriding parts."""

    def factory(
        *,
        config: EmberConfig = config,
        decider: Any = None,
        extractor: FactExtractor | None = None,
    ) -> MemoryService:
        return MemoryService(
            config=config,
            vector_store=vector_store,
            history_store=history_store,
            embeddings=embeddings,
            extractor=extractor or FactExtractor(mock_llm, "mock-model"),
            decider=decider or LLMActionDecider(mock_llm, "mock-model"),
        )

    return factory


@pytest.fixture
def service(service_factory: Callable[..., MemoryService]) -> MemoryService:
    return service_factory()


# =============================================================================
# Message Factories
# =============================================================================


def make_message(
    content: str = "Hello there, how are you?", role: Role = Role.USER
) -> ChatMessage:
    """Factory for creating chat messages."""
    return ChatMessage(role=role, content=content)


def make_conversation(*turns: str) -> list[ChatMessage]:
    """Alternate user/assistant turns starting with the user."""
    return [
        ChatMessage(role=Role.USER if i % 2 == 0 else Role.ASSISTANT, content=turn)
        for i, turn in enumerate(turns)
    ]


# =============================================================================
# CLI Test Helpers
# =============================================================================


@pytest.fixture
def cli_runner():
    """Create a Typer CLI test runner with colors disabled."""
    from typer.testing import CliRunner

    return CliRunner(env={"NO_COLOR": "1"})


@pytest.fixture
def restore_root_logger():
    """Undo configure_logging() side effects on the root logger."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
