"""Long-term memory pipeline: extraction, reconciliation, storage and retrieval."""

from ember.memory.cache import EmbeddingCache
from ember.memory.decider import (
    ActionDecider,
    LLMActionDecider,
    RuleBasedActionDecider,
)
from ember.memory.embeddings import EmbeddingGenerator
from ember.memory.errors import (
    EmbeddingError,
    MemoryServiceError,
    ParseError,
    StoreError,
    TransportError,
    ValidationError,
)
from ember.memory.extractor import FactExtractor
from ember.memory.history import HistoryStore
from ember.memory.runtime import create_memory_service, create_registry_from_config
from ember.memory.service import MemoryService
from ember.memory.store import SQLiteVectorStore, VectorStore
from ember.memory.types import (
    AddResult,
    ChatMessage,
    HistoryEntry,
    Memory,
    MemoryAction,
    MemoryEvent,
    MemoryFilter,
    MemoryPayload,
    PipelineStage,
    SearchResult,
)

__all__ = [
    # Service
    "MemoryService",
    "create_memory_service",
    "create_registry_from_config",
    # Components
    "ActionDecider",
    "EmbeddingCache",
    "EmbeddingGenerator",
    "FactExtractor",
    "HistoryStore",
    "LLMActionDecider",
    "RuleBasedActionDecider",
    "SQLiteVectorStore",
    "VectorStore",
    # Errors
    "EmbeddingError",
    "MemoryServiceError",
    "ParseError",
    "StoreError",
    "TransportError",
    "ValidationError",
    # Types
    "AddResult",
    "ChatMessage",
    "HistoryEntry",
    "Memory",
    "MemoryAction",
    "MemoryEvent",
    "MemoryFilter",
    "MemoryPayload",
    "PipelineStage",
    "SearchResult",
]
