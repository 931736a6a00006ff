"""Types for the memory pipeline."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from ember.llm.types import Role


class MemoryEvent(str, Enum):
    """Reconciliation outcome for a single fact."""

    ADD = "ADD"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    NONE = "NONE"


class PipelineStage(str, Enum):
    """Stages of an ``add`` call, in order."""

    EXTRACTING = "extracting"
    EMBEDDING = "embedding"
    SEARCHING = "searching"
    DECIDING = "deciding"
    EXECUTING = "executing"
    DONE = "done"


@dataclass
class ChatMessage:
    """A conversation turn handed to the pipeline. Never persisted."""

    role: Role
    content: str
    id: str | None = None
    timestamp: int | None = None  # epoch milliseconds


@dataclass
class MemoryPayload:
    """Document stored next to a memory vector."""

    text: str
    owner_id: str
    content_hash: str
    created_at: datetime
    updated_at: datetime | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class SearchResult:
    """A vector store hit. ``score`` is cosine similarity (1.0 for direct reads)."""

    id: str
    score: float
    payload: MemoryPayload


@dataclass
class MemoryFilter:
    """Search scope. ``owner_id`` is mandatory."""

    owner_id: str
    created_after: datetime | None = None
    created_before: datetime | None = None


@dataclass
class Memory:
    """A stored fact as returned to callers."""

    id: str
    text: str
    owner_id: str
    content_hash: str
    created_at: datetime
    updated_at: datetime | None = None
    score: float | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_search_result(
        cls, result: SearchResult, *, with_score: bool = True
    ) -> "Memory":
        payload = result.payload
        return cls(
            id=result.id,
            text=payload.text,
            owner_id=payload.owner_id,
            content_hash=payload.content_hash,
            created_at=payload.created_at,
            updated_at=payload.updated_at,
            score=result.score if with_score else None,
            metadata=dict(payload.metadata),
        )


@dataclass
class CandidateMemory:
    """An existing memory offered to the decider, with its best similarity."""

    id: str
    text: str
    score: float


@dataclass
class MemoryAction:
    """One reconciliation decision.

    ``old_memory`` holds the previous text for UPDATE and the retracted
    text for DELETE; it is None for ADD and NONE.
    """

    id: str
    text: str
    event: MemoryEvent
    old_memory: str | None = None


@dataclass
class HistoryEntry:
    """An audit log row."""

    id: str
    memory_id: str
    owner_id: str
    prev_value: str | None
    new_value: str | None
    event: MemoryEvent
    timestamp: datetime
    metadata: dict[str, Any] | None = None


@dataclass
class AddResult:
    """Outcome of ``MemoryService.add``."""

    results: list[MemoryAction] = field(default_factory=list)
    facts: list[str] = field(default_factory=list)
    stage: PipelineStage = PipelineStage.DONE

    def by_event(self, event: MemoryEvent) -> list[MemoryAction]:
        return [action for action in self.results if action.event == event]
