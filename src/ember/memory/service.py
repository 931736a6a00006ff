"""Memory orchestrator: extraction, reconciliation and retrieval.

``add`` runs a fixed pipeline per call:

    EXTRACTING -> EMBEDDING -> SEARCHING -> DECIDING -> EXECUTING -> DONE

All fact embeddings are computed before any search, and all searches finish
before the single reconciliation call, so the decider sees one consistent
snapshot of the owner's memories. Actions are then applied in order; each
store mutation and its audit row run as one shielded unit so cancellation
never separates them. Earlier actions stay applied if a later one fails.
"""

import asyncio
import contextlib
import logging
import time
import weakref
from collections.abc import Coroutine, Sequence
from typing import Any, TypeVar

from ember.config.models import EmberConfig
from ember.db.models import utc_now
from ember.memory.decider import ActionDecider, new_memory_id
from ember.memory.embeddings import EmbeddingGenerator
from ember.memory.errors import ValidationError
from ember.memory.extractor import FactExtractor
from ember.memory.hashing import generate_hash, normalize_text
from ember.memory.history import HistoryStore
from ember.memory.messages import is_valid_message, message_from_dict
from ember.memory.store import VectorStore
from ember.memory.tokens import memories_within_budget
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
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _require_owner(owner_id: object) -> str:
    if not isinstance(owner_id, str) or not owner_id.strip():
        raise ValidationError("owner_id must be a non-empty string")
    return owner_id


def _coerce_messages(messages: Sequence[ChatMessage | dict[str, Any]]) -> list[ChatMessage]:
    if not isinstance(messages, (list, tuple)):
        raise ValidationError("messages must be a list")
    result: list[ChatMessage] = []
    for message in messages:
        if isinstance(message, dict):
            result.append(message_from_dict(message))
        elif isinstance(message, ChatMessage) and is_valid_message(message):
            result.append(message)
        else:
            raise ValidationError(f"Invalid message: {message!r}")
    return result


class MemoryService:
    """Long-term memory for conversational agents, scoped per owner."""

    def __init__(
        self,
        config: EmberConfig,
        vector_store: VectorStore,
        history_store: HistoryStore,
        embeddings: EmbeddingGenerator,
        extractor: FactExtractor,
        decider: ActionDecider,
    ):
        self._config = config
        self._store = vector_store
        self._history = history_store
        self._embeddings = embeddings
        self._extractor = extractor
        self._decider = decider
        # Entries vanish once no add for that owner holds or awaits the lock.
        self._owner_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )
        self._detached: set[asyncio.Task[Any]] = set()

    @property
    def config(self) -> EmberConfig:
        return self._config

    def _owner_lock(self, owner_id: str) -> contextlib.AbstractAsyncContextManager[Any]:
        if not self._config.memory.serialize_owner_writes:
            return contextlib.nullcontext()
        lock = self._owner_locks.get(owner_id)
        if lock is None:
            lock = self._owner_locks[owner_id] = asyncio.Lock()
        return lock

    async def add(
        self,
        messages: Sequence[ChatMessage | dict[str, Any]],
        owner_id: str,
        *,
        timeout: float | None = None,
    ) -> AddResult:
        """Extract facts from a conversation and reconcile them into memory.

        Args:
            messages: Conversation turns (ChatMessage or raw dicts).
            owner_id: Owner the memories belong to.
            timeout: Deadline in seconds for the whole pipeline.

        Returns:
            The applied actions, one per extracted fact, in fact order.

        Raises:
            ValidationError: On a bad owner id or malformed messages.
            EmbeddingError: If embeddings cannot be generated.
            StoreError: If a store or audit write fails; earlier actions
                remain applied.
            TimeoutError: If the deadline passes.
        """
        owner_id = _require_owner(owner_id)
        chat_messages = _coerce_messages(messages)

        memory_config = self._config.memory
        if not memory_config.enabled or not memory_config.extraction_enabled:
            logger.debug("memory_add_skipped", extra={"reason": "disabled"})
            return AddResult()

        async with asyncio.timeout(timeout), self._owner_lock(owner_id):
            return await self._run_add(chat_messages, owner_id)

    async def _run_add(self, messages: list[ChatMessage], owner_id: str) -> AddResult:
        memory_config = self._config.memory
        start_time = time.monotonic()

        stage = PipelineStage.EXTRACTING
        facts = await self._extractor.extract(
            messages,
            max_messages=memory_config.max_messages,
            min_message_length=memory_config.min_message_length,
            temperature=memory_config.extraction_temperature,
        )
        if not facts:
            logger.debug("memory_add_no_facts", extra={"memory.owner_id": owner_id})
            return AddResult(stage=PipelineStage.DONE)

        stage = PipelineStage.EMBEDDING
        fact_vectors = await self._embeddings.embed_batch(facts)

        stage = PipelineStage.SEARCHING
        owner_filter = MemoryFilter(owner_id=owner_id)
        search_results = await asyncio.gather(
            *(
                self._store.search(vector, owner_filter, memory_config.retrieval_limit)
                for vector in fact_vectors
            )
        )
        candidates = [result for results in search_results for result in results]

        stage = PipelineStage.DECIDING
        actions = await self._decider.decide(
            facts,
            candidates,
            similarity_threshold=memory_config.similarity_threshold,
        )

        stage = PipelineStage.EXECUTING
        vectors = await self._vectors_for_actions(actions, facts, fact_vectors)
        applied: list[MemoryAction] = []
        for action in actions:
            applied.append(
                await self._shielded(self._apply_action(action, owner_id, vectors))
            )

        stage = PipelineStage.DONE
        counts = {event.value.lower(): 0 for event in MemoryEvent}
        for action in applied:
            counts[action.event.value.lower()] += 1
        logger.info(
            "memory_add_complete",
            extra={
                "memory.owner_id": owner_id,
                "fact.count": len(facts),
                "candidate.count": len(candidates),
                "duration_ms": int((time.monotonic() - start_time) * 1000),
                **{f"action.{name}": count for name, count in counts.items()},
            },
        )
        return AddResult(results=applied, facts=facts, stage=stage)

    async def _vectors_for_actions(
        self,
        actions: list[MemoryAction],
        facts: list[str],
        fact_vectors: list[list[float]],
    ) -> dict[str, list[float]]:
        """Vectors keyed by normalized text for every ADD/UPDATE action.

        Fact embeddings are reused; only rewritten texts are embedded again.
        """
        vectors = {
            normalize_text(fact): vector
            for fact, vector in zip(facts, fact_vectors, strict=True)
        }
        missing: list[str] = []
        for action in actions:
            if action.event not in (MemoryEvent.ADD, MemoryEvent.UPDATE):
                continue
            key = normalize_text(action.text)
            if key not in vectors and action.text not in missing:
                missing.append(action.text)

        if missing:
            for text, vector in zip(
                missing, await self._embeddings.embed_batch(missing), strict=True
            ):
                vectors[normalize_text(text)] = vector
        return vectors

    async def _shielded(self, write: Coroutine[Any, Any, T]) -> T:
        """Run a store write and its audit row to completion.

        If the caller is cancelled or times out, the write keeps running and
        any failure it ends with is logged once it finishes.
        """
        task = asyncio.create_task(write)
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            self._detached.add(task)
            task.add_done_callback(self._finish_detached)
            raise

    def _finish_detached(self, task: asyncio.Task[Any]) -> None:
        self._detached.discard(task)
        if not task.cancelled() and (exc := task.exception()):
            logger.error(
                "memory_write_failed_after_cancel",
                exc_info=exc,
                extra={"error.type": type(exc).__name__},
            )

    async def _apply_action(
        self,
        action: MemoryAction,
        owner_id: str,
        vectors: dict[str, list[float]],
    ) -> MemoryAction:
        if action.event == MemoryEvent.ADD:
            vector = vectors[normalize_text(action.text)]
            result = await self._apply_add(action, owner_id, vector)
        elif action.event == MemoryEvent.UPDATE:
            vector = vectors[normalize_text(action.text)]
            result = await self._apply_update(action, owner_id, vector)
        elif action.event == MemoryEvent.DELETE:
            result = await self._apply_delete(action, owner_id)
        else:
            result = action

        logger.debug(
            "memory_action_applied",
            extra={
                "memory.id": result.id,
                "memory.owner_id": owner_id,
                "action.requested": action.event.value,
                "action.applied": result.event.value,
            },
        )
        return result

    async def _apply_add(
        self, action: MemoryAction, owner_id: str, vector: list[float]
    ) -> MemoryAction:
        content_hash = generate_hash(action.text)
        existing = await self._store.find_by_hash(owner_id, content_hash)
        if existing is not None:
            return MemoryAction(id=existing.id, text=action.text, event=MemoryEvent.NONE)

        payload = MemoryPayload(
            text=action.text,
            owner_id=owner_id,
            content_hash=content_hash,
            created_at=utc_now(),
        )
        await self._store.insert([action.id], [vector], [payload])
        await self._history.add(
            action.id, owner_id, MemoryEvent.ADD, prev_value=None, new_value=action.text
        )
        return MemoryAction(id=action.id, text=action.text, event=MemoryEvent.ADD)

    async def _apply_update(
        self, action: MemoryAction, owner_id: str, vector: list[float]
    ) -> MemoryAction:
        current = await self._store.get(action.id)
        if current is None or current.payload.owner_id != owner_id:
            # Target vanished (e.g. deleted earlier in this batch); keep the fact.
            return await self._apply_add(
                MemoryAction(id=new_memory_id(), text=action.text, event=MemoryEvent.ADD),
                owner_id,
                vector,
            )

        content_hash = generate_hash(action.text)
        if content_hash == current.payload.content_hash:
            return MemoryAction(id=action.id, text=action.text, event=MemoryEvent.NONE)
        duplicate = await self._store.find_by_hash(owner_id, content_hash)
        if duplicate is not None and duplicate.id != action.id:
            return MemoryAction(id=duplicate.id, text=action.text, event=MemoryEvent.NONE)

        prev_value = action.old_memory or current.payload.text
        await self._store.update(
            action.id,
            vector,
            {"text": action.text, "content_hash": content_hash},
        )
        await self._history.add(
            action.id,
            owner_id,
            MemoryEvent.UPDATE,
            prev_value=prev_value,
            new_value=action.text,
        )
        return MemoryAction(
            id=action.id,
            text=action.text,
            event=MemoryEvent.UPDATE,
            old_memory=prev_value,
        )

    async def _apply_delete(self, action: MemoryAction, owner_id: str) -> MemoryAction:
        current = await self._store.get(action.id)
        if current is None or current.payload.owner_id != owner_id:
            return MemoryAction(id=action.id, text=action.text, event=MemoryEvent.NONE)

        if not await self._store.delete(action.id):
            return MemoryAction(id=action.id, text=action.text, event=MemoryEvent.NONE)

        await self._history.add(
            action.id,
            owner_id,
            MemoryEvent.DELETE,
            prev_value=current.payload.text,
            new_value=None,
        )
        return MemoryAction(
            id=action.id,
            text=action.text,
            event=MemoryEvent.DELETE,
            old_memory=current.payload.text,
        )

    async def search(
        self,
        query: str,
        owner_id: str,
        *,
        limit: int | None = None,
        token_budget: int | None = None,
        min_score: float | None = None,
    ) -> list[Memory]:
        """Memories most similar to ``query``, best first.

        Results below the similarity threshold are dropped. With a token
        budget, results are taken in rank order until the next one would
        not fit.

        Raises:
            ValidationError: On an empty query, bad owner id, or bad limits.
            EmbeddingError: If the query cannot be embedded.
        """
        owner_id = _require_owner(owner_id)
        if not isinstance(query, str) or not query.strip():
            raise ValidationError("query must be a non-empty string")
        if limit is not None and limit <= 0:
            raise ValidationError("limit must be positive")
        if token_budget is not None and token_budget < 0:
            raise ValidationError("token_budget must not be negative")

        memory_config = self._config.memory
        threshold = memory_config.similarity_threshold if min_score is None else min_score

        query_vector = await self._embeddings.embed(query)
        results = await self._store.search(
            query_vector,
            MemoryFilter(owner_id=owner_id),
            limit or memory_config.retrieval_limit,
        )
        memories = [
            Memory.from_search_result(result)
            for result in results
            if result.score >= threshold
        ]
        if token_budget is not None:
            memories = memories_within_budget(
                memories, token_budget, memory_config.chars_per_token
            )

        logger.debug(
            "memory_search_complete",
            extra={
                "memory.owner_id": owner_id,
                "search.hits": len(results),
                "search.returned": len(memories),
            },
        )
        return memories

    async def get_all(self, owner_id: str, *, limit: int = 100) -> list[Memory]:
        """All memories for an owner, newest first."""
        owner_id = _require_owner(owner_id)
        results = await self._store.get_all_by_owner(owner_id, limit=limit)
        return [Memory.from_search_result(r, with_score=False) for r in results]

    async def get(self, memory_id: str) -> Memory | None:
        result = await self._store.get(memory_id)
        return Memory.from_search_result(result, with_score=False) if result else None

    async def delete(self, memory_id: str, *, owner_id: str | None = None) -> bool:
        """Delete a memory directly, without reconciliation.

        When ``owner_id`` is given, memories belonging to someone else are
        left alone.

        Returns:
            True if a memory was removed (and a DELETE row recorded).
        """
        if not memory_id:
            raise ValidationError("memory_id must be a non-empty string")
        if owner_id is not None:
            _require_owner(owner_id)

        current = await self._store.get(memory_id)
        if current is None:
            return False
        if owner_id is not None and current.payload.owner_id != owner_id:
            return False

        async def _delete() -> bool:
            if not await self._store.delete(memory_id):
                return False
            await self._history.add(
                memory_id,
                current.payload.owner_id,
                MemoryEvent.DELETE,
                prev_value=current.payload.text,
                new_value=None,
            )
            return True

        removed = await self._shielded(_delete())
        if removed:
            logger.info("memory_deleted", extra={"memory.id": memory_id})
        return removed

    async def history(self, memory_id: str) -> list[HistoryEntry]:
        """Audit rows for one memory, newest first."""
        return await self._history.get_by_memory_id(memory_id)

    async def owner_history(self, owner_id: str, *, limit: int = 100) -> list[HistoryEntry]:
        owner_id = _require_owner(owner_id)
        return await self._history.get_by_owner(owner_id, limit=limit)

    async def close(self) -> None:
        await self._store.close()
        await self._history.close()
