"""Reconciliation: decide how each new fact changes the stored memories.

``ActionDecider`` is the seam the orchestrator depends on. The LLM-backed
implementation is the production path; ``RuleBasedActionDecider`` is a
deterministic stand-in for tests and offline use.

Every decider returns exactly one action per input fact, in fact order.
"""

import logging
import uuid
from collections import Counter
from difflib import SequenceMatcher
from typing import Any, Protocol, runtime_checkable

from ember.llm import LLMProvider
from ember.memory.errors import ParseError
from ember.memory.hashing import normalize_text
from ember.memory.prompts import build_update_prompt, parse_json_object
from ember.memory.types import CandidateMemory, MemoryAction, MemoryEvent, SearchResult

logger = logging.getLogger(__name__)

DEFAULT_SIMILARITY_THRESHOLD = 0.7


def new_memory_id() -> str:
    return str(uuid.uuid4())


def select_candidates(
    results: list[SearchResult], similarity_threshold: float
) -> list[CandidateMemory]:
    """Keep results at or above the threshold, one per id (best score wins).

    Returned best match first.
    """
    best: dict[str, CandidateMemory] = {}
    for result in results:
        if result.score < similarity_threshold:
            continue
        current = best.get(result.id)
        if current is None or result.score > current.score:
            best[result.id] = CandidateMemory(
                id=result.id, text=result.payload.text, score=result.score
            )
    return sorted(best.values(), key=lambda c: c.score, reverse=True)


def fail_open(facts: list[str]) -> list[MemoryAction]:
    """One ADD per fact with fresh ids."""
    return [
        MemoryAction(id=new_memory_id(), text=fact, event=MemoryEvent.ADD)
        for fact in facts
    ]


def summarize_actions(actions: list[MemoryAction]) -> dict[str, int]:
    """Counts per event plus ``total``."""
    counts = Counter(action.event for action in actions)
    summary = {event.value.lower(): counts.get(event, 0) for event in MemoryEvent}
    summary["total"] = len(actions)
    return summary


def filter_by_event(
    actions: list[MemoryAction], event: MemoryEvent
) -> list[MemoryAction]:
    return [action for action in actions if action.event == event]


def actionable(actions: list[MemoryAction]) -> list[MemoryAction]:
    """Actions that mutate the store (everything but NONE)."""
    return [action for action in actions if action.event != MemoryEvent.NONE]


@runtime_checkable
class ActionDecider(Protocol):
    """Strategy for turning facts plus candidate memories into actions."""

    async def decide(
        self,
        facts: list[str],
        candidates: list[SearchResult],
        *,
        similarity_threshold: float | None = None,
    ) -> list[MemoryAction]: ...


def _validate_event(raw: Any) -> MemoryEvent:
    normalized = raw.upper() if isinstance(raw, str) else ""
    try:
        return MemoryEvent(normalized)
    except ValueError:
        logger.warning("invalid_memory_event", extra={"event.raw": str(raw)})
        return MemoryEvent.ADD


class LLMActionDecider:
    """Ask a language model to reconcile facts against similar memories.

    Model output is treated as untrusted: events are validated, ids for
    UPDATE/DELETE must name one of the offered candidates, and anything
    unusable falls back to one ADD per fact.
    """

    def __init__(
        self,
        llm: LLMProvider,
        model: str | None = None,
        *,
        temperature: float = 0.3,
        similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
        max_tokens: int = 1024,
    ):
        self._llm = llm
        self._model = model
        self._temperature = temperature
        self._similarity_threshold = similarity_threshold
        self._max_tokens = max_tokens

    async def decide(
        self,
        facts: list[str],
        candidates: list[SearchResult],
        *,
        similarity_threshold: float | None = None,
    ) -> list[MemoryAction]:
        if not facts:
            return []

        threshold = (
            self._similarity_threshold
            if similarity_threshold is None
            else similarity_threshold
        )
        relevant = select_candidates(candidates, threshold)
        prompt = build_update_prompt(facts, relevant)

        try:
            response = await self._llm.complete_json(
                prompt,
                model=self._model,
                max_tokens=self._max_tokens,
                temperature=self._temperature,
            )
            if response.truncated:
                logger.warning(
                    "action_decision_truncated", extra={"max_tokens": self._max_tokens}
                )
            actions = self._parse_actions(response.text, relevant)
            if len(actions) != len(facts):
                raise ParseError(
                    f"Expected {len(facts)} actions, model returned {len(actions)}"
                )
        except Exception as e:
            logger.warning(
                "action_decision_failed",
                extra={
                    "fact.count": len(facts),
                    "error.type": type(e).__name__,
                    "error.message": str(e),
                },
            )
            return fail_open(facts)

        logger.info(
            "action_decision_complete",
            extra={"fact.count": len(facts), **summarize_actions(actions)},
        )
        return actions

    async def decide_single(
        self,
        fact: str,
        candidates: list[SearchResult],
        *,
        similarity_threshold: float | None = None,
    ) -> MemoryAction:
        actions = await self.decide(
            [fact], candidates, similarity_threshold=similarity_threshold
        )
        return actions[0]

    def _parse_actions(
        self, response_text: str, candidates: list[CandidateMemory]
    ) -> list[MemoryAction]:
        data = parse_json_object(response_text)
        items = data.get("memory")
        if not isinstance(items, list):
            raise ParseError("Response has no 'memory' array")

        by_id = {candidate.id: candidate for candidate in candidates}
        actions: list[MemoryAction] = []
        for item in items:
            if not isinstance(item, dict):
                continue
            action = self._to_action(item, by_id)
            if action.text.strip():
                actions.append(action)
        return actions

    def _to_action(
        self, item: dict[str, Any], candidates: dict[str, CandidateMemory]
    ) -> MemoryAction:
        event = _validate_event(item.get("event"))
        raw_id = item.get("id")
        text = item.get("text") if isinstance(item.get("text"), str) else ""
        text = text.strip()
        candidate = candidates.get(raw_id) if isinstance(raw_id, str) else None

        if event == MemoryEvent.ADD:
            return MemoryAction(id=new_memory_id(), text=text, event=event)

        if candidate is None:
            # The model referenced a memory it was never shown.
            logger.warning(
                "action_unknown_memory_id",
                extra={"event": event.value, "memory.id": str(raw_id)},
            )
            if event == MemoryEvent.UPDATE:
                return MemoryAction(id=new_memory_id(), text=text, event=MemoryEvent.ADD)
            return MemoryAction(
                id=raw_id if isinstance(raw_id, str) and raw_id else new_memory_id(),
                text=text,
                event=MemoryEvent.NONE,
            )

        if event == MemoryEvent.UPDATE:
            old_memory = item.get("old_memory")
            if not isinstance(old_memory, str) or not old_memory.strip():
                old_memory = candidate.text
            return MemoryAction(
                id=candidate.id, text=text, event=event, old_memory=old_memory
            )

        if event == MemoryEvent.DELETE:
            return MemoryAction(
                id=candidate.id,
                text=text or candidate.text,
                event=event,
                old_memory=candidate.text,
            )

        return MemoryAction(id=candidate.id, text=text, event=MemoryEvent.NONE)


class RuleBasedActionDecider:
    """Deterministic reconciliation by normalized text comparison.

    - identical after normalization to a candidate: NONE
    - close enough to a candidate (difflib ratio): UPDATE that candidate
    - otherwise: ADD

    Never emits DELETE. Each candidate is updated at most once per call.
    """

    def __init__(
        self,
        *,
        similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
        update_ratio: float = 0.6,
    ):
        self._similarity_threshold = similarity_threshold
        self._update_ratio = update_ratio

    async def decide(
        self,
        facts: list[str],
        candidates: list[SearchResult],
        *,
        similarity_threshold: float | None = None,
    ) -> list[MemoryAction]:
        threshold = (
            self._similarity_threshold
            if similarity_threshold is None
            else similarity_threshold
        )
        relevant = select_candidates(candidates, threshold)
        claimed: set[str] = set()
        actions: list[MemoryAction] = []

        for fact in facts:
            normalized = normalize_text(fact)
            exact = next(
                (c for c in relevant if normalize_text(c.text) == normalized), None
            )
            if exact is not None:
                actions.append(
                    MemoryAction(id=exact.id, text=fact, event=MemoryEvent.NONE)
                )
                continue

            best: CandidateMemory | None = None
            best_ratio = 0.0
            for candidate in relevant:
                if candidate.id in claimed:
                    continue
                ratio = SequenceMatcher(
                    None, normalized, normalize_text(candidate.text)
                ).ratio()
                if ratio > best_ratio:
                    best, best_ratio = candidate, ratio

            if best is not None and best_ratio >= self._update_ratio:
                claimed.add(best.id)
                actions.append(
                    MemoryAction(
                        id=best.id,
                        text=fact,
                        event=MemoryEvent.UPDATE,
                        old_memory=best.text,
                    )
                )
            else:
                actions.append(
                    MemoryAction(id=new_memory_id(), text=fact, event=MemoryEvent.ADD)
                )

        return actions
