"""Fact extraction from conversations.

The extractor never raises: any failure along the way (model transport,
malformed output) is logged and reported as "no facts".
"""

import asyncio
import logging

from ember.llm import LLMProvider
from ember.memory.errors import ParseError
from ember.memory.messages import filter_relevant_messages, messages_to_text
from ember.memory.prompts import build_extraction_prompt, parse_json_object
from ember.memory.tokens import estimate_tokens
from ember.memory.types import ChatMessage

logger = logging.getLogger(__name__)


def parse_facts(response_text: str) -> list[str]:
    """Parse ``{"facts": [...]}`` into trimmed, non-empty strings.

    Raises:
        ParseError: If the response is not a JSON object with a facts array.
    """
    data = parse_json_object(response_text)
    facts = data.get("facts")
    if not isinstance(facts, list):
        raise ParseError("Response has no 'facts' array")
    return [fact.strip() for fact in facts if isinstance(fact, str) and fact.strip()]


class FactExtractor:
    """Distill a conversation into short standalone facts about the user."""

    def __init__(
        self,
        llm: LLMProvider,
        model: str | None = None,
        *,
        max_messages: int = 20,
        min_message_length: int = 10,
        temperature: float = 0.3,
        max_tokens: int = 1024,
    ):
        self._llm = llm
        self._model = model
        self._max_messages = max_messages
        self._min_message_length = min_message_length
        self._temperature = temperature
        self._max_tokens = max_tokens

    def _select(
        self,
        messages: list[ChatMessage],
        max_messages: int | None,
        min_message_length: int | None,
    ) -> list[ChatMessage]:
        return filter_relevant_messages(
            messages,
            min_length=(
                self._min_message_length
                if min_message_length is None
                else min_message_length
            ),
            max_messages=self._max_messages if max_messages is None else max_messages,
        )

    async def extract(
        self,
        messages: list[ChatMessage],
        *,
        max_messages: int | None = None,
        min_message_length: int | None = None,
        temperature: float | None = None,
    ) -> list[str]:
        """Extract facts from a conversation.

        System messages and messages shorter than ``min_message_length`` are
        dropped, then the most recent ``max_messages`` are used.

        Returns:
            Facts in the order the model produced them; empty on any failure.
        """
        relevant = self._select(messages, max_messages, min_message_length)
        if not relevant:
            logger.debug("fact_extraction_skipped", extra={"reason": "no_messages"})
            return []

        return await self.extract_from_text(
            messages_to_text(relevant), temperature=temperature
        )

    async def extract_from_text(
        self, conversation_text: str, *, temperature: float | None = None
    ) -> list[str]:
        """Extract facts from an already-rendered transcript."""
        if not conversation_text.strip():
            return []

        prompt = build_extraction_prompt(conversation_text)
        try:
            response = await self._llm.complete_json(
                prompt,
                model=self._model,
                max_tokens=self._max_tokens,
                temperature=self._temperature if temperature is None else temperature,
            )
            if response.truncated:
                logger.warning(
                    "fact_extraction_truncated", extra={"max_tokens": self._max_tokens}
                )
            facts = parse_facts(response.text)
        except Exception as e:
            logger.warning(
                "fact_extraction_failed",
                extra={"error.type": type(e).__name__, "error.message": str(e)},
            )
            return []

        logger.info("fact_extraction_complete", extra={"fact.count": len(facts)})
        return facts

    async def extract_batch(
        self, conversations: list[list[ChatMessage]]
    ) -> list[list[str]]:
        """Extract facts from several conversations concurrently."""
        return list(
            await asyncio.gather(*(self.extract(messages) for messages in conversations))
        )

    def estimate_tokens(
        self, messages: list[ChatMessage], chars_per_token: int = 4
    ) -> int:
        """Approximate prompt size for extracting from ``messages``."""
        relevant = self._select(messages, None, None)
        prompt = build_extraction_prompt(messages_to_text(relevant))
        return estimate_tokens(prompt, chars_per_token)
