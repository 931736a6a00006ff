"""Prompt templates for fact extraction and reconciliation, plus response parsing."""

import json
import re
from typing import Any

from ember.memory.errors import ParseError
from ember.memory.types import CandidateMemory

EXTRACTION_PROMPT = """You are a memory extraction system. Your task is to extract important facts about the user from the conversation.

Extract key facts such as:
- User's name, location, job, hobbies
- Preferences (food, music, activities, etc.)
- Important life events or dates
- Relationships and connections
- Goals and aspirations
- Technical skills or expertise
- Health or medical information (if mentioned)
- Travel plans or history

Rules:
1. Extract only factual information explicitly stated by the user
2. Each fact should be concise (1-2 sentences max)
3. Do NOT infer or assume information not directly stated
4. Focus on information that would be useful for personalizing future conversations
5. Ignore temporary context like "I'm using Chrome" or "It's raining today"
6. Do NOT extract facts about the assistant, only about the user
7. Return facts as a JSON object with a "facts" array

Conversation:
{conversation}

Extract facts as JSON:
{{
  "facts": [
    "fact 1",
    "fact 2"
  ]
}}"""

UPDATE_PROMPT = """You are a memory update system. Your task is to decide what action to take for each new fact given existing similar memories.

Actions:
- ADD: Create a new memory (fact is unique and new)
- UPDATE: Update an existing memory (fact provides newer or better information about the same topic)
- DELETE: Remove an existing memory (fact contradicts or invalidates it)
- NONE: Do nothing (fact is already captured or redundant)

Rules:
1. Return exactly one action per new fact, in the same order as the facts
2. Prefer UPDATE over ADD when information is related to an existing memory
3. Use DELETE only when there's a clear contradiction (e.g., "moved from Boston to NYC" should DELETE "lives in Boston")
4. Use NONE for redundant information that doesn't add value
5. UPDATE, DELETE and NONE must use the ID of an existing memory listed below
6. For ADD, use "new" as the id
7. For UPDATE, include the old memory text in "old_memory"
8. Consider semantic similarity, not just exact text matches
9. Be conservative with DELETE - only use when truly contradictory

New Facts:
{facts}

Existing Similar Memories (with IDs and similarity scores):
{existing_memories}

For each fact, decide an action and return as JSON:
{{
  "memory": [
    {{
      "id": "existing-id-or-new",
      "text": "the memory text",
      "event": "ADD|UPDATE|DELETE|NONE",
      "old_memory": "text of old memory (only for UPDATE)"
    }}
  ]
}}"""

NO_EXISTING_MEMORIES = "No existing memories found"

_FENCE = re.compile(r"```(?:json)?\s*\n(.*?)```", re.DOTALL)


def build_extraction_prompt(conversation: str) -> str:
    return EXTRACTION_PROMPT.format(conversation=conversation)


def build_update_prompt(facts: list[str], candidates: list[CandidateMemory]) -> str:
    facts_text = "\n".join(f"{i}. {fact}" for i, fact in enumerate(facts, start=1))
    if candidates:
        memories_text = "\n".join(
            f"- [ID: {c.id}] {c.text} (similarity: {c.score:.2f})"
            for c in candidates
        )
    else:
        memories_text = NO_EXISTING_MEMORIES
    return UPDATE_PROMPT.format(facts=facts_text, existing_memories=memories_text)


def parse_json_object(response_text: str) -> dict[str, Any]:
    """Parse a model response into a JSON object.

    Markdown code fences around the JSON are tolerated.

    Raises:
        ParseError: If the text is empty, not JSON, or not a JSON object.
    """
    text = (response_text or "").strip()
    if not text:
        raise ParseError("Empty model response")

    match = _FENCE.search(text)
    if match:
        text = match.group(1).strip()

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ParseError(f"Model response is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ParseError(f"Expected a JSON object, got {type(data).__name__}")
    return data
