"""Token estimation and memory budgeting.

Character-ratio estimation, matching the rough heuristic used for context
sizing elsewhere. Not accurate for any particular tokenizer, but cheap and
monotonic in text length.
"""

import math

from ember.memory.types import Memory

DEFAULT_CHARS_PER_TOKEN = 4
DEFAULT_RESPONSE_RESERVE = 500


def estimate_tokens(text: str, chars_per_token: int = DEFAULT_CHARS_PER_TOKEN) -> int:
    """Estimate token count as ceil(len(text) / chars_per_token)."""
    if not text:
        return 0
    return math.ceil(len(text) / chars_per_token)


def allocate_token_budget(
    total_budget: int,
    conversation_tokens: int,
    memories: list[Memory],
    response_reserve: int = DEFAULT_RESPONSE_RESERVE,
    chars_per_token: int = DEFAULT_CHARS_PER_TOKEN,
) -> list[Memory]:
    """Select memories, in the given order, that fit the remaining budget.

    Selection stops at the first memory that would overflow; smaller
    memories further down the ranking are not back-filled.
    """
    memory_budget = total_budget - conversation_tokens - response_reserve
    if memory_budget <= 0:
        return []

    used = 0
    selected: list[Memory] = []
    for memory in memories:
        cost = estimate_tokens(memory.text, chars_per_token)
        if used + cost > memory_budget:
            break
        selected.append(memory)
        used += cost

    return selected


def memories_within_budget(
    memories: list[Memory],
    max_tokens: int,
    chars_per_token: int = DEFAULT_CHARS_PER_TOKEN,
) -> list[Memory]:
    """Longest prefix of ``memories`` whose estimated tokens fit ``max_tokens``."""
    return allocate_token_budget(
        max_tokens, 0, memories, response_reserve=0, chars_per_token=chars_per_token
    )
