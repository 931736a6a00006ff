"""Render retrieved memories into prompt context for a chat model."""

from ember.memory.types import Memory

BASE_SYSTEM_PROMPT = "You are a helpful AI assistant. Be friendly and informative."

MEMORY_PREAMBLE = (
    "You have the following information about the user from previous conversations:"
)

MEMORY_USAGE_NOTE = (
    "Use this information to provide personalized responses, but don't "
    "explicitly mention that you're recalling memories unless relevant."
)

# Checked in order; the first matching category wins.
CATEGORY_KEYWORDS: dict[str, tuple[str, ...]] = {
    "personal": ("name is", "live in", "lives in", "born"),
    "preferences": ("love", "like", "prefer", "favorite"),
    "professional": ("work", "job", "career", "company"),
}

CATEGORY_TITLES = {
    "personal": "Personal Information",
    "preferences": "Preferences",
    "professional": "Professional",
    "other": "Other",
}


def _bullets(memories: list[Memory]) -> str:
    return "\n".join(f"- {m.text}" for m in memories)


def build_system_prompt_with_memories(
    memories: list[Memory], base_prompt: str = BASE_SYSTEM_PROMPT
) -> str:
    if not memories:
        return base_prompt
    return (
        f"{base_prompt}\n\n{MEMORY_PREAMBLE}\n{_bullets(memories)}\n\n"
        f"{MEMORY_USAGE_NOTE}"
    )


def format_memories_for_display(memories: list[Memory]) -> str:
    """Numbered list with creation date and relevance, for humans."""
    if not memories:
        return "No memories found."

    lines = []
    for i, memory in enumerate(memories, start=1):
        line = f"{i}. {memory.text} ({memory.created_at:%Y-%m-%d})"
        if memory.score:
            line += f" (relevance: {memory.score * 100:.0f}%)"
        lines.append(line)
    return "\n".join(lines)


def build_memory_summary(memories: list[Memory]) -> str:
    return "; ".join(m.text for m in memories)


def categorize_memories(memories: list[Memory]) -> dict[str, list[Memory]]:
    """Bucket memories by keyword into personal/preferences/professional/other."""
    categories: dict[str, list[Memory]] = {name: [] for name in CATEGORY_TITLES}
    for memory in memories:
        text = memory.text.lower()
        for name, keywords in CATEGORY_KEYWORDS.items():
            if any(keyword in text for keyword in keywords):
                categories[name].append(memory)
                break
        else:
            categories["other"].append(memory)
    return categories


def build_categorized_system_prompt(
    memories: list[Memory], base_prompt: str = BASE_SYSTEM_PROMPT
) -> str:
    if not memories:
        return base_prompt

    sections = [
        f"{CATEGORY_TITLES[name]}:\n{_bullets(group)}"
        for name, group in categorize_memories(memories).items()
        if group
    ]
    body = "\n\n".join(sections)
    return f"{base_prompt}\n\n{MEMORY_PREAMBLE}\n\n{body}\n\n{MEMORY_USAGE_NOTE}"
