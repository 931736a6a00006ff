"""Conversation message helpers used ahead of fact extraction."""

from datetime import UTC, datetime
from typing import Any

from ember.llm.types import Role
from ember.memory.errors import ValidationError
from ember.memory.types import ChatMessage

_ROLE_VALUES = {role.value for role in Role}


def _label(role: Role) -> str:
    return role.value.capitalize()


def messages_to_text(messages: list[ChatMessage], include_system: bool = False) -> str:
    """Render messages as ``Role: content`` lines."""
    return "\n".join(
        f"{_label(msg.role)}: {msg.content}"
        for msg in messages
        if include_system or msg.role != Role.SYSTEM
    )


def user_messages(messages: list[ChatMessage]) -> list[ChatMessage]:
    return [msg for msg in messages if msg.role == Role.USER]


def assistant_messages(messages: list[ChatMessage]) -> list[ChatMessage]:
    return [msg for msg in messages if msg.role == Role.ASSISTANT]


def last_n_messages(messages: list[ChatMessage], n: int) -> list[ChatMessage]:
    if n <= 0:
        return []
    return messages[-n:]


def first_n_messages(messages: list[ChatMessage], n: int) -> list[ChatMessage]:
    if n <= 0:
        return []
    return messages[:n]


def filter_by_length(
    messages: list[ChatMessage], min_length: int = 10
) -> list[ChatMessage]:
    """Drop messages whose trimmed content is shorter than ``min_length``."""
    return [msg for msg in messages if len(msg.content.strip()) >= min_length]


def filter_relevant_messages(
    messages: list[ChatMessage],
    *,
    exclude_system: bool = True,
    min_length: int = 10,
    max_messages: int | None = None,
) -> list[ChatMessage]:
    """Select the messages worth mining for facts.

    System messages and short messages are removed first; ``max_messages``
    then keeps the most recent survivors.
    """
    filtered = messages
    if exclude_system:
        filtered = [msg for msg in filtered if msg.role != Role.SYSTEM]
    if min_length > 0:
        filtered = filter_by_length(filtered, min_length)
    if max_messages and max_messages > 0:
        filtered = last_n_messages(filtered, max_messages)
    return filtered


def count_by_role(messages: list[ChatMessage]) -> dict[str, int]:
    counts = {role.value: 0 for role in Role}
    for msg in messages:
        counts[msg.role.value] += 1
    counts["total"] = len(messages)
    return counts


def conversation_stats(messages: list[ChatMessage]) -> dict[str, Any]:
    """Summary statistics: counts per role, character totals, time span (ms)."""
    counts = count_by_role(messages)
    total_characters = sum(len(msg.content) for msg in messages)
    timestamps = [msg.timestamp for msg in messages if msg.timestamp]

    return {
        "total_messages": counts["total"],
        "user_messages": counts[Role.USER.value],
        "assistant_messages": counts[Role.ASSISTANT.value],
        "system_messages": counts[Role.SYSTEM.value],
        "total_characters": total_characters,
        "average_message_length": (
            round(total_characters / counts["total"]) if counts["total"] else 0
        ),
        "time_span_ms": max(timestamps) - min(timestamps)
        if len(timestamps) > 1
        else None,
    }


def format_messages_for_display(
    messages: list[ChatMessage], show_timestamps: bool = False
) -> str:
    lines = []
    for msg in messages:
        stamp = ""
        if show_timestamps and msg.timestamp:
            when = datetime.fromtimestamp(msg.timestamp / 1000, UTC)
            stamp = f" [{when:%Y-%m-%d %H:%M:%S}]"
        lines.append(f"{_label(msg.role)}{stamp}: {msg.content}")
    return "\n\n".join(lines)


def context_window(
    messages: list[ChatMessage], index: int, window_size: int = 2
) -> list[ChatMessage]:
    """Messages within ``window_size`` positions of ``index``."""
    start = max(0, index - window_size)
    end = min(len(messages), index + window_size + 1)
    return messages[start:end]


def chunk_messages(
    messages: list[ChatMessage], chunk_size: int, overlap: int = 0
) -> list[list[ChatMessage]]:
    """Split a long conversation into overlapping chunks.

    Raises:
        ValueError: If chunk_size is not positive or overlap >= chunk_size.
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    if overlap < 0 or overlap >= chunk_size:
        raise ValueError("overlap must be non-negative and less than chunk_size")

    chunks: list[list[ChatMessage]] = []
    step = chunk_size - overlap
    for start in range(0, len(messages), step):
        chunks.append(messages[start : start + chunk_size])
        if start + chunk_size >= len(messages):
            break
    return chunks


def is_valid_message(message: object) -> bool:
    """Check the shape of a ChatMessage or a raw message dict."""
    if isinstance(message, ChatMessage):
        role = message.role.value if isinstance(message.role, Role) else message.role
        content = message.content
        timestamp = message.timestamp
        msg_id = message.id
    elif isinstance(message, dict):
        role = message.get("role")
        content = message.get("content")
        timestamp = message.get("timestamp")
        msg_id = message.get("id")
    else:
        return False

    return (
        role in _ROLE_VALUES
        and isinstance(content, str)
        and (msg_id is None or isinstance(msg_id, str))
        and (timestamp is None or isinstance(timestamp, int))
    )


def validate_messages(messages: object) -> bool:
    return isinstance(messages, list) and all(is_valid_message(m) for m in messages)


def message_from_dict(data: dict[str, Any]) -> ChatMessage:
    """Build a ChatMessage from a raw dict.

    Raises:
        ValidationError: If the dict is not a valid message.
    """
    if not is_valid_message(data):
        raise ValidationError(f"Invalid message: {data!r}")
    return ChatMessage(
        role=Role(data["role"]),
        content=data["content"],
        id=data.get("id"),
        timestamp=data.get("timestamp"),
    )
