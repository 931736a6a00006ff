"""Request and response shapes shared by the model providers.

The memory pipeline only sends single-turn text prompts and reads text
back, so messages carry a plain string rather than content blocks.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Literal

ResponseFormat = Literal["text", "json"]

# Provider stop reasons meaning the output hit the token limit.
TRUNCATED_STOP_REASONS = frozenset({"max_tokens", "max_output_tokens", "length"})


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


@dataclass
class Message:
    """One prompt or reply."""

    role: Role
    content: str

    @classmethod
    def user(cls, text: str) -> "Message":
        return cls(role=Role.USER, content=text)

    @classmethod
    def assistant(cls, text: str) -> "Message":
        return cls(role=Role.ASSISTANT, content=text)

    def get_text(self) -> str:
        return self.content


@dataclass
class Usage:
    input_tokens: int
    output_tokens: int

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass
class CompletionResponse:
    """A provider's reply, normalized across SDKs."""

    message: Message
    usage: Usage | None = None
    stop_reason: str | None = None
    model: str | None = None

    @property
    def text(self) -> str:
        return self.message.content

    @property
    def truncated(self) -> bool:
        """True when the model stopped because it ran out of output tokens.

        A truncated JSON reply will not parse, which is worth logging apart
        from an ordinary malformed answer.
        """
        return self.stop_reason in TRUNCATED_STOP_REASONS
