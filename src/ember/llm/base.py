"""Provider interface used by the extractor, decider and embedding generator."""

from abc import ABC, abstractmethod

from ember.llm.types import CompletionResponse, Message, ResponseFormat


class LLMProvider(ABC):
    """A model vendor that can answer prompts and, optionally, embed text.

    Implementations wrap their SDK calls in ``with_retry`` so callers see
    either a result or the final error once retries are spent.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Registry key, e.g. ``"openai"``."""

    @property
    @abstractmethod
    def default_model(self) -> str: ...

    @abstractmethod
    async def complete(
        self,
        messages: list[Message],
        *,
        model: str | None = None,
        system: str | None = None,
        max_tokens: int = 1024,
        temperature: float | None = None,
        response_format: ResponseFormat = "text",
    ) -> CompletionResponse:
        """Answer a prompt.

        With ``response_format="json"`` the provider is asked for a single
        JSON object. Providers without a native JSON mode fall back to a
        system instruction, so callers still have to parse defensively.
        ``temperature=None`` leaves the vendor default in place.
        """

    @abstractmethod
    async def embed(
        self,
        texts: list[str],
        *,
        model: str | None = None,
    ) -> list[list[float]]:
        """Embed each text, returning vectors in input order.

        Providers with no embeddings API raise ``NotImplementedError``.
        """

    async def complete_json(
        self,
        prompt: str,
        *,
        model: str | None = None,
        max_tokens: int = 1024,
        temperature: float | None = None,
    ) -> CompletionResponse:
        """Send one user prompt and ask for a JSON object back."""
        return await self.complete(
            [Message.user(prompt)],
            model=model,
            max_tokens=max_tokens,
            temperature=temperature,
            response_format="json",
        )
