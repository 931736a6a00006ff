"""Anthropic Claude LLM provider."""

import asyncio
import logging
from typing import Any

import anthropic

from ember.llm.base import LLMProvider
from ember.llm.retry import RetryConfig, with_retry
from ember.llm.types import CompletionResponse, Message, ResponseFormat, Role, Usage

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-haiku-4-5"

JSON_INSTRUCTION = "Respond with a single JSON object and nothing else."


class AnthropicProvider(LLMProvider):
    """Anthropic Claude provider.

    Anthropic has no JSON response mode, so JSON requests append an
    instruction to the system prompt and callers must tolerate fenced output.
    """

    def __init__(
        self,
        api_key: str | None = None,
        *,
        base_url: str | None = None,
        max_concurrent: int = 2,
        retry_config: RetryConfig | None = None,
    ):
        self._client = anthropic.AsyncAnthropic(api_key=api_key, base_url=base_url)
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._retry_config = retry_config or RetryConfig()

    @property
    def name(self) -> str:
        return "anthropic"

    @property
    def default_model(self) -> str:
        return DEFAULT_MODEL

    def _convert_messages(self, messages: list[Message]) -> list[dict[str, Any]]:
        return [
            {"role": msg.role.value, "content": msg.get_text()}
            for msg in messages
            if msg.role != Role.SYSTEM
        ]

    def _build_request_kwargs(
        self,
        messages: list[Message],
        model: str | None,
        system: str | None,
        max_tokens: int,
        temperature: float | None,
        response_format: ResponseFormat,
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": model or self.default_model,
            "messages": self._convert_messages(messages),
            "max_tokens": max_tokens,
        }

        if temperature is not None:
            kwargs["temperature"] = temperature

        if response_format == "json":
            system = f"{system}\n\n{JSON_INSTRUCTION}" if system else JSON_INSTRUCTION

        if system:
            kwargs["system"] = system

        return kwargs

    def _parse_response(self, response: anthropic.types.Message) -> CompletionResponse:
        text = "".join(
            block.text for block in response.content if block.type == "text"
        )

        return CompletionResponse(
            message=Message.assistant(text),
            usage=Usage(
                input_tokens=response.usage.input_tokens,
                output_tokens=response.usage.output_tokens,
            ),
            stop_reason=response.stop_reason,
            model=response.model,
        )

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
        kwargs = self._build_request_kwargs(
            messages, model, system, max_tokens, temperature, response_format
        )
        model_name = kwargs["model"]

        async def _make_request() -> anthropic.types.Message:
            async with self._semaphore:
                response = await self._client.messages.create(**kwargs)
                logger.debug(
                    "llm_complete",
                    extra={
                        "provider": "anthropic",
                        "model": model_name,
                        "tokens_in": response.usage.input_tokens,
                        "tokens_out": response.usage.output_tokens,
                    },
                )
                return response

        response = await with_retry(
            _make_request,
            config=self._retry_config,
            operation_name=f"Anthropic {model_name}",
        )
        return self._parse_response(response)

    async def embed(
        self,
        texts: list[str],
        *,
        model: str | None = None,
    ) -> list[list[float]]:
        raise NotImplementedError(
            "Anthropic does not provide an embeddings API. Use OpenAI for embeddings."
        )
