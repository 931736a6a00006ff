"""OpenAI provider (Responses API for completions, Embeddings API for vectors)."""

import logging
import time
from typing import Any

import openai

from ember.llm.base import LLMProvider
from ember.llm.retry import RetryConfig, with_retry
from ember.llm.types import CompletionResponse, Message, ResponseFormat, Role, Usage

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_EMBEDDING_MODEL = "text-embedding-3-small"


class OpenAIProvider(LLMProvider):
    """OpenAI provider using the Responses API."""

    def __init__(
        self,
        api_key: str | None = None,
        *,
        base_url: str | None = None,
        retry_config: RetryConfig | None = None,
    ):
        self._client = openai.AsyncOpenAI(api_key=api_key, base_url=base_url)
        self._retry_config = retry_config or RetryConfig()

    @property
    def name(self) -> str:
        return "openai"

    @property
    def default_model(self) -> str:
        return DEFAULT_MODEL

    def _convert_input(
        self, messages: list[Message]
    ) -> tuple[str | None, list[dict[str, Any]]]:
        """Split messages into (instructions, input items) for the Responses API."""
        instructions: str | None = None
        result: list[dict[str, Any]] = []

        for msg in messages:
            if msg.role == Role.SYSTEM:
                instructions = msg.get_text()
                continue
            result.append({"role": msg.role.value, "content": msg.get_text()})

        return instructions, result

    def _build_request_kwargs(
        self,
        messages: list[Message],
        model: str | None,
        system: str | None,
        max_tokens: int,
        temperature: float | None,
        response_format: ResponseFormat,
    ) -> dict[str, Any]:
        msg_instructions, input_items = self._convert_input(messages)
        instructions = system or msg_instructions

        kwargs: dict[str, Any] = {
            "model": model or self.default_model,
            "input": input_items,
            "max_output_tokens": max_tokens,
        }

        if instructions:
            kwargs["instructions"] = instructions

        if temperature is not None:
            kwargs["temperature"] = temperature

        if response_format == "json":
            kwargs["text"] = {"format": {"type": "json_object"}}

        return kwargs

    def _parse_response(self, response: Any) -> CompletionResponse:
        text = "".join(
            part.text
            for item in response.output
            if item.type == "message"
            for part in item.content
            if part.type == "output_text"
        )

        usage = None
        if response.usage:
            usage = Usage(
                input_tokens=response.usage.input_tokens,
                output_tokens=response.usage.output_tokens,
            )

        stop_reason = "end_turn"
        if response.status == "incomplete" and response.incomplete_details:
            stop_reason = response.incomplete_details.reason

        return CompletionResponse(
            message=Message.assistant(text),
            usage=usage,
            stop_reason=stop_reason,
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

        start_time = time.monotonic()
        response = await with_retry(
            lambda: self._client.responses.create(**kwargs),
            config=self._retry_config,
            operation_name=f"OpenAI {model_name}",
        )
        duration_ms = int((time.monotonic() - start_time) * 1000)

        extra: dict[str, object] = {
            "provider": "openai",
            "model": model_name,
            "duration_ms": duration_ms,
        }
        if response.usage:
            extra["tokens_in"] = response.usage.input_tokens
            extra["tokens_out"] = response.usage.output_tokens
        logger.debug("llm_complete", extra=extra)

        return self._parse_response(response)

    async def embed(
        self,
        texts: list[str],
        *,
        model: str | None = None,
    ) -> list[list[float]]:
        embed_model = model or DEFAULT_EMBEDDING_MODEL
        logger.debug("Embedding %d texts with model %s", len(texts), embed_model)
        response = await with_retry(
            lambda: self._client.embeddings.create(model=embed_model, input=texts),
            config=self._retry_config,
            operation_name=f"OpenAI embeddings {embed_model}",
        )
        # The API may return items out of order; index is authoritative.
        data = sorted(response.data, key=lambda item: item.index)
        return [item.embedding for item in data]
