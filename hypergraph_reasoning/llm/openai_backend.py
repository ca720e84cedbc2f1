"""OpenAI-compatible text generation and embedding backends.

Works against any server implementing the OpenAI chat and embeddings
routes (OpenAI, OpenRouter, Ollama's ``/v1``). The underlying httpx client
ignores proxy environment variables and applies the configured timeout.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
import openai
from openai import AsyncOpenAI
from pydantic import ValidationError

from hypergraph_reasoning.config import Settings
from hypergraph_reasoning.llm.base import (
    Embedder,
    EmbeddingError,
    GenerationError,
    ModelT,
    TextGenerator,
    strip_code_fence,
)

logger = logging.getLogger(__name__)


def build_client(
    api_key: str | None,
    base_url: str | None = None,
    timeout: float = 120.0,
    max_retries: int = 2,
    http_client: httpx.AsyncClient | None = None,
) -> AsyncOpenAI:
    """Create an AsyncOpenAI client over an httpx client with ``trust_env`` off."""
    if http_client is None:
        http_client = httpx.AsyncClient(timeout=timeout, trust_env=False)
    # Local servers such as Ollama accept any key, but the SDK requires one
    return AsyncOpenAI(
        api_key=api_key or "not-needed",
        base_url=base_url,
        max_retries=max_retries,
        http_client=http_client,
    )


class OpenAIGenerator(TextGenerator):
    """Chat-completions backed TextGenerator."""

    def __init__(
        self,
        client: AsyncOpenAI,
        model: str = "gpt-4o-mini",
        temperature: float = 0.7,
        max_tokens: int | None = None,
    ) -> None:
        self.client = client
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

    @classmethod
    def from_settings(cls, settings: Settings, http_client: httpx.AsyncClient | None = None) -> OpenAIGenerator:
        client = build_client(
            settings.api_key,
            settings.base_url,
            timeout=settings.request_timeout,
            max_retries=settings.max_retries,
            http_client=http_client,
        )
        return cls(client, model=settings.chat_model, temperature=settings.answer_temperature)

    async def _complete(
        self,
        system_prompt: str,
        user_prompt: str,
        model: str | None,
        temperature: float | None,
        json_mode: bool = False,
    ) -> str:
        kwargs: dict[str, Any] = {}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        if self.max_tokens is not None:
            kwargs["max_tokens"] = self.max_tokens
        try:
            response = await self.client.chat.completions.create(
                model=model or self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=self.temperature if temperature is None else temperature,
                **kwargs,
            )
        except openai.OpenAIError as exc:
            raise GenerationError(f"Chat completion failed: {exc}") from exc

        if not response.choices:
            raise GenerationError("Chat completion returned no choices")
        content = response.choices[0].message.content
        if not content:
            raise GenerationError("Chat completion returned empty content")
        return content.strip()

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        model: str | None = None,
        temperature: float | None = None,
    ) -> str:
        return await self._complete(system_prompt, user_prompt, model, temperature)

    async def generate_structured(
        self,
        system_prompt: str,
        user_prompt: str,
        response_model: type[ModelT],
        *,
        model: str | None = None,
        temperature: float | None = None,
    ) -> ModelT:
        """Request JSON mode and validate the reply as ``response_model``."""
        raw = await self._complete(system_prompt, user_prompt, model, temperature, json_mode=True)
        try:
            return response_model.model_validate_json(strip_code_fence(raw))
        except ValidationError as exc:
            logger.debug("Unparseable structured response: %s", raw[:500])
            raise GenerationError(
                f"Response is not a valid {response_model.__name__}: {exc.error_count()} error(s)"
            ) from exc


class OpenAIEmbedder(Embedder):
    """Embeddings-route backed Embedder."""

    def __init__(self, client: AsyncOpenAI, model: str = "text-embedding-3-small") -> None:
        self.client = client
        self.model = model

    @classmethod
    def from_settings(cls, settings: Settings, http_client: httpx.AsyncClient | None = None) -> OpenAIEmbedder:
        client = build_client(
            settings.api_key,
            settings.base_url,
            timeout=settings.request_timeout,
            max_retries=settings.max_retries,
            http_client=http_client,
        )
        return cls(client, model=settings.embedding_model)

    async def embed(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        try:
            response = await self.client.embeddings.create(
                model=self.model, input=texts, encoding_format="float"
            )
        except openai.OpenAIError as exc:
            raise EmbeddingError(f"Embedding request failed: {exc}") from exc

        # The API may return items out of order; each carries its input index
        data = sorted(response.data, key=lambda item: item.index)
        if len(data) != len(texts):
            raise EmbeddingError(f"Expected {len(texts)} embeddings, got {len(data)}")
        return [list(item.embedding) for item in data]
