"""Abstractions for the external capabilities retrieval depends on.

Text generation and embedding are injected into the deterministic core so
that any backend (an OpenAI-compatible server, a local model, a test fake)
can be plugged in. Backends translate their own failures into the
CapabilityError hierarchy defined here.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from typing import TypeVar

from pydantic import BaseModel, ValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)

_CODE_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


class CapabilityError(Exception):
    """Raised when an external capability (LLM or embedder) fails."""


class EmbeddingError(CapabilityError):
    """Raised when text could not be embedded."""


class GenerationError(CapabilityError):
    """Raised when text generation fails or returns unusable output."""


class KeywordMatchError(EmbeddingError):
    """Raised when one or more keywords could not be embedded for matching.

    Attributes:
        failures: Keyword -> the exception raised while embedding it
        partial_matches: Matches computed for the keywords that succeeded
        best_matches: Keyword -> best node for the keywords that succeeded,
                      when raised by a best-match lookup
    """

    def __init__(
        self,
        failures: dict[str, BaseException],
        partial_matches: list | None = None,
        best_matches: dict[str, str] | None = None,
    ) -> None:
        self.failures = failures
        self.partial_matches = partial_matches or []
        self.best_matches = best_matches or {}
        names = ", ".join(repr(k) for k in failures)
        super().__init__(f"Failed to embed {len(failures)} keyword(s): {names}")


def strip_code_fence(text: str) -> str:
    """Remove a surrounding Markdown code fence, if any."""
    stripped = text.strip()
    match = _CODE_FENCE.match(stripped)
    return match.group(1) if match else stripped


class TextGenerator(ABC):
    """Produces text (and structured records) from prompts."""

    @abstractmethod
    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        model: str | None = None,
        temperature: float | None = None,
    ) -> str:
        """Generate a completion.

        Raises:
            GenerationError: If the backend fails
        """

    async def generate_structured(
        self,
        system_prompt: str,
        user_prompt: str,
        response_model: type[ModelT],
        *,
        model: str | None = None,
        temperature: float | None = None,
    ) -> ModelT:
        """Generate a completion and parse it as ``response_model`` JSON.

        Raises:
            GenerationError: If generation fails or the output does not validate
        """
        raw = await self.generate(system_prompt, user_prompt, model=model, temperature=temperature)
        try:
            return response_model.model_validate_json(strip_code_fence(raw))
        except ValidationError as exc:
            raise GenerationError(
                f"Response is not a valid {response_model.__name__}: {exc.error_count()} error(s)"
            ) from exc


class Embedder(ABC):
    """Turns texts into dense vectors."""

    @abstractmethod
    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Embed ``texts``, returning one vector per input in the same order.

        Raises:
            EmbeddingError: If the backend fails
        """
