"""Keyword extraction from natural-language questions."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable

from hypergraph_reasoning.llm.base import CapabilityError, TextGenerator
from hypergraph_reasoning.models import KeywordsResponse
from hypergraph_reasoning.rag import prompts

logger = logging.getLogger(__name__)

KEYWORD_TEMPERATURE = 0.1

STOPWORDS = frozenset(
    """
    what how why when where who which whom
    is are was were be been being
    have has had do does did will would could should
    can may might must shall
    the a an and or but in on at to for
    of with by from as into through during before
    after above below between under again further
    then once here there all each few more most
    other some such no nor not only own same
    so than too very just about also now this
    that these those it its i you he she we they
    me him her us them my your his our their
    """.split()
)

_WORD = re.compile(r"[^\W_]+")
_CAPITALIZED_PHRASE = re.compile(r"\b[A-Z][a-z]+(?:\s+[A-Z][a-z]+)*\b")


def clean_keywords(keywords: Iterable[str]) -> list[str]:
    """Trim, lowercase, drop one-character entries and duplicates; order is kept."""
    seen: set[str] = set()
    cleaned: list[str] = []
    for keyword in keywords:
        value = keyword.strip().lower()
        if len(value) < 2 or value in seen:
            continue
        seen.add(value)
        cleaned.append(value)
    return cleaned


def simple_extract(query: str) -> list[str]:
    """Rule-based keywords: non-stopwords of 3+ characters plus capitalised phrases.

    Returns:
        Sorted, lowercase, unique keywords
    """
    words = {
        word
        for word in _WORD.findall(query.lower())
        if len(word) > 2 and word not in STOPWORDS
    }
    phrases = {phrase.lower() for phrase in _CAPITALIZED_PHRASE.findall(query)}
    phrases = {phrase for phrase in phrases if phrase not in STOPWORDS}
    return sorted(words | phrases)


class KeywordExtractor:
    """Extracts search keywords with a TextGenerator.

    Args:
        generator: Backend used for structured generation
        model: Model override passed to the generator
        temperature: Sampling temperature for extraction calls
    """

    def __init__(
        self,
        generator: TextGenerator,
        model: str | None = None,
        temperature: float = KEYWORD_TEMPERATURE,
    ) -> None:
        self.generator = generator
        self.model = model
        self.temperature = temperature

    async def extract(self, query: str) -> list[str]:
        """Keywords for ``query``.

        Raises:
            GenerationError: If generation fails or returns malformed JSON
        """
        response = await self.generator.generate_structured(
            prompts.KEYWORD_EXTRACTION,
            prompts.keyword_user_prompt(query),
            KeywordsResponse,
            model=self.model,
            temperature=self.temperature,
        )
        return clean_keywords(response.keywords)

    def simple_extract(self, query: str) -> list[str]:
        return simple_extract(query)

    async def extract_with_fallback(self, query: str) -> list[str]:
        """extract(), falling back to simple_extract() if the generator fails."""
        try:
            return await self.extract(query)
        except CapabilityError as exc:
            logger.warning("Keyword extraction failed (%s); using rule-based keywords", exc)
            return simple_extract(query)
