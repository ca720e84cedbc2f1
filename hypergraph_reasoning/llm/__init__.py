"""External capabilities: text generation and embedding backends."""

from hypergraph_reasoning.llm.base import (
    CapabilityError,
    Embedder,
    EmbeddingError,
    GenerationError,
    KeywordMatchError,
    TextGenerator,
)
from hypergraph_reasoning.llm.openai_backend import OpenAIEmbedder, OpenAIGenerator

__all__ = [
    "CapabilityError",
    "Embedder",
    "EmbeddingError",
    "GenerationError",
    "KeywordMatchError",
    "OpenAIEmbedder",
    "OpenAIGenerator",
    "TextGenerator",
]
