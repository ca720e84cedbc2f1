"""Shared fixtures for hypergraph_reasoning tests."""

from __future__ import annotations

import pytest

from hypergraph_reasoning.engine.core import Hypergraph
from hypergraph_reasoning.engine.embeddings import NodeEmbeddings
from hypergraph_reasoning.llm.base import Embedder, EmbeddingError, GenerationError, TextGenerator
from hypergraph_reasoning.models import EdgeMetadata


class FakeEmbedder(Embedder):
    """Looks vectors up in a dict; unknown texts get ``default``.

    Texts listed in ``fail_on`` raise EmbeddingError. Every call is recorded.
    """

    def __init__(self, vectors=None, default=None, fail_on=()):
        self.vectors = dict(vectors or {})
        self.default = default
        self.fail_on = set(fail_on)
        self.calls: list[list[str]] = []

    async def embed(self, texts):
        self.calls.append(list(texts))
        result = []
        for text in texts:
            if text in self.fail_on:
                raise EmbeddingError(f"cannot embed {text!r}")
            vector = self.vectors.get(text, self.default)
            if vector is None:
                raise EmbeddingError(f"no vector for {text!r}")
            result.append(list(vector))
        return result


class FakeGenerator(TextGenerator):
    """Returns scripted replies in order; an Exception in the script is raised."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.calls: list[dict] = []

    async def generate(self, system_prompt, user_prompt, *, model=None, temperature=None):
        self.calls.append(
            {"system": system_prompt, "user": user_prompt, "model": model, "temperature": temperature}
        )
        if not self.replies:
            raise GenerationError("no scripted reply left")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.fixture()
def sample_graph():
    """Reference graph.

    Edges (4):
        e1: A, B, C
        e2: B, C, D
        e3: D, E
        e4: X, Y        (separate component)
    """
    return Hypergraph(
        {
            "e1": ["A", "B", "C"],
            "e2": ["B", "C", "D"],
            "e3": ["D", "E"],
            "e4": ["X", "Y"],
        }
    )


@pytest.fixture()
def knowledge_graph():
    """Small materials-science graph with metadata for every edge.

    graphene --is a--> 2D material
    graphene --has property--> high conductivity
    2D material --used in--> flexible electronics
    silk --has property--> high toughness
    """
    metadata = {
        "is a_chunk1_0": EdgeMetadata(
            edge="is a_chunk1_0", relation="is a", source=["graphene"], target=["2D material"],
            chunk_id="1", nodes=["2D material", "graphene"],
        ),
        "has property_chunk1_1": EdgeMetadata(
            edge="has property_chunk1_1", relation="has property", source=["graphene"],
            target=["high conductivity"], chunk_id="1", nodes=["graphene", "high conductivity"],
        ),
        "used in_chunk2_0": EdgeMetadata(
            edge="used in_chunk2_0", relation="used in", source=["2D material"],
            target=["flexible electronics"], chunk_id="2", nodes=["2D material", "flexible electronics"],
        ),
        "has property_chunk3_0": EdgeMetadata(
            edge="has property_chunk3_0", relation="has property", source=["silk"],
            target=["high toughness"], chunk_id="3", nodes=["high toughness", "silk"],
        ),
    }
    graph = Hypergraph({edge: meta.nodes for edge, meta in metadata.items()})
    return graph, metadata


@pytest.fixture()
def knowledge_embeddings():
    """Embeddings for knowledge_graph nodes; axis 0 is 'graphene-like', axis 3 'silk-like'."""
    return NodeEmbeddings(
        {
            "graphene": [1.0, 0.0, 0.0, 0.0],
            "2D material": [0.8, 0.6, 0.0, 0.0],
            "high conductivity": [0.0, 1.0, 0.0, 0.0],
            "flexible electronics": [0.0, 0.6, 0.8, 0.0],
            "silk": [0.0, 0.0, 0.0, 1.0],
            "high toughness": [0.0, 0.0, 0.6, 0.8],
        }
    )
