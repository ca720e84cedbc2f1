"""Batch embedding of hypergraph nodes through an injected Embedder."""

from __future__ import annotations

import logging
from collections.abc import Iterable

import numpy as np

from hypergraph_reasoning.engine.core import Hypergraph, stable_sorted
from hypergraph_reasoning.engine.embeddings import NodeEmbeddings
from hypergraph_reasoning.llm.base import Embedder, EmbeddingError

logger = logging.getLogger(__name__)


class EmbeddingService:
    """Embeds node names in batches and maintains NodeEmbeddings tables.

    Args:
        embedder: Backend producing vectors
        batch_size: Maximum number of texts per embedder call
    """

    def __init__(self, embedder: Embedder, batch_size: int = 100) -> None:
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        self.embedder = embedder
        self.batch_size = batch_size

    async def embed_text(self, text: str) -> np.ndarray:
        """Embed a single string (e.g. a query keyword)."""
        vectors = await self.embedder.embed([text])
        if len(vectors) != 1:
            raise EmbeddingError(f"Expected 1 embedding, got {len(vectors)}")
        return np.asarray(vectors[0], dtype=np.float64)

    async def embed_nodes(self, nodes: Iterable[str]) -> NodeEmbeddings:
        """Embed node names, preserving input order within each batch.

        Raises:
            EmbeddingError: If the embedder fails or returns the wrong
                            number of vectors for a batch
        """
        node_list = list(dict.fromkeys(nodes))
        result = NodeEmbeddings()
        for start in range(0, len(node_list), self.batch_size):
            batch = node_list[start : start + self.batch_size]
            vectors = await self.embedder.embed([str(node) for node in batch])
            if len(vectors) != len(batch):
                raise EmbeddingError(
                    f"Embedder returned {len(vectors)} vectors for a batch of {len(batch)}"
                )
            for node, vector in zip(batch, vectors):
                result.set(node, vector)
            logger.debug("Embedded %d/%d nodes", min(start + len(batch), len(node_list)), len(node_list))
        return result

    async def embed_hypergraph(self, hypergraph: Hypergraph) -> NodeEmbeddings:
        """Embed every node of ``hypergraph``."""
        return await self.embed_nodes(stable_sorted(hypergraph.nodes))

    async def ensure_embeddings(self, existing: NodeEmbeddings, nodes: Iterable[str]) -> NodeEmbeddings:
        """Return ``existing`` extended with vectors for any of ``nodes`` it lacks."""
        missing = existing.missing(nodes)
        if not missing:
            return existing.copy()
        logger.info("Embedding %d missing nodes", len(missing))
        return existing.merge(await self.embed_nodes(missing))

    async def update_embeddings(
        self,
        existing: NodeEmbeddings,
        hypergraph: Hypergraph,
        prune_orphans: bool = True,
    ) -> NodeEmbeddings:
        """Bring ``existing`` in line with ``hypergraph``.

        New nodes are embedded; with ``prune_orphans`` entries for nodes no
        longer in the graph are dropped.
        """
        updated = await self.ensure_embeddings(existing, stable_sorted(hypergraph.nodes))
        if prune_orphans:
            updated = updated.prune(hypergraph.nodes)
        return updated
