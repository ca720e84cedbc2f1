"""Node embedding table.

Maps node IDs to dense vectors of a single dimensionality. The table may
hold entries for nodes that no longer exist in the hypergraph (callers
prune after structural changes), and a node may lack an entry.
"""

from __future__ import annotations

from collections.abc import Hashable, Iterable, Iterator, Mapping, Sequence
from typing import Any

import numpy as np

from hypergraph_reasoning.engine.similarity import cosine_similarity_matrix, top_k_similar


class NodeEmbeddings:
    """Node ID -> embedding vector.

    The dimension is fixed by the first vector stored. Adding a vector of a
    different length is a caller error and raises ValueError.

    Example:
        >>> emb = NodeEmbeddings({"a": [1.0, 0.0], "b": [0.0, 1.0]})
        >>> emb.dimension
        2
        >>> emb.find_similar([1.0, 0.1], top_k=1)
        [('a', 0.995...)]
    """

    def __init__(self, vectors: Mapping[Hashable, Sequence[float] | np.ndarray] | None = None) -> None:
        self._vectors: dict[Hashable, np.ndarray] = {}
        self._dimension: int | None = None
        if vectors:
            for node, vector in vectors.items():
                self.set(node, vector)

    def __repr__(self) -> str:
        return f"NodeEmbeddings(count={len(self._vectors)}, dimension={self._dimension})"

    def __len__(self) -> int:
        return len(self._vectors)

    def __contains__(self, node: object) -> bool:
        return node in self._vectors

    def __iter__(self) -> Iterator[Hashable]:
        return iter(self._vectors)

    def __getitem__(self, node: Hashable) -> np.ndarray:
        return self._vectors[node]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, NodeEmbeddings):
            return NotImplemented
        if self._vectors.keys() != other._vectors.keys():
            return False
        return all(np.array_equal(v, other._vectors[k]) for k, v in self._vectors.items())

    __hash__ = None  # type: ignore[assignment]

    @property
    def dimension(self) -> int | None:
        """Vector length, or None while the table is empty."""
        return self._dimension

    @property
    def node_ids(self) -> list[Hashable]:
        return list(self._vectors)

    def get(self, node: Hashable) -> np.ndarray | None:
        return self._vectors.get(node)

    def items(self) -> Iterator[tuple[Hashable, np.ndarray]]:
        return iter(self._vectors.items())

    def set(self, node: Hashable, vector: Sequence[float] | np.ndarray) -> None:
        """Store a vector for ``node``, replacing any previous entry.

        Raises:
            ValueError: If the vector is not 1-D or its length differs
                        from the table's dimension
        """
        array = np.asarray(vector, dtype=np.float64)
        if array.ndim != 1 or array.size == 0:
            raise ValueError(f"Embedding for {node!r} must be a non-empty 1-D vector")
        if len(self._vectors) == 0:
            self._dimension = array.shape[0]
        elif array.shape[0] != self._dimension:
            raise ValueError(
                f"Embedding for {node!r} has dimension {array.shape[0]}, expected {self._dimension}"
            )
        self._vectors[node] = array

    def remove(self, node: Hashable) -> np.ndarray | None:
        removed = self._vectors.pop(node, None)
        if not self._vectors:
            self._dimension = None
        return removed

    def copy(self) -> NodeEmbeddings:
        clone = NodeEmbeddings()
        clone._vectors = dict(self._vectors)
        clone._dimension = self._dimension
        return clone

    def merge(self, other: NodeEmbeddings) -> NodeEmbeddings:
        """New table with entries from both; ``other`` wins on conflicts."""
        merged = self.copy()
        for node, vector in other._vectors.items():
            merged.set(node, vector)
        return merged

    def filtered(self, nodes: Iterable[Hashable]) -> NodeEmbeddings:
        """New table limited to ``nodes``."""
        keep = set(nodes)
        result = NodeEmbeddings()
        for node, vector in self._vectors.items():
            if node in keep:
                result._vectors[node] = vector
        result._dimension = self._dimension if result._vectors else None
        return result

    def prune(self, nodes: Iterable[Hashable]) -> NodeEmbeddings:
        """Drop entries for nodes not in ``nodes`` (e.g. after simplification)."""
        return self.filtered(nodes)

    def missing(self, nodes: Iterable[Hashable]) -> list[Hashable]:
        """Nodes from ``nodes`` that have no embedding, in input order."""
        return [node for node in nodes if node not in self._vectors]

    def matrix(self, nodes: Sequence[Hashable] | None = None) -> np.ndarray:
        """Stack vectors into an (N, dimension) array.

        Args:
            nodes: Row order; defaults to insertion order. Every node must
                   have an embedding.
        """
        order = list(self._vectors) if nodes is None else list(nodes)
        if not order:
            return np.zeros((0, self._dimension or 0), dtype=np.float64)
        return np.vstack([self._vectors[node] for node in order])

    def similarity_matrix(self, nodes: Sequence[Hashable] | None = None) -> np.ndarray:
        return cosine_similarity_matrix(self.matrix(nodes))

    def find_similar(
        self,
        vector: Sequence[float] | np.ndarray,
        top_k: int = 5,
        threshold: float = 0.0,
    ) -> list[tuple[Hashable, float]]:
        """Nodes whose embedding has similarity ``>= threshold`` to ``vector``.

        Returns:
            Up to ``top_k`` ``(node, similarity)`` tuples, highest first
        """
        if not self._vectors:
            return []
        order = list(self._vectors)
        hits = top_k_similar(vector, self.matrix(order), top_k, threshold=threshold)
        return [(order[idx], score) for idx, score in hits]

    def find_similar_to_node(
        self,
        node: Hashable,
        top_k: int = 5,
        threshold: float = 0.0,
    ) -> list[tuple[Hashable, float]]:
        """Like find_similar(), using a stored node's vector and excluding the node."""
        vector = self._vectors.get(node)
        if vector is None:
            return []
        hits = self.find_similar(vector, top_k=top_k + 1, threshold=threshold)
        return [(other, score) for other, score in hits if other != node][:top_k]

    # ========== Serialization ==========

    def to_dict(self) -> dict[str, list[float]]:
        """Flat ``{node: [floats]}`` map, keys sorted."""
        return {
            str(node): vector.tolist()
            for node, vector in sorted(self._vectors.items(), key=lambda kv: str(kv[0]))
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> NodeEmbeddings:
        return cls({node: vector for node, vector in data.items()})
