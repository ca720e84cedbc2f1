"""Embedding-based node deduplication.

Near-duplicate nodes (synonyms, casing or phrasing variants) are collapsed
in a single greedy pass:

1. Eligible nodes are those present in the hypergraph, holding an
   embedding, and not ending in an excluded suffix.
2. Similar pairs above the threshold are walked in descending order.
3. For each pair whose endpoints are both still unclaimed, the node with
   the higher degree is kept (ties keep the lower-index node).
4. Edges are rewritten through the removed -> kept mapping; edges left with
   fewer than two distinct members are dropped.
5. Embeddings of removed nodes are discarded, optionally re-embedding the
   keepers that absorbed a merge.

Merges never chain within a pass: a removed node cannot be merged again,
and a node that already absorbed another cannot itself be removed.
"""

from __future__ import annotations

import logging
from collections.abc import Hashable, Iterable
from dataclasses import dataclass, field, replace

from hypergraph_reasoning.engine.core import Hypergraph, stable_sorted
from hypergraph_reasoning.engine.embeddings import NodeEmbeddings
from hypergraph_reasoning.engine.similarity import find_similar_pairs
from hypergraph_reasoning.llm.base import Embedder, EmbeddingError
from hypergraph_reasoning.models import MergeRecord

logger = logging.getLogger(__name__)

DEFAULT_SIMILARITY_THRESHOLD = 0.9
MINIMUM_EDGE_SIZE = 2


@dataclass(frozen=True)
class SimplificationResult:
    """Outcome of one simplification pass."""

    hypergraph: Hypergraph
    embeddings: NodeEmbeddings
    merge_count: int = 0
    nodes_removed: int = 0
    edges_removed: int = 0
    embeddings_recomputed: int = 0
    merge_history: list[MergeRecord] = field(default_factory=list)
    node_mapping: dict[Hashable, Hashable] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.merge_count != len(self.merge_history):
            raise ValueError("merge_count must equal the number of merge records")

    @classmethod
    def unchanged(cls, hypergraph: Hypergraph, embeddings: NodeEmbeddings) -> SimplificationResult:
        return cls(hypergraph=hypergraph.copy(), embeddings=embeddings.copy())

    def summary(self) -> str:
        return (
            f"{self.merge_count} merges, {self.nodes_removed} nodes removed, "
            f"{self.edges_removed} edges removed, "
            f"{self.embeddings_recomputed} embeddings recomputed"
        )


def _eligible_nodes(
    hypergraph: Hypergraph,
    embeddings: NodeEmbeddings,
    exclude_suffixes: Iterable[str],
) -> list[Hashable]:
    suffixes = tuple(exclude_suffixes)
    eligible = []
    for node in stable_sorted(hypergraph.nodes):
        if node not in embeddings:
            continue
        if suffixes and str(node).endswith(suffixes):
            continue
        eligible.append(node)
    return eligible


class HypergraphSimplifier:
    """Merges near-duplicate nodes of a hypergraph."""

    def __init__(self, similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD) -> None:
        self.similarity_threshold = similarity_threshold

    def find_merge_candidates(
        self,
        hypergraph: Hypergraph,
        embeddings: NodeEmbeddings,
        similarity_threshold: float | None = None,
        exclude_suffixes: Iterable[str] = (),
    ) -> list[tuple[Hashable, Hashable, float]]:
        """Dry run: every similar pair among eligible nodes, most similar first."""
        threshold = self.similarity_threshold if similarity_threshold is None else similarity_threshold
        nodes = _eligible_nodes(hypergraph, embeddings, exclude_suffixes)
        if len(nodes) < 2:
            return []
        pairs = find_similar_pairs(embeddings.matrix(nodes), threshold)
        return [(nodes[p.i], nodes[p.j], p.similarity) for p in pairs]

    def simplify(
        self,
        hypergraph: Hypergraph,
        embeddings: NodeEmbeddings,
        similarity_threshold: float | None = None,
        exclude_suffixes: Iterable[str] = (),
    ) -> SimplificationResult:
        """Collapse near-duplicate nodes.

        Args:
            hypergraph: Graph to simplify (not modified)
            embeddings: Node embeddings used for similarity (not modified)
            similarity_threshold: Pairs must score strictly above this
            exclude_suffixes: Nodes ending with any of these are left alone,
                              e.g. (".png",) to keep file names out of merges

        Returns:
            SimplificationResult; a no-op result when nothing qualifies
        """
        threshold = self.similarity_threshold if similarity_threshold is None else similarity_threshold
        nodes = _eligible_nodes(hypergraph, embeddings, exclude_suffixes)
        if len(nodes) < 2:
            logger.debug("Fewer than two eligible nodes; nothing to simplify")
            return SimplificationResult.unchanged(hypergraph, embeddings)

        pairs = find_similar_pairs(embeddings.matrix(nodes), threshold)
        if not pairs:
            logger.debug("No node pairs above similarity %.3f", threshold)
            return SimplificationResult.unchanged(hypergraph, embeddings)

        mapping: dict[Hashable, Hashable] = {}
        keepers: set[Hashable] = set()
        history: list[MergeRecord] = []

        for pair in pairs:
            node_i, node_j = nodes[pair.i], nodes[pair.j]
            if node_i in mapping or node_j in mapping:
                continue

            degree_i, degree_j = hypergraph.degree(node_i), hypergraph.degree(node_j)
            if degree_i >= degree_j:
                kept, removed, kept_degree, removed_degree = node_i, node_j, degree_i, degree_j
            else:
                kept, removed, kept_degree, removed_degree = node_j, node_i, degree_j, degree_i

            if removed in keepers:
                logger.debug("Skipping %r -> %r: %r already absorbed a merge", removed, kept, removed)
                continue

            mapping[removed] = kept
            keepers.add(kept)
            history.append(
                MergeRecord(
                    kept_node=str(kept),
                    removed_node=str(removed),
                    similarity=pair.similarity,
                    kept_node_degree=kept_degree,
                    removed_node_degree=removed_degree,
                )
            )
            logger.debug("Merging %r into %r (similarity %.4f)", removed, kept, pair.similarity)

        rewritten: dict[Hashable, frozenset[Hashable]] = {}
        edges_removed = 0
        for edge_id, members in hypergraph.incidence_dict.items():
            new_members = frozenset(mapping.get(node, node) for node in members)
            if len(new_members) >= MINIMUM_EDGE_SIZE:
                rewritten[edge_id] = new_members
            else:
                edges_removed += 1

        new_graph = Hypergraph(rewritten)
        new_embeddings = embeddings.copy()
        for removed in mapping:
            new_embeddings.remove(removed)
        new_embeddings = new_embeddings.prune(new_graph.nodes)

        result = SimplificationResult(
            hypergraph=new_graph,
            embeddings=new_embeddings,
            merge_count=len(history),
            nodes_removed=len(mapping),
            edges_removed=edges_removed,
            merge_history=history,
            node_mapping=mapping,
        )
        logger.info("Simplification: %s", result.summary())
        return result

    async def simplify_and_recompute(
        self,
        hypergraph: Hypergraph,
        embeddings: NodeEmbeddings,
        embedder: Embedder | None = None,
        similarity_threshold: float | None = None,
        exclude_suffixes: Iterable[str] = (),
        recompute_embeddings: bool = True,
    ) -> SimplificationResult:
        """simplify(), then optionally re-embed the nodes that absorbed a merge.

        Only keepers still present in the simplified graph are re-embedded.

        Raises:
            EmbeddingError: If the embedder fails; nothing is partially applied
        """
        result = self.simplify(hypergraph, embeddings, similarity_threshold, exclude_suffixes)
        if not recompute_embeddings or embedder is None or not result.merge_history:
            return result

        graph_nodes = result.hypergraph.nodes
        keepers = stable_sorted({k for k in result.node_mapping.values() if k in graph_nodes})
        if not keepers:
            return result

        vectors = await embedder.embed([str(node) for node in keepers])
        if len(vectors) != len(keepers):
            raise EmbeddingError(
                f"Embedder returned {len(vectors)} vectors for {len(keepers)} nodes"
            )
        updated = result.embeddings.copy()
        for node, vector in zip(keepers, vectors):
            updated.set(node, vector)

        logger.info("Recomputed %d keeper embeddings", len(keepers))
        return replace(result, embeddings=updated, embeddings_recomputed=len(keepers))
