"""Resolve free-text keywords to hypergraph nodes.

Per keyword, in priority order:

1. Exact case-insensitive name match (similarity 1.0); stops here.
2. Case-insensitive substring match in either direction, scored
   ``max(0.8, shorter / longer)``; stops here.
3. Embedding similarity of the keyword against every stored node vector,
   filtered by threshold and truncated to top-k.

Across keywords, results are deduplicated by node, keeping the best score.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable

from hypergraph_reasoning.engine.embeddings import NodeEmbeddings
from hypergraph_reasoning.llm.base import Embedder, EmbeddingError, KeywordMatchError
from hypergraph_reasoning.models import MatchKind, NodeMatch

logger = logging.getLogger(__name__)

SUBSTRING_MIN_SCORE = 0.8


def _by_score(match: NodeMatch) -> tuple[float, str]:
    return (-match.similarity, match.node)


def deduplicate_matches(matches: Iterable[NodeMatch]) -> list[NodeMatch]:
    """Keep each node's highest-scoring match, best first (ties by node)."""
    best: dict[str, NodeMatch] = {}
    for match in matches:
        current = best.get(match.node)
        if current is None or match.similarity > current.similarity:
            best[match.node] = match
    return sorted(best.values(), key=_by_score)


def unique_nodes(matches: Iterable[NodeMatch]) -> list[str]:
    """Node IDs ordered by their best score, each listed once."""
    return [match.node for match in deduplicate_matches(matches)]


class NodeMatcher:
    """Matches keywords to nodes by name, then by embedding.

    Args:
        embeddings: Stored node embeddings
        embedder: Backend used to embed keywords
        nodes: Candidate node names for name matching; defaults to the
               embedding table's nodes
    """

    def __init__(
        self,
        embeddings: NodeEmbeddings,
        embedder: Embedder,
        nodes: Iterable[str] | None = None,
    ) -> None:
        self.embeddings = embeddings
        self.embedder = embedder
        names = embeddings.node_ids if nodes is None else nodes
        self._names = sorted({str(name) for name in names})
        self._lowered = [(name, name.lower()) for name in self._names]

    def find_exact_matches(self, keyword: str) -> list[NodeMatch]:
        """Name-based matches: exact hits if any, otherwise substring hits."""
        needle = keyword.strip().lower()
        if not needle:
            return []

        exact = [
            NodeMatch(node=name, keyword=keyword, similarity=1.0, match_type=MatchKind.EXACT)
            for name, lowered in self._lowered
            if lowered == needle
        ]
        if exact:
            return exact

        partial = []
        for name, lowered in self._lowered:
            if lowered and (needle in lowered or lowered in needle):
                ratio = min(len(needle), len(lowered)) / max(len(needle), len(lowered))
                partial.append(
                    NodeMatch(
                        node=name,
                        keyword=keyword,
                        similarity=max(SUBSTRING_MIN_SCORE, ratio),
                        match_type=MatchKind.SUBSTRING,
                    )
                )
        return sorted(partial, key=_by_score)

    async def _embedding_matches(self, keyword: str, top_k: int, threshold: float) -> list[NodeMatch]:
        if len(self.embeddings) == 0:
            return []
        try:
            vectors = await self.embedder.embed([keyword])
        except EmbeddingError:
            raise
        except Exception as exc:
            raise EmbeddingError(f"Failed to embed keyword {keyword!r}: {exc}") from exc
        if len(vectors) != 1:
            raise EmbeddingError(f"Expected 1 embedding for {keyword!r}, got {len(vectors)}")

        hits = self.embeddings.find_similar(vectors[0], top_k=top_k, threshold=threshold)
        return [
            NodeMatch(node=str(node), keyword=keyword, similarity=score, match_type=MatchKind.EMBEDDING)
            for node, score in hits
        ]

    async def find_matches(self, keyword: str, top_k: int = 5, threshold: float = 0.5) -> list[NodeMatch]:
        """Matches for a single keyword, best first.

        Raises:
            EmbeddingError: If the keyword needed embedding and it failed
        """
        name_matches = self.find_exact_matches(keyword)
        if name_matches:
            return name_matches
        return await self._embedding_matches(keyword, top_k, threshold)

    async def find_matching_nodes(
        self,
        keywords: Iterable[str],
        top_k: int = 5,
        threshold: float = 0.5,
    ) -> list[NodeMatch]:
        """Matches for all keywords, deduplicated by node.

        Keywords are resolved concurrently. Every keyword is attempted even
        when some fail.

        Raises:
            KeywordMatchError: If any keyword could not be embedded; carries
                               the matches found for the other keywords
        """
        keyword_list = list(dict.fromkeys(k for k in keywords if k.strip()))
        if not keyword_list:
            return []

        outcomes = await asyncio.gather(
            *(self.find_matches(k, top_k=top_k, threshold=threshold) for k in keyword_list),
            return_exceptions=True,
        )

        matches: list[NodeMatch] = []
        failures: dict[str, BaseException] = {}
        for keyword, outcome in zip(keyword_list, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                failures[keyword] = outcome
            else:
                matches.extend(outcome)

        deduplicated = deduplicate_matches(matches)
        if failures:
            raise KeywordMatchError(failures, partial_matches=deduplicated)
        logger.debug("Matched %d keywords to %d nodes", len(keyword_list), len(deduplicated))
        return deduplicated

    async def find_best_matches(self, keywords: Iterable[str], threshold: float = 0.5) -> dict[str, str]:
        """Keyword -> single best node, for keywords that matched anything.

        Raises:
            KeywordMatchError: If any keyword could not be embedded; its
                               ``best_matches`` holds the other keywords' nodes
        """
        keyword_list = list(dict.fromkeys(keywords))
        outcomes = await asyncio.gather(
            *(self.find_matches(k, top_k=1, threshold=threshold) for k in keyword_list),
            return_exceptions=True,
        )

        best: dict[str, str] = {}
        failures: dict[str, BaseException] = {}
        for keyword, outcome in zip(keyword_list, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                failures[keyword] = outcome
            elif outcome:
                best[keyword] = outcome[0].node

        if failures:
            raise KeywordMatchError(failures, best_matches=best)
        return best
