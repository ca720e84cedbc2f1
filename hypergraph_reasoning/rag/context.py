"""Render hypergraph evidence as sentences and a bounded context block.

Sentences are deduplicated and sorted, so the same evidence always yields
the same context string. Token budgets use the usual four-characters-per-
token approximation.
"""

from __future__ import annotations

import logging
from collections.abc import Hashable, Iterable, Mapping, Sequence

from hypergraph_reasoning.engine.builder import relation_from_edge_id
from hypergraph_reasoning.engine.core import Hypergraph, stable_sorted
from hypergraph_reasoning.models import EdgeMetadata

logger = logging.getLogger(__name__)

DEFAULT_HEADER = "Relevant knowledge from the graph:"
CHARS_PER_TOKEN = 4


def truncation_marker(omitted: int) -> str:
    return f"- (... and {omitted} more relationships)"


def _line(sentence: str) -> str:
    return f"- {sentence}\n"


class ContextAssembler:
    """Turns edges and paths into natural-language evidence.

    Args:
        hypergraph: Graph the evidence comes from
        metadata: Edge ID -> EdgeMetadata with relation labels
        legacy_edge_labels: For edges without metadata, recover the relation
                            from ``<relation>_chunk<id>_<n>`` style edge IDs
    """

    def __init__(
        self,
        hypergraph: Hypergraph,
        metadata: Mapping[str, EdgeMetadata] | None = None,
        legacy_edge_labels: bool = False,
    ) -> None:
        self.hypergraph = hypergraph
        self.metadata = dict(metadata or {})
        self.legacy_edge_labels = legacy_edge_labels

    def _legacy_relation(self, edge: Hashable) -> str | None:
        if not self.legacy_edge_labels or not isinstance(edge, str):
            return None
        return relation_from_edge_id(edge)

    def edge_sentence(
        self,
        edge: Hashable,
        source_node: Hashable | None = None,
        target_node: Hashable | None = None,
    ) -> str | None:
        """Sentence describing one edge, or None if the edge does not exist.

        With ``source_node``/``target_node`` (a path hop) and no metadata,
        the sentence names just that pair.
        """
        meta = self.metadata.get(edge) if isinstance(edge, str) else None
        if meta is not None:
            return meta.sentence()

        members = self.hypergraph.nodes_in(edge)
        if not members:
            return None
        relation = self._legacy_relation(edge)

        if source_node is not None and target_node is not None:
            pair = [str(source_node), str(target_node)]
        elif len(members) == 2:
            pair = [str(node) for node in stable_sorted(members)]
        else:
            names = ", ".join(str(node) for node in stable_sorted(members))
            return f"{names} {relation}." if relation else f"{names} are related."

        if relation:
            return f"{pair[0]} {relation} {pair[1]}."
        return f"{pair[0]} is related to {pair[1]}."

    def collect_sentences(self, paths: Iterable[Sequence[Hashable]]) -> list[str]:
        """One sentence per hop (via the lowest-ID shared edge), sorted and unique."""
        sentences: set[str] = set()
        for path in paths:
            for a, b in zip(path, path[1:]):
                shared = self.hypergraph.edges_containing([a, b], match_all=True)
                if not shared:
                    continue
                sentence = self.edge_sentence(stable_sorted(shared)[0], a, b)
                if sentence:
                    sentences.add(sentence)
        return sorted(sentences)

    def collect_subgraph_sentences(self, subgraph: Hypergraph) -> list[str]:
        """One sentence per edge of ``subgraph``, sorted and unique."""
        assembler = ContextAssembler(subgraph, self.metadata, self.legacy_edge_labels)
        sentences = {assembler.edge_sentence(edge) for edge in subgraph.edges}
        return sorted(s for s in sentences if s)

    def collect_direct_sentences(
        self,
        nodes: Iterable[Hashable],
        edges_per_node: int = 5,
    ) -> list[str]:
        """Sentences for up to ``edges_per_node`` incident edges of each node.

        Used when matched nodes exist but no path connects them.
        """
        sentences: set[str] = set()
        for node in nodes:
            for edge in stable_sorted(self.hypergraph.edges_of(node))[:edges_per_node]:
                sentence = self.edge_sentence(edge)
                if sentence:
                    sentences.add(sentence)
        return sorted(sentences)

    @staticmethod
    def fit_to_budget(
        sentences: Sequence[str],
        max_tokens: int = 2000,
        header: str | None = DEFAULT_HEADER,
    ) -> tuple[list[str], int]:
        """Split sentences into those that fit the budget and an omitted count."""
        max_chars = max_tokens * CHARS_PER_TOKEN
        used = len(f"{header}\n\n") if header else 0
        included: list[str] = []
        for sentence in sentences:
            line = _line(sentence)
            if used + len(line) > max_chars:
                break
            included.append(sentence)
            used += len(line)
        return included, len(sentences) - len(included)

    @classmethod
    def format_context(
        cls,
        sentences: Sequence[str],
        max_tokens: int = 2000,
        header: str | None = DEFAULT_HEADER,
    ) -> str:
        """Bullet-list context block under a character budget.

        When sentences are dropped a ``(... and N more relationships)`` line
        is appended, even if not a single sentence fit.

        Returns:
            The formatted block, or "" for no sentences
        """
        if not sentences:
            return ""
        included, omitted = cls.fit_to_budget(sentences, max_tokens, header)
        text = f"{header}\n\n" if header else ""
        text += "".join(_line(sentence) for sentence in included)
        if omitted:
            logger.debug("Context budget of %d tokens dropped %d sentences", max_tokens, omitted)
            text += truncation_marker(omitted)
        return text.strip()
