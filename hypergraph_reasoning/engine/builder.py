"""Turn extracted facts into hypergraph fragments.

Each fact (``source`` --relation--> ``target``) becomes one hyperedge whose
members are the union of its source and target entities. Fragments built
from separate text chunks are combined with Hypergraph.union, which is
order-independent, so chunks can be extracted concurrently.

Relation labels and provenance are recorded as EdgeMetadata next to the
graph. Edge IDs still follow the ``<relation>_chunk<id>_<index>`` pattern
so they are unique and readable, but nothing downstream needs to parse
them unless a caller loads a graph saved without metadata.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field

from hypergraph_reasoning.engine.core import Hypergraph, stable_sorted
from hypergraph_reasoning.models import EdgeMetadata, Fact, FactSet

logger = logging.getLogger(__name__)

__all__ = [
    "EdgeMetadata",
    "Fact",
    "FactSet",
    "IngestionResult",
    "build_hypergraph",
    "facts_from_response",
    "ingest_chunks",
    "make_edge_id",
    "merge_fragments",
    "normalize_relation",
    "relation_from_edge_id",
]

MetadataMap = dict[str, EdgeMetadata]
Fragment = tuple[Hypergraph, MetadataMap]
Extractor = Callable[[str, str], Awaitable[list[Fact]]]

_CHUNK_EDGE_ID = re.compile(r"^(.+?)_chunk[0-9A-Za-z]+_\d+$", re.IGNORECASE)
_INDEXED_EDGE_ID = re.compile(r"^(.+?)_\d+$")


def normalize_relation(relation: str) -> str:
    """Underscores become spaces, so ``is_a`` and ``is a`` label the same relation."""
    return relation.replace("_", " ").strip()


def make_edge_id(relation: str, index: int, chunk_id: str | None = None) -> str:
    if chunk_id is not None:
        return f"{relation}_chunk{chunk_id}_{index}"
    return f"{relation}_{index}"


def relation_from_edge_id(edge_id: str) -> str | None:
    """Recover a relation label from an edge ID produced by make_edge_id().

    Only used for graphs saved without metadata. Unrecognised IDs are
    returned whole; blank IDs give None.
    """
    cleaned = edge_id.strip()
    if not cleaned:
        return None
    match = _CHUNK_EDGE_ID.match(cleaned)
    if match:
        return match.group(1).strip()
    lowered = cleaned.lower()
    if "_chunk" in lowered:
        return cleaned[: lowered.index("_chunk")].strip() or None
    match = _INDEXED_EDGE_ID.match(cleaned)
    if match:
        return match.group(1).strip()
    return cleaned


def build_hypergraph(
    facts: Iterable[Fact | Mapping],
    chunk_id: str | None = None,
) -> Fragment:
    """Build one hypergraph fragment from a batch of facts.

    Args:
        facts: Facts (or dicts shaped like them) in extraction order
        chunk_id: Identifier of the text chunk the facts came from

    Returns:
        (hypergraph, metadata keyed by edge ID)
    """
    graph = Hypergraph()
    metadata: MetadataMap = {}
    for index, raw in enumerate(facts):
        fact = raw if isinstance(raw, Fact) else Fact.model_validate(raw)
        members = fact.nodes
        if not members:
            logger.debug("Skipping fact %d with no entities: %r", index, fact.relation)
            continue
        relation = normalize_relation(fact.relation)
        edge_id = make_edge_id(relation, index, chunk_id)
        graph.add_edge(edge_id, members)
        metadata[edge_id] = EdgeMetadata(
            edge=edge_id,
            relation=relation,
            source=fact.source,
            target=fact.target,
            chunk_id=chunk_id,
            nodes=sorted(members),
        )
    return graph, metadata


def merge_fragments(fragments: Iterable[Fragment]) -> Fragment:
    """Union any number of fragments into one graph.

    Fragments must come from distinct chunks: build each with its own
    ``chunk_id`` so their edge IDs differ.

    Raises:
        ValueError: If two fragments contain the same edge ID
    """
    graph = Hypergraph()
    metadata: MetadataMap = {}
    for fragment_graph, fragment_metadata in fragments:
        shared = graph.edges & fragment_graph.edges
        if shared:
            raise ValueError(
                f"Fragments share edge IDs {stable_sorted(shared)[:5]}; give each chunk a distinct chunk_id"
            )
        graph.union_update(fragment_graph)
        metadata.update(fragment_metadata)
    return graph, metadata


@dataclass
class IngestionResult:
    """Outcome of ingesting many chunks; failed chunks are reported, not fatal."""

    hypergraph: Hypergraph
    metadata: MetadataMap = field(default_factory=dict)
    failures: dict[str, BaseException] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return not self.failures


async def ingest_chunks(
    chunks: Mapping[str, str],
    extract: Extractor,
    max_concurrency: int = 4,
) -> IngestionResult:
    """Extract facts from text chunks concurrently and merge the fragments.

    Args:
        chunks: Chunk ID -> chunk text
        extract: Coroutine ``extract(chunk_id, text) -> list[Fact]``
        max_concurrency: Maximum number of extraction calls in flight

    Returns:
        IngestionResult with the merged graph and any per-chunk failures
    """
    if max_concurrency < 1:
        raise ValueError(f"max_concurrency must be >= 1, got {max_concurrency}")
    semaphore = asyncio.Semaphore(max_concurrency)

    async def run(chunk_id: str, text: str) -> Fragment:
        async with semaphore:
            facts = await extract(chunk_id, text)
        return build_hypergraph(facts, chunk_id=chunk_id)

    chunk_ids = list(chunks)
    outcomes = await asyncio.gather(
        *(run(chunk_id, chunks[chunk_id]) for chunk_id in chunk_ids),
        return_exceptions=True,
    )

    fragments: list[Fragment] = []
    failures: dict[str, BaseException] = {}
    for chunk_id, outcome in zip(chunk_ids, outcomes):
        if isinstance(outcome, BaseException):
            if not isinstance(outcome, Exception):
                raise outcome
            logger.warning("Skipping chunk %s: %s", chunk_id, outcome)
            failures[chunk_id] = outcome
        else:
            fragments.append(outcome)

    graph, metadata = merge_fragments(fragments)
    logger.info(
        "Ingested %d/%d chunks into %d edges",
        len(fragments),
        len(chunk_ids),
        graph.edge_count,
    )
    return IngestionResult(hypergraph=graph, metadata=metadata, failures=failures)


def facts_from_response(response: FactSet | Mapping) -> list[Fact]:
    """Facts from an extraction response (``{"events": [...]}``)."""
    fact_set = response if isinstance(response, FactSet) else FactSet.model_validate(response)
    return list(fact_set.events)
