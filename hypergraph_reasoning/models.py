"""Pydantic models for the hypergraph_reasoning public API.

Records that cross a boundary (files, LLM responses, CLI/MCP output, audit
trails) are validated here. The engine's own value types stay as plain
classes and dataclasses in ``engine``.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class HypergraphStats(BaseModel):
    """Summary counts for a hypergraph.

    Reports node and edge totals together with connectivity and edge-size
    figures used by `hgr info` and the MCP stats tool.
    """

    node_count: int
    edge_count: int
    component_count: int = 0
    largest_component_size: int = 0
    average_edge_size: float = 0.0
    max_degree: int = 0


class MergeRecord(BaseModel):
    """Audit entry for one node merge performed by the simplifier."""

    model_config = ConfigDict(frozen=True)

    kept_node: str
    removed_node: str
    similarity: float
    kept_node_degree: int = Field(ge=0)
    removed_node_degree: int = Field(ge=0)

    def __str__(self) -> str:
        return (
            f"Merged '{self.removed_node}' into '{self.kept_node}' "
            f"(similarity: {self.similarity:.3f})"
        )


class MatchKind(str, Enum):
    """How a keyword was resolved to a node."""

    EXACT = "exact"
    SUBSTRING = "substring"
    EMBEDDING = "embedding"


class NodeMatch(BaseModel):
    """A keyword resolved to a hypergraph node with a score in [0, 1]."""

    model_config = ConfigDict(frozen=True)

    node: str
    keyword: str
    similarity: float
    match_type: MatchKind = MatchKind.EMBEDDING


class Fact(BaseModel):
    """One extracted relationship: ``source`` --relation--> ``target``.

    Extraction models sometimes return a bare string instead of a list for
    either side, so single strings are accepted and wrapped.
    """

    source: list[str] = Field(default_factory=list)
    relation: str
    target: list[str] = Field(default_factory=list)

    @field_validator("source", "target", mode="before")
    @classmethod
    def _wrap_single_name(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [value]
        return value

    @field_validator("source", "target", mode="after")
    @classmethod
    def _strip_names(cls, names: list[str]) -> list[str]:
        return [name.strip() for name in names if name.strip()]

    @property
    def nodes(self) -> set[str]:
        """All entities mentioned by the fact."""
        return set(self.source) | set(self.target)


class FactSet(BaseModel):
    """The JSON object returned by an extraction call: ``{"events": [...]}``."""

    events: list[Fact] = Field(default_factory=list)


class EdgeMetadata(BaseModel):
    """Relation label and provenance for one hyperedge.

    Kept alongside the hypergraph rather than encoded in the edge ID, so
    context sentences never depend on parsing identifiers.
    """

    edge: str
    relation: str
    source: list[str] = Field(default_factory=list)
    target: list[str] = Field(default_factory=list)
    chunk_id: str | None = None
    nodes: list[str] = Field(default_factory=list)

    def sentence(self) -> str:
        """Render as ``"<sources> <relation> <targets>."``."""
        parts = [", ".join(self.source), self.relation, ", ".join(self.target)]
        return " ".join(part for part in parts if part) + "."


class RAGContext(BaseModel):
    """Everything retrieval produced for one query.

    ``formatted_context`` is the text handed to the answering model;
    the other fields expose the intermediate steps for inspection.
    """

    query: str
    keywords: list[str] = Field(default_factory=list)
    matched_nodes: list[NodeMatch] = Field(default_factory=list)
    paths: list[list[str]] = Field(default_factory=list)
    context_sentences: list[str] = Field(default_factory=list)
    formatted_context: str = ""
    omitted_sentences: int = 0
    used_fallback: bool = False

    @classmethod
    def empty(cls, query: str, keywords: list[str] | None = None) -> RAGContext:
        return cls(query=query, keywords=keywords or [])

    @property
    def has_context(self) -> bool:
        return bool(self.context_sentences)

    @property
    def matched_node_count(self) -> int:
        return len(self.matched_nodes)

    @property
    def truncated(self) -> bool:
        return self.omitted_sentences > 0


class RAGResponse(BaseModel):
    """An answer together with the context it was generated from."""

    answer: str
    context: RAGContext

    @property
    def had_context(self) -> bool:
        return self.context.has_context


class KeywordsResponse(BaseModel):
    """Structured output of the keyword extraction prompt."""

    keywords: list[str] = Field(default_factory=list)
