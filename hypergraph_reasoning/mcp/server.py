"""hypergraph_reasoning MCP server: exposes read-only graph retrieval tools to AI agents."""

from __future__ import annotations

import functools
import inspect
import logging
import os
import sys
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

from mcp.server.fastmcp import FastMCP

from hypergraph_reasoning.config import Settings
from hypergraph_reasoning.engine.core import Hypergraph, stable_sorted
from hypergraph_reasoning.engine.embeddings import NodeEmbeddings
from hypergraph_reasoning.engine.persistence import load_embeddings, load_hypergraph, load_metadata
from hypergraph_reasoning.models import EdgeMetadata
from hypergraph_reasoning.rag.context import ContextAssembler
from hypergraph_reasoning.rag.paths import PathFinder
from hypergraph_reasoning.rag.service import GraphRAGService

# stdout carries JSON-RPC, so all logging goes to stderr
logging.basicConfig(stream=sys.stderr, level=logging.INFO, format="%(levelname)s: %(message)s")
logger = logging.getLogger("hypergraph_reasoning.mcp")

# ---------------------------------------------------------------------------
# Knowledge-base snapshot, loaded once per stdio session
# ---------------------------------------------------------------------------


@dataclass
class Snapshot:
    hypergraph: Hypergraph
    embeddings: NodeEmbeddings = field(default_factory=NodeEmbeddings)
    metadata: dict[str, EdgeMetadata] = field(default_factory=dict)
    service: GraphRAGService | None = None


_SNAPSHOT: Snapshot | None = None


def load_snapshot(settings: Settings | None = None) -> Snapshot:
    """Load the graph, embeddings and metadata named by HGR_*_PATH variables."""
    graph_path = os.environ.get("HGR_GRAPH_PATH", "hypergraph.json")
    embeddings_path = os.environ.get("HGR_EMBEDDINGS_PATH")
    metadata_path = os.environ.get("HGR_METADATA_PATH")

    logger.info("Loading hypergraph: %s", graph_path)
    hypergraph = load_hypergraph(graph_path)
    embeddings = load_embeddings(embeddings_path) if embeddings_path else NodeEmbeddings()
    metadata = load_metadata(metadata_path) if metadata_path else {}

    service = None
    if embeddings_path:
        service = GraphRAGService.from_settings(
            settings or Settings.from_env(),
            hypergraph,
            embeddings,
            metadata=metadata or None,
            keyword_fallback=True,
            legacy_edge_labels=not metadata,
        )
    return Snapshot(hypergraph, embeddings, metadata, service)


@asynccontextmanager
async def app_lifespan(server: FastMCP) -> AsyncIterator[dict]:
    global _SNAPSHOT
    _SNAPSHOT = load_snapshot()
    try:
        yield {}
    finally:
        _SNAPSHOT = None


mcp = FastMCP(
    "hypergraph-reasoning",
    instructions=(
        "A read-only hypergraph knowledge base. "
        "Key behaviors: each hyperedge is one extracted relationship linking 2+ entity nodes. "
        "Node IDs are entity names exactly as stored; use retrieve_context to resolve "
        "free-text terms to nodes. Paths are sequences of nodes where consecutive "
        "nodes share at least one hyperedge."
    ),
    lifespan=app_lifespan,
)


def _get_snapshot() -> Snapshot:
    if _SNAPSHOT is None:
        raise RuntimeError("Knowledge base is not loaded")
    return _SNAPSHOT


def _error(exc: Exception, name: str) -> dict:
    logger.exception("Tool %s failed", name)
    return {"error": True, "message": f"{type(exc).__name__}: {exc}"}


def _safe_tool(fn: Callable[..., Any]) -> Callable[..., Any]:
    if inspect.iscoroutinefunction(fn):

        @functools.wraps(fn)
        async def async_wrapper(*args: Any, **kwargs: Any) -> dict:
            try:
                return await fn(*args, **kwargs)
            except Exception as exc:
                return _error(exc, fn.__name__)

        return async_wrapper

    @functools.wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> dict:
        try:
            return fn(*args, **kwargs)
        except Exception as exc:
            return _error(exc, fn.__name__)

    return wrapper


# ===================================================================
# Graph tools
# ===================================================================


@mcp.tool()
@_safe_tool
def graph_stats() -> dict:
    """Summary statistics: node/edge counts, components, degrees."""
    snapshot = _get_snapshot()
    stats = snapshot.hypergraph.stats().model_dump()
    stats["embedding_count"] = len(snapshot.embeddings)
    stats["has_metadata"] = bool(snapshot.metadata)
    return stats


@mcp.tool()
@_safe_tool
def get_neighbors(node: str, limit: int = 50) -> dict:
    """Nodes sharing a hyperedge with a node, with the connecting edges.

    Args:
        node: Node ID exactly as stored.
        limit: Maximum number of neighbors to return.
    """
    graph = _get_snapshot().hypergraph
    if not graph.has_node(node):
        return {"found": False, "node": node}
    neighbors = stable_sorted(graph.neighbors(node))
    return {
        "found": True,
        "node": node,
        "degree": graph.degree(node),
        "count": len(neighbors),
        "neighbors": neighbors[:limit],
        "edges": stable_sorted(graph.edges_of(node)),
    }


@mcp.tool()
@_safe_tool
def find_path(source: str, target: str, max_length: int = 4) -> dict:
    """Shortest path between two nodes, with evidence sentences for each hop.

    Args:
        source: Starting node ID.
        target: Destination node ID.
        max_length: Maximum number of nodes in the path, endpoints included.
    """
    snapshot = _get_snapshot()
    finder = PathFinder(snapshot.hypergraph)
    path = finder.find_path(source, target, max_length=max_length)
    if path is None:
        return {"found": False, "source": source, "target": target}
    assembler = ContextAssembler(
        snapshot.hypergraph, snapshot.metadata, legacy_edge_labels=not snapshot.metadata
    )
    return {
        "found": True,
        "path": path,
        "edges": finder.edges_along_path(path),
        "sentences": assembler.collect_sentences([path]),
    }


@mcp.tool()
@_safe_tool
def connected_components(limit: int = 10, max_members: int = 25) -> dict:
    """Connected components, largest first.

    Args:
        limit: Maximum number of components to return.
        max_members: Maximum number of member IDs listed per component.
    """
    components = _get_snapshot().hypergraph.connected_components()
    return {
        "count": len(components),
        "components": [
            {"size": len(c), "members": stable_sorted(c)[:max_members]}
            for c in components[:limit]
        ],
    }


@mcp.tool()
@_safe_tool
async def retrieve_context(
    query: str,
    keywords: list[str] | None = None,
    top_k: int = 5,
    max_path_length: int = 4,
    threshold: float = 0.5,
) -> dict:
    """Retrieve graph evidence relevant to a question.

    Args:
        query: The natural-language question.
        keywords: Search terms; extracted from the query when omitted.
        top_k: Embedding matches per keyword.
        max_path_length: Maximum nodes per connecting path.
        threshold: Minimum similarity for embedding matches.
    """
    service = _get_snapshot().service
    if service is None:
        raise RuntimeError("Retrieval needs embeddings; set HGR_EMBEDDINGS_PATH")
    if keywords:
        context = await service.retrieve_for_keywords(query, keywords, top_k, max_path_length, threshold)
    else:
        context = await service.retrieve(query, top_k, max_path_length, threshold)
    result = context.model_dump(mode="json")
    result["has_context"] = context.has_context
    return result


# ===================================================================
# Resources
# ===================================================================


@mcp.resource("hgr://stats")
def stats_resource() -> str:
    """Live knowledge-base statistics."""
    snapshot = _get_snapshot()
    stats = snapshot.hypergraph.stats()
    lines = [
        "# Hypergraph Statistics\n",
        f"Nodes: {stats.node_count}",
        f"Edges: {stats.edge_count}",
        f"Components: {stats.component_count} (largest: {stats.largest_component_size})",
        f"Average edge size: {stats.average_edge_size:.2f}",
        f"Embeddings: {len(snapshot.embeddings)}",
    ]
    top = snapshot.hypergraph.top_nodes_by_degree(10)
    if top:
        lines.append("\n## Top nodes by degree")
        lines.extend(f"- {node}: {degree}" for node, degree in top)
    return "\n".join(lines)


def run_server() -> None:
    """Run the MCP server over stdio."""
    mcp.run(transport="stdio")
