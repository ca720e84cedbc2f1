"""hypergraph_reasoning: hypergraph knowledge bases for graph-based retrieval."""

__version__ = "0.1.0"

from hypergraph_reasoning.config import Settings
from hypergraph_reasoning.engine import (
    Hypergraph,
    HypergraphSimplifier,
    NodeEmbeddings,
    SimplificationResult,
)
from hypergraph_reasoning.models import (
    EdgeMetadata,
    Fact,
    HypergraphStats,
    MergeRecord,
    NodeMatch,
    RAGContext,
    RAGResponse,
)
from hypergraph_reasoning.rag import GraphRAGService

__all__ = [
    "EdgeMetadata",
    "Fact",
    "GraphRAGService",
    "Hypergraph",
    "HypergraphSimplifier",
    "HypergraphStats",
    "MergeRecord",
    "NodeEmbeddings",
    "NodeMatch",
    "RAGContext",
    "RAGResponse",
    "Settings",
    "SimplificationResult",
    "__version__",
]
