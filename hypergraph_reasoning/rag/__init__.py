"""Graph retrieval: keyword matching, path finding and context assembly."""

from hypergraph_reasoning.rag.context import ContextAssembler
from hypergraph_reasoning.rag.keywords import KeywordExtractor
from hypergraph_reasoning.rag.matcher import NodeMatcher
from hypergraph_reasoning.rag.paths import PathFinder
from hypergraph_reasoning.rag.service import GraphRAGService

__all__ = [
    "ContextAssembler",
    "GraphRAGService",
    "KeywordExtractor",
    "NodeMatcher",
    "PathFinder",
]
