from hypergraph_reasoning.engine.core import Hypergraph
from hypergraph_reasoning.engine.embeddings import NodeEmbeddings
from hypergraph_reasoning.engine.similarity import (
    SimilarPair,
    cosine_similarity,
    cosine_similarity_matrix,
    find_similar_pairs,
    top_k_similar,
)
from hypergraph_reasoning.engine.builder import (
    IngestionResult,
    build_hypergraph,
    ingest_chunks,
    merge_fragments,
)
from hypergraph_reasoning.engine.simplifier import HypergraphSimplifier, SimplificationResult
from hypergraph_reasoning.engine.persistence import (
    load_embeddings,
    load_hypergraph,
    load_metadata,
    save_embeddings,
    save_hypergraph,
    save_metadata,
)

__all__ = [
    "Hypergraph",
    "NodeEmbeddings",
    "SimilarPair",
    "cosine_similarity",
    "cosine_similarity_matrix",
    "find_similar_pairs",
    "top_k_similar",
    "IngestionResult",
    "build_hypergraph",
    "ingest_chunks",
    "merge_fragments",
    "HypergraphSimplifier",
    "SimplificationResult",
    "save_hypergraph",
    "load_hypergraph",
    "save_embeddings",
    "load_embeddings",
    "save_metadata",
    "load_metadata",
]
