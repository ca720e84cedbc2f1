"""GraphRAG retrieval orchestrator.

Pipeline for one question:

1. Keywords are extracted from the question.
2. Keywords are matched to hypergraph nodes.
3. Shortest paths are searched between the matched nodes.
4. If no path exists, up to a few incident edges per matched node are used
   instead, so a lone match still produces evidence.
5. The evidence is rendered as sentences and a bounded context block.

Capability failures (keyword generation, embedding) propagate as
CapabilityError subclasses. Finding nothing relevant is not an error: it
yields a RAGContext whose ``has_context`` is False.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence

from hypergraph_reasoning.config import Settings
from hypergraph_reasoning.engine.core import Hypergraph
from hypergraph_reasoning.engine.embeddings import NodeEmbeddings
from hypergraph_reasoning.llm.base import CapabilityError, Embedder, TextGenerator
from hypergraph_reasoning.models import EdgeMetadata, RAGContext, RAGResponse
from hypergraph_reasoning.rag import prompts
from hypergraph_reasoning.rag.context import ContextAssembler
from hypergraph_reasoning.rag.keywords import KEYWORD_TEMPERATURE, KeywordExtractor, simple_extract
from hypergraph_reasoning.rag.matcher import NodeMatcher, unique_nodes
from hypergraph_reasoning.rag.paths import PathFinder

logger = logging.getLogger(__name__)

ANSWER_TEMPERATURE = 0.7


class GraphRAGService:
    """Answers questions from a hypergraph knowledge base.

    The hypergraph, embeddings and metadata are treated as a read-only
    snapshot; hand each concurrent service its own copy if the graph is
    still being modified elsewhere.

    Args:
        hypergraph: Knowledge hypergraph
        embeddings: Node embeddings for keyword matching
        generator: Backend for keyword extraction and answers
        embedder: Backend for embedding keywords
        metadata: Edge ID -> EdgeMetadata used for relation labels
        chat_model: Model override passed to the generator
        max_context_tokens: Budget for the formatted context block
        direct_edges_per_node: Edges per node used when no path is found
        keyword_fallback: Use rule-based keywords if keyword generation fails
        legacy_edge_labels: Parse relation labels from edge IDs when an edge
                            has no metadata
        answer_temperature: Sampling temperature for answers
        keyword_temperature: Sampling temperature for keyword extraction
    """

    def __init__(
        self,
        hypergraph: Hypergraph,
        embeddings: NodeEmbeddings,
        generator: TextGenerator,
        embedder: Embedder,
        metadata: Mapping[str, EdgeMetadata] | None = None,
        chat_model: str | None = None,
        max_context_tokens: int = 2000,
        direct_edges_per_node: int = 5,
        keyword_fallback: bool = False,
        legacy_edge_labels: bool = False,
        answer_temperature: float = ANSWER_TEMPERATURE,
        keyword_temperature: float = KEYWORD_TEMPERATURE,
    ) -> None:
        self.hypergraph = hypergraph
        self.embeddings = embeddings
        self.generator = generator
        self.chat_model = chat_model
        self.max_context_tokens = max_context_tokens
        self.direct_edges_per_node = direct_edges_per_node
        self.keyword_fallback = keyword_fallback
        self.answer_temperature = answer_temperature

        self.keyword_extractor = KeywordExtractor(generator, model=chat_model, temperature=keyword_temperature)
        self.matcher = NodeMatcher(embeddings, embedder, nodes=hypergraph.nodes)
        self.path_finder = PathFinder(hypergraph)
        self.assembler = ContextAssembler(hypergraph, metadata, legacy_edge_labels=legacy_edge_labels)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        hypergraph: Hypergraph,
        embeddings: NodeEmbeddings,
        metadata: Mapping[str, EdgeMetadata] | None = None,
        **kwargs,
    ) -> GraphRAGService:
        """Build a service backed by OpenAI-compatible endpoints from ``settings``."""
        from hypergraph_reasoning.llm.openai_backend import OpenAIEmbedder, OpenAIGenerator

        return cls(
            hypergraph,
            embeddings,
            generator=OpenAIGenerator.from_settings(settings),
            embedder=OpenAIEmbedder.from_settings(settings),
            metadata=metadata,
            chat_model=settings.chat_model,
            max_context_tokens=settings.max_context_tokens,
            direct_edges_per_node=settings.direct_edges_per_node,
            answer_temperature=settings.answer_temperature,
            keyword_temperature=settings.keyword_temperature,
            **kwargs,
        )

    async def _keywords(self, query: str) -> list[str]:
        try:
            return await self.keyword_extractor.extract(query)
        except CapabilityError as exc:
            if not self.keyword_fallback:
                raise
            logger.warning("Keyword extraction failed (%s); using rule-based keywords", exc)
            return simple_extract(query)

    async def retrieve(
        self,
        query: str,
        top_k: int = 5,
        max_path_length: int = 4,
        threshold: float = 0.5,
    ) -> RAGContext:
        """Retrieve graph evidence for ``query``.

        Raises:
            CapabilityError: If keyword extraction or keyword embedding fails
        """
        keywords = await self._keywords(query)
        return await self.retrieve_for_keywords(query, keywords, top_k, max_path_length, threshold)

    async def retrieve_simple(
        self,
        query: str,
        top_k: int = 5,
        max_path_length: int = 4,
        threshold: float = 0.5,
    ) -> RAGContext:
        """retrieve() using rule-based keywords instead of the generator."""
        return await self.retrieve_for_keywords(query, simple_extract(query), top_k, max_path_length, threshold)

    async def retrieve_for_keywords(
        self,
        query: str,
        keywords: Sequence[str],
        top_k: int = 5,
        max_path_length: int = 4,
        threshold: float = 0.5,
    ) -> RAGContext:
        """Run the pipeline from caller-supplied keywords onward."""
        keywords = list(keywords)
        if not keywords:
            logger.info("No keywords for query %r", query)
            return RAGContext.empty(query)

        matches = await self.matcher.find_matching_nodes(keywords, top_k=top_k, threshold=threshold)
        if not matches:
            logger.info("No nodes matched keywords %s", keywords)
            return RAGContext.empty(query, keywords)

        matched = unique_nodes(matches)
        paths = self.path_finder.find_shortest_paths(matched, max_length=max_path_length)
        # Single-node paths carry no relationship
        evidence_paths = [path for path in paths if len(path) > 1]

        used_fallback = not evidence_paths
        if used_fallback:
            sentences = self.assembler.collect_direct_sentences(matched, self.direct_edges_per_node)
        else:
            sentences = self.assembler.collect_sentences(evidence_paths)

        included, omitted = self.assembler.fit_to_budget(sentences, self.max_context_tokens)
        context = RAGContext(
            query=query,
            keywords=keywords,
            matched_nodes=matches,
            paths=[[str(node) for node in path] for path in evidence_paths],
            context_sentences=sentences,
            formatted_context=self.assembler.format_context(sentences, self.max_context_tokens),
            omitted_sentences=omitted,
            used_fallback=used_fallback,
        )
        logger.info(
            "Retrieved %d sentences from %d matched nodes and %d paths%s",
            len(included),
            len(matched),
            len(evidence_paths),
            " (direct-edge fallback)" if used_fallback else "",
        )
        return context

    async def answer(self, question: str, context: RAGContext) -> RAGResponse:
        """Generate an answer for ``question`` from already-retrieved context."""
        text = await self.generator.generate(
            prompts.QUESTION_ANSWERING,
            prompts.answer_user_prompt(context.formatted_context, question),
            model=self.chat_model,
            temperature=self.answer_temperature,
        )
        return RAGResponse(answer=text, context=context)

    async def query(
        self,
        question: str,
        top_k: int = 5,
        max_path_length: int = 4,
        threshold: float = 0.5,
    ) -> RAGResponse:
        """Retrieve context for ``question`` and answer it.

        Raises:
            CapabilityError: If retrieval or answer generation fails
        """
        context = await self.retrieve(question, top_k, max_path_length, threshold)
        return await self.answer(question, context)
