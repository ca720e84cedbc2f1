"""Tests for keyword-to-node matching."""

import pytest

from conftest import FakeEmbedder
from hypergraph_reasoning.engine.embeddings import NodeEmbeddings
from hypergraph_reasoning.llm.base import Embedder, EmbeddingError, KeywordMatchError
from hypergraph_reasoning.models import MatchKind, NodeMatch
from hypergraph_reasoning.rag.matcher import NodeMatcher, deduplicate_matches, unique_nodes


class BrokenEmbedder(Embedder):
    async def embed(self, texts):
        raise RuntimeError("connection reset")


@pytest.fixture()
def matcher(knowledge_embeddings):
    embedder = FakeEmbedder(
        {
            "carbon sheet": [1.0, 0.0, 0.0, 0.0],
            "bendable devices": [0.0, 0.0, 1.0, 0.0],
        }
    )
    return NodeMatcher(knowledge_embeddings, embedder)


class TestNameMatching:
    def test_exact_match_is_case_insensitive(self, matcher):
        matches = matcher.find_exact_matches("Graphene")
        assert matches == [
            NodeMatch(node="graphene", keyword="Graphene", similarity=1.0, match_type=MatchKind.EXACT)
        ]

    def test_substring_match_has_floor_score(self, matcher):
        matches = matcher.find_exact_matches("conductivity")
        assert [m.node for m in matches] == ["high conductivity"]
        assert matches[0].similarity == pytest.approx(0.8)
        assert matches[0].match_type == MatchKind.SUBSTRING

    def test_substring_score_uses_length_ratio(self):
        matcher = NodeMatcher(NodeEmbeddings(), FakeEmbedder(), nodes=["silk fibroin"])
        matches = matcher.find_exact_matches("silk fibroins")
        assert matches[0].similarity == pytest.approx(12 / 13)

    def test_exact_hit_suppresses_substrings(self):
        matcher = NodeMatcher(NodeEmbeddings(), FakeEmbedder(), nodes=["silk", "spider silk"])
        assert [m.node for m in matcher.find_exact_matches("silk")] == ["silk"]

    def test_blank_keyword(self, matcher):
        assert matcher.find_exact_matches("   ") == []


class TestEmbeddingMatching:
    @pytest.mark.asyncio
    async def test_name_match_skips_embedder(self, matcher):
        await matcher.find_matches("graphene")
        assert matcher.embedder.calls == []

    @pytest.mark.asyncio
    async def test_embedding_fallback(self, matcher):
        matches = await matcher.find_matches("carbon sheet")
        assert [m.node for m in matches] == ["graphene", "2D material"]
        assert matches[0].similarity == pytest.approx(1.0)
        assert matches[1].similarity == pytest.approx(0.8)
        assert all(m.match_type == MatchKind.EMBEDDING for m in matches)

    @pytest.mark.asyncio
    async def test_threshold_and_top_k(self, matcher):
        assert [m.node for m in await matcher.find_matches("carbon sheet", threshold=0.9)] == ["graphene"]
        assert len(await matcher.find_matches("bendable devices", top_k=1)) == 1

    @pytest.mark.asyncio
    async def test_no_embeddings_means_no_matches(self):
        matcher = NodeMatcher(NodeEmbeddings(), FakeEmbedder(default=[1.0]))
        assert await matcher.find_matches("anything") == []

    @pytest.mark.asyncio
    async def test_backend_errors_become_embedding_errors(self, knowledge_embeddings):
        matcher = NodeMatcher(knowledge_embeddings, BrokenEmbedder())
        with pytest.raises(EmbeddingError, match="connection reset"):
            await matcher.find_matches("carbon sheet")


class TestMatchingNodes:
    @pytest.mark.asyncio
    async def test_deduplicates_across_keywords(self, matcher):
        matches = await matcher.find_matching_nodes(["graphene", "carbon sheet"])
        assert [m.node for m in matches] == ["graphene", "2D material"]
        assert matches[0].match_type == MatchKind.EXACT

    @pytest.mark.asyncio
    async def test_blank_and_repeated_keywords(self, matcher):
        assert await matcher.find_matching_nodes(["", "  "]) == []
        matches = await matcher.find_matching_nodes(["silk", "silk"])
        assert [m.node for m in matches] == ["silk"]

    @pytest.mark.asyncio
    async def test_failure_is_reported_with_partial_matches(self, matcher):
        with pytest.raises(KeywordMatchError) as excinfo:
            await matcher.find_matching_nodes(["graphene", "unknown thing"])
        error = excinfo.value
        assert set(error.failures) == {"unknown thing"}
        assert [m.node for m in error.partial_matches] == ["graphene"]
        assert isinstance(error, EmbeddingError)

    @pytest.mark.asyncio
    async def test_find_best_matches(self, matcher):
        best = await matcher.find_best_matches(["carbon sheet", "silk"])
        assert best == {"carbon sheet": "graphene", "silk": "silk"}


    @pytest.mark.asyncio
    async def test_find_best_matches_isolates_failures(self, matcher):
        with pytest.raises(KeywordMatchError) as excinfo:
            await matcher.find_best_matches(["silk", "unknown thing", "carbon sheet"])
        assert set(excinfo.value.failures) == {"unknown thing"}
        assert excinfo.value.best_matches == {"silk": "silk", "carbon sheet": "graphene"}


class TestHelpers:
    def test_deduplicate_keeps_best_score(self):
        matches = [
            NodeMatch(node="b", keyword="x", similarity=0.6),
            NodeMatch(node="a", keyword="y", similarity=0.6),
            NodeMatch(node="b", keyword="z", similarity=0.9),
        ]
        result = deduplicate_matches(matches)
        assert [(m.node, m.keyword) for m in result] == [("b", "z"), ("a", "y")]

    def test_unique_nodes(self):
        matches = [
            NodeMatch(node="b", keyword="x", similarity=0.5),
            NodeMatch(node="a", keyword="x", similarity=0.5),
        ]
        assert unique_nodes(matches) == ["a", "b"]
