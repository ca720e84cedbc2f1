"""Tests for building hypergraphs from extracted facts."""

import asyncio

import pytest
from pydantic import ValidationError

from hypergraph_reasoning.engine.builder import (
    build_hypergraph,
    facts_from_response,
    ingest_chunks,
    make_edge_id,
    merge_fragments,
    normalize_relation,
    relation_from_edge_id,
)
from hypergraph_reasoning.engine.core import Hypergraph
from hypergraph_reasoning.models import Fact, FactSet


class TestFact:
    def test_string_is_wrapped(self):
        fact = Fact(source="graphene", relation="is a", target="2D material")
        assert fact.source == ["graphene"]
        assert fact.target == ["2D material"]

    def test_nodes_is_union(self):
        fact = Fact(source=["a", "b"], relation="r", target=["b", "c"])
        assert fact.nodes == {"a", "b", "c"}

    def test_blank_names_dropped(self):
        fact = Fact(source=[" a ", ""], relation="r", target=[])
        assert fact.source == ["a"]

    def test_relation_required(self):
        with pytest.raises(ValidationError):
            Fact(source=["a"], target=["b"])

    def test_fact_set_from_json(self):
        fs = FactSet.model_validate_json('{"events": [{"source": "a", "relation": "r", "target": ["b"]}]}')
        assert fs.events[0].nodes == {"a", "b"}


class TestEdgeIds:
    def test_normalize_relation(self):
        assert normalize_relation("is_a") == "is a"

    def test_make_edge_id(self):
        assert make_edge_id("is a", 3, "7") == "is a_chunk7_3"
        assert make_edge_id("is a", 3) == "is a_3"

    def test_relation_from_chunk_id(self):
        assert relation_from_edge_id("has property_chunkab12_4") == "has property"

    def test_relation_from_indexed_id(self):
        assert relation_from_edge_id("is a_3") == "is a"

    def test_relation_from_unrecognised_id(self):
        assert relation_from_edge_id("e1") == "e1"
        assert relation_from_edge_id("   ") is None


class TestBuildHypergraph:
    def test_one_edge_per_fact(self):
        facts = [
            Fact(source=["graphene"], relation="is_a", target=["2D material"]),
            Fact(source=["graphene"], relation="has property", target=["strength", "conductivity"]),
        ]
        graph, metadata = build_hypergraph(facts, chunk_id="c1")
        assert graph.edges == {"is a_chunkc1_0", "has property_chunkc1_1"}
        assert graph.nodes_in("has property_chunkc1_1") == {"graphene", "strength", "conductivity"}
        meta = metadata["is a_chunkc1_0"]
        assert meta.relation == "is a"
        assert meta.source == ["graphene"]
        assert meta.target == ["2D material"]
        assert meta.chunk_id == "c1"
        assert meta.nodes == ["2D material", "graphene"]

    def test_without_chunk_id(self):
        graph, _ = build_hypergraph([{"source": "a", "relation": "r", "target": "b"}])
        assert graph.edges == {"r_0"}

    def test_empty_facts_skipped(self):
        graph, metadata = build_hypergraph([Fact(relation="r")])
        assert graph.edge_count == 0
        assert metadata == {}

    def test_metadata_sentence(self):
        _, metadata = build_hypergraph([Fact(source=["a", "b"], relation="bind", target=["c"])])
        assert metadata["bind_0"].sentence() == "a, b bind c."

    def test_facts_from_response(self):
        facts = facts_from_response({"events": [{"source": "a", "relation": "r", "target": "b"}]})
        assert facts[0].relation == "r"


class TestMergeFragments:
    def test_merge_is_union(self):
        f1 = build_hypergraph([Fact(source="a", relation="r", target="b")], chunk_id="1")
        f2 = build_hypergraph([Fact(source="b", relation="r", target="c")], chunk_id="2")
        graph, metadata = merge_fragments([f1, f2])
        assert graph.edge_count == 2
        assert set(metadata) == graph.edges

    def test_merge_order_does_not_matter(self):
        f1 = build_hypergraph([Fact(source="a", relation="r", target="b")], chunk_id="1")
        f2 = build_hypergraph([Fact(source="b", relation="s", target="c")], chunk_id="2")
        assert merge_fragments([f1, f2])[0] == merge_fragments([f2, f1])[0]

    def test_colliding_edge_ids_rejected(self):
        f1 = build_hypergraph([Fact(source="cats", relation="eat", target="fish")])
        f2 = build_hypergraph([Fact(source="dogs", relation="eat", target="bones")])
        with pytest.raises(ValueError, match="distinct chunk_id"):
            merge_fragments([f1, f2])

    def test_zero_fragments(self):
        graph, metadata = merge_fragments([])
        assert graph == Hypergraph()
        assert metadata == {}


class TestIngestChunks:
    @pytest.mark.asyncio
    async def test_failed_chunk_does_not_abort(self):
        async def extract(chunk_id, text):
            await asyncio.sleep(0)
            if chunk_id == "bad":
                raise RuntimeError("model unavailable")
            return [Fact(source=text, relation="mentions", target="topic")]

        result = await ingest_chunks({"c1": "alpha", "bad": "x", "c2": "beta"}, extract)
        assert set(result.failures) == {"bad"}
        assert not result.succeeded
        assert result.hypergraph.nodes == {"alpha", "beta", "topic"}
        assert result.hypergraph.edges == {"mentions_chunkc1_0", "mentions_chunkc2_0"}

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self):
        running = 0
        peak = 0

        async def extract(chunk_id, text):
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1
            return [Fact(source=chunk_id, relation="r", target="hub")]

        chunks = {str(i): "" for i in range(8)}
        result = await ingest_chunks(chunks, extract, max_concurrency=2)
        assert peak <= 2
        assert result.succeeded
        assert result.hypergraph.degree("hub") == 8

    @pytest.mark.asyncio
    async def test_invalid_concurrency(self):
        async def extract(chunk_id, text):
            return []

        with pytest.raises(ValueError):
            await ingest_chunks({}, extract, max_concurrency=0)
