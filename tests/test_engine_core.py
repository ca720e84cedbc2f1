"""Tests for the core Hypergraph data structure and operations."""

import copy
import pickle
import threading

import pytest

from hypergraph_reasoning.engine.core import Hypergraph


class TestConstruction:
    """Tests for building hypergraphs."""

    def test_empty(self):
        h = Hypergraph()
        assert h.node_count == 0
        assert h.edge_count == 0
        assert h.nodes == frozenset()
        assert h.connected_components() == []

    def test_from_incidence_dict(self, sample_graph):
        assert sample_graph.edge_count == 4
        assert sample_graph.nodes == {"A", "B", "C", "D", "E", "X", "Y"}

    def test_empty_member_sets_are_not_stored(self):
        h = Hypergraph({"e1": ["A", "B"], "empty": []})
        assert not h.has_edge("empty")
        assert h.edge_count == 1

    def test_duplicate_members_collapse(self):
        h = Hypergraph({"e1": ["A", "A", "B"]})
        assert h.size("e1") == 2


class TestQueries:
    """Tests for read access."""

    def test_degree(self, sample_graph):
        assert sample_graph.degree("B") == 2
        assert sample_graph.degree("A") == 1
        assert sample_graph.degree("missing") == 0

    def test_neighbors(self, sample_graph):
        assert sample_graph.neighbors("A") == {"B", "C"}
        assert sample_graph.neighbors("D") == {"B", "C", "E"}

    def test_neighbors_excludes_self(self, sample_graph):
        assert "B" not in sample_graph.neighbors("B")

    def test_neighbors_unknown_node(self, sample_graph):
        assert sample_graph.neighbors("missing") == set()

    def test_nodes_in_and_size(self, sample_graph):
        assert sample_graph.nodes_in("e3") == {"D", "E"}
        assert sample_graph.size("e1") == 3
        assert sample_graph.nodes_in("missing") == frozenset()
        assert sample_graph.size("missing") == 0

    def test_edges_of(self, sample_graph):
        assert sample_graph.edges_of("C") == {"e1", "e2"}
        assert sample_graph.edges_of("missing") == frozenset()

    def test_contains_checks_nodes(self, sample_graph):
        assert "A" in sample_graph
        assert "e1" not in sample_graph
        assert len(sample_graph) == 4

    def test_edges_containing_any(self, sample_graph):
        assert sample_graph.edges_containing(["A", "E"]) == {"e1", "e3"}

    def test_edges_containing_all(self, sample_graph):
        assert sample_graph.edges_containing(["B", "C"], match_all=True) == {"e1", "e2"}
        assert sample_graph.edges_containing(["A", "D"], match_all=True) == set()

    def test_edges_containing_no_nodes(self, sample_graph):
        assert sample_graph.edges_containing([]) == set()

    def test_incidence_dict_is_read_only(self, sample_graph):
        with pytest.raises(TypeError):
            sample_graph.incidence_dict["e9"] = frozenset({"Z"})


class TestMutation:
    """Tests for in-place mutation and cache invalidation."""

    def test_add_edge_updates_adjacency(self, sample_graph):
        assert sample_graph.degree("A") == 1
        sample_graph.add_edge("e5", ["A", "E"])
        assert sample_graph.degree("A") == 2
        assert "E" in sample_graph.neighbors("A")

    def test_add_edge_replaces_membership(self, sample_graph):
        sample_graph.add_edge("e1", ["A", "Z"])
        assert sample_graph.nodes_in("e1") == {"A", "Z"}
        assert sample_graph.degree("B") == 1

    def test_add_empty_edge_removes_it(self, sample_graph):
        sample_graph.add_edge("e3", [])
        assert not sample_graph.has_edge("e3")
        assert not sample_graph.has_node("E")

    def test_remove_edge(self, sample_graph):
        removed = sample_graph.remove_edge("e4")
        assert removed == {"X", "Y"}
        assert not sample_graph.has_node("X")

    def test_remove_missing_edge(self, sample_graph):
        assert sample_graph.remove_edge("missing") is None

    def test_remove_node_drops_emptied_edges(self):
        h = Hypergraph({"e1": ["A"], "e2": ["A", "B"]})
        emptied = h.remove_node("A")
        assert emptied == 1
        assert not h.has_edge("e1")
        assert h.nodes_in("e2") == {"B"}
        assert not h.has_node("A")

    def test_remove_unknown_node(self, sample_graph):
        assert sample_graph.remove_node("missing") == 0
        assert sample_graph.edge_count == 4


class TestUnion:
    """Tests for union / union_update."""

    def test_disjoint_union(self):
        a = Hypergraph({"e1": ["A", "B"]})
        b = Hypergraph({"e2": ["C", "D"]})
        u = a.union(b)
        assert u.edges == {"e1", "e2"}
        assert a.edges == {"e1"}

    def test_shared_edge_ids_merge_members(self):
        a = Hypergraph({"e1": ["A", "B"]})
        b = Hypergraph({"e1": ["B", "C"]})
        assert a.union(b).nodes_in("e1") == {"A", "B", "C"}

    def test_idempotent(self, sample_graph):
        assert sample_graph.union(sample_graph) == sample_graph

    def test_commutative(self):
        a = Hypergraph({"e1": ["A", "B"], "e2": ["C", "D"]})
        b = Hypergraph({"e1": ["B", "Z"], "e3": ["D", "E"]})
        assert a.union(b) == b.union(a)

    def test_associative(self):
        a = Hypergraph({"e1": ["A", "B"]})
        b = Hypergraph({"e1": ["C"], "e2": ["C", "D"]})
        c = Hypergraph({"e2": ["E"], "e3": ["F", "G"]})
        assert a.union(b).union(c) == a.union(b.union(c))

    def test_union_update_in_place(self):
        a = Hypergraph({"e1": ["A", "B"]})
        a.union_update(Hypergraph({"e1": ["C"]}))
        assert a.nodes_in("e1") == {"A", "B", "C"}
        assert a.degree("C") == 1


class TestRestriction:
    """Tests for sub-hypergraph operations."""

    def test_restrict_to_nodes(self, sample_graph):
        r = sample_graph.restrict_to_nodes({"A", "B", "D"})
        assert r.nodes_in("e1") == {"A", "B"}
        assert r.nodes_in("e2") == {"B", "D"}
        assert r.nodes_in("e3") == {"D"}
        assert not r.has_edge("e4")

    def test_restrict_to_nodes_subset(self, sample_graph):
        keep = {"B", "E", "Q"}
        assert sample_graph.restrict_to_nodes(keep).nodes <= keep

    def test_restrict_to_edges(self, sample_graph):
        r = sample_graph.restrict_to_edges(["e3", "missing"])
        assert r.edges == {"e3"}
        assert r.nodes == {"D", "E"}

    def test_filter_edges(self, sample_graph):
        r = sample_graph.filter_edges(lambda edge, members: "D" in members)
        assert r.edges == {"e2", "e3"}

    def test_filter_edges_by_size(self, sample_graph):
        assert sample_graph.filter_edges_by_size(3).edges == {"e1", "e2"}

    def test_copy_is_independent(self, sample_graph):
        clone = sample_graph.copy()
        clone.add_edge("e9", ["P", "Q"])
        assert not sample_graph.has_edge("e9")
        assert clone != sample_graph


class TestConnectivity:
    """Tests for connected components."""

    def test_reference_example(self):
        h = Hypergraph({"e1": ["A", "B", "C"], "e2": ["B", "C", "D"]})
        assert h.degree("B") == 2
        assert h.neighbors("A") == {"B", "C"}
        assert h.connected_components() == [frozenset({"A", "B", "C", "D"})]
        assert h.is_connected

    def test_components_sorted_largest_first(self, sample_graph):
        components = sample_graph.connected_components()
        assert components == [frozenset({"A", "B", "C", "D", "E"}), frozenset({"X", "Y"})]

    def test_components_partition_nodes(self, sample_graph):
        components = sample_graph.connected_components()
        union = frozenset().union(*components)
        assert union == sample_graph.nodes
        assert sum(len(c) for c in components) == sample_graph.node_count

    def test_equal_sized_components_are_ordered(self):
        h = Hypergraph({"e1": ["Y", "Z"], "e2": ["A", "B"]})
        assert h.connected_components() == [frozenset({"A", "B"}), frozenset({"Y", "Z"})]

    def test_largest_component(self, sample_graph):
        assert sample_graph.largest_component() == {"A", "B", "C", "D", "E"}
        assert Hypergraph().largest_component() == frozenset()
        assert not sample_graph.is_connected

    def test_subhypergraph(self, sample_graph):
        sub = sample_graph.subhypergraph({"X", "Y"})
        assert sub.edges == {"e4"}

    def test_remove_small_components(self, sample_graph):
        pruned = sample_graph.remove_small_components(3)
        assert pruned.nodes == {"A", "B", "C", "D", "E"}
        assert not pruned.has_edge("e4")

    def test_remove_small_components_keep_singletons(self):
        h = Hypergraph({"e1": ["A", "B", "C"], "e2": ["S"], "e3": ["P", "Q"]})
        pruned = h.remove_small_components(3, keep_singletons=True)
        assert pruned.nodes == {"A", "B", "C", "S"}


class TestStats:
    def test_stats(self, sample_graph):
        s = sample_graph.stats()
        assert s.node_count == 7
        assert s.edge_count == 4
        assert s.component_count == 2
        assert s.largest_component_size == 5
        assert s.average_edge_size == pytest.approx(2.5)
        assert s.max_degree == 2

    def test_empty_stats(self):
        s = Hypergraph().stats()
        assert s.node_count == 0
        assert s.average_edge_size == 0.0

    def test_top_nodes_by_degree(self, sample_graph):
        assert sample_graph.top_nodes_by_degree(3) == [("B", 2), ("C", 2), ("D", 2)]


class TestSerialization:
    def test_to_dict_sorts_members(self):
        h = Hypergraph({"e2": ["C", "A"], "e1": ["B", "A"]})
        assert h.to_dict() == {"incidence_dict": {"e1": ["A", "B"], "e2": ["A", "C"]}}

    def test_dict_roundtrip(self, sample_graph):
        assert Hypergraph.from_dict(sample_graph.to_dict()) == sample_graph

    def test_to_hif_structure(self):
        hif = Hypergraph({"e1": ["A", "B"]}).to_hif()
        assert hif["network-type"] == "undirected"
        assert hif["incidences"] == [{"node": "A", "edge": "e1"}, {"node": "B", "edge": "e1"}]
        assert hif["nodes"] == [{"node": "A"}, {"node": "B"}]
        assert hif["edges"] == [{"edge": "e1"}]

    def test_from_hif_converts_ids_to_strings(self):
        h = Hypergraph.from_hif({"incidences": [{"node": 1, "edge": 10}, {"node": 2, "edge": 10}]})
        assert h.nodes_in("10") == {"1", "2"}

    def test_pickle_roundtrip(self, sample_graph):
        sample_graph.degree("A")  # populate the cache
        restored = pickle.loads(pickle.dumps(sample_graph))
        assert restored == sample_graph
        assert restored.degree("B") == 2

    def test_deepcopy(self, sample_graph):
        clone = copy.deepcopy(sample_graph)
        clone.remove_edge("e1")
        assert sample_graph.has_edge("e1")


class TestThreadSafety:
    def test_concurrent_add_edge(self):
        h = Hypergraph()

        def worker(offset):
            for i in range(100):
                h.add_edge(f"e{offset}_{i}", [f"n{offset}", f"m{i}"])
                h.degree(f"n{offset}")

        threads = [threading.Thread(target=worker, args=(t,)) for t in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert h.edge_count == 400
        assert all(h.degree(f"n{t}") == 100 for t in range(4))
