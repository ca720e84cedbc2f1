"""Core hypergraph data structure and set-algebraic operations.

The incidence dictionary (edge id -> frozenset of node ids) is the single
source of truth. The node -> edges adjacency view is a derived index that is
built lazily and thrown away on every structural mutation.

Value semantics:
    Transformations (union, restriction, filtering) return new Hypergraph
    instances. Only add_edge, remove_edge, remove_node and union_update
    mutate in place; these are guarded by an internal RLock so a shared
    instance never exposes a half-built adjacency index, but callers should
    still hand each concurrent reader its own snapshot (see copy()).

Node and edge identifiers can be any hashable value; strings are the common
case and the only type the JSON formats round-trip.

References:
- HIF: Hypergraph Interchange Format (Coll et al., 2025)
- HyperNetX incidence-dict representation
"""

import threading
from collections import deque
from collections.abc import Callable, Hashable, Iterable, Iterator, Mapping
from types import MappingProxyType
from typing import Any

from hypergraph_reasoning.models import HypergraphStats


def stable_sorted(items: Iterable[Any]) -> list[Any]:
    """Sort identifiers deterministically, even when their types are not orderable."""
    return sorted(items, key=lambda item: (type(item).__name__, str(item)))


class Hypergraph:
    """A hypergraph whose edges connect arbitrary-size sets of nodes.

    Invariants:
    - Every stored edge has at least one member.
    - A node exists iff it belongs to at least one edge.
    - Queries about unknown nodes or edges return empty/zero results.

    Example:
        >>> h = Hypergraph({"e1": ["A", "B", "C"], "e2": ["B", "C", "D"]})
        >>> h.degree("B")
        2
        >>> sorted(h.neighbors("A"))
        ['B', 'C']
    """

    def __init__(self, incidence_dict: Mapping[Hashable, Iterable[Hashable]] | None = None) -> None:
        self._incidence: dict[Hashable, frozenset[Hashable]] = {}
        if incidence_dict:
            for edge_id, members in incidence_dict.items():
                member_set = frozenset(members)
                if member_set:
                    self._incidence[edge_id] = member_set
        self._adjacency: dict[Hashable, frozenset[Hashable]] | None = None
        self._lock = threading.RLock()

    def __getstate__(self) -> dict[str, Any]:
        """Support for pickle/deepcopy - exclude the lock and the derived index."""
        state = self.__dict__.copy()
        del state["_lock"]
        state["_adjacency"] = None
        return state

    def __setstate__(self, state: dict[str, Any]) -> None:
        """Support for pickle/deepcopy - recreate the lock."""
        self.__dict__.update(state)
        self._lock = threading.RLock()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Hypergraph):
            return NotImplemented
        return self._incidence == other._incidence

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"Hypergraph(nodes={self.node_count}, edges={self.edge_count})"

    def __len__(self) -> int:
        return len(self._incidence)

    def __contains__(self, node: object) -> bool:
        return node in self.adjacency_dict

    def __iter__(self) -> Iterator[Hashable]:
        return iter(self._incidence)

    # ========== Read Access ==========

    @property
    def incidence_dict(self) -> Mapping[Hashable, frozenset[Hashable]]:
        """Read-only view of the edge -> members mapping."""
        return MappingProxyType(self._incidence)

    @property
    def adjacency_dict(self) -> Mapping[Hashable, frozenset[Hashable]]:
        """Node -> incident edges, computed on first access and cached."""
        with self._lock:
            if self._adjacency is None:
                adjacency: dict[Hashable, set[Hashable]] = {}
                for edge_id, members in self._incidence.items():
                    for node in members:
                        adjacency.setdefault(node, set()).add(edge_id)
                self._adjacency = {node: frozenset(edges) for node, edges in adjacency.items()}
            return MappingProxyType(self._adjacency)

    @property
    def nodes(self) -> frozenset[Hashable]:
        """All nodes in the hypergraph."""
        return frozenset(self.adjacency_dict)

    @property
    def edges(self) -> frozenset[Hashable]:
        """All edge IDs in the hypergraph."""
        return frozenset(self._incidence)

    @property
    def node_count(self) -> int:
        return len(self.adjacency_dict)

    @property
    def edge_count(self) -> int:
        return len(self._incidence)

    def has_node(self, node: Hashable) -> bool:
        return node in self.adjacency_dict

    def has_edge(self, edge: Hashable) -> bool:
        return edge in self._incidence

    def nodes_in(self, edge: Hashable) -> frozenset[Hashable]:
        """Members of an edge, or an empty set if the edge does not exist."""
        return self._incidence.get(edge, frozenset())

    def size(self, edge: Hashable) -> int:
        """Cardinality of an edge, or 0 if the edge does not exist."""
        return len(self._incidence.get(edge, ()))

    def edges_of(self, node: Hashable) -> frozenset[Hashable]:
        """Edges containing a node, or an empty set for unknown nodes."""
        return self.adjacency_dict.get(node, frozenset())

    def degree(self, node: Hashable) -> int:
        """Number of edges containing a node; 0 for unknown nodes."""
        return len(self.adjacency_dict.get(node, ()))

    def neighbors(self, node: Hashable) -> set[Hashable]:
        """All nodes sharing at least one edge with ``node`` (excluding itself)."""
        result: set[Hashable] = set()
        for edge_id in self.adjacency_dict.get(node, ()):
            result.update(self._incidence[edge_id])
        result.discard(node)
        return result

    def edges_containing(
        self,
        nodes: Iterable[Hashable],
        match_all: bool = False,
    ) -> set[Hashable]:
        """Find edges containing the given nodes.

        Args:
            nodes: Node IDs to search for
            match_all: If True, edge must contain ALL nodes (intersection)
                      If False, edge must contain ANY node (union)

        Returns:
            Set of matching edge IDs
        """
        adjacency = self.adjacency_dict
        edge_sets = [adjacency.get(node, frozenset()) for node in nodes]
        if not edge_sets:
            return set()
        if match_all:
            return set(frozenset.intersection(*edge_sets))
        return set().union(*edge_sets)

    # ========== Mutation ==========

    def add_edge(self, edge: Hashable, nodes: Iterable[Hashable]) -> None:
        """Insert or replace an edge.

        The member set replaces any existing membership entirely; use
        union_update() to accumulate instead. An empty member set removes
        the edge, since empty edges are never stored.
        """
        member_set = frozenset(nodes)
        with self._lock:
            if member_set:
                self._incidence[edge] = member_set
            else:
                self._incidence.pop(edge, None)
            self._adjacency = None

    def remove_edge(self, edge: Hashable) -> frozenset[Hashable] | None:
        """Remove an edge. Returns its former members, or None if it did not exist."""
        with self._lock:
            removed = self._incidence.pop(edge, None)
            if removed is not None:
                self._adjacency = None
            return removed

    def remove_node(self, node: Hashable) -> int:
        """Remove a node from every edge containing it.

        Edges left without members are deleted.

        Returns:
            Number of edges that were deleted because they became empty
        """
        with self._lock:
            incident = self.adjacency_dict.get(node, frozenset())
            emptied = 0
            for edge_id in incident:
                remaining = self._incidence[edge_id] - {node}
                if remaining:
                    self._incidence[edge_id] = remaining
                else:
                    del self._incidence[edge_id]
                    emptied += 1
            if incident:
                self._adjacency = None
            return emptied

    def union_update(self, other: "Hypergraph") -> None:
        """Merge another hypergraph into this one in place (see union())."""
        with self._lock:
            for edge_id, members in other._incidence.items():
                existing = self._incidence.get(edge_id)
                self._incidence[edge_id] = members if existing is None else existing | members
            self._adjacency = None

    # ========== Set Algebra ==========

    def union(self, other: "Hypergraph") -> "Hypergraph":
        """Combine two hypergraphs keyed by edge ID.

        Edges present in both get the union of their member sets, so the
        operation is associative, commutative and idempotent.
        """
        combined = self.copy()
        combined.union_update(other)
        return combined

    def copy(self) -> "Hypergraph":
        """Shallow copy; member sets are immutable so nothing is shared mutably."""
        clone = Hypergraph()
        clone._incidence = dict(self._incidence)
        return clone

    def restrict_to_nodes(self, nodes: Iterable[Hashable]) -> "Hypergraph":
        """Sub-hypergraph induced by a node set.

        Edges intersecting ``nodes`` are kept, restricted to the intersection.
        """
        keep = frozenset(nodes)
        restricted = Hypergraph()
        for edge_id, members in self._incidence.items():
            intersection = members & keep
            if intersection:
                restricted._incidence[edge_id] = intersection
        return restricted

    def restrict_to_edges(self, edges: Iterable[Hashable]) -> "Hypergraph":
        """Sub-hypergraph containing only the given (existing) edges."""
        restricted = Hypergraph()
        for edge_id in edges:
            members = self._incidence.get(edge_id)
            if members is not None:
                restricted._incidence[edge_id] = members
        return restricted

    def filter_edges(
        self,
        predicate: Callable[[Hashable, frozenset[Hashable]], bool],
    ) -> "Hypergraph":
        """Keep the edges for which ``predicate(edge_id, members)`` is true."""
        filtered = Hypergraph()
        for edge_id, members in self._incidence.items():
            if predicate(edge_id, members):
                filtered._incidence[edge_id] = members
        return filtered

    def filter_edges_by_size(self, min_size: int) -> "Hypergraph":
        """Keep edges with at least ``min_size`` members."""
        return self.filter_edges(lambda _edge, members: len(members) >= min_size)

    # ========== Connectivity ==========

    def connected_components(self) -> list[frozenset[Hashable]]:
        """Connected components under shared-edge adjacency.

        Returns:
            Components sorted largest first; equal sizes are ordered by
            their smallest member so the result is reproducible.
        """
        adjacency = self.adjacency_dict
        visited: set[Hashable] = set()
        components: list[frozenset[Hashable]] = []

        for start in stable_sorted(adjacency):
            if start in visited:
                continue
            component: set[Hashable] = {start}
            visited.add(start)
            queue: deque[Hashable] = deque([start])
            while queue:
                node = queue.popleft()
                for edge_id in adjacency[node]:
                    for neighbor in self._incidence[edge_id]:
                        if neighbor not in visited:
                            visited.add(neighbor)
                            component.add(neighbor)
                            queue.append(neighbor)
            components.append(frozenset(component))

        # Python's sort is stable, and components were discovered in sorted start order
        return sorted(components, key=len, reverse=True)

    def largest_component(self) -> frozenset[Hashable]:
        """Nodes of the largest connected component (empty for an empty graph)."""
        components = self.connected_components()
        return components[0] if components else frozenset()

    @property
    def is_connected(self) -> bool:
        return len(self.connected_components()) <= 1

    def subhypergraph(self, component: Iterable[Hashable]) -> "Hypergraph":
        """Sub-hypergraph for a connected component."""
        return self.restrict_to_nodes(component)

    def remove_small_components(
        self,
        size_threshold: int,
        keep_singletons: bool = False,
    ) -> "Hypergraph":
        """Drop nodes belonging to components smaller than ``size_threshold``.

        Args:
            size_threshold: Components with fewer nodes are removed
            keep_singletons: If True, single-node components survive anyway

        Returns:
            New hypergraph restricted to the surviving nodes
        """
        if size_threshold <= 0:
            return self.copy()
        keep: set[Hashable] = set()
        for component in self.connected_components():
            if len(component) >= size_threshold or (keep_singletons and len(component) == 1):
                keep.update(component)
        return self.restrict_to_nodes(keep)

    # ========== Statistics ==========

    def stats(self) -> HypergraphStats:
        """Summary counts for display."""
        components = self.connected_components()
        adjacency = self.adjacency_dict
        sizes = [len(members) for members in self._incidence.values()]
        return HypergraphStats(
            node_count=len(adjacency),
            edge_count=len(self._incidence),
            component_count=len(components),
            largest_component_size=len(components[0]) if components else 0,
            average_edge_size=(sum(sizes) / len(sizes)) if sizes else 0.0,
            max_degree=max((len(edges) for edges in adjacency.values()), default=0),
        )

    def top_nodes_by_degree(self, limit: int = 10) -> list[tuple[Hashable, int]]:
        """Highest-degree nodes, ties broken by node ID."""
        ranked = sorted(
            ((node, len(edges)) for node, edges in self.adjacency_dict.items()),
            key=lambda item: (-item[1], str(item[0])),
        )
        return ranked[:limit]

    # ========== Serialization ==========

    def to_dict(self) -> dict[str, Any]:
        """Export as ``{"incidence_dict": {edge: sorted members}}``.

        Member arrays are sorted so saved files diff cleanly. This is the
        HyperNetX-compatible layout: ``hnx.Hypergraph(data["incidence_dict"])``.
        """
        return {
            "incidence_dict": {
                edge_id: stable_sorted(members)
                for edge_id, members in sorted(self._incidence.items(), key=lambda kv: str(kv[0]))
            }
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Hypergraph":
        """Import from the ``incidence_dict`` layout produced by to_dict()."""
        return cls(data.get("incidence_dict", {}))

    def to_hif(self) -> dict[str, Any]:
        """Export to HIF-compliant JSON structure.

        HIF standard: https://github.com/HIF-org/HIF-standard

        Incidences are a flat root-level array; nodes and edges use the
        "node"/"edge" field names. All edges here are undirected.
        """
        edge_ids = stable_sorted(self._incidence)
        incidences = [
            {"node": node, "edge": edge_id}
            for edge_id in edge_ids
            for node in stable_sorted(self._incidence[edge_id])
        ]
        return {
            "network-type": "undirected",
            "metadata": {"generator": "hypergraph_reasoning", "version": "1.0"},
            "incidences": incidences,
            "nodes": [{"node": node} for node in stable_sorted(self.adjacency_dict)],
            "edges": [{"edge": edge_id} for edge_id in edge_ids],
        }

    @classmethod
    def from_hif(cls, data: Mapping[str, Any]) -> "Hypergraph":
        """Import from HIF; only incidences matter since empty edges are not stored.

        Integer IDs are converted to strings, as HIF permits both.
        """
        incidence: dict[str, set[str]] = {}
        for hif_inc in data.get("incidences", []):
            incidence.setdefault(str(hif_inc["edge"]), set()).add(str(hif_inc["node"]))
        return cls(incidence)
