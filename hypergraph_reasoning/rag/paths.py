"""Bounded breadth-first search for evidence paths between matched nodes.

Traversal follows shared-edge adjacency with neighbours visited in sorted
order, so a fixed graph always yields the same paths. Every call starts
from fresh visited sets; nothing is cached between queries.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Hashable, Iterable, Sequence

from hypergraph_reasoning.engine.core import Hypergraph, stable_sorted

logger = logging.getLogger(__name__)

DEFAULT_MAX_LENGTH = 4

Path = list[Hashable]


class PathFinder:
    """Finds short connecting paths in a hypergraph.

    ``max_length`` always counts nodes, including both endpoints.
    """

    def __init__(self, hypergraph: Hypergraph) -> None:
        self.hypergraph = hypergraph

    def _sorted_neighbors(self, node: Hashable) -> list[Hashable]:
        return stable_sorted(self.hypergraph.neighbors(node))

    def find_path(
        self,
        source: Hashable,
        target: Hashable,
        max_length: int = DEFAULT_MAX_LENGTH,
    ) -> Path | None:
        """Shortest path from ``source`` to ``target``.

        Returns:
            ``[source]`` when source equals target, otherwise the first
            shortest path found, or None if either endpoint is missing or
            the target is not reachable within ``max_length`` nodes
        """
        if source == target:
            return [source]
        if not (self.hypergraph.has_node(source) and self.hypergraph.has_node(target)):
            return None

        visited = {source}
        queue: deque[tuple[Hashable, Path]] = deque([(source, [source])])
        while queue:
            node, path = queue.popleft()
            if len(path) >= max_length:
                continue
            for neighbor in self._sorted_neighbors(node):
                if neighbor == target:
                    return path + [neighbor]
                if neighbor not in visited:
                    visited.add(neighbor)
                    queue.append((neighbor, path + [neighbor]))
        return None

    def _reachable_target_paths(
        self,
        source: Hashable,
        targets: frozenset[Hashable],
        max_length: int,
    ) -> list[Path]:
        """Paths from ``source`` that have touched at least two targets."""
        results: list[Path] = []
        visited = {source}
        initial = frozenset({source}) & targets
        queue: deque[tuple[Hashable, Path, frozenset[Hashable]]] = deque([(source, [source], initial)])

        while queue:
            node, path, found = queue.popleft()
            if len(path) >= max_length:
                continue
            for neighbor in self._sorted_neighbors(node):
                if neighbor in visited:
                    continue
                visited.add(neighbor)
                new_found = found | {neighbor} if neighbor in targets else found
                new_path = path + [neighbor]
                if len(new_found) > 1:
                    results.append(new_path)
                queue.append((neighbor, new_path, new_found))
        return results

    def find_multi_target_paths(
        self,
        nodes: Sequence[Hashable],
        max_length: int = DEFAULT_MAX_LENGTH,
    ) -> list[Path]:
        """Paths of three or more nodes that pass through several of ``nodes``.

        Surfaces hub-like concepts that connect more than two matches.
        """
        targets = frozenset(nodes)
        paths: list[Path] = []
        for start in dict.fromkeys(nodes):
            if not self.hypergraph.has_node(start):
                continue
            paths.extend(
                path
                for path in self._reachable_target_paths(start, targets, max_length)
                if len(path) > 2
            )
        return paths

    def find_shortest_paths(
        self,
        nodes: Sequence[Hashable],
        max_length: int = DEFAULT_MAX_LENGTH,
    ) -> list[Path]:
        """Pairwise shortest paths among ``nodes`` plus multi-target paths.

        Identical node sequences are reported once, in first-found order.
        """
        unique = list(dict.fromkeys(nodes))
        if len(unique) < 2:
            return []

        paths: list[Path] = []
        for i, source in enumerate(unique):
            for target in unique[i + 1 :]:
                path = self.find_path(source, target, max_length)
                if path is not None:
                    paths.append(path)

        if len(unique) > 2:
            paths.extend(self.find_multi_target_paths(unique, max_length))

        seen: set[tuple[Hashable, ...]] = set()
        deduplicated: list[Path] = []
        for path in paths:
            key = tuple(path)
            if key not in seen:
                seen.add(key)
                deduplicated.append(path)
        logger.debug("Found %d distinct paths among %d nodes", len(deduplicated), len(unique))
        return deduplicated

    def connecting_edge(self, a: Hashable, b: Hashable) -> Hashable | None:
        """Lowest-ID edge containing both ``a`` and ``b``."""
        shared = self.hypergraph.edges_containing([a, b], match_all=True)
        if not shared:
            return None
        return stable_sorted(shared)[0]

    def edges_along_path(self, path: Sequence[Hashable]) -> list[Hashable]:
        """One connecting edge per consecutive pair of nodes."""
        edges = []
        for a, b in zip(path, path[1:]):
            edge = self.connecting_edge(a, b)
            if edge is not None:
                edges.append(edge)
        return edges

    def extract_subgraph(self, paths: Iterable[Sequence[Hashable]]) -> Hypergraph:
        """Sub-hypergraph of edges joining consecutive path nodes.

        Edges are restricted to nodes on the paths; those left with fewer
        than two members are omitted.
        """
        path_list = [list(path) for path in paths]
        path_nodes = {node for path in path_list for node in path}
        relevant: set[Hashable] = set()
        for path in path_list:
            for a, b in zip(path, path[1:]):
                relevant |= self.hypergraph.edges_containing([a, b], match_all=True)

        subgraph = Hypergraph()
        for edge_id in stable_sorted(relevant):
            members = self.hypergraph.nodes_in(edge_id) & path_nodes
            if len(members) >= 2:
                subgraph.add_edge(edge_id, members)
        return subgraph
