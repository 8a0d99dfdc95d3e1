"""Generic, insertion-ordered dependency graph."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from ._algorithms import partial_topological_sort

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class DependencyGraph(Generic[T]):
    """A directed graph representing dependencies between nodes.

    This is an immutable data structure with query methods. Unlike a set-based
    graph it keeps nodes and edges in insertion order, so orderings derived
    from it are reproducible.

    The graph represents "depends on" relationships:
    - predecessors[b] = (a,) means "b depends on a"
    - successors[a] = (b,) means "a is depended on by b"

    Attributes:
        _predecessors: Mapping from node to its direct dependencies.
        _successors: Mapping from node to nodes that depend on it.

    """

    _predecessors: dict[T, tuple[T, ...]] = field(default_factory=dict)
    _successors: dict[T, tuple[T, ...]] = field(default_factory=dict)

    @classmethod
    def from_edges(
        cls,
        edges: Iterable[tuple[T, T]],
        nodes: Iterable[T] = (),
    ) -> DependencyGraph[T]:
        """Build a graph from (source, target) edges.

        An edge (a, b) means "b depends on a". Duplicate edges are kept once.

        Args:
            edges: The (source, target) tuples.
            nodes: Nodes to include even without edges. They come first in
                the node order, followed by nodes first seen in ``edges``.

        Returns:
            A new DependencyGraph instance.

        Example:
            >>> graph = DependencyGraph.from_edges([("a", "b"), ("b", "c")])
            >>> graph.predecessors("b")
            ('a',)

        """
        predecessors: dict[T, dict[T, None]] = {node: {} for node in nodes}
        successors: dict[T, dict[T, None]] = {node: {} for node in predecessors}

        for src, dst in edges:
            for node in (src, dst):
                predecessors.setdefault(node, {})
                successors.setdefault(node, {})
            predecessors[dst][src] = None
            successors[src][dst] = None

        return cls(
            _predecessors={k: tuple(v) for k, v in predecessors.items()},
            _successors={k: tuple(v) for k, v in successors.items()},
        )

    def predecessors(self, node: T) -> tuple[T, ...]:
        """Get direct dependencies of a node (nodes it depends on)."""
        return self._predecessors.get(node, ())

    def successors(self, node: T) -> tuple[T, ...]:
        """Get direct dependents of a node (nodes that depend on it)."""
        return self._successors.get(node, ())

    def ancestors(self, node: T) -> frozenset[T]:
        """Get all transitive dependencies of a node.

        Args:
            node: The node to query.

        Returns:
            Set of all nodes that this node transitively depends on. A node
            on a cycle is its own ancestor.

        """
        visited: set[T] = set()
        stack = list(self.predecessors(node))
        while stack:
            current = stack.pop()
            if current not in visited:
                visited.add(current)
                stack.extend(self.predecessors(current))
        return frozenset(visited)

    def descendants(self, node: T) -> frozenset[T]:
        """Get all transitive dependents of a node.

        Args:
            node: The node to query.

        Returns:
            Set of all nodes that transitively depend on this node.

        """
        visited: set[T] = set()
        stack = list(self.successors(node))
        while stack:
            current = stack.pop()
            if current not in visited:
                visited.add(current)
                stack.extend(self.successors(current))
        return frozenset(visited)

    def partial_order(self) -> tuple[list[T], list[T]]:
        """Return ``(order, remaining)`` where ``remaining`` are the nodes Kahn's algorithm could not place."""
        return partial_topological_sort(self._successors)

