"""Graph module providing dependency graph abstractions.

This module contains:
- DependencyGraph[T]: A generic, immutable, insertion-ordered directed graph
- partial_topological_sort: Kahn's algorithm, setting aside cyclic nodes
- DependencyExtractor: Structural and textual dependencies of a node
- build_order: Cycle-tolerant evaluation order of a network
"""

from ._algorithms import partial_topological_sort
from ._dependency_graph import DependencyGraph
from ._extract import DependencyExtractor
from ._order import EvaluationOrder, build_dependency_graph, build_order

__all__ = [
    "DependencyExtractor",
    "DependencyGraph",
    "EvaluationOrder",
    "build_dependency_graph",
    "build_order",
    "partial_topological_sort",
]
