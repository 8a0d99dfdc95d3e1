"""Evaluation order for a node network."""

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from nodecalc._models import Connection, Node

from ._dependency_graph import DependencyGraph
from ._extract import DependencyExtractor

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class EvaluationOrder:
    """The order in which one pass evaluates the nodes.

    Attributes:
        order: Every node id exactly once. Nodes caught in a cycle come last.
        cyclic: The ids that could not be placed topologically, in collection order.

    """

    order: tuple[str, ...] = ()
    cyclic: tuple[str, ...] = ()

    @property
    def has_cycle(self) -> bool:
        return bool(self.cyclic)


def build_dependency_graph(
    nodes: Sequence[Node],
    connections: Sequence[Connection],
    extractor: DependencyExtractor,
) -> DependencyGraph[str]:
    """Build the dependency graph of a network from connections and textual references.

    Connections whose endpoints no longer exist are skipped.
    """
    edges: list[tuple[str, str]] = []
    for node in nodes:
        edges.extend((dep_id, node.id) for dep_id in extractor.extract(node, nodes, connections))
    return DependencyGraph.from_edges(edges, nodes=[node.id for node in nodes])


def build_order(
    nodes: Sequence[Node],
    connections: Sequence[Connection],
    extractor: DependencyExtractor,
) -> EvaluationOrder:
    """Compute the evaluation order of a network.

    Cycles are not fatal: the nodes Kahn's algorithm cannot place are
    appended in collection order so that each node is still evaluated exactly
    once per pass, and a warning is logged. Nodes inside a cycle then read
    one-pass-stale values from each other.

    Args:
        nodes: All nodes, in collection order.
        connections: All connections.
        extractor: Extractor used for textual references.

    Returns:
        The evaluation order.

    """
    graph = build_dependency_graph(nodes, connections, extractor)
    order, remaining = graph.partial_order()
    if remaining:
        logger.warning("Cycle detected in dependencies between nodes: %s", ", ".join(remaining))
    return EvaluationOrder(order=tuple(order + remaining), cyclic=tuple(remaining))
