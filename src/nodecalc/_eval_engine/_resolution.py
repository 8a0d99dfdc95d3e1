"""Scope construction for formula evaluation."""

import logging
from collections.abc import Callable, Sequence
from typing import Any

from nodecalc._models import Connection, Node, Settings

from ._expression import FUNCTION_LIBRARY

logger = logging.getLogger(__name__)


def _output_reader(nodes_by_id: dict[str, Node], node_id: str) -> Callable[[], float]:
    def read() -> float:
        # Looked up at call time so that outputs updated earlier in a pass are visible.
        target = nodes_by_id.get(node_id)
        return target.q if target is not None else 0.0

    return read


def connected_source(node: Node, input_name: str, connections: Sequence[Connection]) -> str | None:
    """Return the id of the node feeding ``input_name`` of ``node``, if any."""
    for conn in connections:
        if conn.target_id == node.id and conn.input_name == input_name:
            return conn.source_id
    return None


def build_scope(
    node: Node,
    all_nodes: Sequence[Node],
    connections: Sequence[Connection],
    settings: Settings,  # noqa: ARG001
) -> dict[str, Any]:
    """Build the environment visible to ``node.formula``.

    Later layers shadow earlier ones:

    1. the function library;
    2. a zero-argument callable per other node, keyed by sanitized name,
       returning that node's current output;
    3. ``q`` and ``Q``, the node's own last output;
    4. the declared inputs: the source's output when connected (0 if the
       connection or the source is gone), the literal value otherwise.

    Declared inputs therefore shadow node references of the same name.

    Args:
        node: The node being evaluated.
        all_nodes: Every node of the network, as seen by this pass.
        connections: Every connection of the network.
        settings: Evaluation settings.

    Returns:
        Mapping from name to value or callable.

    """
    nodes_by_id = {other.id: other for other in all_nodes}
    scope: dict[str, Any] = dict(FUNCTION_LIBRARY)

    references: dict[str, Callable[[], float]] = {}
    for other in all_nodes:
        if other.id != node.id and other.sanitized_name not in references:
            references[other.sanitized_name] = _output_reader(nodes_by_id, other.id)
    scope.update(references)

    scope["q"] = node.q
    scope["Q"] = node.q

    for input_name, slot in node.inputs.items():
        if input_name in references:
            logger.debug("Input %s of node %s shadows the node named %s", input_name, node.id, input_name)
        if slot.is_connected:
            source_id = connected_source(node, input_name, connections)
            source = nodes_by_id.get(source_id) if source_id is not None else None
            scope[input_name] = source.q if source is not None else 0.0
        else:
            scope[input_name] = slot.value

    return scope
