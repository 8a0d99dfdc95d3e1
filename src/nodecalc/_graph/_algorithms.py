"""Graph algorithms for dependency graph operations."""

from collections import deque
from collections.abc import Hashable, Mapping, Sequence
from typing import TypeVar

T = TypeVar("T", bound=Hashable)


def partial_topological_sort(
    successors: Mapping[T, Sequence[T]],
) -> tuple[list[T], list[T]]:
    """Sort a graph topologically, setting aside the nodes caught in cycles.

    This is Kahn's algorithm. Nodes with no predecessors seed the queue in the
    iteration order of ``successors``; successors are released in the order
    they are listed, so the result is deterministic for ordered inputs.

    Args:
        successors: Mapping from node to the nodes that depend on it.
            An edge (a -> b) means "b depends on a". Nodes that only appear
            as successors are included.

    Returns:
        Tuple ``(order, remaining)``. ``order`` holds every node that could be
        placed; ``remaining`` holds the nodes on or behind a cycle, in the
        iteration order of ``successors``.

    Example:
        >>> partial_topological_sort({"a": ["b"], "b": ["c"], "c": ["b"]})
        (['a'], ['b', 'c'])

    """
    indegree: dict[T, int] = dict.fromkeys(successors, 0)
    for deps in successors.values():
        for dep in deps:
            indegree[dep] = indegree.get(dep, 0) + 1

    queue = deque(node for node, deg in indegree.items() if deg == 0)
    order: list[T] = []

    while queue:
        node = queue.popleft()
        order.append(node)
        for successor in successors.get(node, ()):
            indegree[successor] -= 1
            if indegree[successor] == 0:
                queue.append(successor)

    placed = set(order)
    remaining = [node for node in indegree if node not in placed]
    return order, remaining
