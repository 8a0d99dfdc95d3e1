"""Dependency extraction from connections and textual node references."""

import logging
import re
from collections.abc import Sequence

from nodecalc._models import Connection, Node

logger = logging.getLogger(__name__)


class DependencyExtractor:
    """Derive the nodes a node depends on.

    Two kinds of edges are found:

    - structural: every connection targeting the node contributes its source;
    - textual: every other node whose sanitized name appears in the formula
      immediately followed by a call marker, e.g. ``Clock_1()``.

    The reference pattern is compiled from the current name set and cached;
    it is recompiled whenever that set changes (rename, addition, deletion).
    """

    def __init__(self) -> None:
        self._names: tuple[str, ...] | None = None
        self._pattern: re.Pattern[str] | None = None

    def pattern_for(self, nodes: Sequence[Node]) -> re.Pattern[str] | None:
        """Return the reference pattern for the given node set, or None if there are no names."""
        # Longest names first so that an alternative never stops at a prefix.
        names = tuple(sorted({node.sanitized_name for node in nodes if node.sanitized_name}, key=lambda n: (-len(n), n)))
        if names != self._names:
            self._names = names
            if names:
                alternatives = "|".join(re.escape(name) for name in names)
                self._pattern = re.compile(rf"\b({alternatives})\b\s*\(")
            else:
                self._pattern = None
            logger.debug("Compiled reference pattern for %d node names", len(names))
        return self._pattern

    def referenced_names(self, formula: str, nodes: Sequence[Node]) -> list[str]:
        """Return the node names called in ``formula``, deduplicated in order of appearance."""
        pattern = self.pattern_for(nodes)
        if pattern is None or not formula:
            return []
        return list(dict.fromkeys(match.group(1) for match in pattern.finditer(formula)))

    def textual_dependencies(self, node: Node, nodes: Sequence[Node]) -> list[tuple[str, str]]:
        """Return ``(sanitized_name, node_id)`` for every other node referenced in the formula.

        Names that resolve to no node are dropped. When several nodes share a
        name, the first one in collection order wins.
        """
        by_name: dict[str, str] = {}
        for other in nodes:
            by_name.setdefault(other.sanitized_name, other.id)

        references: list[tuple[str, str]] = []
        for name in self.referenced_names(node.formula, nodes):
            dep_id = by_name.get(name)
            if dep_id is not None and dep_id != node.id:
                references.append((name, dep_id))
        return references

    def extract(
        self,
        node: Node,
        nodes: Sequence[Node],
        connections: Sequence[Connection],
    ) -> list[str]:
        """Return the ids of the nodes ``node`` depends on.

        Args:
            node: The node whose dependencies are wanted.
            nodes: All nodes of the network.
            connections: All connections of the network.

        Returns:
            Deduplicated node ids: connection sources first, then textual
            references. Connections from deleted nodes and unresolved names
            are silently dropped.

        """
        known = {other.id for other in nodes}
        deps = [conn.source_id for conn in connections if conn.target_id == node.id and conn.source_id in known]
        deps.extend(dep_id for _, dep_id in self.textual_dependencies(node, nodes))
        return list(dict.fromkeys(deps))
