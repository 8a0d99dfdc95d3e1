"""Cache-free, depth-first evaluation of a single node.

Used when one node's value must be derived on demand instead of read from a
topologically ordered pass. Every dependency (connected inputs and textual
node references) is evaluated fresh before the node's own formula.

The traversal uses an explicit stack of frames rather than native recursion.
Two guards bound it:

- a depth counter shared by the whole request, incremented on every node
  entry; exceeding ``max_eval_depth`` aborts the request;
- a visited path per branch; re-entering a node already on the current
  branch yields 0 instead of descending again.
"""

import logging
from collections import deque
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from nodecalc._errors import EvaluationDepthError, FormulaError
from nodecalc._graph import DependencyExtractor
from nodecalc._models import Connection, Node, Settings

from ._engine import EvaluationOutcome, normalize_output
from ._expression import evaluate_formula
from ._resolution import build_scope, connected_source

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class DepthCounter:
    """Node entries of one evaluation request."""

    limit: int
    count: int = 0

    def enter(self) -> None:
        self.count += 1
        if self.count > self.limit:
            raise EvaluationDepthError(self.limit)


@dataclass(slots=True)
class _Frame:
    node: Node
    path: frozenset[str]
    pending: deque[tuple[str, str, str]]
    """Dependencies still to evaluate, as ``(kind, key, source_id)``."""
    inputs: dict[str, float] = field(default_factory=dict)
    references: dict[str, float] = field(default_factory=dict)
    waiting: tuple[str, str] | None = None

    def record(self, kind: str, key: str, value: float) -> None:
        if kind == "input":
            self.inputs[key] = value
        else:
            self.references[key] = value


class RecursiveEvaluator:
    """Evaluate nodes depth-first over a fixed view of a network.

    Args:
        nodes: Every node of the network.
        connections: Every connection of the network.
        settings: Evaluation settings (``max_eval_depth``, ``mod_base``).
        extractor: Extractor used to find textual references.

    """

    def __init__(
        self,
        nodes: Sequence[Node],
        connections: Sequence[Connection],
        settings: Settings,
        extractor: DependencyExtractor | None = None,
    ) -> None:
        self._nodes = list(nodes)
        self._by_id = {node.id: node for node in self._nodes}
        self._connections = list(connections)
        self._settings = settings
        self._extractor = extractor or DependencyExtractor()

    def evaluate(self, node_id: str) -> EvaluationOutcome:
        """Evaluate one node, capturing depth and formula errors in the outcome."""
        try:
            value = self.eval_with_depth(node_id)
        except (EvaluationDepthError, FormulaError) as e:
            logger.debug("Recursive evaluation of %s failed: %s", node_id, e)
            return EvaluationOutcome(value=0.0, error=str(e))
        return EvaluationOutcome(value=value)

    def eval_with_depth(
        self,
        node_id: str,
        visited: frozenset[str] = frozenset(),
        counter: DepthCounter | None = None,
    ) -> float:
        """Evaluate one node and everything it depends on.

        Args:
            node_id: The node to evaluate.
            visited: Nodes already on the calling branch.
            counter: Depth counter to share with an enclosing request.

        Returns:
            The node's output. 0 for a missing node or a node already on the branch.

        Raises:
            EvaluationDepthError: If the request enters more than ``max_eval_depth`` nodes.
            FormulaError: If any formula on the chain fails.

        """
        if counter is None:
            counter = DepthCounter(limit=self._settings.max_eval_depth)

        stack: list[_Frame] = []
        immediate = self._enter(node_id, visited, counter, stack)
        if immediate is not None:
            return immediate

        while stack:
            frame = stack[-1]
            if frame.pending:
                kind, key, source_id = frame.pending.popleft()
                value = self._enter(source_id, frame.path, counter, stack)
                if value is None:
                    frame.waiting = (kind, key)
                else:
                    frame.record(kind, key, value)
                continue

            stack.pop()
            value = self._compute(frame)
            if not stack:
                return value
            parent = stack[-1]
            if parent.waiting is not None:
                parent.record(*parent.waiting, value)
                parent.waiting = None

        msg = "Evaluation stack drained without a result"
        raise RuntimeError(msg)

    def _enter(
        self,
        node_id: str,
        visited: frozenset[str],
        counter: DepthCounter,
        stack: list[_Frame],
    ) -> float | None:
        """Enter a node: either resolve it immediately or push a frame and return None."""
        counter.enter()
        node = self._by_id.get(node_id)
        if node is None or node_id in visited:
            return 0.0
        stack.append(_Frame(node=node, path=visited | {node_id}, pending=deque(self._dependencies(node))))
        return None

    def _dependencies(self, node: Node) -> list[tuple[str, str, str]]:
        deps: list[tuple[str, str, str]] = []
        for input_name, slot in node.inputs.items():
            if slot.is_connected:
                source_id = connected_source(node, input_name, self._connections)
                if source_id is not None:
                    deps.append(("input", input_name, source_id))
        deps.extend(
            ("reference", name, dep_id)
            for name, dep_id in self._extractor.textual_dependencies(node, self._nodes)
            if name not in node.inputs
        )
        return deps

    def _compute(self, frame: _Frame) -> float:
        node = frame.node
        if not node.formula.strip():
            return node.q

        scope: dict[str, Any] = build_scope(node, self._nodes, self._connections, self._settings)
        scope.update((name, _constant(value)) for name, value in frame.references.items())
        scope.update(frame.inputs)

        raw = evaluate_formula(node.formula, scope)
        return normalize_output(raw, node, self._settings)


def _constant(value: float) -> Callable[[], float]:
    return lambda: value
