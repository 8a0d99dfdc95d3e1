"""Debounced, full-graph evaluation passes."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ._eval_engine import build_scope, evaluate_node
from ._graph import DependencyExtractor, EvaluationOrder, build_order
from ._network import ChangeKind

if TYPE_CHECKING:
    from collections.abc import Callable

    from ._network import Network

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PassResult:
    """Outcome of one evaluation pass.

    Attributes:
        changed: Whether any node's output or error changed (and was committed).
        order: The evaluation order that was walked.
        errors: Error message per failing node id.

    """

    changed: bool
    order: EvaluationOrder
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return not self.errors


class EvaluationScheduler:
    """Owns the evaluation state of a network: cached order, pending timer, pass loop.

    The scheduler subscribes to the network. Every change invalidates the
    cached order and re-arms a ``settings.delay`` millisecond timer on the
    asyncio event loop; a newer change replaces the pending timer, so only
    the last edit of a burst triggers a pass. Passes run to completion and
    are never interleaved.

    Without an event loop (scripts, the CLI) changes only invalidate the
    state; call :meth:`flush` or :meth:`settle` to evaluate.

    Args:
        network: The network to evaluate.
        loop: Event loop for the debounce timer. Defaults to the running loop.

    """

    def __init__(self, network: Network, *, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._network = network
        self._loop = loop
        self._extractor = DependencyExtractor()
        self._cached_order: EvaluationOrder | None = None
        self._pending: asyncio.TimerHandle | None = None
        self._running = False
        self._commit_listeners: list[Callable[[PassResult], None]] = []
        self.commits = 0
        self._unsubscribe = network.subscribe(self._on_change)

    @property
    def pending(self) -> bool:
        """Whether a pass is armed and waiting for its timer."""
        return self._pending is not None

    def on_commit(self, listener: Callable[[PassResult], None]) -> None:
        """Register a callback run after every committed pass."""
        self._commit_listeners.append(listener)

    def _on_change(self, kind: ChangeKind) -> None:
        if kind is ChangeKind.SNAPSHOT_LOADED:
            self.reset()
        self.invalidate()
        self.notify_change()

    def invalidate(self) -> None:
        """Drop the cached evaluation order."""
        self._cached_order = None

    def order(self) -> EvaluationOrder:
        """Return the evaluation order, rebuilding it if it was invalidated."""
        if self._cached_order is None:
            self._cached_order = build_order(self._network.nodes, self._network.connections, self._extractor)
        return self._cached_order

    def _resolve_loop(self) -> asyncio.AbstractEventLoop | None:
        if self._loop is not None:
            return self._loop
        try:
            return asyncio.get_running_loop()
        except RuntimeError:
            return None

    def notify_change(self) -> None:
        """Arm the debounce timer, cancelling the one already pending."""
        self.cancel()
        loop = self._resolve_loop()
        if loop is None:
            return
        delay = self._network.settings.delay / 1000
        self._pending = loop.call_later(delay, self._fire)

    def cancel(self) -> None:
        """Cancel the pending timer, if any."""
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def reset(self) -> None:
        """Drop all transient state: pending timer and cached order."""
        self.cancel()
        self.invalidate()

    def close(self) -> None:
        """Reset and stop listening to the network."""
        self.reset()
        self._unsubscribe()

    def _fire(self) -> None:
        self._pending = None
        self.run_pass()

    def flush(self) -> PassResult | None:
        """Run the pending pass now instead of waiting for the timer."""
        self.cancel()
        return self.run_pass()

    def run_pass(self) -> PassResult | None:
        """Evaluate every node once in dependency order and commit if anything changed.

        Each node sees the outputs already updated earlier in the same pass.
        Formula errors stay on their node; the pass always completes.

        Returns:
            The pass result, or None if a pass was already running (a new
            timer is armed instead).

        """
        if self._running:
            logger.debug("Pass already running, deferring to the next timer")
            self.notify_change()
            return None

        self._running = True
        try:
            order = self.order()
            settings = self._network.settings
            connections = self._network.connections
            working = list(self._network.nodes)
            by_id = {node.id: node for node in working}

            changed = False
            errors: dict[str, str] = {}
            for node_id in order.order:
                node = by_id.get(node_id)
                if node is None:
                    continue
                scope = build_scope(node, working, connections, settings)
                outcome = evaluate_node(node, scope, settings)
                if outcome.error:
                    errors[node_id] = outcome.error
                if node.q != outcome.value or node.error != outcome.error:
                    node.q = outcome.value
                    node.error = outcome.error
                    changed = True

            result = PassResult(changed=changed, order=order, errors=errors)
            if changed:
                self._network.commit(working)
                self.commits += 1
                logger.debug("Committed pass %d over %d nodes", self.commits, len(working))
                for listener in list(self._commit_listeners):
                    listener(result)
            else:
                logger.debug("Pass over %d nodes changed nothing", len(working))
            return result
        finally:
            self._running = False

    def settle(self, max_passes: int = 100) -> list[PassResult]:
        """Run passes until one changes nothing or ``max_passes`` is reached.

        Networks with feedback (e.g. a toggling node) never settle; they stop
        at ``max_passes``.
        """
        self.cancel()
        results: list[PassResult] = []
        for _ in range(max_passes):
            result = self.run_pass()
            if result is None:
                break
            results.append(result)
            if not result.changed:
                break
        return results
