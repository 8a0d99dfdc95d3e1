"""The live node network and its mutation API."""

from __future__ import annotations

import logging
from enum import StrEnum, unique
from typing import TYPE_CHECKING, Any, TypeAlias, TypeVar

from ._errors import NodeNotFoundError
from ._eval_engine import EvaluationOutcome, RecursiveEvaluator
from ._models import Connection, Node, NodeInput, Settings, Snapshot
from ._proposal import validate_proposal

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping, Sequence

    from pydantic import BaseModel

    from ._proposal import Proposal

logger = logging.getLogger(__name__)


@unique
class ChangeKind(StrEnum):
    """Kinds of edits reported to network subscribers."""

    NODE_ADDED = "node_added"
    NODE_UPDATED = "node_updated"
    NODE_DELETED = "node_deleted"
    CONNECTION_CREATED = "connection_created"
    CONNECTION_DELETED = "connection_deleted"
    SETTINGS_CHANGED = "settings_changed"
    SNAPSHOT_LOADED = "snapshot_loaded"


ChangeListener: TypeAlias = "Callable[[ChangeKind], None]"

M = TypeVar("M", bound="BaseModel")


def _merge(model: M, patch: Mapping[str, Any]) -> M:
    """Return a validated copy of ``model`` with ``patch`` applied.

    Patch keys may use field names or their camelCase aliases.
    """
    fields = type(model).model_fields
    aliases = {info.alias or name: name for name, info in fields.items()}
    data = model.model_dump(by_alias=True)
    for key, value in patch.items():
        if key in fields:
            data[fields[key].alias or key] = value
        elif key in aliases:
            data[key] = value
        else:
            msg = f"Unknown field for {type(model).__name__}: {key}"
            raise ValueError(msg)
    return type(model).model_validate(data)


def _check_unique_ids(nodes: Iterable[Node]) -> None:
    seen: set[str] = set()
    for node in nodes:
        if node.id in seen:
            msg = f"Duplicate node id: {node.id}"
            raise ValueError(msg)
        seen.add(node.id)


class Network:
    """Nodes, connections and settings of one editing session.

    Every mutation notifies the subscribers (typically an
    :class:`~nodecalc.EvaluationScheduler`), which invalidate their cached
    evaluation order and re-arm their timer. The evaluation results are
    written back only through :meth:`commit`.

    Nodes and settings handed out are copies. Changing one has no effect on
    the network; edits go through the mutation methods.

    Args:
        snapshot: Initial state. Defaults to an empty network.

    """

    def __init__(self, snapshot: Snapshot | None = None) -> None:
        self._nodes: list[Node] = []
        self._connections: list[Connection] = []
        self._settings = Settings()
        self._next_node_id = 1
        self._listeners: list[ChangeListener] = []
        if snapshot is not None:
            self._replace(snapshot)

    # -- read access ---------------------------------------------------------

    @property
    def nodes(self) -> tuple[Node, ...]:
        return tuple(node.model_copy(deep=True) for node in self._nodes)

    @property
    def connections(self) -> tuple[Connection, ...]:
        return tuple(conn.model_copy() for conn in self._connections)

    @property
    def settings(self) -> Settings:
        return self._settings.model_copy()

    def get_node(self, node_id: str) -> Node:
        """Get a node by id.

        Raises:
            NodeNotFoundError: If no node has this id.

        """
        return self._nodes[self._index(node_id)].model_copy(deep=True)

    def find_node(self, name_or_id: str) -> Node:
        """Get a node by id, falling back to its display or sanitized name."""
        for node in self._nodes:
            if node.id == name_or_id:
                return node.model_copy(deep=True)
        for node in self._nodes:
            if name_or_id in (node.name, node.sanitized_name):
                return node.model_copy(deep=True)
        raise NodeNotFoundError(name_or_id)

    def _index(self, node_id: str) -> int:
        for index, node in enumerate(self._nodes):
            if node.id == node_id:
                return index
        raise NodeNotFoundError(node_id)

    # -- subscriptions -------------------------------------------------------

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Register a change listener. Returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, kind: ChangeKind) -> None:
        logger.debug("Network change: %s", kind)
        for listener in list(self._listeners):
            listener(kind)

    # -- nodes ---------------------------------------------------------------

    def _allocate_id(self) -> str:
        taken = {node.id for node in self._nodes}
        while str(self._next_node_id) in taken:
            self._next_node_id += 1
        return str(self._next_node_id)

    def add_node(self, node: Node | None = None, **fields: Any) -> Node:
        """Add a node.

        Either pass a ready :class:`Node` or field values. A missing id is
        allocated from the network counter and a missing output starts at
        ``settings.initial_q``.

        Raises:
            ValueError: If the id is already taken.

        """
        if node is None:
            if "id" not in fields:
                fields["id"] = self._allocate_id()
            node = Node.model_validate(fields)
        else:
            node = node.model_copy(deep=True)

        if any(existing.id == node.id for existing in self._nodes):
            msg = f"Node id already exists: {node.id}"
            raise ValueError(msg)
        if "q" not in node.model_fields_set:
            node.q = self._settings.initial_q

        prefix = node.id.split("-", 1)[0]
        if prefix.isdigit():
            self._next_node_id = max(self._next_node_id, int(prefix) + 1)

        self._nodes.append(node)
        self._notify(ChangeKind.NODE_ADDED)
        return node.model_copy(deep=True)

    def update_node(self, node_id: str, patch: Mapping[str, Any] | Node) -> Node:
        """Replace a node or apply a partial update to it.

        Connections into input slots that the update removes are dropped.

        Raises:
            NodeNotFoundError: If no node has this id.
            ValueError: If the patch changes the id or names an unknown field.

        """
        index = self._index(node_id)
        current = self._nodes[index]
        updated = patch.model_copy(deep=True) if isinstance(patch, Node) else _merge(current, patch)
        if updated.id != node_id:
            msg = f"Node id cannot change (from {node_id} to {updated.id})"
            raise ValueError(msg)

        self._nodes[index] = updated
        removed = set(current.inputs) - set(updated.inputs)
        if removed:
            self._connections = [
                conn for conn in self._connections if not (conn.target_id == node_id and conn.input_name in removed)
            ]
        self._notify(ChangeKind.NODE_UPDATED)
        return updated.model_copy(deep=True)

    def set_input_value(self, node_id: str, input_name: str, value: float) -> Node:
        """Set the literal value of an input slot, creating the slot if needed."""
        node = self.get_node(node_id)
        slot = node.inputs.get(input_name, NodeInput())
        inputs = {**node.inputs, input_name: slot.model_copy(update={"value": float(value)})}
        return self.update_node(node_id, {"inputs": inputs})

    def delete_node(self, node_id: str) -> None:
        """Delete a node and every connection where it is source or target.

        Inputs it fed stay marked as connected and read 0 until reconnected.
        """
        index = self._index(node_id)
        del self._nodes[index]
        self._connections = [
            conn for conn in self._connections if node_id not in (conn.source_id, conn.target_id)
        ]
        self._notify(ChangeKind.NODE_DELETED)

    # -- connections ---------------------------------------------------------

    def create_connection(self, source_id: str, target_id: str, input_name: str) -> Connection:
        """Connect the output of ``source_id`` to an input slot of ``target_id``.

        Any previous connection to the same slot is superseded. The slot is
        created if the target does not declare it yet, and marked connected.

        Raises:
            NodeNotFoundError: If either node does not exist.

        """
        self._index(source_id)
        index = self._index(target_id)

        connection = Connection(source_id=source_id, target_id=target_id, input_name=input_name)
        self._connections = [conn for conn in self._connections if conn.slot != connection.slot]
        self._connections.append(connection)

        target = self._nodes[index]
        slot = target.inputs.get(input_name, NodeInput())
        inputs = {**target.inputs, input_name: slot.model_copy(update={"is_connected": True})}
        self._nodes[index] = target.model_copy(update={"inputs": inputs})

        self._notify(ChangeKind.CONNECTION_CREATED)
        return connection

    def delete_connection(self, target_id: str, input_name: str) -> bool:
        """Remove the connection feeding a slot and mark the slot unconnected.

        Returns:
            True if a connection was removed.

        """
        before = len(self._connections)
        self._connections = [conn for conn in self._connections if conn.slot != (target_id, input_name)]
        if len(self._connections) == before:
            return False

        for index, node in enumerate(self._nodes):
            if node.id == target_id and input_name in node.inputs:
                slot = node.inputs[input_name].model_copy(update={"is_connected": False})
                self._nodes[index] = node.model_copy(update={"inputs": {**node.inputs, input_name: slot}})
        self._notify(ChangeKind.CONNECTION_DELETED)
        return True

    # -- settings ------------------------------------------------------------

    def update_settings(self, patch: Mapping[str, Any] | Settings) -> Settings:
        """Replace the settings or apply a partial, validated update."""
        self._settings = patch.model_copy() if isinstance(patch, Settings) else _merge(self._settings, patch)
        self._notify(ChangeKind.SETTINGS_CHANGED)
        return self._settings

    # -- evaluation results --------------------------------------------------

    def commit(self, nodes: Sequence[Node]) -> None:
        """Replace the node set with evaluated copies in one step.

        This is the write path of the scheduler; it does not notify subscribers.

        Raises:
            ValueError: If the committed nodes are not the current nodes.

        """
        if [node.id for node in nodes] != [node.id for node in self._nodes]:
            msg = "Committed nodes do not match the nodes of the network"
            raise ValueError(msg)
        self._nodes = [node.model_copy(deep=True) for node in nodes]

    def query(self, node_id: str) -> EvaluationOutcome:
        """Evaluate one node on demand, depth-first and without caches.

        Nothing is written back to the network.
        """
        self._index(node_id)
        evaluator = RecursiveEvaluator(self._nodes, self._connections, self._settings)
        return evaluator.evaluate(node_id)

    # -- snapshots -----------------------------------------------------------

    def snapshot(self) -> Snapshot:
        """Return the structural state, free of any engine-internal state."""
        return Snapshot(
            nodes=[node.model_copy(deep=True) for node in self._nodes],
            connections=[conn.model_copy() for conn in self._connections],
            settings=self._settings.model_copy(),
            next_node_id=self._next_node_id,
        )

    def _replace(self, snapshot: Snapshot) -> None:
        _check_unique_ids(snapshot.nodes)
        self._nodes = [node.model_copy(deep=True) for node in snapshot.nodes]
        self._connections = [conn.model_copy() for conn in snapshot.connections]
        self._settings = snapshot.settings.model_copy()
        self._next_node_id = snapshot.next_node_id

    def load_snapshot(self, snapshot: Snapshot) -> None:
        """Replace the whole state. Subscribers reset their transient state."""
        self._replace(snapshot)
        logger.info("Loaded %d nodes and %d connections", len(self._nodes), len(self._connections))
        self._notify(ChangeKind.SNAPSHOT_LOADED)

    def admit(self, proposal: Proposal) -> list[Node]:
        """Add a batch of generated nodes and connections as ordinary edits.

        The whole batch is validated before anything is added.

        Raises:
            ProposalError: If an id is duplicated or a connection is dangling.

        """
        validate_proposal(proposal, {node.id for node in self._nodes})
        added = [self.add_node(node) for node in proposal.nodes]
        for conn in proposal.connections:
            self.create_connection(conn.source_id, conn.target_id, conn.input_name)
        logger.info("Admitted %d nodes and %d connections", len(added), len(proposal.connections))
        return added
