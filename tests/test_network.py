"""Tests for the network store and its mutation API."""

import pytest

from nodecalc import (
    ChangeKind,
    Network,
    Node,
    NodeInput,
    NodeNotFoundError,
    ProposalError,
    Settings,
    Snapshot,
    parse_proposal,
)


@pytest.fixture
def network() -> Network:
    return Network()


def _record(network: Network) -> list[ChangeKind]:
    changes: list[ChangeKind] = []
    network.subscribe(changes.append)
    return changes


class TestAddNode:
    """Tests for adding nodes."""

    def test_defaults(self, network: Network) -> None:
        node = network.add_node()
        assert node.id == "1"
        assert node.name == "Node 1"
        assert node.formula == ""
        assert node.use_mod2 is True
        assert node.q == 0.0
        assert node.error == ""

    def test_ids_are_allocated_in_sequence(self, network: Network) -> None:
        ids = [network.add_node().id for _ in range(3)]
        assert ids == ["1", "2", "3"]

    def test_initial_q_from_settings(self, network: Network) -> None:
        network.update_settings({"initial_q": 1})
        assert network.add_node().q == 1.0

    def test_explicit_q_is_kept(self, network: Network) -> None:
        network.update_settings({"initialQ": 1})
        assert network.add_node(q=0.0).q == 0.0

    def test_numeric_id_advances_counter(self, network: Network) -> None:
        network.add_node(id="7")
        assert network.add_node().id == "8"

    def test_duplicate_id(self, network: Network) -> None:
        network.add_node(id="a")
        with pytest.raises(ValueError, match="already exists"):
            network.add_node(id="a")

    def test_notifies(self, network: Network) -> None:
        changes = _record(network)
        network.add_node()
        assert changes == [ChangeKind.NODE_ADDED]

    def test_added_node_is_a_copy(self, network: Network) -> None:
        original = Node(id="x", formula="1")
        network.add_node(original)
        original.formula = "2"
        assert network.get_node("x").formula == "1"

    def test_returned_nodes_are_copies(self, network: Network) -> None:
        changes = _record(network)
        added = network.add_node(id="x", formula="1")
        added.formula = "2"
        network.get_node("x").formula = "3"
        network.nodes[0].formula = "4"
        network.find_node("x").inputs["a"] = NodeInput()

        assert network.get_node("x").formula == "1"
        assert network.get_node("x").inputs == {}
        assert changes == [ChangeKind.NODE_ADDED]


class TestUpdateNode:
    """Tests for editing nodes."""

    def test_partial_update(self, network: Network) -> None:
        node = network.add_node(formula="1")
        updated = network.update_node(node.id, {"formula": "q + 1", "useMod2": False})
        assert updated.formula == "q + 1"
        assert updated.use_mod2 is False
        assert network.get_node(node.id).formula == "q + 1"

    def test_unknown_field(self, network: Network) -> None:
        node = network.add_node()
        with pytest.raises(ValueError, match="Unknown field"):
            network.update_node(node.id, {"colour": "red"})

    def test_id_cannot_change(self, network: Network) -> None:
        node = network.add_node()
        with pytest.raises(ValueError, match="cannot change"):
            network.update_node(node.id, {"id": "other"})

    def test_missing_node(self, network: Network) -> None:
        with pytest.raises(NodeNotFoundError, match="Node not found: 9"):
            network.update_node("9", {"formula": "1"})

    def test_removing_input_drops_its_connection(self, network: Network) -> None:
        src = network.add_node()
        dst = network.add_node(inputs={"a": NodeInput(), "b": NodeInput()})
        network.create_connection(src.id, dst.id, "a")
        network.create_connection(src.id, dst.id, "b")
        network.update_node(dst.id, {"inputs": {"b": {"value": 0, "isConnected": True}}})
        assert [conn.input_name for conn in network.connections] == ["b"]

    def test_set_input_value(self, network: Network) -> None:
        node = network.add_node()
        network.set_input_value(node.id, "a", 3)
        assert network.get_node(node.id).inputs["a"].value == 3.0


class TestDeleteNode:
    """Tests for deleting nodes."""

    def test_removes_incident_connections(self, network: Network) -> None:
        a = network.add_node()
        b = network.add_node()
        c = network.add_node()
        network.create_connection(a.id, b.id, "x")
        network.create_connection(b.id, c.id, "x")
        network.delete_node(b.id)
        assert [node.id for node in network.nodes] == [a.id, c.id]
        assert network.connections == ()

    def test_target_input_stays_connected(self, network: Network) -> None:
        a = network.add_node()
        b = network.add_node()
        network.create_connection(a.id, b.id, "x")
        network.delete_node(a.id)
        assert network.get_node(b.id).inputs["x"].is_connected is True

    def test_missing_node(self, network: Network) -> None:
        with pytest.raises(NodeNotFoundError):
            network.delete_node("1")


class TestConnections:
    """Tests for creating and deleting connections."""

    def test_create_marks_slot_connected(self, network: Network) -> None:
        a = network.add_node()
        b = network.add_node()
        conn = network.create_connection(a.id, b.id, "x")
        assert conn.slot == (b.id, "x")
        assert network.get_node(b.id).inputs["x"].is_connected is True

    def test_new_connection_supersedes_old(self, network: Network) -> None:
        a = network.add_node()
        b = network.add_node()
        c = network.add_node()
        network.create_connection(a.id, c.id, "x")
        network.create_connection(b.id, c.id, "x")
        assert len(network.connections) == 1
        assert network.connections[0].source_id == b.id

    def test_self_connection(self, network: Network) -> None:
        a = network.add_node(formula="x + 1", use_mod2=False)
        network.create_connection(a.id, a.id, "x")

        assert network.connections[0].source_id == network.connections[0].target_id == a.id
        assert network.get_node(a.id).inputs["x"].is_connected is True

    def test_unknown_endpoint(self, network: Network) -> None:
        a = network.add_node()
        with pytest.raises(NodeNotFoundError):
            network.create_connection(a.id, "missing", "x")

    def test_delete_connection(self, network: Network) -> None:
        a = network.add_node()
        b = network.add_node()
        network.create_connection(a.id, b.id, "x")
        changes = _record(network)

        assert network.delete_connection(b.id, "x") is True
        assert network.connections == ()
        assert network.get_node(b.id).inputs["x"].is_connected is False
        assert changes == [ChangeKind.CONNECTION_DELETED]

    def test_delete_missing_connection(self, network: Network) -> None:
        changes = _record(network)
        assert network.delete_connection("1", "x") is False
        assert changes == []


class TestSettings:
    """Tests for settings updates."""

    def test_partial_update(self, network: Network) -> None:
        settings = network.update_settings({"modBase": 3})
        assert settings.mod_base == 3
        assert settings.delay == 100.0

    def test_invalid_value(self, network: Network) -> None:
        with pytest.raises(ValueError, match="mod_base|modBase"):
            network.update_settings({"mod_base": 1})

    def test_replace(self, network: Network) -> None:
        network.update_settings(Settings(max_eval_depth=5))
        assert network.settings.max_eval_depth == 5


class TestCommitAndQuery:
    """Tests for the evaluation write path and on-demand queries."""

    def test_commit_replaces_nodes_silently(self, network: Network) -> None:
        node = network.add_node()
        changes = _record(network)
        network.commit([node.model_copy(update={"q": 1.0})])
        assert network.get_node(node.id).q == 1.0
        assert changes == []

    def test_commit_requires_same_nodes(self, network: Network) -> None:
        network.add_node()
        with pytest.raises(ValueError, match="do not match"):
            network.commit([])

    def test_query_does_not_write_back(self, network: Network) -> None:
        node = network.add_node(formula="3", use_mod2=False)
        outcome = network.query(node.id)
        assert outcome.value == 3.0
        assert network.get_node(node.id).q == 0.0

    def test_find_node_by_name(self, network: Network) -> None:
        node = network.add_node(name="Clock 1")
        assert network.find_node("Clock_1") == network.get_node(node.id)
        assert network.find_node("Clock 1").id == node.id


class TestSnapshots:
    """Tests for snapshot export and import."""

    def test_round_trip(self, network: Network) -> None:
        a = network.add_node(formula="1")
        b = network.add_node()
        network.create_connection(a.id, b.id, "x")
        restored = Network(network.snapshot())
        assert restored.nodes == network.nodes
        assert restored.connections == network.connections
        assert restored.add_node().id == "3"

    def test_snapshot_is_detached(self, network: Network) -> None:
        node = network.add_node()
        snapshot = network.snapshot()
        snapshot.nodes[0].formula = "changed"
        assert network.get_node(node.id).formula == ""

    def test_load_notifies(self, network: Network) -> None:
        changes = _record(network)
        network.load_snapshot(Snapshot(nodes=[Node(id="1")]))
        assert changes == [ChangeKind.SNAPSHOT_LOADED]
        assert [node.id for node in network.nodes] == ["1"]

    def test_duplicate_ids_are_rejected(self) -> None:
        with pytest.raises(ValueError, match="Duplicate node id"):
            Network(Snapshot(nodes=[Node(id="1"), Node(id="1")]))


class TestAdmit:
    """Tests for admitting generated batches."""

    def test_admit(self, network: Network) -> None:
        network.add_node()
        proposal = parse_proposal(
            """```json
            {"nodes": [{"id": "clk", "formula": "q + 1"}, {"id": "out", "formula": "x"}],
             "connections": [{"sourceId": "clk", "targetId": "out", "inputName": "x"}]}
            ```""",
        )
        added = network.admit(proposal)
        assert [node.id for node in added] == ["clk", "out"]
        assert network.get_node("clk").name == "clk"
        assert network.get_node("out").inputs["x"].is_connected is True

    def test_rejected_batch_adds_nothing(self, network: Network) -> None:
        network.add_node(id="a")
        proposal = parse_proposal('{"nodes": [{"id": "b"}, {"id": "a"}], "connections": []}')
        with pytest.raises(ProposalError, match="already exists"):
            network.admit(proposal)
        assert [node.id for node in network.nodes] == ["a"]
