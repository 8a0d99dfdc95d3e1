"""Tests for the evaluation order of a network."""

import logging

import pytest

from nodecalc._graph import DependencyExtractor, build_dependency_graph, build_order
from nodecalc._models import Connection, Node


def _node(node_id: str, name: str, formula: str = "") -> Node:
    return Node(id=node_id, name=name, formula=formula)


class TestBuildOrder:
    """Tests for build_order."""

    def test_empty_network(self) -> None:
        order = build_order([], [], DependencyExtractor())
        assert order.order == ()
        assert order.has_cycle is False

    def test_references_before_dependents(self) -> None:
        nodes = [_node("1", "C", "B() + 1"), _node("2", "B", "A() + 1"), _node("3", "A", "1")]
        order = build_order(nodes, [], DependencyExtractor())
        assert order.order == ("3", "2", "1")
        assert order.cyclic == ()

    def test_connections_before_dependents(self) -> None:
        nodes = [_node("1", "Out", "x"), _node("2", "Src", "3")]
        connections = [Connection(source_id="2", target_id="1", input_name="x")]
        order = build_order(nodes, connections, DependencyExtractor())
        assert order.order == ("2", "1")

    def test_every_node_exactly_once(self) -> None:
        nodes = [
            _node("1", "A", "D() + 1"),
            _node("2", "B", "A()"),
            _node("3", "C", "A() + B()"),
            _node("4", "D"),
            _node("5", "E", "E() + 1"),
        ]
        order = build_order(nodes, [], DependencyExtractor())
        assert sorted(order.order) == ["1", "2", "3", "4", "5"]
        graph = build_dependency_graph(nodes, [], DependencyExtractor())
        for node_id in order.order:
            for dep in graph.predecessors(node_id):
                assert order.order.index(dep) < order.order.index(node_id)

    def test_cycle_is_tolerated(self, caplog: pytest.LogCaptureFixture) -> None:
        nodes = [_node("1", "Free", "1"), _node("2", "A", "B()"), _node("3", "B", "A()")]
        with caplog.at_level(logging.WARNING, logger="nodecalc"):
            order = build_order(nodes, [], DependencyExtractor())

        assert order.order == ("1", "2", "3")
        assert order.cyclic == ("2", "3")
        assert order.has_cycle is True
        assert "Cycle detected" in caplog.text

    def test_cycle_fallback_uses_collection_order(self) -> None:
        nodes = [_node("9", "B", "A()"), _node("4", "A", "B()")]
        first = build_order(nodes, [], DependencyExtractor())
        second = build_order(nodes, [], DependencyExtractor())
        assert first.order == second.order == ("9", "4")

    def test_self_connection_in_loaded_data_is_a_cycle(self) -> None:
        nodes = [_node("1", "A", "x")]
        connections = [Connection(source_id="1", target_id="1", input_name="x")]
        order = build_order(nodes, connections, DependencyExtractor())
        assert order.order == ("1",)
        assert order.cyclic == ("1",)
