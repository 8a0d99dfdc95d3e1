"""Tests for scope construction and single-node evaluation."""

import pytest

from nodecalc._eval_engine import build_scope, evaluate_node, floored_mod, normalize_output
from nodecalc._models import Connection, Node, NodeInput, Settings


class TestFlooredMod:
    """Tests for the output normalization."""

    @pytest.mark.parametrize(
        ("value", "base", "expected"),
        [
            (-1, 2, 1),
            (-1, 3, 2),
            (5, 2, 1),
            (4, 2, 0),
            (2.5, 2, 0.5),
        ],
    )
    def test_result_in_range(self, value: float, base: int, expected: float) -> None:
        assert floored_mod(value, base) == expected

    def test_nan_becomes_zero(self) -> None:
        node = Node(id="1", use_mod2=False)
        assert normalize_output(float("nan"), node, Settings()) == 0.0

    def test_without_mod_value_is_kept(self) -> None:
        node = Node(id="1", use_mod2=False)
        assert normalize_output(-7.5, node, Settings()) == -7.5


class TestBuildScope:
    """Tests for the environment visible to a formula."""

    def test_q_and_capital_q(self) -> None:
        node = Node(id="1", q=3.0)
        scope = build_scope(node, [node], [], Settings())
        assert scope["q"] == 3.0
        assert scope["Q"] == 3.0

    def test_literal_input(self) -> None:
        node = Node(id="1", inputs={"a": NodeInput(value=4.0)})
        scope = build_scope(node, [node], [], Settings())
        assert scope["a"] == 4.0

    def test_connected_input_reads_source(self) -> None:
        src = Node(id="1", q=1.0)
        node = Node(id="2", inputs={"a": NodeInput(value=9.0, is_connected=True)})
        connections = [Connection(source_id="1", target_id="2", input_name="a")]
        scope = build_scope(node, [src, node], connections, Settings())
        assert scope["a"] == 1.0

    def test_dangling_connected_input_reads_zero(self) -> None:
        node = Node(id="2", inputs={"a": NodeInput(value=9.0, is_connected=True)})
        scope = build_scope(node, [node], [], Settings())
        assert scope["a"] == 0.0

    def test_node_reference_reads_live_output(self) -> None:
        clock = Node(id="1", name="Clock 1", q=0.0)
        node = Node(id="2")
        nodes = [clock, node]
        scope = build_scope(node, nodes, [], Settings())
        clock.q = 1.0
        assert scope["Clock_1"]() == 1.0

    def test_own_name_is_not_in_scope(self) -> None:
        node = Node(id="1", name="Self")
        scope = build_scope(node, [node], [], Settings())
        assert "Self" not in scope

    def test_input_shadows_node_reference(self) -> None:
        other = Node(id="1", name="a", q=1.0)
        node = Node(id="2", inputs={"a": NodeInput(value=5.0)})
        scope = build_scope(node, [other, node], [], Settings())
        assert scope["a"] == 5.0

    def test_node_reference_shadows_library(self) -> None:
        other = Node(id="1", name="max", q=1.0)
        node = Node(id="2")
        scope = build_scope(node, [other, node], [], Settings())
        assert scope["max"]() == 1.0


class TestEvaluateNode:
    """Tests for evaluate_node."""

    def _evaluate(self, node: Node, nodes: list[Node] | None = None, settings: Settings | None = None):  # noqa: ANN202
        settings = settings or Settings()
        nodes = nodes or [node]
        return evaluate_node(node, build_scope(node, nodes, [], settings), settings)

    def test_mod2_output(self) -> None:
        node = Node(id="1", formula="a + b", inputs={"a": NodeInput(value=1.0), "b": NodeInput(value=1.0)})
        outcome = self._evaluate(node)
        assert outcome.value == 0.0
        assert outcome.success

    def test_negative_output_is_normalized(self) -> None:
        node = Node(id="1", formula="-1")
        assert self._evaluate(node).value == 1.0
        assert self._evaluate(node, settings=Settings(mod_base=3)).value == 2.0

    def test_raw_output_without_mod(self) -> None:
        node = Node(id="1", formula="a * 10", use_mod2=False, inputs={"a": NodeInput(value=1.5)})
        assert self._evaluate(node).value == 15.0

    def test_toggle(self) -> None:
        node = Node(id="1", formula="q + 1", q=0.0)
        assert self._evaluate(node).value == 1.0
        node.q = 1.0
        assert self._evaluate(node).value == 0.0

    def test_self_reference_is_stable(self) -> None:
        node = Node(id="1", formula="q", q=5.0, use_mod2=False)
        assert self._evaluate(node).value == 5.0

    def test_undefined_variable(self) -> None:
        node = Node(id="1", formula="a + z", q=1.0)
        outcome = self._evaluate(node)
        assert outcome.value == 0.0
        assert outcome.error == "undefined variable: a, z"
        assert not outcome.success

    def test_nan_is_zero(self) -> None:
        node = Node(id="1", formula="0 / 0", use_mod2=False)
        outcome = self._evaluate(node)
        assert outcome.value == 0.0
        assert outcome.success

    def test_empty_formula_keeps_output(self) -> None:
        node = Node(id="1", formula="  ", q=7.0)
        outcome = self._evaluate(node)
        assert outcome.value == 7.0
        assert outcome.success

    def test_reference_to_other_node(self) -> None:
        clock = Node(id="1", name="Clock", q=1.0)
        node = Node(id="2", formula="Clock() + 1")
        assert self._evaluate(node, [clock, node]).value == 0.0

    def test_undefined_variable_names_only_missing_ones(self) -> None:
        node = Node(id="1", formula="a + z", q=1.0, inputs={"a": NodeInput(value=1.0)})
        outcome = self._evaluate(node)
        assert outcome.value == 0.0
        assert outcome.error == "undefined variable: z"
