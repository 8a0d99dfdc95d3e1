"""Exceptions raised by the evaluation engine and the network store."""

from collections.abc import Iterable


class FormulaError(Exception):
    """A node formula could not be evaluated."""


class UndefinedVariableError(FormulaError):
    """A formula references names that are not in its scope."""

    def __init__(self, names: Iterable[str]) -> None:
        self.names = tuple(sorted(set(names)))
        super().__init__(f"undefined variable: {', '.join(self.names)}")


class EvaluationDepthError(Exception):
    """A recursive evaluation chain entered more nodes than ``max_eval_depth`` allows."""

    def __init__(self, limit: int) -> None:
        self.limit = limit
        super().__init__("Maximum evaluation depth exceeded")


class NodeNotFoundError(KeyError):
    """No node with the requested id exists in the network."""

    def __init__(self, node_id: str) -> None:
        self.node_id = node_id
        super().__init__(node_id)

    def __str__(self) -> str:
        return f"Node not found: {self.node_id}"


class ProposalError(ValueError):
    """A batch of proposed nodes and connections cannot be admitted."""
