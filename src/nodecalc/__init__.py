"""Reactive node-formula evaluation engine."""

__all__ = [
    "ChangeKind",
    "Connection",
    "DependencyExtractor",
    "DependencyGraph",
    "EvaluationDepthError",
    "EvaluationOrder",
    "EvaluationOutcome",
    "EvaluationScheduler",
    "FormulaError",
    "Network",
    "Node",
    "NodeInput",
    "NodeNotFoundError",
    "PassResult",
    "Position",
    "Proposal",
    "ProposalError",
    "RecursiveEvaluator",
    "Settings",
    "Snapshot",
    "UndefinedVariableError",
    "build_order",
    "build_scope",
    "evaluate_formula",
    "evaluate_node",
    "floored_mod",
    "load_snapshot",
    "parse_proposal",
    "sanitize_name",
    "save_snapshot",
    "validate_proposal",
]

from ._errors import EvaluationDepthError, FormulaError, NodeNotFoundError, ProposalError, UndefinedVariableError
from ._eval_engine import (
    EvaluationOutcome,
    RecursiveEvaluator,
    build_scope,
    evaluate_formula,
    evaluate_node,
    floored_mod,
)
from ._graph import DependencyExtractor, DependencyGraph, EvaluationOrder, build_order
from ._io import load_snapshot, save_snapshot
from ._models import Connection, Node, NodeInput, Position, Settings, Snapshot, sanitize_name
from ._network import ChangeKind, Network
from ._proposal import Proposal, parse_proposal, validate_proposal
from ._scheduler import EvaluationScheduler, PassResult
