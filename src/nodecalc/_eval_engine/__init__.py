"""Evaluation engine module for nodecalc.

This module provides the pieces that turn a node's formula into its output:

- parse_formula / evaluate_formula: The formula language
- build_scope: Environment visible to one node's formula
- evaluate_node: One node, with modular normalization and error capture
- RecursiveEvaluator: Cache-free, depth-first evaluation of a single node
"""

from ._engine import EvaluationOutcome, evaluate_node, floored_mod, normalize_output
from ._expression import FUNCTION_LIBRARY, evaluate_formula, free_names, parse_formula
from ._recursive import DepthCounter, RecursiveEvaluator
from ._resolution import build_scope, connected_source

__all__ = [
    "FUNCTION_LIBRARY",
    "DepthCounter",
    "EvaluationOutcome",
    "RecursiveEvaluator",
    "build_scope",
    "connected_source",
    "evaluate_formula",
    "evaluate_node",
    "floored_mod",
    "free_names",
    "normalize_output",
    "parse_formula",
]
