"""Evaluation of a single node formula against its scope."""

import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from nodecalc._errors import FormulaError
from nodecalc._models import Node, Settings

from ._expression import evaluate_formula

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class EvaluationOutcome:
    """Result of evaluating one node.

    Attributes:
        value: The new output. Always 0 when ``error`` is set.
        error: The error message, empty on success.

    """

    value: float
    error: str = ""

    @property
    def success(self) -> bool:
        """Check if evaluation completed without error."""
        return not self.error


def floored_mod(value: float, base: int) -> float:
    """Reduce ``value`` into ``[0, base)`` with a floored modulo.

    Example:
        >>> floored_mod(-1, 2)
        1
        >>> floored_mod(-1, 3)
        2

    """
    # A tiny negative float can round up to `base` itself on the first reduction.
    return ((value % base) + base) % base


def normalize_output(raw: float, node: Node, settings: Settings) -> float:
    """Apply the output contract: modular normalization if enabled, NaN mapped to 0."""
    value = raw
    if not math.isnan(value) and node.use_mod2:
        value = floored_mod(value, settings.mod_base)
    if math.isnan(value):
        return 0.0
    return value


def evaluate_node(node: Node, scope: Mapping[str, Any], settings: Settings) -> EvaluationOutcome:
    """Evaluate one node's formula.

    An empty formula succeeds and leaves the output unchanged. A failing
    formula yields its error message and forces the output to 0, so a stale
    value never sits beside a live error.

    Args:
        node: The node to evaluate.
        scope: The environment built for the node.
        settings: Evaluation settings (``mod_base``).

    Returns:
        The new output and error of the node.

    """
    if not node.formula.strip():
        return EvaluationOutcome(value=node.q)

    try:
        raw = evaluate_formula(node.formula, scope)
    except FormulaError as e:
        logger.debug("Node %s failed: %s", node.id, e)
        return EvaluationOutcome(value=0.0, error=str(e))

    return EvaluationOutcome(value=normalize_output(raw, node, settings))
