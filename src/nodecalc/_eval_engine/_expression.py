"""Formula language: a mathjs-compatible arithmetic subset evaluated over a safe AST.

Formulas are tokenized, rewritten into Python expression syntax and parsed
with :mod:`ast` in ``eval`` mode. The resulting tree is walked by a
whitelist evaluator; nothing is ever passed to ``eval()``.

Supported:
- numbers, names, calls of names (``max(a, b)``, ``Clock()``)
- ``+ - * / %``, ``^`` (power), ``mod`` (floored modulo)
- comparisons ``== != < <= > >=``, ``and``, ``or``, ``not``
- conditionals ``cond ? a : b``
"""

import ast
import math
import operator
import re
from collections.abc import Callable, Mapping
from functools import lru_cache
from typing import Any

from nodecalc._errors import FormulaError, UndefinedVariableError

_TOKEN = re.compile(
    r"""
    (?P<number>(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)
    | (?P<name>[A-Za-z_][A-Za-z0-9_]*)
    | (?P<op>\*\*|==|!=|<=|>=|[-+*/%^(),<>?:!])
    """,
    re.VERBOSE,
)

_REWRITES = {"^": "**", "mod": "%"}

_KEYWORDS = frozenset({"and", "or", "not", "mod"})


def _mod(a: float, b: float) -> float:
    # mathjs defines mod(x, 0) as x
    if b == 0:
        return a
    return a % b


def _divide(a: float, b: float) -> float:
    if b == 0:
        if a == 0 or math.isnan(a):
            return math.nan
        return math.copysign(math.inf, a) * math.copysign(1.0, b)
    return a / b


def _round(x: float, n: float = 0) -> float:
    """Round half away from zero, as mathjs does."""
    factor = 10 ** int(n)
    return math.copysign(math.floor(abs(x) * factor + 0.5) / factor, x)


def _sign(x: float) -> int:
    return (x > 0) - (x < 0)


BINARY_OPERATORS: dict[type[ast.operator], Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: _divide,
    ast.Mod: _mod,
    ast.Pow: operator.pow,
}

UNARY_OPERATORS: dict[type[ast.unaryop], Callable[[Any], Any]] = {
    ast.USub: operator.neg,
    ast.UAdd: operator.pos,
    ast.Not: operator.not_,
}

COMPARISONS: dict[type[ast.cmpop], Callable[[Any, Any], bool]] = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
}

FUNCTION_LIBRARY: Mapping[str, Any] = {
    "abs": abs,
    "ceil": math.ceil,
    "floor": math.floor,
    "round": _round,
    "fix": math.trunc,
    "sign": _sign,
    "sqrt": math.sqrt,
    "cbrt": math.cbrt,
    "exp": math.exp,
    "log": math.log,
    "log2": math.log2,
    "log10": math.log10,
    "pow": math.pow,
    "mod": _mod,
    "min": min,
    "max": max,
    "hypot": math.hypot,
    "sin": math.sin,
    "cos": math.cos,
    "tan": math.tan,
    "asin": math.asin,
    "acos": math.acos,
    "atan": math.atan,
    "atan2": math.atan2,
    "sinh": math.sinh,
    "cosh": math.cosh,
    "tanh": math.tanh,
    "xor": lambda a, b: bool(a) != bool(b),
    "bitAnd": lambda a, b: int(a) & int(b),
    "bitOr": lambda a, b: int(a) | int(b),
    "bitXor": lambda a, b: int(a) ^ int(b),
    "pi": math.pi,
    "e": math.e,
    "true": True,
    "false": False,
}


def _tokenize(formula: str) -> list[str]:
    tokens: list[str] = []
    pos = 0
    while pos < len(formula):
        if formula[pos].isspace():
            pos += 1
            continue
        match = _TOKEN.match(formula, pos)
        if match is None:
            msg = f"Formula error: unexpected character {formula[pos]!r} at position {pos}"
            raise FormulaError(msg)
        tokens.append(match.group())
        pos = match.end()
    # `mod` after an operand is the infix operator, anywhere else it names the library function.
    return [
        _REWRITES.get(token, token) if token != "mod" or _is_operand(previous) else token
        for token, previous in zip(tokens, ["", *tokens], strict=False)
    ]


def _is_operand(token: str) -> bool:
    if token == ")":
        return True
    if token in _KEYWORDS:
        return False
    return bool(token) and (token[0].isalnum() or token[0] in "._")


def _split_top_level(tokens: list[str], separator: str) -> list[list[str]]:
    parts: list[list[str]] = [[]]
    depth = 0
    for token in tokens:
        if token == "(":
            depth += 1
        elif token == ")":
            depth -= 1
        if token == separator and depth == 0:
            parts.append([])
        else:
            parts[-1].append(token)
    return parts


def _conditional(parts: list[str]) -> str:
    """Rewrite ``c ? a : b`` (lowest precedence, right associative) into Python syntax."""
    if "?" not in parts:
        if ":" in parts:
            msg = "Formula error: ':' without matching '?'"
            raise FormulaError(msg)
        return " ".join(parts)

    mark = parts.index("?")
    nested = 0
    for index in range(mark + 1, len(parts)):
        if parts[index] == "?":
            nested += 1
        elif parts[index] == ":":
            if nested == 0:
                condition = " ".join(parts[:mark])
                when_true = _conditional(parts[mark + 1 : index])
                when_false = _conditional(parts[index + 1 :])
                return f"(({when_true}) if ({condition}) else ({when_false}))"
            nested -= 1
    msg = "Formula error: '?' without matching ':'"
    raise FormulaError(msg)


def _translate(tokens: list[str]) -> str:
    parts: list[str] = []
    index = 0
    while index < len(tokens):
        if tokens[index] != "(":
            parts.append(tokens[index])
            index += 1
            continue
        depth = 0
        end = index
        for end in range(index, len(tokens)):
            if tokens[end] == "(":
                depth += 1
            elif tokens[end] == ")":
                depth -= 1
                if depth == 0:
                    break
        if depth != 0:
            msg = "Formula error: unbalanced parentheses"
            raise FormulaError(msg)
        inner = tokens[index + 1 : end]
        arguments = [_translate(arg) for arg in _split_top_level(inner, ",")] if inner else []
        parts.append("(" + ", ".join(arguments) + ")")
        index = end + 1
    return _conditional(parts)


@lru_cache(maxsize=1024)
def parse_formula(formula: str) -> ast.Expression:
    """Parse a formula into an expression tree.

    Raises:
        FormulaError: If the formula is not valid in the formula language.

    """
    try:
        source = _translate(_tokenize(formula))
        return ast.parse(source, mode="eval")
    except SyntaxError as e:
        msg = f"Formula error: invalid syntax in {formula!r}"
        raise FormulaError(msg) from e
    except (RecursionError, MemoryError) as e:
        msg = "Formula error: formula is too deeply nested"
        raise FormulaError(msg) from e


def free_names(formula: str) -> tuple[str, ...]:
    """Return the identifiers a formula references, in order of first appearance."""
    tree = parse_formula(formula)
    names = (node.id for node in ast.walk(tree) if isinstance(node, ast.Name))
    return tuple(dict.fromkeys(names))


class _Evaluator:
    """Walk a parsed formula against a scope, rejecting every node outside the grammar."""

    def __init__(self, scope: Mapping[str, Any]) -> None:
        self.scope = scope

    def visit(self, node: ast.AST) -> Any:  # noqa: C901, PLR0911
        if isinstance(node, ast.Constant):
            if isinstance(node.value, bool):
                return node.value
            if isinstance(node.value, int | float):
                return float(node.value)
            msg = f"Formula error: unsupported constant {node.value!r}"
            raise FormulaError(msg)

        if isinstance(node, ast.Name):
            return self.scope[node.id]

        if isinstance(node, ast.BinOp) and type(node.op) in BINARY_OPERATORS:
            return BINARY_OPERATORS[type(node.op)](self.visit(node.left), self.visit(node.right))

        if isinstance(node, ast.UnaryOp) and type(node.op) in UNARY_OPERATORS:
            return UNARY_OPERATORS[type(node.op)](self.visit(node.operand))

        if isinstance(node, ast.BoolOp):
            if isinstance(node.op, ast.And):
                return all(self.visit(value) for value in node.values)
            return any(self.visit(value) for value in node.values)

        if isinstance(node, ast.Compare):
            left = self.visit(node.left)
            for op, comparator in zip(node.ops, node.comparators, strict=True):
                if type(op) not in COMPARISONS:
                    break
                right = self.visit(comparator)
                if not COMPARISONS[type(op)](left, right):
                    return False
                left = right
            else:
                return True

        if isinstance(node, ast.IfExp):
            return self.visit(node.body) if self.visit(node.test) else self.visit(node.orelse)

        if isinstance(node, ast.Call) and isinstance(node.func, ast.Name) and not node.keywords:
            func = self.scope[node.func.id]
            if not callable(func):
                msg = f"Formula error: {node.func.id} is not a function"
                raise FormulaError(msg)
            return func(*(self.visit(arg) for arg in node.args))

        msg = f"Formula error: unsupported expression {ast.unparse(node)!r}"
        raise FormulaError(msg)


def evaluate_formula(formula: str, scope: Mapping[str, Any]) -> float:
    """Evaluate a formula against a scope.

    Args:
        formula: Formula text.
        scope: Names visible to the formula: values and callables.

    Returns:
        The numeric result. Booleans become 1.0 / 0.0. NaN is returned as is.

    Raises:
        UndefinedVariableError: If the formula uses names absent from ``scope``.
        FormulaError: If parsing or evaluation fails.

    """
    missing = [name for name in free_names(formula) if name not in scope]
    if missing:
        raise UndefinedVariableError(missing)

    tree = parse_formula(formula)
    try:
        result = _Evaluator(scope).visit(tree.body)
    except (ArithmeticError, ValueError, TypeError, RecursionError) as e:
        msg = f"Formula error: {e}"
        raise FormulaError(msg) from e

    if isinstance(result, bool | int | float):
        return float(result)
    msg = f"Formula error: result is not a real number: {result!r}"
    raise FormulaError(msg)
