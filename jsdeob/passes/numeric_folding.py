"""Normalise numeric literals and fold constant arithmetic."""

from __future__ import annotations

import logging
import math
import operator
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from ..js_ast import (
    describe,
    has_non_decimal_raw,
    is_number_literal,
    is_plain_number_node,
    node_type,
    number_node,
    number_value,
)
from ..plugin import PassState, Plugin
from ..traverse import NodePath

LOG = logging.getLogger(__name__)


def _js_div(left: float, right: float) -> float:
    try:
        return left / right
    except ZeroDivisionError:
        if left == 0 or math.isnan(left):
            return math.nan
        return math.copysign(math.inf, left) * math.copysign(1.0, right)


def _js_mod(left: float, right: float) -> float:
    if right == 0 or math.isnan(left) or math.isnan(right) or math.isinf(left):
        return math.nan
    if math.isinf(right):
        return left
    return math.fmod(left, right)


def _odd_integer(value: float) -> bool:
    return float(value).is_integer() and int(value) % 2 == 1


def _js_pow(base: float, exponent: float) -> float:
    if math.isnan(exponent):
        return math.nan
    if exponent == 0:
        return 1.0
    if abs(base) == 1 and math.isinf(exponent):
        return math.nan
    try:
        return math.pow(base, exponent)
    except OverflowError:
        if base < 0 and _odd_integer(exponent):
            return -math.inf
        return math.inf
    except ValueError:
        if base == 0:
            if math.copysign(1.0, base) < 0 and _odd_integer(exponent):
                return -math.inf
            return math.inf
        return math.nan


_ALLOWED_BINOPS: Dict[str, Callable[[float, float], float]] = {
    "+": operator.add,
    "-": operator.sub,
    "*": operator.mul,
    "/": _js_div,
    "%": _js_mod,
    "**": _js_pow,
}


def _evaluate(node: Any) -> Optional[float]:
    kind = node_type(node)
    if kind == "Literal":
        return number_value(node) if is_number_literal(node) else None
    if kind == "UnaryExpression" and node.operator == "-":
        operand = _evaluate(node.argument)
        return None if operand is None else -operand
    if kind == "BinaryExpression":
        op = _ALLOWED_BINOPS.get(node.operator)
        if op is None:
            return None
        left = _evaluate(node.left)
        if left is None:
            return None
        right = _evaluate(node.right)
        if right is None:
            return None
        return op(left, right)
    return None


def evaluate_numeric(node: Any) -> Optional[float]:
    """Return the double value of ``node`` or ``None`` when it is not constant."""

    try:
        return _evaluate(node)
    except RecursionError:
        return None


@dataclass
class NumericFoldingState(PassState):
    normalized: int = 0
    folded: int = 0

    def metadata(self) -> Dict[str, object]:
        metadata = super().metadata()
        metadata["literals_normalized"] = self.normalized
        metadata["expressions_folded"] = self.folded
        return metadata


def _normalize_literal(path: NodePath, state: NumericFoldingState) -> None:
    node = path.node
    if not has_non_decimal_raw(node):
        return
    replacement = number_node(number_value(node))
    LOG.debug("converted %s to %s", node.raw, describe(replacement))
    path.replace_with(replacement)
    state.normalized += 1
    state.changes += 1


def _fold_expression(path: NodePath, state: NumericFoldingState) -> None:
    node = path.node
    if is_plain_number_node(node):
        return
    value = evaluate_numeric(node)
    if value is None:
        return
    replacement = number_node(value)
    if LOG.isEnabledFor(logging.DEBUG):
        LOG.debug("evaluated %s -> %s", describe(node), describe(replacement))
    path.replace_with(replacement)
    state.folded += 1
    state.changes += 1


def _fold_assignment(path: NodePath, state: NumericFoldingState) -> None:
    node = path.node
    right = node.right
    if is_plain_number_node(right):
        return
    value = evaluate_numeric(right)
    if value is None:
        return
    node.right = number_node(value)
    LOG.debug("evaluated assignment right-hand side to %s", describe(node.right))
    state.folded += 1
    state.changes += 1


def _fold_unary(path: NodePath, state: NumericFoldingState) -> None:
    if path.node.operator != "-":
        return
    _fold_expression(path, state)


PLUGIN = Plugin(
    name="numeric_folding",
    visitor={
        "Literal": _normalize_literal,
        "BinaryExpression": _fold_expression,
        "UnaryExpression": _fold_unary,
        "AssignmentExpression": _fold_assignment,
    },
    state_factory=NumericFoldingState,
)


def run(ast: Any, options: Dict[str, Any] | None = None) -> Dict[str, object]:
    return PLUGIN.run(ast, options)


__all__ = ["PLUGIN", "NumericFoldingState", "evaluate_numeric", "run"]
