"""Thin helpers around the esprima/escodegen toolkit.

Parsing, printing, node construction and the node-shape predicates shared by
every pass live here so the passes never touch the toolkit directly.
"""

from __future__ import annotations

import json
import logging
import math
import re
from typing import Any, Dict, Iterator, List, Optional, Tuple

import escodegen
import esprima
import jsbeautifier
from esprima import nodes

from .exceptions import JSParseError

LOG = logging.getLogger(__name__)

# Child fields per node type, in document order.
VISITOR_KEYS: Dict[str, Tuple[str, ...]] = {
    "Program": ("body",),
    "ExpressionStatement": ("expression",),
    "BlockStatement": ("body",),
    "EmptyStatement": (),
    "DebuggerStatement": (),
    "WithStatement": ("object", "body"),
    "ReturnStatement": ("argument",),
    "LabeledStatement": ("label", "body"),
    "BreakStatement": ("label",),
    "ContinueStatement": ("label",),
    "IfStatement": ("test", "consequent", "alternate"),
    "SwitchStatement": ("discriminant", "cases"),
    "SwitchCase": ("test", "consequent"),
    "ThrowStatement": ("argument",),
    "TryStatement": ("block", "handler", "finalizer"),
    "CatchClause": ("param", "body"),
    "WhileStatement": ("test", "body"),
    "DoWhileStatement": ("body", "test"),
    "ForStatement": ("init", "test", "update", "body"),
    "ForInStatement": ("left", "right", "body"),
    "ForOfStatement": ("left", "right", "body"),
    "FunctionDeclaration": ("id", "params", "body"),
    "FunctionExpression": ("id", "params", "body"),
    "ArrowFunctionExpression": ("params", "body"),
    "VariableDeclaration": ("declarations",),
    "VariableDeclarator": ("id", "init"),
    "ClassDeclaration": ("id", "superClass", "body"),
    "ClassExpression": ("id", "superClass", "body"),
    "ClassBody": ("body",),
    "MethodDefinition": ("key", "value"),
    "ThisExpression": (),
    "Super": (),
    "Identifier": (),
    "Literal": (),
    "ArrayExpression": ("elements",),
    "ObjectExpression": ("properties",),
    "Property": ("key", "value"),
    "UnaryExpression": ("argument",),
    "UpdateExpression": ("argument",),
    "BinaryExpression": ("left", "right"),
    "LogicalExpression": ("left", "right"),
    "AssignmentExpression": ("left", "right"),
    "ConditionalExpression": ("test", "consequent", "alternate"),
    "CallExpression": ("callee", "arguments"),
    "NewExpression": ("callee", "arguments"),
    "MemberExpression": ("object", "property"),
    "SequenceExpression": ("expressions",),
    "SpreadElement": ("argument",),
    "RestElement": ("argument",),
    "YieldExpression": ("argument",),
    "AwaitExpression": ("argument",),
    "TemplateLiteral": ("quasis", "expressions"),
    "TaggedTemplateExpression": ("tag", "quasi"),
    "TemplateElement": (),
    "AssignmentPattern": ("left", "right"),
    "ArrayPattern": ("elements",),
    "ObjectPattern": ("properties",),
}

FUNCTION_TYPES = frozenset(
    {"FunctionDeclaration", "FunctionExpression", "ArrowFunctionExpression"}
)

_IDENTIFIER_RE = re.compile(r"^[a-zA-Z_$][a-zA-Z0-9_$]*$")
_NON_DECIMAL_RE = re.compile(r"^0(?:[xXoObB]|[0-7]+$)")
_SKIPPED_FIELDS = {"type", "range", "loc", "leadingComments", "trailingComments"}


# ---------------------------------------------------------------------------
# Toolkit boundary


def parse(source: str) -> Any:
    """Parse ``source`` as a script, falling back to module grammar."""

    try:
        return esprima.parseScript(source)
    except Exception as script_exc:
        try:
            return esprima.parseModule(source)
        except Exception:
            raise JSParseError(str(script_exc)) from script_exc


def beautify_source(code: str, *, indent_size: int = 2) -> str:
    options = jsbeautifier.default_options()
    options.indent_size = indent_size
    return jsbeautifier.beautify(code, options)


def generate(ast: Any, *, beautify: bool = False, indent_size: int = 2) -> str:
    """Print ``ast`` back to source text."""

    code = escodegen.generate(ast)
    if beautify:
        code = beautify_source(code, indent_size=indent_size)
    return code


def describe(node: Any) -> str:
    """Best-effort source rendering of ``node`` for log messages."""

    try:
        return escodegen.generate(node)
    except Exception:  # pragma: no cover - logging aid only
        return f"<{node_type(node)}>"


# ---------------------------------------------------------------------------
# Generic node access


def node_type(value: Any) -> Optional[str]:
    kind = getattr(value, "type", None)
    return kind if isinstance(kind, str) else None


def is_node(value: Any) -> bool:
    return node_type(value) is not None


def child_fields(node: Any) -> Tuple[str, ...]:
    kind = node_type(node)
    keys = VISITOR_KEYS.get(kind) if kind else None
    if keys is not None:
        return keys
    fields: List[str] = []
    for name, value in vars(node).items():
        if name in _SKIPPED_FIELDS:
            continue
        if is_node(value) or (isinstance(value, list) and any(is_node(v) for v in value)):
            fields.append(name)
    return tuple(fields)


def iter_children(node: Any) -> Iterator[Any]:
    for name in child_fields(node):
        value = getattr(node, name, None)
        if isinstance(value, list):
            for item in value:
                if is_node(item):
                    yield item
        elif is_node(value):
            yield value


def iter_nodes(root: Any, kind: str | None = None) -> Iterator[Any]:
    """Yield ``root`` and its descendants in document order."""

    stack = [root]
    while stack:
        node = stack.pop()
        if kind is None or node_type(node) == kind:
            yield node
        stack.extend(reversed(list(iter_children(node))))


def _clone_value(value: Any) -> Any:
    if isinstance(value, list):
        return [_clone_value(item) for item in value]
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if getattr(value, "__dict__", None) is None or isinstance(value, type):
        return value
    clone = value.__class__.__new__(value.__class__)
    for name, item in vars(value).items():
        clone.__dict__[name] = _clone_value(item)
    return clone


def clone_node(node: Any) -> Any:
    """Deep copy a subtree so it can occupy another parent slot."""

    return _clone_value(node)


def shallow_clone(node: Any) -> Any:
    clone = node.__class__.__new__(node.__class__)
    clone.__dict__.update(vars(node))
    return clone


# ---------------------------------------------------------------------------
# Shape predicates


def is_identifier(node: Any, name: str | None = None) -> bool:
    if node_type(node) != "Identifier":
        return False
    return name is None or node.name == name


def is_function(node: Any) -> bool:
    return node_type(node) in FUNCTION_TYPES


def is_number_literal(node: Any) -> bool:
    if node_type(node) != "Literal":
        return False
    value = node.value
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def number_value(node: Any) -> float:
    """Double value of a numeric literal; integers past the double range read as Infinity."""

    try:
        return float(node.value)
    except OverflowError:
        return math.inf


def is_string_literal(node: Any) -> bool:
    return node_type(node) == "Literal" and isinstance(node.value, str)


def is_valid_identifier(name: str) -> bool:
    return bool(_IDENTIFIER_RE.match(name))


def has_non_decimal_raw(node: Any) -> bool:
    """True for numeric literals written as hex, octal or binary."""

    if not is_number_literal(node):
        return False
    raw = getattr(node, "raw", None)
    return isinstance(raw, str) and bool(_NON_DECIMAL_RE.match(raw))


def is_plain_number_node(node: Any) -> bool:
    """True when ``node`` is already the canonical form :func:`number_node` emits."""

    if node_type(node) == "UnaryExpression" and node.operator == "-":
        node = node.argument
    if is_identifier(node, "Infinity") or is_identifier(node, "NaN"):
        return True
    return is_number_literal(node) and not has_non_decimal_raw(node)


# ---------------------------------------------------------------------------
# Builders


def format_number(value: float) -> str:
    """Decimal JavaScript spelling of a finite, non-negative number."""

    if float(value).is_integer() and abs(value) < 1e21:
        return str(int(value))
    text = repr(float(value))
    mantissa, sep, exponent = text.partition("e")
    if not sep:
        return text
    sign = "-" if exponent.startswith("-") else "+"
    return f"{mantissa}e{sign}{exponent.lstrip('+-').lstrip('0') or '0'}"


def _literal_value(value: float) -> int | float:
    if float(value).is_integer() and abs(value) < 2 ** 53:
        return int(value)
    return float(value)


def identifier(name: str) -> Any:
    return nodes.Identifier(name)


def number_node(value: float) -> Any:
    """Build the ESTree spelling of ``value``.

    Literals are never negative in ESTree, so negative values become a unary
    minus over a literal and non-finite values use the global identifiers.
    """

    if math.isnan(value):
        return identifier("NaN")
    negative = value < 0 or (value == 0 and math.copysign(1.0, value) < 0)
    magnitude = abs(value)
    if math.isinf(magnitude):
        operand = identifier("Infinity")
    else:
        operand = nodes.Literal(_literal_value(magnitude), format_number(magnitude))
    if negative:
        return nodes.UnaryExpression("-", operand)
    return operand


def string_node(value: str) -> Any:
    return nodes.Literal(value, json.dumps(value, ensure_ascii=False))


__all__ = [
    "FUNCTION_TYPES",
    "VISITOR_KEYS",
    "beautify_source",
    "child_fields",
    "clone_node",
    "describe",
    "format_number",
    "generate",
    "has_non_decimal_raw",
    "identifier",
    "is_function",
    "is_identifier",
    "is_node",
    "is_number_literal",
    "is_plain_number_node",
    "is_string_literal",
    "is_valid_identifier",
    "iter_children",
    "iter_nodes",
    "node_type",
    "number_node",
    "number_value",
    "parse",
    "shallow_clone",
    "string_node",
]
