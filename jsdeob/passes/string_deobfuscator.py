"""Recover literals hidden behind string-table decoder functions.

Obfuscators move every string into one array and replace each use with a
call such as ``_0x3f2a(0x1b3)`` to a small decoder that subtracts a fixed
offset and indexes the array.  The decoder is usually aliased under other
names in nested scopes.

The pass runs in two phases over one scope index:

* collection (on ``Program`` enter) records, per scope, the all-string
  arrays, the names bound to functions and identifier-to-identifier aliases;
* resolution (on every ``CallExpression``) follows aliases outward, finds the
  decoder, reads its offset and backing array and, when the sole argument is
  a numeric literal inside the array bounds, replaces the call with the
  string.

Anything that cannot be proven leaves the call as it is.
"""

from __future__ import annotations

import codecs
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

from ..js_ast import (
    FUNCTION_TYPES,
    is_identifier,
    is_number_literal,
    is_string_literal,
    node_type,
    number_value,
    string_node,
)
from ..plugin import PassState, Plugin
from ..scope import Scope
from ..traverse import NodePath

LOG = logging.getLogger(__name__)

# One obfuscator ships its table pre-shuffled and rotates it back at start-up
# with ``push(shift())`` 0xdd times.  Only the array with this name is rotated.
ROTATED_ARRAY_NAME = "r"
ARRAY_ROTATION = 0xDD

_ARRAY = "array"
_FUNCTION = "function"
_ALIAS = "alias"
_OPAQUE = "opaque"


def rotate_left(values: List[str], count: int) -> List[str]:
    if not values:
        return []
    shift = count % len(values)
    return values[shift:] + values[:shift]


def rot13(value: str) -> str:
    return codecs.decode(value, "rot_13")


@dataclass
class ScopedAnalysisState:
    """Side table for one lexical scope, built during a single pass run."""

    string_arrays: Dict[str, List[str]] = field(default_factory=dict)
    deobfuscation_functions: Dict[str, Any] = field(default_factory=dict)
    function_aliases: Dict[str, str] = field(default_factory=dict)
    ambiguous: Set[str] = field(default_factory=set)
    _claims: Dict[str, Tuple[str, Any]] = field(default_factory=dict)

    def record(self, name: str, kind: str, value: Any) -> None:
        """Record ``name`` as ``kind``; conflicting records drop the name."""

        if name in self.ambiguous:
            return
        claim = self._claims.get(name)
        if claim is None:
            self._claims[name] = (kind, value)
            if kind == _ARRAY:
                self.string_arrays[name] = value
            elif kind == _FUNCTION:
                self.deobfuscation_functions[name] = value
            elif kind == _ALIAS:
                self.function_aliases[name] = value
            return
        previous_kind, previous = claim
        if previous_kind == kind and (previous is value or (kind != _FUNCTION and previous == value)):
            return
        LOG.debug("conflicting definitions for %s; ignoring it", name)
        self.ambiguous.add(name)
        self.string_arrays.pop(name, None)
        self.deobfuscation_functions.pop(name, None)
        self.function_aliases.pop(name, None)


@dataclass(frozen=True)
class DecoderShape:
    array_name: str
    offset: float


@dataclass
class StringDeobfuscatorState(PassState):
    tables: Dict[Scope, ScopedAnalysisState] = field(default_factory=dict)
    decoders: Dict[int, Optional[DecoderShape]] = field(default_factory=dict)
    recovered: int = 0

    def table(self, scope: Scope) -> ScopedAnalysisState:
        table = self.tables.get(scope)
        if table is None:
            table = ScopedAnalysisState()
            self.tables[scope] = table
        return table

    def metadata(self) -> Dict[str, object]:
        metadata = super().metadata()
        metadata["strings_recovered"] = self.recovered
        metadata["string_arrays"] = sum(len(t.string_arrays) for t in self.tables.values())
        metadata["decoder_candidates"] = sum(
            len(t.deobfuscation_functions) for t in self.tables.values()
        )
        metadata["aliases"] = sum(len(t.function_aliases) for t in self.tables.values())
        return metadata


# ---------------------------------------------------------------------------
# Collection


def _string_array(name: str, node: Any, options: Dict[str, Any]) -> Optional[List[str]]:
    elements = node.elements or []
    if not all(is_string_literal(element) for element in elements):
        return None
    values = [element.value for element in elements]
    if options.get("rot13_strings"):
        values = [rot13(value) for value in values]
    if name == options.get("rotated_array_name", ROTATED_ARRAY_NAME):
        values = rotate_left(values, int(options.get("array_rotation", ARRAY_ROTATION)))
    return values


def _classify(table: ScopedAnalysisState, name: str, value: Any, options: Dict[str, Any]) -> None:
    kind = node_type(value)
    if kind == "ArrayExpression":
        strings = _string_array(name, value, options)
        if strings is not None:
            table.record(name, _ARRAY, strings)
            return
    elif kind in FUNCTION_TYPES:
        table.record(name, _FUNCTION, value)
        return
    elif kind == "Identifier":
        if value.name != name:
            table.record(name, _ALIAS, value.name)
            return
    table.record(name, _OPAQUE, None)


def _owning_scope(scope: Optional[Scope], name: str) -> Optional[Scope]:
    if scope is None:
        return None
    binding = scope.get_binding(name)
    if binding is not None:
        return binding.scope
    # Implicit global.
    root = scope
    while root.parent is not None:
        root = root.parent
    return root


def _collect_declarator(path: NodePath, state: StringDeobfuscatorState) -> None:
    node = path.node
    if not is_identifier(node.id) or node.init is None:
        return
    scope = _owning_scope(path.scope, node.id.name)
    if scope is not None:
        _classify(state.table(scope), node.id.name, node.init, state.options)


def _collect_function(path: NodePath, state: StringDeobfuscatorState) -> None:
    node = path.node
    if node.id is None:
        return
    # path.scope is the function's own scope; its name lives one level out.
    scope = _owning_scope(path.parent_scope, node.id.name)
    if scope is not None:
        state.table(scope).record(node.id.name, _FUNCTION, node)


def _collect_assignment(path: NodePath, state: StringDeobfuscatorState) -> None:
    node = path.node
    if not is_identifier(node.left):
        return
    name = node.left.name
    scope = _owning_scope(path.scope, name)
    if scope is None:
        return
    if node.operator != "=":
        state.table(scope).record(name, _OPAQUE, None)
        return
    _classify(state.table(scope), name, node.right, state.options)


_COLLECTION_VISITOR = {
    "VariableDeclarator": _collect_declarator,
    "FunctionDeclaration": _collect_function,
    "AssignmentExpression": _collect_assignment,
}


def _collect(path: NodePath, state: StringDeobfuscatorState) -> None:
    path.traverse(_COLLECTION_VISITOR, state)
    LOG.debug(
        "collected %d string arrays, %d function candidates",
        sum(len(t.string_arrays) for t in state.tables.values()),
        sum(len(t.deobfuscation_functions) for t in state.tables.values()),
    )


# ---------------------------------------------------------------------------
# Resolution


def resolve_alias(state: StringDeobfuscatorState, scope: Scope, name: str) -> str:
    """Follow alias records outward; a cycle stops at the last name reached."""

    seen = {name}
    current = name
    while True:
        target: Optional[str] = None
        for candidate in scope.ancestors():
            table = state.tables.get(candidate)
            if table is not None and current in table.function_aliases:
                target = table.function_aliases[current]
                break
            if candidate.get_own_binding(current) is not None:
                break
        if target is None or target in seen:
            return current
        seen.add(target)
        current = target


def find_decoder(state: StringDeobfuscatorState, scope: Scope, name: str) -> Optional[Any]:
    for candidate in scope.ancestors():
        table = state.tables.get(candidate)
        if table is not None and name in table.deobfuscation_functions:
            return table.deobfuscation_functions[name]
        if candidate.get_own_binding(name) is not None:
            # Shadowed by something that is not a decoder.
            return None
    return None


def _offset_of(node: Any) -> Optional[float]:
    if node_type(node) != "BinaryExpression" or not is_number_literal(node.right):
        return None
    if node.operator == "-":
        return number_value(node.right)
    if node.operator == "+":
        return -number_value(node.right)
    return None


def _member_read(node: Any) -> Tuple[Optional[str], Optional[float]]:
    if node_type(node) != "MemberExpression" or not node.computed:
        return None, None
    if not is_identifier(node.object):
        return None, None
    return node.object.name, _offset_of(node.property)


def analyze_decoder(function: Any) -> Optional[DecoderShape]:
    """Read the backing array name and index offset off a decoder body.

    Only top-level statements are inspected.  Two different offsets or array
    names make the shape ambiguous.
    """

    body = function.body
    if node_type(body) == "BlockStatement":
        statements = list(body.body)
        reads = []
    else:
        statements = []
        reads = [body]

    offsets: Set[float] = set()
    arrays: Set[str] = set()
    for statement in statements:
        kind = node_type(statement)
        if kind == "ExpressionStatement":
            expression = statement.expression
            if node_type(expression) == "AssignmentExpression" and expression.operator == "=":
                offset = _offset_of(expression.right)
                if offset is not None:
                    offsets.add(offset)
                reads.append(expression.right)
        elif kind == "VariableDeclaration":
            for declarator in statement.declarations:
                offset = _offset_of(declarator.init)
                if offset is not None:
                    offsets.add(offset)
                reads.append(declarator.init)
        elif kind == "ReturnStatement":
            reads.append(statement.argument)

    for expression in reads:
        array_name, offset = _member_read(expression)
        if array_name is None:
            continue
        arrays.add(array_name)
        if offset is not None:
            offsets.add(offset)

    if len(arrays) != 1 or len(offsets) > 1:
        return None
    return DecoderShape(arrays.pop(), offsets.pop() if offsets else 0.0)


def find_string_array(state: StringDeobfuscatorState, scope: Scope, name: str) -> Optional[List[str]]:
    for candidate in scope.ancestors():
        table = state.tables.get(candidate)
        if table is not None and name in table.string_arrays:
            return table.string_arrays[name]
        if candidate.get_own_binding(name) is not None:
            return None
    return None


def _decoder_shape(state: StringDeobfuscatorState, function: Any) -> Optional[DecoderShape]:
    key = id(function)
    if key not in state.decoders:
        state.decoders[key] = analyze_decoder(function)
    return state.decoders[key]


def _numeric_argument(node: Any) -> Optional[float]:
    if is_number_literal(node):
        return number_value(node)
    if node_type(node) == "UnaryExpression" and node.operator == "-" and is_number_literal(node.argument):
        return -number_value(node.argument)
    return None


def _resolve_call(path: NodePath, state: StringDeobfuscatorState) -> None:
    node = path.node
    scope = path.scope
    if scope is None or not is_identifier(node.callee):
        return
    arguments = node.arguments or []
    argument = _numeric_argument(arguments[0]) if len(arguments) == 1 else None
    if argument is None:
        return

    name = resolve_alias(state, scope, node.callee.name)
    decoder = find_decoder(state, scope, name)
    if decoder is None:
        return

    shape = _decoder_shape(state, decoder)
    if shape is None:
        LOG.debug("decoder %s has no recognisable table lookup", name)
        state.skipped += 1
        return

    decoder_scope = path.scopes.get(decoder) or scope
    strings = find_string_array(state, decoder_scope, shape.array_name)
    if strings is None:
        LOG.debug("no string array %s visible from decoder %s", shape.array_name, name)
        state.skipped += 1
        return

    position = argument - shape.offset
    if not position.is_integer() or not 0 <= position < len(strings):
        LOG.debug("%s(%s) falls outside %s", node.callee.name, argument, shape.array_name)
        state.skipped += 1
        return

    value = strings[int(position)]
    LOG.debug("resolved %s(%s) -> %r", node.callee.name, argument, value)
    path.replace_with(string_node(value))
    state.recovered += 1
    state.changes += 1


PLUGIN = Plugin(
    name="string_deobfuscator",
    visitor={
        "Program": {"enter": _collect},
        "CallExpression": _resolve_call,
    },
    state_factory=StringDeobfuscatorState,
)


def run(ast: Any, options: Dict[str, Any] | None = None) -> Dict[str, object]:
    return PLUGIN.run(ast, options)


__all__ = [
    "ARRAY_ROTATION",
    "DecoderShape",
    "PLUGIN",
    "ROTATED_ARRAY_NAME",
    "ScopedAnalysisState",
    "StringDeobfuscatorState",
    "analyze_decoder",
    "find_decoder",
    "find_string_array",
    "resolve_alias",
    "rotate_left",
    "run",
]
