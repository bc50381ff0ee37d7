"""Inline calls to tracked single-expression helper functions.

A call is replaced by the callee's return expression with every parameter
substituted by the matching argument.  The rewrite only happens when it can
be shown not to change what the program computes; otherwise the call stays.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterator, List, Mapping, Optional, Tuple

from ..js_ast import (
    FUNCTION_TYPES,
    clone_node,
    describe,
    is_identifier,
    is_node,
    iter_children,
    node_type,
    shallow_clone,
)
from ..plugin import PassState, Plugin
from ..scope import Scope
from ..traverse import NodePath

LOG = logging.getLogger(__name__)

# Helper names emitted by the obfuscator the pass was first written against.
DEFAULT_TRACKED_FUNCTIONS: Tuple[str, ...] = (
    "Qc",
    "Pc",
    "pc",
    "$n",
    "wc",
    "Ac",
    "Zn",
    "Gn",
    "Nc",
    "Fc",
    "Vc",
)

# Re-inlining a result that is itself a tracked call stops after this many rounds.
MAX_INLINE_DEPTH = 16

_UNSAFE_TYPES = FUNCTION_TYPES | {
    "ThisExpression",
    "Super",
    "YieldExpression",
    "AwaitExpression",
    "ClassExpression",
}
_PURE_UNARY = {"-", "+", "!", "~"}
# Nodes that may run side effects of their own inside a helper body.
_EFFECT_TYPES = {
    "CallExpression",
    "NewExpression",
    "AssignmentExpression",
    "UpdateExpression",
    "TaggedTemplateExpression",
}


def is_simple_function(function: Any) -> bool:
    """True for a block body holding exactly one ``return`` statement."""

    body = getattr(function, "body", None)
    if node_type(body) != "BlockStatement" or len(body.body) != 1:
        return False
    return node_type(body.body[0]) == "ReturnStatement"


def _references(node: Any) -> Iterator[Tuple[Any, bool]]:
    """Yield identifiers in reference position with a "conditionally evaluated" flag."""

    stack: List[Tuple[Any, bool]] = [(node, False)]
    while stack:
        current, conditional = stack.pop()
        kind = node_type(current)
        if kind == "Identifier":
            yield current, conditional
            continue
        children: List[Tuple[Any, bool]] = []
        if kind == "MemberExpression" and not current.computed:
            children.append((current.object, conditional))
        elif kind == "Property" and not current.computed:
            children.append((current.value, conditional))
        elif kind == "LogicalExpression":
            children.append((current.left, conditional))
            children.append((current.right, True))
        elif kind == "ConditionalExpression":
            children.append((current.test, conditional))
            children.append((current.consequent, True))
            children.append((current.alternate, True))
        else:
            children.extend((child, conditional) for child in iter_children(current))
        stack.extend(reversed(children))


def _is_pure(node: Any) -> bool:
    kind = node_type(node)
    if kind in ("Literal", "Identifier", "ThisExpression"):
        return True
    if kind == "UnaryExpression" and node.operator in _PURE_UNARY:
        return node_type(node.argument) == "Literal"
    return False


def _mentions(node: Any, substitutions: Mapping[str, Any]) -> bool:
    return any(ident.name in substitutions for ident, _ in _references(node))


def replace_params(node: Any, substitutions: Mapping[str, Any]) -> Optional[Any]:
    """Copy ``node`` with parameters replaced by clones of their arguments.

    Descends only into identifiers, literals, binary, logical, call and
    member expressions.  Any other shape is copied unchanged when it does not
    mention a parameter and rejected (``None``) when it does.
    """

    kind = node_type(node)
    if kind == "Identifier":
        replacement = substitutions.get(node.name)
        return clone_node(replacement if replacement is not None else node)
    if kind == "Literal":
        return clone_node(node)
    if kind in ("BinaryExpression", "LogicalExpression"):
        left = replace_params(node.left, substitutions)
        right = replace_params(node.right, substitutions)
        if left is None or right is None:
            return None
        result = shallow_clone(node)
        result.left = left
        result.right = right
        return result
    if kind == "CallExpression":
        if is_identifier(node.callee):
            if node.callee.name in substitutions:
                return None
            callee = clone_node(node.callee)
        else:
            callee = replace_params(node.callee, substitutions)
        if callee is None:
            return None
        arguments = []
        for argument in node.arguments or []:
            replaced = replace_params(argument, substitutions)
            if replaced is None:
                return None
            arguments.append(replaced)
        result = shallow_clone(node)
        result.callee = callee
        result.arguments = arguments
        return result
    if kind == "MemberExpression":
        obj = replace_params(node.object, substitutions)
        if node.computed:
            prop = replace_params(node.property, substitutions)
        else:
            prop = clone_node(node.property)
        if obj is None or prop is None:
            return None
        result = shallow_clone(node)
        result.object = obj
        result.property = prop
        return result
    if not is_node(node) or _mentions(node, substitutions):
        return None
    return clone_node(node)


def _safe_to_inline(
    expression: Any,
    substitutions: Mapping[str, Any],
    function_scope: Optional[Scope],
    call_scope: Optional[Scope],
) -> bool:
    for node in _walk(expression):
        if node_type(node) in _UNSAFE_TYPES or is_identifier(node, "arguments"):
            return False

    uses: Dict[str, int] = {name: 0 for name in substitutions}
    impure_order: List[str] = []
    for ident, conditional in _references(expression):
        name = ident.name
        if name in substitutions:
            uses[name] += 1
            if not _is_pure(substitutions[name]):
                if conditional:
                    return False
                impure_order.append(name)
            continue
        # Free names must mean the same thing at the call site.
        inner = function_scope.get_binding(name) if function_scope is not None else None
        outer = call_scope.get_binding(name) if call_scope is not None else None
        if inner is not outer:
            return False

    impure = [name for name in substitutions if not _is_pure(substitutions[name])]
    if impure and _has_effects(expression):
        # The body could run its own effects before the argument.
        return False
    for name in impure:
        if uses[name] != 1:
            return False
    # Side effects must still happen in argument order.
    return impure_order == impure


def _walk(node: Any) -> Iterator[Any]:
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(iter_children(current))


def _has_effects(node: Any) -> bool:
    for current in _walk(node):
        kind = node_type(current)
        if kind in _EFFECT_TYPES:
            return True
        if kind == "UnaryExpression" and current.operator == "delete":
            return True
    return False


def inline_function(
    function: Any,
    arguments: List[Any],
    function_scope: Optional[Scope] = None,
    call_scope: Optional[Scope] = None,
) -> Optional[Any]:
    """Return the substituted return expression, or ``None`` when unsafe."""

    if not is_simple_function(function):
        return None
    if any(not is_node(arg) or node_type(arg) == "SpreadElement" for arg in arguments):
        return None
    params = function.params or []
    if len(arguments) != len(params) or not all(is_identifier(param) for param in params):
        return None
    expression = function.body.body[0].argument
    if expression is None:
        return None

    substitutions = {param.name: arg for param, arg in zip(params, arguments)}
    if not _safe_to_inline(expression, substitutions, function_scope, call_scope):
        return None
    return replace_params(expression, substitutions)


@dataclass
class InlinerState(PassState):
    functions: Dict[str, Any] = field(default_factory=dict)
    tracked: FrozenSet[str] = frozenset()
    recursive: Dict[str, bool] = field(default_factory=dict)
    inlined: int = 0

    def __post_init__(self) -> None:
        names = self.options.get("inline_functions")
        self.tracked = frozenset(DEFAULT_TRACKED_FUNCTIONS if names is None else names)

    def metadata(self) -> Dict[str, object]:
        metadata = super().metadata()
        metadata["calls_inlined"] = self.inlined
        metadata["functions_collected"] = len(self.functions)
        return metadata


def _record_declaration(path: NodePath, state: InlinerState) -> None:
    node = path.node
    if node.id is not None:
        state.functions[node.id.name] = node


def _record_declarator(path: NodePath, state: InlinerState) -> None:
    node = path.node
    if is_identifier(node.id) and node_type(node.init) == "FunctionExpression":
        state.functions[node.id.name] = node.init


def _collect(path: NodePath, state: InlinerState) -> None:
    path.traverse(
        {
            "FunctionDeclaration": _record_declaration,
            "VariableDeclarator": _record_declarator,
        },
        state,
    )
    LOG.debug("collected %d function definitions", len(state.functions))


def _declared_function(binding: Any) -> Optional[Any]:
    node = binding.node
    if node_type(node) == "FunctionDeclaration":
        return node
    if node_type(node) == "VariableDeclarator":
        return node.init
    return None


def _calls_back(name: str, state: InlinerState) -> bool:
    """True when the body of ``name`` reaches a call to ``name`` through tracked helpers."""

    if name in state.recursive:
        return state.recursive[name]
    seen = {name}
    pending = [name]
    found = False
    while pending and not found:
        function = state.functions.get(pending.pop())
        if function is None:
            continue
        for node in _walk(function.body):
            if node_type(node) != "CallExpression" or not is_identifier(node.callee):
                continue
            callee = node.callee.name
            if callee == name:
                found = True
                break
            if callee in state.tracked and callee not in seen:
                seen.add(callee)
                pending.append(callee)
    state.recursive[name] = found
    return found


def _try_inline(path: NodePath, state: InlinerState) -> bool:
    node = path.node
    callee = node.callee
    if not is_identifier(callee) or callee.name not in state.tracked:
        return False
    impl = state.functions.get(callee.name)
    binding = path.get_binding(callee.name)
    if impl is None or binding is None:
        return False
    if not binding.constant or _declared_function(binding) is not impl:
        LOG.debug("not inlining %s: binding is reassigned or shadowed", callee.name)
        state.skipped += 1
        return False
    if _calls_back(callee.name, state):
        LOG.debug("not inlining %s: helper is recursive", callee.name)
        state.skipped += 1
        return False

    inlined = inline_function(impl, list(node.arguments or []), path.scopes.get(impl), path.scope)
    if inlined is None:
        LOG.debug("not inlining %s: unsupported shape", describe(node))
        state.skipped += 1
        return False

    LOG.debug("inlined %s -> %s", describe(node), describe(inlined))
    path.replace_with(inlined)
    state.inlined += 1
    state.changes += 1
    return True


def _inline_call(path: NodePath, state: InlinerState) -> None:
    for _ in range(MAX_INLINE_DEPTH):
        if not _try_inline(path, state) or node_type(path.node) != "CallExpression":
            return


PLUGIN = Plugin(
    name="function_inliner",
    visitor={
        "Program": {"enter": _collect},
        "CallExpression": _inline_call,
    },
    state_factory=InlinerState,
)


def run(ast: Any, options: Dict[str, Any] | None = None) -> Dict[str, object]:
    return PLUGIN.run(ast, options)


__all__ = [
    "DEFAULT_TRACKED_FUNCTIONS",
    "InlinerState",
    "PLUGIN",
    "inline_function",
    "is_simple_function",
    "replace_params",
    "run",
]
