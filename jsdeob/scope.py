"""Lexical scope index built alongside the esprima AST.

The index mirrors Program/function/block nesting.  Every scope records the
bindings declared directly in it and a link to its parent so identifiers can
be resolved by walking outward.  Bindings track whether they are ever
reassigned, which the inliner relies on.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .js_ast import FUNCTION_TYPES, is_node, iter_children, node_type

LOG = logging.getLogger(__name__)

_BLOCK_SCOPE_TYPES = frozenset(
    {
        "BlockStatement",
        "ForStatement",
        "ForInStatement",
        "ForOfStatement",
        "SwitchStatement",
        "CatchClause",
    }
)


def creates_scope(node: Any) -> bool:
    kind = node_type(node)
    return kind == "Program" or kind in FUNCTION_TYPES or kind in _BLOCK_SCOPE_TYPES


def pattern_identifiers(pattern: Any) -> List[Any]:
    """Return the identifiers a declaration or assignment target binds."""

    found: List[Any] = []
    stack = [pattern]
    while stack:
        node = stack.pop()
        kind = node_type(node)
        if kind == "Identifier":
            found.append(node)
        elif kind == "AssignmentPattern":
            stack.append(node.left)
        elif kind == "RestElement":
            stack.append(node.argument)
        elif kind == "ArrayPattern":
            stack.extend(el for el in reversed(node.elements or []) if is_node(el))
        elif kind == "ObjectPattern":
            for prop in reversed(node.properties or []):
                if node_type(prop) == "RestElement":
                    stack.append(prop.argument)
                elif node_type(prop) == "Property":
                    stack.append(prop.value)
    return found


@dataclass(eq=False)
class Binding:
    name: str
    kind: str
    node: Any
    scope: "Scope"
    identifier: Any = None
    constant: bool = True
    constant_violations: List[Any] = field(default_factory=list)

    def reassign(self, node: Any) -> None:
        self.constant = False
        self.constant_violations.append(node)


@dataclass(eq=False)
class Scope:
    node: Any
    kind: str
    parent: Optional["Scope"] = None
    bindings: Dict[str, Binding] = field(default_factory=dict)

    def ancestors(self) -> Iterator["Scope"]:
        """Yield this scope and then each enclosing scope."""

        scope: Optional[Scope] = self
        while scope is not None:
            yield scope
            scope = scope.parent

    def function_scope(self) -> "Scope":
        for scope in self.ancestors():
            if scope.kind in ("function", "program"):
                return scope
        return self  # pragma: no cover - the root is always a program scope

    def get_own_binding(self, name: str) -> Optional[Binding]:
        return self.bindings.get(name)

    def get_binding(self, name: str) -> Optional[Binding]:
        for scope in self.ancestors():
            binding = scope.bindings.get(name)
            if binding is not None:
                return binding
        return None

    def has_binding(self, name: str) -> bool:
        return self.get_binding(name) is not None

    def register(self, name: str, kind: str, node: Any, identifier: Any = None) -> Binding:
        existing = self.bindings.get(name)
        if existing is not None:
            # Redeclaration: the name no longer denotes a single value.
            existing.reassign(node)
            return existing
        binding = Binding(name=name, kind=kind, node=node, scope=self, identifier=identifier)
        self.bindings[name] = binding
        return binding


class ScopeIndex:
    """Maps scope-creating nodes to their :class:`Scope`."""

    def __init__(self) -> None:
        self._scopes: Dict[int, Scope] = {}
        self._order: List[Scope] = []
        self.program_scope: Optional[Scope] = None

    @classmethod
    def build(cls, ast: Any) -> "ScopeIndex":
        index = cls()
        index._build(ast, None)
        return index

    def scopes(self) -> List[Scope]:
        return list(self._order)

    def get(self, node: Any) -> Optional[Scope]:
        return self._scopes.get(id(node))

    def scope_of(self, node: Any, parent_scope: Optional[Scope]) -> Optional[Scope]:
        """Return the scope ``node`` lives in, indexing new subtrees on demand."""

        existing = self._scopes.get(id(node))
        if existing is not None:
            return existing
        if creates_scope(node):
            self._build(node, parent_scope)
            return self._scopes.get(id(node), parent_scope)
        return parent_scope

    # ------------------------------------------------------------------
    def _open(self, node: Any, scope: Optional[Scope]) -> Optional[Scope]:
        existing = self._scopes.get(id(node))
        if existing is not None:
            return existing
        kind = node_type(node)
        if kind == "Program":
            opened = Scope(node, "program", scope)
            if self.program_scope is None:
                self.program_scope = opened
        elif kind in FUNCTION_TYPES:
            opened = Scope(node, "function", scope)
            if node_type(node.body) == "BlockStatement":
                self._scopes[id(node.body)] = opened
        elif kind == "CatchClause":
            opened = Scope(node, "block", scope)
            self._scopes[id(node.body)] = opened
        elif kind in _BLOCK_SCOPE_TYPES:
            opened = Scope(node, "block", scope)
        else:
            return scope
        self._scopes[id(node)] = opened
        self._order.append(opened)
        return opened

    def _build(self, root: Any, outer: Optional[Scope]) -> None:
        violations: List[Tuple[Scope, str, Any]] = []
        stack: List[Tuple[Any, Optional[Scope]]] = [(root, outer)]
        while stack:
            node, scope = stack.pop()
            kind = node_type(node)
            if kind == "FunctionDeclaration" and scope is not None and node.id is not None:
                scope.register(node.id.name, "hoisted", node, node.id)
            inner = self._open(node, scope)
            if inner is None:
                continue

            if kind in FUNCTION_TYPES:
                if kind == "FunctionExpression" and node.id is not None:
                    inner.register(node.id.name, "local", node, node.id)
                for param in node.params or []:
                    for ident in pattern_identifiers(param):
                        inner.register(ident.name, "param", node, ident)
            elif kind == "VariableDeclaration":
                target = inner if node.kind in ("let", "const") else inner.function_scope()
                for declarator in node.declarations:
                    for ident in pattern_identifiers(declarator.id):
                        target.register(ident.name, node.kind, declarator, ident)
            elif kind == "ClassDeclaration" and node.id is not None:
                inner.register(node.id.name, "class", node, node.id)
            elif kind == "CatchClause" and node.param is not None:
                for ident in pattern_identifiers(node.param):
                    inner.register(ident.name, "catch", node, ident)
            elif kind == "AssignmentExpression":
                for ident in pattern_identifiers(node.left):
                    violations.append((inner, ident.name, node))
            elif kind == "UpdateExpression" and node_type(node.argument) == "Identifier":
                violations.append((inner, node.argument.name, node))
            elif kind in ("ForInStatement", "ForOfStatement"):
                if node_type(node.left) != "VariableDeclaration":
                    for ident in pattern_identifiers(node.left):
                        violations.append((inner, ident.name, node))

            stack.extend((child, inner) for child in reversed(list(iter_children(node))))

        for scope, name, node in violations:
            binding = scope.get_binding(name)
            if binding is not None:
                binding.reassign(node)
        LOG.debug("indexed %d scopes", len(self._order))


__all__ = [
    "Binding",
    "Scope",
    "ScopeIndex",
    "creates_scope",
    "pattern_identifiers",
]
