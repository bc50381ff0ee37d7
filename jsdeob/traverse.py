"""Visitor-driven tree walk with in-place replacement.

Visitors map a node type (``"CallExpression"``, or several joined with ``|``)
to either a callback or a ``{"enter": cb, "exit": cb}`` mapping.  Callbacks
receive a :class:`NodePath` and the pass state object.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from .js_ast import child_fields, is_node, node_type
from .scope import Binding, Scope, ScopeIndex

Handler = Callable[["NodePath", Any], None]
Visitor = Mapping[str, Any]
_Normalized = Dict[str, Dict[str, List[Handler]]]


class NodePath:
    """Position of a node in the tree plus the scope it was reached in."""

    def __init__(
        self,
        node: Any,
        parent: Optional["NodePath"],
        key: Optional[str],
        index: Optional[int],
        scope: Optional[Scope],
        scopes: ScopeIndex,
    ) -> None:
        self.node = node
        self.parent_path = parent
        self.key = key
        self.index = index
        self.scope = scope
        self.scopes = scopes
        self._skip = False

    @property
    def parent(self) -> Any:
        return self.parent_path.node if self.parent_path is not None else None

    @property
    def parent_scope(self) -> Optional[Scope]:
        return self.parent_path.scope if self.parent_path is not None else None

    @property
    def type(self) -> Optional[str]:
        return node_type(self.node)

    def get_binding(self, name: str) -> Optional[Binding]:
        return self.scope.get_binding(name) if self.scope is not None else None

    def replace_with(self, new_node: Any) -> None:
        """Swap the node in its parent slot; the walk continues into ``new_node``."""

        parent = self.parent
        if parent is None or self.key is None:
            raise ValueError("cannot replace the root node")
        if self.index is None:
            setattr(parent, self.key, new_node)
        else:
            getattr(parent, self.key)[self.index] = new_node
        self.node = new_node
        self.scope = self.scopes.scope_of(new_node, self.parent_scope)

    def skip(self) -> None:
        """Do not descend into the current node's children."""

        self._skip = True

    def traverse(self, visitor: Visitor, state: Any = None) -> None:
        """Walk the descendants of this node, keeping its scope chain."""

        handlers = _normalize(visitor)
        _walk(self._child_entries(), handlers, state)

    def _child_entries(self) -> List[Tuple[str, "NodePath", Optional[str], Optional[int]]]:
        entries: List[Tuple[str, NodePath, Optional[str], Optional[int]]] = []
        node = self.node
        for name in child_fields(node):
            value = getattr(node, name, None)
            if isinstance(value, list):
                for position in range(len(value)):
                    entries.append(("enter", self, name, position))
            elif value is not None:
                entries.append(("enter", self, name, None))
        return entries

    def __repr__(self) -> str:  # pragma: no cover - debugging aid
        return f"NodePath({self.type}, key={self.key!r}, index={self.index!r})"


def _normalize(visitor: Visitor) -> _Normalized:
    handlers: _Normalized = {}
    for key, spec in visitor.items():
        if callable(spec):
            phases = {"enter": spec}
        else:
            phases = dict(spec)
        for kind in key.split("|"):
            bucket = handlers.setdefault(kind.strip(), {"enter": [], "exit": []})
            for phase in ("enter", "exit"):
                handler = phases.get(phase)
                if handler is not None:
                    bucket[phase].append(handler)
    return handlers


def _dispatch(handlers: _Normalized, path: NodePath, phase: str, state: Any) -> None:
    kind = path.type
    if kind is None:
        return
    bucket = handlers.get(kind)
    if not bucket:
        return
    for handler in bucket[phase]:
        handler(path, state)
        if path.type != kind:
            # Replaced with a different kind of node; stop dispatching the old one.
            break


def _walk(entries: List[Tuple[str, NodePath, Optional[str], Optional[int]]], handlers: _Normalized, state: Any) -> None:
    stack: List[Tuple[str, NodePath, Optional[str], Optional[int]]] = list(reversed(entries))
    while stack:
        phase, owner, key, index = stack.pop()
        if phase == "exit":
            _dispatch(handlers, owner, "exit", state)
            continue

        value = getattr(owner.node, key) if key is not None else None
        if index is not None:
            value = value[index] if isinstance(value, list) and index < len(value) else None
        if not is_node(value):
            continue
        path = NodePath(
            value,
            owner,
            key,
            index,
            owner.scopes.scope_of(value, owner.scope),
            owner.scopes,
        )
        _dispatch(handlers, path, "enter", state)
        if path._skip or not is_node(path.node):
            continue
        stack.append(("exit", path, None, None))
        stack.extend(reversed(path._child_entries()))


def traverse(
    ast: Any,
    visitor: Visitor,
    state: Any = None,
    scopes: Optional[ScopeIndex] = None,
) -> ScopeIndex:
    """Walk ``ast`` in document order, root included.

    A fresh :class:`ScopeIndex` is built unless one is supplied; it is
    returned so callers can reuse it.
    """

    index = scopes if scopes is not None else ScopeIndex.build(ast)
    handlers = _normalize(visitor)
    root = NodePath(ast, None, None, None, index.scope_of(ast, None), index)
    _dispatch(handlers, root, "enter", state)
    if not root._skip:
        _walk(root._child_entries() + [("exit", root, None, None)], handlers, state)
    return index


__all__ = ["Handler", "NodePath", "Visitor", "traverse"]
