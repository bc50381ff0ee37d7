"""Collapse ``+`` chains made only of string literals."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..js_ast import is_string_literal, node_type, string_node
from ..plugin import PassState, Plugin
from ..traverse import NodePath

LOG = logging.getLogger(__name__)


def concatenation_parts(node: Any) -> Optional[List[str]]:
    """Return the ordered string leaves of a pure concatenation chain.

    ``None`` when ``node`` is not a ``+`` expression or any leaf is something
    other than a string literal.
    """

    if node_type(node) != "BinaryExpression" or node.operator != "+":
        return None
    parts: List[str] = []
    stack = [node]
    while stack:
        current = stack.pop()
        if is_string_literal(current):
            parts.append(current.value)
        elif node_type(current) == "BinaryExpression" and current.operator == "+":
            stack.append(current.right)
            stack.append(current.left)
        else:
            return None
    return parts


@dataclass
class StringFoldingState(PassState):
    collapsed: int = 0

    def metadata(self) -> Dict[str, object]:
        metadata = super().metadata()
        metadata["collapsed_concats"] = self.collapsed
        return metadata


def _collapse(path: NodePath, state: StringFoldingState) -> None:
    parts = concatenation_parts(path.node)
    if parts is None:
        return
    combined = "".join(parts)
    LOG.debug("concatenated %s -> %r", " + ".join(repr(part) for part in parts), combined)
    path.replace_with(string_node(combined))
    state.collapsed += len(parts) - 1
    state.changes += 1


PLUGIN = Plugin(
    name="string_folding",
    visitor={"BinaryExpression": {"exit": _collapse}},
    state_factory=StringFoldingState,
)


def run(ast: Any, options: Dict[str, Any] | None = None) -> Dict[str, object]:
    return PLUGIN.run(ast, options)


__all__ = ["PLUGIN", "StringFoldingState", "concatenation_parts", "run"]
