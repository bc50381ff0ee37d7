"""Rewrite ``obj["name"]`` as ``obj.name`` when ``name`` is an identifier."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict

from esprima import nodes

from ..js_ast import identifier, is_string_literal, is_valid_identifier
from ..plugin import PassState, Plugin
from ..traverse import NodePath

LOG = logging.getLogger(__name__)


@dataclass
class BracketToDotState(PassState):
    converted: int = 0

    def metadata(self) -> Dict[str, object]:
        metadata = super().metadata()
        metadata["members_converted"] = self.converted
        return metadata


def _convert(path: NodePath, state: BracketToDotState) -> None:
    node = path.node
    if not node.computed or not is_string_literal(node.property):
        return
    name = node.property.value
    if not is_valid_identifier(name):
        state.skipped += 1
        return
    LOG.debug("converted [%r] to .%s", name, name)
    path.replace_with(nodes.StaticMemberExpression(node.object, identifier(name)))
    state.converted += 1
    state.changes += 1


PLUGIN = Plugin(
    name="bracket_to_dot",
    visitor={"MemberExpression": _convert},
    state_factory=BracketToDotState,
)


def run(ast: Any, options: Dict[str, Any] | None = None) -> Dict[str, object]:
    return PLUGIN.run(ast, options)


__all__ = ["BracketToDotState", "PLUGIN", "run"]
