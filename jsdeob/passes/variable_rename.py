"""Rename identifiers through a user supplied ``rename_map``.

Property names are left alone: only identifiers that name a variable are
renamed, so ``obj.a`` and ``{a: 1}`` keep their keys.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping

from ..js_ast import identifier, is_valid_identifier, node_type
from ..plugin import PassState, Plugin
from ..traverse import NodePath

LOG = logging.getLogger(__name__)

_LABEL_PARENTS = {"LabeledStatement", "BreakStatement", "ContinueStatement"}


def _is_property_name(path: NodePath) -> bool:
    parent = path.parent
    kind = node_type(parent)
    if kind == "MemberExpression":
        return path.key == "property" and not parent.computed
    if kind in ("Property", "MethodDefinition"):
        return path.key == "key" and not parent.computed
    return kind in _LABEL_PARENTS


@dataclass
class RenameState(PassState):
    renames: Dict[str, str] = field(default_factory=dict)
    renamed: int = 0

    def __post_init__(self) -> None:
        mapping: Mapping[str, str] = self.options.get("rename_map") or {}
        for old, new in mapping.items():
            if is_valid_identifier(new):
                self.renames[old] = new
            else:
                self.warnings.append(f"ignored rename {old!r} -> {new!r}: not an identifier")

    def metadata(self) -> Dict[str, object]:
        metadata = super().metadata()
        metadata["identifiers_renamed"] = self.renamed
        return metadata


def _rename(path: NodePath, state: RenameState) -> None:
    name = path.node.name
    new_name = state.renames.get(name)
    if new_name is None or new_name == name or _is_property_name(path):
        return
    parent = path.parent
    if node_type(parent) == "Property" and getattr(parent, "shorthand", False):
        parent.shorthand = False
    path.replace_with(identifier(new_name))
    state.renamed += 1
    state.changes += 1


def _log_summary(path: NodePath, state: RenameState) -> None:
    if state.renamed:
        LOG.debug("renamed %d identifier references", state.renamed)


PLUGIN = Plugin(
    name="variable_rename",
    visitor={
        "Identifier": _rename,
        "Program": {"exit": _log_summary},
    },
    state_factory=RenameState,
)


def run(ast: Any, options: Dict[str, Any] | None = None) -> Dict[str, object]:
    return PLUGIN.run(ast, options)


__all__ = ["PLUGIN", "RenameState", "run"]
