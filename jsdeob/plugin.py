"""Pass contract shared by every rewrite in :mod:`jsdeob.passes`."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping

from .traverse import Visitor, traverse


@dataclass
class PassState:
    """Per-invocation state; a new instance is created for every run."""

    options: Mapping[str, Any] = field(default_factory=dict)
    changes: int = 0
    skipped: int = 0
    warnings: List[str] = field(default_factory=list)

    def metadata(self) -> Dict[str, object]:
        return {
            "changes": self.changes,
            "skipped": self.skipped,
            "warnings": list(self.warnings),
        }


@dataclass(frozen=True)
class Plugin:
    """A named visitor plus the factory for its transient state."""

    name: str
    visitor: Visitor
    state_factory: Callable[[Mapping[str, Any]], PassState] = PassState

    def run(self, ast: Any, options: Mapping[str, Any] | None = None) -> Dict[str, object]:
        state = self.state_factory(dict(options or {}))
        traverse(ast, self.visitor, state)
        return state.metadata()


__all__ = ["PassState", "Plugin"]
