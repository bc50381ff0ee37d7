"""Pass modules orchestrated by :mod:`jsdeob.pipeline`."""

from __future__ import annotations

from . import (
    bracket_to_dot,
    function_inliner,
    numeric_folding,
    string_deobfuscator,
    string_folding,
    variable_rename,
)

__all__ = [
    "bracket_to_dot",
    "function_inliner",
    "numeric_folding",
    "string_deobfuscator",
    "string_folding",
    "variable_rename",
]
