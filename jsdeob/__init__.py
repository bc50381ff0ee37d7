"""Source-to-source deobfuscator for minified JavaScript."""

from __future__ import annotations

from .exceptions import DeobfuscationError, InputReadError, JSParseError, PipelineExecutionError
from .pipeline import DEFAULT_OPTIONS, Deobfuscator, default_pipeline, deobfuscate

__version__ = "0.1.0"

__all__ = [
    "DEFAULT_OPTIONS",
    "DeobfuscationError",
    "Deobfuscator",
    "InputReadError",
    "JSParseError",
    "PipelineExecutionError",
    "default_pipeline",
    "deobfuscate",
]
