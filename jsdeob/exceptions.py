"""Custom exception hierarchy for the deobfuscator."""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Tuple

if TYPE_CHECKING:  # pragma: no cover
    from .report import DeobReport


class DeobfuscationError(Exception):
    """Base class for all deobfuscation related errors."""


class InputReadError(DeobfuscationError):
    """Raised when the source file cannot be read."""


class JSParseError(DeobfuscationError):
    """Raised when the input is not valid JavaScript."""


class PipelineExecutionError(DeobfuscationError):
    """Raised when a pass fails with an unexpected exception."""

    def __init__(
        self,
        pass_name: str,
        message: str,
        *,
        timings: List[Tuple[str, float]] | None = None,
        duration: float = 0.0,
        report: DeobReport | None = None,
    ) -> None:
        super().__init__(f"pass {pass_name} failed: {message}")
        self.pass_name = pass_name
        self.timings = list(timings or [])
        self.duration = duration
        self.report = report


__all__ = [
    "DeobfuscationError",
    "InputReadError",
    "JSParseError",
    "PipelineExecutionError",
]
