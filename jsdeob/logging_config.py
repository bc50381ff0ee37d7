"""Per-run rewrite traces.

``--trace`` hangs a file handler off the ``jsdeob`` logger so that every
DEBUG line the passes emit (resolved decoder calls, inlined helpers, folded
expressions, skipped rewrites) lands in one file, tagged with the pass that
wrote it.
"""

from __future__ import annotations

import logging
from pathlib import Path

__all__ = [
    "TraceFormatter",
    "configure_debug_file_logger",
    "close_debug_logger",
]

_MARKER = "_jsdeob_rewrite_trace"
_PASS_PREFIX = "jsdeob.passes."


class TraceFormatter(logging.Formatter):
    """Formats trace lines as ``<pass>: <message>``.

    Records from ``jsdeob.passes.<pass>`` are tagged with the bare pass name;
    anything else keeps its full logger name.
    """

    def __init__(self) -> None:
        super().__init__("%(origin)s: %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        name = record.name
        record.origin = name[len(_PASS_PREFIX):] if name.startswith(_PASS_PREFIX) else name
        return super().format(record)


def configure_debug_file_logger(
    name: str,
    path: Path,
    *,
    level: int = logging.DEBUG,
    formatter: logging.Formatter | None = None,
) -> logging.Logger:
    """Start a rewrite trace for logger ``name`` in ``path``.

    An earlier trace on the same logger is closed first, so the file always
    holds exactly one run.
    """

    logger = logging.getLogger(name)
    close_debug_logger(logger)

    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, mode="w", encoding="utf-8")
    # Remember the level to put back once the trace is closed.
    setattr(handler, _MARKER, logger.level)
    handler.setFormatter(formatter or TraceFormatter())
    logger.addHandler(handler)
    logger.setLevel(level)
    return logger


def close_debug_logger(logger: logging.Logger) -> None:
    """Flush and detach trace handlers, restoring the logger's level."""

    for handler in list(logger.handlers):
        previous = getattr(handler, _MARKER, None)
        if previous is None:
            continue
        logger.removeHandler(handler)
        handler.close()
        logger.setLevel(previous)
