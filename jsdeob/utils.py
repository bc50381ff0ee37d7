import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Mapping

from .exceptions import InputReadError

LOG = logging.getLogger(__name__)


def create_output_path(input_path: str, suffix: str = "_deob.js") -> str:
    """Return a deterministic output path next to ``input_path``."""

    path = Path(input_path)
    output_path = str(path.with_name(path.stem + suffix))
    LOG.debug("Created output path '%s' from input '%s'", output_path, input_path)
    return output_path


def read_source(filepath: str, encoding: str = "utf-8") -> str:
    """Read a source file, raising :class:`InputReadError` when it cannot be read."""

    path = Path(filepath)
    if not path.is_file():
        raise InputReadError(f"File does not exist or is not a file: '{filepath}'")
    try:
        content = path.read_text(encoding=encoding)
    except (OSError, UnicodeDecodeError) as exc:
        raise InputReadError(f"Failed to read file '{filepath}': {exc}") from exc
    LOG.debug("Read file '%s' (%d chars)", filepath, len(content))
    return content


def write_text(filepath: str, content: str, encoding: str = "utf-8") -> None:
    """Write ``content`` atomically: a temp file in the target directory is renamed over it."""

    path = Path(filepath)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding=encoding) as handle:
            handle.write(content)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    LOG.debug("Wrote '%s' (%d chars)", filepath, len(content))


def load_json_mapping(filepath: str) -> Dict[str, Any]:
    """Load a JSON object from ``filepath``."""

    text = read_source(filepath)
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise InputReadError(f"Invalid JSON in '{filepath}': {exc}") from exc
    if not isinstance(data, Mapping):
        raise InputReadError(f"Expected a JSON object in '{filepath}'")
    return dict(data)


# Terminal helpers used by the CLI

_COLOR_CODES = {
    "red": "31",
    "green": "32",
    "yellow": "33",
    "blue": "34",
    "magenta": "35",
    "cyan": "36",
}


def colorize_text(text: str, color: str, bold: bool = False) -> str:
    """Return *text* wrapped in ANSI color codes."""
    code = _COLOR_CODES.get(color, "0")
    style = "1;" if bold else ""
    return f"\033[{style}{code}m{text}\033[0m"
