from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from . import pipeline, utils
from .exceptions import DeobfuscationError, PipelineExecutionError
from .logging_config import close_debug_logger, configure_debug_file_logger
from .report import DeobReport

LOG_FILE = Path("jsdeob.log")
LOG = logging.getLogger(__name__)


class _ColourFormatter(logging.Formatter):
    COLOURS = {
        logging.DEBUG: "blue",
        logging.INFO: "green",
        logging.WARNING: "yellow",
        logging.ERROR: "red",
        logging.CRITICAL: "magenta",
    }

    def format(self, record: logging.LogRecord) -> str:  # pragma: no cover - trivial wrapper
        message = super().format(record)
        colour = self.COLOURS.get(record.levelno, "green")
        return utils.colorize_text(message, colour)


def configure_logging(verbose: bool) -> None:
    """Configure root logging handlers."""

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    level = logging.DEBUG if verbose else logging.INFO
    root.setLevel(level)

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    file_handler = logging.FileHandler(LOG_FILE, mode="w", encoding="utf-8")
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)

    if verbose:
        stream = logging.StreamHandler()
        stream.setFormatter(_ColourFormatter("%(levelname)s: %(message)s"))
        root.addHandler(stream)


def _split_list(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Deobfuscate minified JavaScript files")
    parser.add_argument("input", help="JavaScript file to deobfuscate")
    parser.add_argument("-o", "--out", "--output", dest="output", help="output file path")
    parser.add_argument("--skip-passes", help="comma separated list of passes to skip")
    parser.add_argument("--only-passes", help="comma separated list of passes to run exclusively")
    parser.add_argument("--inline", help="comma separated helper function names to inline")
    parser.add_argument("--rename-map", help="JSON object mapping old identifier names to new ones")
    parser.add_argument("--config", help="JSON file with pipeline options")
    parser.add_argument("--rotated-array-name", help="string table rotated before lookup")
    parser.add_argument("--array-rotation", type=int, help="left rotation applied to that table")
    parser.add_argument(
        "--rot13-strings",
        action="store_true",
        default=None,
        help="ROT13-decode string table entries",
    )
    parser.add_argument(
        "--no-beautify",
        dest="beautify",
        action="store_false",
        default=None,
        help="emit escodegen output without jsbeautifier formatting",
    )
    parser.add_argument("--report", action="store_true", help="print a summary of the rewrites")
    parser.add_argument("--report-json", help="write the summary as JSON to this path")
    parser.add_argument("--trace", help="write a DEBUG trace of every rewrite to this path")
    parser.add_argument("--profile", action="store_true", help="print pass timings to stdout")
    parser.add_argument("--verbose", action="store_true", help="enable verbose colourised logging")
    return parser


def _collect_options(args: argparse.Namespace) -> Dict[str, Any]:
    config: Dict[str, Any] = {}
    if args.config:
        config = utils.load_json_mapping(args.config)

    flags: Dict[str, Any] = {
        "rotated_array_name": args.rotated_array_name,
        "array_rotation": args.array_rotation,
        "rot13_strings": args.rot13_strings,
        "beautify": args.beautify,
    }
    if args.inline:
        flags["inline_functions"] = _split_list(args.inline)
    if args.rename_map:
        flags["rename_map"] = {
            str(old): str(new) for old, new in utils.load_json_mapping(args.rename_map).items()
        }
    return pipeline.merge_options(config, flags)


def _print_profile(timings: Sequence[Tuple[str, float]]) -> None:
    print("Pass timings:")
    for name, duration in timings:
        print(f"  {name:<20} {duration:.3f}s")
    print(f"  {'total':<20} {sum(duration for _, duration in timings):.3f}s")


def _emit_report(args: argparse.Namespace, report: DeobReport) -> None:
    if args.report:
        print("\n=== Deobfuscation Report ===")
        print(report.to_text())
    if args.report_json:
        utils.write_text(args.report_json, json.dumps(report.to_json(), indent=2))


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    configure_logging(args.verbose)

    trace_logger: Optional[logging.Logger] = None
    if args.trace:
        trace_logger = configure_debug_file_logger("jsdeob", Path(args.trace))

    try:
        options = _collect_options(args)
        source = utils.read_source(args.input)
        deob = pipeline.default_pipeline(options)
        ctx = deob.run(
            source,
            skip=_split_list(args.skip_passes),
            only=_split_list(args.only_passes),
        )
        output_path = args.output or utils.create_output_path(args.input)
        utils.write_text(output_path, ctx.output)
    except PipelineExecutionError as err:
        LOG.error("pass %s failed on %s: %s", err.pass_name, args.input, err)
        if args.profile and err.timings:
            _print_profile(err.timings)
        if err.report is not None:
            _emit_report(args, err.report)
        return 1
    except DeobfuscationError as err:
        LOG.error("failed processing %s: %s", args.input, err)
        return 1
    finally:
        if trace_logger is not None:
            close_debug_logger(trace_logger)

    LOG.info("wrote %s (%d change(s))", output_path, ctx.report.total_changes)
    if args.profile:
        _print_profile(ctx.timings)
    _emit_report(args, ctx.report)
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
