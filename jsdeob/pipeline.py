"""Ordered pass pipeline: parse once, rewrite in place, print once."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from . import js_ast
from .exceptions import PipelineExecutionError
from .passes import (
    bracket_to_dot,
    function_inliner,
    numeric_folding,
    string_deobfuscator,
    string_folding,
    variable_rename,
)
from .plugin import Plugin
from .report import DeobReport

LOG = logging.getLogger(__name__)

DEFAULT_OPTIONS: Dict[str, Any] = {
    # None selects function_inliner.DEFAULT_TRACKED_FUNCTIONS.
    "inline_functions": None,
    "rotated_array_name": string_deobfuscator.ROTATED_ARRAY_NAME,
    "array_rotation": string_deobfuscator.ARRAY_ROTATION,
    "rot13_strings": False,
    "rename_map": {},
    "beautify": True,
}


def merge_options(*layers: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Overlay option mappings on top of :data:`DEFAULT_OPTIONS`; ``None`` values are ignored."""

    merged = dict(DEFAULT_OPTIONS)
    merged["rename_map"] = dict(DEFAULT_OPTIONS["rename_map"])
    for layer in layers:
        for key, value in (layer or {}).items():
            if value is not None:
                merged[key] = value
    return merged


@dataclass
class Context:
    """Shared state threaded through individual pipeline passes."""

    source: str
    ast: Any = None
    options: Dict[str, Any] = field(default_factory=dict)
    report: DeobReport = field(default_factory=DeobReport)
    pass_metadata: Dict[str, Dict[str, object]] = field(default_factory=dict)
    timings: List[Tuple[str, float]] = field(default_factory=list)
    output: str = ""

    def record_metadata(self, name: str, metadata: Dict[str, object]) -> None:
        self.pass_metadata[name] = metadata


def _summary(metadata: Mapping[str, object]) -> str:
    parts: List[str] = []
    for key in ("changes", "skipped"):
        value = metadata.get(key)
        if isinstance(value, int) and value:
            parts.append(f"{key}={value}")
    warnings = metadata.get("warnings")
    if isinstance(warnings, list) and warnings:
        parts.append(f"warnings={len(warnings)}")
    return f" ({', '.join(parts)})" if parts else ""


class PassRegistry:
    def __init__(self) -> None:
        self._passes: Dict[str, Tuple[int, Plugin]] = {}

    def register_pass(self, plugin: Plugin, order: int) -> None:
        self._passes[plugin.name] = (order, plugin)

    def add_pass(self, plugin: Plugin) -> None:
        """Append ``plugin`` after every pass registered so far."""

        last = max((order for order, _ in self._passes.values()), default=0)
        self.register_pass(plugin, last + 10)

    def names(self) -> List[str]:
        return [plugin.name for _, plugin in sorted(self._passes.values(), key=lambda item: item[0])]

    def run_passes(
        self,
        ctx: Context,
        skip: Optional[Iterable[str]] = None,
        only: Optional[Iterable[str]] = None,
    ) -> List[Tuple[str, float]]:
        selected: List[Tuple[int, str, Plugin]] = []
        skip_set = {name.strip() for name in (skip or []) if name}
        only_set = {name.strip() for name in (only or []) if name}

        for name, (order, plugin) in self._passes.items():
            if skip_set and name in skip_set:
                continue
            if only_set and name not in only_set:
                continue
            selected.append((order, name, plugin))
        selected.sort(key=lambda item: (item[0], item[1]))

        timings: List[Tuple[str, float]] = []
        for _, name, plugin in selected:
            start = time.perf_counter()
            try:
                metadata = plugin.run(ctx.ast, ctx.options)
            except Exception as exc:
                duration = time.perf_counter() - start
                message = str(exc) or type(exc).__name__
                LOG.error("pass %s failed after %.3fs: %s", name, duration, message)
                ctx.report.errors.append(f"{name}: {message}")
                raise PipelineExecutionError(
                    name, message, timings=timings, duration=duration, report=ctx.report
                ) from exc
            duration = time.perf_counter() - start
            timings.append((name, duration))
            ctx.record_metadata(name, metadata)
            ctx.report.record_pass(name, metadata, duration)
            LOG.info("pass %s completed in %.3fs%s", name, duration, _summary(metadata))
        ctx.timings.extend(timings)
        return timings


class Deobfuscator:
    """Parses once, applies every registered pass in order, prints once."""

    def __init__(
        self,
        options: Optional[Mapping[str, Any]] = None,
        registry: Optional[PassRegistry] = None,
    ) -> None:
        self.options = merge_options(options)
        self.registry = registry if registry is not None else PassRegistry()

    def add_pass(self, plugin: Plugin) -> "Deobfuscator":
        self.registry.add_pass(plugin)
        return self

    def register_pass(self, plugin: Plugin, order: int) -> "Deobfuscator":
        self.registry.register_pass(plugin, order)
        return self

    @property
    def pass_names(self) -> List[str]:
        return self.registry.names()

    def run(
        self,
        source: str,
        *,
        skip: Optional[Iterable[str]] = None,
        only: Optional[Iterable[str]] = None,
    ) -> Context:
        ctx = Context(source=source, options=dict(self.options))
        ctx.report.input_length = len(source)
        ctx.ast = js_ast.parse(source)
        self.registry.run_passes(ctx, skip=skip, only=only)
        ctx.output = js_ast.generate(ctx.ast, beautify=bool(ctx.options.get("beautify")))
        ctx.report.output_length = len(ctx.output)
        LOG.debug("pipeline finished with %d change(s)", ctx.report.total_changes)
        return ctx

    def deobfuscate(self, source: str) -> str:
        return self.run(source).output


def default_pipeline(options: Optional[Mapping[str, Any]] = None) -> Deobfuscator:
    """Build a :class:`Deobfuscator` carrying the standard pass order."""

    deob = Deobfuscator(options)
    deob.register_pass(string_deobfuscator.PLUGIN, 10)
    deob.register_pass(function_inliner.PLUGIN, 20)
    deob.register_pass(string_folding.PLUGIN, 30)
    deob.register_pass(bracket_to_dot.PLUGIN, 40)
    deob.register_pass(numeric_folding.PLUGIN, 50)
    if deob.options.get("rename_map"):
        deob.register_pass(variable_rename.PLUGIN, 60)
    return deob


def deobfuscate(source: str, options: Optional[Mapping[str, Any]] = None) -> str:
    """Run the default pipeline over ``source`` and return the rewritten text."""

    return default_pipeline(options).deobfuscate(source)


__all__ = [
    "DEFAULT_OPTIONS",
    "Context",
    "Deobfuscator",
    "PassRegistry",
    "default_pipeline",
    "deobfuscate",
    "merge_options",
]
