"""Structured deobfuscation report helpers."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Dict, List, Mapping

# Pass metadata key -> report attribute it accumulates into.
_COUNTERS = {
    "strings_recovered": "strings_recovered",
    "calls_inlined": "calls_inlined",
    "collapsed_concats": "concats_collapsed",
    "members_converted": "members_converted",
    "literals_normalized": "literals_normalized",
    "expressions_folded": "expressions_folded",
    "identifiers_renamed": "identifiers_renamed",
    "skipped": "rewrites_skipped",
}


@dataclass
class DeobReport:
    """Summarises a single deobfuscation run for maintainers."""

    passes_run: List[str] = field(default_factory=list)
    pass_timings: Dict[str, float] = field(default_factory=dict)
    strings_recovered: int = 0
    calls_inlined: int = 0
    concats_collapsed: int = 0
    members_converted: int = 0
    literals_normalized: int = 0
    expressions_folded: int = 0
    identifiers_renamed: int = 0
    rewrites_skipped: int = 0
    input_length: int = 0
    output_length: int = 0
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def record_pass(self, name: str, metadata: Mapping[str, object], duration: float) -> None:
        """Fold one pass's metadata into the running totals."""

        self.passes_run.append(name)
        self.pass_timings[name] = duration
        for key, attr in _COUNTERS.items():
            value = metadata.get(key)
            if isinstance(value, int) and not isinstance(value, bool):
                setattr(self, attr, getattr(self, attr) + value)
        for warning in metadata.get("warnings") or []:
            self.warnings.append(f"{name}: {warning}")

    @property
    def total_changes(self) -> int:
        return (
            self.strings_recovered
            + self.calls_inlined
            + self.concats_collapsed
            + self.members_converted
            + self.literals_normalized
            + self.expressions_folded
            + self.identifiers_renamed
        )

    def to_text(self) -> str:
        """Format the report as a human-readable summary."""

        lines: List[str] = []
        lines.append("Passes run: " + (", ".join(self.passes_run) or "none"))
        lines.append(f"Strings recovered: {self.strings_recovered}")
        lines.append(f"Calls inlined: {self.calls_inlined}")
        lines.append(f"Concatenations collapsed: {self.concats_collapsed}")
        lines.append(f"Member accesses converted: {self.members_converted}")
        lines.append(f"Numeric literals normalised: {self.literals_normalized}")
        lines.append(f"Expressions folded: {self.expressions_folded}")
        lines.append(f"Identifiers renamed: {self.identifiers_renamed}")
        lines.append(f"Rewrites skipped: {self.rewrites_skipped}")
        lines.append(
            f"Input length: {self.input_length} chars, output length: {self.output_length} chars"
        )
        if self.pass_timings:
            lines.append("Pass timings:")
            for name, duration in self.pass_timings.items():
                lines.append(f"  {name}: {duration:.3f}s")
        if self.warnings:
            lines.append("Warnings:")
            lines.extend(f"  - {warning}" for warning in self.warnings)
        if self.errors:
            lines.append("Errors:")
            lines.extend(f"  - {error}" for error in self.errors)
        return "\n".join(lines)

    def to_json(self) -> Dict[str, object]:
        """Return a JSON-serialisable representation."""

        data = asdict(self)
        data["total_changes"] = self.total_changes
        return data
