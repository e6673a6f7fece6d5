"""Structured ffmpeg filter graphs.

Graphs are assembled as lists of labelled steps and only serialized to the
``-filter_complex`` syntax when the argv list is built.
"""

from __future__ import annotations

from dataclasses import dataclass, field


def fmt_num(value: float) -> str:
    """Format a number for a filter argument (3 decimals, no trailing zeros)."""
    s = f"{value:.3f}".rstrip("0").rstrip(".")
    return "0" if s in ("", "-0") else s


def fmt_factor(value: float) -> str:
    """Format a speed or stretch factor (6 decimals, no trailing zeros)."""
    s = f"{value:.6f}".rstrip("0").rstrip(".")
    return "0" if s in ("", "-0") else s


def escape_filter_path(path: str) -> str:
    """Escape a file path for use inside a quoted filter option value."""
    esc = str(path).replace("\\", "/")
    esc = esc.replace(":", "\\:")
    esc = esc.replace("'", "'\\''")
    esc = esc.replace("[", "\\[").replace("]", "\\]")
    return esc


@dataclass
class FilterStep:
    inputs: list[str]
    filters: list[str]
    outputs: list[str]

    def render(self) -> str:
        ins = "".join(f"[{i}]" for i in self.inputs)
        outs = "".join(f"[{o}]" for o in self.outputs)
        return f"{ins}{','.join(self.filters)}{outs}"


@dataclass
class FilterGraph:
    steps: list[FilterStep] = field(default_factory=list)

    def add(self, inputs: list[str] | str, filters: list[str] | str, outputs: list[str] | str) -> str | None:
        """Append a step. Returns the first output label for chaining."""
        ins = [inputs] if isinstance(inputs, str) else list(inputs)
        fs = [filters] if isinstance(filters, str) else list(filters)
        outs = [outputs] if isinstance(outputs, str) else list(outputs)
        if not fs:
            raise ValueError("filter step needs at least one filter")
        self.steps.append(FilterStep(ins, fs, outs))
        return outs[0] if outs else None

    def filters_used(self) -> list[str]:
        """Filter names in graph order, e.g. ['atrim', 'adelay', 'amix']."""
        names = []
        for step in self.steps:
            for f in step.filters:
                names.append(f.split("=", 1)[0])
        return names

    def render(self) -> str:
        return ";".join(step.render() for step in self.steps)

    def __len__(self) -> int:
        return len(self.steps)

    def __bool__(self) -> bool:
        return bool(self.steps)
