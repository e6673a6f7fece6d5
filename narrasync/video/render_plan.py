"""Per-segment visual timing and the stitched video filter graph."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from narrasync.media.filtergraph import FilterGraph, escape_filter_path, fmt_factor, fmt_num
from narrasync.timing.models import ShiftedSegment, Strategy
from narrasync.timing.planner import solve_overflow_crossover
from narrasync.video.overlay_text import TitleLayout, compute_overlay_scale, wrap_title


@dataclass(frozen=True)
class SegmentVisualPlan:
    """How one segment's source span maps onto its output span.

    ``source_read`` seconds are read from ``source_start``. Up to
    ``crossover`` playback is 1:1; after it, time runs ``rate`` times faster.
    Whatever is left of ``output_duration`` holds the last frame.
    """
    index: int
    strategy: Strategy
    source_start: float
    source_read: float
    output_duration: float
    crossover: float
    rate: float

    def output_time(self, source_offset: float) -> float:
        """Output seconds (from segment start) at which a source offset is shown."""
        t = min(max(source_offset, 0.0), self.source_read)
        if t <= self.crossover:
            return t
        return self.crossover + (t - self.crossover) / self.rate

    @property
    def played_duration(self) -> float:
        return self.output_time(self.source_read)

    @property
    def hold_duration(self) -> float:
        return max(0.0, self.output_duration - self.played_duration)


def plan_segment_visual(seg: ShiftedSegment) -> SegmentVisualPlan:
    d = seg.target_duration
    v = seg.visual_available
    strategy = seg.strategy

    if strategy == Strategy.trim:
        read = min(seg.total_needed, v)
        return SegmentVisualPlan(seg.index, strategy, seg.start_time, read, d, crossover=read, rate=1.0)

    if strategy == Strategy.speed_total:
        # uniform scale by d / v: whole span runs at v / d speed
        return SegmentVisualPlan(seg.index, strategy, seg.start_time, v, d, crossover=0.0, rate=v / d)

    if strategy == Strategy.speed_overflow:
        x = solve_overflow_crossover(v, d, seg.speed_factor)
        return SegmentVisualPlan(seg.index, strategy, seg.start_time, v, d, crossover=x, rate=float(seg.speed_factor))

    return SegmentVisualPlan(seg.index, strategy, seg.start_time, v, d, crossover=v, rate=1.0)


def plan_visuals(shifted: Sequence[ShiftedSegment]) -> list[SegmentVisualPlan]:
    return [plan_segment_visual(s) for s in shifted]


def compute_xfade_offsets(durations: Sequence[float], transition: float) -> list[float]:
    """Offset of each crossfade (one per joint) on the output timeline.

    Running output time minus the overlap: joint i starts ``transition``
    seconds before the stitched stream so far ends.
    """
    offsets: list[float] = []
    if not durations:
        return offsets
    elapsed = durations[0]
    for d in durations[1:]:
        offset = elapsed - transition
        offsets.append(offset)
        elapsed = offset + d
    return offsets


# ── Filter graph ──────────────────────────────────────────────────────────────

@dataclass
class VideoRenderOptions:
    width: int
    height: int
    fps: int = 30
    transition: float = 0.0
    transition_type: str = "fade"
    title_seconds: float = 3.0
    title_color: str = "white"
    font_file: str = ""
    subtitle_path: Path | None = None
    subtitle_font_size: int = 24
    title_files: dict[int, Path] = field(default_factory=dict)
    title_layouts: dict[int, TitleLayout] = field(default_factory=dict)


def _even(n: int) -> int:
    return max(2, n - n % 2)


def _normalize_filters(opts: VideoRenderOptions) -> list[str]:
    w, h = _even(opts.width), _even(opts.height)
    return [
        f"fps={opts.fps}",
        f"scale={w}:{h}:force_original_aspect_ratio=decrease",
        f"pad={w}:{h}:(ow-iw)/2:(oh-ih)/2:black",
        "setsar=1",
        "format=yuv420p",
    ]


def _drawtext(opts: VideoRenderOptions, idx: int, start: float = 0.0) -> str | None:
    path = opts.title_files.get(idx)
    layout = opts.title_layouts.get(idx)
    if path is None or layout is None or not layout.lines:
        return None
    scale = compute_overlay_scale(opts.width, opts.height)
    parts = [f"textfile='{escape_filter_path(str(path))}'"]
    if opts.font_file:
        parts.append(f"fontfile='{escape_filter_path(opts.font_file)}'")
    parts += [
        f"fontsize={layout.font_size}",
        f"fontcolor={opts.title_color}",
        f"line_spacing={round(layout.font_size * 0.25)}",
        "box=1:boxcolor=black@0.45",
        f"boxborderw={max(4, round(18 * scale))}",
        "x=(w-text_w)/2",
        "y=h*0.12",
        f"enable='between(t,{fmt_num(start)},{fmt_num(start + opts.title_seconds)})'",
    ]
    return "drawtext=" + ":".join(parts)


def _segment_chain(graph: FilterGraph, plan: SegmentVisualPlan, source: str, opts: VideoRenderOptions) -> str:
    i = plan.index
    d = fmt_num(plan.output_duration)
    base = [
        f"trim=start={fmt_num(plan.source_start)}:duration={fmt_num(plan.source_read)}",
        "setpts=PTS-STARTPTS",
    ]

    if plan.strategy == Strategy.speed_overflow and 0 < plan.crossover < plan.source_read:
        x = fmt_num(plan.crossover)
        graph.add(source, base + ["split=2"], [f"s{i}n", f"s{i}f"])
        graph.add(f"s{i}n", [f"trim=end={x}", "setpts=PTS-STARTPTS"], f"s{i}a")
        graph.add(f"s{i}f", [f"trim=start={x}", f"setpts=(PTS-STARTPTS)/{fmt_factor(plan.rate)}"], f"s{i}b")
        graph.add([f"s{i}a", f"s{i}b"], "concat=n=2:v=1:a=0", f"s{i}c")
        source, filters = f"s{i}c", []
    elif plan.rate != 1.0 and plan.crossover == 0:
        filters = base + [f"setpts=PTS*{fmt_factor(1 / plan.rate)}"]
    else:
        filters = base

    filters += _normalize_filters(opts)
    filters += [f"tpad=stop_mode=clone:stop_duration={d}", f"trim=duration={d}", "setpts=PTS-STARTPTS"]
    title = _drawtext(opts, i)
    if title:
        filters.append(title)
    return graph.add(source, filters, f"v{i}")


def build_video_graph(
    shifted: Sequence[ShiftedSegment],
    opts: VideoRenderOptions,
    auto_trim_video: bool = True,
    video_input: int = 0,
) -> FilterGraph:
    """Graph from ``[<video_input>:v]`` to ``[vout]``."""
    if not shifted:
        raise ValueError("no segments to render")
    graph = FilterGraph()
    src = f"{video_input}:v"

    if not auto_trim_video:
        total = max(s.target_end_time for s in shifted)
        filters = _normalize_filters(opts) + [
            f"tpad=stop_mode=clone:stop_duration={fmt_num(total)}",
            f"trim=duration={fmt_num(total)}",
            "setpts=PTS-STARTPTS",
        ]
        for s in shifted:
            title = _drawtext(opts, s.index, s.target_start_time)
            if title:
                filters.append(title)
        stitched = graph.add(src, filters, "vbase")
    else:
        plans = plan_visuals(shifted)
        if len(plans) > 1:
            graph.add(src, f"split={len(plans)}", [f"in{p.index}" for p in plans])
            sources = [f"in{p.index}" for p in plans]
        else:
            sources = [src]
        labels = [_segment_chain(graph, p, s, opts) for p, s in zip(plans, sources)]

        if len(labels) == 1:
            stitched = labels[0]
        elif opts.transition > 0:
            offsets = compute_xfade_offsets([p.output_duration for p in plans], opts.transition)
            stitched = labels[0]
            for j, (label, offset) in enumerate(zip(labels[1:], offsets), start=1):
                stitched = graph.add([stitched, label], (
                    f"xfade=transition={opts.transition_type}"
                    f":duration={fmt_num(opts.transition)}:offset={fmt_num(offset)}"
                ), f"x{j}")
        else:
            stitched = graph.add(labels, f"concat=n={len(labels)}:v=1:a=0", "vcat")

    final: list[str] = []
    if opts.subtitle_path is not None:
        style = (
            f"FontSize={opts.subtitle_font_size},PrimaryColour=&H00FFFFFF,OutlineColour=&H00000000,"
            "BorderStyle=1,Outline=2,Shadow=0,Alignment=2"
        )
        final.append(f"subtitles='{escape_filter_path(str(opts.subtitle_path))}':force_style='{style}'")
    final.append("format=yuv420p")
    graph.add(stitched, final, "vout")
    return graph


def prepare_titles(
    shifted: Sequence[ShiftedSegment],
    work_dir: Path,
    width: int,
    height: int,
) -> tuple[dict[int, Path], dict[int, TitleLayout]]:
    """Wrap segment titles and write each to a text file for drawtext."""
    files: dict[int, Path] = {}
    layouts: dict[int, TitleLayout] = {}
    for s in shifted:
        layout = wrap_title(s.segment.title, width, height)
        if not layout.lines:
            continue
        path = work_dir / "titles" / f"title_{s.index:03d}.txt"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(layout.text, encoding="utf-8")
        files[s.index] = path
        layouts[s.index] = layout
    return files, layouts
