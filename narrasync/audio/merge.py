"""Merge per-segment narration clips into one track at their timeline offsets."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from narrasync.media.filtergraph import FilterGraph, fmt_num
from narrasync.timing.models import ShiftedSegment
from narrasync.utils.logging import debug, info
from narrasync.utils.media_executor import run_ffmpeg

TAIL_FADE_SEC = 0.035
MIN_CLIP_SEC = 0.05
SPOKEN_TAIL_SEC = 0.03


@dataclass
class AudioClip:
    audio_path: str
    start_time: float
    max_duration_sec: float | None = None


def build_merge_plan(shifted: Sequence[ShiftedSegment]) -> list[AudioClip]:
    """One clip per segment, trimmed so it never runs into the next segment's slot."""
    plan: list[AudioClip] = []
    for i, s in enumerate(shifted):
        if not s.segment.audio_path:
            raise ValueError(f"segment {i} has no synthesized audio")
        nxt = shifted[i + 1] if i + 1 < len(shifted) else None
        if nxt is not None:
            slot = max(MIN_CLIP_SEC, nxt.target_start_time - s.target_start_time)
        else:
            slot = max(MIN_CLIP_SEC, s.target_duration)

        audio_duration = s.segment.audio_duration
        if audio_duration is not None:
            trim = max(MIN_CLIP_SEC, min(slot, max(MIN_CLIP_SEC, audio_duration + SPOKEN_TAIL_SEC)))
        else:
            trim = slot
        plan.append(AudioClip(s.segment.audio_path, s.target_start_time, trim))

    for i, clip in enumerate(plan):
        debug(f"merge plan {i}: start={clip.start_time:.3f}s max={clip.max_duration_sec:.3f}s {clip.audio_path}")
    return plan


def build_merge_graph(clips: Sequence[AudioClip]) -> FilterGraph:
    graph = FilterGraph()
    labels = []
    for i, clip in enumerate(clips):
        filters: list[str] = []
        if clip.max_duration_sec is not None and clip.max_duration_sec > 0:
            d = clip.max_duration_sec
            fade = min(TAIL_FADE_SEC, d)
            filters.append(f"atrim=duration={fmt_num(d)}")
            filters.append(f"afade=t=out:st={fmt_num(max(0.0, d - fade))}:d={fmt_num(fade)}")
        delay = int(round(clip.start_time * 1000))
        filters.append(f"adelay={delay}|{delay}")
        labels.append(graph.add(f"{i}:a", filters, f"a{i}"))

    graph.add(labels, f"amix=inputs={len(clips)}:dropout_transition=0:normalize=0", "aout")
    return graph


def build_merge_audio_cmd(clips: Sequence[AudioClip], output_path: str | Path) -> list[str]:
    """ffmpeg argv for the merge. Paths are separate arguments, never shell text."""
    if not clips:
        raise ValueError("no audio clips to merge")
    cmd = ["ffmpeg", "-y"]
    for clip in clips:
        cmd.extend(["-i", str(clip.audio_path)])
    cmd.extend([
        "-filter_complex", build_merge_graph(clips).render(),
        "-map", "[aout]",
        str(output_path),
    ])
    return cmd


def merge_audio_with_offsets(
    clips: Sequence[AudioClip],
    output_path: Path,
    timeout: int | None = None,
) -> Path:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    info(f"Merging {len(clips)} narration clips → {output_path.name}")
    run_ffmpeg(build_merge_audio_cmd(clips, output_path), description="merge narration", timeout=timeout)
    return output_path
