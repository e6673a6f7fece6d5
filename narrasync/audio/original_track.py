"""Compose the original video's audio under the narration.

Modes:
    replace  narration only; the original audio is dropped
    mix      original slices and narration summed at their gains
    duck     original slices sidechain-compressed by the narration, then summed
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

from narrasync.media.filtergraph import FilterGraph, fmt_num
from narrasync.media.probe import ProbeResult, probe_media
from narrasync.timing.models import AudioConfig, AudioMode, MuteWindow, ShiftedSegment, Strategy
from narrasync.timing.planner import solve_overflow_crossover
from narrasync.utils.logging import debug, info, warn
from narrasync.utils.media_executor import run_ffmpeg

MUTE_TAIL_MAX_SEC = 2.2
MIN_WINDOW_SEC = 0.005
MIN_SLICE_SEC = 0.02
SIDECHAIN_RATIO = 8


def _wants_full_mute(seg: ShiftedSegment, audio_config: AudioConfig) -> bool:
    if seg.strategy != Strategy.speed_overflow:
        return False
    override = seg.segment.audio_override
    if override is not None and override.mute_original is not None:
        return override.mute_original
    rule = audio_config.strategy_rules.get(seg.strategy)
    if rule is not None and rule.mute_original is not None:
        return rule.mute_original
    return False


def merge_windows(windows: Sequence[MuteWindow]) -> list[MuteWindow]:
    """Merge overlapping or touching windows into disjoint ranges."""
    merged: list[MuteWindow] = []
    for w in sorted(windows, key=lambda w: w.start):
        if merged and w.start <= merged[-1].end:
            last = merged[-1]
            merged[-1] = MuteWindow(last.start, max(last.end, w.end))
        else:
            merged.append(w)
    return merged


def compute_mute_windows(
    shifted: Sequence[ShiftedSegment],
    audio_config: AudioConfig | None = None,
) -> list[MuteWindow]:
    """Windows where the original audio is silenced, on the output timeline.

    Every speed_overflow segment mutes its accelerated tail, limited to the
    last 2.2 s before the overflow end. A full-segment mute is opt-in, via the
    segment override or the strategy rule.
    """
    audio_config = audio_config or AudioConfig()
    windows: list[MuteWindow] = []

    for i, seg in enumerate(shifted):
        if seg.strategy != Strategy.speed_overflow:
            continue
        seg_start = seg.target_start_time
        nxt = shifted[i + 1] if i + 1 < len(shifted) else None
        overflow_end = nxt.target_start_time if nxt is not None else seg_start + seg.target_duration

        if _wants_full_mute(seg, audio_config):
            start = seg_start
        else:
            x = solve_overflow_crossover(seg.visual_available, seg.target_duration, seg.speed_factor)
            start = max(seg_start + x, overflow_end - MUTE_TAIL_MAX_SEC)

        if overflow_end - start < MIN_WINDOW_SEC:
            debug(f"segment {i}: mute window shorter than 5ms, skipped")
            continue
        windows.append(MuteWindow(start, overflow_end))

    return merge_windows(windows)


def _source_duration_raw(
    shifted: Sequence[ShiftedSegment], i: int, video_duration: float | None,
) -> float:
    seg = shifted[i]
    if i + 1 < len(shifted):
        return shifted[i + 1].start_time - seg.start_time
    if video_duration and video_duration > seg.start_time:
        return video_duration - seg.start_time
    return seg.target_duration


def build_original_track_graph(
    shifted: Sequence[ShiftedSegment],
    audio_config: AudioConfig,
    video_duration: float | None = None,
    original_input: int = 0,
    narration_input: int = 1,
) -> FilterGraph:
    """Filter graph producing ``[aout]`` from the original audio and the narration track."""
    if audio_config.mode == AudioMode.replace:
        raise ValueError("replace mode has no original track to compose")
    if not shifted:
        raise ValueError("no segments to compose")

    graph = FilterGraph()
    gain_db = audio_config.effective_original_gain_db()
    n = len(shifted)

    if n > 1:
        graph.add(f"{original_input}:a", f"asplit={n}", [f"src{i}" for i in range(n)])
        sources = [f"src{i}" for i in range(n)]
    else:
        sources = [f"{original_input}:a"]

    slice_labels = []
    for i, seg in enumerate(shifted):
        used = max(MIN_SLICE_SEC, min(_source_duration_raw(shifted, i, video_duration), seg.target_duration))
        delay = int(round(seg.target_start_time * 1000))
        slice_labels.append(graph.add(sources[i], [
            f"atrim=start={fmt_num(seg.start_time)}:duration={fmt_num(used)}",
            "asetpts=PTS-STARTPTS",
            f"volume={fmt_num(gain_db)}dB",
            f"adelay={delay}|{delay}",
        ], f"o{i}"))

    if len(slice_labels) == 1:
        graph.add(slice_labels, "anull", "orig")
    else:
        graph.add(slice_labels, f"amix=inputs={len(slice_labels)}:dropout_transition=0:normalize=0", "orig")

    original = "orig"
    windows = compute_mute_windows(shifted, audio_config)
    if windows:
        gates = [
            f"volume=volume=0:enable='between(t,{fmt_num(w.start)},{fmt_num(w.end)})'"
            for w in windows
        ]
        original = graph.add(original, gates, "orig_muted")

    narration_gain = f"volume={fmt_num(audio_config.narration_gain_db)}dB"
    if audio_config.mode == AudioMode.duck:
        d = audio_config.ducking
        threshold = min(1.0, max(0.001, 10 ** (d.target_gain_db / 20)))
        graph.add(f"{narration_input}:a", [narration_gain, "asplit=2"], ["narr_sc", "narr_mix"])
        original = graph.add([original, "narr_sc"], (
            f"sidechaincompress=threshold={threshold:.4f}:ratio={SIDECHAIN_RATIO}"
            f":attack={fmt_num(d.attack_ms)}:release={fmt_num(d.release_ms)}"
        ), "orig_ducked")
        narration = "narr_mix"
    else:
        narration = graph.add(f"{narration_input}:a", narration_gain, "narr")

    graph.add([original, narration], "amix=inputs=2:duration=longest:dropout_transition=0:normalize=0", "aout")
    return graph


def build_compose_cmd(
    video_path: Path,
    narration_path: Path,
    output_path: Path,
    graph: FilterGraph,
    audio_bitrate: str = "192k",
) -> list[str]:
    return [
        "ffmpeg", "-y",
        "-i", str(video_path),
        "-i", str(narration_path),
        "-filter_complex", graph.render(),
        "-map", "[aout]",
        "-c:a", "aac", "-b:a", audio_bitrate,
        str(output_path),
    ]


def compose_final_audio_track(
    video_path: Path,
    narration_path: Path,
    output_path: Path,
    shifted: Sequence[ShiftedSegment],
    audio_config: AudioConfig | None = None,
    probe: ProbeResult | None = None,
    audio_bitrate: str = "192k",
    timeout: int | None = None,
) -> Path:
    """Return the audio file to mux: the narration itself, or a composed .m4a."""
    audio_config = audio_config or AudioConfig()
    if audio_config.mode == AudioMode.replace:
        return narration_path

    probe = probe or probe_media(video_path)
    if not probe.has_audio:
        warn(f"{video_path.name} has no audio stream; using narration only")
        return narration_path

    graph = build_original_track_graph(shifted, audio_config, probe.duration or None)
    info(f"Composing original audio ({audio_config.mode.value}, "
         f"{len(compute_mute_windows(shifted, audio_config))} mute windows)")
    output_path.parent.mkdir(parents=True, exist_ok=True)
    cmd = build_compose_cmd(video_path, narration_path, output_path, graph, audio_bitrate)
    run_ffmpeg(cmd, description="compose original audio", timeout=timeout)
    return output_path
