"""Segment timing: target start times and durations per pacing strategy."""

from __future__ import annotations

from collections.abc import Sequence

from narrasync.timing.models import Segment, ShiftedSegment, Strategy

PADDING_DURATION = 0.8
TRANSITION_DURATION = 0.5
DEFAULT_AUDIO_DURATION = 5.0
MIN_VISUAL_AVAILABLE = 0.033


def transition_duration(enable_transitions: bool) -> float:
    return TRANSITION_DURATION if enable_transitions else 0.0


def plan_segment_timing(
    segments: Sequence[Segment],
    auto_trim_video: bool = True,
    enable_transitions: bool = True,
) -> list[ShiftedSegment]:
    """Compute target start/duration for every segment.

    With auto-trim the start times are a running sum starting at 0, each
    segment advancing it by its duration minus the transition overlap it
    shares with the next one. Without auto-trim segments keep their source
    start time. Pure: inputs are not modified.
    """
    transition = transition_duration(enable_transitions)
    shifted: list[ShiftedSegment] = []
    cumulative = 0.0
    count = len(segments)

    for i, seg in enumerate(segments):
        is_last = i == count - 1
        audio_needed = (seg.audio_duration or DEFAULT_AUDIO_DURATION) + PADDING_DURATION
        tail_needed = 0.0 if is_last else transition
        total_needed = audio_needed + tail_needed

        if is_last:
            visual_available = audio_needed
        else:
            visual_available = max(MIN_VISUAL_AVAILABLE, segments[i + 1].start_time - seg.start_time)

        if seg.strategy == Strategy.freeze:
            segment_duration = max(total_needed, visual_available)
        else:
            segment_duration = total_needed

        target_start = cumulative if auto_trim_video else seg.start_time
        if auto_trim_video:
            cumulative += segment_duration - tail_needed

        shifted.append(ShiftedSegment(
            segment=seg,
            index=i,
            target_start_time=target_start,
            target_duration=segment_duration,
            visual_available=visual_available,
            tail_needed=tail_needed,
            total_needed=total_needed,
            is_last=is_last,
        ))
    return shifted


def solve_overflow_crossover(visual_available: float, target_duration: float, speed_factor: int) -> float:
    """Source time x where playback switches to accelerated.

    Solves x + (V - x) / N = W for x, clamped to [0, V].
    """
    n = max(2, int(speed_factor))
    x = (n * target_duration - visual_available) / (n - 1)
    return min(max(x, 0.0), visual_available)


def total_output_duration(shifted: Sequence[ShiftedSegment]) -> float:
    if not shifted:
        return 0.0
    return max(s.target_end_time for s in shifted)
