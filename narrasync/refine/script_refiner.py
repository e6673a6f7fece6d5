"""Fit each segment's narration into the time before the next segment starts."""

from __future__ import annotations

import math
from collections.abc import Sequence

from narrasync.collaborators.base import (
    CollaboratorError,
    CredentialError,
    ScriptRewriter,
    SpeechSynthesizer,
    VoiceSettings,
)
from narrasync.refine.text_budget import count_words, fallback_truncate, sanitize_refined_text
from narrasync.timing.models import Segment
from narrasync.utils.logging import debug, info, set_segment_context, success, warn

DEFAULT_WORDS_PER_SECOND = 2.5
MIN_DURATION_LIMIT = 1.0
MIN_MAX_WORDS = 3
CALIBRATION_SAMPLE_CHARS = 100


def word_budget(duration_limit: float, words_per_second: float) -> int:
    return max(MIN_MAX_WORDS, int(math.floor(duration_limit * words_per_second)))


def refine_segment_text(
    content: str,
    max_words: int,
    rewriter: ScriptRewriter | None,
    max_attempts: int = 3,
) -> tuple[str, bool]:
    """Rewrite ``content`` to at most ``max_words`` units.

    Returns (text, rewritten). ``rewritten`` is False when the deterministic
    fallback was used. A too-long rewrite becomes the input of the next attempt.
    """
    current = content
    if rewriter is not None:
        for attempt in range(1, max_attempts + 1):
            debug(f"Rewrite attempt {attempt}/{max_attempts}: {count_words(current)} > {max_words} units")
            try:
                raw = rewriter.rewrite(current, max_words)
            except CredentialError:
                raise
            except CollaboratorError as e:
                warn(f"Rewrite attempt {attempt} failed: {e}")
                continue

            refined = sanitize_refined_text(raw)
            words = count_words(refined)
            if 0 < words <= max_words:
                return refined, True
            if words > 0:
                warn(f"Attempt {attempt}: result too long ({words} > {max_words} units)")
                current = refined

    return fallback_truncate(content, max_words), False


def refine_script(
    segments: Sequence[Segment],
    video_duration: float,
    rewriter: ScriptRewriter | None,
    words_per_second: float = DEFAULT_WORDS_PER_SECOND,
    max_attempts: int = 3,
) -> list[Segment]:
    """Set ``duration_limit`` and ``adjusted_content`` on every segment (in place).

    The last segment is never shortened since the video is extended to fit it.
    """
    count = len(segments)
    for i, seg in enumerate(segments):
        next_seg = segments[i + 1] if i + 1 < count else None
        next_start = next_seg.start_time if next_seg else video_duration
        seg.duration_limit = max(MIN_DURATION_LIMIT, next_start - seg.start_time)
        max_words = word_budget(seg.duration_limit, words_per_second)
        current_words = count_words(seg.content)

        if next_seg is None or current_words <= max_words:
            seg.adjusted_content = seg.content
            continue

        set_segment_context(str(i))
        info(f"Refining segment {i} \"{seg.title}\" "
             f"(limit {seg.duration_limit:.1f}s, {current_words} > {max_words} units)")
        try:
            text, rewritten = refine_segment_text(seg.content, max_words, rewriter, max_attempts)
        finally:
            set_segment_context("")
        seg.adjusted_content = text
        if rewritten:
            success(f"Segment {i} refined to {count_words(text)} units")
        else:
            warn(f"Segment {i}: rewrite failed, truncated to {count_words(text)} units")

    return list(segments)


def calibrate_words_per_second(
    synthesizer: SpeechSynthesizer,
    sample_text: str,
    voice: VoiceSettings,
    default: float = DEFAULT_WORDS_PER_SECOND,
) -> float:
    """Measure the voice's speaking rate on the first 100 characters of the script."""
    sample = (sample_text or "")[:CALIBRATION_SAMPLE_CHARS]
    words = count_words(sample)
    if words == 0:
        return default
    try:
        result = synthesizer.synthesize(sample, voice)
    except CredentialError:
        raise
    except CollaboratorError as e:
        warn(f"Speech-rate calibration failed ({e}); using {default} words/s")
        return default

    if not result.boundaries:
        return default
    last = result.boundaries[-1]
    seconds = (last.audio_offset + last.duration) / 1000.0
    if seconds <= 0:
        return default
    wps = words / seconds
    info(f"Calibrated speech rate: {wps:.2f} words/s")
    return wps
