"""Group synthesized word boundaries into subtitle cues."""

from __future__ import annotations

import math
import re
from collections.abc import Sequence
from pathlib import Path

from narrasync.export.srt_writer import SubtitleCue, format_srt, write_srt
from narrasync.refine.text_budget import HAN_RE, HAN_CLASS
from narrasync.timing.models import ShiftedSegment, WordBoundary
from narrasync.utils.logging import debug

WORDS_PER_SUBTITLE = 8
MAX_GAP_MS = 1000

STRONG_PUNCT = "。！？!?.…"
COMMA_PUNCT = "，,、"
WEAK_PUNCT = "；;：:"
_CJK_PUNCT = "，。！？；：、「」『』（）《》"
_CLOSING = "\"'”’」』）)》"

_SPACE_BETWEEN_CJK = re.compile(f"(?<=[{HAN_CLASS}{_CJK_PUNCT}])\\s+(?=[{HAN_CLASS}{_CJK_PUNCT}])")
_SPACE_BEFORE_PUNCT = re.compile(r"\s+(?=[，。！？；：、,.!?;:)）」』”…])")
_SPACE_AFTER_CJK_PUNCT = re.compile(f"(?<=[{_CJK_PUNCT}])\\s+")
# Display marks: CJK pauses always, ASCII . and , unless inside a number
_DISPLAY_MARKS = re.compile(r"[，。！；：、…!;:]|(?<!\d)[.,]|[.,](?!\d)")


def punctuation_class(token: str) -> str | None:
    """'strong', 'comma', 'weak' or None, judged by the token's last mark."""
    t = token.rstrip().rstrip(_CLOSING)
    if not t:
        return None
    last = t[-1]
    if last in STRONG_PUNCT:
        return "strong"
    if last in COMMA_PUNCT:
        return "comma"
    if last in WEAK_PUNCT:
        return "weak"
    return None


def join_tokens(tokens: Sequence[str]) -> str:
    """Join word tokens with single spaces, then drop spaces inside CJK runs and before punctuation."""
    text = " ".join(t.strip() for t in tokens if t.strip())
    text = _SPACE_BETWEEN_CJK.sub("", text)
    text = _SPACE_BEFORE_PUNCT.sub("", text)
    text = _SPACE_AFTER_CJK_PUNCT.sub("", text)
    return text


def display_text(text: str) -> str:
    """Strip display punctuation; interior pause marks become spaces. '?' stays."""
    cleaned = _DISPLAY_MARKS.sub(" ", text)
    return re.sub(r"\s+", " ", cleaned).strip()


def group_boundaries(
    boundaries: Sequence[WordBoundary],
    words_per_subtitle: int = WORDS_PER_SUBTITLE,
    max_gap_ms: float = MAX_GAP_MS,
) -> list[list[WordBoundary]]:
    """Split a boundary sequence into cue-sized chunks.

    Break decisions look at the raw tokens, punctuation included.
    """
    threshold = math.ceil(words_per_subtitle / 2)
    chunks: list[list[WordBoundary]] = []
    chunk: list[WordBoundary] = []

    for word in boundaries:
        if chunk and word.audio_offset - chunk[-1].end > max_gap_ms:
            chunks.append(chunk)
            chunk = []
        chunk.append(word)

        kind = punctuation_class(word.text)
        if kind == "strong":
            chunks.append(chunk)
            chunk = []
        elif kind in ("comma", "weak") and len(chunk) >= threshold:
            chunks.append(chunk)
            chunk = []
        elif len(chunk) >= words_per_subtitle:
            chunks.append(chunk)
            chunk = []

    if chunk:
        chunks.append(chunk)
    return chunks


def boundaries_to_cues(
    boundaries: Sequence[WordBoundary],
    words_per_subtitle: int = WORDS_PER_SUBTITLE,
    max_gap_ms: float = MAX_GAP_MS,
) -> list[SubtitleCue]:
    cues: list[SubtitleCue] = []
    for chunk in group_boundaries(boundaries, words_per_subtitle, max_gap_ms):
        text = display_text(join_tokens([w.text for w in chunk]))
        if not text:
            continue
        cues.append(SubtitleCue(
            index=len(cues) + 1,
            start_ms=chunk[0].audio_offset,
            end_ms=chunk[-1].end,
            text=text,
        ))
    return cues


def generate_srt(
    boundaries: Sequence[WordBoundary],
    words_per_subtitle: int = WORDS_PER_SUBTITLE,
    max_gap_ms: float = MAX_GAP_MS,
) -> str:
    return format_srt(boundaries_to_cues(boundaries, words_per_subtitle, max_gap_ms))


def merge_segment_boundaries(groups: Sequence[Sequence[WordBoundary]]) -> list[WordBoundary]:
    """Concatenate per-segment boundary groups into one track.

    A zero-duration terminator is inserted after a group whose last word has
    no sentence-ending mark, so a cue never spans two segments.
    """
    non_empty = [list(g) for g in groups if g]
    merged: list[WordBoundary] = []
    for i, group in enumerate(non_empty):
        merged.extend(group)
        if i == len(non_empty) - 1:
            break
        last = group[-1]
        if punctuation_class(last.text) != "strong":
            terminator = "。" if HAN_RE.search(last.text) else "."
            merged.append(WordBoundary(text=terminator, audio_offset=last.end, duration=0))
    return merged


def shift_boundary_groups(
    shifted: Sequence[ShiftedSegment],
    groups: Sequence[Sequence[WordBoundary]],
) -> list[list[WordBoundary]]:
    """Re-offset each segment's boundaries (ms from clip start) onto the output timeline."""
    out: list[list[WordBoundary]] = []
    for seg, group in zip(shifted, groups):
        offset_ms = seg.target_start_time * 1000
        out.append([w.shifted(offset_ms) for w in group])
    return out


def write_subtitles_for_segments(
    shifted: Sequence[ShiftedSegment],
    groups: Sequence[Sequence[WordBoundary]],
    output_path: Path,
    words_per_subtitle: int = WORDS_PER_SUBTITLE,
    max_gap_ms: float = MAX_GAP_MS,
) -> list[SubtitleCue]:
    merged = merge_segment_boundaries(shift_boundary_groups(shifted, groups))
    cues = boundaries_to_cues(merged, words_per_subtitle, max_gap_ms)
    write_srt(cues, output_path)
    debug(f"Wrote {len(cues)} subtitle cues to {output_path.name}")
    return cues
