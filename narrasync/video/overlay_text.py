"""Title and subtitle sizing: overlay scale factors and two-pass title wrapping."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

REFERENCE_SHORT_EDGE = 1080
PORTRAIT_PENALTY_SLOPE = 0.35
PORTRAIT_PENALTY_FLOOR = 0.7
WRAP_WIDTH_RATIO = 2 / 3

# Title font size at a 1080 short edge, by line count (4 = four or more)
TITLE_FONT_SIZES = {1: 64, 2: 56, 3: 48, 4: 42}

# Width estimates as a fraction of the font size
WIDE_CHAR_WIDTH = 1.0
NARROW_CHAR_WIDTH = 0.55
SPACE_WIDTH = 0.3

# Hangul, CJK, kana, fullwidth forms
_WIDE_RANGES = (
    "\u1100-\u115f\u2e80-\u303e\u3041-\u33ff\u3400-\u4dbf\u4e00-\u9fff"
    "\ua000-\ua4cf\uac00-\ud7a3\uf900-\ufaff\ufe30-\ufe4f\uff00-\uff60\uffe0-\uffe6"
)
_WIDE_RE = re.compile(f"[{_WIDE_RANGES}]")
_TOKEN_RE = re.compile(f"[{_WIDE_RANGES}]|[^\\s{_WIDE_RANGES}]+|\\s+")


def compute_overlay_scale(width: int, height: int) -> float:
    """Scale for overlay text relative to a 1080p frame.

    Uses the short edge, reduced for portrait frames the taller they are.
    """
    if width <= 0 or height <= 0:
        return 1.0
    scale = min(width, height) / REFERENCE_SHORT_EDGE
    if height > width:
        penalty = 1 - PORTRAIT_PENALTY_SLOPE * (height / width - 1)
        scale *= max(PORTRAIT_PENALTY_FLOOR, penalty)
    return scale


def subtitle_font_size(width: int, height: int, base_size: int = 24) -> int:
    """FontSize for an SRT ``force_style``.

    libass sizes SRT text against a 288-line canvas that stretches with frame
    height, so only the short-edge share of the height and the portrait
    penalty are applied here.
    """
    if width <= 0 or height <= 0:
        return base_size
    relative = compute_overlay_scale(width, height) * REFERENCE_SHORT_EDGE / height
    return max(8, round(base_size * relative))


def estimate_text_width(text: str, font_size: float) -> float:
    total = 0.0
    for ch in text:
        if ch.isspace():
            total += SPACE_WIDTH
        elif _WIDE_RE.match(ch):
            total += WIDE_CHAR_WIDTH
        else:
            total += NARROW_CHAR_WIDTH
    return total * font_size


def wrap_text(text: str, font_size: float, max_width: float) -> list[str]:
    """Greedy wrap. CJK may break between any two characters, Latin words stay whole."""
    lines: list[str] = []
    for paragraph in text.split("\n"):
        current = ""
        for token in _TOKEN_RE.findall(paragraph.strip()):
            if token.isspace():
                if current:
                    current += " "
                continue
            candidate = current + token
            if current and estimate_text_width(candidate.rstrip(), font_size) > max_width:
                lines.append(current.rstrip())
                current = token
            else:
                current = candidate
        if current.strip():
            lines.append(current.rstrip())
    return lines


@dataclass
class TitleLayout:
    lines: list[str] = field(default_factory=list)
    font_size: int = 0

    @property
    def text(self) -> str:
        return "\n".join(self.lines)


def font_size_for_lines(line_count: int, scale: float) -> int:
    key = min(max(line_count, 1), 4)
    return max(10, round(TITLE_FONT_SIZES[key] * scale))


def wrap_title(title: str, frame_width: int, frame_height: int) -> TitleLayout:
    """Wrap a title to two thirds of the frame width.

    The first pass counts lines at the largest font size; the second pass
    re-wraps at the size chosen for that line count.
    """
    title = (title or "").strip()
    if not title:
        return TitleLayout()
    scale = compute_overlay_scale(frame_width, frame_height)
    max_width = (frame_width if frame_width > 0 else REFERENCE_SHORT_EDGE) * WRAP_WIDTH_RATIO

    baseline = font_size_for_lines(1, scale)
    first_pass = wrap_text(title, baseline, max_width)
    font_size = font_size_for_lines(len(first_pass), scale)
    return TitleLayout(lines=wrap_text(title, font_size, max_width), font_size=font_size)
