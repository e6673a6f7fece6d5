"""SRT subtitle file writer and parser."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass
class SubtitleCue:
    index: int
    start_ms: float
    end_ms: float
    text: str

    @property
    def start(self) -> float:
        return self.start_ms / 1000.0

    @property
    def end(self) -> float:
        return self.end_ms / 1000.0


def format_srt_time(ms: float) -> str:
    """Milliseconds to ``HH:MM:SS,mmm``, rounded to the nearest millisecond."""
    total = max(0, int(round(ms)))
    h = total // 3_600_000
    m = (total % 3_600_000) // 60_000
    s = (total % 60_000) // 1000
    millis = total % 1000
    return f"{h:02d}:{m:02d}:{s:02d},{millis:03d}"


def format_srt(cues: list[SubtitleCue]) -> str:
    lines: list[str] = []
    for i, cue in enumerate(cues, 1):
        lines.append(str(i))
        lines.append(f"{format_srt_time(cue.start_ms)} --> {format_srt_time(cue.end_ms)}")
        lines.append(cue.text)
        lines.append("")
    return "\n".join(lines) + ("\n" if lines else "")


def write_srt(cues: list[SubtitleCue], output_path: Path) -> Path:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(format_srt(cues), encoding="utf-8")
    return output_path


def parse_srt_time(time_str: str) -> float:
    """``HH:MM:SS,mmm`` to milliseconds."""
    parts = time_str.strip().replace(",", ".").split(":")
    h, m = int(parts[0]), int(parts[1])
    s = float(parts[2])
    return round((h * 3600 + m * 60 + s) * 1000)


def read_srt(path: Path) -> list[SubtitleCue]:
    content = path.read_text(encoding="utf-8").replace("\r\n", "\n")
    blocks = content.strip().split("\n\n")
    cues: list[SubtitleCue] = []

    for block in blocks:
        lines = block.strip().split("\n")
        if len(lines) < 3:
            continue
        time_line = lines[1]
        if " --> " not in time_line:
            continue
        start_str, end_str = time_line.split(" --> ")
        cues.append(SubtitleCue(
            index=len(cues) + 1,
            start_ms=parse_srt_time(start_str),
            end_ms=parse_srt_time(end_str),
            text="\n".join(lines[2:]),
        ))

    return cues
