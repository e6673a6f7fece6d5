"""ffprobe helpers."""

from __future__ import annotations

import json
import subprocess
from dataclasses import dataclass
from pathlib import Path

from narrasync.utils.logging import error
from narrasync.utils.media_executor import run_media_subprocess


@dataclass
class ProbeResult:
    width: int = 0
    height: int = 0
    duration: float = 0
    fps: float = 30
    has_audio: bool = False
    has_video: bool = False

    @property
    def is_portrait(self) -> bool:
        return self.height > self.width

    @property
    def resolution(self) -> str:
        return f"{self.width}x{self.height}"


def probe_media(path: Path) -> ProbeResult:
    """Probe a video or audio file with ffprobe. Unreadable files yield an empty result."""
    cmd = [
        "ffprobe", "-v", "quiet", "-print_format", "json",
        "-show_format", "-show_streams", str(path),
    ]
    try:
        r = run_media_subprocess(
            cmd, tool="ffprobe", description=f"probe {Path(path).name}",
            timeout=30, heavy=False,
        )
        data = json.loads(r.stdout or "{}")
    except (OSError, subprocess.TimeoutExpired, json.JSONDecodeError) as e:
        error(f"ffprobe failed: {e}")
        return ProbeResult()

    result = ProbeResult()
    fmt = data.get("format", {})

    for s in data.get("streams", []):
        if s.get("codec_type") == "video" and not result.has_video:
            result.has_video = True
            result.width = int(s.get("width", 0))
            result.height = int(s.get("height", 0))
            dur = s.get("duration") or fmt.get("duration", "0")
            result.duration = float(dur)
            r_fps = s.get("r_frame_rate", "30/1")
            try:
                num, den = r_fps.split("/")
                result.fps = round(float(num) / float(den), 2)
            except (ValueError, ZeroDivisionError):
                result.fps = 30
        elif s.get("codec_type") == "audio":
            result.has_audio = True

    if result.duration <= 0:
        result.duration = float(fmt.get("duration", 0) or 0)

    return result