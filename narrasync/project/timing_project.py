"""Timing project file: load, legacy upgrade, atomic save with revision check.

Layout next to the source video ``clip.mp4``::

    clip_vision_project/
        timing.json          project file
        audio/seg_<i>.mp3    synthesized narration per segment
        boundaries/seg_<i>.json
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from narrasync.timing.models import AudioConfig, Segment, ShiftedSegment, WordBoundary
from narrasync.utils.logging import debug, info, warn

PROJECT_VERSION = "2.0"
TIMING_FILENAME = "timing.json"
UNKNOWN_VIDEO_NAME = "unknown_video.mp4"


class ProjectFileError(ValueError):
    """Malformed project file or unusable project contents."""


class ProjectConflictError(RuntimeError):
    """The file on disk was changed by another writer since it was loaded."""

    def __init__(self, path: Path, expected: int, found: int):
        self.path = path
        self.expected = expected
        self.found = found
        super().__init__(f"{path.name} changed on disk (revision {found}, expected {expected}); reload and retry")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


@dataclass
class TimingProject:
    video_name: str
    segments: list[Segment] = field(default_factory=list)
    audio: AudioConfig | None = None
    version: str = PROJECT_VERSION
    last_modified: str = field(default_factory=_now_iso)
    revision: int = 0
    path: Path | None = None

    @property
    def project_dir(self) -> Path:
        if self.path is None:
            raise ProjectFileError("project has no file path")
        return self.path.parent

    @property
    def audio_config(self) -> AudioConfig:
        return self.audio or AudioConfig()

    def to_dict(self, shifted: Sequence[ShiftedSegment] | None = None) -> dict:
        if shifted is not None:
            segments = [s.to_dict() for s in shifted]
        else:
            segments = [s.to_dict() for s in self.segments]
        d: dict[str, Any] = {
            "version": self.version,
            "videoName": self.video_name,
            "lastModified": self.last_modified,
            "revision": self.revision,
        }
        if self.audio is not None:
            d["audio"] = self.audio.to_dict()
        d["segments"] = segments
        return d

    @classmethod
    def from_dict(cls, d: dict, path: Path | None = None) -> TimingProject:
        raw_segments = d.get("segments")
        if not isinstance(raw_segments, list):
            raise ProjectFileError("project file has no segment list")
        segments = []
        for i, raw in enumerate(raw_segments):
            if not isinstance(raw, dict):
                raise ProjectFileError(f"segment {i} is not an object")
            try:
                segments.append(Segment.from_dict(raw))
            except (KeyError, TypeError, ValueError) as e:
                raise ProjectFileError(f"segment {i} is malformed: {e}") from e
        validate_segment_order(segments)
        video_name = d.get("videoName")
        if not isinstance(video_name, str) or not video_name:
            raise ProjectFileError("Invalid project file or missing video reference")
        try:
            audio = AudioConfig.from_dict(d["audio"]) if isinstance(d.get("audio"), dict) else None
        except (TypeError, ValueError) as e:
            raise ProjectFileError(f"audio settings are malformed: {e}") from e
        try:
            revision = int(d.get("revision", 0) or 0)
        except (TypeError, ValueError) as e:
            raise ProjectFileError(f"revision is not an integer: {d.get('revision')!r}") from e
        return cls(
            video_name=video_name,
            segments=segments,
            audio=audio,
            version=str(d.get("version", PROJECT_VERSION)),
            last_modified=str(d.get("lastModified", _now_iso())),
            revision=revision,
            path=path,
        )


def validate_segment_order(segments: Sequence[Segment]) -> None:
    for i in range(1, len(segments)):
        if segments[i].start_time < segments[i - 1].start_time:
            raise ProjectFileError(
                f"segment {i} starts at {segments[i].start_time}s, "
                f"before segment {i - 1} ({segments[i - 1].start_time}s)"
            )


def legacy_project_to_v2(data: list, video_name: str = "") -> dict:
    """Wrap a bare segment array in the versioned project shape."""
    return {
        "version": PROJECT_VERSION,
        "videoName": video_name or UNKNOWN_VIDEO_NAME,
        "lastModified": _now_iso(),
        "revision": 0,
        "segments": data,
    }


def atomic_write_text(content: str, target: Path) -> None:
    """Write via a temp file in the same directory, then rename over the target."""
    target.parent.mkdir(parents=True, exist_ok=True)
    tmp = target.parent / f".{target.name}.tmp"
    try:
        tmp.write_text(content, encoding="utf-8")
        tmp.replace(target)
    except OSError:
        if tmp.exists():
            tmp.unlink()
        raise


def _read_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise ProjectFileError(f"project file not found: {path}") from e
    except json.JSONDecodeError as e:
        raise ProjectFileError(f"{path.name} is not valid JSON: {e}") from e


def load_project(path: Path, video_name: str = "") -> TimingProject:
    """Read a project file, upgrading (and rewriting) the legacy bare-array format."""
    data = _read_json(path)
    if isinstance(data, list):
        info(f"Upgrading legacy project file {path.name}")
        data = legacy_project_to_v2(data, video_name)
        project = TimingProject.from_dict(data, path=path)
        atomic_write_text(json.dumps(project.to_dict(), indent=2, ensure_ascii=False), path)
        return project
    if not isinstance(data, dict):
        raise ProjectFileError("Invalid project file or missing video reference")
    return TimingProject.from_dict(data, path=path)


def _disk_revision(path: Path) -> int | None:
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        warn(f"Could not read {path.name} for revision check; overwriting")
        return None
    if isinstance(data, dict):
        return int(data.get("revision", 0) or 0)
    return 0


def save_project(
    project: TimingProject,
    path: Path | None = None,
    shifted: Sequence[ShiftedSegment] | None = None,
    check_revision: bool = True,
) -> Path:
    """Write the project atomically and bump its revision.

    Raises ProjectConflictError if another writer saved since this copy was loaded.
    """
    target = path or project.path
    if target is None:
        raise ProjectFileError("no path to save the project to")

    if check_revision:
        found = _disk_revision(target)
        if found is not None and found != project.revision:
            raise ProjectConflictError(target, project.revision, found)

    project.revision += 1
    project.last_modified = _now_iso()
    project.path = target
    atomic_write_text(json.dumps(project.to_dict(shifted), indent=2, ensure_ascii=False), target)
    debug(f"Saved {target.name} (revision {project.revision})")
    return target


def resolve_video_path(project: TimingProject) -> Path:
    """Find the source video: parent of the project folder first, then the folder itself."""
    project_dir = project.project_dir
    for candidate in (project_dir.parent / project.video_name, project_dir / project.video_name):
        if candidate.exists():
            return candidate
    raise ProjectFileError(f"Invalid project file or missing video reference: {project.video_name}")


def project_dir_for_video(video_path: Path) -> Path:
    return video_path.parent / f"{video_path.stem}_vision_project"


def segment_audio_path(project_dir: Path, index: int) -> Path:
    return project_dir / "audio" / f"seg_{index}.mp3"


def segment_boundaries_path(project_dir: Path, index: int) -> Path:
    return project_dir / "boundaries" / f"seg_{index}.json"


def save_boundaries(path: Path, boundaries: Sequence[WordBoundary]) -> None:
    atomic_write_text(json.dumps([b.to_dict() for b in boundaries], indent=2, ensure_ascii=False), path)


def load_boundaries(path: Path) -> list[WordBoundary]:
    if not path.exists():
        return []
    data = _read_json(path)
    if not isinstance(data, list):
        raise ProjectFileError(f"{path.name} is not a boundary list")
    return [WordBoundary.from_dict(b) for b in data if isinstance(b, dict)]
