"""Shared test fixtures.

Provides:
- Seed data (legacy segment array, word boundaries)
- A project folder next to a dummy source video
- Fake speech synthesizer / script rewriter collaborators
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest


# ── Seed data ────────────────────────────────────────────────────────────────

SAMPLE_SEGMENTS = [
    {"startTime": 0.0, "title": "Opening", "content": "这是一个开场白。", "audioDuration": 3.0},
    {"startTime": 10.0, "title": "Demo", "content": "Next we show the demo.", "audioDuration": 4.0},
    {"startTime": 15.0, "title": "Wrap up", "content": "谢谢观看。", "audioDuration": 2.0},
]

SAMPLE_BOUNDARIES = [
    [{"text": "这是", "audioOffset": 0, "duration": 400},
     {"text": "开场白。", "audioOffset": 420, "duration": 600}],
    [{"text": "Next", "audioOffset": 0, "duration": 250},
     {"text": "demo", "audioOffset": 300, "duration": 300}],
    [{"text": "谢谢", "audioOffset": 0, "duration": 400},
     {"text": "观看", "audioOffset": 420, "duration": 500}],
]


@pytest.fixture
def sample_segment_dicts():
    """Return a deep copy of the legacy segment array."""
    return json.loads(json.dumps(SAMPLE_SEGMENTS))


@pytest.fixture
def sample_segments(sample_segment_dicts):
    from narrasync.timing.models import Segment
    return [Segment.from_dict(d) for d in sample_segment_dicts]


@pytest.fixture
def sample_boundaries():
    from narrasync.timing.models import WordBoundary
    return [[WordBoundary.from_dict(b) for b in group] for group in SAMPLE_BOUNDARIES]


# ── Project folder ───────────────────────────────────────────────────────────

@pytest.fixture
def video_file(tmp_path) -> Path:
    """A placeholder source video; ffmpeg/ffprobe are always mocked."""
    p = tmp_path / "clip.mp4"
    p.write_bytes(b"\x00" * 64)
    return p


@pytest.fixture
def project_file(video_file, sample_segment_dicts) -> Path:
    """clip_vision_project/timing.json in the versioned format."""
    project_dir = video_file.parent / "clip_vision_project"
    project_dir.mkdir()
    path = project_dir / "timing.json"
    path.write_text(json.dumps({
        "version": "2.0",
        "videoName": video_file.name,
        "lastModified": "2026-01-01T00:00:00+00:00",
        "revision": 0,
        "segments": sample_segment_dicts,
    }), encoding="utf-8")
    return path


@pytest.fixture
def synthesized_project(project_file) -> Path:
    """Project with audio/seg_i.mp3 and boundaries/seg_i.json already on disk."""
    project_dir = project_file.parent
    (project_dir / "audio").mkdir()
    (project_dir / "boundaries").mkdir()
    for i, group in enumerate(SAMPLE_BOUNDARIES):
        (project_dir / "audio" / f"seg_{i}.mp3").write_bytes(b"ID3")
        (project_dir / "boundaries" / f"seg_{i}.json").write_text(json.dumps(group), encoding="utf-8")
    return project_file


# ── Fake collaborators ───────────────────────────────────────────────────────

class FakeRewriter:
    """Returns queued answers in order; an Exception instance in the queue is raised."""

    name = "fake"

    def __init__(self, answers):
        self.answers = list(answers)
        self.calls: list[tuple[str, int]] = []

    def rewrite(self, text, max_words):
        self.calls.append((text, max_words))
        answer = self.answers.pop(0) if self.answers else None
        if isinstance(answer, Exception):
            raise answer
        return answer


class FakeSynthesizer:
    """One word boundary per whitespace token, 300ms each."""

    name = "fake"

    def __init__(self, failures=None):
        self.failures = list(failures or [])
        self.calls: list[str] = []

    def synthesize(self, text, voice):
        from narrasync.collaborators.base import SynthesisResult
        from narrasync.timing.models import WordBoundary

        self.calls.append(text)
        if self.failures:
            raise self.failures.pop(0)
        words = text.split() or [text]
        boundaries = [WordBoundary(w, i * 300.0, 300.0) for i, w in enumerate(words)]
        return SynthesisResult(audio=b"ID3fake", boundaries=boundaries)


@pytest.fixture
def fake_rewriter():
    return FakeRewriter


@pytest.fixture
def fake_synthesizer():
    return FakeSynthesizer
