"""Tests for the narration merge plan and its ffmpeg command."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest


def _planned(*specs, transitions=True):
    from narrasync.timing.models import Segment
    from narrasync.timing.planner import plan_segment_timing
    segs = [
        Segment(start_time=start, content="x", audio_duration=audio, audio_path=f"/p/audio/seg_{i}.mp3")
        for i, (start, audio) in enumerate(specs)
    ]
    return plan_segment_timing(segs, enable_transitions=transitions)


class TestMergePlan:

    def test_clip_trimmed_to_spoken_length(self):
        from narrasync.audio.merge import build_merge_plan
        plan = build_merge_plan(_planned((0, 3.0), (10, 4.0)))
        assert [c.start_time for c in plan] == pytest.approx([0.0, 3.8])
        assert [c.max_duration_sec for c in plan] == pytest.approx([3.03, 4.03])
        assert plan[1].audio_path == "/p/audio/seg_1.mp3"

    def test_clip_never_runs_into_next_slot(self):
        from narrasync.audio.merge import build_merge_plan
        from narrasync.timing.models import Segment, ShiftedSegment
        seg = Segment(0, audio_duration=5.0, audio_path="a.mp3")
        nxt = Segment(1, audio_duration=1.0, audio_path="b.mp3")
        shifted = [
            ShiftedSegment(seg, 0, 0.0, 5.8, 1.0, 0.5, 6.3, False),
            ShiftedSegment(nxt, 1, 2.0, 1.8, 1.8, 0.0, 1.8, True),
        ]
        assert build_merge_plan(shifted)[0].max_duration_sec == pytest.approx(2.0)

    def test_unknown_duration_uses_slot(self):
        from narrasync.audio.merge import build_merge_plan
        shifted = _planned((0, 3.0), (10, 4.0))
        shifted[0].segment.audio_duration = None
        assert build_merge_plan(shifted)[0].max_duration_sec == pytest.approx(3.8)

    def test_missing_audio_raises(self):
        from narrasync.audio.merge import build_merge_plan
        shifted = _planned((0, 3.0))
        shifted[0].segment.audio_path = None
        with pytest.raises(ValueError):
            build_merge_plan(shifted)


class TestMergeCommand:

    def test_graph_per_clip(self):
        from narrasync.audio.merge import AudioClip, build_merge_graph
        fc = build_merge_graph([AudioClip("a.mp3", 0.0), AudioClip("b.mp3", 2.2, 1.5)]).render()
        assert "[0:a]adelay=0|0[a0]" in fc
        assert "[1:a]atrim=duration=1.5,afade=t=out:st=1.465:d=0.035,adelay=2200|2200[a1]" in fc
        assert fc.endswith("[a0][a1]amix=inputs=2:dropout_transition=0:normalize=0[aout]")

    def test_fade_never_longer_than_clip(self):
        from narrasync.audio.merge import AudioClip, build_merge_graph
        fc = build_merge_graph([AudioClip("a.mp3", 1.0, 0.02)]).render()
        assert "afade=t=out:st=0:d=0.02" in fc

    def test_delay_rounded_to_milliseconds(self):
        from narrasync.audio.merge import AudioClip, build_merge_graph
        fc = build_merge_graph([AudioClip("a.mp3", 1.2346)]).render()
        assert "adelay=1235|1235" in fc

    def test_paths_are_separate_arguments(self):
        from narrasync.audio.merge import AudioClip, build_merge_audio_cmd
        evil = "/tmp/seg $(rm -rf ~); 'x'.mp3"
        cmd = build_merge_audio_cmd([AudioClip(evil, 0.0), AudioClip("b.mp3", 1.0)], "out.mp3")
        assert cmd[:2] == ["ffmpeg", "-y"]
        assert cmd[cmd.index("-i") + 1] == evil
        assert cmd[-3:] == ["-map", "[aout]", "out.mp3"]

    def test_empty_plan_raises(self):
        from narrasync.audio.merge import build_merge_audio_cmd
        with pytest.raises(ValueError):
            build_merge_audio_cmd([], "out.mp3")

    def test_merge_runs_ffmpeg(self, tmp_path):
        from narrasync.audio.merge import AudioClip, merge_audio_with_offsets
        out = tmp_path / "proj" / "merged_final.mp3"
        with patch("narrasync.audio.merge.run_ffmpeg") as ff:
            result = merge_audio_with_offsets([AudioClip("a.mp3", 0.0)], out, timeout=60)
        assert result == out
        assert out.parent.is_dir()
        assert ff.call_args.kwargs["timeout"] == 60
        assert Path(ff.call_args[0][0][-1]) == out
