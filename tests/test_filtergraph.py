"""Tests for filter graph assembly, filter argument formatting and ffprobe parsing."""

from __future__ import annotations

import json
import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest


class TestFormatting:

    @pytest.mark.parametrize("value,expected", [
        (1.5, "1.5"), (3.0, "3"), (0, "0"), (-0.0001, "0"), (2.3255813, "2.326"), (-14.0, "-14"),
    ])
    def test_fmt_num(self, value, expected):
        from narrasync.media.filtergraph import fmt_num
        assert fmt_num(value) == expected

    @pytest.mark.parametrize("value,expected", [(0.43, "0.43"), (2448.484848484, "2448.484848"), (2.0, "2")])
    def test_fmt_factor(self, value, expected):
        from narrasync.media.filtergraph import fmt_factor
        assert fmt_factor(value) == expected

    def test_escape_filter_path(self):
        from narrasync.media.filtergraph import escape_filter_path
        assert escape_filter_path("C:\\clips\\it's [1].srt") == "C\\:/clips/it'\\''s \\[1\\].srt"


class TestFilterGraph:

    def test_render_and_chain(self):
        from narrasync.media.filtergraph import FilterGraph
        graph = FilterGraph()
        label = graph.add("0:a", ["atrim=duration=2", "adelay=0|0"], "a0")
        graph.add([label, "1:a"], "amix=inputs=2", "aout")
        assert label == "a0"
        assert graph.render() == "[0:a]atrim=duration=2,adelay=0|0[a0];[a0][1:a]amix=inputs=2[aout]"
        assert graph.filters_used() == ["atrim", "adelay", "amix"]
        assert len(graph) == 2

    def test_empty_step_rejected(self):
        from narrasync.media.filtergraph import FilterGraph
        with pytest.raises(ValueError):
            FilterGraph().add("0:v", [], "out")

    def test_empty_graph_is_falsy(self):
        from narrasync.media.filtergraph import FilterGraph
        assert not FilterGraph()


class TestProbe:

    def _completed(self, payload):
        return subprocess.CompletedProcess(["ffprobe"], 0, stdout=json.dumps(payload), stderr="")

    def test_video_with_audio(self):
        from narrasync.media.probe import probe_media
        payload = {
            "format": {"duration": "12.5"},
            "streams": [
                {"codec_type": "video", "width": 1080, "height": 1920, "r_frame_rate": "30000/1001"},
                {"codec_type": "audio"},
            ],
        }
        with patch("narrasync.media.probe.run_media_subprocess", return_value=self._completed(payload)):
            r = probe_media(Path("clip.mp4"))
        assert (r.width, r.height) == (1080, 1920)
        assert r.duration == 12.5
        assert r.fps == 29.97
        assert r.has_audio and r.has_video
        assert r.is_portrait
        assert r.resolution == "1080x1920"

    def test_silent_video(self):
        from narrasync.media.probe import probe_media
        payload = {"format": {}, "streams": [{"codec_type": "video", "width": 640, "height": 360, "duration": "3"}]}
        with patch("narrasync.media.probe.run_media_subprocess", return_value=self._completed(payload)):
            r = probe_media(Path("clip.mp4"))
        assert r.has_audio is False
        assert r.duration == 3.0

    def test_unreadable_file(self):
        from narrasync.media.probe import probe_media
        with patch("narrasync.media.probe.run_media_subprocess", side_effect=FileNotFoundError("ffprobe")):
            r = probe_media(Path("missing.mp4"))
        assert r.duration == 0
        assert not r.has_video
