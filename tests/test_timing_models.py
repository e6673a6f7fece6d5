"""Tests for timeline data models and their camelCase JSON shape."""

from __future__ import annotations

import pytest


class TestStrategyParsing:

    def test_known_values(self):
        from narrasync.timing.models import Strategy
        assert Strategy.parse("freeze") == Strategy.freeze
        assert Strategy.parse("speed_overflow") == Strategy.speed_overflow

    @pytest.mark.parametrize("raw", [None, "", "slowmo", 3])
    def test_unknown_falls_back_to_trim(self, raw):
        from narrasync.timing.models import Strategy
        assert Strategy.parse(raw) == Strategy.trim


class TestSpeedFactor:

    @pytest.mark.parametrize("raw,expected", [
        (2, 2), (3.9, 3), (1, 2), (0, 2), (-5, 2), ("4", 4), ("fast", 2), (None, 2), (float("nan"), 2),
    ])
    def test_normalize(self, raw, expected):
        from narrasync.timing.models import normalize_speed_factor
        assert normalize_speed_factor(raw) == expected


class TestSegmentJson:

    def test_minimal_dict_omits_defaults(self):
        from narrasync.timing.models import Segment
        d = Segment(start_time=1.5, content="hi", title="t").to_dict()
        assert d == {"startTime": 1.5, "title": "t", "content": "hi"}

    def test_speed_factor_only_for_overflow(self):
        from narrasync.timing.models import Segment, Strategy
        assert "speedFactor" not in Segment(0, strategy=Strategy.freeze).to_dict()
        d = Segment(0, strategy=Strategy.speed_overflow, speed_factor=3).to_dict()
        assert d["strategy"] == "speed_overflow"
        assert d["speedFactor"] == 3

    def test_from_dict_reads_all_fields(self):
        from narrasync.timing.models import Segment, Strategy
        seg = Segment.from_dict({
            "startTime": 4, "content": "原文", "adjustedContent": "短",
            "strategy": "speed_overflow", "speedFactor": 2.7,
            "audioDuration": 3.25, "durationLimit": 6, "audioPath": "/a/seg_0.mp3",
            "audioOverride": {"muteOriginal": True},
        })
        assert seg.start_time == 4.0
        assert seg.strategy == Strategy.speed_overflow
        assert seg.speed_factor == 2
        assert seg.audio_duration == 3.25
        assert seg.audio_override.mute_original is True
        assert seg.spoken_text == "短"

    def test_spoken_text_falls_back_to_content(self):
        from narrasync.timing.models import Segment
        assert Segment(0, content="原文", adjusted_content="").spoken_text == "原文"

    def test_missing_start_time_raises(self):
        from narrasync.timing.models import Segment
        with pytest.raises(KeyError):
            Segment.from_dict({"content": "x"})

    def test_shifted_dict_has_target_fields(self):
        from narrasync.timing.models import Segment
        from narrasync.timing.planner import plan_segment_timing
        d = plan_segment_timing([Segment(0, audio_duration=1.2)])[0].to_dict()
        assert d["targetStartTime"] == 0
        assert d["targetDuration"] == pytest.approx(2.0)


class TestWordBoundary:

    def test_end_and_shift(self):
        from narrasync.timing.models import WordBoundary
        w = WordBoundary("hi", 100, 250)
        assert w.end == 350
        moved = w.shifted(1000)
        assert moved.audio_offset == 1100
        assert w.audio_offset == 100


class TestAudioConfig:

    def test_default_original_gain_by_mode(self):
        from narrasync.timing.models import AudioConfig, AudioMode
        assert AudioConfig(mode=AudioMode.mix).effective_original_gain_db() == 0.0
        assert AudioConfig(mode=AudioMode.duck).effective_original_gain_db() == -14.0
        assert AudioConfig(mode=AudioMode.duck, original_gain_db=-6).effective_original_gain_db() == -6

    def test_from_dict(self):
        from narrasync.timing.models import AudioConfig, AudioMode, Strategy
        cfg = AudioConfig.from_dict({
            "mode": "duck",
            "ducking": {"attackMs": 50},
            "strategyRules": {"speed_overflow": {"muteOriginal": True}, "bogus": {}},
        })
        assert cfg.mode == AudioMode.duck
        assert cfg.ducking.attack_ms == 50
        assert cfg.ducking.release_ms == 300
        assert cfg.strategy_rules[Strategy.speed_overflow].mute_original is True
        assert len(cfg.strategy_rules) == 1

    def test_unknown_mode_is_replace(self):
        from narrasync.timing.models import AudioConfig, AudioMode
        assert AudioConfig.from_dict({"mode": "karaoke"}).mode == AudioMode.replace
        assert AudioConfig.from_dict(None).mode == AudioMode.replace


class TestMuteWindow:

    def test_end_must_follow_start(self):
        from narrasync.timing.models import MuteWindow
        with pytest.raises(ValueError):
            MuteWindow(2.0, 2.0)

    def test_duration(self):
        from narrasync.timing.models import MuteWindow
        assert MuteWindow(1.0, 3.5).duration == pytest.approx(2.5)
