"""Timeline data models: segments, shifted segments, word boundaries, audio config."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Strategy(str, Enum):
    trim = "trim"
    speed_total = "speed_total"
    speed_overflow = "speed_overflow"
    freeze = "freeze"

    @classmethod
    def parse(cls, value: Any) -> Strategy:
        try:
            return cls(value) if value else cls.trim
        except ValueError:
            return cls.trim


class AudioMode(str, Enum):
    replace = "replace"
    mix = "mix"
    duck = "duck"


def normalize_speed_factor(value: Any) -> int:
    """Integer floor of the factor, never below 2."""
    try:
        f = float(value)
    except (TypeError, ValueError):
        return 2
    if not math.isfinite(f):
        return 2
    return max(2, int(math.floor(f)))


@dataclass
class AudioOverride:
    mute_original: bool | None = None

    def to_dict(self) -> dict:
        return {} if self.mute_original is None else {"muteOriginal": self.mute_original}

    @classmethod
    def from_dict(cls, d: dict | None) -> AudioOverride | None:
        if not isinstance(d, dict):
            return None
        mute = d.get("muteOriginal")
        return cls(mute_original=mute if isinstance(mute, bool) else None)


@dataclass
class Segment:
    start_time: float
    content: str = ""
    title: str = ""
    adjusted_content: str | None = None
    strategy: Strategy = Strategy.trim
    speed_factor: int = 2
    audio_duration: float | None = None
    duration_limit: float | None = None
    audio_path: str | None = None
    audio_override: AudioOverride | None = None

    @property
    def spoken_text(self) -> str:
        return self.adjusted_content if self.adjusted_content else self.content

    def to_dict(self) -> dict:
        d: dict[str, Any] = {
            "startTime": self.start_time,
            "title": self.title,
            "content": self.content,
        }
        if self.adjusted_content is not None:
            d["adjustedContent"] = self.adjusted_content
        if self.strategy != Strategy.trim:
            d["strategy"] = self.strategy.value
        if self.strategy == Strategy.speed_overflow:
            d["speedFactor"] = self.speed_factor
        if self.duration_limit is not None:
            d["durationLimit"] = self.duration_limit
        if self.audio_path is not None:
            d["audioPath"] = self.audio_path
        if self.audio_duration is not None:
            d["audioDuration"] = self.audio_duration
        if self.audio_override is not None and self.audio_override.mute_original is not None:
            d["audioOverride"] = self.audio_override.to_dict()
        return d

    @classmethod
    def from_dict(cls, d: dict) -> Segment:
        def _opt_float(key: str) -> float | None:
            v = d.get(key)
            return float(v) if isinstance(v, (int, float)) and not isinstance(v, bool) else None

        return cls(
            start_time=float(d["startTime"]),
            content=str(d.get("content", "") or ""),
            title=str(d.get("title", "") or ""),
            adjusted_content=d.get("adjustedContent"),
            strategy=Strategy.parse(d.get("strategy")),
            speed_factor=normalize_speed_factor(d.get("speedFactor", 2)),
            audio_duration=_opt_float("audioDuration"),
            duration_limit=_opt_float("durationLimit"),
            audio_path=d.get("audioPath"),
            audio_override=AudioOverride.from_dict(d.get("audioOverride")),
        )


@dataclass(frozen=True)
class ShiftedSegment:
    """A segment after timing has been planned."""
    segment: Segment
    index: int
    target_start_time: float
    target_duration: float
    visual_available: float
    tail_needed: float
    total_needed: float
    is_last: bool

    @property
    def start_time(self) -> float:
        return self.segment.start_time

    @property
    def strategy(self) -> Strategy:
        return self.segment.strategy

    @property
    def speed_factor(self) -> int:
        return normalize_speed_factor(self.segment.speed_factor)

    @property
    def target_end_time(self) -> float:
        return self.target_start_time + self.target_duration

    def to_dict(self) -> dict:
        d = self.segment.to_dict()
        d["targetStartTime"] = round(self.target_start_time, 3)
        d["targetDuration"] = round(self.target_duration, 3)
        return d


@dataclass
class WordBoundary:
    text: str
    audio_offset: float  # ms
    duration: float      # ms

    @property
    def end(self) -> float:
        return self.audio_offset + self.duration

    def shifted(self, offset_ms: float) -> WordBoundary:
        return WordBoundary(self.text, self.audio_offset + offset_ms, self.duration)

    def to_dict(self) -> dict:
        return {"text": self.text, "audioOffset": self.audio_offset, "duration": self.duration}

    @classmethod
    def from_dict(cls, d: dict) -> WordBoundary:
        return cls(
            text=str(d.get("text", "")),
            audio_offset=float(d.get("audioOffset", 0)),
            duration=float(d.get("duration", 0)),
        )


@dataclass
class DuckingConfig:
    attack_ms: float = 100
    release_ms: float = 300
    target_gain_db: float = -24

    def to_dict(self) -> dict:
        return {"attackMs": self.attack_ms, "releaseMs": self.release_ms, "targetGainDb": self.target_gain_db}

    @classmethod
    def from_dict(cls, d: dict | None) -> DuckingConfig:
        d = d if isinstance(d, dict) else {}
        return cls(
            attack_ms=float(d.get("attackMs", 100)),
            release_ms=float(d.get("releaseMs", 300)),
            target_gain_db=float(d.get("targetGainDb", -24)),
        )


@dataclass
class StrategyRule:
    mute_original: bool | None = None


@dataclass
class AudioConfig:
    mode: AudioMode = AudioMode.replace
    original_gain_db: float | None = None
    narration_gain_db: float = 0.0
    ducking: DuckingConfig = field(default_factory=DuckingConfig)
    strategy_rules: dict[Strategy, StrategyRule] = field(default_factory=dict)

    def effective_original_gain_db(self) -> float:
        if self.original_gain_db is not None:
            return self.original_gain_db
        return 0.0 if self.mode == AudioMode.mix else -14.0

    def to_dict(self) -> dict:
        d: dict[str, Any] = {"mode": self.mode.value}
        if self.original_gain_db is not None:
            d["originalGainDb"] = self.original_gain_db
        d["narrationGainDb"] = self.narration_gain_db
        d["ducking"] = self.ducking.to_dict()
        if self.strategy_rules:
            d["strategyRules"] = {
                s.value: ({} if r.mute_original is None else {"muteOriginal": r.mute_original})
                for s, r in self.strategy_rules.items()
            }
        return d

    @classmethod
    def from_dict(cls, d: dict | None) -> AudioConfig:
        if not isinstance(d, dict):
            return cls()
        try:
            mode = AudioMode(d.get("mode", "replace"))
        except ValueError:
            mode = AudioMode.replace
        gain = d.get("originalGainDb")
        raw_rules = d.get("strategyRules") or {}
        if not isinstance(raw_rules, dict):
            raise ValueError("strategyRules must be an object")
        rules: dict[Strategy, StrategyRule] = {}
        for key, val in raw_rules.items():
            try:
                strat = Strategy(key)
            except ValueError:
                continue
            mute = val.get("muteOriginal") if isinstance(val, dict) else None
            rules[strat] = StrategyRule(mute_original=mute if isinstance(mute, bool) else None)
        return cls(
            mode=mode,
            original_gain_db=float(gain) if isinstance(gain, (int, float)) else None,
            narration_gain_db=float(d.get("narrationGainDb", 0) or 0),
            ducking=DuckingConfig.from_dict(d.get("ducking")),
            strategy_rules=rules,
        )


@dataclass(frozen=True)
class MuteWindow:
    start: float
    end: float

    def __post_init__(self) -> None:
        if not self.end > self.start:
            raise ValueError(f"mute window end ({self.end}) must be after start ({self.start})")

    @property
    def duration(self) -> float:
        return self.end - self.start
