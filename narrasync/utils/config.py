"""Configuration management with YAML support and pydantic models."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field


class PacingConfig(BaseModel):
    auto_trim_video: bool = True
    enable_transitions: bool = True
    transition_type: str = "fade"  # any ffmpeg xfade transition name


class RefineConfig(BaseModel):
    words_per_second: float = Field(default=2.5, gt=0)
    max_attempts: int = Field(default=3, ge=1)
    calibrate: bool = True  # measure wps from the configured voice before refining


class RewriteConfig(BaseModel):
    model: str = "gpt-4o-mini"
    api_key_env: str = "OPENAI_API_KEY"
    base_url: str = ""
    timeout: float = 60.0


class VoiceConfig(BaseModel):
    name: str = "zh-CN-XiaoxiaoNeural"
    locale: str = "zh-CN"
    gender: str = "Female"
    style: str = "general"
    role: str = ""
    rate: str = "+0%"


class SynthesisConfig(BaseModel):
    max_attempts: int = Field(default=3, ge=1)
    retry_delay: float = 1.0  # seconds, multiplied by attempt number


class SubtitleConfig(BaseModel):
    enabled: bool = True
    words_per_subtitle: int = Field(default=8, ge=1)
    max_gap_ms: int = 1000
    font_size: int = 24


class TitleConfig(BaseModel):
    enabled: bool = True
    display_seconds: float = 3.0
    font_file: str = ""
    color: str = "white"


class RenderingConfig(BaseModel):
    ffmpeg_threads: int = 0  # 0 = keep FFMPEG_THREADS env / default
    nice: int = -1           # -1 = keep MEDIA_NICE env / default
    fps: int = 30
    crf: int = 20
    x264_preset: str = "medium"
    audio_bitrate: str = "192k"
    timeout: int = 3600


class AppConfig(BaseModel):
    pacing: PacingConfig = PacingConfig()
    refine: RefineConfig = RefineConfig()
    rewrite: RewriteConfig = RewriteConfig()
    voice: VoiceConfig = VoiceConfig()
    synthesis: SynthesisConfig = SynthesisConfig()
    subtitles: SubtitleConfig = SubtitleConfig()
    titles: TitleConfig = TitleConfig()
    rendering: RenderingConfig = RenderingConfig()


def load_config(path: str | Path | None = None) -> AppConfig:
    load_dotenv()
    if path is None:
        candidates = [Path("config.yaml"), Path("config.yml"), Path("narrasync.yaml")]
        for c in candidates:
            if c.exists():
                path = c
                break
    if path is not None:
        p = Path(path)
        if p.exists():
            with open(p, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
            return AppConfig(**data)
    return AppConfig()


def merge_cli_overrides(cfg: AppConfig, overrides: dict[str, Any]) -> AppConfig:
    data = cfg.model_dump()
    for key, val in overrides.items():
        if val is None:
            continue
        parts = key.split(".")
        d = data
        for p in parts[:-1]:
            d = d.setdefault(p, {})
        d[parts[-1]] = val
    return AppConfig(**data)


DEFAULT_CONFIG_YAML = """\
# narrasync configuration

pacing:
  auto_trim_video: true      # retime the video so each segment fits its narration
  enable_transitions: true   # 0.5s crossfade between segments
  transition_type: fade      # any ffmpeg xfade transition

refine:
  words_per_second: 2.5
  max_attempts: 3
  calibrate: true            # measure words/second from the voice first

rewrite:
  model: gpt-4o-mini
  api_key_env: OPENAI_API_KEY
  base_url: ""
  timeout: 60

voice:
  name: zh-CN-XiaoxiaoNeural
  locale: zh-CN
  gender: Female
  style: general
  role: ""
  rate: "+0%"

synthesis:
  max_attempts: 3
  retry_delay: 1.0           # seconds x attempt number

subtitles:
  enabled: true
  words_per_subtitle: 8
  max_gap_ms: 1000
  font_size: 24              # at 1080p, scaled by frame size

titles:
  enabled: true
  display_seconds: 3.0
  font_file: ""
  color: white

rendering:
  ffmpeg_threads: 0          # 0 = env FFMPEG_THREADS or 2
  nice: -1                   # -1 = env MEDIA_NICE or 10 (Linux only)
  fps: 30
  crf: 20
  x264_preset: medium
  audio_bitrate: 192k
  timeout: 3600
"""
