"""Final render: retimed video, composed audio, burned subtitles and titles."""

from __future__ import annotations

import time
from collections.abc import Sequence
from pathlib import Path

from narrasync.media.probe import ProbeResult, probe_media
from narrasync.timing.models import ShiftedSegment
from narrasync.timing.planner import total_output_duration
from narrasync.utils.config import AppConfig
from narrasync.utils.logging import info, render_log, success
from narrasync.utils.media_executor import run_ffmpeg
from narrasync.video.overlay_text import subtitle_font_size
from narrasync.video.render_plan import VideoRenderOptions, build_video_graph, prepare_titles


def build_render_options(
    shifted: Sequence[ShiftedSegment],
    probe: ProbeResult,
    config: AppConfig,
    work_dir: Path,
    subtitle_path: Path | None = None,
) -> VideoRenderOptions:
    width = probe.width or 1920
    height = probe.height or 1080
    opts = VideoRenderOptions(
        width=width,
        height=height,
        fps=config.rendering.fps,
        transition=0.5 if config.pacing.enable_transitions else 0.0,
        transition_type=config.pacing.transition_type,
        title_seconds=config.titles.display_seconds,
        title_color=config.titles.color,
        font_file=config.titles.font_file,
        subtitle_path=subtitle_path,
        subtitle_font_size=subtitle_font_size(width, height, config.subtitles.font_size),
    )
    if config.titles.enabled:
        opts.title_files, opts.title_layouts = prepare_titles(shifted, work_dir, width, height)
    return opts


def build_mux_cmd(
    video_path: Path,
    audio_path: Path,
    output_path: Path,
    shifted: Sequence[ShiftedSegment],
    opts: VideoRenderOptions,
    auto_trim_video: bool = True,
    crf: int = 20,
    preset: str = "medium",
    audio_bitrate: str = "192k",
) -> list[str]:
    graph = build_video_graph(shifted, opts, auto_trim_video=auto_trim_video)
    total = total_output_duration(shifted)
    cmd = [
        "ffmpeg", "-y",
        "-i", str(video_path),
        "-i", str(audio_path),
        "-filter_complex", graph.render(),
        "-map", "[vout]",
        "-map", "1:a:0",
        "-c:v", "libx264", "-preset", preset,
        "-crf", str(crf), "-pix_fmt", "yuv420p",
    ]
    if Path(audio_path).suffix.lower() == ".m4a":
        cmd.extend(["-c:a", "copy"])
    else:
        cmd.extend(["-c:a", "aac", "-b:a", audio_bitrate])
    cmd.extend([
        "-t", f"{total:.3f}",
        "-movflags", "+faststart",
        str(output_path),
    ])
    return cmd


def render_final_video(
    video_path: Path,
    audio_path: Path,
    output_path: Path,
    shifted: Sequence[ShiftedSegment],
    config: AppConfig,
    work_dir: Path,
    subtitle_path: Path | None = None,
    probe: ProbeResult | None = None,
) -> Path:
    """Render the final MP4. Raises MediaEngineError if ffmpeg fails."""
    t0 = time.monotonic()
    probe = probe or probe_media(video_path)
    opts = build_render_options(shifted, probe, config, work_dir, subtitle_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    cmd = build_mux_cmd(
        video_path, audio_path, output_path, shifted, opts,
        auto_trim_video=config.pacing.auto_trim_video,
        crf=config.rendering.crf,
        preset=config.rendering.x264_preset,
        audio_bitrate=config.rendering.audio_bitrate,
    )
    info(f"Rendering {len(shifted)} segments at {opts.width}x{opts.height} → {output_path.name}")
    run_ffmpeg(cmd, description=f"render {output_path.name}", timeout=config.rendering.timeout)

    elapsed = time.monotonic() - t0
    if output_path.exists():
        mb = output_path.stat().st_size / (1024 * 1024)
        success(f"Rendered: {output_path.name} ({mb:.1f} MB, {elapsed:.1f}s)")
    render_log(f"Render OK: {output_path.name} ({elapsed:.1f}s)")
    return output_path
