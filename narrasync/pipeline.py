"""End-to-end pipeline: refine → synthesize → plan/merge/compose/subtitle/render.

Runs sequentially per video. The project file is saved after every phase
so a later run can resume from any step.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from narrasync.audio.merge import build_merge_plan, merge_audio_with_offsets
from narrasync.audio.original_track import compose_final_audio_track
from narrasync.collaborators.base import (
    ScriptRewriter,
    SpeechSynthesizer,
    VoiceSettings,
    synthesize_with_retry,
)
from narrasync.media.probe import probe_media
from narrasync.project.timing_project import (
    ProjectFileError,
    TimingProject,
    load_boundaries,
    load_project,
    resolve_video_path,
    save_boundaries,
    save_project,
    segment_audio_path,
    segment_boundaries_path,
)
from narrasync.refine.script_refiner import calibrate_words_per_second, refine_script
from narrasync.subtitles.segmenter import write_subtitles_for_segments
from narrasync.timing.models import ShiftedSegment, WordBoundary
from narrasync.timing.planner import plan_segment_timing
from narrasync.utils.config import AppConfig
from narrasync.utils.logging import info, make_progress, set_run_id, set_segment_context, success
from narrasync.utils.media_executor import configure_media_executor
from narrasync.video.mux import render_final_video


class PipelineStep(str, Enum):
    refine = "refine"
    synthesize = "synthesize"
    mux = "mux"


@dataclass
class PipelineResult:
    video_path: Path
    audio_path: Path
    subtitle_path: Path | None
    shifted: list[ShiftedSegment]


def voice_from_config(config: AppConfig) -> VoiceSettings:
    return VoiceSettings(**config.voice.model_dump())


def plan_project(project: TimingProject, config: AppConfig) -> list[ShiftedSegment]:
    return plan_segment_timing(
        project.segments,
        auto_trim_video=config.pacing.auto_trim_video,
        enable_transitions=config.pacing.enable_transitions,
    )


# ── Phases ────────────────────────────────────────────────────────────────────

def refine_project(
    project: TimingProject,
    video_duration: float,
    config: AppConfig,
    rewriter: ScriptRewriter | None,
    synthesizer: SpeechSynthesizer | None = None,
) -> None:
    wps = config.refine.words_per_second
    if config.refine.calibrate and synthesizer is not None and project.segments:
        sample = " ".join(s.content for s in project.segments)
        wps = calibrate_words_per_second(synthesizer, sample, voice_from_config(config), default=wps)
    refine_script(project.segments, video_duration, rewriter, wps, config.refine.max_attempts)
    save_project(project)


def synthesize_project(
    project: TimingProject,
    synthesizer: SpeechSynthesizer,
    config: AppConfig,
) -> list[list[WordBoundary]]:
    """Synthesize every segment; writes audio/ and boundaries/ and sets audio durations."""
    voice = voice_from_config(config)
    project_dir = project.project_dir
    groups: list[list[WordBoundary]] = []

    with make_progress() as progress:
        task = progress.add_task("Synthesizing narration", total=len(project.segments))
        for i, seg in enumerate(project.segments):
            set_segment_context(str(i))
            try:
                result = synthesize_with_retry(
                    synthesizer, seg.spoken_text, voice,
                    attempts=config.synthesis.max_attempts,
                    retry_delay=config.synthesis.retry_delay,
                )
            finally:
                set_segment_context("")
            audio_path = segment_audio_path(project_dir, i)
            audio_path.parent.mkdir(parents=True, exist_ok=True)
            audio_path.write_bytes(result.audio)
            save_boundaries(segment_boundaries_path(project_dir, i), result.boundaries)

            seg.audio_path = str(audio_path)
            seg.audio_duration = result.spoken_duration_ms / 1000.0 if result.boundaries else None
            groups.append(list(result.boundaries))
            progress.advance(task)

    save_project(project)
    success(f"Synthesized {len(groups)} segments")
    return groups


def load_segment_boundaries(project: TimingProject) -> list[list[WordBoundary]]:
    """Word boundaries from an earlier synthesize run; audio durations follow them."""
    project_dir = project.project_dir
    groups: list[list[WordBoundary]] = []
    for i, seg in enumerate(project.segments):
        boundaries = load_boundaries(segment_boundaries_path(project_dir, i))
        if boundaries:
            seg.audio_duration = max(b.end for b in boundaries) / 1000.0
        groups.append(boundaries)
    return groups


def load_synthesized(project: TimingProject) -> list[list[WordBoundary]]:
    """Pick up audio and boundaries from an earlier synthesize run."""
    project_dir = project.project_dir
    for i, seg in enumerate(project.segments):
        audio_path = segment_audio_path(project_dir, i)
        if not audio_path.exists():
            raise ProjectFileError(f"segment {i} has no synthesized audio ({audio_path.name}); run the synthesize step")
        seg.audio_path = str(audio_path)
    return load_segment_boundaries(project)


def mux_project(
    project: TimingProject,
    video_path: Path,
    groups: list[list[WordBoundary]],
    config: AppConfig,
    output_path: Path | None = None,
) -> PipelineResult:
    project_dir = project.project_dir
    probe = probe_media(video_path)
    shifted = plan_project(project, config)
    save_project(project, shifted=shifted)

    merged = merge_audio_with_offsets(
        build_merge_plan(shifted), project_dir / "merged_final.mp3", timeout=config.rendering.timeout,
    )
    audio = compose_final_audio_track(
        video_path, merged, project_dir / "final_mix.m4a", shifted,
        project.audio_config, probe=probe,
        audio_bitrate=config.rendering.audio_bitrate, timeout=config.rendering.timeout,
    )

    srt_path = None
    if config.subtitles.enabled:
        srt_path = project_dir / "final.srt"
        write_subtitles_for_segments(
            shifted, groups, srt_path,
            config.subtitles.words_per_subtitle, config.subtitles.max_gap_ms,
        )

    output = output_path or video_path.parent / f"{video_path.stem}_narrated.mp4"
    render_final_video(video_path, audio, output, shifted, config, project_dir, srt_path, probe=probe)
    return PipelineResult(output, audio, srt_path, shifted)


def run_pipeline(
    project_path: Path,
    config: AppConfig,
    synthesizer: SpeechSynthesizer | None = None,
    rewriter: ScriptRewriter | None = None,
    start_step: PipelineStep = PipelineStep.refine,
    output_path: Path | None = None,
) -> PipelineResult:
    if start_step != PipelineStep.mux and synthesizer is None:
        raise ValueError(f"a speech synthesizer is required to start at the {start_step.value} step")

    set_run_id()
    configure_media_executor(config.rendering.ffmpeg_threads, config.rendering.nice)
    project = load_project(project_path)
    video_path = resolve_video_path(project)
    info(f"Project {project_path.name}: {len(project.segments)} segments, video {video_path.name}")

    if start_step == PipelineStep.refine:
        refine_project(project, probe_media(video_path).duration, config, rewriter, synthesizer)

    if start_step in (PipelineStep.refine, PipelineStep.synthesize):
        groups = synthesize_project(project, synthesizer, config)
    else:
        groups = load_synthesized(project)

    return mux_project(project, video_path, groups, config, output_path)
