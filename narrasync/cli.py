"""Command-line interface with typer subcommands."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Optional

import typer
from dotenv import load_dotenv
from rich.prompt import Confirm
from rich.table import Table

from narrasync.collaborators.base import CollaboratorError
from narrasync.project.timing_project import (
    ProjectConflictError,
    ProjectFileError,
    load_project,
    resolve_video_path,
    save_project,
)
from narrasync.utils.config import DEFAULT_CONFIG_YAML, AppConfig, load_config, merge_cli_overrides
from narrasync.utils.logging import Verbosity, console, error, info, setup_logging, success
from narrasync.utils.media_executor import MediaEngineError

load_dotenv()

app = typer.Typer(
    name="narrasync",
    help="Align synthesized narration with video: timing, audio composition, subtitles, render.",
    rich_markup_mode="rich",
    no_args_is_help=True,
)


def _verbosity(silent: bool, verbose: bool) -> Verbosity:
    return Verbosity.SILENT if silent else (Verbosity.VERBOSE if verbose else Verbosity.NORMAL)


def _load_cfg(config: Optional[Path], **overrides) -> AppConfig:
    cfg = load_config(config)
    return merge_cli_overrides(cfg, overrides)


def _fail(e: Exception) -> None:
    error(str(e))
    raise typer.Exit(1)


# ── PLAN ──────────────────────────────────────────────────────────────────────

@app.command()
def plan(
    project: Annotated[Path, typer.Argument(help="timing.json")],
    auto_trim: Annotated[Optional[bool], typer.Option("--auto-trim/--no-auto-trim")] = None,
    transitions: Annotated[Optional[bool], typer.Option("--transitions/--no-transitions")] = None,
    config: Annotated[Optional[Path], typer.Option("--config")] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v")] = False,
):
    """Show the retimed segment plan and mute windows."""
    setup_logging(_verbosity(False, verbose))
    from narrasync.audio.original_track import compute_mute_windows
    from narrasync.pipeline import plan_project

    cfg = _load_cfg(config, **{"pacing.auto_trim_video": auto_trim, "pacing.enable_transitions": transitions})
    try:
        proj = load_project(project)
    except ProjectFileError as e:
        _fail(e)

    shifted = plan_project(proj, cfg)
    table = Table(title=f"{proj.video_name}: {len(shifted)} segments")
    for col in ("#", "strategy", "source", "target start", "duration", "visual", "title"):
        table.add_column(col)
    for s in shifted:
        table.add_row(
            str(s.index), s.strategy.value, f"{s.start_time:.2f}",
            f"{s.target_start_time:.2f}", f"{s.target_duration:.2f}",
            f"{s.visual_available:.2f}", s.segment.title,
        )
    console.print(table)

    windows = compute_mute_windows(shifted, proj.audio_config)
    for w in windows:
        info(f"mute original {w.start:.3f}s → {w.end:.3f}s ({w.duration:.2f}s)")


# ── REFINE ────────────────────────────────────────────────────────────────────

@app.command()
def refine(
    project: Annotated[Path, typer.Argument(help="timing.json")],
    words_per_second: Annotated[Optional[float], typer.Option("--wps")] = None,
    model: Annotated[Optional[str], typer.Option(help="Rewrite model")] = None,
    no_ai: Annotated[bool, typer.Option("--no-ai", help="Deterministic truncation only")] = False,
    config: Annotated[Optional[Path], typer.Option("--config")] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v")] = False,
):
    """Fit each segment's text into the time before the next segment."""
    setup_logging(_verbosity(False, verbose))
    from narrasync.collaborators.openai_rewriter import OpenAIScriptRewriter
    from narrasync.media.probe import probe_media
    from narrasync.refine.script_refiner import refine_script

    cfg = _load_cfg(config, **{"refine.words_per_second": words_per_second, "rewrite.model": model})
    try:
        proj = load_project(project)
        video = resolve_video_path(proj)
        rewriter = None
        if not no_ai:
            rewriter = OpenAIScriptRewriter(
                model=cfg.rewrite.model, base_url=cfg.rewrite.base_url,
                timeout=cfg.rewrite.timeout, api_key_env=cfg.rewrite.api_key_env,
            )
        refine_script(proj.segments, probe_media(video).duration, rewriter,
                      cfg.refine.words_per_second, cfg.refine.max_attempts)
        save_project(proj)
    except (ProjectFileError, ProjectConflictError, CollaboratorError) as e:
        _fail(e)
    success(f"Refined {len(proj.segments)} segments → {project}")


# ── SUBTITLES ─────────────────────────────────────────────────────────────────

@app.command()
def subtitles(
    project: Annotated[Path, typer.Argument(help="timing.json")],
    output: Annotated[Optional[Path], typer.Option("--output", "-o")] = None,
    words_per_subtitle: Annotated[Optional[int], typer.Option()] = None,
    config: Annotated[Optional[Path], typer.Option("--config")] = None,
):
    """Write the SRT for the retimed narration from saved word boundaries."""
    setup_logging(Verbosity.NORMAL)
    from narrasync.pipeline import load_segment_boundaries, plan_project
    from narrasync.subtitles.segmenter import write_subtitles_for_segments

    cfg = _load_cfg(config, **{"subtitles.words_per_subtitle": words_per_subtitle})
    try:
        proj = load_project(project)
        groups = load_segment_boundaries(proj)
    except ProjectFileError as e:
        _fail(e)
    out = output or proj.project_dir / "final.srt"
    cues = write_subtitles_for_segments(
        plan_project(proj, cfg), groups, out,
        cfg.subtitles.words_per_subtitle, cfg.subtitles.max_gap_ms,
    )
    success(f"{len(cues)} cues → {out}")


# ── RENDER ────────────────────────────────────────────────────────────────────

@app.command()
def render(
    project: Annotated[Path, typer.Argument(help="timing.json")],
    output: Annotated[Optional[Path], typer.Option("--output", "-o")] = None,
    auto_trim: Annotated[Optional[bool], typer.Option("--auto-trim/--no-auto-trim")] = None,
    transitions: Annotated[Optional[bool], typer.Option("--transitions/--no-transitions")] = None,
    no_subtitles: Annotated[bool, typer.Option("--no-subtitles")] = False,
    config: Annotated[Optional[Path], typer.Option("--config")] = None,
    silent: Annotated[bool, typer.Option("--silent")] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v")] = False,
):
    """Merge, compose and render from already synthesized narration."""
    setup_logging(_verbosity(silent, verbose))
    from narrasync.pipeline import PipelineStep, run_pipeline

    cfg = _load_cfg(config, **{
        "pacing.auto_trim_video": auto_trim,
        "pacing.enable_transitions": transitions,
        "subtitles.enabled": False if no_subtitles else None,
    })
    try:
        result = run_pipeline(project, cfg, start_step=PipelineStep.mux, output_path=output)
    except (ProjectFileError, ProjectConflictError, MediaEngineError, ValueError) as e:
        _fail(e)
    success(f"Done: {result.video_path}")


# ── UPGRADE ───────────────────────────────────────────────────────────────────

@app.command()
def upgrade(
    project: Annotated[Path, typer.Argument(help="Legacy timing.json (bare segment array)")],
    video_name: Annotated[str, typer.Option(help="Source video file name")] = "",
):
    """Convert a legacy segment array into a versioned project file."""
    setup_logging(Verbosity.NORMAL)
    try:
        proj = load_project(project, video_name=video_name)
    except ProjectFileError as e:
        _fail(e)
    success(f"{project} is version {proj.version} ({len(proj.segments)} segments)")


# ── INIT CONFIG ───────────────────────────────────────────────────────────────

@app.command(name="init")
def init_config():
    """Generate a default config.yaml in the current directory."""
    setup_logging(Verbosity.NORMAL)
    p = Path("config.yaml")
    if p.exists():
        if not Confirm.ask("config.yaml exists. Overwrite?", default=False):
            raise typer.Exit(0)
    p.write_text(DEFAULT_CONFIG_YAML, encoding="utf-8")
    success(f"Created {p}")


# ── ENTRY POINT ───────────────────────────────────────────────────────────────

def app_entry():
    app()


if __name__ == "__main__":
    app_entry()
