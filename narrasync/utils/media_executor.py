"""Central media executor with concurrency limits, CPU/IO priority, and thread control.

Every ffmpeg and ffprobe call goes through this module.

ENV configuration:
    MAX_MEDIA_JOBS         max concurrent heavy media jobs (default 1)
    FFMPEG_THREADS         -threads flag for ffmpeg (default 2)
    MEDIA_NICE             nice value for subprocesses (default 10, Linux only)
    MEDIA_IONICE_CLASS     ionice class (default 2 = best-effort, Linux only)
    MEDIA_IONICE_LEVEL     ionice level (default 7, Linux only)
"""

from __future__ import annotations

import os
import platform
import shutil
import subprocess
import threading
import time
from typing import Any

from narrasync.utils.logging import debug, error, render_log

# ── Configuration via ENV ─────────────────────────────────────────────────────

MAX_MEDIA_JOBS: int = int(os.environ.get("MAX_MEDIA_JOBS", "1"))
FFMPEG_THREADS: int = int(os.environ.get("FFMPEG_THREADS", "2"))
MEDIA_NICE: int = int(os.environ.get("MEDIA_NICE", "10"))
MEDIA_IONICE_CLASS: int = int(os.environ.get("MEDIA_IONICE_CLASS", "2"))
MEDIA_IONICE_LEVEL: int = int(os.environ.get("MEDIA_IONICE_LEVEL", "7"))

IS_LINUX: bool = platform.system() == "Linux"

# Length of the stderr tail carried by MediaEngineError
ERROR_TAIL_CHARS = 2500

_semaphore: threading.Semaphore = threading.Semaphore(MAX_MEDIA_JOBS)


class MediaEngineError(RuntimeError):
    """ffmpeg exited non-zero. ``diagnostics`` holds the stderr tail."""

    def __init__(self, description: str, returncode: int, diagnostics: str = ""):
        self.description = description
        self.returncode = returncode
        self.diagnostics = diagnostics[-ERROR_TAIL_CHARS:]
        super().__init__(f"{description} failed (exit={returncode}): {self.diagnostics}")


def configure_media_executor(ffmpeg_threads: int = 0, nice: int = -1) -> None:
    """Apply rendering settings from the config file on top of the ENV defaults."""
    global FFMPEG_THREADS, MEDIA_NICE
    if ffmpeg_threads > 0:
        FFMPEG_THREADS = ffmpeg_threads
    if nice >= 0:
        MEDIA_NICE = min(nice, 19)


# ── Nice / IONice prefix ─────────────────────────────────────────────────────

def _build_nice_prefix() -> list[str]:
    """Build nice + ionice command prefix for Linux, empty list otherwise."""
    if not IS_LINUX:
        return []
    prefix: list[str] = []
    if MEDIA_NICE > 0 and shutil.which("nice"):
        prefix.extend(["nice", "-n", str(MEDIA_NICE)])
    if shutil.which("ionice"):
        prefix.extend(["ionice", "-c", str(MEDIA_IONICE_CLASS), "-n", str(MEDIA_IONICE_LEVEL)])
    return prefix


# ── ffmpeg thread flags ──────────────────────────────────────────────────────

def inject_ffmpeg_thread_flags(cmd: list[str]) -> list[str]:
    """Insert -threads right after 'ffmpeg' unless the command already sets it.

    Commands with -filter_complex also get -filter_complex_threads.
    """
    if not cmd or cmd[0] != "ffmpeg":
        return list(cmd)

    cmd = list(cmd)
    if "-threads" in cmd:
        return cmd

    t = str(FFMPEG_THREADS)
    cmd.insert(1, t)
    cmd.insert(1, "-threads")
    if "-filter_complex" in cmd:
        cmd.insert(3, t)
        cmd.insert(3, "-filter_complex_threads")
    return cmd


def extract_ffmpeg_error(stderr_text: str) -> str:
    """Strip the ffmpeg banner/configuration lines from stderr."""
    err_lines = stderr_text.strip().split("\n")
    useful = []
    skip_banner = True
    for line in err_lines:
        if skip_banner:
            if any(x in line for x in (
                "--enable-", "--disable-", "configuration:", "built with",
                "ffmpeg version", "Copyright",
            )):
                continue
            if line.strip().startswith("lib") and "/" in line:
                continue
            skip_banner = False
        useful.append(line)
    return "\n".join(useful) if useful else stderr_text


# ── Core subprocess runner ────────────────────────────────────────────────────

def run_media_subprocess(
    cmd: list[str],
    *,
    description: str = "",
    tool: str = "ffmpeg",
    timeout: int | None = None,
    capture_output: bool = True,
    text: bool = True,
    heavy: bool = True,
    **subprocess_kwargs: Any,
) -> subprocess.CompletedProcess:
    """Run a media subprocess with concurrency limiting, nice, and thread control.

    Args:
        cmd: argv list, e.g. ["ffmpeg", "-y", ...]. Never a shell string.
        description: Human-readable description for logging
        tool: "ffmpeg" or "ffprobe"
        timeout: Subprocess timeout in seconds
        heavy: If True, acquire the global semaphore (False for fast probes)

    Raises:
        subprocess.TimeoutExpired, FileNotFoundError
    """
    if tool == "ffmpeg":
        cmd = inject_ffmpeg_thread_flags(cmd)

    nice_prefix = _build_nice_prefix() if heavy else []
    full_cmd = nice_prefix + list(cmd)
    desc = description or f"{tool} job"

    if heavy:
        debug(f"[media-exec] {desc} waiting for semaphore (max {MAX_MEDIA_JOBS})")
        render_log(f"Queued: {desc} (max_concurrent={MAX_MEDIA_JOBS})")

    acquired = False
    try:
        if heavy:
            _semaphore.acquire()
            acquired = True

        t0 = time.monotonic()
        render_log(f"Running: {desc}: {' '.join(full_cmd)}")
        result = subprocess.run(
            full_cmd,
            capture_output=capture_output,
            text=text,
            timeout=timeout,
            shell=False,
            **subprocess_kwargs,
        )
        elapsed = time.monotonic() - t0

        if result.returncode == 0:
            debug(f"[media-exec] {desc} done ({elapsed:.1f}s)")
            render_log(f"Done: {desc} ({elapsed:.1f}s)")
        else:
            render_log(f"Failed: {desc} (exit={result.returncode}, {elapsed:.1f}s)", level="error")
        return result

    except subprocess.TimeoutExpired:
        render_log(f"Timeout: {desc} ({timeout}s)", level="error")
        raise
    finally:
        if acquired:
            _semaphore.release()


def run_ffmpeg(cmd: list[str], *, description: str, timeout: int | None = None) -> None:
    """Run an ffmpeg argv list; raise MediaEngineError on a non-zero exit."""
    r = run_media_subprocess(cmd, description=description, timeout=timeout)
    if r.returncode != 0:
        diagnostics = extract_ffmpeg_error(r.stderr or "")
        error(f"[ffmpeg] {description} failed:\n{diagnostics[-800:]}")
        raise MediaEngineError(description, r.returncode, diagnostics)
