"""Interfaces for the speech synthesis and text rewrite collaborators."""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable

from narrasync.timing.models import WordBoundary
from narrasync.utils.logging import warn


class CollaboratorError(Exception):
    """Base class for synthesis / rewrite service failures."""


class CredentialError(CollaboratorError):
    """Missing or rejected credentials. Never retried."""


class RateLimitError(CollaboratorError):
    pass


class TransientCollaboratorError(CollaboratorError):
    """Network failure or server-side error worth retrying."""


@dataclass
class VoiceSettings:
    name: str
    gender: str = ""
    style: str = ""
    locale: str = ""
    role: str = ""
    rate: str = "+0%"


@dataclass
class SynthesisResult:
    audio: bytes
    boundaries: list[WordBoundary] = field(default_factory=list)

    @property
    def spoken_duration_ms(self) -> float:
        if not self.boundaries:
            return 0.0
        return max(b.end for b in self.boundaries)


class SpeechSynthesizer(ABC):
    """Text to speech with word-level timing."""

    name: str = "base"

    @abstractmethod
    def synthesize(self, text: str, voice: VoiceSettings) -> SynthesisResult:
        """Return audio bytes (mp3) plus word boundaries in ms from audio start."""
        ...


class ScriptRewriter(ABC):
    """Shortens text to a word budget."""

    name: str = "base"

    @abstractmethod
    def rewrite(self, text: str, max_words: int) -> str | None:
        """Return a paraphrase within ``max_words`` units, or None/"" for no result."""
        ...


def synthesize_with_retry(
    synthesizer: SpeechSynthesizer,
    text: str,
    voice: VoiceSettings,
    *,
    attempts: int = 3,
    retry_delay: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
) -> SynthesisResult:
    """Call the synthesizer, retrying rate-limit and transient errors.

    The delay grows linearly with the attempt number. Credential errors
    propagate immediately; the last error is re-raised once attempts run out.
    """
    attempts = max(1, attempts)
    attempt = 1
    while True:
        try:
            return synthesizer.synthesize(text, voice)
        except CredentialError:
            raise
        except (RateLimitError, TransientCollaboratorError) as e:
            if attempt >= attempts:
                raise
            delay = retry_delay * attempt
            warn(f"Synthesis attempt {attempt}/{attempts} failed ({e}); retrying in {delay:.1f}s")
            sleep(delay)
            attempt += 1
