"""Script-aware word counting, rewrite sanitizing and fallback truncation."""

from __future__ import annotations

import re

# Han script: radicals, iteration marks, ext-A, unified ideographs,
# compatibility ideographs, ext-B onward
HAN_CLASS = (
    "\u2e80-\u2fdf\u3005\u3007\u3021-\u3029\u3038-\u303b"
    "\u3400-\u4dbf\u4e00-\u9fff\uf900-\ufaff\U00020000-\U0003134f"
)
HAN_RE = re.compile(f"[{HAN_CLASS}]")
_ALNUM_TOKEN = r"[A-Za-z0-9]+(?:'[A-Za-z]+)?"
_UNIT_RE = re.compile(f"[{HAN_CLASS}]|{_ALNUM_TOKEN}")

STRONG_TERMINATORS = "。.！!？?；;"
WEAK_TERMINATORS = "，,、：:"

_SURROUNDING_QUOTES = re.compile(r'^["“”「『\']+|["“”」』\']+$')
_ASCII_ELLIPSIS = re.compile(r"\.{3,}")
_UNICODE_ELLIPSIS = re.compile(r"[…⋯]+")
_TRAILING_WEAK = re.compile(r"[，,、:：]\s*$")


def count_words(text: str | None) -> int:
    """Each Han character counts as one unit, each alphanumeric token as one unit."""
    if not text:
        return 0
    normalized = text.strip()
    han = len(HAN_RE.findall(normalized))
    latin = len(re.findall(_ALNUM_TOKEN, HAN_RE.sub(" ", normalized)))
    return han + latin


def _sanitize_once(t: str) -> str:
    t = t.strip()
    if not t:
        return ""
    t = _SURROUNDING_QUOTES.sub("", t).strip()
    t = _ASCII_ELLIPSIS.sub("", t)
    t = _UNICODE_ELLIPSIS.sub("", t)
    t = re.sub(r"\s+", " ", t).strip()
    t = _TRAILING_WEAK.sub("", t).strip()
    return t


def sanitize_refined_text(text: str | None) -> str:
    """Strip quotes, ellipses and trailing weak punctuation; collapse whitespace.

    Applied until nothing changes, so sanitizing twice is the same as once.
    """
    t = text or ""
    while True:
        nxt = _sanitize_once(t)
        if nxt == t:
            return t
        t = nxt


def _unit_prefix_end(text: str, max_units: int) -> int:
    """Character index just past the ``max_units``-th word unit."""
    end = 0
    for n, m in enumerate(_UNIT_RE.finditer(text), start=1):
        end = m.end()
        if n >= max_units:
            break
    return end


def fallback_truncate(text: str, max_words: int) -> str:
    """Deterministic cut of ``text`` to at most ``max_words`` units.

    Within the prefix covering ``max_words`` units, cut after the last strong
    terminator past 50% of the prefix, else after the last weak terminator
    past 70%, else at the prefix end. Never appends an ellipsis.
    """
    max_words = max(1, int(max_words))
    if count_words(text) <= max_words:
        return sanitize_refined_text(text)

    safe_limit = _unit_prefix_end(text, max_words)
    region = text[:safe_limit]

    last_strong = max(region.rfind(c) for c in STRONG_TERMINATORS)
    last_weak = max(region.rfind(c) for c in WEAK_TERMINATORS)

    best = safe_limit
    if last_strong > safe_limit * 0.5:
        best = last_strong + 1
    elif last_weak > safe_limit * 0.7:
        best = last_weak + 1

    result = sanitize_refined_text(text[:best])
    if count_words(result) == 0:
        result = sanitize_refined_text(region)
    if count_words(result) == 0:
        result = " ".join(_UNIT_RE.findall(text)[:max_words])
    return result
