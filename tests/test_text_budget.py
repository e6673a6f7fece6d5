"""Tests for word counting, rewrite sanitizing and fallback truncation."""

from __future__ import annotations

import pytest

# 19 Han characters, a full stop, then 21 more
HAN_40 = "我们今天要讲的是如何用简单方法剪辑视频。然后再看看实际效果到底怎么样还有哪些小问题"


class TestCountWords:

    @pytest.mark.parametrize("text,expected", [
        ("", 0),
        (None, 0),
        ("你好world", 3),
        ("Hello, world! I'm here", 4),
        ("版本2.0发布", 6),
        ("  一二三  ", 3),
        ("。，！", 0),
    ])
    def test_units(self, text, expected):
        from narrasync.refine.text_budget import count_words
        assert count_words(text) == expected

    def test_extension_b_ideograph_is_one_unit(self):
        from narrasync.refine.text_budget import count_words
        assert count_words("\U00020000好") == 2


class TestSanitize:

    def test_strips_quotes_and_ellipsis(self):
        from narrasync.refine.text_budget import sanitize_refined_text
        assert sanitize_refined_text('"你好……"') == "你好"

    def test_ascii_ellipsis_and_trailing_comma(self):
        from narrasync.refine.text_budget import sanitize_refined_text
        assert sanitize_refined_text("Wait...   what，") == "Wait what"

    def test_keeps_sentence_end(self):
        from narrasync.refine.text_budget import sanitize_refined_text
        assert sanitize_refined_text("做完了。") == "做完了。"

    @pytest.mark.parametrize("text", [
        '"“结论是……，”"', "a ... , ", "  '⋯⋯好，'  ", "", "plain",
    ])
    def test_idempotent(self, text):
        from narrasync.refine.text_budget import sanitize_refined_text
        once = sanitize_refined_text(text)
        assert sanitize_refined_text(once) == once

    def test_none(self):
        from narrasync.refine.text_budget import sanitize_refined_text
        assert sanitize_refined_text(None) == ""


class TestFallbackTruncate:

    def test_cuts_at_strong_terminator(self):
        from narrasync.refine.text_budget import count_words, fallback_truncate
        result = fallback_truncate(HAN_40, 25)
        assert result.endswith("。")
        assert count_words(result) <= 25
        assert "…" not in result and "..." not in result

    def test_cuts_at_weak_terminator_and_drops_it(self):
        from narrasync.refine.text_budget import fallback_truncate
        text = "一二三四五六七八九十，一二三四五六七八九十"
        assert fallback_truncate(text, 12) == "一二三四五六七八九十"

    def test_hard_cut_without_punctuation(self):
        from narrasync.refine.text_budget import fallback_truncate
        text = "一" * 40
        assert fallback_truncate(text, 25) == "一" * 25

    def test_latin_words(self):
        from narrasync.refine.text_budget import fallback_truncate
        assert fallback_truncate("one two three four five six", 3) == "one two three"

    def test_fitting_text_is_only_sanitized(self):
        from narrasync.refine.text_budget import fallback_truncate
        assert fallback_truncate("短句……", 10) == "短句"

    def test_leading_ellipsis_never_left_empty(self):
        from narrasync.refine.text_budget import fallback_truncate
        assert fallback_truncate("……" + "一二三四五六七八九十" * 3, 3) == "一二三"

    @pytest.mark.parametrize("limit", [1, 3, 10, 25])
    def test_never_empty_and_within_budget(self, limit):
        from narrasync.refine.text_budget import count_words, fallback_truncate
        result = fallback_truncate(HAN_40, limit)
        assert 0 < count_words(result) <= limit

    def test_idempotent(self):
        from narrasync.refine.text_budget import fallback_truncate
        once = fallback_truncate(HAN_40, 25)
        assert fallback_truncate(once, 25) == once
