"""Tests for collaborator retry policy and the OpenAI-backed script rewriter."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest


class TestSynthesizeWithRetry:

    def test_retries_transient_then_succeeds(self, fake_synthesizer):
        from narrasync.collaborators.base import (
            RateLimitError,
            TransientCollaboratorError,
            VoiceSettings,
            synthesize_with_retry,
        )
        synth = fake_synthesizer(failures=[RateLimitError("429"), TransientCollaboratorError("reset")])
        delays = []
        result = synthesize_with_retry(synth, "hello there", VoiceSettings(name="v"), sleep=delays.append)
        assert [b.text for b in result.boundaries] == ["hello", "there"]
        assert delays == [1.0, 2.0]
        assert len(synth.calls) == 3

    def test_credentials_never_retried(self, fake_synthesizer):
        from narrasync.collaborators.base import CredentialError, VoiceSettings, synthesize_with_retry
        synth = fake_synthesizer(failures=[CredentialError("401")])
        delays = []
        with pytest.raises(CredentialError):
            synthesize_with_retry(synth, "hi", VoiceSettings(name="v"), sleep=delays.append)
        assert len(synth.calls) == 1
        assert delays == []

    def test_last_error_reraised(self, fake_synthesizer):
        from narrasync.collaborators.base import RateLimitError, VoiceSettings, synthesize_with_retry
        synth = fake_synthesizer(failures=[RateLimitError(str(i)) for i in range(3)])
        with pytest.raises(RateLimitError, match="2"):
            synthesize_with_retry(synth, "hi", VoiceSettings(name="v"), attempts=3, sleep=lambda s: None)
        assert len(synth.calls) == 3

    def test_other_errors_not_retried(self, fake_synthesizer):
        from narrasync.collaborators.base import CollaboratorError, VoiceSettings, synthesize_with_retry
        synth = fake_synthesizer(failures=[CollaboratorError("bad voice")])
        with pytest.raises(CollaboratorError):
            synthesize_with_retry(synth, "hi", VoiceSettings(name="v"), sleep=lambda s: None)
        assert len(synth.calls) == 1

    def test_spoken_duration(self):
        from narrasync.collaborators.base import SynthesisResult
        from narrasync.timing.models import WordBoundary
        r = SynthesisResult(b"", [WordBoundary("a", 0, 300), WordBoundary("b", 350, 400)])
        assert r.spoken_duration_ms == 750
        assert SynthesisResult(b"").spoken_duration_ms == 0.0


class TestParseRewriteResponse:

    def test_refined_text(self):
        from narrasync.collaborators.openai_rewriter import parse_rewrite_response
        raw = '{"refinedText": "更短的版本。", "originalMeaningRetained": true, "wordCount": 6}'
        assert parse_rewrite_response(raw) == "更短的版本。"

    @pytest.mark.parametrize("raw", [None, "", "[]", '{"wordCount": 3}', '{"refinedText": 5}'])
    def test_no_result(self, raw):
        from narrasync.collaborators.openai_rewriter import parse_rewrite_response
        assert parse_rewrite_response(raw) is None

    def test_invalid_json(self):
        from narrasync.collaborators.base import CollaboratorError
        from narrasync.collaborators.openai_rewriter import parse_rewrite_response
        with pytest.raises(CollaboratorError):
            parse_rewrite_response("Sure! Here is the text")


class TestOpenAIScriptRewriter:

    def test_missing_key(self, monkeypatch):
        from narrasync.collaborators.base import CredentialError
        from narrasync.collaborators.openai_rewriter import OpenAIScriptRewriter
        monkeypatch.delenv("NARRASYNC_TEST_KEY", raising=False)
        with pytest.raises(CredentialError, match="NARRASYNC_TEST_KEY"):
            OpenAIScriptRewriter(api_key_env="NARRASYNC_TEST_KEY")

    def test_key_from_env(self, monkeypatch):
        from narrasync.collaborators.openai_rewriter import OpenAIScriptRewriter
        monkeypatch.setenv("NARRASYNC_TEST_KEY", "sk-test")
        assert OpenAIScriptRewriter(api_key_env="NARRASYNC_TEST_KEY").api_key == "sk-test"

    def test_rewrite_sends_budget_and_parses_json(self):
        from narrasync.collaborators.openai_rewriter import OpenAIScriptRewriter
        rewriter = OpenAIScriptRewriter(api_key="sk-test", model="gpt-4o-mini")
        message = SimpleNamespace(content='{"refinedText": "短版本"}')
        rewriter._client = MagicMock()
        rewriter._client.chat.completions.create.return_value = SimpleNamespace(
            choices=[SimpleNamespace(message=message)],
        )
        assert rewriter.rewrite("很长很长的原文", 12) == "短版本"
        kwargs = rewriter._client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["response_format"] == {"type": "json_object"}
        assert "MAX WORD LIMIT: 12" in kwargs["messages"][1]["content"]

    def test_connection_error_is_transient(self):
        import httpx
        import openai
        from narrasync.collaborators.base import TransientCollaboratorError
        from narrasync.collaborators.openai_rewriter import OpenAIScriptRewriter
        rewriter = OpenAIScriptRewriter(api_key="sk-test")
        rewriter._client = MagicMock()
        rewriter._client.chat.completions.create.side_effect = openai.APIConnectionError(
            request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions"),
        )
        with pytest.raises(TransientCollaboratorError):
            rewriter.rewrite("text", 5)
