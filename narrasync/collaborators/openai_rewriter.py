"""Script rewriter backed by an OpenAI chat model."""

from __future__ import annotations

import json
import os
import time

import openai
from openai import OpenAI

from narrasync.collaborators.base import (
    CollaboratorError,
    CredentialError,
    RateLimitError,
    ScriptRewriter,
    TransientCollaboratorError,
)
from narrasync.utils.logging import debug

SYSTEM_PROMPT = (
    "You are a professional video script editor. Summarize the text to be strictly "
    "within word limits. Output ONLY the JSON object. Do not explain your reasoning."
)

USER_PROMPT = """You are a script condensation expert. REWRITE and PARAPHRASE the segment below so it fits its time slot.
Do not just cut off the end. Compress the meaning with more concise phrasing.

CURRENT TEXT: "{text}"
MAX WORD LIMIT: {max_words} units (each Chinese character or English word counts as 1).

REQUIREMENTS:
1. "refinedText" MUST NOT exceed {max_words} units.
2. Keep the core message and conversational tone.
3. Do not use ellipses (...) or truncation marks. Sentences must be complete.
4. Output JSON only.

JSON FORMAT:
{{"refinedText": "...", "originalMeaningRetained": true, "wordCount": 0}}"""


class OpenAIScriptRewriter(ScriptRewriter):
    name = "openai"

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "gpt-4o-mini",
        base_url: str = "",
        timeout: float = 60.0,
        api_key_env: str = "OPENAI_API_KEY",
    ):
        self.api_key = api_key or os.environ.get(api_key_env, "")
        if not self.api_key:
            raise CredentialError(f"{api_key_env} not set")
        self.model = model
        self._client = OpenAI(api_key=self.api_key, base_url=base_url or None, timeout=timeout)

    def rewrite(self, text: str, max_words: int) -> str | None:
        t0 = time.time()
        try:
            response = self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": USER_PROMPT.format(text=text, max_words=max_words)},
                ],
                response_format={"type": "json_object"},
            )
        except openai.AuthenticationError as e:
            raise CredentialError(str(e)) from e
        except openai.RateLimitError as e:
            raise RateLimitError(str(e)) from e
        except (openai.APIConnectionError, openai.InternalServerError) as e:
            raise TransientCollaboratorError(str(e)) from e
        except openai.APIError as e:
            raise CollaboratorError(str(e)) from e

        debug(f"[rewrite] {self.model} answered in {time.time() - t0:.1f}s")
        raw = response.choices[0].message.content if response.choices else None
        return parse_rewrite_response(raw)


def parse_rewrite_response(raw: str | None) -> str | None:
    """Pull ``refinedText`` out of the model's JSON answer."""
    if not raw:
        return None
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise CollaboratorError(f"rewrite response is not JSON: {raw[:200]}") from e
    if not isinstance(data, dict):
        return None
    refined = data.get("refinedText")
    return refined if isinstance(refined, str) else None
