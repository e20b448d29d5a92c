from __future__ import annotations

import os
from typing import Any

import openai

from lecture_copilot.core.config import settings
from lecture_copilot.core.errors import GenerationEngineError
from lecture_copilot.services.llm.prompts import STUDY_SYSTEM, render_user_prompt


def _build_openai_client():
    api_key = os.getenv("OPENAI_API_KEY")
    if not api_key:
        raise GenerationEngineError("OPENAI_API_KEY is missing")

    # retries are counted by the synthesizer
    max_retries = int(os.getenv("OPENAI_MAX_RETRIES", "0"))

    return openai.OpenAI(api_key=api_key, timeout=settings.generation_timeout_sec, max_retries=max_retries)


class OpenAIEngine:
    def __init__(self, model: str | None = None, client: Any = None) -> None:
        self.model = model or settings.openai_model
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = _build_openai_client()
        return self._client

    def generate(self, context: str, instruction: str, timeout: float | None = None) -> str:
        kwargs: dict[str, Any] = {}
        if timeout is not None:
            kwargs["timeout"] = timeout

        try:
            chat = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": STUDY_SYSTEM},
                    {"role": "user", "content": render_user_prompt(context, instruction)},
                ],
                temperature=0.2,
                **kwargs,
            )
        except openai.OpenAIError as e:
            raise GenerationEngineError(f"OpenAI request failed: {e}") from e

        text = (chat.choices[0].message.content or "").strip() if chat.choices else ""
        if not text:
            raise GenerationEngineError("OpenAI returned an empty response")
        return text
