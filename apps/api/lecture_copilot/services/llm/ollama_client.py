from __future__ import annotations

import os
from typing import Any, Dict, Optional

import httpx

from lecture_copilot.core.errors import GenerationEngineError
from lecture_copilot.services.llm.prompts import STUDY_SYSTEM, render_user_prompt


class OllamaClient:
    """
    Minimal Ollama client for local generation.

    Uses /api/generate (non-streaming) with bounded output.

    Env overrides:
      - OLLAMA_NUM_PREDICT (default 1024)
      - OLLAMA_TEMPERATURE (default 0.2)
    """

    def __init__(
        self,
        base_url: str,
        model: str,
        timeout_s: float = 120.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout_s = timeout_s
        self.num_predict = int(os.getenv("OLLAMA_NUM_PREDICT", "1024"))
        self.temperature = float(os.getenv("OLLAMA_TEMPERATURE", "0.2"))
        self._transport = transport

    def generate(self, context: str, instruction: str, timeout: Optional[float] = None) -> str:
        url = f"{self.base_url}/api/generate"

        payload: Dict[str, Any] = {
            "model": self.model,
            "system": STUDY_SYSTEM,
            "prompt": render_user_prompt(context, instruction),
            "stream": False,
            "options": {
                "num_predict": self.num_predict,
                "temperature": self.temperature,
            },
        }

        try:
            with httpx.Client(
                timeout=httpx.Timeout(timeout or self.timeout_s, connect=10.0),
                transport=self._transport,
            ) as client:
                r = client.post(url, json=payload)
                r.raise_for_status()
                data = r.json()
        except httpx.HTTPError as e:
            raise GenerationEngineError(f"Ollama request failed: {e}") from e
        except ValueError as e:
            raise GenerationEngineError("Ollama returned non-JSON") from e

        # Ollama returns {"response": "...", ...}
        text = (data.get("response") or "").strip()
        if not text:
            raise GenerationEngineError("Ollama returned an empty response")
        return text
