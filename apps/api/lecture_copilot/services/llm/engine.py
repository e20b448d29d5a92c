from __future__ import annotations

from typing import Protocol

from lecture_copilot.core.config import settings


class GenerationEngine(Protocol):
    """
    generate(context, instruction) -> text

    Implementations raise GenerationEngineError for transport failures,
    timeouts and empty responses; the synthesizer counts those as failed
    attempts.
    """

    def generate(self, context: str, instruction: str, timeout: float | None = None) -> str: ...


def build_engine(provider: str | None = None) -> GenerationEngine:
    p = (provider or settings.study_materials_provider).lower()

    if p == "openai":
        from lecture_copilot.services.llm.openai_client import OpenAIEngine

        return OpenAIEngine()

    if p == "ollama":
        from lecture_copilot.services.llm.ollama_client import OllamaClient

        return OllamaClient(base_url=settings.ollama_base_url, model=settings.ollama_model)

    raise ValueError(f"Unknown STUDY_MATERIALS_PROVIDER: {p!r} (expected 'ollama' or 'openai')")
