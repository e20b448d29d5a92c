from __future__ import annotations

STUDY_SYSTEM = """You are an expert learning designer writing study material for a recorded lecture.

You will be given timestamped excerpts retrieved from the lecture video.

Hard rules:
- Use ONLY facts present in the excerpts. Do not invent facts.
- Be specific: name the actual concepts, terms, formulas and examples from the lecture.
- Never write placeholders, templates or filler (no "[TOPIC]", no "sample question", no "key concept 1").
- Never mention the excerpts, timestamps, the prompt or any limitations.
- When JSON is requested, output valid JSON only. No markdown, no commentary.
"""

USER_TEMPLATE = """Lecture excerpts:
{context}

Task:
{instruction}
"""

SUMMARY_WORDS = {
    "short": "60-100 words",
    "medium": "120-180 words",
    "long": "220-320 words",
}

AVOID_GENERIC = (
    "Your previous answer was rejected ({reason}). "
    "Avoid generic phrasing and placeholders; state concrete facts from the lecture."
)


def render_user_prompt(context: str, instruction: str) -> str:
    return USER_TEMPLATE.format(context=context.strip(), instruction=instruction.strip())


def with_retry_hint(instruction: str, reason: str | None) -> str:
    if not reason:
        return instruction
    return f"{instruction}\n\n{AVOID_GENERIC.format(reason=reason)}"


def summary_instruction(length: str = "medium", tone: str = "neutral") -> str:
    words = SUMMARY_WORDS.get(length, SUMMARY_WORDS["medium"])
    return (
        f"Write a {tone} summary of this lecture in {words}. "
        "Cover the main ideas in the order they are taught. "
        "Return plain prose only."
    )


def topics_instruction(count: int) -> str:
    return (
        f"List up to {count} distinct topics taught in this lecture, most important first. "
        "Each topic is a short noun phrase of 2-6 words naming a concrete concept. "
        'Return JSON: {"topics": ["...", "..."]}'
    )


def flashcards_instruction(topic: str, count: int, exclude: list[str] | None = None) -> str:
    s = (
        f'Write {count} flashcards about "{topic}" as taught in this lecture. '
        "The front is a specific question testing understanding (what/why/how); "
        "the back answers it in 1-3 sentences. "
        'Return JSON: {"flashcards": [{"front": "...", "back": "..."}]}'
    )
    if exclude:
        s += "\nDo not repeat these fronts:\n" + "\n".join(f"- {e}" for e in exclude)
    return s


def quiz_instruction(topic: str, count: int, exclude: list[str] | None = None) -> str:
    s = (
        f'Write {count} multiple-choice questions about "{topic}" as taught in this lecture. '
        "Each has 4 plausible, distinct choices and exactly one correct answer; "
        "correct_index is the 0-based index of the correct choice. "
        'Return JSON: {"quiz": [{"question": "...", "choices": ["...", "...", "...", "..."], "correct_index": 0}]}'
    )
    if exclude:
        s += "\nDo not repeat these questions:\n" + "\n".join(f"- {e}" for e in exclude)
    return s
