"""
Gate for generated study text.

validate() never raises: it returns a Verdict with a stable reason code so the
synthesizer can decide whether to retry, drop the item or abort the stage.
"""
from __future__ import annotations

import enum
import re
from dataclasses import dataclass
from typing import Any

from lecture_copilot.services.records import StudyBundle


class ContentKind(str, enum.Enum):
    SUMMARY = "summary"
    TOPIC = "topic"
    FLASHCARD_FRONT = "flashcard_front"
    FLASHCARD_BACK = "flashcard_back"
    FLASHCARD = "flashcard"
    QUIZ_QUESTION = "quiz_question"
    QUIZ_CHOICE = "quiz_choice"
    QUIZ_ITEM = "quiz_item"


class Reason(str, enum.Enum):
    EMPTY = "empty"
    TOO_SHORT = "too_short"
    TOO_LONG = "too_long"
    BRACKET_PLACEHOLDER = "bracket_placeholder"
    BOILERPLATE = "boilerplate"
    PROMPT_ECHO = "prompt_echo"
    DUPLICATE_SIDES = "duplicate_sides"
    TOO_FEW_CHOICES = "too_few_choices"
    DUPLICATE_CHOICES = "duplicate_choices"
    ANSWER_OUT_OF_RANGE = "answer_out_of_range"
    MALFORMED = "malformed"


@dataclass(frozen=True)
class Verdict:
    ok: bool
    reason: Reason | None = None
    detail: str | None = None

    def __bool__(self) -> bool:
        return self.ok


PASS = Verdict(ok=True)


def _fail(reason: Reason, detail: str | None = None) -> Verdict:
    return Verdict(ok=False, reason=reason, detail=detail)


@dataclass(frozen=True)
class TextRule:
    min_chars: int
    max_chars: int | None = None


# Text kinds only; FLASHCARD and QUIZ_ITEM are structural and delegate to these.
RULES: dict[ContentKind, TextRule] = {
    ContentKind.SUMMARY: TextRule(min_chars=50),
    ContentKind.TOPIC: TextRule(min_chars=3, max_chars=80),
    ContentKind.FLASHCARD_FRONT: TextRule(min_chars=8),
    ContentKind.FLASHCARD_BACK: TextRule(min_chars=3),
    ContentKind.QUIZ_QUESTION: TextRule(min_chars=10),
    ContentKind.QUIZ_CHOICE: TextRule(min_chars=1),
}


# ----------------------------
# Placeholder patterns
# ----------------------------

# Template tokens: [TOPIC], [QUESTION_1], {{ concept }}, <ANSWER>
_TEMPLATE_TOKEN_RES = [
    re.compile(r"\[[A-Z][A-Z0-9_ -]{1,40}\]"),
    re.compile(r"\{\{[^{}]{0,60}\}\}"),
    re.compile(r"<[A-Z_]{2,40}>"),
]

_BRACKET_WORD_RES = [
    re.compile(r"\[(?:topic|concept|field|question|answer|content|subject|chapter|lesson|term|definition)\]", re.I),
    re.compile(r"\[(?:question \d+|answer \d+|option [a-z]|topic \d+|concept \d+)\]", re.I),
]

_BOILERPLATE_RES = [
    re.compile(r"lorem ipsum", re.I),
    re.compile(r"\binsert\b.{0,30}\bhere\b", re.I),
    re.compile(r"^(?:sample|placeholder|example|test|demo|generic|tbd|n/?a)[.!]?$", re.I),
    re.compile(
        r"\b(?:sample|generic|placeholder|dummy)\s+(?:text|content|question|answer|topic|summary|flashcard)s?\b",
        re.I,
    ),
    re.compile(r"^key concept \d+$", re.I),
    re.compile(r"^important question \d+$", re.I),
    re.compile(r"^topic \d+$", re.I),
    re.compile(r"\bfallback\b", re.I),
    re.compile(r"\bapi limitations?\b", re.I),
    re.compile(r"\bdue to .{0,40}limitations?\b", re.I),
    re.compile(r"^(?:\.\.\.|…)$"),
    re.compile(r"\b(?:content|details|information) (?:is |are )?not available\b", re.I),
    re.compile(r"\bthis is an? (?:key|fallback|sample|generic) (?:concept|question|topic)\b", re.I),
]

_WS_RE = re.compile(r"\s+")


def _normalize(s: str) -> str:
    return _WS_RE.sub(" ", (s or "").strip()).casefold()


# Fragments (flashcard backs, quiz choices) may legitimately repeat a topic
# label that also appears in the instruction.
_WHOLE_ARTIFACT_KINDS = frozenset(
    {ContentKind.SUMMARY, ContentKind.TOPIC, ContentKind.FLASHCARD_FRONT, ContentKind.QUIZ_QUESTION}
)


def _check_placeholders(text: str, kind: ContentKind, instruction: str | None) -> Verdict:
    for rx in _TEMPLATE_TOKEN_RES + _BRACKET_WORD_RES:
        m = rx.search(text)
        if m:
            return _fail(Reason.BRACKET_PLACEHOLDER, m.group(0))

    for rx in _BOILERPLATE_RES:
        m = rx.search(text)
        if m:
            return _fail(Reason.BOILERPLATE, m.group(0))

    if instruction:
        norm_text = _normalize(text)
        norm_instr = _normalize(instruction)
        if norm_text == norm_instr:
            return _fail(Reason.PROMPT_ECHO)
        if len(norm_instr) >= 40 and norm_instr in norm_text:
            return _fail(Reason.PROMPT_ECHO)
        if kind in _WHOLE_ARTIFACT_KINDS and len(norm_text) >= 20 and norm_text in norm_instr:
            return _fail(Reason.PROMPT_ECHO)

    return PASS


def _check_text(text: Any, kind: ContentKind, instruction: str | None) -> Verdict:
    if not isinstance(text, str):
        return _fail(Reason.MALFORMED, f"{kind.value} must be a string")

    s = text.strip()
    if not s:
        return _fail(Reason.EMPTY)

    rule = RULES[kind]
    if len(s) < rule.min_chars:
        return _fail(Reason.TOO_SHORT, f"{len(s)} < {rule.min_chars}")
    if rule.max_chars is not None and len(s) > rule.max_chars:
        return _fail(Reason.TOO_LONG, f"{len(s)} > {rule.max_chars}")

    return _check_placeholders(s, kind, instruction)


def _as_fields(candidate: Any, *names: str) -> tuple[Any, ...] | None:
    if isinstance(candidate, dict):
        if not all(n in candidate for n in names):
            return None
        return tuple(candidate[n] for n in names)
    if all(hasattr(candidate, n) for n in names):
        return tuple(getattr(candidate, n) for n in names)
    return None


def _check_flashcard(candidate: Any, instruction: str | None) -> Verdict:
    fields = _as_fields(candidate, "front", "back")
    if fields is None:
        return _fail(Reason.MALFORMED, "flashcard needs front and back")
    front, back = fields

    v = _check_text(front, ContentKind.FLASHCARD_FRONT, instruction)
    if not v:
        return v
    v = _check_text(back, ContentKind.FLASHCARD_BACK, instruction)
    if not v:
        return v

    if _normalize(front) == _normalize(back):
        return _fail(Reason.DUPLICATE_SIDES)
    return PASS


def _check_quiz_item(candidate: Any, instruction: str | None) -> Verdict:
    fields = _as_fields(candidate, "question", "choices", "correct_index")
    if fields is None:
        return _fail(Reason.MALFORMED, "quiz item needs question, choices and correct_index")
    question, choices, correct_index = fields

    v = _check_text(question, ContentKind.QUIZ_QUESTION, instruction)
    if not v:
        return v

    if not isinstance(choices, (list, tuple)):
        return _fail(Reason.MALFORMED, "choices must be a list")
    if len(choices) < 2:
        return _fail(Reason.TOO_FEW_CHOICES)
    for c in choices:
        v = _check_text(c, ContentKind.QUIZ_CHOICE, instruction)
        if not v:
            return v
    if len({_normalize(c) for c in choices}) != len(choices):
        return _fail(Reason.DUPLICATE_CHOICES)

    # bool is an int subclass; reject it explicitly
    if not isinstance(correct_index, int) or isinstance(correct_index, bool):
        return _fail(Reason.MALFORMED, "correct_index must be an integer")
    if not 0 <= correct_index < len(choices):
        return _fail(Reason.ANSWER_OUT_OF_RANGE, f"{correct_index} not in [0, {len(choices)})")
    return PASS


def validate(candidate: Any, kind: ContentKind, *, instruction: str | None = None) -> Verdict:
    """
    Check one candidate artifact.

    Text kinds take a string; FLASHCARD takes a Flashcard or {"front", "back"};
    QUIZ_ITEM takes a QuizItem or {"question", "choices", "correct_index"}.
    When instruction is given, text that merely echoes it is rejected.
    """
    if kind is ContentKind.FLASHCARD:
        return _check_flashcard(candidate, instruction)
    if kind is ContentKind.QUIZ_ITEM:
        return _check_quiz_item(candidate, instruction)
    return _check_text(candidate, kind, instruction)


@dataclass(frozen=True)
class Violation:
    where: str
    reason: Reason
    detail: str | None = None


def bundle_violations(bundle: StudyBundle) -> list[Violation]:
    out: list[Violation] = []

    v = validate(bundle.summary, ContentKind.SUMMARY)
    if not v:
        out.append(Violation("summary", v.reason, v.detail))

    for t in bundle.topics:
        v = validate(t, ContentKind.TOPIC)
        if not v:
            out.append(Violation(f"topic:{t}", v.reason, v.detail))

    for t, cards in bundle.flashcards_by_topic.items():
        for i, card in enumerate(cards):
            v = validate(card, ContentKind.FLASHCARD)
            if not v:
                out.append(Violation(f"flashcards:{t}:{i}", v.reason, v.detail))

    for t, items in bundle.quiz_by_topic.items():
        for i, item in enumerate(items):
            v = validate(item, ContentKind.QUIZ_ITEM)
            if not v:
                out.append(Violation(f"quiz:{t}:{i}", v.reason, v.detail))

    return out

