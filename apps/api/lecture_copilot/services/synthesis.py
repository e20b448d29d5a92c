"""
Study bundle generation grounded on retrieved lecture segments.

Stages run in order (summary, topics, then flashcards + quiz per topic). Every
candidate passes the content validator before it is kept; rejected output is
regenerated within the stage's retry policy. Summary and topics are required:
running out of attempts there aborts the run. Per-topic items degrade instead:
a topic may end up with fewer items than requested and is flagged partial.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Callable, Sequence

import structlog

from lecture_copilot.core.config import settings
from lecture_copilot.core.errors import (
    GenerationEngineError,
    GenerationIncomplete,
    InsufficientGroundingData,
    StudyCoreError,
    VideoNotFound,
    VideoNotReady,
)
from lecture_copilot.core.locks import KeyedLocks, video_lock
from lecture_copilot.core.retry import Attempt, RetryPolicy
from lecture_copilot.services.events import EventPublisher, StudyEvent
from lecture_copilot.services.llm.engine import GenerationEngine
from lecture_copilot.services.llm.json_output import extract_json
from lecture_copilot.services.llm.prompts import (
    flashcards_instruction,
    quiz_instruction,
    summary_instruction,
    topics_instruction,
    with_retry_hint,
)
from lecture_copilot.services.metadata_store import MetadataStore
from lecture_copilot.services.records import (
    Flashcard,
    QuizItem,
    Segment,
    StudyBundle,
    TopicCoverage,
    VideoStatus,
    format_timestamp,
)
from lecture_copilot.services.retrieval import SegmentRetriever
from lecture_copilot.services.validation import ContentKind, bundle_violations, validate

log = structlog.get_logger(__name__)

SUMMARY_LENGTHS = ("short", "medium", "long")


@dataclass(frozen=True)
class GenerationOptions:
    query: str | None = None
    max_hits: int = 12
    max_context_chars: int = 3500
    summary_length: str = "medium"
    summary_tone: str = "neutral"
    topics_count: int = 4
    flashcards_per_topic: int = 8
    quiz_per_topic: int = 8

    def __post_init__(self) -> None:
        if self.summary_length not in SUMMARY_LENGTHS:
            raise ValueError(f"summary_length must be one of {SUMMARY_LENGTHS}")
        if self.max_hits < 1 or self.topics_count < 1:
            raise ValueError("max_hits and topics_count must be >= 1")
        if self.max_context_chars < 200:
            raise ValueError("max_context_chars must be >= 200")
        if self.flashcards_per_topic < 0 or self.quiz_per_topic < 0:
            raise ValueError("per-topic counts must be >= 0")


def default_stage_policy() -> RetryPolicy:
    return RetryPolicy(
        max_attempts=1 + settings.generation_extra_attempts,
        attempt_timeout_sec=settings.generation_timeout_sec,
        total_timeout_sec=settings.generation_stage_budget_sec,
        backoff_sec=settings.retry_backoff_sec,
    )


# ----------------------------
# Context helpers
# ----------------------------

def build_context(segments: Sequence[Segment], max_chars: int) -> str:
    """
    Render segments as `- [MM:SS–MM:SS] text` lines, capped at max_chars.

    segments arrive in priority order (most relevant first); truncation drops
    from the tail of that order, then the kept lines are emitted in time order.
    """
    kept: list[tuple[Segment, str]] = []
    size = 0
    for s in segments:
        snippet = " ".join((s.text or "").split()) or "(segment)"
        line = f"- [{format_timestamp(s.start_sec)}–{format_timestamp(s.end_sec)}] {snippet}"
        added = len(line) + (1 if kept else 0)
        if size + added > max_chars:
            if not kept:
                kept.append((s, line[:max_chars]))
            break
        kept.append((s, line))
        size += added
    kept.sort(key=lambda p: (p[0].start_sec, p[0].end_sec))
    return "\n".join(line for _, line in kept)


_WORD_RE = re.compile(r"[a-z0-9]+")


def _terms(text: str) -> set[str]:
    return {w for w in _WORD_RE.findall(text.casefold()) if len(w) >= 3}


def select_relevant(segments: Sequence[Segment], topic: str) -> list[Segment]:
    """Segments sharing words with the topic label; all of them when none do."""
    wanted = _terms(topic)
    scored = []
    for s in segments:
        overlap = len(wanted & _terms(s.text))
        if overlap:
            scored.append((overlap, s))
    if not scored:
        return list(segments)
    scored.sort(key=lambda p: (-p[0], p[1].start_sec))
    return [s for _, s in scored]


def _norm_key(s: str) -> str:
    return " ".join(s.split()).casefold()


def _clean_prose(text: str) -> str:
    s = text.strip().strip("`").strip()
    if len(s) >= 2 and s[0] == s[-1] and s[0] in "\"'":
        s = s[1:-1].strip()
    return s


# ----------------------------
# Item builders (raw JSON -> candidate)
# ----------------------------

def _flashcard_candidate(raw: Any) -> dict[str, Any] | None:
    if not isinstance(raw, dict):
        return None
    front = raw.get("front", raw.get("q"))
    back = raw.get("back", raw.get("a"))
    if not isinstance(front, str) or not isinstance(back, str):
        return None
    return {"front": front.strip(), "back": back.strip()}


def _quiz_candidate(raw: Any) -> dict[str, Any] | None:
    if not isinstance(raw, dict):
        return None
    question = raw.get("question")
    choices = raw.get("choices", raw.get("options"))
    correct = raw.get("correct_index", raw.get("answer_index"))
    if not isinstance(question, str) or not isinstance(choices, list):
        return None
    if not all(isinstance(c, str) for c in choices):
        return None
    return {
        "question": question.strip(),
        "choices": [c.strip() for c in choices],
        "correct_index": correct,
    }


@dataclass(frozen=True)
class _ItemShape:
    stage: str
    json_key: str
    kind: ContentKind
    instruction: Callable[..., str]
    candidate: Callable[[Any], dict[str, Any] | None]
    key_field: str


_FLASHCARDS = _ItemShape(
    stage="flashcards",
    json_key="flashcards",
    kind=ContentKind.FLASHCARD,
    instruction=flashcards_instruction,
    candidate=_flashcard_candidate,
    key_field="front",
)

_QUIZ = _ItemShape(
    stage="quiz",
    json_key="quiz",
    kind=ContentKind.QUIZ_ITEM,
    instruction=quiz_instruction,
    candidate=_quiz_candidate,
    key_field="question",
)


class StudyMaterialSynthesizer:
    def __init__(
        self,
        store: MetadataStore,
        retriever: SegmentRetriever,
        engine: GenerationEngine,
        publisher: EventPublisher,
        locks: KeyedLocks | None = None,
        stage_policy: RetryPolicy | None = None,
        lock_timeout_sec: float | None = None,
    ) -> None:
        self.store = store
        self.retriever = retriever
        self.engine = engine
        self.publisher = publisher
        self.locks = locks or KeyedLocks()
        self.stage_policy = stage_policy or default_stage_policy()
        self.lock_timeout_sec = settings.video_lock_timeout_sec if lock_timeout_sec is None else lock_timeout_sec

    def _progress(self, video_id: str, stage: str, detail: Any = None) -> None:
        self.publisher.publish(video_id, StudyEvent.progress(video_id, stage, detail))

    def generate_all(self, video_id: str, options: GenerationOptions | None = None) -> StudyBundle:
        opts = options or GenerationOptions()
        with video_lock(self.locks, video_id, self.lock_timeout_sec):
            try:
                record = self.store.get(video_id)
                if record is None:
                    raise VideoNotFound(video_id)
                if record.status is not VideoStatus.READY:
                    raise VideoNotReady(video_id, record.status.value)
                return self._run(video_id, opts)
            except StudyCoreError as e:
                self._progress(video_id, "failed", e.to_detail())
                log.warning("synthesis.failed", video_id=video_id, code=e.code, error=e.message)
                raise

    # -----------------------
    # Pipeline
    # -----------------------
    def _run(self, video_id: str, opts: GenerationOptions) -> StudyBundle:
        query = (opts.query or "").strip() or None

        self._progress(video_id, "retrieving", {"query": query})
        if query:
            segments = self.retriever.retrieve(video_id, query, opts.max_hits)
        else:
            segments = self.retriever.retrieve_coverage(video_id, opts.max_hits)

        if not segments:
            raise InsufficientGroundingData(
                "No lecture segments matched; nothing to ground study material on",
                video_id=video_id,
                query=query,
            )

        context = build_context(segments, opts.max_context_chars)
        log.info("synthesis.grounded", video_id=video_id, segments=len(segments), context_chars=len(context))

        self._progress(video_id, "summary")
        summary = self._summary(video_id, context, opts)

        self._progress(video_id, "topics")
        topics = self._topics(video_id, context, opts)

        flashcards_by_topic: dict[str, tuple[Flashcard, ...]] = {}
        quiz_by_topic: dict[str, tuple[QuizItem, ...]] = {}
        coverage: dict[str, TopicCoverage] = {}

        for topic in topics:
            self._progress(video_id, f"topic:{topic}")
            topic_context = build_context(select_relevant(segments, topic), opts.max_context_chars)

            cards = self._items(video_id, _FLASHCARDS, topic, topic_context, opts.flashcards_per_topic)
            quiz = self._items(video_id, _QUIZ, topic, topic_context, opts.quiz_per_topic)

            flashcards_by_topic[topic] = tuple(Flashcard(front=c["front"], back=c["back"]) for c in cards)
            quiz_by_topic[topic] = tuple(
                QuizItem(question=q["question"], choices=tuple(q["choices"]), correct_index=q["correct_index"])
                for q in quiz
            )
            coverage[topic] = TopicCoverage(
                flashcards_requested=opts.flashcards_per_topic,
                flashcards_produced=len(cards),
                quiz_requested=opts.quiz_per_topic,
                quiz_produced=len(quiz),
            )

        bundle = StudyBundle(
            video_id=video_id,
            query=query,
            summary=summary,
            topics=tuple(topics),
            flashcards_by_topic=flashcards_by_topic,
            quiz_by_topic=quiz_by_topic,
            coverage=coverage,
            segment_ids=tuple(s.id for s in segments),
        )

        violations = bundle_violations(bundle)
        if violations:
            first = violations[0]
            raise GenerationIncomplete("assemble", f"{first.where}: {first.reason.value}")

        self.store.put_study_bundle(bundle)
        self._progress(
            video_id,
            "completed",
            {"topics": len(bundle.topics), "is_partial": bundle.is_partial},
        )
        log.info("synthesis.completed", video_id=video_id, topics=len(bundle.topics), is_partial=bundle.is_partial)
        return bundle

    # -----------------------
    # Engine calls
    # -----------------------
    def _call(self, video_id: str, stage: str, context: str, instruction: str, attempt: Attempt) -> str | None:
        try:
            return self.engine.generate(context, instruction, timeout=attempt.timeout_sec)
        except GenerationEngineError as e:
            log.warning("synthesis.engine_error", video_id=video_id, stage=stage, attempt=attempt.number, error=str(e))
            return None

    def _rejected(self, video_id: str, stage: str, attempt: Attempt, reason: str) -> None:
        log.info("synthesis.rejected", video_id=video_id, stage=stage, attempt=attempt.number, reason=reason)

    def _summary(self, video_id: str, context: str, opts: GenerationOptions) -> str:
        base = summary_instruction(opts.summary_length, opts.summary_tone)
        reason: str | None = None

        for attempt in self.stage_policy.attempts():
            text = self._call(video_id, "summary", context, with_retry_hint(base, reason), attempt)
            if text is None:
                reason = "engine_error"
                continue

            summary = _clean_prose(text)
            verdict = validate(summary, ContentKind.SUMMARY, instruction=base)
            if verdict:
                return summary
            reason = verdict.reason.value
            self._rejected(video_id, "summary", attempt, reason)

        raise GenerationIncomplete("summary", reason or "no attempts left")

    def _topics(self, video_id: str, context: str, opts: GenerationOptions) -> list[str]:
        base = topics_instruction(opts.topics_count)
        accepted: list[str] = []
        seen: set[str] = set()
        reason: str | None = None

        for attempt in self.stage_policy.attempts():
            text = self._call(video_id, "topics", context, with_retry_hint(base, reason), attempt)
            if text is None:
                reason = "engine_error"
                continue

            try:
                raw = extract_json(text).get("topics")
                if not isinstance(raw, list):
                    raise ValueError("topics is not a list")
            except ValueError:
                reason = "malformed"
                self._rejected(video_id, "topics", attempt, reason)
                continue

            rejected = 0
            for item in raw:
                label = " ".join(item.split()) if isinstance(item, str) else item
                verdict = validate(label, ContentKind.TOPIC, instruction=base)
                if not verdict:
                    rejected += 1
                    reason = verdict.reason.value
                    continue
                key = _norm_key(label)
                if key in seen:
                    continue
                seen.add(key)
                accepted.append(label)
                if len(accepted) >= opts.topics_count:
                    return accepted

            if rejected:
                self._rejected(video_id, "topics", attempt, reason or "rejected")
            elif accepted:
                # the engine returned fewer topics than asked, all valid
                return accepted

        if not accepted:
            raise GenerationIncomplete("topics", reason or "no valid topics")
        return accepted

    def _items(self, video_id: str, shape: _ItemShape, topic: str, context: str, target: int) -> list[dict[str, Any]]:
        if target <= 0:
            return []

        stage = f"{shape.stage}:{topic}"
        base = shape.instruction(topic, target)
        items: list[dict[str, Any]] = []
        seen: set[str] = set()
        reason: str | None = None

        for attempt in self.stage_policy.attempts():
            instruction = shape.instruction(topic, target - len(items), [i[shape.key_field] for i in items])
            text = self._call(video_id, stage, context, with_retry_hint(instruction, reason), attempt)
            if text is None:
                reason = "engine_error"
                continue

            try:
                raw = extract_json(text).get(shape.json_key)
                if not isinstance(raw, list):
                    raise ValueError(f"{shape.json_key} is not a list")
            except ValueError:
                reason = "malformed"
                self._rejected(video_id, stage, attempt, reason)
                continue

            for r in raw:
                cand = shape.candidate(r)
                if cand is None:
                    reason = "malformed"
                    continue
                verdict = validate(cand, shape.kind, instruction=base)
                if not verdict:
                    reason = verdict.reason.value
                    continue
                key = _norm_key(cand[shape.key_field])
                if key in seen:
                    continue
                seen.add(key)
                items.append(cand)
                if len(items) >= target:
                    return items

            self._rejected(video_id, stage, attempt, reason or "short")

        log.info("synthesis.partial", video_id=video_id, stage=stage, produced=len(items), requested=target)
        return items
