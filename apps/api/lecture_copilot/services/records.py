"""
Domain records passed between the study-pipeline components.

ORM rows live in lecture_copilot.models; the metadata store converts between
the two so the core never holds a Session.
"""
from __future__ import annotations

import enum
import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: datetime | None) -> datetime | None:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


class VideoStatus(str, enum.Enum):
    UPLOADED = "uploaded"
    INDEXING = "indexing"
    READY = "ready"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (VideoStatus.READY, VideoStatus.FAILED)


@dataclass
class VideoRecord:
    id: str
    storage_uri: str
    status: VideoStatus = VideoStatus.UPLOADED
    title: str | None = None
    task_id: str | None = None
    index_id: str | None = None
    failure_reason: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "status": self.status.value,
            "storage_uri": self.storage_uri,
            "task_id": self.task_id,
            "index_id": self.index_id,
            "failure_reason": self.failure_reason,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


# ----------------------------
# Segments
# ----------------------------

@dataclass(frozen=True)
class RawHit:
    """One search hit as returned by the content index, before merging."""

    start: float
    end: float
    text: str = ""
    confidence: float = 0.0
    scope: str = "visual"


_SEGMENT_NS = uuid.UUID("6f1c1f5e-5d43-4a55-9a8e-1b1f0b5c2a10")


def segment_id_for(video_id: str, start_sec: float, end_sec: float) -> str:
    """Stable id so the same time window always maps to the same segment."""
    return str(uuid.uuid5(_SEGMENT_NS, f"{video_id}:{start_sec:.3f}:{end_sec:.3f}"))


@dataclass(frozen=True)
class Segment:
    id: str
    video_id: str
    start_sec: float
    end_sec: float
    text: str = ""
    confidence: float = 0.0
    embedding_scope: str = "visual"
    created_at: datetime = field(default_factory=utcnow, compare=False)

    def __post_init__(self) -> None:
        if not (math.isfinite(self.start_sec) and math.isfinite(self.end_sec)):
            raise ValueError("segment bounds must be finite")
        if self.start_sec >= self.end_sec:
            raise ValueError(f"segment start {self.start_sec} must be before end {self.end_sec}")
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"segment confidence {self.confidence} outside [0, 1]")

    @property
    def duration_sec(self) -> float:
        return self.end_sec - self.start_sec

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "video_id": self.video_id,
            "start_sec": self.start_sec,
            "end_sec": self.end_sec,
            "text": self.text,
            "confidence": self.confidence,
            "embedding_scope": self.embedding_scope,
            "created_at": self.created_at.isoformat(),
        }


def format_timestamp(seconds: float) -> str:
    s = max(0, int(seconds))
    return f"{s // 60:02d}:{s % 60:02d}"


# ----------------------------
# Study bundle
# ----------------------------

@dataclass(frozen=True)
class Flashcard:
    front: str
    back: str

    def to_dict(self) -> dict[str, str]:
        return {"front": self.front, "back": self.back}


@dataclass(frozen=True)
class QuizItem:
    question: str
    choices: tuple[str, ...]
    correct_index: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "question": self.question,
            "choices": list(self.choices),
            "correct_index": self.correct_index,
        }


@dataclass(frozen=True)
class TopicCoverage:
    flashcards_requested: int
    flashcards_produced: int
    quiz_requested: int
    quiz_produced: int

    @property
    def is_partial(self) -> bool:
        return (
            self.flashcards_produced < self.flashcards_requested
            or self.quiz_produced < self.quiz_requested
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "flashcards_requested": self.flashcards_requested,
            "flashcards_produced": self.flashcards_produced,
            "quiz_requested": self.quiz_requested,
            "quiz_produced": self.quiz_produced,
            "is_partial": self.is_partial,
        }


@dataclass(frozen=True)
class StudyBundle:
    video_id: str
    summary: str
    topics: tuple[str, ...]
    flashcards_by_topic: dict[str, tuple[Flashcard, ...]]
    quiz_by_topic: dict[str, tuple[QuizItem, ...]]
    coverage: dict[str, TopicCoverage] = field(default_factory=dict)
    query: str | None = None
    segment_ids: tuple[str, ...] = ()
    generated_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        if len({t.casefold() for t in self.topics}) != len(self.topics):
            raise ValueError("topics must not contain duplicates")
        known = set(self.topics)
        for mapping in (self.flashcards_by_topic, self.quiz_by_topic, self.coverage):
            stray = set(mapping) - known
            if stray:
                raise ValueError(f"artifacts reference unknown topics: {sorted(stray)}")

    @property
    def is_partial(self) -> bool:
        return any(c.is_partial for c in self.coverage.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            "video_id": self.video_id,
            "query": self.query,
            "summary": self.summary,
            "topics": list(self.topics),
            "flashcards_by_topic": {
                t: [c.to_dict() for c in cards] for t, cards in self.flashcards_by_topic.items()
            },
            "quiz_by_topic": {
                t: [q.to_dict() for q in items] for t, items in self.quiz_by_topic.items()
            },
            "topic_coverage": {t: c.to_dict() for t, c in self.coverage.items()},
            "is_partial": self.is_partial,
            "segment_ids": list(self.segment_ids),
            "generated_at": self.generated_at.isoformat(),
        }
