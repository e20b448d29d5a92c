"""
Metadata Store backed by the SQLAlchemy models.

Each call opens its own short-lived session from the factory so the store can
be shared by API requests, Celery tasks and the event heartbeat thread.
"""
from __future__ import annotations

import json
from typing import Any, Callable, Protocol

from sqlalchemy.orm import Session

from lecture_copilot.models.study_bundle import StoredStudyBundle
from lecture_copilot.models.video import Video
from lecture_copilot.models.video_segment import VideoSegment
from lecture_copilot.services.records import (
    Flashcard,
    QuizItem,
    Segment,
    StudyBundle,
    TopicCoverage,
    VideoRecord,
    VideoStatus,
    as_utc,
)


class MetadataStore(Protocol):
    def put(self, record: VideoRecord) -> None: ...

    def get(self, video_id: str) -> VideoRecord | None: ...

    def find_by_task_id(self, task_id: str) -> VideoRecord | None: ...

    def put_segments(self, video_id: str, segments: list[Segment]) -> None: ...

    def get_segments(self, video_id: str) -> list[Segment]: ...

    def put_study_bundle(self, bundle: StudyBundle) -> None: ...

    def get_study_bundle(self, video_id: str) -> StudyBundle | None: ...


def _safe_json_loads(s: str | None, default: Any) -> Any:
    if not s:
        return default
    try:
        return json.loads(s)
    except ValueError:
        return default


# ----------------------------
# Row <-> record conversion
# ----------------------------

def _video_to_record(row: Video) -> VideoRecord:
    return VideoRecord(
        id=row.id,
        title=row.title,
        storage_uri=row.storage_uri,
        status=VideoStatus(row.status),
        task_id=row.task_id,
        index_id=row.index_id,
        failure_reason=row.failure_reason,
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
    )


def _segment_to_record(row: VideoSegment) -> Segment:
    return Segment(
        id=row.id,
        video_id=row.video_id,
        start_sec=float(row.start_sec),
        end_sec=float(row.end_sec),
        text=row.text or "",
        confidence=float(row.confidence),
        embedding_scope=row.embedding_scope,
        created_at=as_utc(row.created_at),
    )


def _bundle_to_record(row: StoredStudyBundle) -> StudyBundle:
    topics = tuple(_safe_json_loads(row.topics_json, []))
    cards = _safe_json_loads(row.flashcards_json, {})
    quiz = _safe_json_loads(row.quiz_json, {})
    coverage = _safe_json_loads(row.coverage_json, {})

    return StudyBundle(
        video_id=row.video_id,
        query=row.query,
        summary=row.summary,
        topics=topics,
        flashcards_by_topic={
            t: tuple(Flashcard(front=c["front"], back=c["back"]) for c in items)
            for t, items in cards.items()
        },
        quiz_by_topic={
            t: tuple(
                QuizItem(
                    question=q["question"],
                    choices=tuple(q["choices"]),
                    correct_index=int(q["correct_index"]),
                )
                for q in items
            )
            for t, items in quiz.items()
        },
        coverage={
            t: TopicCoverage(
                flashcards_requested=int(c["flashcards_requested"]),
                flashcards_produced=int(c["flashcards_produced"]),
                quiz_requested=int(c["quiz_requested"]),
                quiz_produced=int(c["quiz_produced"]),
            )
            for t, c in coverage.items()
        },
        segment_ids=tuple(_safe_json_loads(row.segment_ids_json, [])),
        generated_at=as_utc(row.generated_at),
    )


class SqlMetadataStore:
    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    # -----------------------
    # Videos
    # -----------------------
    def put(self, record: VideoRecord) -> None:
        db = self._session_factory()
        try:
            row = db.query(Video).filter(Video.id == record.id).first()
            if row is None:
                row = Video(id=record.id, created_at=record.created_at)
                db.add(row)
            row.title = record.title
            row.storage_uri = record.storage_uri
            row.status = record.status.value
            row.task_id = record.task_id
            row.index_id = record.index_id
            row.failure_reason = record.failure_reason
            row.updated_at = record.updated_at
            db.commit()
        finally:
            db.close()

    def get(self, video_id: str) -> VideoRecord | None:
        db = self._session_factory()
        try:
            row = db.query(Video).filter(Video.id == video_id).first()
            return _video_to_record(row) if row else None
        finally:
            db.close()

    def find_by_task_id(self, task_id: str) -> VideoRecord | None:
        db = self._session_factory()
        try:
            row = db.query(Video).filter(Video.task_id == task_id).first()
            return _video_to_record(row) if row else None
        finally:
            db.close()

    # -----------------------
    # Segments
    # -----------------------
    def put_segments(self, video_id: str, segments: list[Segment]) -> None:
        """Replace the whole segment set for a video in one transaction."""
        db = self._session_factory()
        try:
            db.query(VideoSegment).filter(VideoSegment.video_id == video_id).delete(
                synchronize_session=False
            )
            ordered = sorted(segments, key=lambda s: (s.start_sec, s.end_sec))
            for i, s in enumerate(ordered):
                db.add(
                    VideoSegment(
                        id=s.id,
                        video_id=video_id,
                        idx=i,
                        start_sec=s.start_sec,
                        end_sec=s.end_sec,
                        text=s.text,
                        confidence=s.confidence,
                        embedding_scope=s.embedding_scope,
                        created_at=s.created_at,
                    )
                )
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def get_segments(self, video_id: str) -> list[Segment]:
        db = self._session_factory()
        try:
            rows = (
                db.query(VideoSegment)
                .filter(VideoSegment.video_id == video_id)
                .order_by(VideoSegment.start_sec.asc(), VideoSegment.idx.asc())
                .all()
            )
            return [_segment_to_record(r) for r in rows]
        finally:
            db.close()

    # -----------------------
    # Study bundles
    # -----------------------
    def put_study_bundle(self, bundle: StudyBundle) -> None:
        payload = bundle.to_dict()
        db = self._session_factory()
        try:
            row = db.query(StoredStudyBundle).filter(StoredStudyBundle.video_id == bundle.video_id).first()
            if row is None:
                row = StoredStudyBundle(video_id=bundle.video_id)
                db.add(row)
            row.query = bundle.query
            row.summary = bundle.summary
            row.topics_json = json.dumps(payload["topics"], ensure_ascii=False)
            row.flashcards_json = json.dumps(payload["flashcards_by_topic"], ensure_ascii=False)
            row.quiz_json = json.dumps(payload["quiz_by_topic"], ensure_ascii=False)
            row.coverage_json = json.dumps(payload["topic_coverage"], ensure_ascii=False)
            row.segment_ids_json = json.dumps(payload["segment_ids"], ensure_ascii=False)
            row.is_partial = bundle.is_partial
            row.generated_at = bundle.generated_at
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def get_study_bundle(self, video_id: str) -> StudyBundle | None:
        db = self._session_factory()
        try:
            row = db.query(StoredStudyBundle).filter(StoredStudyBundle.video_id == video_id).first()
            return _bundle_to_record(row) if row else None
        finally:
            db.close()
