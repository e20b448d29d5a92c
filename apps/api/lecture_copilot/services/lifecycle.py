from __future__ import annotations

import dataclasses
import uuid
from dataclasses import dataclass
from typing import Callable

import structlog

from lecture_copilot.core.config import settings
from lecture_copilot.core.errors import (
    AlreadySubmitted,
    ContentIndexError,
    IndexStatusUnavailable,
    IndexSubmissionError,
    VideoAlreadyExists,
    VideoNotFound,
)
from lecture_copilot.core.locks import KeyedLocks, video_lock
from lecture_copilot.core.retry import RetryPolicy
from lecture_copilot.services.content_index import ContentIndex
from lecture_copilot.services.events import EventPublisher, StudyEvent
from lecture_copilot.services.metadata_store import MetadataStore
from lecture_copilot.services.records import VideoRecord, VideoStatus, utcnow

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CompletionOutcome:
    success: bool
    index_id: str | None = None
    reason: str | None = None

    @classmethod
    def ready(cls, index_id: str | None = None) -> "CompletionOutcome":
        return cls(success=True, index_id=index_id)

    @classmethod
    def failed(cls, reason: str | None = None) -> "CompletionOutcome":
        return cls(success=False, reason=reason or "indexing failed")


def default_submit_policy() -> RetryPolicy:
    return RetryPolicy(
        max_attempts=settings.index_submit_attempts,
        attempt_timeout_sec=settings.twelvelabs_timeout_sec,
        backoff_sec=settings.retry_backoff_sec,
    )


class VideoLifecycleController:
    """
    uploaded -> indexing -> ready | failed

    The only writer of VideoRecord.status. Every transition is persisted and
    then published as a status event; ignored signals publish nothing.
    """

    def __init__(
        self,
        store: MetadataStore,
        index: ContentIndex,
        publisher: EventPublisher,
        locks: KeyedLocks | None = None,
        submit_policy: RetryPolicy | None = None,
        lock_timeout_sec: float | None = None,
        clock: Callable = utcnow,
    ) -> None:
        self.store = store
        self.index = index
        self.publisher = publisher
        self.locks = locks or KeyedLocks()
        self.submit_policy = submit_policy or default_submit_policy()
        self.lock_timeout_sec = settings.video_lock_timeout_sec if lock_timeout_sec is None else lock_timeout_sec
        self.clock = clock

    def _require(self, video_id: str) -> VideoRecord:
        record = self.store.get(video_id)
        if record is None:
            raise VideoNotFound(video_id)
        return record

    def _transition(self, record: VideoRecord, status: VideoStatus, **changes) -> VideoRecord:
        updated = dataclasses.replace(record, status=status, updated_at=self.clock(), **changes)
        self.store.put(updated)
        log.info(
            "lifecycle.transition",
            video_id=record.id,
            from_status=record.status.value,
            to_status=status.value,
            task_id=updated.task_id,
        )
        self.publisher.publish(
            record.id,
            StudyEvent.status_changed(record.id, status.value, detail=updated.failure_reason),
        )
        return updated

    # -----------------------
    # Operations
    # -----------------------
    def register(self, storage_uri: str, title: str | None = None, video_id: str | None = None) -> VideoRecord:
        vid = video_id or uuid.uuid4().hex
        if self.store.get(vid) is not None:
            raise VideoAlreadyExists(vid)
        now = self.clock()
        record = VideoRecord(
            id=vid,
            storage_uri=storage_uri,
            title=title,
            status=VideoStatus.UPLOADED,
            created_at=now,
            updated_at=now,
        )
        self.store.put(record)
        log.info("lifecycle.registered", video_id=vid)
        return record

    def get_status(self, video_id: str) -> VideoRecord:
        return self._require(video_id)

    def submit(self, video_id: str) -> VideoRecord:
        with video_lock(self.locks, video_id, self.lock_timeout_sec):
            record = self._require(video_id)
            if record.status is not VideoStatus.UPLOADED:
                raise AlreadySubmitted(video_id, record.status.value)

            last_error: Exception | None = None
            for attempt in self.submit_policy.attempts():
                try:
                    task_id = self.index.submit_indexing(record.storage_uri, timeout=attempt.timeout_sec)
                    break
                except ContentIndexError as e:
                    last_error = e
                    log.warning(
                        "lifecycle.submit_attempt_failed",
                        video_id=video_id,
                        attempt=attempt.number,
                        error=str(e),
                    )
            else:
                # record stays uploaded so the caller can retry
                raise IndexSubmissionError(
                    f"Content index rejected video {video_id}: {last_error}",
                    video_id=video_id,
                )

            return self._transition(record, VideoStatus.INDEXING, task_id=task_id)

    def on_completion_signal(self, task_id: str, outcome: CompletionOutcome) -> VideoRecord | None:
        """
        Apply an out-of-band indexing result.

        Returns the updated record, or None when the signal was ignored
        (unknown task, duplicate delivery, or the video already left indexing).
        """
        found = self.store.find_by_task_id(task_id)
        if found is None:
            log.info("lifecycle.signal_ignored", task_id=task_id, reason="unknown_task")
            return None

        with video_lock(self.locks, found.id, self.lock_timeout_sec):
            record = self._require(found.id)
            if record.task_id != task_id or record.status is not VideoStatus.INDEXING:
                log.info(
                    "lifecycle.signal_ignored",
                    task_id=task_id,
                    video_id=record.id,
                    status=record.status.value,
                )
                return None

            if outcome.success:
                return self._transition(
                    record,
                    VideoStatus.READY,
                    index_id=outcome.index_id or record.index_id,
                    failure_reason=None,
                )
            return self._transition(record, VideoStatus.FAILED, failure_reason=outcome.reason)

    def reconcile(self, video_id: str) -> VideoRecord:
        """Poll the index for a video stuck in indexing (lost webhook)."""
        record = self._require(video_id)
        if record.status is not VideoStatus.INDEXING or not record.task_id:
            return record

        try:
            task = self.index.get_task(record.task_id)
        except ContentIndexError as e:
            raise IndexStatusUnavailable(
                f"Could not read indexing task {record.task_id}: {e}",
                video_id=video_id,
            ) from e

        if task.is_terminal:
            outcome = CompletionOutcome.ready(task.index_id) if task.succeeded else CompletionOutcome.failed(task.error)
            self.on_completion_signal(record.task_id, outcome)
        return self._require(video_id)
