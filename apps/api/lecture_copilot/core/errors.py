from __future__ import annotations

from typing import Any


class StudyCoreError(Exception):
    """Base class for errors the study pipeline surfaces to its callers."""

    code: str = "study_core_error"
    http_status: int = 500
    retryable: bool = False

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def to_detail(self) -> dict[str, Any]:
        detail: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.context:
            detail.update(self.context)
        return detail


# ----------------------------
# Lifecycle
# ----------------------------

class VideoNotFound(StudyCoreError):
    code = "video_not_found"
    http_status = 404

    def __init__(self, video_id: str) -> None:
        super().__init__(f"Video not found: {video_id}", video_id=video_id)


class VideoAlreadyExists(StudyCoreError):
    code = "video_already_exists"
    http_status = 409

    def __init__(self, video_id: str) -> None:
        super().__init__(f"Video already registered: {video_id}", video_id=video_id)


class AlreadySubmitted(StudyCoreError):
    code = "already_submitted"
    http_status = 409

    def __init__(self, video_id: str, status: str) -> None:
        super().__init__(
            f"Video {video_id} cannot be submitted from status={status}",
            video_id=video_id,
            status=status,
        )


class IndexSubmissionError(StudyCoreError):
    code = "index_submission_failed"
    http_status = 502
    retryable = True


class VideoNotReady(StudyCoreError):
    code = "video_not_ready"
    http_status = 409

    def __init__(self, video_id: str, status: str) -> None:
        super().__init__(
            f"Video {video_id} is not ready (status={status})",
            video_id=video_id,
            status=status,
        )


class IndexStatusUnavailable(StudyCoreError):
    code = "index_status_unavailable"
    http_status = 502
    retryable = True


class VideoBusy(StudyCoreError):
    code = "video_busy"
    http_status = 409
    retryable = True

    def __init__(self, video_id: str) -> None:
        super().__init__(f"Another operation is running for video {video_id}", video_id=video_id)


# ----------------------------
# Retrieval + generation
# ----------------------------

class RetrievalError(StudyCoreError):
    code = "retrieval_failed"
    http_status = 502
    retryable = True


class InsufficientGroundingData(StudyCoreError):
    code = "insufficient_grounding_data"
    http_status = 422


class GenerationIncomplete(StudyCoreError):
    code = "generation_incomplete"
    http_status = 502

    def __init__(self, stage: str, reason: str) -> None:
        super().__init__(f"Generation failed at stage={stage}: {reason}", stage=stage, reason=reason)
        self.stage = stage
        self.reason = reason


# ----------------------------
# Collaborator errors (raised by adapters, translated by the core)
# ----------------------------

class ContentIndexError(Exception):
    pass


class GenerationEngineError(Exception):
    pass
