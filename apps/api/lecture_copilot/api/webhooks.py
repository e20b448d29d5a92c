from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends
from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from lecture_copilot.api.errors import to_http
from lecture_copilot.core.errors import StudyCoreError
from lecture_copilot.db.session import get_db
from lecture_copilot.services.jobs import create_job
from lecture_copilot.services.lifecycle import CompletionOutcome, VideoLifecycleController
from lecture_copilot.services.records import VideoStatus
from lecture_copilot.services.wiring import get_controller
from lecture_copilot.worker.index_tasks import snapshot_segments

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

log = structlog.get_logger(__name__)

SUCCESS_STATUSES = {"ready"}
FAILURE_STATUSES = {"failed", "error"}


class ContentIndexWebhook(BaseModel):
    model_config = ConfigDict(extra="allow")

    task_id: str = Field(validation_alias=AliasChoices("taskId", "task_id", "id"))
    status: str
    index_id: str | None = Field(default=None, validation_alias=AliasChoices("indexId", "videoId", "video_id"))
    error: str | None = None


class WebhookResponse(BaseModel):
    ok: bool
    applied: bool
    video_id: str | None = None
    status: str | None = None
    job_id: int | None = None


@router.post("/content-index", response_model=WebhookResponse)
def content_index_webhook(
    body: ContentIndexWebhook,
    controller: VideoLifecycleController = Depends(get_controller),
    db: Session = Depends(get_db),
) -> WebhookResponse:
    status = body.status.strip().lower()
    log.info("webhook.received", task_id=body.task_id, status=status)

    if status in SUCCESS_STATUSES:
        outcome = CompletionOutcome.ready(body.index_id)
    elif status in FAILURE_STATUSES:
        outcome = CompletionOutcome.failed(body.error)
    else:
        # intermediate statuses (pending, indexing, ...) carry no transition
        return WebhookResponse(ok=True, applied=False)

    try:
        record = controller.on_completion_signal(body.task_id, outcome)
    except StudyCoreError as e:
        raise to_http(e)

    if record is None:
        return WebhookResponse(ok=True, applied=False)

    job_id = None
    if record.status is VideoStatus.READY:
        job = create_job(db, "snapshot_segments", {"video_id": record.id})
        snapshot_segments.delay(job.id, record.id)
        job_id = job.id

    return WebhookResponse(ok=True, applied=True, video_id=record.id, status=record.status.value, job_id=job_id)
