from __future__ import annotations

from sqlalchemy.orm import Session

from lecture_copilot.db.session import SessionLocal
from lecture_copilot.services.jobs import merge_job_payload, set_job_status
from lecture_copilot.services.wiring import get_controller, get_retriever
from lecture_copilot.worker.celery_app import celery_app


@celery_app.task(name="index.snapshot_segments")
def snapshot_segments(job_id: int, video_id: str) -> dict:
    """Refresh the stored segment set for a video that just became ready."""
    db: Session = SessionLocal()
    try:
        set_job_status(db, job_id, "running")
        merge_job_payload(db, job_id, {"video_id": video_id, "progress": {"stage": "snapshot"}})

        segments = get_retriever().snapshot(video_id)

        merge_job_payload(db, job_id, {"progress": {"stage": "done"}, "segments": len(segments)})
        set_job_status(db, job_id, "done")
        return {"ok": True, "job_id": job_id, "video_id": video_id, "segments": len(segments)}
    except Exception as e:
        err = str(e)
        merge_job_payload(db, job_id, {"progress": {"stage": "failed"}, "error": err})
        set_job_status(db, job_id, "failed", error=err)
        raise
    finally:
        db.close()


@celery_app.task(name="index.reconcile_video")
def reconcile_video(job_id: int, video_id: str) -> dict:
    db: Session = SessionLocal()
    try:
        set_job_status(db, job_id, "running")

        record = get_controller().reconcile(video_id)

        merge_job_payload(db, job_id, {"video_id": video_id, "status": record.status.value})
        set_job_status(db, job_id, "done")
        return {"ok": True, "job_id": job_id, "video_id": video_id, "status": record.status.value}
    except Exception as e:
        err = str(e)
        merge_job_payload(db, job_id, {"error": err})
        set_job_status(db, job_id, "failed", error=err)
        raise
    finally:
        db.close()
