from __future__ import annotations

from sqlalchemy.orm import Session

from lecture_copilot.db.session import SessionLocal
from lecture_copilot.services.jobs import merge_job_payload, set_job_status
from lecture_copilot.services.synthesis import GenerationOptions
from lecture_copilot.services.wiring import get_synthesizer
from lecture_copilot.worker.celery_app import celery_app


@celery_app.task(name="study.generate_bundle")
def generate_study_bundle(job_id: int, video_id: str, options: dict | None = None) -> dict:
    db: Session = SessionLocal()
    try:
        # 1) Mark job running
        set_job_status(db, job_id, "running")
        merge_job_payload(db, job_id, {"video_id": video_id, "progress": {"stage": "start"}})

        # 2) Generate + store the bundle (progress events go out on the video's stream)
        opts = GenerationOptions(**(options or {}))
        bundle = get_synthesizer().generate_all(video_id, opts)

        partial_topics = [t for t, c in bundle.coverage.items() if c.is_partial]
        merge_job_payload(
            db,
            job_id,
            {
                "progress": {"stage": "done"},
                "summary": {
                    "topics": len(bundle.topics),
                    "segments": len(bundle.segment_ids),
                    "is_partial": bundle.is_partial,
                    "partial_topics": partial_topics,
                },
            },
        )

        # Partial topics still count as done; surface them as a warning
        if partial_topics:
            warn = f"{len(partial_topics)} topic(s) generated with fewer items than requested"
            set_job_status(db, job_id, "done", error=warn)
        else:
            set_job_status(db, job_id, "done", error=None)

        return {"ok": True, "job_id": job_id, "video_id": video_id, "is_partial": bundle.is_partial}

    except Exception as e:
        err = str(e)
        merge_job_payload(
            db,
            job_id,
            {"progress": {"stage": "failed"}, "error": err, "code": getattr(e, "code", None)},
        )
        set_job_status(db, job_id, "failed", error=err)
        raise
    finally:
        db.close()
