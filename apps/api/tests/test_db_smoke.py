from sqlalchemy import text
from sqlalchemy.orm import Session

from lecture_copilot.db.session import SessionLocal
from lecture_copilot.services.jobs import create_job, get_job, get_job_payload, merge_job_payload, set_job_status


def test_db_select_1():
    db: Session = SessionLocal()
    try:
        r = db.execute(text("SELECT 1")).scalar_one()
        assert r == 1
    finally:
        db.close()


def test_job_status_and_payload_merge():
    db: Session = SessionLocal()
    try:
        job = create_job(db, "snapshot_segments", {"video_id": "v1"})
        assert job.id is not None
        assert job.status == "queued"

        merge_job_payload(db, job.id, {"progress": {"stage": "snapshot"}})
        set_job_status(db, job.id, "failed", error="index unavailable")

        j = get_job(db, job.id)
        assert j.status == "failed"
        assert j.error == "index unavailable"
        assert get_job_payload(db, job.id) == {"video_id": "v1", "progress": {"stage": "snapshot"}}
    finally:
        db.close()
