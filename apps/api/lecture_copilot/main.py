from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from lecture_copilot.api.events import router as events_router
from lecture_copilot.api.jobs import router as jobs_router
from lecture_copilot.api.study import router as study_router
from lecture_copilot.api.videos import router as videos_router
from lecture_copilot.api.webhooks import router as webhooks_router
from lecture_copilot.core.log import configure_logging
from lecture_copilot.db.session import get_db
from lecture_copilot.services.wiring import get_broadcaster, get_relay

log = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    configure_logging()

    broadcaster = get_broadcaster()
    relay = get_relay()
    broadcaster.start()
    if relay is not None:
        relay.start(broadcaster.deliver)
    log.info("api.started", relay=relay is not None)
    try:
        yield
    finally:
        if relay is not None:
            relay.stop()
        broadcaster.stop()
        log.info("api.stopped")


app = FastAPI(title="Lecture Copilot API", version="0.1.0", lifespan=lifespan)
app.include_router(videos_router)
app.include_router(study_router)
app.include_router(events_router)
app.include_router(webhooks_router)
app.include_router(jobs_router)


class HealthResponse(BaseModel):
    ok: bool
    service: str
    version: str
    db_ok: bool
    subscribers: int


@app.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    db_ok = False
    db: Session = next(get_db())
    try:
        db.execute(text("SELECT 1"))
        db_ok = True
    except SQLAlchemyError as e:
        log.warning("health.db_failed", error=str(e))
    finally:
        db.close()

    return HealthResponse(
        ok=True,
        service="api",
        version=app.version,
        db_ok=db_ok,
        subscribers=get_broadcaster().subscriber_count(),
    )
