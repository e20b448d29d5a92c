from celery import Celery
from celery.signals import worker_init

from lecture_copilot.core.celery_settings import task_always_eager
from lecture_copilot.core.config import settings
from lecture_copilot.core.log import configure_logging

# IMPORTANT: the variable name MUST be `celery_app`
celery_app = Celery(
    "lecture_copilot",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

# Ensure tasks are discovered
celery_app.autodiscover_tasks(["lecture_copilot.worker"])

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    task_track_started=True,
    result_extended=True,
    enable_utc=True,
    timezone="UTC",
    task_always_eager=task_always_eager(),
    task_eager_propagates=False,
)


@worker_init.connect
def _configure_worker_logging(**_kwargs) -> None:
    configure_logging()


__all__ = ["celery_app"]
