# --------------------------------------------------------------------------------------
# Celery autodiscover only imports "lecture_copilot.worker.tasks".
# Tasks live in separate modules, so import them here to register them.
# --------------------------------------------------------------------------------------

from lecture_copilot.worker.generate_tasks import generate_study_bundle  # noqa: F401
from lecture_copilot.worker.index_tasks import reconcile_video, snapshot_segments  # noqa: F401
