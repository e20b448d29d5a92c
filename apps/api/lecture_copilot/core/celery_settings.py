import os


def is_test_env() -> bool:
    return os.getenv("ENV", "local") == "test"


def task_always_eager() -> bool:
    """Celery runs tasks inline in test env so API tests see finished jobs."""
    return is_test_env() or os.getenv("CELERY_TASK_ALWAYS_EAGER", "0") == "1"
