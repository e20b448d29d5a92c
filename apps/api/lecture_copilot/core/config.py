import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Always load .env from apps/api/.env (stable, regardless of CWD)
BASE_DIR = Path(__file__).resolve().parents[2]  # apps/api
load_dotenv(dotenv_path=BASE_DIR / ".env", override=False)


def _csv(value: str) -> tuple[str, ...]:
    return tuple(p.strip() for p in value.split(",") if p.strip())


@dataclass(frozen=True)
class Settings:
    database_url: str = os.getenv(
        "DATABASE_URL",
        "postgresql+psycopg://lc:lc@localhost:5433/lecture_copilot",
    )
    env: str = os.getenv("ENV", "local")

    # Celery
    celery_broker_url: str = os.getenv("CELERY_BROKER_URL") or os.getenv("REDIS_URL") or "redis://localhost:6379/0"
    celery_result_backend: str = os.getenv("CELERY_RESULT_BACKEND") or celery_broker_url

    # Content index (TwelveLabs)
    twelvelabs_api_key: str | None = os.getenv("TWELVELABS_API_KEY")
    twelvelabs_base_url: str = os.getenv("TWELVELABS_BASE_URL", "https://api.twelvelabs.io/v1.3")
    twelvelabs_index_id: str | None = os.getenv("TWELVELABS_INDEX_ID")
    twelvelabs_timeout_sec: float = float(os.getenv("TWELVELABS_TIMEOUT_SEC", "30"))
    twelvelabs_search_options: tuple[str, ...] = _csv(os.getenv("TWELVELABS_SEARCH_OPTIONS", "visual,audio"))

    # Generation engine
    study_materials_provider: str = os.getenv("STUDY_MATERIALS_PROVIDER", "ollama").lower()
    ollama_base_url: str = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
    ollama_model: str = os.getenv("OLLAMA_MODEL", "qwen2.5:7b-instruct")
    openai_model: str = os.getenv("OPENAI_MODEL", "gpt-4o-mini")

    # Retry knobs
    generation_timeout_sec: float = float(os.getenv("LC_GENERATION_TIMEOUT_SEC", "120"))
    generation_extra_attempts: int = int(os.getenv("LC_GENERATION_EXTRA_ATTEMPTS", "2"))
    generation_stage_budget_sec: float = float(os.getenv("LC_GENERATION_STAGE_BUDGET_SEC", "300"))
    index_submit_attempts: int = int(os.getenv("LC_INDEX_SUBMIT_ATTEMPTS", "3"))
    retry_backoff_sec: float = float(os.getenv("LC_RETRY_BACKOFF_SEC", "1.5"))

    # Retrieval
    merge_gap_sec: float = float(os.getenv("LC_MERGE_GAP_SEC", "2.0"))
    coverage_queries: tuple[str, ...] = _csv(
        os.getenv(
            "LC_COVERAGE_QUERIES",
            "overview of the lecture,key concepts and definitions,"
            "formulas or procedures,important graphics or diagrams",
        )
    )

    # Per-video serialization
    video_lock_timeout_sec: float = float(os.getenv("LC_VIDEO_LOCK_TIMEOUT_SEC", "600"))

    # Events
    heartbeat_interval_sec: float = float(os.getenv("LC_HEARTBEAT_INTERVAL_SEC", "30"))
    subscriber_queue_size: int = int(os.getenv("LC_SUBSCRIBER_QUEUE_SIZE", "100"))
    events_redis_url: str | None = os.getenv("EVENTS_REDIS_URL") or None
    events_redis_channel: str = os.getenv("EVENTS_REDIS_CHANNEL", "lecture-copilot:events")

    # Logging
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()
    log_json: bool = os.getenv("LOG_JSON", "0") == "1"


settings = Settings()
