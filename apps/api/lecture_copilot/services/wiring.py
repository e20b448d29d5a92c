"""
Process-wide instances of the study pipeline components.

Routes take these through FastAPI's Depends (tests swap them with
app.dependency_overrides); Celery tasks call them directly.
"""
from __future__ import annotations

from functools import lru_cache

from lecture_copilot.core.config import settings
from lecture_copilot.core.locks import KeyedLocks
from lecture_copilot.db.session import SessionLocal
from lecture_copilot.services.content_index import ContentIndex, TwelveLabsContentIndex
from lecture_copilot.services.event_relay import RedisEventRelay
from lecture_copilot.services.events import EventBroadcaster
from lecture_copilot.services.lifecycle import VideoLifecycleController
from lecture_copilot.services.llm.engine import GenerationEngine, build_engine
from lecture_copilot.services.metadata_store import SqlMetadataStore
from lecture_copilot.services.retrieval import SegmentRetriever
from lecture_copilot.services.synthesis import StudyMaterialSynthesizer


@lru_cache
def get_locks() -> KeyedLocks:
    return KeyedLocks()


@lru_cache
def get_store() -> SqlMetadataStore:
    return SqlMetadataStore(SessionLocal)


@lru_cache
def get_relay() -> RedisEventRelay | None:
    if not settings.events_redis_url:
        return None
    return RedisEventRelay.from_url(settings.events_redis_url, channel=settings.events_redis_channel)


@lru_cache
def get_broadcaster() -> EventBroadcaster:
    return EventBroadcaster(relay=get_relay())


@lru_cache
def get_content_index() -> ContentIndex:
    return TwelveLabsContentIndex()


@lru_cache
def get_engine() -> GenerationEngine:
    return build_engine()


@lru_cache
def get_controller() -> VideoLifecycleController:
    return VideoLifecycleController(
        store=get_store(),
        index=get_content_index(),
        publisher=get_broadcaster(),
        locks=get_locks(),
    )


@lru_cache
def get_retriever() -> SegmentRetriever:
    return SegmentRetriever(store=get_store(), index=get_content_index())


@lru_cache
def get_synthesizer() -> StudyMaterialSynthesizer:
    return StudyMaterialSynthesizer(
        store=get_store(),
        retriever=get_retriever(),
        engine=get_engine(),
        publisher=get_broadcaster(),
        locks=get_locks(),
    )
