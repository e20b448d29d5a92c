"""
Redis pub/sub relay so events published in a Celery worker reach the API
process that holds the SSE connections.

Every process publishes to one channel; the API process runs a listener that
feeds received events into its local EventBroadcaster.deliver().
"""
from __future__ import annotations

import json
import threading
from typing import Any, Callable

import redis
import structlog

from lecture_copilot.core.config import settings
from lecture_copilot.services.events import StudyEvent

log = structlog.get_logger(__name__)

Sink = Callable[[str, StudyEvent], Any]


class RedisEventRelay:
    def __init__(self, client: Any, channel: str | None = None, poll_sec: float = 1.0) -> None:
        self.client = client
        self.channel = channel or settings.events_redis_channel
        self.poll_sec = poll_sec

        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @classmethod
    def from_url(cls, url: str, channel: str | None = None) -> "RedisEventRelay":
        return cls(redis.Redis.from_url(url), channel=channel)

    def publish(self, video_id: str, event: StudyEvent) -> bool:
        """False tells the caller to deliver locally instead."""
        try:
            self.client.publish(self.channel, event.to_json())
            return True
        except redis.RedisError as e:
            log.warning("relay.publish_failed", video_id=video_id, error=str(e))
            return False

    # -----------------------
    # Listener
    # -----------------------
    def handle_message(self, message: dict[str, Any] | None, sink: Sink) -> bool:
        if not message or message.get("type") != "message":
            return False
        raw = message.get("data")
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8", errors="replace")
        try:
            event = StudyEvent.from_dict(json.loads(raw))
        except (TypeError, ValueError, KeyError) as e:
            log.warning("relay.bad_message", error=str(e))
            return False
        sink(event.video_id, event)
        return True

    def start(self, sink: Sink) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._listen, args=(sink,), name="event-relay", daemon=True)
        self._thread.start()
        log.info("relay.started", channel=self.channel)

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None
        log.info("relay.stopped", channel=self.channel)

    def _listen(self, sink: Sink) -> None:
        while not self._stop.is_set():
            pubsub = self.client.pubsub(ignore_subscribe_messages=True)
            try:
                pubsub.subscribe(self.channel)
                while not self._stop.is_set():
                    self.handle_message(pubsub.get_message(timeout=self.poll_sec), sink)
            except redis.RedisError as e:
                log.warning("relay.listen_failed", error=str(e))
                self._stop.wait(self.poll_sec)
            finally:
                pubsub.close()
