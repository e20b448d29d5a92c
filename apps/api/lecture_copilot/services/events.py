"""
Per-video event fan-out for lifecycle and generation progress.

Observers subscribe to one video and read SSE frames from their connection.
Publishing never blocks: each connection owns a bounded queue, and a queue
that stays full is treated as a dead consumer and pruned. A heartbeat thread
pings every live connection so half-open transports get noticed.

Live delivery only: publishing with no subscribers drops the event.
"""
from __future__ import annotations

import enum
import json
import queue
import threading
import uuid
from dataclasses import dataclass, field
from typing import Any, Iterator, Protocol

import structlog

from lecture_copilot.core.config import settings
from lecture_copilot.services.records import utcnow

log = structlog.get_logger(__name__)


class EventKind(str, enum.Enum):
    STATUS = "status"
    HEARTBEAT = "heartbeat"
    GENERATION_PROGRESS = "generation-progress"


@dataclass(frozen=True)
class StudyEvent:
    event: str
    video_id: str
    status: str | None = None
    stage: str | None = None
    detail: Any = None
    timestamp: str = field(default_factory=lambda: utcnow().isoformat())

    @classmethod
    def status_changed(cls, video_id: str, status: str, detail: Any = None) -> "StudyEvent":
        return cls(event=EventKind.STATUS.value, video_id=video_id, status=status, detail=detail)

    @classmethod
    def progress(cls, video_id: str, stage: str, detail: Any = None) -> "StudyEvent":
        return cls(event=EventKind.GENERATION_PROGRESS.value, video_id=video_id, stage=stage, detail=detail)

    @classmethod
    def heartbeat(cls, video_id: str) -> "StudyEvent":
        return cls(event=EventKind.HEARTBEAT.value, video_id=video_id)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"event": self.event, "videoId": self.video_id}
        if self.status is not None:
            out["status"] = self.status
        if self.stage is not None:
            out["stage"] = self.stage
        if self.detail is not None:
            out["detail"] = self.detail
        out["timestamp"] = self.timestamp
        return out

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, default=str)

    def to_sse(self) -> str:
        return f"event: {self.event}\ndata: {self.to_json()}\n\n"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StudyEvent":
        return cls(
            event=str(data["event"]),
            video_id=str(data["videoId"]),
            status=data.get("status"),
            stage=data.get("stage"),
            detail=data.get("detail"),
            timestamp=data.get("timestamp") or utcnow().isoformat(),
        )


class EventPublisher(Protocol):
    def publish(self, video_id: str, event: StudyEvent) -> None: ...


class SubscriberConnection:
    """Live handle for one observer of one video."""

    def __init__(self, video_id: str, maxsize: int = 100) -> None:
        self.id = uuid.uuid4().hex
        self.video_id = video_id
        self._queue: queue.Queue[StudyEvent | None] = queue.Queue(maxsize=max(1, maxsize))
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def offer(self, event: StudyEvent) -> bool:
        """Queue an event without blocking; False means the consumer is gone or stuck."""
        if self.closed:
            return False
        try:
            self._queue.put_nowait(event)
            return True
        except queue.Full:
            return False

    def get(self, timeout: float | None = None) -> StudyEvent | None:
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> list[StudyEvent]:
        out: list[StudyEvent] = []
        while True:
            try:
                ev = self._queue.get_nowait()
            except queue.Empty:
                return out
            if ev is not None:
                out.append(ev)

    def close(self) -> None:
        if self.closed:
            return
        self._closed.set()
        # wake a blocked reader; if the queue is full it will see closed on its next get
        try:
            self._queue.put_nowait(None)
        except queue.Full:
            pass


class _Channel:
    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.members: set[SubscriberConnection] = set()


class EventBroadcaster:
    def __init__(
        self,
        heartbeat_interval_sec: float | None = None,
        queue_size: int | None = None,
        relay: "EventRelay | None" = None,
    ) -> None:
        self.heartbeat_interval_sec = (
            settings.heartbeat_interval_sec if heartbeat_interval_sec is None else heartbeat_interval_sec
        )
        self.queue_size = settings.subscriber_queue_size if queue_size is None else queue_size
        self.relay = relay

        self._registry = threading.Lock()
        self._channels: dict[str, _Channel] = {}

        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    # -----------------------
    # Subscriptions
    # -----------------------
    def _channel(self, video_id: str, create: bool) -> _Channel | None:
        with self._registry:
            ch = self._channels.get(video_id)
            if ch is None and create:
                ch = _Channel()
                self._channels[video_id] = ch
            return ch

    def subscribe(self, video_id: str) -> SubscriberConnection:
        conn = SubscriberConnection(video_id, maxsize=self.queue_size)
        while True:
            ch = self._channel(video_id, create=True)
            with ch.lock:
                # the channel may have been dropped between lookup and lock
                with self._registry:
                    if self._channels.get(video_id) is not ch:
                        continue
                ch.members.add(conn)
                break
        log.info("events.subscribed", video_id=video_id, connection=conn.id)
        return conn

    def unsubscribe(self, conn: SubscriberConnection) -> None:
        conn.close()
        self._remove(conn.video_id, [conn])
        log.info("events.unsubscribed", video_id=conn.video_id, connection=conn.id)

    def _remove(self, video_id: str, conns: list[SubscriberConnection]) -> None:
        ch = self._channel(video_id, create=False)
        if ch is None:
            return
        with ch.lock:
            for c in conns:
                ch.members.discard(c)
            if not ch.members:
                with self._registry:
                    if self._channels.get(video_id) is ch:
                        del self._channels[video_id]

    def subscriber_count(self, video_id: str | None = None) -> int:
        with self._registry:
            channels = list(self._channels.items())
        total = 0
        for vid, ch in channels:
            if video_id is not None and vid != video_id:
                continue
            with ch.lock:
                total += len(ch.members)
        return total

    # -----------------------
    # Publishing
    # -----------------------
    def publish(self, video_id: str, event: StudyEvent) -> None:
        """Best-effort fan-out; goes through the relay when one is configured."""
        if self.relay is not None:
            if self.relay.publish(video_id, event):
                return
        self.deliver(video_id, event)

    def deliver(self, video_id: str, event: StudyEvent) -> int:
        """Hand the event to local connections; returns how many accepted it."""
        ch = self._channel(video_id, create=False)
        if ch is None:
            return 0

        with ch.lock:
            members = list(ch.members)

        delivered = 0
        dead: list[SubscriberConnection] = []
        for conn in members:
            if conn.offer(event):
                delivered += 1
            else:
                dead.append(conn)

        if dead:
            for conn in dead:
                conn.close()
            self._remove(video_id, dead)
            log.info("events.pruned", video_id=video_id, pruned=len(dead))
        return delivered

    def heartbeat(self) -> int:
        """Ping every connection once; returns the number pruned."""
        with self._registry:
            video_ids = list(self._channels)

        before = self.subscriber_count()
        for vid in video_ids:
            self.deliver(vid, StudyEvent.heartbeat(vid))
        return max(0, before - self.subscriber_count())

    # -----------------------
    # SSE transport
    # -----------------------
    def stream(self, video_id: str, poll_sec: float = 1.0) -> Iterator[str]:
        """
        Subscribe to video_id and yield SSE frames until the connection closes.

        The subscription is taken on the first pull, so a generator that is
        closed before it starts never registers. Closing it later (client went
        away) unsubscribes immediately.
        """
        conn = self.subscribe(video_id)
        try:
            yield f": connected {conn.video_id}\n\n"
            while not conn.closed:
                ev = conn.get(timeout=poll_sec)
                if ev is None:
                    continue
                yield ev.to_sse()
        finally:
            self.unsubscribe(conn)

    # -----------------------
    # Lifecycle
    # -----------------------
    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._heartbeat_loop, name="event-heartbeat", daemon=True)
        self._thread.start()
        log.info("events.started", heartbeat_interval_sec=self.heartbeat_interval_sec)

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None

        with self._registry:
            channels = list(self._channels.values())
            self._channels.clear()
        for ch in channels:
            with ch.lock:
                for conn in ch.members:
                    conn.close()
                ch.members.clear()
        log.info("events.stopped")

    def _heartbeat_loop(self) -> None:
        while not self._stop.wait(self.heartbeat_interval_sec):
            pruned = self.heartbeat()
            if pruned:
                log.info("events.heartbeat_pruned", pruned=pruned)


class EventRelay(Protocol):
    def publish(self, video_id: str, event: StudyEvent) -> bool: ...
