import threading
import time

import redis

from lecture_copilot.services.event_relay import RedisEventRelay
from lecture_copilot.services.events import StudyEvent


class FakePubSub:
    def __init__(self, messages):
        self.messages = list(messages)
        self.subscribed = []
        self.closed = False

    def subscribe(self, channel):
        self.subscribed.append(channel)

    def get_message(self, timeout=None):
        if self.messages:
            return self.messages.pop(0)
        time.sleep(0.01)
        return None

    def close(self):
        self.closed = True


class FakeRedis:
    def __init__(self, messages=(), fail=False):
        self.published = []
        self.fail = fail
        self.pubsubs = []
        self._messages = messages

    def publish(self, channel, data):
        if self.fail:
            raise redis.ConnectionError("connection refused")
        self.published.append((channel, data))
        return 1

    def pubsub(self, ignore_subscribe_messages=False):
        ps = FakePubSub(self._messages)
        self.pubsubs.append(ps)
        return ps


def test_publish_serializes_event_to_channel():
    client = FakeRedis()
    relay = RedisEventRelay(client, channel="lc-events")
    ev = StudyEvent.status_changed("v1", "ready")

    assert relay.publish("v1", ev) is True
    assert client.published == [("lc-events", ev.to_json())]


def test_publish_failure_falls_back():
    relay = RedisEventRelay(FakeRedis(fail=True), channel="lc-events")
    assert relay.publish("v1", StudyEvent.status_changed("v1", "ready")) is False


def test_handle_message_decodes_bytes():
    relay = RedisEventRelay(FakeRedis(), channel="lc-events")
    ev = StudyEvent.progress("v1", "summary")
    received = []

    ok = relay.handle_message(
        {"type": "message", "data": ev.to_json().encode("utf-8")},
        lambda vid, e: received.append((vid, e)),
    )

    assert ok is True
    assert received == [("v1", ev)]


def test_handle_message_skips_noise():
    relay = RedisEventRelay(FakeRedis(), channel="lc-events")
    received = []
    sink = lambda vid, e: received.append(e)  # noqa: E731

    assert relay.handle_message(None, sink) is False
    assert relay.handle_message({"type": "subscribe", "data": 1}, sink) is False
    assert relay.handle_message({"type": "message", "data": "not json"}, sink) is False
    assert relay.handle_message({"type": "message", "data": '{"event": "status"}'}, sink) is False
    assert received == []


def test_listener_feeds_sink_until_stopped():
    ev = StudyEvent.status_changed("v1", "ready")
    client = FakeRedis(messages=[{"type": "message", "data": ev.to_json()}])
    relay = RedisEventRelay(client, channel="lc-events", poll_sec=0.01)

    got = threading.Event()
    received = []

    def sink(vid, e):
        received.append(e)
        got.set()

    relay.start(sink)
    try:
        assert got.wait(timeout=2)
    finally:
        relay.stop()

    assert received == [ev]
    assert client.pubsubs[0].subscribed == ["lc-events"]
    assert client.pubsubs[0].closed
