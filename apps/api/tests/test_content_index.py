import json

import httpx
import pytest

from lecture_copilot.core.errors import ContentIndexError
from lecture_copilot.services.content_index import TwelveLabsContentIndex, parse_search_hits


def _index(handler):
    return TwelveLabsContentIndex(
        api_key="tl-key",
        index_id="idx-1",
        base_url="https://tl.example/v1.3/",
        transport=httpx.MockTransport(handler),
    )


def test_submit_posts_video_url_and_returns_task_id():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["key"] = request.headers.get("x-api-key")
        seen["body"] = request.content
        return httpx.Response(200, json={"_id": "task-42"})

    task_id = _index(handler).submit_indexing("https://cdn.example/lecture.mp4")

    assert task_id == "task-42"
    assert seen["path"] == "/v1.3/tasks"
    assert seen["key"] == "tl-key"
    assert b"https://cdn.example/lecture.mp4" in seen["body"]
    assert b"idx-1" in seen["body"]


def test_get_task_reads_status_and_video_id():
    def handler(request):
        return httpx.Response(200, json={"_id": "task-42", "status": "Ready", "video_id": "tl-vid"})

    task = _index(handler).get_task("task-42")

    assert task.status == "ready"
    assert task.succeeded and task.is_terminal
    assert task.index_id == "tl-vid"


def test_search_filters_on_video_and_parses_hits():
    seen = {}

    def handler(request):
        seen["body"] = request.content
        return httpx.Response(
            200,
            json={
                "data": [
                    {"start": 3, "end": 9.5, "score": 84.0, "transcription": " chain rule "},
                    {"start": 12, "end": 20, "confidence": "medium"},
                    {"end": 5},
                ]
            },
        )

    hits = _index(handler).search("tl-vid", "chain rule", ["visual"], limit=5)

    assert [(h.start, h.end) for h in hits] == [(3.0, 9.5), (12.0, 20.0)]
    assert hits[0].confidence == pytest.approx(0.84)
    assert hits[0].text == "chain rule"
    assert hits[1].confidence == 0.6
    assert {h.scope for h in hits} == {"visual"}
    assert json.dumps({"id": ["tl-vid"]}).encode() in seen["body"]
    assert b"chain rule" in seen["body"]


def test_parse_search_hits_marks_mixed_scope():
    hits = parse_search_hits({"data": [{"start": 0, "end": 1, "score": 0.5}]}, "mixed")
    assert hits[0].scope == "mixed"
    assert hits[0].confidence == 0.5
    assert parse_search_hits({}, "visual") == []


@pytest.mark.parametrize(
    "handler",
    [
        lambda r: httpx.Response(401, json={"message": "bad key"}),
        lambda r: httpx.Response(200, text="not json"),
        lambda r: httpx.Response(200, json={}),
    ],
)
def test_submit_errors_become_content_index_errors(handler):
    with pytest.raises(ContentIndexError):
        _index(handler).submit_indexing("https://cdn.example/lecture.mp4")


def test_transport_failure_and_missing_key():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(ContentIndexError):
        _index(handler).search("tl-vid", "q")

    with pytest.raises(ContentIndexError):
        TwelveLabsContentIndex(api_key="", index_id="idx-1").submit_indexing("https://cdn.example/a.mp4")
