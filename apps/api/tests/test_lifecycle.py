import pytest

from lecture_copilot.core.errors import (
    AlreadySubmitted,
    IndexStatusUnavailable,
    IndexSubmissionError,
    VideoAlreadyExists,
    VideoBusy,
    VideoNotFound,
)
from lecture_copilot.services.content_index import IndexTask
from lecture_copilot.services.lifecycle import CompletionOutcome, VideoLifecycleController
from lecture_copilot.services.records import VideoStatus


def test_register_persists_uploaded_without_events(controller, store, publisher):
    record = controller.register("gs://lectures/a.mp4", title="Intro", video_id="v1")

    assert record.status is VideoStatus.UPLOADED
    assert store.get("v1").title == "Intro"
    assert publisher.events == []


def test_register_generates_ids_and_rejects_duplicates(controller):
    a = controller.register("gs://lectures/a.mp4")
    b = controller.register("gs://lectures/b.mp4")
    assert a.id != b.id

    with pytest.raises(VideoAlreadyExists):
        controller.register("gs://lectures/c.mp4", video_id=a.id)


def test_get_status_unknown_video(controller):
    with pytest.raises(VideoNotFound):
        controller.get_status("nope")


def test_submit_moves_to_indexing_and_publishes(controller, index, publisher):
    controller.register("gs://lectures/a.mp4", video_id="v1")
    record = controller.submit("v1")

    assert record.status is VideoStatus.INDEXING
    assert record.task_id == "t1"
    assert index.submitted == ["gs://lectures/a.mp4"]
    assert publisher.statuses() == ["indexing"]


def test_submit_twice_is_rejected(controller):
    controller.register("gs://lectures/a.mp4", video_id="v1")
    controller.submit("v1")

    with pytest.raises(AlreadySubmitted) as exc:
        controller.submit("v1")
    assert exc.value.context["status"] == "indexing"


def test_submit_retries_transient_failures(controller, index):
    controller.register("gs://lectures/a.mp4", video_id="v1")
    index.fail_submit = 2

    record = controller.submit("v1")
    assert record.status is VideoStatus.INDEXING


def test_submit_exhausted_leaves_record_untouched(controller, index, store, publisher):
    controller.register("gs://lectures/a.mp4", video_id="v1")
    index.fail_submit = 3

    with pytest.raises(IndexSubmissionError):
        controller.submit("v1")

    record = store.get("v1")
    assert record.status is VideoStatus.UPLOADED
    assert record.task_id is None
    assert publisher.events == []

    # caller may simply retry
    assert controller.submit("v1").status is VideoStatus.INDEXING


def test_completion_signal_is_idempotent(controller, publisher):
    controller.register("gs://lectures/a.mp4", video_id="v1")
    controller.submit("v1")

    first = controller.on_completion_signal("t1", CompletionOutcome.ready("tl-1"))
    second = controller.on_completion_signal("t1", CompletionOutcome.ready("tl-1"))

    assert first.status is VideoStatus.READY
    assert first.index_id == "tl-1"
    assert second is None
    assert publisher.statuses() == ["indexing", "ready"]


def test_unknown_task_signal_is_ignored(controller, publisher):
    assert controller.on_completion_signal("ghost", CompletionOutcome.ready()) is None
    assert publisher.events == []


def test_failed_signal_records_reason_and_is_terminal(controller, publisher):
    controller.register("gs://lectures/a.mp4", video_id="v1")
    controller.submit("v1")

    record = controller.on_completion_signal("t1", CompletionOutcome.failed("unsupported codec"))
    assert record.status is VideoStatus.FAILED
    assert record.failure_reason == "unsupported codec"
    assert publisher.events[-1].detail == "unsupported codec"

    # a late success never resurrects a failed video
    assert controller.on_completion_signal("t1", CompletionOutcome.ready("tl-1")) is None
    assert controller.get_status("v1").status is VideoStatus.FAILED


def test_reconcile_applies_terminal_task(controller, index):
    controller.register("gs://lectures/a.mp4", video_id="v1")
    controller.submit("v1")

    assert controller.reconcile("v1").status is VideoStatus.INDEXING

    index.tasks["t1"] = IndexTask(task_id="t1", status="ready", index_id="tl-9")
    record = controller.reconcile("v1")
    assert record.status is VideoStatus.READY
    assert record.index_id == "tl-9"


def test_reconcile_failed_task(controller, index):
    controller.register("gs://lectures/a.mp4", video_id="v1")
    controller.submit("v1")
    index.tasks["t1"] = IndexTask(task_id="t1", status="failed", error="corrupt file")

    record = controller.reconcile("v1")
    assert record.status is VideoStatus.FAILED
    assert record.failure_reason == "corrupt file"


def test_reconcile_surfaces_index_outage(controller, index):
    controller.register("gs://lectures/a.mp4", video_id="v1")
    controller.submit("v1")
    index.fail_get_task = True

    with pytest.raises(IndexStatusUnavailable):
        controller.reconcile("v1")
    assert controller.get_status("v1").status is VideoStatus.INDEXING


def test_reconcile_is_noop_outside_indexing(controller, index):
    controller.register("gs://lectures/a.mp4", video_id="v1")
    index.fail_get_task = True
    assert controller.reconcile("v1").status is VideoStatus.UPLOADED


def test_submit_while_video_is_locked(store, index, publisher, locks, policy):
    controller = VideoLifecycleController(
        store=store,
        index=index,
        publisher=publisher,
        locks=locks,
        submit_policy=policy,
        lock_timeout_sec=0.05,
    )
    controller.register("gs://lectures/a.mp4", video_id="v1")

    with locks.hold("v1") as acquired:
        assert acquired
        with pytest.raises(VideoBusy):
            controller.submit("v1")

    assert index.submitted == []
    assert controller.submit("v1").status is VideoStatus.INDEXING
