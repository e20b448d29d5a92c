import os
import tempfile

# Settings are read at import time: point them at a throwaway database first.
_DB_DIR = tempfile.mkdtemp(prefix="lecture-copilot-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ["ENV"] = "test"
os.environ.pop("EVENTS_REDIS_URL", None)

import json  # noqa: E402
import re  # noqa: E402

import pytest  # noqa: E402

from lecture_copilot.core.errors import ContentIndexError, GenerationEngineError  # noqa: E402
from lecture_copilot.core.locks import KeyedLocks  # noqa: E402
from lecture_copilot.core.retry import RetryPolicy  # noqa: E402
from lecture_copilot.db.base import Base  # noqa: E402
from lecture_copilot.db.session import SessionLocal, engine  # noqa: E402
from lecture_copilot.services.content_index import IndexTask  # noqa: E402
from lecture_copilot.services.lifecycle import CompletionOutcome, VideoLifecycleController  # noqa: E402
from lecture_copilot.services.metadata_store import SqlMetadataStore  # noqa: E402
from lecture_copilot.services.records import RawHit  # noqa: E402
from lecture_copilot.services.retrieval import SegmentRetriever  # noqa: E402
from lecture_copilot.services.synthesis import StudyMaterialSynthesizer  # noqa: E402


@pytest.fixture(autouse=True)
def _fresh_schema():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


# -----------------------
# Fakes
# -----------------------
class FakeContentIndex:
    def __init__(self):
        self.hits: dict[str, list[RawHit]] = {}
        self.tasks: dict[str, IndexTask] = {}
        self.submitted: list[str] = []
        self.search_calls: list[tuple[str, str, int | None]] = []
        self.fail_submit = 0
        self.fail_search = False
        self.fail_get_task = False

    def submit_indexing(self, storage_uri, *, timeout=None):
        if self.fail_submit > 0:
            self.fail_submit -= 1
            raise ContentIndexError("index unavailable")
        self.submitted.append(storage_uri)
        return f"t{len(self.submitted)}"

    def get_task(self, task_id):
        if self.fail_get_task:
            raise ContentIndexError("index unavailable")
        return self.tasks.get(task_id, IndexTask(task_id=task_id, status="indexing"))

    def search(self, index_handle, query, scope_filter=None, *, limit=None):
        self.search_calls.append((index_handle, query, limit))
        if self.fail_search:
            raise ContentIndexError("search exploded")
        return list(self.hits.get(query, self.hits.get("*", [])))


class RecordingPublisher:
    def __init__(self):
        self.events = []

    def publish(self, video_id, event):
        self.events.append(event)

    def stages(self):
        return [e.stage for e in self.events if e.event == "generation-progress"]

    def statuses(self):
        return [e.status for e in self.events if e.event == "status"]


_TOPIC_RE = re.compile(r'about "([^"]+)"')
_COUNT_RE = re.compile(r"Write (\d+) ")


def lecture_responder(context, instruction):
    """Well-behaved engine output keyed off the instruction text."""
    if '"flashcards"' in instruction:
        topic = _TOPIC_RE.search(instruction).group(1)
        n = int(_COUNT_RE.search(instruction).group(1))
        return json.dumps(
            {
                "flashcards": [
                    {
                        "front": f"How is {topic} applied in case {i}?",
                        "back": f"{topic} adjusts the weights against the gradient, case {i}.",
                    }
                    for i in range(1, n + 1)
                ]
            }
        )
    if '"quiz"' in instruction:
        topic = _TOPIC_RE.search(instruction).group(1)
        n = int(_COUNT_RE.search(instruction).group(1))
        return json.dumps(
            {
                "quiz": [
                    {
                        "question": f"Which statement about {topic} holds in scenario {i}?",
                        "choices": [
                            "It lowers the loss",
                            "It raises the loss",
                            "It freezes the weights",
                            "It shuffles the data",
                        ],
                        "correct_index": 0,
                    }
                    for i in range(1, n + 1)
                ]
            }
        )
    if '"topics"' in instruction:
        return json.dumps({"topics": ["Gradient descent", "Learning rate", "Loss functions"]})
    return (
        "Gradient descent iteratively updates model parameters in the direction that "
        "reduces the loss, with the learning rate controlling step size and convergence."
    )


class ScriptedEngine:
    def __init__(self, responder=lecture_responder):
        self.responder = responder
        self.calls: list[tuple[str, str]] = []

    def generate(self, context, instruction, timeout=None):
        self.calls.append((context, instruction))
        out = self.responder(context, instruction)
        if isinstance(out, Exception):
            raise out
        return out


class FailingEngine(ScriptedEngine):
    def __init__(self):
        super().__init__(lambda c, i: GenerationEngineError("engine timed out"))


LECTURE_HITS = [
    RawHit(start=0.0, end=28.0, text="Gradient descent minimizes the loss function step by step.", confidence=0.9),
    RawHit(start=31.0, end=58.0, text="The learning rate sets how far each update moves.", confidence=0.7),
    RawHit(start=61.0, end=90.0, text="Loss functions such as mean squared error measure the fit.", confidence=0.8),
]


# -----------------------
# Fixtures
# -----------------------
@pytest.fixture
def store():
    return SqlMetadataStore(SessionLocal)


@pytest.fixture
def index():
    return FakeContentIndex()


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def policy():
    return RetryPolicy(max_attempts=3, attempt_timeout_sec=5, backoff_sec=0, sleep=lambda _s: None)


@pytest.fixture
def locks():
    return KeyedLocks()


@pytest.fixture
def controller(store, index, publisher, locks, policy):
    return VideoLifecycleController(
        store=store,
        index=index,
        publisher=publisher,
        locks=locks,
        submit_policy=policy,
        lock_timeout_sec=1,
    )


@pytest.fixture
def retriever(store, index):
    return SegmentRetriever(store=store, index=index, merge_gap_sec=2.0)


@pytest.fixture
def engine_fake():
    return ScriptedEngine()


@pytest.fixture
def synthesizer(store, retriever, engine_fake, publisher, locks, policy):
    return StudyMaterialSynthesizer(
        store=store,
        retriever=retriever,
        engine=engine_fake,
        publisher=publisher,
        locks=locks,
        stage_policy=policy,
        lock_timeout_sec=1,
    )


@pytest.fixture
def ready_video(controller, index):
    """A registered video that went through submit + successful completion."""
    record = controller.register("gs://lectures/ml-101.mp4", title="ML 101", video_id="v1")
    record = controller.submit(record.id)
    controller.on_completion_signal(record.task_id, CompletionOutcome.ready("tl-video-1"))
    index.hits["*"] = list(LECTURE_HITS)
    return controller.get_status("v1")
